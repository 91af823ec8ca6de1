"""Metric sources that feed observations into the push pipeline."""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import json
import logging
import time

import psutil
from prometheus_client import CollectorRegistry, REGISTRY

from remotepush.config import SourceConfig
from remotepush.labels import sanitize_metric_name
from remotepush.series import Observation, ObservationBatch
from remotepush.timestamps import from_epoch_seconds

logger = logging.getLogger(__name__)


class MetricSource(ABC):
    """Base class for metric sources."""

    def __init__(
        self,
        name: str,
        prefix: str = "",
        labels: Optional[Dict[str, str]] = None
    ):
        self.name = name
        self.prefix = prefix
        self.labels = dict(labels or {})

    @abstractmethod
    def collect(self) -> ObservationBatch:
        """Collect the current observations of this source."""
        pass

    def _observation(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                     timestamp=None) -> Observation:
        """Build an observation with the source prefix and static labels."""
        merged = dict(self.labels)
        if labels:
            merged.update(labels)
        return Observation(f"{self.prefix}{name}", value, merged, timestamp)

    def _batch(self, observations: List[Observation], source_instant=None) -> ObservationBatch:
        logger.debug(f"Source '{self.name}' collected {len(observations)} observations")
        return ObservationBatch(observations, source_instant=source_instant, source=self.name)


class SystemSource(MetricSource):
    """Host CPU, memory, disk, load, network and battery via psutil."""

    def __init__(self, name: str, prefix: str = "", labels: Optional[Dict[str, str]] = None,
                 mountpoints: Optional[List[str]] = None, per_cpu_mode: bool = True,
                 cpu_interval_s: float = 0.5):
        super().__init__(name, prefix, labels)
        self.mountpoints = mountpoints if mountpoints is not None else ["/"]
        self.per_cpu_mode = per_cpu_mode
        self.cpu_interval_s = cpu_interval_s

    def collect(self) -> ObservationBatch:
        observations: List[Observation] = []
        observations.extend(self._cpu())
        observations.extend(self._memory())
        observations.extend(self._disks())
        observations.extend(self._load())
        observations.extend(self._network())
        observations.extend(self._battery())
        # Live values: always stamped with the collection instant
        return self._batch(observations)

    def _cpu(self) -> Iterator[Observation]:
        times = psutil.cpu_times_percent(interval=self.cpu_interval_s)
        if self.per_cpu_mode:
            for mode, percent in times._asdict().items():
                yield self._observation("cpu_usage_percent", percent, {"mode": mode})
        else:
            yield self._observation("cpu_usage_percent", 100.0 - times.idle)

    def _memory(self) -> Iterator[Observation]:
        yield self._observation("memory_usage_percent", psutil.virtual_memory().percent)
        yield self._observation("swap_usage_percent", psutil.swap_memory().percent)

    def _disks(self) -> Iterator[Observation]:
        for mountpoint in self.mountpoints:
            try:
                usage = psutil.disk_usage(mountpoint)
            except OSError as e:
                logger.info(f"Skipping disk usage for {mountpoint}: {e}")
                continue
            yield self._observation("disk_usage_percent", usage.percent, {"mountpoint": mountpoint})

    def _load(self) -> Iterator[Observation]:
        try:
            loads = psutil.getloadavg()
        except (AttributeError, OSError):
            return
        for period, value in zip(("1m", "5m", "15m"), loads):
            yield self._observation("load_average", value, {"period": period})

    def _network(self) -> Iterator[Observation]:
        counters = psutil.net_io_counters()
        if counters is None:
            return
        yield self._observation("network_bytes_total", counters.bytes_sent, {"direction": "sent"})
        yield self._observation("network_bytes_total", counters.bytes_recv, {"direction": "received"})

    def _battery(self) -> Iterator[Observation]:
        sensors_battery = getattr(psutil, "sensors_battery", None)
        if sensors_battery is None:
            return
        battery = sensors_battery()
        if battery is None:
            return
        yield self._observation("battery_percent", battery.percent)
        yield self._observation("battery_plugged", 1.0 if battery.power_plugged else 0.0)


def flatten_numeric(data, path: Tuple[str, ...] = ()) -> Iterator[Tuple[Tuple[str, ...], float]]:
    """Yield (key path, value) for every numeric leaf of nested dicts."""
    if isinstance(data, bool):
        yield path, 1.0 if data else 0.0
    elif isinstance(data, (int, float)):
        yield path, float(data)
    elif isinstance(data, dict):
        for key, value in data.items():
            yield from flatten_numeric(value, path + (str(key),))
    # strings, lists and nulls carry no single value


class StatsFileSource(MetricSource):
    """
    Values from a cached JSON statistics file.

    Every numeric leaf becomes one observation named after its key path.
    The file's modification time is the batch's freshness source, so the
    resolver keeps it while it is recent enough. A missing file is not an
    error: the batch is simply empty.
    """

    def __init__(self, name: str, path: str, prefix: str = "",
                 labels: Optional[Dict[str, str]] = None):
        super().__init__(name, prefix, labels)
        self.path = Path(path).expanduser()

    def collect(self) -> ObservationBatch:
        try:
            mtime = self.path.stat().st_mtime
            with open(self.path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info(f"Stats file {self.path} not found, skipping source '{self.name}'")
            return self._batch([])
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read stats file {self.path}: {e}")
            return self._batch([])

        observations: List[Observation] = []
        seen: Dict[str, str] = {}
        for path, value in flatten_numeric(data):
            if not path:
                continue
            key = ".".join(path)
            metric_name = sanitize_metric_name("_".join(path))
            if metric_name in seen:
                # Keys that sanitize to one name would form duplicate series
                logger.warning(
                    f"Stats key '{key}' in {self.path} maps to '{metric_name}' "
                    f"already used by '{seen[metric_name]}', skipping"
                )
                continue
            seen[metric_name] = key
            observations.append(self._observation(metric_name, value))

        return self._batch(observations, source_instant=from_epoch_seconds(mtime))


class DirectoryScanSource(MetricSource):
    """File count, total size and newest-file age of a directory tree."""

    def __init__(self, name: str, path: str, prefix: str = "", labels: Optional[Dict[str, str]] = None,
                 pattern: str = "*", recursive: bool = True):
        super().__init__(name, prefix, labels)
        self.path = Path(path).expanduser()
        self.pattern = pattern
        self.recursive = recursive

    def collect(self) -> ObservationBatch:
        if not self.path.is_dir():
            logger.info(f"Directory {self.path} not found, skipping source '{self.name}'")
            return self._batch([])

        files = 0
        total_bytes = 0
        newest_mtime = None

        matches = self.path.rglob(self.pattern) if self.recursive else self.path.glob(self.pattern)
        for entry in matches:
            try:
                if not entry.is_file():
                    continue
                stat = entry.stat()
            except OSError:
                # File vanished between listing and stat
                continue
            files += 1
            total_bytes += stat.st_size
            if newest_mtime is None or stat.st_mtime > newest_mtime:
                newest_mtime = stat.st_mtime

        labels = {"directory": str(self.path)}
        observations = [
            self._observation("files_total", files, labels),
            self._observation("bytes_total", total_bytes, labels),
        ]
        if newest_mtime is not None:
            age = max(0.0, time.time() - newest_mtime)
            observations.append(self._observation("newest_file_age_seconds", age, labels))

        # A live scan is always stamped with the collection instant
        return self._batch(observations)


class StaticSource(MetricSource):
    """Fixed values declared in the configuration."""

    def __init__(self, name: str, values: List, prefix: str = "",
                 labels: Optional[Dict[str, str]] = None):
        super().__init__(name, prefix, labels)
        self.values = values

    def collect(self) -> ObservationBatch:
        return self._batch([
            self._observation(value.name, value.value, value.labels)
            for value in self.values
        ])


class RegistrySource(MetricSource):
    """
    Samples currently held by a prometheus_client registry.

    The "registry" source type pushes the default registry, which carries the
    process, platform and GC collectors of the pushing process. Embedding
    callers can pass their own CollectorRegistry.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY, name: str = "registry",
                 prefix: str = "", labels: Optional[Dict[str, str]] = None,
                 skip_created: bool = True):
        super().__init__(name, prefix, labels)
        self.registry = registry
        self.skip_created = skip_created

    def collect(self) -> ObservationBatch:
        observations: List[Observation] = []
        for metric in self.registry.collect():
            for sample in metric.samples:
                if self.skip_created and sample.name.endswith("_created"):
                    continue
                timestamp = None
                if sample.timestamp is not None:
                    timestamp = from_epoch_seconds(float(sample.timestamp))
                observations.append(
                    self._observation(sample.name, sample.value, sample.labels, timestamp)
                )
        return self._batch(observations)


def create_source(config: SourceConfig) -> MetricSource:
    """Factory function to create the source for a config entry."""
    source_type = config.type
    common = dict(name=config.name, prefix=config.prefix, labels=config.labels)

    if source_type == "system":
        return SystemSource(
            mountpoints=config.mountpoints,
            per_cpu_mode=config.per_cpu_mode,
            cpu_interval_s=config.cpu_interval_s,
            **common
        )
    elif source_type == "stats_file":
        return StatsFileSource(path=config.path, **common)
    elif source_type == "directory_scan":
        return DirectoryScanSource(
            path=config.path, pattern=config.pattern, recursive=config.recursive, **common
        )
    elif source_type == "static":
        return StaticSource(values=config.values, **common)
    elif source_type == "registry":
        return RegistrySource(registry=REGISTRY, **common)
    else:
        raise ValueError(f"Unknown source type: {source_type}")
