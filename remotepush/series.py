"""Data structures for observations and remote-write time series."""
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple
import logging

from remotepush.errors import ValidationError
from remotepush.labels import (
    INSTANCE_LABEL, JOB_LABEL, METRIC_NAME_LABEL, RESERVED_LABELS,
    invalid_label_names, is_valid_metric_name,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """A single named measurement with optional labels and timestamp."""
    name: str
    value: float
    labels: Mapping[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        # Read-only copy: neither the caller nor a consumer can change the label set
        labels = {str(k): str(v) for k, v in self.labels.items()}
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "labels", MappingProxyType(labels))

    def label_key(self) -> str:
        """Generate a stable key from sorted labels."""
        items = sorted(self.labels.items())
        return ",".join(f"{k}={v}" for k, v in items)


@dataclass
class ObservationBatch:
    """Observations that share one freshness source.

    ``source_instant`` is the last-modified time of the artifact the values
    were read from, or None for live values.
    """
    observations: List[Observation] = field(default_factory=list)
    source_instant: Optional[datetime] = None
    source: str = ""

    def __len__(self) -> int:
        return len(self.observations)


@dataclass(frozen=True)
class Identity:
    """The job/instance pair attached to every series."""
    job: str
    instance: str


@dataclass
class Label:
    name: str
    value: str


@dataclass
class Sample:
    value: float
    timestamp: int  # milliseconds since epoch


@dataclass
class TimeSeries:
    labels: List[Label] = field(default_factory=list)
    samples: List[Sample] = field(default_factory=list)

    def label_dict(self) -> Dict[str, str]:
        return {label.name: label.value for label in self.labels}

    @property
    def name(self) -> str:
        return self.label_dict().get(METRIC_NAME_LABEL, "")


@dataclass
class WriteRequest:
    """The unit of transmission: every series collected in one run."""
    timeseries: List[TimeSeries] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timeseries)


def validate_observation(observation: Observation):
    """Raise ValidationError if the observation can't be turned into a series."""
    if not observation.name:
        raise ValidationError("Observation name must not be empty")

    if not is_valid_metric_name(observation.name):
        raise ValidationError(f"Invalid metric name '{observation.name}'")

    reserved = sorted(RESERVED_LABELS.intersection(observation.labels))
    if reserved:
        raise ValidationError(
            f"Observation '{observation.name}' uses reserved label(s) {reserved}"
        )

    bad_names = sorted(invalid_label_names(observation.labels))
    if bad_names:
        raise ValidationError(
            f"Observation '{observation.name}' has invalid label name(s) {bad_names}"
        )

    dunder = sorted(name for name in observation.labels if name.startswith("__"))
    if dunder:
        raise ValidationError(
            f"Observation '{observation.name}' uses internal label(s) {dunder}"
        )


def build_labels(observation: Observation, identity: Identity) -> List[Label]:
    """Build the full, name-sorted label list for one observation."""
    validate_observation(observation)

    labels = [
        Label(METRIC_NAME_LABEL, observation.name),
        Label(JOB_LABEL, identity.job),
        Label(INSTANCE_LABEL, identity.instance),
    ]
    labels.extend(Label(name, value) for name, value in observation.labels.items())

    # Receivers index by the sorted label set; sort on the UTF-8 bytes
    labels.sort(key=lambda label: label.name.encode("utf-8"))
    return labels


def assemble(observations: Sequence[Observation], identity: Identity) -> List[TimeSeries]:
    """
    Convert observations into time series without samples.

    Samples are attached later, once timestamps have been resolved.

    Raises:
        ValidationError: on an empty name, a reserved or invalid label,
            or two observations describing the same series.
    """
    if not identity.job or not identity.instance:
        raise ValidationError("Identity labels 'job' and 'instance' must not be empty")

    seen: Set[Tuple[Tuple[str, str], ...]] = set()
    series: List[TimeSeries] = []

    for observation in observations:
        labels = build_labels(observation, identity)

        key = tuple((label.name, label.value) for label in labels)
        if key in seen:
            raise ValidationError(
                f"Duplicate series {observation.name}{{{observation.label_key()}}}"
            )
        seen.add(key)

        series.append(TimeSeries(labels=labels))

    logger.debug(f"Assembled {len(series)} series for job={identity.job}")
    return series
