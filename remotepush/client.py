"""The remote-write push pipeline shared by every metric source."""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional
import logging
import time

from remotepush.compression import compress
from remotepush.config import RemoteWriteConfig
from remotepush.series import (
    Identity, Observation, ObservationBatch, Sample, TimeSeries, WriteRequest, assemble,
)
from remotepush.timestamps import resolve, resolve_batch_timestamp, to_millis, utc_now
from remotepush.transport import RemoteWriteTransport
from remotepush.wire import encode

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    """Outcome of a successful push."""
    series_count: int
    payload_bytes: int
    compressed_bytes: int
    status_code: Optional[int] = None
    dry_run: bool = False
    duration_s: float = 0.0

    @property
    def empty(self) -> bool:
        return self.series_count == 0

    def summary(self) -> str:
        verb = "would push" if self.dry_run else "pushed"
        if self.empty:
            return f"{verb} 0 metrics (empty request)"
        return f"{verb} {self.series_count} metrics"


class RemoteWriteClient:
    """
    One-shot remote-write client.

    Turns batches of observations into a single WriteRequest and sends it:
    assemble -> resolve timestamps -> encode -> compress -> send. No retry.
    """

    def __init__(
        self,
        config: RemoteWriteConfig,
        transport: Optional[RemoteWriteTransport] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.config = config
        self.identity = Identity(job=config.job, instance=config.instance)
        self.window_ms = config.freshness_window_s * 1000
        self.clock = clock
        self._transport = transport

    @property
    def transport(self) -> RemoteWriteTransport:
        # Created lazily so dry runs never touch credentials or sockets
        if self._transport is None:
            self._transport = RemoteWriteTransport(self.config)
        return self._transport

    def build_request(
        self,
        batches: Iterable[ObservationBatch],
        collection_instant: Optional[datetime] = None
    ) -> WriteRequest:
        """
        Assemble every batch into one WriteRequest.

        Validation covers the whole request before anything is returned, so
        a single bad observation aborts the push.
        """
        batches = list(batches)
        collection_ms = to_millis(collection_instant or self.clock())

        all_observations: List[Observation] = [o for b in batches for o in b.observations]
        series = assemble(all_observations, self.identity)

        timeseries: List[TimeSeries] = []
        position = 0
        for batch in batches:
            source_ms = to_millis(batch.source_instant) if batch.source_instant else None
            batch_ms = resolve_batch_timestamp(collection_ms, source_ms, self.window_ms)

            for observation in batch.observations:
                ts = series[position]
                position += 1

                ts.samples = [Sample(observation.value, resolve(observation, batch_ms))]
                timeseries.append(ts)

        return WriteRequest(timeseries=timeseries)

    def push(
        self,
        batches: Iterable[ObservationBatch],
        dry_run: bool = False,
        collection_instant: Optional[datetime] = None
    ) -> PushResult:
        """
        Push all batches as a single WriteRequest.

        Raises:
            ValidationError: malformed observation, before any network activity.
            EncodingError: the request could not be serialized.
            TransportError: network failure or non-2xx response.
        """
        start = time.time()

        request = self.build_request(batches, collection_instant)
        payload = encode(request)
        body = compress(payload)

        result = PushResult(
            series_count=len(request),
            payload_bytes=len(payload),
            compressed_bytes=len(body),
            dry_run=dry_run,
        )

        if dry_run:
            logger.info(f"Dry run: {result.summary()} ({len(body)} bytes), nothing sent")
            return result

        result.status_code = self.transport.send(body)
        result.duration_s = time.time() - start

        if result.empty:
            logger.info(f"pushed 0 metrics to {self.config.url} (empty request)")
        else:
            logger.info(
                f"pushed {result.series_count} metrics to {self.config.url} "
                f"({len(body)} bytes, {result.duration_s:.3f}s)"
            )
        return result

    def close(self):
        """Release the HTTP session, if one was opened."""
        if self._transport is not None:
            self._transport.close()

    def push_observations(
        self,
        observations: Iterable[Observation],
        source_instant: Optional[datetime] = None,
        dry_run: bool = False
    ) -> PushResult:
        """Push a single group of observations."""
        batch = ObservationBatch(list(observations), source_instant=source_instant)
        return self.push([batch], dry_run=dry_run)
