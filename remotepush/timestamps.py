"""Timestamp resolution for pushed samples."""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from remotepush.series import Observation

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

DEFAULT_FRESHNESS_WINDOW_S = 3600


def to_millis(instant: datetime) -> int:
    """Milliseconds since epoch. Naive datetimes are taken as local time."""
    if instant.tzinfo is None:
        instant = instant.astimezone()
    return (instant - EPOCH) // _ONE_MS


def from_epoch_seconds(seconds: float) -> datetime:
    """Aware UTC datetime from a POSIX timestamp such as a file mtime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_fresh(source_ms: int, collection_ms: int, window_ms: int) -> bool:
    """True if the source instant is no older than the window and not in the future."""
    age = collection_ms - source_ms
    return 0 <= age <= window_ms


def resolve_batch_timestamp(
    collection_ms: int,
    source_ms: Optional[int] = None,
    window_ms: int = DEFAULT_FRESHNESS_WINDOW_S * 1000
) -> int:
    """
    Pick the timestamp shared by every observation of one batch.

    The source artifact's own instant is kept while it is inside the
    freshness window; otherwise the collection instant is used, since
    receivers drop samples that are too old.
    """
    if source_ms is None:
        return collection_ms

    if is_fresh(source_ms, collection_ms, window_ms):
        return source_ms

    logger.info(
        f"Source instant is {(collection_ms - source_ms) / 1000:.0f}s from collection "
        f"time (window {window_ms / 1000:.0f}s), using collection time"
    )
    return collection_ms


def resolve(
    observation: Observation,
    collection_ms: int,
    source_ms: Optional[int] = None,
    window_ms: int = DEFAULT_FRESHNESS_WINDOW_S * 1000
) -> int:
    """Resolve the sample timestamp (ms) for one observation."""
    if observation.timestamp is not None:
        return to_millis(observation.timestamp)
    return resolve_batch_timestamp(collection_ms, source_ms, window_ms)
