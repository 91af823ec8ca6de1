"""Snappy block compression of encoded write requests."""
import logging

import snappy

from remotepush.errors import EncodingError

logger = logging.getLogger(__name__)

# Remote write uses the block format, not the framed stream format
CONTENT_ENCODING = "snappy"


def compress(payload: bytes) -> bytes:
    """Compress a whole buffer in the snappy block format."""
    compressed = snappy.compress(payload)
    logger.debug(f"Compressed {len(payload)} bytes to {len(compressed)} bytes")
    return compressed


def decompress(compressed: bytes) -> bytes:
    """Inverse of compress()."""
    try:
        return snappy.decompress(compressed)
    except Exception as e:
        # python-snappy raises different types depending on the backend
        raise EncodingError(f"Invalid snappy block: {e}") from e
