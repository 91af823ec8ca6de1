"""Label and metric name rules shared by the assembler and the sources."""
import re
from typing import Dict, Iterable

METRIC_NAME_LABEL = "__name__"
JOB_LABEL = "job"
INSTANCE_LABEL = "instance"

# Labels injected by the assembler; callers may never supply them.
RESERVED_LABELS = frozenset({METRIC_NAME_LABEL, JOB_LABEL, INSTANCE_LABEL})

_LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')
_METRIC_NAME_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$')
_INVALID_CHARS_RE = re.compile(r'[^a-zA-Z0-9_:]+')


def is_valid_label_name(name: str) -> bool:
    """Label names must match [a-zA-Z_][a-zA-Z0-9_]*."""
    return bool(_LABEL_NAME_RE.match(name))


def is_valid_metric_name(name: str) -> bool:
    """Metric names must match [a-zA-Z_:][a-zA-Z0-9_:]*."""
    return bool(_METRIC_NAME_RE.match(name))


def invalid_label_names(labels: Dict[str, str]) -> Iterable[str]:
    """Yield label names that are not Prometheus-safe."""
    for name in labels.keys():
        if not is_valid_label_name(name):
            yield name


def sanitize_metric_name(raw: str) -> str:
    """
    Turn an arbitrary key into a valid metric name.

    Runs of invalid characters collapse into a single underscore, camelCase
    is split, and a leading digit gets an underscore prefix.

    >>> sanitize_metric_name("dailyActivity.messageCount")
    'daily_activity_message_count'
    """
    name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', raw)
    name = _INVALID_CHARS_RE.sub("_", name).strip("_").lower()
    if not name:
        return "_"
    if name[0].isdigit():
        name = f"_{name}"
    return name
