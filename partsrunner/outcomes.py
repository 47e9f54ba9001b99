import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BestEffortOutcome:
    """Result of a side effect that is allowed to fail silently.

    Critical steps raise; only steps run through ``best_effort`` produce one
    of these, so callers and tests can see exactly which failures were
    tolerated.
    """

    label: str
    ok: bool
    value: Any = None
    error: Optional[Exception] = None


def best_effort(label: str, fn: Callable, *args, **kwargs) -> BestEffortOutcome:
    try:
        value = fn(*args, **kwargs)
    except Exception as exc:
        logger.warning("Best-effort step %s failed: %s", label, exc, exc_info=True)
        return BestEffortOutcome(label=label, ok=False, error=exc)
    return BestEffortOutcome(label=label, ok=True, value=value)
