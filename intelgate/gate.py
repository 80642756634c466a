"""Analysis gate."""

from __future__ import annotations


def gate(quality: int, threshold: int) -> bool:
    """True when *quality* is high enough to spend an analysis run on.

    Depends on nothing but its two arguments, so the orchestrator and the
    worker's re-check make the same decision for the same bundle.
    """
    return quality >= threshold
