"""Quality scoring for fetched payloads and fetch rounds.

Two scores live here:

* a per-payload score (0-100) stored next to each cache entry, lower when an
  adapter degraded and returned fewer fields than expected;
* a weighted-presence score (0-100) over a set of data-kinds, used both for
  a single fetch round and for the aggregate context quality.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from intelgate.domain import DataKind, SourceResult


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict, tuple, set)):
        return len(value) > 0
    return True


def score_payload(value: Mapping[str, Any] | None, expected_fields: Iterable[str] = ()) -> int:
    """Score a successful payload by the share of expected fields it carries.

    A payload-reported ``data_quality`` (0-100) caps the result. Any
    successful payload scores at least 1 so it is distinguishable from absent.
    """
    if value is None:
        return 0
    expected = list(expected_fields)
    if expected:
        present = sum(1 for f in expected if _has_value(value.get(f)))
        score = round(100 * present / len(expected))
    else:
        score = 100 if value else 1

    reported = value.get("data_quality")
    if isinstance(reported, (int, float)) and not isinstance(reported, bool):
        score = min(score, int(round(reported)))
    return max(1, min(100, score))


def weighted_presence(
    present: Iterable[DataKind],
    weights: Mapping[DataKind, int],
    expected: Iterable[DataKind] | None = None,
) -> int:
    """round(100 * sum(weights of present kinds) / sum(weights of expected kinds)).

    Kinds outside *expected* never count. Adding a present kind can only keep
    the score equal or raise it.
    """
    expected_set = list(expected) if expected is not None else list(weights)
    total = sum(max(0, weights.get(k, 0)) for k in expected_set)
    if total <= 0:
        return 0
    present_set = set(present)
    got = sum(max(0, weights.get(k, 0)) for k in expected_set if k in present_set)
    return int(round(100 * got / total))


def score_round(
    results: Iterable[SourceResult],
    weights: Mapping[DataKind, int],
) -> int:
    """Completeness score of one fetch round: weighted share of kinds that succeeded."""
    results = list(results)
    expected = [r.kind for r in results]
    succeeded = [r.kind for r in results if r.ok]
    return weighted_presence(succeeded, weights, expected)
