import inspect
from collections.abc import Mapping, Sequence
from typing import Callable, Union

from .types import UsageRecord

# Defaults used when inspect.signature cannot determine argument counts
DEFAULT_WAIT_ARGC = 2  # wait_fn(token, delay)

# Wait predicates receive the token at 2+ args
WAIT_WITH_TOKEN_ARGC = 2


def _count_positional_args(fn, default: int) -> int:
    """Return count of positional params for fn; fall back to default on failure."""
    try:
        sig = inspect.signature(fn)
        return len(
            [
                p
                for p in sig.parameters.values()
                if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
            ]
        )
    except (TypeError, ValueError):
        return default


# ---------- selection ----------


def prefer(best: UsageRecord, candidate: UsageRecord) -> bool:
    """Return True if ``candidate`` should replace ``best``. Ties keep ``best``."""
    if best.exhausted and candidate.exhausted:
        return candidate.reset_at < best.reset_at
    if best.exhausted != candidate.exhausted:
        return best.exhausted
    return candidate.pending < best.pending


def select_index(tokens: Sequence[str], usage: Mapping[str, UsageRecord]) -> int:
    """Fold ``tokens`` left to right into the index of the best candidate.

    Non-exhausted tokens beat exhausted ones; among non-exhausted tokens the
    lowest pending count wins, among exhausted ones the earliest reset. The
    earlier position wins every tie.
    """
    if not tokens:
        raise ValueError("select_index requires at least one token")
    chosen = 0
    for idx in range(1, len(tokens)):
        if prefer(usage[tokens[chosen]], usage[tokens[idx]]):
            chosen = idx
    return chosen


# ---------- waiting ----------


class WaitPolicy:
    """Decides whether to sleep until ``token`` resets when every token is exhausted."""

    def should_wait(self, token: str, delay: float) -> bool:
        return False


class NeverWait(WaitPolicy):
    pass


class AlwaysWait(WaitPolicy):
    def should_wait(self, token: str, delay: float) -> bool:
        return True


class MaxDelayWait(WaitPolicy):
    def __init__(self, max_delay: float):
        if max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        self.max_delay = float(max_delay)

    def should_wait(self, token: str, delay: float) -> bool:
        return delay <= self.max_delay


class FunctionalWait(WaitPolicy):
    """Wrap a user-supplied predicate into a WaitPolicy.

    Accepted function signatures:
        - wait_fn(token, delay) -> bool
        - wait_fn(delay) -> bool
    """

    def __init__(self, wait_fn: Callable):
        self.wait_fn = wait_fn
        self._argc = _count_positional_args(wait_fn, DEFAULT_WAIT_ARGC)

    def should_wait(self, token: str, delay: float) -> bool:
        if self._argc >= WAIT_WITH_TOKEN_ARGC:
            return bool(self.wait_fn(token, delay))
        return bool(self.wait_fn(delay))


def coerce_wait(wait: Union[object, None]) -> WaitPolicy:
    """Turn None | bool | number | WaitPolicy | callable into a WaitPolicy.

    Accepted inputs:
      - None / False -> NeverWait
      - True         -> AlwaysWait
      - int / float  -> MaxDelayWait (wait only for delays up to that many seconds)
      - WaitPolicy instance (returned as-is)
      - callable: predicate (token, delay) or (delay), wrapped into FunctionalWait
    """
    if wait is None or wait is False:
        return NeverWait()
    if wait is True:
        return AlwaysWait()
    if isinstance(wait, WaitPolicy):
        return wait
    if isinstance(wait, (int, float)):
        return MaxDelayWait(wait)
    if callable(wait):
        return FunctionalWait(wait)
    raise TypeError("wait must be None, a bool, a number of seconds, WaitPolicy, or a callable")
