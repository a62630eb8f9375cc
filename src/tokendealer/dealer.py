import asyncio
import dataclasses
import inspect
import logging
import time
from collections.abc import Sequence
from typing import Any, Callable, Union

from .errors import AllTokensExhaustedError
from .policies import WaitPolicy, coerce_wait, select_index
from .store import UsageStore, get_usage
from .types import (
    DEFAULT_GROUP,
    DEFAULT_MAX_ENTRIES,
    DEFAULT_RESET_SECONDS,
    DealerConfig,
    Failure,
    Outcome,
    Selection,
    Success,
    UsageRecord,
)

# Floor for exhaustion waits so a reset that is due right now does not spin
MIN_WAIT_SECONDS = 0.01
# Throttle "all tokens exhausted" sleep logs per group
SLEEP_NOTICE_INTERVAL = 5.0


def mask_token(token: Any) -> str:
    if token is None:
        return "<none>"
    token = str(token)
    if len(token) <= 8:  # noqa: PLR2004
        return "****"
    return f"****{token[-4:]}"


def _noop_exhaust(reset_at: Union[float, None] = None, retry: bool = False) -> None:
    pass


class _ExhaustSignal:
    """The exhaust(reset_at=None, retry=False) callable handed to one attempt."""

    def __init__(self, dealer: "_Dealer", record: UsageRecord):
        self._dealer = dealer
        self._record = record
        self.retry = False

    def __call__(self, reset_at: Union[float, None] = None, retry: bool = False) -> None:
        self.retry = bool(retry)
        self._dealer._mark_exhausted(self._record, reset_at)


def _unwrap(result: Any) -> Any:
    """Resolve a tokenless attempt: no bookkeeping, just the outcome."""
    if isinstance(result, Success):
        return result.value
    if isinstance(result, Failure):
        raise result.error
    return result


# ---------- Base dealer (shared logic; waiting handled by subclasses) ----------


class _Dealer:
    def __init__(
        self,
        store: Union[UsageStore, None] = None,
        config: Union[DealerConfig, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        """Initialize a dealer.

        Args:
            store (UsageStore | None): usage store; dealers passed the same store
                share exhaustion and pending state. A private store is created if None.
            config (DealerConfig | None): dealer configuration
            log_level (int | None): level for the "tokendealer" logger
            kwargs (used only when config is None):
            - group: str
            - wait: bool | float | callable | WaitPolicy
            - max_entries: int | None (size of the private store)
            - default_reset: float (seconds)
        """
        if config is None:
            config = DealerConfig(
                group=kwargs.get("group", DEFAULT_GROUP),
                wait=kwargs.get("wait", False),
                max_entries=kwargs.get("max_entries", DEFAULT_MAX_ENTRIES),
                default_reset=kwargs.get("default_reset", DEFAULT_RESET_SECONDS),
            )
        self.config = config
        self.store = store if store is not None else UsageStore(config.max_entries)
        self._wait_policy = coerce_wait(config.wait)
        self._logger = logging.getLogger("tokendealer")
        self._sleep_notice: dict[str, float] = {}
        if log_level is not None:
            self._logger.setLevel(log_level)

    def _now(self) -> float:
        return time.time()

    def _resolve(self, group: Union[str, None], wait: Any) -> tuple[str, WaitPolicy]:
        group = self.config.group if group is None else group
        policy = self._wait_policy if wait is None else coerce_wait(wait)
        return group, policy

    # public API
    def get_usage(
        self, tokens: Sequence[str], group: Union[str, None] = None
    ) -> dict[str, UsageRecord]:
        group = self.config.group if group is None else group
        return get_usage(tokens, self.store, group, self._now())

    def select_token(self, tokens: Sequence[str], group: Union[str, None] = None) -> Selection:
        tokens = list(tokens)
        with self.store.lock:
            usage = self.get_usage(tokens, group)
            token = tokens[select_index(tokens, usage)]
            return Selection(token=token, record=usage[token], usage=usage)

    # --- bookkeeping around one attempt ---
    def _acquire(self, tokens: list[str], group: str) -> Selection:
        """Select a token and, unless it is exhausted, count it as pending."""
        with self.store.lock:
            selection = self.select_token(tokens, group)
            if not selection.record.exhausted:
                selection.record.pending += 1
            return selection

    def _release(self, record: UsageRecord) -> None:
        with self.store.lock:
            record.pending -= 1

    def _mark_exhausted(self, record: UsageRecord, reset_at: Union[float, None]) -> None:
        with self.store.lock:
            record.exhausted = True
            record.reset_at = (
                reset_at if reset_at is not None else self._now() + self.config.default_reset
            )

    def _settle(self, record: UsageRecord, signal: _ExhaustSignal, result: Any) -> Outcome:
        """Apply any reported exhaustion and normalize the attempt's result."""
        if isinstance(result, (Success, Failure)) and result.exhaustion is not None:
            self._mark_exhausted(record, result.exhaustion.reset_at)
        if isinstance(result, Failure):
            retry = result.retry or signal.retry
            if retry and not record.exhausted:
                # a retried token must be put aside or it would be dealt again
                self._mark_exhausted(record, None)
            return Failure(result.error, retry=retry)
        if isinstance(result, Success):
            return Success(result.value)
        return Success(result)

    def _snapshot(self, selection: Selection) -> dict[str, UsageRecord]:
        with self.store.lock:
            return {t: dataclasses.replace(r) for t, r in selection.usage.items()}

    def _exhausted_delay(
        self,
        selection: Selection,
        group: str,
        policy: WaitPolicy,
        errors: list[BaseException],
    ) -> float:
        """Seconds to sleep before re-selecting; raises if the policy declines to wait."""
        now = self._now()
        delay = selection.record.reset_at - now
        if not policy.should_wait(selection.token, delay):
            self._logger.warning(
                f"group={group} all {len(selection.usage)} tokens exhausted; "
                f"earliest reset in {delay:.2f}s, not waiting"
            )
            raise AllTokensExhaustedError(self._snapshot(selection), list(errors))
        delay = max(MIN_WAIT_SECONDS, delay)
        if self._sleep_notice.get(group, 0.0) <= now:
            self._logger.info(f"group={group} all tokens exhausted; sleeping ~{delay:.2f}s")
            # drop lapsed notices so dynamic groups do not accumulate
            self._sleep_notice = {g: t for g, t in self._sleep_notice.items() if t > now}
            self._sleep_notice[group] = now + SLEEP_NOTICE_INTERVAL
        return delay

    def _log_retry(self, group: str, token: str, error: BaseException, errors: list) -> None:
        self._logger.info(
            f"group={group} token={mask_token(token)} exhausted ({error!r}); "
            f"rotating after {len(errors)} failed attempt(s)"
        )


# ---------- Sync dealer ----------


class TokenDealer(_Dealer):
    """Deal tokens to plain (blocking) work functions.

    Safe to share between threads: every record update happens under the
    store's lock, and no lock is held while work runs or while waiting.
    """

    def deal(
        self,
        tokens: Union[Sequence[str], None],
        work: Callable[..., Any],
        group: Union[str, None] = None,
        wait: Any = None,
    ) -> Any:
        """Run ``work(token, exhaust)`` with the best available token.

        ``exhaust(reset_at=None, retry=False)`` marks the token exhausted until
        ``reset_at`` (default: now + config.default_reset). If the attempt then
        fails and ``retry`` was set, the failure is recorded and another token
        is dealt. ``work`` may also return Success/Failure outcomes.
        """
        if not tokens:
            return _unwrap(work(None, _noop_exhaust))
        tokens = list(tokens)
        group, policy = self._resolve(group, wait)
        errors: list[BaseException] = []
        while True:
            selection = self._acquire(tokens, group)
            if selection.record.exhausted:
                time.sleep(self._exhausted_delay(selection, group, policy, errors))
                continue
            signal = _ExhaustSignal(self, selection.record)
            try:
                self._logger.debug(
                    f"deal start group={group} token={mask_token(selection.token)} "
                    f"pending={selection.record.pending}"
                )
                result = work(selection.token, signal)
                if inspect.isawaitable(result):
                    if hasattr(result, "close"):
                        result.close()
                    raise TypeError("work returned an awaitable; use AsyncTokenDealer")
            except Exception as e:
                result = Failure(e)
            finally:
                self._release(selection.record)
            outcome = self._settle(selection.record, signal, result)
            self._logger.debug(
                f"deal done group={group} token={mask_token(selection.token)} "
                f"ok={isinstance(outcome, Success)} exhausted={selection.record.exhausted}"
            )
            if isinstance(outcome, Success):
                return outcome.value
            if not outcome.retry:
                raise outcome.error
            errors.append(outcome.error)
            self._log_retry(group, selection.token, outcome.error, errors)


# ---------- Async dealer ----------


class AsyncTokenDealer(_Dealer):
    """Deal tokens to work functions running on an asyncio event loop.

    ``work`` may be a coroutine function or a plain callable; an awaitable
    result is awaited. Concurrent deals sharing a store spread across tokens
    by pending count.
    """

    async def deal(
        self,
        tokens: Union[Sequence[str], None],
        work: Callable[..., Any],
        group: Union[str, None] = None,
        wait: Any = None,
    ) -> Any:
        if not tokens:
            result = work(None, _noop_exhaust)
            if inspect.isawaitable(result):
                result = await result
            return _unwrap(result)
        tokens = list(tokens)
        group, policy = self._resolve(group, wait)
        errors: list[BaseException] = []
        while True:
            selection = self._acquire(tokens, group)
            if selection.record.exhausted:
                await asyncio.sleep(self._exhausted_delay(selection, group, policy, errors))
                continue
            signal = _ExhaustSignal(self, selection.record)
            try:
                self._logger.debug(
                    f"deal start group={group} token={mask_token(selection.token)} "
                    f"pending={selection.record.pending}"
                )
                result = work(selection.token, signal)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                result = Failure(e)
            finally:
                self._release(selection.record)
            outcome = self._settle(selection.record, signal, result)
            self._logger.debug(
                f"deal done group={group} token={mask_token(selection.token)} "
                f"ok={isinstance(outcome, Success)} exhausted={selection.record.exhausted}"
            )
            if isinstance(outcome, Success):
                return outcome.value
            if not outcome.retry:
                raise outcome.error
            errors.append(outcome.error)
            self._log_retry(group, selection.token, outcome.error, errors)
