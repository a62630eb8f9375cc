from dataclasses import dataclass, field
from typing import Any, Union

# One hour, used when a token is exhausted without an explicit reset time
DEFAULT_RESET_SECONDS = 3600.0
DEFAULT_GROUP = "default"
DEFAULT_MAX_ENTRIES = 500


@dataclass
class UsageRecord:
    exhausted: bool = False
    # Epoch seconds; only meaningful while exhausted
    reset_at: float | None = None
    pending: int = 0

    def is_stale(self, now: float) -> bool:
        return self.exhausted and self.reset_at is not None and now >= self.reset_at


@dataclass(frozen=True)
class Exhaustion:
    reset_at: float | None = None


@dataclass(frozen=True)
class Success:
    value: Any = None
    exhaustion: Exhaustion | None = None


@dataclass(frozen=True)
class Failure:
    error: BaseException
    retry: bool = False
    exhaustion: Exhaustion | None = None


Outcome = Union[Success, Failure]


@dataclass(frozen=True)
class DealerConfig:
    group: str = DEFAULT_GROUP
    # bool | number | callable | WaitPolicy, see policies.coerce_wait
    wait: Any = False
    max_entries: int | None = DEFAULT_MAX_ENTRIES
    default_reset: float = DEFAULT_RESET_SECONDS


@dataclass(frozen=True)
class Selection:
    token: str
    record: UsageRecord
    usage: dict[str, UsageRecord] = field(default_factory=dict)
