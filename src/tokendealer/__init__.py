from .dealer import AsyncTokenDealer, TokenDealer, mask_token
from .env import load_tokens_from_env
from .errors import AllTokensExhaustedError, TokenDealerError
from .headers import is_exhausted, parse_retry_after, reset_from_headers
from .policies import (
    AlwaysWait,
    FunctionalWait,
    MaxDelayWait,
    NeverWait,
    WaitPolicy,
    coerce_wait,
    select_index,
)
from .store import UsageStore, get_usage, usage_key
from .types import DealerConfig, Exhaustion, Failure, Selection, Success, UsageRecord

__all__ = [
    "TokenDealer",
    "AsyncTokenDealer",
    "DealerConfig",
    "UsageStore",
    "UsageRecord",
    "Selection",
    "Success",
    "Failure",
    "Exhaustion",
    "TokenDealerError",
    "AllTokensExhaustedError",
    "WaitPolicy",
    "NeverWait",
    "AlwaysWait",
    "MaxDelayWait",
    "FunctionalWait",
    "coerce_wait",
    "select_index",
    "get_usage",
    "usage_key",
    "load_tokens_from_env",
    "parse_retry_after",
    "reset_from_headers",
    "is_exhausted",
    "mask_token",
]
