from .types import UsageRecord


class TokenDealerError(RuntimeError):
    """Base class for errors raised by tokendealer itself."""


class AllTokensExhaustedError(TokenDealerError):
    """Every candidate token is exhausted and waiting was declined.

    ``usage`` is a snapshot of each token's record at the time of failure and
    ``errors`` lists, in order, the failures of the attempts that were retried
    on the way here.
    """

    code = "EALLTOKENSEXHAUSTED"

    def __init__(
        self,
        usage: dict[str, UsageRecord],
        errors: list[BaseException],
        message: str = "All tokens are exhausted",
    ):
        super().__init__(message)
        self.usage = usage
        self.errors = errors
