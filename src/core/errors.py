"""Error taxonomy shared by the core and adapters.

Adapters translate integration-specific failures into these types so the
core can decide between retrying, transitioning state or giving up.
"""

from __future__ import annotations

from typing import Optional

RATE_LIMIT_CODE = 420
SEE_OTHER_CODE = 303
PASSWORD_NEEDED = "SESSION_PASSWORD_NEEDED"


class RelayError(Exception):
    """Base class for every error raised by telerelay."""


class TransientNetworkError(RelayError):
    """Connection dropped, timed out or otherwise failed below the RPC layer."""


class RpcError(RelayError):
    """Error reported by the platform for a single call."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message

    @property
    def suffix(self) -> Optional[int]:
        """Trailing integer token of the message (``FLOOD_WAIT_30`` -> 30)."""

        token = self.message.rsplit("_", 1)[-1]
        return int(token) if token.isdigit() else None

    @classmethod
    def from_platform(cls, code: int, message: str) -> "RpcError":
        """Build the most specific error type for a platform code/message."""

        if code == RATE_LIMIT_CODE:
            return RateLimitedError(code, message)
        if code == SEE_OTHER_CODE:
            return DatacenterRedirectError(code, message)
        if message == PASSWORD_NEEDED:
            return AuthChallengeRequired(code, message)
        return cls(code, message)


class RateLimitedError(RpcError):
    """Too many requests; the message usually carries the wait in seconds."""


class DatacenterRedirectError(RpcError):
    """The account lives on another datacenter (``PHONE_MIGRATE_<dc>``)."""

    @property
    def dc_id(self) -> int:
        dc_id = self.suffix
        if dc_id is None:
            raise ValueError(f"Redirect without datacenter id: {self.message}")
        return dc_id


class AuthChallengeRequired(RpcError):
    """The account has a cloud password; the login needs the password step."""


class InvalidAuthTransition(RelayError):
    """An auth operation was called from a state that does not allow it."""


class SrpError(RelayError):
    """Password challenge parameters sent by the server are unusable."""


class PersistenceError(RelayError):
    """Any storage failure other than a natural-key conflict."""


class PersistenceConflict(PersistenceError):
    """The record already exists; appends are idempotent so this is benign."""


class SelectionInvalid(RelayError):
    """The operator did not pick a valid group."""


class NoGroupsFound(RelayError):
    """The account has no channels or groups to pick from."""


class RetryExhausted(RelayError):
    """Recovery gave up after too many consecutive failures."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Giving up after {attempts} attempts: {last_error!r}")
        self.attempts = attempts
        self.last_error = last_error
