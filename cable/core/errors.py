# cable/core/errors.py
from __future__ import annotations


class CableError(Exception):
    """
    Base class for all expected operational errors in cable.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, logs, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (no network access yet)
# ---------------------------------------------------------------------------

class CableConfigError(CableError):
    """
    Connection configuration is invalid.

    Examples:
      - profile file missing or not valid YAML
      - unknown profile name
      - wrong type for an option (e.g. liveness_timeout_s: "six")
      - unsupported URL scheme
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Connection lifecycle errors
# ---------------------------------------------------------------------------

class CableConnectError(CableError):
    """
    The cable connection could not be established.

    Raised only by helpers that need a synchronous answer (the CLI waiting for
    the welcome frame). The client itself reports this through on_cannot_connect.
    """
    code = "connect_error"


class CableClosedError(CableError):
    """
    An operation was attempted on a client that has already been torn down.

    A client is single-shot: after disconnect(), a transport failure or a
    liveness timeout the caller must build a new one.
    """
    code = "closed"
