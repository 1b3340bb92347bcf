# errors.py
from typing import Optional


class BridgeError(Exception):
    """Base class for every expected failure. ``str(err)`` is the reason shown to callers."""


class ConfigError(BridgeError):
    pass


class SessionNotFound(BridgeError, LookupError):
    """The session store holds no credential (first run or after logout)."""

    def __init__(self, path=None):
        super().__init__(f"no stored session at {path}" if path else "no stored session")
        self.path = path


class PersistenceError(BridgeError):
    pass


class NotRunningError(BridgeError):
    def __init__(self):
        super().__init__("client is not running")


class NotAuthorizedError(BridgeError):
    def __init__(self, message: str = "not authorized"):
        super().__init__(message)


class NoPendingLoginError(BridgeError):
    def __init__(self):
        super().__init__("must request a code first (auth_send_code)")


class PasswordRequiredError(BridgeError):
    def __init__(self):
        super().__init__("2FA password required - please provide password parameter")


class SecondFactorRequired(BridgeError):
    """Raised by the capability when sign-in needs the account password."""

    def __init__(self):
        super().__init__("SESSION_PASSWORD_NEEDED")


class UnexpectedResponseError(BridgeError):
    def __init__(self, what: str):
        super().__init__(f"unexpected response type: {what}")


class RemoteCallError(BridgeError):
    """A remote failure wrapped with the operation that triggered it."""

    def __init__(self, context: str, cause: Optional[BaseException] = None):
        super().__init__(f"{context}: {cause}" if cause is not None else context)
        self.context = context
        self.cause = cause


class PeerNotFoundError(BridgeError, LookupError):
    def __init__(self, identifier: str, label: str = "chat"):
        super().__init__(f"{label} not found: {identifier}")
        self.identifier = identifier
        self.label = label


def needs_second_factor(err: BaseException) -> bool:
    """True when an error from the remote side means "send the 2FA password"."""
    if isinstance(err, SecondFactorRequired):
        return True
    return "SESSION_PASSWORD_NEEDED" in str(err)
