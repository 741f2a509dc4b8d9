"""Errors raised while talking to the router or waiting for it to recover."""


class RouterError(Exception):
    """Base class for every failure surfaced to the user as a failed reboot."""


class InvalidHost(RouterError):
    def __init__(self, host: str = ''):
        super().__init__(f"Invalid router host: {host!r}" if host else "Invalid router host.")
        self.host = host


class LoginTokenNotFound(RouterError):
    def __init__(self):
        super().__init__("Failed to extract login session key.")


class AuthTokenNotFound(RouterError):
    def __init__(self):
        super().__init__("Failed to extract authenticated session key.")


class TransportFailure(RouterError):
    def __init__(self, detail: str):
        super().__init__(f"Router request failed: {detail}")
        self.detail = detail


class RebootRejected(RouterError):
    """The reboot POST came back with the login form (session was not authenticated)."""

    def __init__(self, detail: str):
        super().__init__(f"Reboot rejected (got login page). head={detail}")
        self.detail = detail


class MonitorTimeout(RouterError):
    def __init__(self, seconds: float):
        super().__init__(f"Timeout waiting for router/WAN to return after {seconds:.0f}s")
        self.seconds = seconds
