"""
Exceptions raised at the API boundary. The engine itself reports business
rejections as return values.
"""


class DKASimError(Exception):
    """Base class for simulator errors."""


class NotFoundError(DKASimError):
    """A referenced entity does not exist (client/state desync)."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__("Session", session_id)


class ConfigNotFoundError(NotFoundError):
    def __init__(self, config_id: str):
        super().__init__("Clinical config", config_id)
