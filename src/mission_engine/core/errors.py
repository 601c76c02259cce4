from __future__ import annotations


class MissionEngineError(Exception):
    pass


class Unroutable(MissionEngineError):
    """A provider target is missing a required credential."""

    def __init__(self, role: str, provider: str, reason: str = "credential_missing"):
        super().__init__(f"{role} ({provider}) is unroutable: {reason}")
        self.role = role
        self.provider = provider
        self.reason = reason


class UnknownProvider(MissionEngineError):
    def __init__(self, provider: str):
        super().__init__(f"Unknown provider: {provider}")
        self.provider = provider


class ProviderFailure(MissionEngineError):
    def __init__(self, provider: str, cause: str):
        super().__init__(f"{provider}: {cause}")
        self.provider = provider
        self.cause = cause


class MissionConflict(MissionEngineError):
    pass


class NotReady(MissionEngineError):
    pass


class NothingToAbort(MissionEngineError):
    pass


class InvalidMissionRequest(MissionEngineError, ValueError):
    pass


class StorageUnavailable(MissionEngineError):
    pass


class InvalidWorldDocument(MissionEngineError, ValueError):
    pass
