from .core.commands import CommandEngine
from .core.config import MissionControlConfig, RouterConfig, load_env_settings
from .core.errors import (
    InvalidMissionRequest,
    MissionConflict,
    MissionEngineError,
    NothingToAbort,
    NotReady,
    ProviderFailure,
    StorageUnavailable,
    UnknownProvider,
    Unroutable,
)
from .core.preflight import PreflightMonitor
from .core.router import ProviderRouter
from .core.scheduler import SessionScheduler
from .core.types import MissionStatus, Role, SystemMode
from .persistence.gateway import StorageGateway
from .service import MissionControl

__all__ = [
    "MissionControl",
    "StorageGateway",
    "SessionScheduler",
    "PreflightMonitor",
    "ProviderRouter",
    "CommandEngine",
    "MissionControlConfig",
    "RouterConfig",
    "load_env_settings",
    "MissionStatus",
    "Role",
    "SystemMode",
    "MissionEngineError",
    "Unroutable",
    "UnknownProvider",
    "ProviderFailure",
    "MissionConflict",
    "NotReady",
    "NothingToAbort",
    "InvalidMissionRequest",
    "StorageUnavailable",
]
