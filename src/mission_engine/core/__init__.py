from .commands import CommandEngine, KeywordEscalation, WorkhorseOnly, classify
from .config import MissionControlConfig, RouterConfig, build_target, load_env_settings
from .errors import (
    InvalidMissionRequest,
    InvalidWorldDocument,
    MissionConflict,
    MissionEngineError,
    NothingToAbort,
    NotReady,
    ProviderFailure,
    StorageUnavailable,
    UnknownProvider,
    Unroutable,
)
from .logbuffer import LogBuffer
from .ports import (
    EscalationPolicy,
    HttpResponse,
    HttpTransport,
    RoomGraphPort,
    ScenarioGeneratorPort,
    SessionRecordPort,
    StorageProbePort,
    TextGenerationPort,
)
from .preflight import PreflightMonitor
from .providers import GeminiAdapter, OllamaAdapter, OpenRouterAdapter, ProviderAdapter, default_adapters
from .router import ProviderRouter
from .scheduler import SessionScheduler
from .tasks import PeriodicTask
from .transport import UrllibTransport
from .types import (
    Classification,
    CommandResult,
    HealthStatus,
    MissionSession,
    MissionStatus,
    PlayerView,
    ProviderKind,
    ProviderTarget,
    Role,
    SystemMode,
    VerifyResult,
)
from .world import validate_world_document

__all__ = [
    "CommandEngine",
    "KeywordEscalation",
    "WorkhorseOnly",
    "classify",
    "MissionControlConfig",
    "RouterConfig",
    "build_target",
    "load_env_settings",
    "MissionEngineError",
    "Unroutable",
    "UnknownProvider",
    "ProviderFailure",
    "MissionConflict",
    "NotReady",
    "NothingToAbort",
    "InvalidMissionRequest",
    "StorageUnavailable",
    "InvalidWorldDocument",
    "LogBuffer",
    "EscalationPolicy",
    "HttpResponse",
    "HttpTransport",
    "RoomGraphPort",
    "ScenarioGeneratorPort",
    "SessionRecordPort",
    "StorageProbePort",
    "TextGenerationPort",
    "PreflightMonitor",
    "ProviderAdapter",
    "GeminiAdapter",
    "OpenRouterAdapter",
    "OllamaAdapter",
    "default_adapters",
    "ProviderRouter",
    "SessionScheduler",
    "PeriodicTask",
    "UrllibTransport",
    "Classification",
    "CommandResult",
    "HealthStatus",
    "MissionSession",
    "MissionStatus",
    "PlayerView",
    "ProviderKind",
    "ProviderTarget",
    "Role",
    "SystemMode",
    "VerifyResult",
    "validate_world_document",
]
