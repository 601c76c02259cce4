from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .normalize import parse_keywords
from .types import ProviderKind, ProviderTarget, Role


@dataclass(frozen=True)
class ProviderDefaults:
    endpoint: str
    model: str
    credential_key: Optional[str] = None
    endpoint_key: Optional[str] = None


PROVIDER_DEFAULTS: dict[str, ProviderDefaults] = {
    ProviderKind.GEMINI.value: ProviderDefaults(
        endpoint="https://generativelanguage.googleapis.com/v1beta",
        model="gemini-1.5-pro",
        credential_key="GEMINI_API_KEY",
    ),
    ProviderKind.OPENROUTER.value: ProviderDefaults(
        endpoint="https://openrouter.ai/api/v1",
        model="openrouter/auto",
        credential_key="OPENROUTER_API_KEY",
    ),
    ProviderKind.OLLAMA.value: ProviderDefaults(
        endpoint="http://localhost:11434",
        model="llama3",
        endpoint_key="OLLAMA_URL",
    ),
}

ROLE_DEFAULT_PROVIDERS = {
    Role.DIRECTOR.value: ProviderKind.GEMINI.value,
    Role.WORKHORSE.value: ProviderKind.OLLAMA.value,
}

CONFIG_KEYS = (
    "AI_DIRECTOR_PROVIDER",
    "AI_DIRECTOR_KEY",
    "AI_DIRECTOR_URL",
    "AI_DIRECTOR_MODEL",
    "AI_WORKHORSE_PROVIDER",
    "AI_WORKHORSE_KEY",
    "AI_WORKHORSE_URL",
    "AI_WORKHORSE_MODEL",
    "GEMINI_API_KEY",
    "OPENROUTER_API_KEY",
    "OLLAMA_URL",
    "AI_TIMEOUT_SECONDS",
    "AI_ESCALATION_KEYWORDS",
    "OPENROUTER_REFERER",
    "OPENROUTER_TITLE",
)

DEFAULT_TIMEOUT_SECONDS = 20.0


def _clean(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_target(role: str, values: Mapping[str, object]) -> ProviderTarget:
    prefix = f"AI_{role.upper()}_"
    provider = (_clean(values.get(prefix + "PROVIDER")) or ROLE_DEFAULT_PROVIDERS[role]).lower()
    defaults = PROVIDER_DEFAULTS.get(provider)

    credential = _clean(values.get(prefix + "KEY"))
    endpoint = _clean(values.get(prefix + "URL"))
    model = _clean(values.get(prefix + "MODEL"))
    if defaults is not None:
        if credential is None and defaults.credential_key:
            credential = _clean(values.get(defaults.credential_key))
        if endpoint is None and defaults.endpoint_key:
            endpoint = _clean(values.get(defaults.endpoint_key))
        endpoint = endpoint or defaults.endpoint
        model = model or defaults.model

    headers: list[tuple[str, str]] = []
    if provider == ProviderKind.OPENROUTER.value:
        referer = _clean(values.get("OPENROUTER_REFERER"))
        title = _clean(values.get("OPENROUTER_TITLE"))
        if referer:
            headers.append(("HTTP-Referer", referer))
        if title:
            headers.append(("X-Title", title))

    return ProviderTarget(
        provider=provider,
        endpoint=(endpoint or "").rstrip("/"),
        model=model or "",
        credential=credential,
        headers=tuple(headers),
    )


@dataclass(frozen=True)
class RouterConfig:
    director: ProviderTarget
    workhorse: ProviderTarget
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    escalation_keywords: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, values: Mapping[str, object] | None = None) -> "RouterConfig":
        values = values or {}
        raw_timeout = _clean(values.get("AI_TIMEOUT_SECONDS"))
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT_SECONDS
        except ValueError:
            timeout = DEFAULT_TIMEOUT_SECONDS
        if timeout <= 0:
            timeout = DEFAULT_TIMEOUT_SECONDS
        return cls(
            director=build_target(Role.DIRECTOR.value, values),
            workhorse=build_target(Role.WORKHORSE.value, values),
            timeout_seconds=timeout,
            escalation_keywords=parse_keywords(_clean(values.get("AI_ESCALATION_KEYWORDS"))),
        )

    def target_for(self, role: Role | str) -> ProviderTarget:
        key = role.value if isinstance(role, Role) else str(role).strip().lower()
        if key == Role.DIRECTOR.value:
            return self.director
        if key == Role.WORKHORSE.value:
            return self.workhorse
        raise ValueError(f"Unknown role: {role}")


@dataclass(frozen=True)
class MissionControlConfig:
    tick_interval_seconds: float = 1.0
    preflight_interval_seconds: float = 30.0
    default_duration_minutes: int = 30
    log_buffer_size: int = 1000


def load_env_settings(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    env = os.environ if environ is None else environ
    return {key: env[key] for key in CONFIG_KEYS if env.get(key)}
