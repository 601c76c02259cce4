from __future__ import annotations

import logging
from typing import Mapping, Optional

from .config import PROVIDER_DEFAULTS, RouterConfig
from .errors import MissionEngineError, ProviderFailure, Unroutable, UnknownProvider
from .ports import HttpTransport
from .providers import ProviderAdapter, default_adapters
from .transport import UrllibTransport
from .types import ProviderTarget, Role, VerifyResult

logger = logging.getLogger(__name__)


class ProviderRouter:
    """Maps logical roles onto configured generative backends.

    The router holds no per-call state. Each call reads the current
    ``RouterConfig`` exactly once, so a concurrent ``update_config`` is seen
    either entirely or not at all.
    """

    CANARY_PROMPT = 'Say "Verified"'
    CANARY_SYSTEM = "System Check"

    def __init__(
        self,
        config: RouterConfig | None = None,
        transport: HttpTransport | None = None,
        adapters: Mapping[str, ProviderAdapter] | None = None,
    ):
        self._config = config or RouterConfig.from_mapping({})
        self._transport = transport or UrllibTransport()
        self._adapters = dict(adapters) if adapters is not None else default_adapters(self._transport)

    @property
    def config(self) -> RouterConfig:
        return self._config

    def update_config(self, values: Mapping[str, object]) -> RouterConfig:
        return self.replace_config(RouterConfig.from_mapping(values))

    def replace_config(self, config: RouterConfig) -> RouterConfig:
        self._config = config
        logger.info(
            "Provider routing updated: director=%s/%s workhorse=%s/%s",
            config.director.provider,
            config.director.model,
            config.workhorse.provider,
            config.workhorse.model,
        )
        return config

    def target_for(self, role: Role | str) -> ProviderTarget:
        return self._config.target_for(role)

    def _adapter_for(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(str(provider or "").strip().lower())
        if adapter is None:
            raise UnknownProvider(provider)
        return adapter

    def _resolve(self, role: Role | str) -> tuple[ProviderTarget, ProviderAdapter, float]:
        config = self._config
        target = config.target_for(role)
        adapter = self._adapter_for(target.provider)
        if adapter.requires_credential and not target.credential:
            role_name = role.value if isinstance(role, Role) else str(role)
            raise Unroutable(role_name, target.provider)
        return target, adapter, config.timeout_seconds

    async def generate(self, role: Role | str, prompt: str, system_instruction: str = "") -> str:
        target, adapter, timeout = self._resolve(role)
        try:
            return await adapter.generate(target, prompt, system_instruction, timeout=timeout)
        except ProviderFailure as exc:
            logger.debug("Generation failed for role=%s provider=%s: %s", role, target.provider, exc.cause)
            raise

    async def verify(self, role: Role | str) -> VerifyResult:
        try:
            message = await self.generate(role, self.CANARY_PROMPT, self.CANARY_SYSTEM)
        except ProviderFailure as exc:
            return VerifyResult(ok=False, cause=exc.cause)
        except MissionEngineError as exc:
            return VerifyResult(ok=False, cause=str(exc))
        except Exception as exc:
            logger.exception("Unexpected failure verifying role=%s", role)
            return VerifyResult(ok=False, cause=str(exc))
        return VerifyResult(ok=True, message=message)

    async def list_models(
        self,
        provider: str,
        credential: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> list[str]:
        kind = str(provider or "").strip().lower()
        adapter = self._adapter_for(kind)
        if adapter.requires_credential and not credential:
            raise Unroutable("catalog", kind)
        defaults = PROVIDER_DEFAULTS.get(kind)
        base = (endpoint or (defaults.endpoint if defaults else "")).rstrip("/")
        return await adapter.list_models(credential, base, timeout=self._config.timeout_seconds)

    async def embed(self, text: str) -> Optional[list[float]]:
        config = self._config
        target = config.director
        adapter = self._adapters.get(target.provider)
        if adapter is None or not adapter.supports_embeddings:
            return None
        if adapter.requires_credential and not target.credential:
            raise Unroutable(Role.DIRECTOR.value, target.provider)
        return await adapter.embed(target, text, timeout=config.timeout_seconds)
