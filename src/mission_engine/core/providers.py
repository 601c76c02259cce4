from __future__ import annotations

import asyncio
import http.client
from typing import Any, Callable, Optional
from urllib import parse as urllib_parse

from .errors import ProviderFailure
from .ports import HttpResponse, HttpTransport
from .types import ProviderKind, ProviderTarget


def _error_message(response: HttpResponse) -> str:
    body = response.body
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err.strip():
            return err.strip()
    return response.reason or f"HTTP {response.status}"


class ProviderAdapter:
    """Translates one provider's wire format into plain text results."""

    kind: str = ""
    requires_credential: bool = True
    supports_embeddings: bool = False

    def __init__(self, transport: HttpTransport):
        self._transport = transport

    async def generate(
        self,
        target: ProviderTarget,
        prompt: str,
        system_instruction: str,
        *,
        timeout: float,
    ) -> str:
        raise NotImplementedError

    async def list_models(
        self,
        credential: Optional[str],
        endpoint: str,
        *,
        timeout: float,
    ) -> list[str]:
        raise NotImplementedError

    async def embed(self, target: ProviderTarget, text: str, *, timeout: float) -> Optional[list[float]]:
        return None

    async def _send(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await asyncio.wait_for(
                self._transport.request(method, url, headers=headers, payload=payload, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ProviderFailure(self.kind, f"timed out after {timeout:g}s") from None
        except OSError as exc:
            raise ProviderFailure(self.kind, f"transport error: {exc}") from exc
        except (http.client.HTTPException, ValueError) as exc:
            raise ProviderFailure(self.kind, f"transport error: {exc}") from exc
        if not response.ok:
            raise ProviderFailure(self.kind, _error_message(response))
        return response.body

    def _extract(self, body: Any, getter: Callable[[Any], Any]) -> Any:
        try:
            value = getter(body)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderFailure(self.kind, f"malformed response: missing {exc!s}") from exc
        if value is None:
            raise ProviderFailure(self.kind, "malformed response: empty answer")
        return value


def _flatten_prompt(system_instruction: str, prompt: str) -> str:
    return f"{system_instruction}\n\n{prompt}"


class GeminiAdapter(ProviderAdapter):
    kind = ProviderKind.GEMINI.value
    requires_credential = True
    supports_embeddings = True

    EMBEDDING_MODEL = "models/embedding-001"

    @staticmethod
    def _model_path(model: str) -> str:
        return model if "/" in model else f"models/{model}"

    @staticmethod
    def _key_query(credential: Optional[str]) -> str:
        return urllib_parse.urlencode({"key": credential or ""})

    async def generate(self, target, prompt, system_instruction, *, timeout):
        url = f"{target.endpoint}/{self._model_path(target.model)}:generateContent?{self._key_query(target.credential)}"
        payload = {"contents": [{"parts": [{"text": _flatten_prompt(system_instruction, prompt)}]}]}
        body = await self._send("POST", url, payload=payload, timeout=timeout)
        return str(self._extract(body, lambda b: b["candidates"][0]["content"]["parts"][0]["text"]))

    async def list_models(self, credential, endpoint, *, timeout):
        url = f"{endpoint}/models?{self._key_query(credential)}"
        body = await self._send("GET", url, timeout=timeout)
        models = self._extract(body, lambda b: b["models"])
        out: list[str] = []
        for model in models:
            if not isinstance(model, dict):
                continue
            if "generateContent" not in (model.get("supportedGenerationMethods") or []):
                continue
            name = str(model.get("name") or "")
            if name:
                out.append(name.replace("models/", "", 1))
        return out

    async def embed(self, target, text, *, timeout):
        url = f"{target.endpoint}/{self.EMBEDDING_MODEL}:embedContent?{self._key_query(target.credential)}"
        payload = {"model": self.EMBEDDING_MODEL, "content": {"parts": [{"text": text}]}}
        body = await self._send("POST", url, payload=payload, timeout=timeout)
        values = self._extract(body, lambda b: b["embedding"]["values"])
        try:
            return [float(v) for v in values]
        except (TypeError, ValueError) as exc:
            raise ProviderFailure(self.kind, f"malformed embedding: {exc}") from exc


class OpenRouterAdapter(ProviderAdapter):
    kind = ProviderKind.OPENROUTER.value
    requires_credential = True

    @staticmethod
    def _headers(credential: Optional[str], extra: tuple[tuple[str, str], ...] = ()) -> dict[str, str]:
        headers = dict(extra)
        if credential:
            headers["Authorization"] = f"Bearer {credential}"
        return headers

    async def generate(self, target, prompt, system_instruction, *, timeout):
        payload = {
            "model": target.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
        }
        body = await self._send(
            "POST",
            f"{target.endpoint}/chat/completions",
            headers=self._headers(target.credential, target.headers),
            payload=payload,
            timeout=timeout,
        )
        return str(self._extract(body, lambda b: b["choices"][0]["message"]["content"]))

    async def list_models(self, credential, endpoint, *, timeout):
        body = await self._send("GET", f"{endpoint}/models", headers=self._headers(credential), timeout=timeout)
        data = self._extract(body, lambda b: b["data"])
        return [str(m["id"]) for m in data if isinstance(m, dict) and m.get("id")]


class OllamaAdapter(ProviderAdapter):
    kind = ProviderKind.OLLAMA.value
    requires_credential = False

    async def generate(self, target, prompt, system_instruction, *, timeout):
        payload = {
            "model": target.model,
            "prompt": _flatten_prompt(system_instruction, prompt),
            "stream": False,
        }
        body = await self._send("POST", f"{target.endpoint}/api/generate", payload=payload, timeout=timeout)
        return str(self._extract(body, lambda b: b["response"]))

    async def list_models(self, credential, endpoint, *, timeout):
        body = await self._send("GET", f"{endpoint}/api/tags", timeout=timeout)
        models = self._extract(body, lambda b: b["models"])
        return [str(m["name"]) for m in models if isinstance(m, dict) and m.get("name")]


def default_adapters(transport: HttpTransport) -> dict[str, ProviderAdapter]:
    adapters: list[ProviderAdapter] = [
        GeminiAdapter(transport),
        OpenRouterAdapter(transport),
        OllamaAdapter(transport),
    ]
    return {adapter.kind: adapter for adapter in adapters}
