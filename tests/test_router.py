from __future__ import annotations

import asyncio
import http.client

import pytest

from mission_engine.core.config import RouterConfig, load_env_settings
from mission_engine.core.errors import ProviderFailure, UnknownProvider, Unroutable
from mission_engine.core.ports import HttpResponse
from mission_engine.core.router import ProviderRouter
from mission_engine.core.types import Role


def _ok(body):
    return HttpResponse(status=200, body=body, reason="OK")


def _gemini(text):
    return _ok({"candidates": [{"content": {"parts": [{"text": text}]}}]})


def _router(transport, **settings):
    return ProviderRouter(RouterConfig.from_mapping(settings), transport=transport)


def test_gemini_director_envelope(transport):
    async def run_test():
        transport.add(":generateContent", _gemini("The hatch groans open."))
        router = _router(transport, GEMINI_API_KEY="g-key")

        text = await router.generate(Role.DIRECTOR, "open hatch", "Narrate.")

        assert text == "The hatch groans open."
        call = transport.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-pro:generateContent?key=g-key"
        )
        assert call["payload"] == {"contents": [{"parts": [{"text": "Narrate.\n\nopen hatch"}]}]}

    asyncio.run(run_test())


def test_openrouter_workhorse_envelope_with_attribution_headers(transport):
    async def run_test():
        transport.add(
            "/chat/completions",
            _ok({"choices": [{"message": {"content": "You hear static."}}]}),
        )
        router = _router(
            transport,
            AI_WORKHORSE_PROVIDER="openrouter",
            AI_WORKHORSE_MODEL="mistralai/mistral-7b-instruct",
            OPENROUTER_API_KEY="or-key",
            OPENROUTER_REFERER="https://ops.example",
            OPENROUTER_TITLE="Mission Control",
        )

        text = await router.generate("workhorse", "listen", "Narrate.")

        assert text == "You hear static."
        call = transport.calls[0]
        assert call["url"] == "https://openrouter.ai/api/v1/chat/completions"
        assert call["headers"] == {
            "Authorization": "Bearer or-key",
            "HTTP-Referer": "https://ops.example",
            "X-Title": "Mission Control",
        }
        assert call["payload"] == {
            "model": "mistralai/mistral-7b-instruct",
            "messages": [
                {"role": "system", "content": "Narrate."},
                {"role": "user", "content": "listen"},
            ],
        }

    asyncio.run(run_test())


def test_ollama_workhorse_needs_no_credential(transport):
    async def run_test():
        transport.add("/api/generate", _ok({"response": "Dust settles."}))
        router = _router(transport, AI_WORKHORSE_URL="http://gpu:11434/", AI_WORKHORSE_MODEL="mistral")

        assert await router.generate(Role.WORKHORSE, "wait", "Narrate.") == "Dust settles."
        call = transport.calls[0]
        assert call["url"] == "http://gpu:11434/api/generate"
        assert call["payload"] == {"model": "mistral", "prompt": "Narrate.\n\nwait", "stream": False}

    asyncio.run(run_test())


def test_missing_credential_is_unroutable_without_network(transport):
    async def run_test():
        router = _router(transport)
        with pytest.raises(Unroutable) as excinfo:
            await router.generate(Role.DIRECTOR, "hello")
        assert excinfo.value.role == "director"
        assert excinfo.value.provider == "gemini"
        assert transport.calls == []

    asyncio.run(run_test())


def test_unknown_provider_is_rejected_without_network(transport):
    async def run_test():
        router = _router(transport, AI_WORKHORSE_PROVIDER="cohere")
        with pytest.raises(UnknownProvider):
            await router.generate(Role.WORKHORSE, "hello")
        assert transport.calls == []

    asyncio.run(run_test())


def test_unknown_role_is_a_value_error(transport):
    async def run_test():
        router = _router(transport)
        with pytest.raises(ValueError):
            await router.generate("janitor", "hello")

    asyncio.run(run_test())


def test_provider_error_body_is_surfaced(transport):
    async def run_test():
        transport.add(
            ":generateContent",
            HttpResponse(status=400, body={"error": {"message": "API key not valid"}}, reason="Bad Request"),
        )
        router = _router(transport, GEMINI_API_KEY="bad")
        with pytest.raises(ProviderFailure) as excinfo:
            await router.generate(Role.DIRECTOR, "hello")
        assert excinfo.value.provider == "gemini"
        assert "API key not valid" in excinfo.value.cause

    asyncio.run(run_test())


def test_status_without_error_body_uses_reason(transport):
    async def run_test():
        transport.add("/api/generate", HttpResponse(status=502, body=None, reason="Bad Gateway"))
        router = _router(transport)
        with pytest.raises(ProviderFailure) as excinfo:
            await router.generate(Role.WORKHORSE, "hello")
        assert excinfo.value.cause == "Bad Gateway"

    asyncio.run(run_test())


def test_malformed_success_body_is_a_failure(transport):
    async def run_test():
        transport.add(":generateContent", _ok({"candidates": []}))
        router = _router(transport, GEMINI_API_KEY="g-key")
        with pytest.raises(ProviderFailure) as excinfo:
            await router.generate(Role.DIRECTOR, "hello")
        assert "malformed" in excinfo.value.cause

    asyncio.run(run_test())


def test_connection_refused_is_a_failure(transport):
    async def run_test():
        router = _router(transport)
        with pytest.raises(ProviderFailure) as excinfo:
            await router.generate(Role.WORKHORSE, "hello")
        assert "transport error" in excinfo.value.cause

    asyncio.run(run_test())


@pytest.mark.parametrize(
    "error",
    [
        http.client.BadStatusLine("SSH-2.0-OpenSSH_9.0"),
        http.client.IncompleteRead(b'{"resp'),
        http.client.InvalidURL("nonnumeric port: '11434x'"),
        ValueError("Expecting value: line 1 column 1 (char 0)"),
    ],
)
def test_protocol_errors_are_failures(transport, error):
    async def run_test():
        transport.add("/api/generate", error)
        router = _router(transport)
        with pytest.raises(ProviderFailure) as excinfo:
            await router.generate(Role.WORKHORSE, "hello")
        assert excinfo.value.provider == "ollama"
        assert "transport error" in excinfo.value.cause

    asyncio.run(run_test())


def test_slow_backend_times_out(transport):
    async def run_test():
        async def hang(*_args):
            await asyncio.sleep(5)
            return _ok({"response": "too late"})

        transport.add("/api/generate", hang)
        router = _router(transport, AI_TIMEOUT_SECONDS="0.05")
        with pytest.raises(ProviderFailure) as excinfo:
            await router.generate(Role.WORKHORSE, "hello")
        assert "timed out" in excinfo.value.cause

    asyncio.run(run_test())


def test_verify_reports_instead_of_raising(transport):
    async def run_test():
        transport.add("/api/generate", _ok({"response": "Verified"}))
        router = _router(transport)

        up = await router.verify(Role.WORKHORSE)
        assert up.ok is True
        assert up.message == "Verified"
        assert transport.calls[0]["payload"]["prompt"] == 'System Check\n\nSay "Verified"'

        down = await router.verify(Role.DIRECTOR)
        assert down.ok is False
        assert "credential" in down.cause
        assert len(transport.calls) == 1

    asyncio.run(run_test())


def test_config_swap_is_atomic_for_in_flight_requests(transport):
    async def run_test():
        release = asyncio.Event()

        async def slow_answer(_method, url, _headers, payload):
            await release.wait()
            return _ok({"response": payload["model"]})

        transport.add("/api/generate", slow_answer)
        router = _router(transport, AI_WORKHORSE_MODEL="old-model")

        in_flight = asyncio.create_task(router.generate(Role.WORKHORSE, "hello"))
        await asyncio.sleep(0)
        router.update_config({"AI_WORKHORSE_MODEL": "new-model", "AI_WORKHORSE_URL": "http://other:11434"})
        release.set()

        assert await in_flight == "old-model"
        assert transport.calls[0]["url"] == "http://localhost:11434/api/generate"

        assert await router.generate(Role.WORKHORSE, "hello") == "new-model"
        assert transport.calls[1]["url"] == "http://other:11434/api/generate"

    asyncio.run(run_test())


def test_config_swap_replaces_attribution_headers(transport):
    async def run_test():
        transport.add("/chat/completions", _ok({"choices": [{"message": {"content": "ok"}}]}))
        router = _router(
            transport,
            AI_WORKHORSE_PROVIDER="openrouter",
            OPENROUTER_API_KEY="k",
            OPENROUTER_TITLE="Old Title",
        )
        router.update_config({"AI_WORKHORSE_PROVIDER": "openrouter", "OPENROUTER_API_KEY": "k2"})

        await router.generate(Role.WORKHORSE, "hello")
        assert transport.calls[0]["headers"] == {"Authorization": "Bearer k2"}

    asyncio.run(run_test())


def test_list_models_per_provider(transport):
    async def run_test():
        transport.add(
            "/models?key=",
            _ok(
                {
                    "models": [
                        {"name": "models/gemini-1.5-pro", "supportedGenerationMethods": ["generateContent"]},
                        {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
                    ]
                }
            ),
        )
        transport.add("openrouter.ai/api/v1/models", _ok({"data": [{"id": "openrouter/auto"}, {"name": "x"}]}))
        transport.add("/api/tags", _ok({"models": [{"name": "llama3:latest"}, {"name": "mistral"}]}))
        router = _router(transport)

        assert await router.list_models("gemini", "g-key") == ["gemini-1.5-pro"]
        assert await router.list_models("openrouter", "or-key") == ["openrouter/auto"]
        assert await router.list_models("ollama", endpoint="http://gpu:11434") == ["llama3:latest", "mistral"]
        assert transport.calls[1]["headers"] == {"Authorization": "Bearer or-key"}
        assert transport.calls[2]["url"] == "http://gpu:11434/api/tags"

    asyncio.run(run_test())


def test_list_models_requires_credential_and_known_provider(transport):
    async def run_test():
        router = _router(transport)
        with pytest.raises(Unroutable):
            await router.list_models("openrouter")
        with pytest.raises(UnknownProvider):
            await router.list_models("cohere", "key")
        assert transport.calls == []

    asyncio.run(run_test())


def test_embed_uses_director_when_it_supports_embeddings(transport):
    async def run_test():
        transport.add(":embedContent", _ok({"embedding": {"values": [0.1, 0.2, 0.3]}}))

        router = _router(transport, GEMINI_API_KEY="g-key")
        assert await router.embed("reactor logs") == [0.1, 0.2, 0.3]
        assert transport.calls[0]["payload"]["content"] == {"parts": [{"text": "reactor logs"}]}

        no_embeddings = _router(transport, AI_DIRECTOR_PROVIDER="ollama")
        assert await no_embeddings.embed("reactor logs") is None

        with pytest.raises(Unroutable):
            await _router(transport).embed("reactor logs")
        assert len(transport.calls) == 1

    asyncio.run(run_test())


def test_router_config_resolution():
    config = RouterConfig.from_mapping(
        {
            "GEMINI_API_KEY": "shared",
            "AI_DIRECTOR_KEY": "director-only",
            "AI_DIRECTOR_MODEL": "gemini-1.5-flash",
            "AI_TIMEOUT_SECONDS": "not-a-number",
            "AI_ESCALATION_KEYWORDS": "Secret, betray ,secret",
        }
    )
    assert config.director.credential == "director-only"
    assert config.director.model == "gemini-1.5-flash"
    assert config.workhorse.provider == "ollama"
    assert config.workhorse.endpoint == "http://localhost:11434"
    assert config.timeout_seconds == 20.0
    assert config.escalation_keywords == ("secret", "betray")

    with pytest.raises(ValueError):
        config.target_for("janitor")


def test_load_env_settings_keeps_known_non_empty_keys():
    env = {"GEMINI_API_KEY": "k", "OLLAMA_URL": "", "PATH": "/usr/bin", "AI_WORKHORSE_MODEL": "mistral"}
    assert load_env_settings(env) == {"GEMINI_API_KEY": "k", "AI_WORKHORSE_MODEL": "mistral"}
