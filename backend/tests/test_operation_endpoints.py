"""
Tests for the registry-driven operation endpoints.

Covers successful completions, NDJSON streaming, request validation and
error reporting for /chat-translate, /translate and /poem.
"""

import asyncio
import json
import time
from typing import Dict, List
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient

from fakes import FakeLlama
from prompt_api.services.llm import LLMService


def _ndjson(text: str) -> List[Dict[str, str]]:
    return [json.loads(line) for line in text.splitlines() if line.strip()]


# ============================================================================
# Translation Endpoint Tests
# ============================================================================

class TestTranslateEndpoint:
    """Test POST /translate."""

    def test_translate_returns_text(self, test_client: TestClient, translate_payload: Dict[str, str]) -> None:
        response = test_client.post("/translate", json=translate_payload)

        assert response.status_code == 200
        assert response.json() == {"text": "Bonjour"}

    def test_translate_builds_prompt_from_inputs(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
        translate_payload: Dict[str, str],
    ) -> None:
        """The completion prompt embeds the languages and the fenced text."""
        test_client.post("/translate", json=translate_payload)

        assert fake_llama.calls[0]["prompt"] == (
            "Translate the following text from English to French\n```Hello```\n\n"
        )
        assert fake_llama.calls[0]["stream"] is False

    def test_inputs_are_trimmed(self, test_client: TestClient, fake_llama: FakeLlama) -> None:
        payload = {"Input Language": "  English ", "Output Language": "French\n", "Text": " Hello "}

        response = test_client.post("/translate", json=payload)

        assert response.status_code == 200
        assert "from English to French\n```Hello```" in fake_llama.calls[0]["prompt"]

    def test_markup_is_escaped_before_reaching_the_model(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
    ) -> None:
        """HTML-significant characters are escaped in every input."""
        payload = {"Input Language": "English", "Output Language": "French", "Text": "<b>Hi</b> & bye"}

        response = test_client.post("/translate", json=payload)

        assert response.status_code == 200
        assert "&lt;b&gt;Hi&lt;&#x2F;b&gt; &amp; bye" in fake_llama.calls[0]["prompt"]
        assert "<b>" not in fake_llama.calls[0]["prompt"]

    def test_extra_fields_are_ignored(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
        translate_payload: Dict[str, str],
    ) -> None:
        payload = dict(translate_payload, Unexpected="ignored", temperature="2")

        response = test_client.post("/translate", json=payload)

        assert response.status_code == 200
        assert "ignored" not in fake_llama.calls[0]["prompt"]
        assert fake_llama.calls[0]["temperature"] == 0.0


# ============================================================================
# Chat Translation Endpoint Tests
# ============================================================================

class TestChatTranslateEndpoint:
    """Test POST /chat-translate."""

    def test_chat_translate_returns_text(
        self,
        test_client: TestClient,
        translate_payload: Dict[str, str],
    ) -> None:
        response = test_client.post("/chat-translate", json=translate_payload)

        assert response.status_code == 200
        assert response.json() == {"text": "Salut"}

    def test_chat_translate_sends_system_and_user_messages(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
        translate_payload: Dict[str, str],
    ) -> None:
        test_client.post("/chat-translate", json=translate_payload)

        messages = fake_llama.chat_calls[0]["messages"]
        assert messages == [
            {"role": "system", "content": "You are a helpful assistant that translates English to French."},
            {"role": "user", "content": "Hello"},
        ]


# ============================================================================
# Poem Streaming Endpoint Tests
# ============================================================================

class TestPoemEndpoint:
    """Test POST /poem streaming."""

    def test_poem_streams_ndjson(self, test_client: TestClient) -> None:
        """Each produced chunk arrives as one JSON line, in order."""
        response = test_client.post("/poem", json={"Topic": "rain"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        assert _ndjson(response.text) == [{"text": "Rain "}, {"text": "falls "}, {"text": "softly"}]

    def test_poem_prompt(self, test_client: TestClient, fake_llama: FakeLlama) -> None:
        test_client.post("/poem", json={"Topic": "rain"})

        assert fake_llama.calls[0]["prompt"] == "Write me a very short poem about rain."
        assert fake_llama.calls[0]["stream"] is True

    def test_concatenated_chunks_form_the_poem(self, test_client: TestClient) -> None:
        response = test_client.post("/poem", json={"Topic": "rain"})

        assert "".join(line["text"] for line in _ndjson(response.text)) == "Rain falls softly"

    def test_mid_stream_failure_ends_with_error_line(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
    ) -> None:
        """Chunks already sent stay sent; the body ends with a terminal error line."""
        fake_llama.fail_after = 1

        response = test_client.post("/poem", json={"Topic": "rain"})
        lines = _ndjson(response.text)

        assert response.status_code == 200
        assert lines[0] == {"text": "Rain "}
        assert lines[-1]["code"] == "GENERATION_FAILED"
        assert "upstream connection reset" in lines[-1]["error"]
        assert len(lines) == 2

    async def test_poem_streams_with_async_client(self, async_client: AsyncClient) -> None:
        async with async_client.stream("POST", "/poem", json={"Topic": "rain"}) as response:
            assert response.status_code == 200
            lines = [json.loads(line) async for line in response.aiter_lines() if line]

        assert [line["text"] for line in lines] == ["Rain ", "falls ", "softly"]

    def test_load_failure_is_reported_before_streaming(
        self,
        test_client: TestClient,
        llm_service: LLMService,
    ) -> None:
        """A model that cannot be loaded yields a plain 500, not a stream."""
        llm_service._llm = None

        with patch("prompt_api.services.llm.hf_hub_download", side_effect=Exception("offline")):
            response = test_client.post("/poem", json={"Topic": "rain"})

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert "Failed to download model" in response.json()["error"]


# ============================================================================
# Validation Tests
# ============================================================================

class TestOperationValidation:
    """Test rejection of malformed requests before any generation."""

    def test_missing_field_is_rejected(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
        translate_payload: Dict[str, str],
    ) -> None:
        payload = dict(translate_payload)
        del payload["Output Language"]

        response = test_client.post("/translate", json=payload)

        assert response.status_code == 400
        errors = response.json()["errors"]
        assert [error["path"] for error in errors] == ["Output Language"]
        assert errors[0]["type"] == "field"
        assert errors[0]["location"] == "body"
        assert fake_llama.call_count == 0

    def test_numeric_field_is_accepted_as_text(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
    ) -> None:
        response = test_client.post("/poem", json={"Topic": 42})

        assert response.status_code == 200
        assert "42" in fake_llama.calls[0]["prompt"]

    @pytest.mark.parametrize("value", ["", "   ", "\n\t"])
    def test_blank_field_is_rejected(
        self,
        test_client: TestClient,
        fake_llama: FakeLlama,
        value: str,
    ) -> None:
        response = test_client.post("/poem", json={"Topic": value})

        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == "Topic"
        assert fake_llama.call_count == 0

    def test_every_missing_field_is_reported(self, test_client: TestClient) -> None:
        response = test_client.post("/chat-translate", json={})

        assert response.status_code == 400
        paths = {error["path"] for error in response.json()["errors"]}
        assert paths == {"Input Language", "Output Language", "Text"}

    def test_non_string_field_is_rejected(self, test_client: TestClient) -> None:
        response = test_client.post("/poem", json={"Topic": 42})

        assert response.status_code == 400
        assert response.json()["errors"][0]["path"] == "Topic"

    def test_invalid_json_is_rejected(self, test_client: TestClient, fake_llama: FakeLlama) -> None:
        response = test_client.post(
            "/translate",
            content="invalid json{",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["msg"] == "Request body must be valid JSON"
        assert fake_llama.call_count == 0

    def test_non_object_body_is_rejected(self, test_client: TestClient) -> None:
        response = test_client.post("/poem", json=["rain"])

        assert response.status_code == 400

    def test_wrong_method_is_not_routed(self, test_client: TestClient) -> None:
        response = test_client.get("/translate")

        assert response.status_code == 405


# ============================================================================
# Upstream Error Tests
# ============================================================================

class TestOperationErrors:
    """Test reporting of generation failures."""

    def test_upstream_failure_returns_500(
        self,
        test_client: TestClient,
        llm_service: LLMService,
        translate_payload: Dict[str, str],
    ) -> None:
        llm_service._llm = MagicMock(side_effect=RuntimeError("model exploded"))  # type: ignore[assignment]

        response = test_client.post("/translate", json=translate_payload)

        assert response.status_code == 500
        assert set(response.json()) == {"error"}
        assert "model exploded" in response.json()["error"]

    def test_chat_upstream_failure_returns_500(
        self,
        test_client: TestClient,
        llm_service: LLMService,
        translate_payload: Dict[str, str],
    ) -> None:
        model = MagicMock()
        model.create_chat_completion.side_effect = RuntimeError("chat backend down")
        llm_service._llm = model  # type: ignore[assignment]

        response = test_client.post("/chat-translate", json=translate_payload)

        assert response.status_code == 500
        assert "chat backend down" in response.json()["error"]

    def test_timeout_returns_500(
        self,
        test_client: TestClient,
        llm_service: LLMService,
        translate_payload: Dict[str, str],
    ) -> None:
        llm_service._settings = llm_service._settings.model_copy(update={"llm_request_timeout": 0.05})

        def slow(*args: object, **kwargs: object) -> None:
            time.sleep(0.3)

        llm_service._llm = MagicMock(side_effect=slow)  # type: ignore[assignment]

        response = test_client.post("/translate", json=translate_payload)

        assert response.status_code == 500
        assert "timed out" in response.json()["error"]

    def test_missing_service_returns_503(
        self,
        test_client: TestClient,
        translate_payload: Dict[str, str],
    ) -> None:
        del test_client.app.state.llm_service  # type: ignore[attr-defined]

        response = test_client.post("/translate", json=translate_payload)

        assert response.status_code == 503


# ============================================================================
# Concurrent Request Tests
# ============================================================================

class TestConcurrentRequests:
    """Test overlapping requests sharing the single model."""

    async def test_overlapping_translations_use_model_one_at_a_time(
        self,
        async_client: AsyncClient,
        fake_llama: FakeLlama,
        translate_payload: Dict[str, str],
    ) -> None:
        fake_llama.delay = 0.2

        responses = await asyncio.gather(
            async_client.post("/translate", json=translate_payload),
            async_client.post("/translate", json=translate_payload),
        )

        assert [response.status_code for response in responses] == [200, 200]
        assert all(response.json() == {"text": "Bonjour"} for response in responses)
        assert fake_llama.max_active == 1

    async def test_poem_and_chat_translation_do_not_overlap(
        self,
        async_client: AsyncClient,
        fake_llama: FakeLlama,
        translate_payload: Dict[str, str],
    ) -> None:
        fake_llama.delay = 0.05

        poem, chat = await asyncio.gather(
            async_client.post("/poem", json={"Topic": "rain"}),
            async_client.post("/chat-translate", json=translate_payload),
        )

        assert poem.status_code == 200
        assert [line["text"] for line in _ndjson(poem.text)] == ["Rain ", "falls ", "softly"]
        assert chat.json() == {"text": "Salut"}
        assert fake_llama.max_active == 1
