"""Contract tests for the assistant gateway (mocked adapter)."""

import asyncio
import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from shopbot.assistant.gateway import RECOMMENDATION_SCHEMA, AssistantGateway
from shopbot.assistant.prompts import CONNECTION_FALLBACK, EMPTY_REPLY_FALLBACK, IMAGE_TURN_PREAMBLE
from shopbot.core.history import ConversationTurn, to_backend_history
from shopbot.core.llm_adapter import LLMError, LLMUnavailableError


@pytest.fixture
def adapter():
    adapter = MagicMock()
    adapter.chat = AsyncMock(return_value="Sure, take a look.")
    adapter.generate_json = AsyncMock(return_value="{}")
    return adapter


@pytest.fixture
def gateway(adapter, repository):
    return AssistantGateway(adapter, repository, system_instruction="catalog rules")


def _history(*turns):
    return to_backend_history(turns)


def _converse(gateway, preamble, history):
    return asyncio.run(gateway.converse(preamble, history))


def _recommend(gateway, query="laptop"):
    return asyncio.run(gateway.recommend(query))


class TestConverse:

    def test_splits_context_from_current_message(self, gateway, adapter):
        history = _history(
            ConversationTurn(role="system", content="Hi! I'm ShopBot."),
            ConversationTurn(role="user", content="laptops?"),
            ConversationTurn(role="assistant", content="UltraBook Pro 15."),
            ConversationTurn(role="user", content="cheaper?"),
        )

        reply = _converse(gateway, "", history)

        assert reply == "Sure, take a look."
        sdk_history, message, system = adapter.chat.await_args.args
        assert [c.role for c in sdk_history] == ["user", "model"]
        assert sdk_history[1].parts[0].text == "UltraBook Pro 15."
        assert [p.text for p in message] == ["cheaper?"]
        assert system == "catalog rules"

    def test_preamble_precedes_image(self, gateway, adapter, sample_image):
        history = _history(ConversationTurn(role="user", content="what is this?", image=sample_image))

        _converse(gateway, IMAGE_TURN_PREAMBLE, history)

        message = adapter.chat.await_args.args[1]
        assert message[0].text == IMAGE_TURN_PREAMBLE
        assert message[1].text == "what is this?"
        assert message[2].inline_data.mime_type == "image/png"
        assert message[2].inline_data.data == base64.b64decode(sample_image.data)

    def test_backend_error_returns_fallback(self, gateway, adapter):
        adapter.chat.side_effect = LLMUnavailableError("down")
        history = _history(ConversationTurn(role="user", content="hi"))
        assert _converse(gateway, "", history) == CONNECTION_FALLBACK

    def test_rejected_request_returns_fallback(self, gateway, adapter):
        adapter.chat.side_effect = LLMError("400")
        history = _history(ConversationTurn(role="user", content="hi"))
        assert _converse(gateway, "", history) == CONNECTION_FALLBACK

    def test_unexpected_error_returns_fallback(self, gateway, adapter):
        adapter.chat.side_effect = RuntimeError("boom")
        history = _history(ConversationTurn(role="user", content="hi"))
        assert _converse(gateway, "", history) == CONNECTION_FALLBACK

    def test_empty_reply(self, gateway, adapter):
        adapter.chat.return_value = "   "
        history = _history(ConversationTurn(role="user", content="hi"))
        assert _converse(gateway, "", history) == EMPTY_REPLY_FALLBACK

    def test_history_must_end_with_user(self, gateway):
        with pytest.raises(ValueError):
            _converse(gateway, "", [])
        with pytest.raises(ValueError):
            _converse(gateway, "", _history(ConversationTurn(role="assistant", content="hello")))


class TestRecommend:

    def test_resolves_ids_in_model_order(self, gateway, adapter):
        adapter.generate_json.return_value = json.dumps(
            {"recommendedProductIds": ["p4", "p2"], "reasoning": "both are computers"}
        )
        assert [p.id for p in _recommend(gateway)] == ["p4", "p2"]

    def test_structured_request(self, gateway, adapter):
        _recommend(gateway, "noise cancelling")
        prompt, system, schema = adapter.generate_json.await_args.args
        assert "noise cancelling" in prompt
        assert system == "catalog rules"
        assert schema is RECOMMENDATION_SCHEMA

    def test_unknown_and_duplicate_ids_dropped(self, gateway, adapter):
        adapter.generate_json.return_value = json.dumps(
            {"recommendedProductIds": ["p1", "ghost", "p1", "p3"], "reasoning": ""}
        )
        assert [p.id for p in _recommend(gateway)] == ["p1", "p3"]

    def test_malformed_json(self, gateway, adapter):
        adapter.generate_json.return_value = "not json"
        assert _recommend(gateway) == []

    def test_missing_ids_field(self, gateway, adapter):
        adapter.generate_json.return_value = json.dumps({"reasoning": "none"})
        assert _recommend(gateway) == []

    def test_empty_response(self, gateway, adapter):
        adapter.generate_json.return_value = ""
        assert _recommend(gateway) == []

    def test_backend_failure(self, gateway, adapter):
        adapter.generate_json.side_effect = LLMUnavailableError("down")
        assert _recommend(gateway) == []


class TestInit:

    def test_default_instruction_lists_catalog(self, adapter, repository):
        gateway = AssistantGateway(adapter, repository)
        assert "UltraBook Pro 15" in gateway.system_instruction

    def test_health_delegates(self, gateway, adapter):
        adapter.is_healthy.return_value = False
        assert gateway.is_healthy() is False
