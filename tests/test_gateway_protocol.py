"""Tests for RPC frame parsing and chat.send parameter normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.gateway.protocol import (
    ChatDeleteParams,
    ChatSendParams,
    RPCStreamChunk,
    SetAuthorizationParams,
    SetProviderEnabledParams,
    StreamChunkData,
    parse_rpc_request,
)
from src.infra.errors import GatewayError


class TestParseRpcRequest:
    def test_valid_request(self) -> None:
        request = parse_rpc_request(
            '{"type": "request", "id": "r1", "method": "chat.send", "params": {"content": "hi"}}'
        )
        assert request.id == "r1"
        assert request.method == "chat.send"
        assert request.params == {"content": "hi"}

    def test_id_and_params_default(self) -> None:
        request = parse_rpc_request('{"method": "chat.stop"}')
        assert request.id
        assert request.params == {}

    @pytest.mark.parametrize("raw", ["{", '{"type": "request"}', '{"type": "push", "method": "x"}'])
    def test_malformed_rejected(self, raw: str) -> None:
        with pytest.raises(GatewayError) as exc:
            parse_rpc_request(raw)
        assert exc.value.code == "PARSE_ERROR"


class TestChatSendParams:
    def test_defaults(self) -> None:
        params = ChatSendParams.model_validate({"content": "hi"})
        assert params.session_id == "main"
        assert params.provider is None
        assert params.model is None

    @pytest.mark.parametrize(("raw", "expected"), [
        ("Gemini", "gemini"),
        ("  OpenAI  ", "openai"),
        ("", None),
        ("   ", None),
        ("unknown", "unknown"),
    ])
    def test_provider_normalized(self, raw: str, expected: str | None) -> None:
        assert ChatSendParams(content="hi", provider=raw).provider == expected

    def test_provider_non_string_raises(self) -> None:
        with pytest.raises(ValidationError, match="provider must be a string"):
            ChatSendParams(content="hi", provider=123)


class TestSetAuthorizationParams:
    def test_status_spellings_normalized(self) -> None:
        params = SetAuthorizationParams.model_validate(
            {"config": {"categories": {"filesystem": "Disabled"}}}
        )
        assert params.config.categories == {"filesystem": "disabled"}
        assert params.config.overrides is None

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SetAuthorizationParams.model_validate({"config": {"categories": {"utils": "maybe"}}})


class TestSessionAndProviderParams:
    def test_delete_requires_session_id(self) -> None:
        with pytest.raises(ValidationError):
            ChatDeleteParams.model_validate({})

    def test_provider_name_normalized(self) -> None:
        params = SetProviderEnabledParams.model_validate({"provider": " Gemini ", "enabled": False})
        assert params.provider == "gemini"
        assert params.enabled is False


def test_cancelled_done_chunk_wire_shape() -> None:
    chunk = RPCStreamChunk(
        id="r1",
        data=StreamChunkData(content="", done=True, cancelled=True, finish_reason="superseded"),
    )
    assert chunk.model_dump() == {
        "type": "stream_chunk",
        "id": "r1",
        "data": {"content": "", "done": True, "finish_reason": "superseded", "cancelled": True},
    }
