"""
Client Unit Tests
=================
Tests for the sync and async clients without making actual API calls.
"""

import json
import logging
import threading

import httpx
import pytest
import requests
from unittest.mock import patch

from anthropic_api import (
    AnthropicClient,
    AsyncAnthropicClient,
    ImageBlock,
    LLMAPIError,
    LLMConfigError,
    LLMError,
    LLMParseError,
    LLMTransportError,
    LLMValidationError,
    MediaType,
    Message,
    ModelListParams,
    ProtocolVersion,
    RequestBody,
    Role,
    Source,
    TextBlock,
)

EMPTY_LISTING = {"first_id": None, "last_id": None, "has_more": False, "data": []}


class TestClientInit:
    """Tests for client construction."""

    @pytest.mark.unit
    @patch.dict('os.environ', {'ANTHROPIC_API_KEY': 'env-key'}, clear=True)
    def test_from_env(self, mock_session):
        client = AnthropicClient.from_env(session=mock_session)
        assert client.config.api_key == "env-key"

    @pytest.mark.unit
    @patch.dict('os.environ', {}, clear=True)
    def test_from_env_without_key(self):
        with pytest.raises(LLMConfigError):
            AnthropicClient.from_env()

    @pytest.mark.unit
    def test_exception_aliases(self):
        assert AnthropicClient.APIError is LLMAPIError
        assert AsyncAnthropicClient.ParseError is LLMParseError
        assert issubclass(LLMAPIError, LLMError)


class TestCompleteMessage:
    """Tests for POST /v1/messages."""

    @pytest.mark.unit
    def test_sends_request(self, config, mock_session, response_payload):
        mock_session.reply(200, response_payload)
        client = AnthropicClient(config, session=mock_session)
        body = RequestBody(messages=[Message.user("What is the capital of France?")])

        response = client.complete_message(body)

        assert response.content == (TextBlock("Paris."),)
        args, kwargs = mock_session.request.call_args
        assert args == ("POST", "https://api.test/v1/messages")
        assert kwargs["headers"] == {
            "anthropic-version": "2023-06-01",
            "x-api-key": "test-key-123",
            "content-type": "application/json",
        }
        assert json.loads(kwargs["data"]) == body.to_payload()

    @pytest.mark.unit
    def test_protocol_version_header(self, config, mock_session, response_payload):
        mock_session.reply(200, response_payload)
        client = AnthropicClient(config.with_version(ProtocolVersion.INITIAL), session=mock_session)

        client.complete_message(RequestBody(messages=[Message.user("hi")]))

        assert mock_session.request.call_args.kwargs["headers"]["anthropic-version"] == "2023-01-01"

    @pytest.mark.unit
    def test_non_200_raises_api_error(self, config, mock_session):
        mock_session.reply(400, '{"type":"error","error":{"type":"invalid_request_error"}}')
        client = AnthropicClient(config, session=mock_session)

        with pytest.raises(LLMAPIError) as exc_info:
            client.complete_message(RequestBody(messages=[Message.user("hi")]))

        assert exc_info.value.status_code == 400
        assert "invalid_request_error" in str(exc_info.value)
        assert "invalid_request_error" in exc_info.value.body

    @pytest.mark.unit
    def test_schema_mismatch_raises_parse_error(self, config, mock_session):
        mock_session.reply(200, {"id": "msg_01"})
        client = AnthropicClient(config, session=mock_session)

        with pytest.raises(LLMParseError):
            client.complete_message(RequestBody(messages=[Message.user("hi")]))

    @pytest.mark.unit
    def test_invalid_json_raises_parse_error(self, config, mock_session):
        mock_session.reply(200, "<html>oops</html>")
        client = AnthropicClient(config, session=mock_session)

        with pytest.raises(LLMParseError):
            client.complete_message(RequestBody(messages=[Message.user("hi")]))

    @pytest.mark.unit
    def test_connection_error_raises_transport_error(self, config, mock_session):
        mock_session.request.side_effect = requests.ConnectionError("refused")
        client = AnthropicClient(config, session=mock_session)

        with pytest.raises(LLMTransportError) as exc_info:
            client.complete_message(RequestBody(messages=[Message.user("hi")]))

        assert not isinstance(exc_info.value, LLMAPIError)
        assert mock_session.request.call_count == 1

    @pytest.mark.unit
    def test_complete_yaml(self, config, mock_session, response_payload):
        mock_session.reply(200, response_payload)
        client = AnthropicClient(config, session=mock_session)

        response = client.complete_yaml("messages:\n  - user: hi\n")

        assert response.text == "Paris."
        sent = json.loads(mock_session.request.call_args.kwargs["data"])
        assert sent["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.unit
    @pytest.mark.parametrize("temperature", [float("nan"), float("inf")])
    def test_non_finite_temperature_rejected_before_sending(self, config, mock_session, temperature):
        client = AnthropicClient(config, session=mock_session)

        with pytest.raises(LLMValidationError):
            client.complete_message(RequestBody(messages=[Message.user("hi")], temperature=temperature))

        mock_session.request.assert_not_called()

    @pytest.mark.unit
    def test_debug_log_omits_payload_contents(self, config, mock_session, response_payload, caplog):
        mock_session.reply(200, response_payload)
        client = AnthropicClient(config, session=mock_session)
        image = ImageBlock(Source(data="SECRETIMAGEDATA", media_type=MediaType.PNG))
        body = RequestBody(messages=[Message(role=Role.USER, content=[TextBlock("private words"), image])])

        with caplog.at_level(logging.DEBUG, logger="anthropic_api.client"):
            client.complete_message(body)

        assert "messages=1" in caplog.text
        assert "SECRETIMAGEDATA" not in caplog.text
        assert "private words" not in caplog.text
        assert "test-key-123" not in caplog.text


class TestModelEndpoints:
    """Tests for the /v1/models endpoints."""

    @pytest.mark.unit
    def test_list_models_empty(self, config, mock_session):
        mock_session.reply(200, EMPTY_LISTING)
        client = AnthropicClient(config, session=mock_session)

        result = client.list_models()

        assert result.data == ()
        args, kwargs = mock_session.request.call_args
        assert args == ("GET", "https://api.test/v1/models")
        assert "content-type" not in kwargs["headers"]
        assert kwargs["data"] is None

    @pytest.mark.unit
    def test_list_models_filtered_omits_absent_params(self, config, mock_session, model_payload):
        mock_session.reply(200, {"first_id": "a", "last_id": "a", "has_more": True, "data": [model_payload]})
        client = AnthropicClient(config, session=mock_session)

        result = client.list_models_filtered(ModelListParams(limit=1))

        assert len(result.data) == 1
        assert result.has_more is True
        assert mock_session.request.call_args.kwargs["params"] == {"limit": 1}

    @pytest.mark.unit
    def test_get_model(self, config, mock_session, model_payload):
        mock_session.reply(200, model_payload)
        client = AnthropicClient(config, session=mock_session)

        model = client.get_model("claude-3-5-sonnet-20241022")

        assert model.id == "claude-3-5-sonnet-20241022"
        assert mock_session.request.call_args.args[1] == "https://api.test/v1/models/claude-3-5-sonnet-20241022"

    @pytest.mark.unit
    def test_get_model_not_found(self, config, mock_session):
        mock_session.reply(404, "not found")
        client = AnthropicClient(config, session=mock_session)

        with pytest.raises(LLMAPIError, match="not found") as exc_info:
            client.get_model("x")

        assert exc_info.value.status_code == 404

    @pytest.mark.unit
    def test_context_manager_closes_session(self, config, mock_session):
        with AnthropicClient(config, session=mock_session):
            pass
        mock_session.close.assert_called_once()


def _async_client(config, handler):
    return AsyncAnthropicClient(config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestAsyncClient:
    """Tests for the httpx based async client."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_complete_message(self, config, response_payload):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=response_payload)

        async with _async_client(config, handler) as client:
            response = await client.complete_message(RequestBody(messages=[Message.user("hi")]))

        assert response.text == "Paris."
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.test/v1/messages"
        assert request.headers["x-api-key"] == "test-key-123"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content)["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_models_empty(self, config):
        async with _async_client(config, lambda request: httpx.Response(200, json=EMPTY_LISTING)) as client:
            result = await client.list_models()

        assert result.data == ()
        assert result.last_id is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_models_filtered_query(self, config):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=EMPTY_LISTING)

        async with _async_client(config, handler) as client:
            await client.list_models_filtered(ModelListParams(after_id="abc", limit=2))

        params = dict(seen[0].url.params)
        assert params == {"after_id": "abc", "limit": "2"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_model_not_found(self, config):
        async with _async_client(config, lambda request: httpx.Response(404, text="not found")) as client:
            with pytest.raises(LLMAPIError, match="not found"):
                await client.get_model("x")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_error(self, config):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _async_client(config, handler) as client:
            with pytest.raises(LLMTransportError):
                await client.list_models()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_complete_yaml_parses_off_the_event_loop(self, config, response_payload):
        seen = []
        parse_threads = []

        def fake_parse(raw):
            parse_threads.append(threading.get_ident())
            return RequestBody(messages=[Message.user("hi")])

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=response_payload)

        with patch("anthropic_api.client.YAMLRequestParser.parse", side_effect=fake_parse) as mock_parse:
            async with _async_client(config, handler) as client:
                response = await client.complete_yaml("messages:\n  - user: hi\n")

        assert response.text == "Paris."
        mock_parse.assert_called_once_with("messages:\n  - user: hi\n")
        assert parse_threads and parse_threads[0] != threading.get_ident()
        assert json.loads(seen[0].content)["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_finite_temperature_rejected_before_sending(self, config):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        async with _async_client(config, handler) as client:
            with pytest.raises(LLMValidationError):
                await client.complete_message(RequestBody(messages=[Message.user("hi")], temperature=float("nan")))

        assert seen == []
