"""Tests for AnthropicGenerationClient with a mocked Anthropic SDK.

The SDK client is a MagicMock whose messages.create is an AsyncMock, so these
verify the request shape, JSON parsing, and translation of vendor errors.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from strategy_pipeline.core.exceptions import MalformedResponseError, ServiceError, TransportError
from strategy_pipeline.generation.client import GenerationClient
from strategy_pipeline.generation.client_real import JSON_ONLY_SYSTEM_PROMPT, AnthropicGenerationClient
from strategy_pipeline.pipeline.runner import PipelineFailure
from strategy_pipeline.schemas.pipeline import PipelineType

pytestmark = pytest.mark.unit

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _make_sdk_client(response_text: str | None = '{"key_points": ["a"]}') -> MagicMock:
    """Create a mock AsyncAnthropic with .messages.create()."""
    mock_response = MagicMock()
    mock_response.content = [] if response_text is None else [MagicMock(type="text", text=response_text)]
    mock_response.usage = MagicMock(input_tokens=120, output_tokens=45)

    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock(return_value=mock_response)
    return client


def _make_status_error(status_code: int) -> anthropic.APIStatusError:
    response = httpx.Response(status_code=status_code, text="error", request=_REQUEST)
    return anthropic.APIStatusError(message=f"status {status_code}", response=response, body=None)


def _make_client(sdk_client: MagicMock, timeout_seconds: float = 5.0) -> AnthropicGenerationClient:
    return AnthropicGenerationClient(
        client=sdk_client,
        model="claude-sonnet-4-20250514",
        max_tokens=1024,
        timeout_seconds=timeout_seconds,
    )


def test_satisfies_generation_client_protocol():
    assert isinstance(_make_client(_make_sdk_client()), GenerationClient)


class TestInvoke:
    @pytest.mark.asyncio
    async def test_returns_parsed_json(self):
        client = _make_client(_make_sdk_client('{"key_points": ["強いブランド"]}'))

        assert await client.invoke("analyze this") == {"key_points": ["強いブランド"]}

    @pytest.mark.asyncio
    async def test_strips_markdown_fences(self):
        client = _make_client(_make_sdk_client('```json\n{"risks": []}\n```'))

        assert await client.invoke("analyze this") == {"risks": []}

    @pytest.mark.asyncio
    async def test_sends_single_user_message_with_json_only_system_prompt(self):
        sdk_client = _make_sdk_client()
        client = _make_client(sdk_client)

        await client.invoke("the prompt")

        kwargs = sdk_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-sonnet-4-20250514"
        assert kwargs["max_tokens"] == 1024
        assert kwargs["system"] == JSON_ONLY_SYSTEM_PROMPT
        assert kwargs["messages"] == [{"role": "user", "content": "the prompt"}]

    @pytest.mark.asyncio
    async def test_joins_text_blocks_and_skips_others(self):
        sdk_client = _make_sdk_client()
        sdk_client.messages.create.return_value.content = [
            MagicMock(type="text", text='{"risks": '),
            MagicMock(spec=["type", "id"], type="tool_use", id="toolu_1"),
            MagicMock(type="text", text='["価格競争"]}'),
        ]

        assert await _make_client(sdk_client).invoke("prompt") == {"risks": ["価格競争"]}

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected_without_calling_service(self):
        sdk_client = _make_sdk_client()
        client = _make_client(sdk_client)

        with pytest.raises(ValueError):
            await client.invoke("   ")
        sdk_client.messages.create.assert_not_called()


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_connection_error_becomes_transport_error(self):
        sdk_client = _make_sdk_client()
        sdk_client.messages.create.side_effect = anthropic.APIConnectionError(request=_REQUEST)

        with pytest.raises(TransportError) as exc_info:
            await _make_client(sdk_client).invoke("prompt")
        assert isinstance(exc_info.value.__cause__, anthropic.APIConnectionError)

    @pytest.mark.asyncio
    async def test_sdk_timeout_becomes_transport_error(self):
        sdk_client = _make_sdk_client()
        sdk_client.messages.create.side_effect = anthropic.APITimeoutError(request=_REQUEST)

        with pytest.raises(TransportError):
            await _make_client(sdk_client).invoke("prompt")

    @pytest.mark.asyncio
    async def test_wait_for_timeout_becomes_transport_error(self):
        async def never_answers(**kwargs):
            await asyncio.sleep(10)

        sdk_client = _make_sdk_client()
        sdk_client.messages.create = AsyncMock(side_effect=never_answers)

        with pytest.raises(TransportError):
            await _make_client(sdk_client, timeout_seconds=0.01).invoke("prompt")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 429, 500, 529])
    async def test_status_error_becomes_service_error(self, status_code):
        sdk_client = _make_sdk_client()
        sdk_client.messages.create.side_effect = _make_status_error(status_code)

        with pytest.raises(ServiceError, match=str(status_code)):
            await _make_client(sdk_client).invoke("prompt")

    @pytest.mark.asyncio
    async def test_response_validation_error_becomes_service_error(self):
        sdk_client = _make_sdk_client()
        response = httpx.Response(status_code=200, text="{}", request=_REQUEST)
        sdk_client.messages.create.side_effect = anthropic.APIResponseValidationError(response=response, body={})

        with pytest.raises(ServiceError, match="APIResponseValidationError") as exc_info:
            await _make_client(sdk_client).invoke("prompt")
        assert isinstance(exc_info.value.__cause__, anthropic.APIResponseValidationError)

    @pytest.mark.asyncio
    async def test_no_text_block_becomes_service_error(self):
        sdk_client = _make_sdk_client()
        sdk_client.messages.create.return_value.content = [MagicMock(spec=["type", "id"], type="tool_use", id="toolu_1")]

        with pytest.raises(ServiceError, match="empty content"):
            await _make_client(sdk_client).invoke("prompt")

    @pytest.mark.asyncio
    async def test_empty_content_becomes_service_error(self):
        with pytest.raises(ServiceError):
            await _make_client(_make_sdk_client(None)).invoke("prompt")

    @pytest.mark.asyncio
    async def test_blank_text_becomes_service_error(self):
        with pytest.raises(ServiceError):
            await _make_client(_make_sdk_client("  \n")).invoke("prompt")

    @pytest.mark.asyncio
    async def test_non_json_becomes_malformed_response_error(self):
        raw = "申し訳ありませんが、JSONでお答えできません。"

        with pytest.raises(MalformedResponseError) as exc_info:
            await _make_client(_make_sdk_client(raw)).invoke("prompt")
        assert exc_info.value.raw_text == raw

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self):
        sdk_client = _make_sdk_client()
        sdk_client.messages.create.side_effect = _make_status_error(529)

        with pytest.raises(ServiceError):
            await _make_client(sdk_client).invoke("prompt")
        assert sdk_client.messages.create.call_count == 1


@pytest.mark.asyncio
async def test_non_text_response_ends_pipeline_with_failure(make_runner, three_c_input):
    sdk_client = _make_sdk_client()
    sdk_client.messages.create.return_value.content = [MagicMock(spec=["type", "id"], type="tool_use", id="toolu_1")]

    result = await make_runner(_make_client(sdk_client)).run(PipelineType.FRAMEWORK_3C, three_c_input)

    assert isinstance(result, PipelineFailure)
    assert result.failed_at_stage == "initial_analysis"
    assert result.error_type == "ServiceError"
