"""AnthropicGenerationClient: production GenerationClient backed by Claude.

- Direct anthropic.AsyncAnthropic messages.create call
- asyncio.wait_for(timeout) wraps the API call
- System prompt demands a single JSON object; fences are stripped before parsing
- Vendor exceptions are translated into TransportError / ServiceError / MalformedResponseError
- No retries: a failure surfaces immediately to the pipeline runner
"""

import asyncio
import json
from typing import Any

import anthropic
import structlog

from strategy_pipeline.core.config import get_settings
from strategy_pipeline.core.exceptions import (
    MalformedResponseError,
    ServiceError,
    TransportError,
)
from strategy_pipeline.generation.llm_helpers import _parse_json_response

logger = structlog.get_logger(__name__)

JSON_ONLY_SYSTEM_PROMPT: str = (
    "You are a business strategy analyst. "
    "Respond with exactly one JSON object and nothing else: "
    "no prose before or after it, no markdown code fences."
)

_SNIPPET_LENGTH = 200


class AnthropicGenerationClient:
    """GenerationClient implementation using the Anthropic Messages API."""

    def __init__(
        self,
        client: Any | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        timeout_seconds: float | None = None,
    ):
        """Initialize with an optional pre-built SDK client.

        Args:
            client: Object exposing async messages.create(); defaults to AsyncAnthropic
            model: Model name (defaults to Settings.generation_model)
            max_tokens: Response token cap (defaults to Settings.generation_max_tokens)
            timeout_seconds: Per-call timeout (defaults to Settings.generation_timeout_seconds)
        """
        settings = get_settings()
        self.client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key or None)
        self.model = model or settings.generation_model
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self.timeout_seconds = timeout_seconds or settings.generation_timeout_seconds

    async def invoke(self, prompt: str) -> Any:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be a non-empty string")

        try:
            response = await asyncio.wait_for(
                self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=JSON_ONLY_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                ),
                timeout=self.timeout_seconds,
            )
        except (anthropic.APIConnectionError, asyncio.TimeoutError) as exc:
            # APITimeoutError is a subclass of APIConnectionError
            logger.warning(
                "generation_request_failed",
                model=self.model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise TransportError(f"Generation service unreachable: {type(exc).__name__}: {exc}") from exc
        except anthropic.APIStatusError as exc:
            logger.warning(
                "generation_request_failed",
                model=self.model,
                status_code=exc.status_code,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise ServiceError(f"Generation service returned status {exc.status_code}: {exc}") from exc
        except anthropic.APIError as exc:
            # Remaining SDK errors, e.g. APIResponseValidationError
            logger.warning(
                "generation_request_failed",
                model=self.model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise ServiceError(f"Generation service error: {type(exc).__name__}: {exc}") from exc

        raw_text = "".join(
            block.text for block in (response.content or []) if getattr(block, "type", None) == "text"
        )
        if not raw_text or not raw_text.strip():
            raise ServiceError("Generation service returned empty content")

        usage = getattr(response, "usage", None)
        logger.debug(
            "generation_request_completed",
            model=self.model,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
        )

        try:
            return _parse_json_response(raw_text)
        except json.JSONDecodeError as exc:
            snippet = raw_text.strip().replace("\n", " ")[:_SNIPPET_LENGTH]
            raise MalformedResponseError(
                f"Response is not valid JSON ({exc.msg} at char {exc.pos}): {snippet}",
                raw_text=raw_text,
            ) from exc
