"""GenerationClient Protocol: the capability boundary around the generative-text service.

Implementations:
- AnthropicGenerationClient: production client backed by the Anthropic Messages API
- GenerationClientFake: scripted test double, no network
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class GenerationClient(Protocol):
    """Sends one self-contained prompt and returns the parsed JSON value.

    Each call is stateless: the prompt must carry all context the service needs.
    Implementations never retry.
    """

    async def invoke(self, prompt: str) -> Any:
        """Send a prompt and return the single JSON value parsed from the response.

        Args:
            prompt: Complete, non-empty natural-language prompt

        Returns:
            Parsed JSON value (content is not interpreted)

        Raises:
            TransportError: Service unreachable or timed out
            ServiceError: Service returned an error or an empty response
            MalformedResponseError: Response text is not valid JSON
        """
        ...
