"""Language model clients used by the extraction engine."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator, Callable, Sequence

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from services.instructor.exceptions import LlmClientError


logger = logging.getLogger(__name__)


MOCK_DEFAULT_RESPONSE = """{
  "fields": {
    "mockField": {
      "value": "mockValue",
      "confidence": 0.9,
      "reasoning": "This is a mock response.",
      "alternatives": []
    }
  },
  "errors": []
}"""


def extract_answer(content: str) -> str:
    """Strip the reasoning preamble some models put before their answer.

    Handles ``<think>...</think>`` (answer follows the closing tag),
    ``<thinking>`` paired with ``<answer>...</answer>``, and markdown
    ``## Thinking`` / ``## Answer`` sections. Anything else is returned as is.
    """
    if not content:
        return content

    marker = "</think>"
    if marker in content:
        answer = content[content.index(marker) + len(marker) :].strip()
        if answer:
            logger.debug("Dropped %d chars of <think> content", content.index(marker))
            return answer

    if "<thinking>" in content and "<answer>" in content:
        start = content.index("<answer>") + len("<answer>")
        end = content.find("</answer>", start)
        if end != -1:
            return content[start:end].strip()

    if "## Thinking" in content and "## Answer" in content:
        return content[content.index("## Answer") + len("## Answer") :].strip()

    return content


class PydanticAILlmClient:
    """LlmClient backed by a plain-text pydantic-ai Agent."""

    supports_streaming = True

    def __init__(self, agent: Agent[None, str]):
        self._agent = agent

    @classmethod
    def from_model(
        cls, model: Model, model_settings: ModelSettings | None = None
    ) -> PydanticAILlmClient:
        agent: Agent[None, str] = Agent(
            model,
            output_type=str,
            model_settings=model_settings,
            name="lazyform-extractor",
        )
        return cls(agent)

    async def complete(self, prompt: str) -> str:
        logger.debug("LLM request (%d chars)", len(prompt))
        try:
            result = await self._agent.run(prompt)
        except Exception as e:
            logger.error("LLM call failed: %s", e)
            raise LlmClientError(f"Language model error: {e}") from e
        content = result.output
        logger.debug("LLM response (%d chars)", len(content))
        return extract_answer(content)

    async def complete_streaming(self, prompt: str) -> AsyncIterator[str]:
        """Yield raw text deltas; reasoning is left in for the caller to strip."""
        logger.debug("LLM streaming request (%d chars)", len(prompt))
        try:
            async with self._agent.run_stream(prompt) as result:
                async for delta in result.stream_text(delta=True):
                    if delta:
                        yield delta
        except Exception as e:
            logger.error("LLM streaming call failed: %s", e)
            raise LlmClientError(f"Language model error: {e}") from e


class MockLlmClient:
    """Scripted LlmClient for tests, demos and the `mock` provider.

    Responses are served in order and the last one repeats. A `responder`
    callable, when given, takes precedence and receives each prompt. Explicit
    `stream_chunks` are replayed on every streaming call; otherwise streaming
    yields the full response as a single chunk. All prompts are recorded.
    """

    def __init__(
        self,
        responses: Sequence[str] | str | None = None,
        *,
        responder: Callable[[str], str] | None = None,
        stream_chunks: Sequence[str] | None = None,
        supports_streaming: bool = True,
    ) -> None:
        if isinstance(responses, str):
            responses = [responses]
        self._responses: deque[str] = deque(responses or [MOCK_DEFAULT_RESPONSE])
        self._responder = responder
        self._stream_chunks = list(stream_chunks) if stream_chunks else None
        self._supports_streaming = supports_streaming
        self.prompts: list[str] = []

    @property
    def supports_streaming(self) -> bool:
        return self._supports_streaming

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def set_response(self, response: str) -> None:
        self._responses = deque([response])

    def set_stream_chunks(self, chunks: Sequence[str] | None) -> None:
        self._stream_chunks = list(chunks) if chunks else None

    def _next_response(self, prompt: str) -> str:
        if self._responder is not None:
            return self._responder(prompt)
        if len(self._responses) > 1:
            return self._responses.popleft()
        return self._responses[0]

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self._next_response(prompt)

    async def complete_streaming(self, prompt: str) -> AsyncIterator[str]:
        if self._stream_chunks is None:
            yield await self.complete(prompt)
            return
        self.prompts.append(prompt)
        for chunk in self._stream_chunks:
            yield chunk
