"""Claude-backed agent sending a single prompt through the shared LLM pool."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import Field

from agentmux.agents.base import ActionAgent, ActionPayload
from agentmux.core.logging import get_logger

if TYPE_CHECKING:
    from agentmux.services.llm_pool import LLMPool

logger = get_logger(__name__)

CLIENT_NAME = "claude"
DEFAULT_MODEL = "claude-3-opus-20240229"


class CompletePayload(ActionPayload):
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None
    max_tokens: int = Field(1000, alias="maxTokens", gt=0)
    temperature: float = Field(0.7, ge=0.0, le=1.0)


class ClaudeAgent(ActionAgent):
    name = "claude"
    actions = {"complete": CompletePayload}
    cacheable = frozenset({"complete"})

    def __init__(self, llm_pool: LLMPool, default_model: str = DEFAULT_MODEL) -> None:
        self._llm_pool = llm_pool
        self._default_model = default_model

    async def handle(self, action: str, payload: CompletePayload) -> Dict[str, Any]:
        if not self._llm_pool.has(CLIENT_NAME):
            raise RuntimeError("Claude agent is not configured. ANTHROPIC_API_KEY is missing.")

        model = payload.model or self._default_model
        async with self._llm_pool.acquire(CLIENT_NAME) as client:
            response = await client.messages.create(
                model=model,
                max_tokens=payload.max_tokens,
                temperature=payload.temperature,
                messages=[{"role": "user", "content": payload.prompt}],
            )

        completion = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = getattr(response, "usage", None)
        logger.info("claude_completion_received", model=model, chars=len(completion))
        return {
            "completion": completion,
            "model": getattr(response, "model", model),
            "usage": {
                "input_tokens": getattr(usage, "input_tokens", None),
                "output_tokens": getattr(usage, "output_tokens", None),
            },
        }


def build_handler(llm_pool: LLMPool, default_model: Optional[str] = None) -> ClaudeAgent:
    return ClaudeAgent(llm_pool, default_model=default_model or DEFAULT_MODEL)
