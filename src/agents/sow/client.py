"""Thin async wrapper around the chat model.

One call, one bounded wait, typed failures. Retrying is the caller's job.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Optional, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from src.agents.sow.prompts import StructuredPrompt
from src.config import settings
from src.core.exceptions import (
    GenerationTimeoutError,
    GenerationUnavailableError,
    InvalidPromptError,
    ModelConfigurationError,
)
from src.llm.factory import get_primary_llm, get_primary_model_name

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel

logger = logging.getLogger(__name__)


class RawModelOutput(BaseModel):
    text: str
    model: str
    tokens_used: Optional[int] = None
    latency_ms: float = 0.0


class GenerationClient(Protocol):
    async def generate(self, prompt: StructuredPrompt) -> RawModelOutput:
        ...


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content or "")


class LLMGenerationClient:
    """``GenerationClient`` backed by a LangChain chat model."""

    def __init__(
        self,
        llm: Optional["BaseChatModel"] = None,
        timeout_seconds: Optional[float] = None,
        max_prompt_chars: Optional[int] = None,
        model_name: Optional[str] = None,
    ):
        self._llm = llm
        self.timeout_seconds = timeout_seconds or settings.SOW_GENERATION_TIMEOUT_SECONDS
        self.max_prompt_chars = max_prompt_chars or settings.SOW_MAX_PROMPT_CHARS
        self.model_name = model_name or get_primary_model_name()

    def _check_prompt(self, prompt: StructuredPrompt) -> None:
        if not prompt.system.strip() or not prompt.user.strip():
            raise InvalidPromptError("Prompt is empty")
        size = len(prompt.system) + len(prompt.user)
        if size > self.max_prompt_chars:
            raise InvalidPromptError(f"Prompt is {size} characters; the limit is {self.max_prompt_chars}")

    def _resolve_llm(self) -> "BaseChatModel":
        if self._llm is not None:
            return self._llm
        try:
            return get_primary_llm()
        except (ValueError, ImportError) as e:
            logger.error("Chat model is not configured: %s", e)
            raise ModelConfigurationError(str(e)) from e

    async def generate(self, prompt: StructuredPrompt) -> RawModelOutput:
        self._check_prompt(prompt)
        messages = [SystemMessage(content=prompt.system), HumanMessage(content=prompt.user)]

        llm = self._resolve_llm()
        started = time.perf_counter()
        try:
            response = await asyncio.wait_for(llm.ainvoke(messages), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"Model call exceeded {self.timeout_seconds:g}s ({prompt.template_id})")
            raise GenerationTimeoutError(self.timeout_seconds) from e
        except Exception as e:
            logger.error("Model call failed: %s", e)
            raise GenerationUnavailableError(f"Model provider unavailable: {e}") from e
        latency_ms = (time.perf_counter() - started) * 1000

        metadata = getattr(response, "response_metadata", None) or {}
        usage = getattr(response, "usage_metadata", None) or {}
        return RawModelOutput(
            text=_content_text(response.content),
            model=metadata.get("model") or metadata.get("model_name") or self.model_name,
            tokens_used=usage.get("total_tokens"),
            latency_ms=round(latency_ms, 1),
        )


_default_client: Optional[LLMGenerationClient] = None


def get_generation_client() -> LLMGenerationClient:
    global _default_client
    if _default_client is None:
        _default_client = LLMGenerationClient()
    return _default_client
