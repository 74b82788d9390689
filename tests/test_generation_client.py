import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.agents.sow.client import LLMGenerationClient
from src.agents.sow.prompts import StructuredPrompt
from src.core.exceptions import (
    GenerationTimeoutError,
    GenerationUnavailableError,
    InvalidPromptError,
    ModelConfigurationError,
    TransientGenerationError,
)


@pytest.fixture
def prompt():
    return StructuredPrompt(
        system="You are a UK construction professional.",
        user="Generate the Scope of Work for this project.",
        template_id="loft-conversion-v2.1",
        template_version="2.1",
    )


def make_client(llm, **kwargs):
    kwargs.setdefault("timeout_seconds", 1)
    kwargs.setdefault("max_prompt_chars", 10_000)
    kwargs.setdefault("model_name", "configured-model")
    return LLMGenerationClient(llm=llm, **kwargs)


# ---------------------------------------------------------------------------
# Successful calls
# ---------------------------------------------------------------------------

class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_text_model_and_tokens(self, prompt):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(
            content='{"ribaStages": []}',
            response_metadata={"model_name": "gpt-4o-2024-08-06"},
            usage_metadata={"input_tokens": 900, "output_tokens": 300, "total_tokens": 1200},
        ))

        output = await make_client(llm).generate(prompt)

        assert output.text == '{"ribaStages": []}'
        assert output.model == "gpt-4o-2024-08-06"
        assert output.tokens_used == 1200
        assert output.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_sends_system_and_user_messages(self, prompt):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="{}"))

        await make_client(llm).generate(prompt)

        messages = llm.ainvoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[1].content == prompt.user

    @pytest.mark.asyncio
    async def test_content_blocks_are_joined(self, prompt):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content=[
            {"type": "text", "text": '{"ribaStages": '},
            {"type": "text", "text": "[]}"},
        ]))

        output = await make_client(llm).generate(prompt)

        assert output.text == '{"ribaStages": []}'
        assert output.model == "configured-model"
        assert output.tokens_used is None


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    @pytest.mark.asyncio
    async def test_slow_model_times_out(self, prompt):
        async def slow(messages):
            await asyncio.sleep(5)

        llm = MagicMock()
        llm.ainvoke = slow

        with pytest.raises(GenerationTimeoutError) as exc_info:
            await make_client(llm, timeout_seconds=0.05).generate(prompt)

        assert exc_info.value.timeout_seconds == 0.05
        assert str(exc_info.value) == "Model call timed out after 0.05s"
        assert isinstance(exc_info.value, TransientGenerationError)

    @pytest.mark.asyncio
    async def test_provider_error_is_unavailable(self, prompt):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=ConnectionError("connection refused"))

        with pytest.raises(GenerationUnavailableError, match="Model provider unavailable: connection refused"):
            await make_client(llm).generate(prompt)

    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_not_retryable(self, prompt):
        with patch("src.agents.sow.client.get_primary_llm", side_effect=ValueError("OPENAI_API_KEY is required")):
            with pytest.raises(ModelConfigurationError, match="OPENAI_API_KEY") as exc_info:
                await make_client(None).generate(prompt)

        assert not isinstance(exc_info.value, TransientGenerationError)

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected_before_calling_model(self, prompt):
        llm = MagicMock()
        llm.ainvoke = AsyncMock()

        with pytest.raises(InvalidPromptError, match="Prompt is empty"):
            await make_client(llm).generate(prompt.model_copy(update={"user": "   "}))

        llm.ainvoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_prompt_rejected(self, prompt):
        llm = MagicMock()
        llm.ainvoke = AsyncMock()

        with pytest.raises(InvalidPromptError, match="the limit is 20"):
            await make_client(llm, max_prompt_chars=20).generate(prompt)

        llm.ainvoke.assert_not_awaited()

    def test_invalid_prompt_is_not_retryable(self):
        assert not issubclass(InvalidPromptError, TransientGenerationError)
