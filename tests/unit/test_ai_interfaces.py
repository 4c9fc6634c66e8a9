"""Tests for AI communication providers."""

import io

import pytest
from pydantic_ai.models.test import TestModel

from aiflow.ai import ManualInterface, get_ai_interface
from aiflow.ai.agent import PydanticAIInterface
from aiflow.ai.base import Usage
from aiflow.config import AiflowConfig, AIConfig
from aiflow.errors import AIResponseValidationError, ConfigurationError


@pytest.mark.asyncio
async def test_manual_interface_reads_until_two_blank_lines():
    stream = io.StringIO(
        "The summary is complete.\n\nSecond paragraph here.\n\n\nignored tail\n"
    )
    interface = ManualInterface(input_stream=stream)

    response = await interface.send_prompt("Summarise", "writer")

    assert response.content == "The summary is complete.\nSecond paragraph here."
    assert response.agent == "writer"
    assert response.model == "manual-input"


@pytest.mark.asyncio
async def test_manual_interface_accepts_end_of_input():
    interface = ManualInterface(input_stream=io.StringIO("A perfectly fine answer"))
    response = await interface.send_prompt("p", "a", {"model": "gpt-test"})
    assert response.content == "A perfectly fine answer"
    assert response.model == "gpt-test"


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["short", "[insert answer here] please", "TODO: write it later"])
async def test_manual_interface_rejects_unusable_replies(reply):
    interface = ManualInterface(input_stream=io.StringIO(reply))
    with pytest.raises(AIResponseValidationError) as exc_info:
        await interface.send_prompt("p", "reviewer")
    assert "reviewer" in str(exc_info.value)


def test_get_ai_interface_backends():
    assert get_ai_interface(config=AiflowConfig()) is None
    assert isinstance(get_ai_interface("manual", config=AiflowConfig()), ManualInterface)

    with pytest.raises(ConfigurationError):
        get_ai_interface("pydantic-ai", config=AiflowConfig())
    with pytest.raises(ConfigurationError):
        get_ai_interface("carrier-pigeon", config=AiflowConfig())


def test_get_ai_interface_builds_pydantic_ai_provider():
    config = AiflowConfig(
        ai=AIConfig(backend="pydantic-ai", model="test", system_prompts={"writer": "Be brief."})
    )
    interface = get_ai_interface(config=config)
    assert isinstance(interface, PydanticAIInterface)
    assert interface.system_prompts == {"writer": "Be brief."}


@pytest.mark.asyncio
async def test_pydantic_ai_interface_returns_model_output():
    interface = PydanticAIInterface(TestModel(custom_output_text="Looks good to me."))

    response = await interface.send_prompt("Review this", "reviewer", {"temperature": 0.1})

    assert response.content == "Looks good to me."
    assert response.agent == "reviewer"
    assert response.model == "test"
    assert response.usage.total_tokens > 0
    assert interface.get_usage() == response.usage
    assert not interface.supports_streaming()


@pytest.mark.asyncio
async def test_pydantic_ai_interface_caches_agents_and_accumulates_usage():
    interface = PydanticAIInterface(TestModel(custom_output_text="Fine answer."))

    first = await interface.send_prompt("one", "writer")
    second = await interface.send_prompt("two", "writer")

    assert interface.get_agent("writer") is interface.get_agent("writer")
    assert interface.get_usage() == first.usage + second.usage

    interface.reset_usage()
    assert interface.get_usage() is None


def test_usage_addition():
    total = Usage(prompt_tokens=1, completion_tokens=2, total_tokens=3) + Usage(
        prompt_tokens=4, completion_tokens=5, total_tokens=9
    )
    assert total == Usage(prompt_tokens=5, completion_tokens=7, total_tokens=12)
