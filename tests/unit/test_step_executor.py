"""Tests for the step executor."""

import pytest

from aiflow.ai.base import AIInterface, AIResponse
from aiflow.config import AIConfig
from aiflow.constants import AI_PLACEHOLDER_RESPONSE
from aiflow.contracts import (
    AIPromptStep,
    ConditionalStep,
    Context,
    LoopStep,
    RetryPolicy,
    ScriptStep,
    ValidationStep,
)
from aiflow.engine import StepExecutor
from aiflow.errors import StepExecutionError, ValidationError
from aiflow.runners import CommandResult


class FakeRunner:
    """Records commands and replays queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.commands = []

    async def run(self, command):
        self.commands.append(command)
        result = self.results.pop(0) if self.results else CommandResult(
            stdout="", stderr="", exit_code=0
        )
        if isinstance(result, Exception):
            raise result
        return result


class EchoAI(AIInterface):
    name = "echo"

    def __init__(self):
        super().__init__()
        self.calls = []

    async def send_prompt(self, prompt, agent, config=None):
        self.calls.append((prompt, agent, config))
        return AIResponse(content=f"{agent}: {prompt}", agent=agent)


@pytest.fixture
def sleeps(monkeypatch):
    delays = []

    async def fake_schedule(delay_ms):
        delays.append(delay_ms)

    monkeypatch.setattr("aiflow.utils.retry.schedule_retry", fake_schedule)
    return delays


@pytest.mark.asyncio
async def test_ai_prompt_without_interface_returns_placeholder():
    executor = StepExecutor()
    step = AIPromptStep(id="ask", template="Summarise ${topic}")
    result = await executor.execute_step(step, Context(), "s1")
    assert result.outputs == {
        "ai_response": AI_PLACEHOLDER_RESPONSE,
        "prompt_used": "Summarise ${topic}",
    }
    assert result.should_continue


@pytest.mark.asyncio
async def test_ai_prompt_sends_rendered_prompt():
    ai = EchoAI()
    executor = StepExecutor(ai_interface=ai, ai_config=AIConfig(temperature=0.2))
    step = AIPromptStep(id="ask", agent="writer", template="About ${topic}")
    context = Context(inputs={"topic": "cats"})

    result = await executor.execute_step(step, context, "s1")

    assert result.outputs["ai_response"] == "writer: About cats"
    assert ai.calls[0][2]["temperature"] == 0.2


@pytest.mark.asyncio
async def test_ai_prompt_requires_template_or_agent():
    with pytest.raises(StepExecutionError) as exc_info:
        await StepExecutor().execute_step(AIPromptStep(id="ask"), Context(), "s1")
    assert exc_info.value.step_id == "ask"
    assert exc_info.value.workflow_id == "unknown-workflow"


@pytest.mark.asyncio
async def test_script_renders_command_from_inputs_and_variables():
    runner = FakeRunner(CommandResult(stdout="hi", stderr="", exit_code=0))
    executor = StepExecutor(runner=runner)
    context = Context(inputs={"name": "hi"}, variables={"flag": "-n"})

    result = await executor.execute_step(
        ScriptStep(id="greet", command="echo ${flag} ${name}"), context, "s1"
    )

    assert runner.commands == ["echo -n hi"]
    assert result.outputs == {
        "stdout": "hi",
        "stderr": "",
        "exit_code": 0,
        "command": "echo -n hi",
    }


@pytest.mark.asyncio
async def test_script_exit_code_mismatch_fails():
    runner = FakeRunner(CommandResult(stdout="", stderr="nope", exit_code=2))
    executor = StepExecutor(runner=runner)

    with pytest.raises(StepExecutionError) as exc_info:
        await executor.execute_step(
            ScriptStep(id="build", command="make"), Context(), "s1", workflow_id="wf"
        )

    error = exc_info.value
    assert "exit code 2" in str(error)
    assert "nope" in str(error)
    assert error.exit_code == 2
    assert error.workflow_id == "wf"


@pytest.mark.asyncio
async def test_script_expected_nonzero_exit_code():
    runner = FakeRunner(CommandResult(stdout="", stderr="", exit_code=1))
    step = ScriptStep.model_validate(
        {"id": "check", "type": "script", "command": "false", "expectedExitCode": 1}
    )
    result = await StepExecutor(runner=runner).execute_step(step, Context(), "s1")
    assert result.outputs["exit_code"] == 1


@pytest.mark.asyncio
async def test_script_spawn_failure_is_wrapped():
    runner = FakeRunner(OSError("no shell"))
    with pytest.raises(StepExecutionError) as exc_info:
        await StepExecutor(runner=runner).execute_step(
            ScriptStep(id="run", command="x"), Context(), "s1"
        )
    assert "Failed to execute command" in str(exc_info.value)


@pytest.mark.asyncio
async def test_script_runs_real_subprocess():
    result = await StepExecutor().execute_step(
        ScriptStep(id="echo", command="echo ${word}"),
        Context(variables={"word": "hello"}),
        "s1",
    )
    assert result.outputs["stdout"] == "hello"


@pytest.mark.asyncio
async def test_validation_step():
    executor = StepExecutor()
    context = Context(variables={"count": 3})

    result = await executor.execute_step(
        ValidationStep(id="check", condition="count > 2"), context, "s1"
    )
    assert result.outputs == {"validated": True, "condition": "count > 2"}

    with pytest.raises(ValidationError) as exc_info:
        await executor.execute_step(
            ValidationStep(id="check", condition="count > ${limit}"),
            Context(variables={"count": 3, "limit": 5}),
            "s1",
        )
    assert "Validation failed: count > 5" in str(exc_info.value)


@pytest.mark.asyncio
async def test_loop_exposes_iteration_variables():
    executor = StepExecutor()
    step = LoopStep(
        id="each",
        items="files",
        steps=[ValidationStep(id="v", condition="index >= 0")],
    )
    context = Context(variables={"files": ["a", "b", "c"]})

    result = await executor.execute_step(step, context, "s1")

    assert result.outputs["total_count"] == 3
    iterations = result.outputs["iterations"]
    assert [i["item"] for i in iterations] == ["a", "b", "c"]
    assert iterations[0]["index"] == 0


@pytest.mark.asyncio
async def test_loop_first_and_last_flags():
    runner = FakeRunner()
    executor = StepExecutor(runner=runner)
    step = LoopStep(
        id="each",
        items="items",
        steps=[ScriptStep(id="s", command="${index}:${item}:${first}:${last}")],
    )

    await executor.execute_step(step, Context(variables={"items": ["a", "b", "c"]}), "s1")

    assert runner.commands == [
        "0:a:true:false",
        "1:b:false:false",
        "2:c:false:true",
    ]


@pytest.mark.asyncio
async def test_loop_requires_list():
    step = LoopStep(id="each", items="name", steps=[ValidationStep(id="v", condition="true")])
    with pytest.raises(StepExecutionError) as exc_info:
        await StepExecutor().execute_step(step, Context(variables={"name": "x"}), "s1")
    assert "must be an array, got string" in str(exc_info.value)


@pytest.mark.asyncio
async def test_loop_does_not_leak_iteration_variables():
    context = Context(variables={"items": [1]})
    step = LoopStep(id="each", items="items", steps=[ValidationStep(id="v", condition="item")])
    await StepExecutor().execute_step(step, context, "s1")
    assert "item" not in context.variables


@pytest.mark.asyncio
async def test_conditional_executes_children_only_when_true():
    runner = FakeRunner(CommandResult(stdout="done", stderr="", exit_code=0))
    executor = StepExecutor(runner=runner)
    step = ConditionalStep(
        id="maybe",
        condition="enabled == true",
        steps=[ScriptStep(id="s", command="deploy")],
    )

    skipped = await executor.execute_step(step, Context(variables={"enabled": False}), "s1")
    assert skipped.outputs == {"condition": "enabled == true", "executed": False}
    assert runner.commands == []

    ran = await executor.execute_step(step, Context(variables={"enabled": True}), "s1")
    assert ran.outputs["executed"] is True
    assert ran.outputs["outputs"]["stdout"] == "done"


@pytest.mark.asyncio
async def test_unknown_step_type_fails():
    class Bogus:
        id = "odd"
        type = "teleport"
        retry_policy = None

    with pytest.raises(StepExecutionError) as exc_info:
        await StepExecutor().execute_step(Bogus(), Context(), "s1")
    assert "Unknown step type: teleport" in str(exc_info.value)


@pytest.mark.asyncio
async def test_retry_ceiling(sleeps):
    runner = FakeRunner(*[CommandResult(stdout="", stderr="boom", exit_code=1)] * 5)
    step = ScriptStep(
        id="flaky",
        command="flaky",
        retry_policy=RetryPolicy(max_attempts=2, backoff_ms=100),
    )

    with pytest.raises(StepExecutionError):
        await StepExecutor(runner=runner).execute_step(step, Context(), "s1")

    assert sleeps == [100, 200]
    assert len(runner.commands) == 3


@pytest.mark.asyncio
async def test_retry_succeeds_after_failure(sleeps):
    runner = FakeRunner(
        CommandResult(stdout="", stderr="busy", exit_code=1),
        CommandResult(stdout="ok", stderr="", exit_code=0),
    )
    step = ScriptStep(id="s", command="x", retry_policy=RetryPolicy(max_attempts=3))

    result = await StepExecutor(runner=runner).execute_step(step, Context(), "s1")

    assert result.outputs["stdout"] == "ok"
    assert result.retry_count == 1
    assert sleeps == [1000]


@pytest.mark.asyncio
async def test_no_policy_means_no_retry(sleeps):
    runner = FakeRunner(CommandResult(stdout="", stderr="", exit_code=1))
    with pytest.raises(StepExecutionError):
        await StepExecutor(runner=runner).execute_step(
            ScriptStep(id="s", command="x"), Context(), "s1"
        )
    assert sleeps == []


@pytest.mark.asyncio
async def test_retry_on_filters_error_kinds(sleeps):
    policy = RetryPolicy(max_attempts=3, retry_on=["timeout"])
    step = ValidationStep(id="v", condition="false", retry_policy=policy)

    with pytest.raises(ValidationError):
        await StepExecutor().execute_step(step, Context(), "s1")
    assert sleeps == []


@pytest.mark.asyncio
async def test_nested_steps_use_their_own_retry_policy(sleeps):
    runner = FakeRunner(
        CommandResult(stdout="", stderr="", exit_code=1),
        CommandResult(stdout="ok", stderr="", exit_code=0),
    )
    step = ConditionalStep(
        id="c",
        condition="true",
        steps=[
            ScriptStep(
                id="inner",
                command="x",
                retry_policy=RetryPolicy(max_attempts=1, backoff_ms=10),
            )
        ],
    )

    result = await StepExecutor(runner=runner).execute_step(step, Context(), "s1")

    assert result.outputs["outputs"]["stdout"] == "ok"
    assert sleeps == [10]
