"""Step execution for aiflow workflows."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..ai import AIInterface
from ..config import AIConfig
from ..constants import AI_PLACEHOLDER_RESPONSE
from ..contracts import (
    AIPromptStep,
    ConditionalStep,
    Context,
    LoopStep,
    ScriptStep,
    Step,
    StepResult,
    ValidationStep,
)
from ..errors import StepExecutionError, ValidationError
from ..expressions import evaluate
from ..runners import CommandRunner, ShellRunner
from ..templates import TemplateEngine
from ..utils import retry as retry_utils
from ..utils.values import UNDEFINED, resolve_path

DEFAULT_WORKFLOW_ID = "unknown-workflow"


class StepExecutor:
    """Executes single workflow steps, retrying them per their retry policy.

    Loop and conditional steps execute their children through
    ``execute_step`` again, so nested steps get their own retry handling.
    """

    def __init__(
        self,
        template_engine: TemplateEngine | None = None,
        ai_interface: AIInterface | None = None,
        runner: CommandRunner | None = None,
        ai_config: AIConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.template_engine = template_engine or TemplateEngine()
        self.ai_interface = ai_interface
        self.runner = runner or ShellRunner()
        self.ai_config = ai_config or AIConfig()
        self._logger = logger or logging.getLogger(__name__)

    async def execute_step(
        self,
        step: Step,
        context: Context,
        session_id: str,
        retry_count: int = 0,
        workflow_id: str = DEFAULT_WORKFLOW_ID,
    ) -> StepResult:
        """Run ``step`` against ``context``.

        On failure the step's retry policy decides whether to wait and try
        again with ``retry_count + 1``; otherwise the error propagates
        unchanged.
        """
        try:
            result = await self._dispatch(step, context, session_id, workflow_id)
        except Exception as exc:
            if not retry_utils.should_retry(step.retry_policy, exc, retry_count):
                raise
            delay = retry_utils.compute_backoff(step.retry_policy, retry_count)
            self._logger.warning(
                f"Step {step.id} failed (attempt {retry_count + 1}): {exc}. "
                f"Retrying in {delay}ms"
            )
            await retry_utils.schedule_retry(delay)
            return await self.execute_step(
                step, context, session_id, retry_count + 1, workflow_id
            )
        return result.model_copy(update={"retry_count": retry_count})

    async def _dispatch(
        self, step: Step, context: Context, session_id: str, workflow_id: str
    ) -> StepResult:
        self._logger.debug(f"Executing {step.type} step {step.id} in session {session_id}")
        if isinstance(step, AIPromptStep):
            return await self._execute_ai_prompt(step, context, workflow_id)
        if isinstance(step, ScriptStep):
            return await self._execute_script(step, context, workflow_id)
        if isinstance(step, ValidationStep):
            return self._execute_validation(step, context, workflow_id)
        if isinstance(step, LoopStep):
            return await self._execute_loop(step, context, session_id, workflow_id)
        if isinstance(step, ConditionalStep):
            return await self._execute_conditional(step, context, session_id, workflow_id)
        raise StepExecutionError(
            f"Unknown step type: {getattr(step, 'type', type(step).__name__)}",
            workflow_id=workflow_id,
            step_id=getattr(step, "id", None),
        )

    async def _execute_ai_prompt(
        self, step: AIPromptStep, context: Context, workflow_id: str
    ) -> StepResult:
        if not step.template and not step.agent:
            raise StepExecutionError(
                "AI prompt step requires either template or agent configuration",
                workflow_id=workflow_id,
                step_id=step.id,
            )

        prompt = None
        if step.template:
            prompt = self.template_engine.render(step.template, context.scope())
            self._logger.debug(f"Rendered prompt for step {step.id}:\n{prompt}")
        prompt_used = step.template or "Agent-specific prompt"

        if self.ai_interface is None:
            return StepResult(
                outputs={"ai_response": AI_PLACEHOLDER_RESPONSE, "prompt_used": prompt_used}
            )

        agent = step.agent or step.id
        response = await self.ai_interface.send_prompt(
            prompt if prompt is not None else f"Run the {agent} agent.",
            agent,
            self.ai_config.request_options(),
        )
        return StepResult(
            outputs={"ai_response": response.content, "prompt_used": prompt_used}
        )

    async def _execute_script(
        self, step: ScriptStep, context: Context, workflow_id: str
    ) -> StepResult:
        if not step.command:
            raise StepExecutionError(
                "Script step requires command configuration",
                workflow_id=workflow_id,
                step_id=step.id,
            )

        command = self.template_engine.render(step.command, context.scope())
        try:
            result = await self.runner.run(command)
        except OSError as exc:
            raise StepExecutionError(
                f"Script execution failed: Failed to execute command: {exc}",
                workflow_id=workflow_id,
                step_id=step.id,
            ) from exc

        if result.exit_code != step.expected_exit_code:
            raise StepExecutionError(
                "Script execution failed: Command failed with exit code "
                f"{result.exit_code}. stderr: {result.stderr}",
                workflow_id=workflow_id,
                step_id=step.id,
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        return StepResult(
            outputs={
                "stdout": result.stdout,
                "stderr": result.stderr,
                "exit_code": result.exit_code,
                "command": command,
            }
        )

    def _render_condition(self, condition: str, context: Context) -> tuple[str, bool]:
        scope = context.scope()
        rendered = self.template_engine.render(condition, scope)
        return rendered, evaluate(rendered, scope)

    def _execute_validation(
        self, step: ValidationStep, context: Context, workflow_id: str
    ) -> StepResult:
        if not step.condition:
            raise StepExecutionError(
                "Validation step requires condition configuration",
                workflow_id=workflow_id,
                step_id=step.id,
            )

        condition, valid = self._render_condition(step.condition, context)
        if not valid:
            raise ValidationError(f"Validation failed: {condition}")
        return StepResult(outputs={"validated": True, "condition": condition})

    async def _execute_loop(
        self, step: LoopStep, context: Context, session_id: str, workflow_id: str
    ) -> StepResult:
        if not step.items or not step.steps:
            raise StepExecutionError(
                "Loop step requires items and steps configuration",
                workflow_id=workflow_id,
                step_id=step.id,
            )

        items = resolve_path(step.items, context.scope())
        if not isinstance(items, list):
            raise StepExecutionError(
                f"Loop items must be an array, got {_type_name(items)}",
                workflow_id=workflow_id,
                step_id=step.id,
            )

        iterations: List[Dict[str, Any]] = []
        last_index = len(items) - 1
        for index, item in enumerate(items):
            iteration_context = context.model_copy(
                update={
                    "variables": {
                        **context.variables,
                        "item": item,
                        "index": index,
                        "first": index == 0,
                        "last": index == last_index,
                    }
                }
            )
            outputs = await self._run_children(
                step.steps, iteration_context, session_id, workflow_id
            )
            iterations.append({"index": index, "item": item, "outputs": outputs})

        return StepResult(outputs={"iterations": iterations, "total_count": len(items)})

    async def _execute_conditional(
        self,
        step: ConditionalStep,
        context: Context,
        session_id: str,
        workflow_id: str,
    ) -> StepResult:
        if not step.condition or not step.steps:
            raise StepExecutionError(
                "Conditional step requires condition and steps configuration",
                workflow_id=workflow_id,
                step_id=step.id,
            )

        condition, executed = self._render_condition(step.condition, context)
        outputs: Dict[str, Any] = {"condition": condition, "executed": executed}
        if executed:
            outputs["outputs"] = await self._run_children(
                step.steps, context, session_id, workflow_id
            )
        return StepResult(outputs=outputs)

    async def _run_children(
        self,
        steps: List[Step],
        context: Context,
        session_id: str,
        workflow_id: str,
    ) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for child in steps:
            result = await self.execute_step(
                child, context, session_id, workflow_id=workflow_id
            )
            merged.update(result.outputs)
            if not result.should_continue:
                break
        return merged


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if value is UNDEFINED:
        return "undefined"
    return type(value).__name__
