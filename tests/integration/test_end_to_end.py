"""Run a workflow from YAML on disk through the real engine, shell and state files."""

import json

import pytest

from aiflow import create_engine
from aiflow.config import AiflowConfig
from aiflow.constants import AI_PLACEHOLDER_RESPONSE
from aiflow.engine import EventBus, WorkflowEvent
from aiflow.errors import WorkflowError

PIPELINE = """
id: aiflow-e2e
name: End to end
inputs:
  - name: name
    type: string
    required: true
  - name: files
    type: array
    default: [a.txt, b.txt]
steps:
  - id: list-files
    type: script
    command: echo ${foreach f in files}${f} ${endforeach}for ${name}
  - id: greet
    type: script
    command: echo ${name}
  - id: check-greeting
    type: validation
    condition: stdout == 'hi' && exit_code == 0
  - id: per-file
    type: loop
    items: files
    steps:
      - id: touch
        type: script
        command: echo ${index}-${item | uppercase}
  - id: summary
    type: ai-prompt
    agent: writer
    template: Summarise the files for ${name}.
outputs:
  - name: stdout
    type: string
  - name: ai_response
    type: string
"""


@pytest.fixture
def engine(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("AIFLOW_HOME", raising=False)
    workflows = tmp_path / "workflows"
    workflows.mkdir()
    (workflows / "aiflow-e2e.yaml").write_text(PIPELINE)

    bus = EventBus()
    bus.seen = []
    bus.on(WorkflowEvent, bus.seen.append)
    config = AiflowConfig(state_dir=tmp_path / "state")
    return create_engine(config, project_root=tmp_path, events=bus)


@pytest.mark.asyncio
async def test_workflow_runs_to_completion(engine, tmp_path):
    workflow = await engine.workflow_loader.load_workflow("aiflow-e2e")

    state = await engine.execute(workflow, {"name": "hi"})

    assert state.status == "completed"
    assert [e.step_id for e in state.step_history] == [
        "list-files",
        "greet",
        "check-greeting",
        "per-file",
        "summary",
    ]
    loop_outputs = state.step_history[3].outputs
    assert loop_outputs["total_count"] == 2
    assert [i["outputs"]["stdout"] for i in loop_outputs["iterations"]] == [
        "0-A.TXT",
        "1-B.TXT",
    ]
    assert state.step_history[0].outputs["stdout"] == "a.txt b.txt for hi"
    assert state.step_history[4].outputs["prompt_used"] == "Summarise the files for ${name}."

    assert state.outputs["stdout"] == "hi"
    assert state.outputs["ai_response"] == AI_PLACEHOLDER_RESPONSE

    session_file = tmp_path / "state" / "completed" / f"{state.session_id}.json"
    data = json.loads(session_file.read_text())
    assert data["status"] == "completed"
    assert data["context"]["variables"]["stdout"] == "hi"
    assert not list((tmp_path / "state" / "running").iterdir())

    names = [type(e).__name__ for e in engine.events.seen]
    assert names[0] == "WorkflowStarted"
    assert names[-1] == "WorkflowCompleted"


@pytest.mark.asyncio
async def test_failed_check_leaves_failed_session(engine, tmp_path):
    workflow = await engine.workflow_loader.load_workflow("aiflow-e2e")

    with pytest.raises(WorkflowError) as exc_info:
        await engine.execute(workflow, {"name": "bye"})

    assert exc_info.value.step_id == "check-greeting"
    failed = list((tmp_path / "state" / "failed").glob("*.json"))
    assert len(failed) == 1
    data = json.loads(failed[0].read_text())
    assert [e["status"] for e in data["step_executions"]] == [
        "success",
        "success",
        "failed",
    ]
