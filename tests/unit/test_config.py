"""Tests for configuration loading."""

from pathlib import Path

import pytest

from aiflow.ai import ManualInterface, get_ai_interface
from aiflow.config import load_config
from aiflow.errors import ConfigurationError


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
state_dir: /tmp/aiflow-state
workflow_dirs:
  - /opt/workflows
ai:
  backend: manual
  temperature: 0.3
  max_tokens: 512
"""
    )
    monkeypatch.setenv("AIFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("AIFLOW_HOME", raising=False)

    config = load_config()
    assert config.state_dir == Path("/tmp/aiflow-state")
    assert config.workflow_dirs == [Path("/opt/workflows")]
    assert config.ai.backend == "manual"
    assert config.ai.request_options() == {
        "temperature": 0.3,
        "max_tokens": 512,
        "timeout": 300.0,
    }


def test_missing_config_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("AIFLOW_HOME", raising=False)
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.ai.backend == "placeholder"
    assert config.workflow_dirs == []


def test_aiflow_home_overrides_state_dir(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("state_dir: /somewhere/else\n")
    monkeypatch.setenv("AIFLOW_HOME", str(tmp_path / "home"))

    config = load_config(str(config_path))
    assert config.state_dir == tmp_path / "home" / "state"


@pytest.mark.parametrize(
    "content",
    [
        "ai: [unclosed\n",
        "ai:\n  backend: carrier-pigeon\n",
        "- just\n- a list\n",
    ],
)
def test_invalid_config_raises(tmp_path, content):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content)

    with pytest.raises(ConfigurationError) as exc_info:
        load_config(str(config_path))
    assert exc_info.value.config_path == str(config_path)


def test_get_ai_interface_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("ai:\n  backend: manual\n  timeout: 5\n")
    monkeypatch.setenv("AIFLOW_CONFIG", str(config_path))

    interface = get_ai_interface()
    assert isinstance(interface, ManualInterface)
    assert interface.timeout == 5
