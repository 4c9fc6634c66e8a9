"""Loading and validation of YAML workflow definitions."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from .constants import CONFIG_DIR, DEFAULT_WORKFLOW_DIR, GLOBAL_CONFIG_DIR
from .contracts import Workflow
from .errors import FieldError, ValidationError

logger = logging.getLogger(__name__)

WORKFLOW_SUFFIXES = (".yaml", ".yml")


class WorkflowFile(BaseModel):
    id: str
    path: Path


class WorkflowFileValidation(BaseModel):
    valid: bool
    errors: List[FieldError] = []


def _field_errors(exc: SchemaError) -> List[FieldError]:
    return [
        FieldError(
            field=".".join(str(part) for part in error["loc"]) or "workflow",
            message=error["msg"],
        )
        for error in exc.errors()
    ]


def parse_workflow(content: str, source: str = "<string>") -> Workflow:
    """Parse YAML ``content`` into a validated ``Workflow``.

    Raises:
        ValidationError: The YAML is malformed or does not match the schema.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ValidationError(f"Failed to parse YAML in {source}: {exc}") from exc

    if not isinstance(data, dict):
        raise ValidationError(
            f"Workflow validation failed in {source}",
            [FieldError(field="workflow", message="Expected a mapping at the top level")],
        )

    try:
        return Workflow.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(
            f"Workflow validation failed in {source}", _field_errors(exc)
        ) from exc


class WorkflowLoader:
    """Find workflow definitions by id across the configured directories.

    Directories are searched in priority order: extra ``search_dirs`` first,
    then the project's ``.aiflow/workflows`` and ``workflows``, the same two
    under the current directory, and finally ``~/.aiflow/workflows``.
    """

    def __init__(
        self,
        project_root: str | Path | None = None,
        search_dirs: Optional[Iterable[str | Path]] = None,
    ) -> None:
        dirs: List[Path] = [Path(d) for d in search_dirs or []]
        if project_root:
            root = Path(project_root)
            dirs.append(root / CONFIG_DIR / DEFAULT_WORKFLOW_DIR)
            dirs.append(root / DEFAULT_WORKFLOW_DIR)
        cwd = Path.cwd()
        dirs.append(cwd / CONFIG_DIR / DEFAULT_WORKFLOW_DIR)
        dirs.append(cwd / DEFAULT_WORKFLOW_DIR)
        dirs.append(GLOBAL_CONFIG_DIR / DEFAULT_WORKFLOW_DIR)

        self._dirs: List[Path] = []
        for directory in dirs:
            if directory not in self._dirs:
                self._dirs.append(directory)

    def search_directories(self) -> List[Path]:
        return list(self._dirs)

    async def load_workflow(self, workflow_id: str) -> Workflow:
        """Load the first ``<workflow_id>.yaml`` (or ``.yml``) found."""
        for directory in self._dirs:
            for suffix in WORKFLOW_SUFFIXES:
                path = directory / f"{workflow_id}{suffix}"
                try:
                    content = await asyncio.to_thread(path.read_text, encoding="utf-8")
                except FileNotFoundError:
                    continue
                logger.debug(f"Loading workflow {workflow_id} from {path}")
                return parse_workflow(content, str(path))

        raise ValidationError(
            f"Workflow '{workflow_id}' not found in any workflow directory",
            [FieldError(field="directory", message=str(d)) for d in self._dirs],
        )

    async def list_workflows(self) -> List[WorkflowFile]:
        """All workflow files, the first occurrence of each id winning."""
        return await asyncio.to_thread(self._scan)

    def _scan(self) -> List[WorkflowFile]:
        seen: set[str] = set()
        workflows: List[WorkflowFile] = []
        for directory in self._dirs:
            try:
                files = sorted(directory.iterdir())
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(f"Error reading directory {directory}: {exc}")
                continue
            for file in files:
                if file.suffix not in WORKFLOW_SUFFIXES or file.stem in seen:
                    continue
                seen.add(file.stem)
                workflows.append(WorkflowFile(id=file.stem, path=file))
        return workflows

    async def validate_workflow_file(self, path: str | Path) -> WorkflowFileValidation:
        """Check a single file without registering it anywhere."""
        try:
            content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
            parse_workflow(content, str(path))
        except ValidationError as exc:
            errors = exc.errors or [FieldError(field="general", message=exc.message)]
            return WorkflowFileValidation(valid=False, errors=errors)
        except OSError as exc:
            return WorkflowFileValidation(
                valid=False, errors=[FieldError(field="general", message=str(exc))]
            )
        return WorkflowFileValidation(valid=True)


__all__ = [
    "WorkflowFile",
    "WorkflowFileValidation",
    "WorkflowLoader",
    "parse_workflow",
]
