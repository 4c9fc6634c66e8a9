"""Template rendering for prompts and shell commands."""

from __future__ import annotations

from .engine import TemplateEngine, TemplateValidation, tokenize
from .filters import FILTERS

__all__ = ["FILTERS", "TemplateEngine", "TemplateValidation", "tokenize"]
