"""Template engine for rendering prompts and commands.

Templates interpolate ``${path}`` expressions against a context mapping and
support filters (``${name | trim | uppercase}``), conditional blocks
(``${if path}...${endif}``) and loops (``${foreach x in items}...
${endforeach}``). A backslash before the dollar sign (``\\${``) emits a
literal ``${``.

Rendering is a three stage pipeline: the source is tokenized, the tokens are
parsed into a small AST and the AST is evaluated against the context. Parsed
ASTs are cached per template string for the lifetime of the engine.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..errors import TemplateError
from ..utils.values import is_nullish, resolve_path, stringify, template_truthy
from .filters import FILTERS

_FOREACH = re.compile(r"^(\w+)\s+in\s+(.+)$")
_FILTER_CALL = re.compile(r"^(\w+)(?:\(([^)]*)\))?$")


class TokenType(str, Enum):
    TEXT = "text"
    VARIABLE = "variable"
    IF_START = "if_start"
    IF_END = "if_end"
    FOREACH_START = "foreach_start"
    FOREACH_END = "foreach_end"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    position: int


@dataclass(frozen=True)
class FilterCall:
    name: str
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TextNode:
    value: str


@dataclass(frozen=True)
class VariableNode:
    path: str
    filters: Tuple[FilterCall, ...] = ()


@dataclass(frozen=True)
class ConditionalNode:
    condition: str
    true_branch: Tuple["Node", ...] = ()
    # Never populated by the parser; there is no ``else`` syntax.
    false_branch: Optional[Tuple["Node", ...]] = None


@dataclass(frozen=True)
class LoopNode:
    item_name: str
    collection_path: str
    body: Tuple["Node", ...] = field(default_factory=tuple)


Node = Union[TextNode, VariableNode, ConditionalNode, LoopNode]


class TemplateValidation(BaseModel):
    """Outcome of ``TemplateEngine.validate``."""

    valid: bool
    errors: List[str] = Field(default_factory=list)


def tokenize(template: str) -> List[Token]:
    """Split ``template`` into text and expression tokens."""
    tokens: List[Token] = []
    buffer = ""
    buffer_start = 0
    position = 0

    while position < len(template):
        if template.startswith("\\${", position):
            if not buffer:
                buffer_start = position
            buffer += "${"
            position += 3
            continue

        if template.startswith("${", position):
            if buffer:
                tokens.append(Token(TokenType.TEXT, buffer, buffer_start))
                buffer = ""

            close = template.find("}", position + 2)
            if close == -1:
                raise TemplateError(
                    f"Unclosed template expression at position {position}",
                    position=position,
                )

            expression = template[position + 2 : close].strip()
            tokens.append(_classify(expression, position))
            position = close + 1
            continue

        if not buffer:
            buffer_start = position
        buffer += template[position]
        position += 1

    if buffer:
        tokens.append(Token(TokenType.TEXT, buffer, buffer_start))

    return tokens


def _classify(expression: str, position: int) -> Token:
    if expression.startswith("if "):
        return Token(TokenType.IF_START, expression[3:].strip(), position)
    if expression == "endif":
        return Token(TokenType.IF_END, "", position)
    if expression.startswith("foreach "):
        return Token(TokenType.FOREACH_START, expression[8:].strip(), position)
    if expression == "endforeach":
        return Token(TokenType.FOREACH_END, "", position)
    return Token(TokenType.VARIABLE, expression, position)


class _Parser:
    """Recursive-descent parser turning a token list into AST nodes."""

    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def parse(self) -> Tuple[Node, ...]:
        nodes: List[Node] = []
        while self.index < len(self.tokens):
            token = self.tokens[self.index]
            if token.type in (TokenType.IF_END, TokenType.FOREACH_END):
                raise TemplateError(
                    f"Unexpected token {token.type.value} at position {token.position}",
                    position=token.position,
                )
            nodes.append(self._parse_node(token))
        return tuple(nodes)

    def _parse_node(self, token: Token) -> Node:
        if token.type == TokenType.TEXT:
            self.index += 1
            return TextNode(token.value)
        if token.type == TokenType.VARIABLE:
            self.index += 1
            return parse_variable(token.value)
        if token.type == TokenType.IF_START:
            return self._parse_conditional()
        return self._parse_loop()

    def _parse_block(self, terminator: TokenType, kind: str) -> Tuple[Node, ...]:
        body: List[Node] = []
        while self.index < len(self.tokens):
            token = self.tokens[self.index]
            if token.type == terminator:
                self.index += 1
                return tuple(body)
            if token.type in (TokenType.IF_END, TokenType.FOREACH_END):
                raise TemplateError(
                    f"Unexpected token in {kind} at position {token.position}",
                    position=token.position,
                )
            body.append(self._parse_node(token))
        raise TemplateError(f"Unclosed {kind} block")

    def _parse_conditional(self) -> ConditionalNode:
        condition = self.tokens[self.index].value
        self.index += 1
        branch = self._parse_block(TokenType.IF_END, "conditional")
        return ConditionalNode(condition=condition, true_branch=branch)

    def _parse_loop(self) -> LoopNode:
        token = self.tokens[self.index]
        match = _FOREACH.match(token.value)
        if not match:
            raise TemplateError(
                f'Invalid foreach syntax: {token.value}. Expected: "item in collection"',
                position=token.position,
            )
        self.index += 1
        item_name, collection_path = match.group(1), match.group(2).strip()
        body = self._parse_block(TokenType.FOREACH_END, "foreach")
        return LoopNode(
            item_name=item_name, collection_path=collection_path, body=body
        )


def parse_variable(expression: str) -> VariableNode:
    """Parse ``path | filter(args) | ...`` into a ``VariableNode``."""
    parts = [part.strip() for part in expression.split("|")]
    filters = tuple(_parse_filter(part) for part in parts[1:])
    return VariableNode(path=parts[0], filters=filters)


def _parse_filter(expression: str) -> FilterCall:
    name = expression.split("(")[0].strip()
    if name not in FILTERS:
        raise TemplateError(f"Unknown filter: {name}")
    match = _FILTER_CALL.match(expression)
    if not match:
        raise TemplateError(f"Invalid filter syntax: {expression}")
    raw_args = match.group(2)
    args = tuple(_unquote(arg.strip()) for arg in raw_args.split(",")) if raw_args else ()
    return FilterCall(name=name, args=args)


def _unquote(arg: str) -> str:
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in ("'", '"'):
        return arg[1:-1]
    return arg


class TemplateEngine:
    """Render templates against a context mapping."""

    def __init__(self) -> None:
        self._cache: Dict[str, Tuple[Node, ...]] = {}

    def render(self, template: str, context: Dict[str, Any]) -> str:
        """Render ``template`` with ``context``.

        Raises:
            TemplateError: If the template is malformed.
        """
        return self._evaluate(self.parse(template), context)

    def validate(self, template: str) -> TemplateValidation:
        """Check template syntax without rendering it."""
        try:
            self.parse(template)
        except TemplateError as exc:
            return TemplateValidation(valid=False, errors=[str(exc)])
        return TemplateValidation(valid=True)

    def parse(self, template: str) -> Tuple[Node, ...]:
        cached = self._cache.get(template)
        if cached is not None:
            return cached
        ast = _Parser(tokenize(template)).parse()
        self._cache[template] = ast
        return ast

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    def _evaluate(self, nodes: Tuple[Node, ...], context: Any) -> str:
        return "".join(self._evaluate_node(node, context) for node in nodes)

    def _evaluate_node(self, node: Node, context: Any) -> str:
        if isinstance(node, TextNode):
            return node.value
        if isinstance(node, VariableNode):
            return self._evaluate_variable(node, context)
        if isinstance(node, ConditionalNode):
            if template_truthy(resolve_path(node.condition, context)):
                return self._evaluate(node.true_branch, context)
            if node.false_branch is not None:
                return self._evaluate(node.false_branch, context)
            return ""
        return self._evaluate_loop(node, context)

    def _evaluate_variable(self, node: VariableNode, context: Any) -> str:
        value = resolve_path(node.path, context)
        if node.filters and is_nullish(value):
            value = ""

        for call in node.filters:
            try:
                value = FILTERS[call.name](value, *call.args)
            except (TypeError, ValueError) as exc:
                raise TemplateError(
                    f"Filter {call.name} failed for {node.path}: {exc}"
                ) from exc

        return "" if is_nullish(value) else stringify(value)

    def _evaluate_loop(self, node: LoopNode, context: Any) -> str:
        collection = resolve_path(node.collection_path, context)
        if not isinstance(collection, list):
            return ""

        base = context if isinstance(context, dict) else {}
        rendered = []
        for item in collection:
            loop_context = {**base, node.item_name: item}
            rendered.append(self._evaluate(node.body, loop_context))
        return "".join(rendered)
