"""Tests for the template engine."""

import pytest

from aiflow.errors import TemplateError
from aiflow.templates import TemplateEngine, tokenize
from aiflow.templates.engine import TokenType


@pytest.fixture
def engine():
    return TemplateEngine()


def test_renders_variables_and_nested_paths(engine):
    context = {"user": {"name": "Ada"}, "count": 3}
    assert engine.render("Hello ${user.name}, you have ${count}", context) == (
        "Hello Ada, you have 3"
    )


def test_missing_variable_renders_empty(engine):
    assert engine.render("[${missing.path}]", {}) == "[]"


def test_escape_emits_literal_expression(engine):
    assert engine.render("\\${x}", {"x": 1}) == "${x}"


def test_filter_chain_applies_left_to_right(engine):
    assert engine.render("${t | trim | uppercase}", {"t": "  hi  "}) == "HI"
    assert engine.render("${t | truncate(3) | uppercase}", {"t": "abcdef"}) == "ABC..."


def test_filters_with_arguments(engine):
    assert engine.render("${name | default('anonymous')}", {}) == "anonymous"
    assert engine.render("${name | default(anon)}", {"name": ""}) == "anon"
    assert engine.render("${word | capitalize}", {"word": "hELLO"}) == "Hello"
    assert engine.render("${word | truncate}", {"word": "x" * 60}) == "x" * 50 + "..."


def test_loop_renders_each_item(engine):
    template = "${foreach f in files}- ${f}\n${endforeach}"
    assert engine.render(template, {"files": ["a.py", "b.py"]}) == "- a.py\n- b.py\n"


def test_loop_over_empty_or_non_list_renders_nothing(engine):
    template = "${foreach x in a}${x}${endforeach}"
    assert engine.render(template, {"a": []}) == ""
    assert engine.render(template, {"a": "not-array"}) == ""


@pytest.mark.parametrize("value", [0, "", None, [], False])
def test_conditional_falsy_values(engine, value):
    assert engine.render("${if flag}yes${endif}", {"flag": value}) == ""


@pytest.mark.parametrize("value", ["0", [0], 1, {"k": 1}])
def test_conditional_truthy_values(engine, value):
    assert engine.render("${if flag}yes${endif}", {"flag": value}) == "yes"


def test_conditional_on_undefined_is_falsy(engine):
    assert engine.render("${if missing}yes${endif}", {}) == ""


def test_nested_blocks(engine):
    template = "${foreach s in steps}${if s.done}[${s.id}]${endif}${endforeach}"
    context = {"steps": [{"id": "a", "done": True}, {"id": "b", "done": False}]}
    assert engine.render(template, context) == "[a]"


def test_dot_path_refers_to_whole_context(engine):
    assert engine.render("${foreach x in .}${x}${endforeach}", ["a", "b"]) == "ab"


def test_values_are_stringified(engine):
    context = {"flag": True, "items": [1, 2], "ratio": 2.0}
    assert engine.render("${flag} ${items} ${ratio}", context) == "true 1,2 2"


@pytest.mark.parametrize(
    "template, message",
    [
        ("${name", "Unclosed template expression"),
        ("${if x}open", "Unclosed conditional block"),
        ("${foreach x in xs}open", "Unclosed foreach block"),
        ("${endif}", "Unexpected token"),
        ("${if x}${endforeach}${endif}", "Unexpected token in conditional"),
        ("${foreach xs}${endforeach}", "Invalid foreach syntax"),
        ("${name | shout}", "Unknown filter"),
        ("${name | truncate(5}", "Invalid filter syntax"),
    ],
)
def test_malformed_templates_raise(engine, template, message):
    with pytest.raises(TemplateError) as exc_info:
        engine.render(template, {})
    assert message in str(exc_info.value)


def test_validate_reports_errors_without_raising(engine):
    assert engine.validate("${name | trim}").valid
    result = engine.validate("${if x}")
    assert not result.valid
    assert result.errors == ["Unclosed conditional block"]


def test_cache_does_not_change_results(engine):
    template = "${greeting | uppercase} ${name}"
    first = engine.render(template, {"greeting": "hi", "name": "Ada"})
    second = engine.render(template, {"greeting": "hi", "name": "Ada"})
    assert first == second == "HI Ada"
    assert engine.cache_size == 1

    engine.clear_cache()
    assert engine.cache_size == 0


def test_tokenize_classifies_blocks():
    tokens = tokenize("a${if x}b${endif}")
    assert [t.type for t in tokens] == [
        TokenType.TEXT,
        TokenType.IF_START,
        TokenType.TEXT,
        TokenType.IF_END,
    ]
    assert tokens[1].value == "x"


def test_list_length(engine):
    assert engine.render("${items.length}", {"items": [1, 2, 3]}) == "3"
    assert engine.render("${items.length}", {"items": []}) == "0"
    assert engine.render("${if items.length}has items${endif}", {"items": ["x"]}) == "has items"
    assert engine.render("${box.length}", {"box": {"length": "tall"}}) == "tall"
