"""
Template engine: language, evaluation and error reporting.

Escaping per HTML context is covered in test_template_escaping.py.
"""

import pytest

from render_api.app.services.template_engine import (
    Template,
    TemplateExecError,
    TemplateParseError,
    render,
)


# ---------------------------------------------------------------------------
# Lenient lookup and arithmetic
# ---------------------------------------------------------------------------

def test_missing_key_renders_empty():
    assert render("{{.a}}", {}) == ""


def test_missing_nested_key_renders_empty():
    assert render("[{{.a.b.c}}]", {"a": {}}) == "[]"


def test_division_by_zero_yields_zero():
    assert render("{{div 10 0}}", {}) == "0"


def test_integer_arithmetic():
    out = render("{{add 2 3}}|{{sub 2 3}}|{{mul 4 5}}|{{div 7 2}}|{{div -7 2}}", {})
    assert out == "5|-1|20|3|-3"


def test_arithmetic_accepts_integral_json_floats():
    assert render("{{add .n 1}}", {"n": 2.0}) == "3"


# ---------------------------------------------------------------------------
# Value formatting
# ---------------------------------------------------------------------------

def test_value_formatting():
    data = {"f": 3.0, "g": 2.5, "b": True, "l": [1, 2], "none": None}
    assert render("{{.f}} {{.g}} {{.b}} {{.l}} [{{.none}}]", data) == "3 2.5 true [1 2] []"


def test_printf_verbs():
    data = {"price": 3.14159, "n": 3, "name": "Ann"}
    assert render('{{printf "%.2f" .price}}', data) == "3.14"
    assert render('{{printf "%05.2f" .price}}', data) == "03.14"
    assert render('{{printf "%d items" .n}}', data) == "3 items"
    assert render('{{printf "%s-%s" .name}}', data) == "Ann-%!s(MISSING)"


def test_pipeline_passes_value_as_last_argument():
    assert render('{{.n | add 10 | printf "%d"}}', {"n": 5}) == "15"


def test_parenthesized_pipeline_with_field_chain():
    data = {"m": {"k": {"v": "deep"}}}
    assert render('{{(index .m "k").v}}', data) == "deep"


def test_len_and_index():
    data = {"items": ["a", "b"], "m": {"k": "v"}}
    assert render('{{len .items}} {{index .items 1}} {{index .m "k"}}', data) == "2 b v"


# ---------------------------------------------------------------------------
# Control structures
# ---------------------------------------------------------------------------

def test_if_else():
    template = "{{if .ok}}yes{{else}}no{{end}}"
    assert render(template, {"ok": True}) == "yes"
    assert render(template, {"ok": False}) == "no"
    assert render(template, {}) == "no"


def test_else_if_chain():
    template = "{{if eq .n 1}}one{{else if eq .n 2}}two{{else}}many{{end}}"
    assert render(template, {"n": 1}) == "one"
    assert render(template, {"n": 2}) == "two"
    assert render(template, {"n": 9}) == "many"


def test_boolean_helpers():
    template = "{{if and .a (not .b)}}A{{end}}{{if or .b .c}}B{{end}}"
    assert render(template, {"a": 1, "b": 0, "c": "x"}) == "AB"


def test_comparisons():
    template = "{{if lt .a .b}}lt{{end}}{{if ge .b .a}} ge{{end}}{{if ne .a .b}} ne{{end}}"
    assert render(template, {"a": 1, "b": 2}) == "lt ge ne"


def test_range_with_index_and_element():
    template = "{{range $i, $e := .items}}{{$i}}={{$e}};{{end}}"
    assert render(template, {"items": ["a", "b"]}) == "0=a;1=b;"


def test_range_over_mapping_is_sorted_by_key():
    template = "{{range $k, $v := .m}}{{$k}}:{{$v}} {{end}}"
    assert render(template, {"m": {"b": 2, "a": 1}}) == "a:1 b:2 "


def test_range_else_on_empty():
    template = "{{range .items}}x{{else}}empty{{end}}"
    assert render(template, {"items": []}) == "empty"
    assert render(template, {}) == "empty"


def test_range_break_and_continue():
    template = (
        "{{range .n}}"
        "{{if eq . 2}}{{continue}}{{end}}"
        "{{if eq . 4}}{{break}}{{end}}"
        "{{.}}"
        "{{end}}"
    )
    assert render(template, {"n": [1, 2, 3, 4, 5]}) == "13"


def test_with_rebinds_dot():
    template = "{{with .user}}{{.name}}{{else}}anonymous{{end}}"
    assert render(template, {"user": {"name": "Ann"}}) == "Ann"
    assert render(template, {}) == "anonymous"


def test_root_variable_inside_range():
    template = "{{range .items}}{{.}}{{$.sep}}{{end}}"
    assert render(template, {"items": ["a", "b"], "sep": ","}) == "a,b,"


def test_variable_declaration_and_assignment():
    assert render("{{$x := 1}}{{$x = add $x 1}}{{$x}}", {}) == "2"


def test_trim_markers_and_comments():
    assert render("a  {{- .x -}}  b", {"x": "X"}) == "aXb"
    assert render("a{{/* note */}}b", {}) == "ab"


# ---------------------------------------------------------------------------
# Parse errors
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "source, fragment",
    [
        ("{{if .x}}open", "missing {{end}}"),
        ("{{nope 1}}", "function 'nope' not defined"),
        ("{{.x", "unclosed action"),
        ("{{end}}", "unexpected {{end}}"),
        ("{{$y}}", "undefined variable $y"),
        ("{{break}}", "outside {{range}}"),
        ('{{define "x"}}{{end}}', "unsupported action 'define'"),
        ('{{"a" "b"}}', "can't give argument to non-function"),
    ],
)
def test_parse_errors(source, fragment):
    with pytest.raises(TemplateParseError) as excinfo:
        render(source, {})
    assert fragment in str(excinfo.value)


def test_parse_error_carries_position():
    with pytest.raises(TemplateParseError) as excinfo:
        Template.parse("line1\n{{bogus}}")

    assert excinfo.value.line == 2
    assert excinfo.value.column == 3
    assert str(excinfo.value).startswith("2:3: ")


def test_branches_ending_in_different_contexts_are_rejected():
    with pytest.raises(TemplateParseError) as excinfo:
        render("{{if .x}}<a href='{{else}}<b>{{end}}", {})
    assert "different HTML contexts" in str(excinfo.value)


def test_parse_happens_before_any_evaluation():
    # The first action would fail at runtime; the syntax error wins.
    with pytest.raises(TemplateParseError):
        render("{{add .a 1}}{{if}}", {"a": "x"})


# ---------------------------------------------------------------------------
# Execution errors
# ---------------------------------------------------------------------------

def test_wrong_argument_type_is_exec_error():
    with pytest.raises(TemplateExecError) as excinfo:
        render("before {{add .a 1}} after", {"a": "x"})
    assert "error calling add" in str(excinfo.value)
    assert "expected int" in str(excinfo.value)


def test_wrong_arity_is_exec_error():
    with pytest.raises(TemplateExecError) as excinfo:
        render("{{add 1}}", {})
    assert "wrong number of args for add" in str(excinfo.value)


def test_field_on_scalar_is_exec_error():
    with pytest.raises(TemplateExecError) as excinfo:
        render("{{.a.b}}", {"a": 5})
    assert "can't evaluate field b in type int" in str(excinfo.value)


def test_index_out_of_range_is_exec_error():
    with pytest.raises(TemplateExecError):
        render("{{index .l 5}}", {"l": [1]})


def test_parsed_template_can_execute_different_data():
    template = Template.parse("<p>{{.name}}</p>")
    assert template.execute({"name": "a"}) == "<p>a</p>"
    assert template.execute({"name": "b"}) == "<p>b</p>"
