"""Tests for loading and executing compiled code."""

from dataclasses import dataclass

import pytest

from tagplate import CompileError, RenderFailure
from tagplate.runtime import Executor, load_program
from tagplate.runtime.expressions import compile_statement, translate
from tagplate.runtime.helpers import dump, escape, lookup, print_value, to_text
from tagplate.runtime.loader import (
    CLOSE_BLOCK,
    LABEL,
    OPEN_BLOCK,
    STMT,
    _Builder,
    scan,
    split_regions,
)


def run(code, **bindings):
    return Executor().render(code, bindings)


def test_translate_operators_and_sigils():
    assert translate("$user->name") == "user.name"
    assert translate("$x === null") == "x == None"
    assert eval(translate("$a && !$b"), {"a": 1, "b": 0}) is True
    assert eval(translate("$a !== true || $b"), {"a": True, "b": 0}) == 0


def test_translate_leaves_strings_alone():
    assert translate("$a == '$b && c'") == "a == '$b && c'"


def test_increment_statements():
    scope = {"i": 1}
    compile_statement("$i++").execute(scope)
    compile_statement("--$i").execute(scope)
    compile_statement("$i++").execute(scope)

    assert scope["i"] == 2


def test_split_regions_swallows_one_newline_after_close():
    chunks = list(split_regions("a<?py x; ?>\n\nb<?py y"))

    assert chunks == [(False, "a"), (True, " x; "), (False, "\nb"), (True, " y")]


def test_scan_tokens():
    tokens = scan(" switch ($x) { case 'a:b': break; default: echo {'k': 1}['k']; } ")

    assert tokens == [
        (OPEN_BLOCK, "switch ($x)"),
        (LABEL, "case 'a:b'"),
        (STMT, "break"),
        (LABEL, "default"),
        (STMT, "echo {'k': 1}['k']"),
        (CLOSE_BLOCK, None),
    ]


def test_load_rejects_text_before_first_case():
    with pytest.raises(CompileError, match="before first case"):
        load_program("<?py switch ($x) { ?>oops<?py case 1: ?>a<?py } ?>")


def test_load_rejects_else_without_if():
    with pytest.raises(CompileError, match="without matching if"):
        load_program("<?py foreach ($a as $b) { } else { } ?>")


def test_load_rejects_case_outside_switch():
    with pytest.raises(CompileError, match="outside switch"):
        load_program("<?py case 1: ?>")


def test_text_and_echo():
    assert run("Hello <?py echo $name; ?>!", name="Ana") == "Hello Ana!"


def test_foreach_over_sequence_and_mapping():
    code = "<?py foreach ($items as $i) { echo $i; } ?>|<?py foreach ($m as $k => $v) { echo $k + '=' + $v; } ?>"
    assert run(code, items=[1, 2], m={"a": "1", "b": "2"}) == "12|a=1b=2"


def test_foreach_key_over_list_is_index():
    code = "<?py foreach ($items as $k => $v) { echo $k; } ?>"

    assert run(code, items=["x", "y"]) == "01"


def test_for_and_while_loops():
    code = "<?py for ($i = 0; $i < 3; $i++) { echo $i; } ?>"
    assert run(code) == "012"

    code = "<?py $n = 3; while ($n) { echo $n; $n--; } ?>"
    assert run(code) == "321"


def test_break_and_continue():
    code = (
        "<?py foreach ($items as $i) { if ($i == 2) { continue; } "
        "if ($i == 4) { break; } echo $i; } ?>"
    )

    assert run(code, items=[1, 2, 3, 4, 5]) == "13"


def test_switch_falls_through_until_break():
    code = (
        "<?py switch ($x) { case 1: ?>one<?py case 2: ?>two<?py break; "
        "default: ?>other<?py } ?>"
    )

    assert run(code, x=1) == "onetwo"
    assert run(code, x=2) == "two"
    assert run(code, x=9) == "other"


def test_switch_without_match_or_default_outputs_nothing():
    code = "<?py switch ($x) { case 1: ?>one<?py } ?>"

    assert run(code, x=2) == ""


def test_if_elseif_else():
    code = "<?py if ($n > 1) { ?>many<?py } elseif ($n == 1) { ?>one<?py } else { ?>none<?py } ?>"

    assert run(code, n=5) == "many"
    assert run(code, n=1) == "one"
    assert run(code, n=0) == "none"


def test_template_function_writes_to_output():
    code = (
        "<?py function greet($name, $greeting = 'Hi') { ?>"
        "<?py echo $greeting; ?>, <?py echo $name; ?>!<?py } ?>"
        "[<?py echo greet('Ana'); ?>]"
    )

    assert run(code) == "[Hi, Ana!]"


def test_template_function_return_value():
    code = "<?py function double($x) { return $x * 2; } echo double(21); ?>"

    assert run(code) == "42"


def test_template_function_recursion():
    code = (
        "<?py function down($n) { if ($n > 0) { echo $n; down($n - 1); } } "
        "down(3); ?>"
    )

    assert run(code) == "321"


def test_runtime_errors_become_render_failure():
    with pytest.raises(RenderFailure) as exc:
        run("<?py echo $missing; ?>")

    assert isinstance(exc.value.__cause__, NameError)
    assert "missing" in str(exc.value)


def test_break_outside_loop_is_render_failure():
    with pytest.raises(RenderFailure, match="not in loop"):
        run("<?py break; ?>")


def test_top_level_return_stops_rendering():
    assert run("a<?py return; ?>b") == "a"


def test_render_does_not_leak_state_between_calls():
    executor = Executor()

    assert executor.render("<?py $x = 5; echo $x; ?>", {}) == "5"
    with pytest.raises(RenderFailure):
        executor.render("<?py echo $x; ?>", {})


def test_to_text_scalars():
    assert to_text(None) == ""
    assert to_text(False) == ""
    assert to_text(True) == "1"
    assert to_text(3) == "3"


def test_escape():
    assert escape("<b>\"x\" & 'y'</b>") == "&lt;b&gt;&#34;x&#34; &amp; &#39;y&#39;&lt;/b&gt;"
    assert escape(None) == ""


def test_lookup_keys_indexes_and_attributes():
    @dataclass
    class User:
        name: str

    data = {"users": [User("Ana")], "meta": {"count": 1}}

    assert lookup(data, "users", "0", "name") == "Ana"
    assert lookup(data, "meta", "count") == 1
    with pytest.raises(KeyError):
        lookup(data, "nope")


def test_dump_is_typed():
    out = dump({"a": [1, "x"], "b": None})

    assert out.startswith("array(2) {")
    assert "int(1)" in out
    assert 'string(1) "x"' in out
    assert "NULL" in out


def test_print_value():
    assert print_value("plain") == "plain"
    assert print_value({"a": 1}) == "{'a': 1}"


def test_lookup_numeric_key_falls_back_to_int():
    assert lookup({"m": {0: "zero"}}, "m", "0") == "zero"
    assert lookup({"0": "text"}, "0") == "text"
    with pytest.raises(KeyError):
        lookup({1: "one"}, "0")


def test_keyword_names_are_mangled():
    assert translate("$class . $from") == "class_ . from_"
    assert run("<?py echo $class; ?>", **{"class": "btn"}) == "btn"


def test_builder_rejects_unknown_header_and_label():
    builder = _Builder("page")

    with pytest.raises(CompileError, match="invalid block header"):
        builder.open("nonsense")
    builder.open("switch ($x)")
    with pytest.raises(CompileError, match="invalid label"):
        builder.label("nonsense")
