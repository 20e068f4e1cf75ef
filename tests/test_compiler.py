"""Tests for the rule-table compiler."""

import re

import pytest

from tagplate import CompileError, FinderChain, TemplateNotFound
from tagplate.compiler import Compiler, LiteralVault, RuleTable, builtin_rules


def make_compiler(sources=None, rules=None):
    chain = FinderChain()
    chain.add(lambda name: (sources or {}).get(name))
    return Compiler(chain, rules)


def test_literal_vault_roundtrip():
    """Literal blocks are replaced by placeholders and restored verbatim."""
    vault = LiteralVault()
    text = vault.extract("a{literal}{if 1}{/literal}b")

    assert "{if 1}" not in text
    assert re.fullmatch(r"a#[0-9a-f]{32}#b", text)
    assert vault.restore(text) == "a{if 1}b"


def test_literal_vault_is_case_insensitive_and_multiline():
    vault = LiteralVault()
    text = vault.extract("{LITERAL}line1\n{$x}\n{/Literal}")

    assert len(vault) == 1
    assert vault.restore(text) == "line1\n{$x}\n"


def test_unterminated_literal_is_left_alone():
    """Without a closing tag nothing is extracted."""
    vault = LiteralVault()
    assert vault.extract("{literal}{$x}") == "{literal}{$x}"
    assert len(vault) == 0


def test_compile_is_deterministic():
    """Compiling the same source twice yields identical code."""
    compiler = make_compiler()
    source = "{literal}{$raw}{/literal}{foreach $items as $i}{$i.name}{/foreach}"

    assert compiler.compile(source) == compiler.compile(source)


def test_dotted_variable_rewritten_before_bare_variable():
    """{$a.b} becomes a lookup, not a bare echo of '$a.b'."""
    code = make_compiler().compile("{$user.name}")

    assert code == "<?py echo _escape(_lookup($user, 'name')); ?>"


def test_block_tags():
    code = make_compiler().compile("{if $a}x{elseif $b}y{else/}z{/if}")

    assert code == (
        "<?py if ($a) { ?>x<?py } elseif ($b) { ?>y<?py } else { ?>z<?py } ?>"
    )


def test_tag_names_are_case_insensitive():
    code = make_compiler().compile("{IF $a}x{/If}")

    assert code == "<?py if ($a) { ?>x<?py } ?>"


def test_adjacent_regions_collapse():
    """Whitespace-only gaps between generated regions are removed."""
    code = make_compiler().compile("{php $a = 1}\n  {$a}")

    assert code == "<?py $a = 1;  echo _escape($a); ?>"


def test_echo_is_not_escaped():
    code = make_compiler().compile("{echo $html}")

    assert code == "<?py echo $html; ?>"


def test_dump_and_print_are_preformatted():
    compiler = make_compiler()

    assert compiler.compile("{dump $x}") == "<pre><?py echo _escape(_dump($x)); ?></pre>"
    assert compiler.compile("{print $x;}") == "<pre><?py echo _escape(_print($x)); ?></pre>"


def test_switch_tags():
    code = make_compiler().compile(
        "{switch $x}{case 1}a{/case}{default}b{/default}{/switch}"
    )

    assert code == (
        "<?py switch ($x) {  case 1: ?>a<?py break;  default: ?>b<?py break;  } ?>"
    )


def test_include_is_expanded_inline():
    """Includes are compiled recursively and spliced into the outer code."""
    compiler = make_compiler({"head": "<h1>{$title}</h1>", "foot": "<hr>"})
    code = compiler.compile("{include head,foot}body")

    assert code == "<h1><?py echo _escape($title); ?></h1><hr>body"


def test_include_literals_survive_outer_rules():
    """Literal blocks inside an include are restored only at the very end."""
    compiler = make_compiler({"part": "{literal}{$x}{/literal}"})

    assert compiler.compile("{include part}") == "{$x}"


def test_include_missing_raises_not_found():
    compiler = make_compiler({})

    with pytest.raises(TemplateNotFound) as exc:
        compiler.compile("before {include nope@grp} after")
    assert exc.value.identifier == "nope@grp"


def test_include_cycle_is_a_compile_error():
    compiler = make_compiler({"a": "{include b}", "b": "{include a}"})

    with pytest.raises(CompileError, match="include cycle"):
        compiler.compile("{include a}", "a")


def test_unbalanced_blocks_fail_at_compile_time():
    compiler = make_compiler()

    with pytest.raises(CompileError, match="unclosed"):
        compiler.compile("{if $x}never closed")
    with pytest.raises(CompileError, match="unexpected"):
        compiler.compile("{/foreach}")


def test_invalid_expression_fails_at_compile_time():
    with pytest.raises(CompileError, match="invalid expression"):
        make_compiler().compile("{if $x ==}y{/if}")


def test_extension_runs_after_builtins():
    rules = RuleTable()
    rules.extend(r"\{upper\s+(.*?)\}", lambda m: f"<?py echo str({m.group(1)}).upper(); ?>")
    code = make_compiler(rules=rules).compile("{upper $name}")

    assert code == "<?py echo str($name).upper(); ?>"


def test_extension_overrides_builtin_in_place():
    """Same pattern string replaces the built-in rewrite and keeps its flags."""
    rules = RuleTable()
    bare = r"\{(\$[^{}]*?)\}"
    rules.extend(bare, lambda m: f"<?py echo {m.group(1)}; ?>")

    merged = rules.merged(builtin_rules(lambda m: ""))
    patterns = [rule.pattern for rule in merged]
    builtin_patterns = [rule.pattern for rule in builtin_rules(lambda m: "")]

    assert patterns == builtin_patterns
    override = merged[patterns.index(bare)]
    assert override.flags == re.IGNORECASE
    assert make_compiler(rules=rules).compile("{$x}") == "<?py echo $x; ?>"


def test_malformed_extension_pattern_is_a_compile_error():
    rules = RuleTable()
    rules.extend(r"\{broken(", lambda m: "")

    with pytest.raises(CompileError, match="invalid tag pattern"):
        make_compiler(rules=rules).compile("text")


def test_failing_rewrite_is_a_compile_error():
    def explode(match):
        raise ValueError("boom")

    rules = RuleTable()
    rules.extend(r"\{explode\}", explode)

    with pytest.raises(CompileError, match="boom"):
        make_compiler(rules=rules).compile("{explode}")


def test_vault_shields_region_markers_in_text():
    """Markers written in template text come back as code that prints them."""
    vault = LiteralVault()
    text = vault.extract("a?>b<?PY c")

    assert "?>" not in text
    assert "<?PY" not in text
    assert vault.restore(text) == "a<?py echo '?' '>'; ?>b<?py echo '<?P' 'Y'; ?> c"


def test_marker_text_is_not_collapsed_into_code():
    code = make_compiler().compile("Really?> {$x}")

    assert code == "Really<?py echo '?' '>'; ?> <?py echo _escape($x); ?>"
