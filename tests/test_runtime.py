import pytest
from textwrap import dedent

from conftest import RecordingProcess
from cmdtree import ScriptRunner, NodeRegistry, resolve_invocation
from cmdtree.cmdtree_interpreter import Environment
from cmdtree.cmdtree_datatypes import Node, Assignment, InvocationError, ScriptLoadError, ParseError


SCRIPT = dedent("""
    /// Build the project
    build(target) {
        out = dist/$target
        exec mkdir -p $out
        release {
            exec make release $out
        }
        debug {
            exec make debug $out
        }
    }

    clean {
        exec rm -rf dist
    }

    setup {
        ready = yes
    }

    all {
        depends clean, setup, missing
        exec echo $ready
    }
""")


def run(tokens, source=SCRIPT):
    process = RecordingProcess()
    runner = ScriptRunner(process=process, debug=False)
    res = runner.handle_script(source, tokens)
    return res, process


def assert_ok(res, expected=None):
    assert res.status == 'success', res.error_message
    if expected is not None:
        for k, v in expected.items():
            assert res.value.get(k) == v


def assert_error(res, contains=None):
    assert res.status == 'error', f"expected error, got success: {res.value!r}"
    if contains is not None:
        assert contains in (res.error_message or ""), f"error did not contain {contains!r}: {res.error_message!r}"


def error_messages(res):
    return [e["message"] for e in res.side_effects if e["topics"] == ["stderr", "error"]]


# --- Registry ---

def test_registry_last_declaration_wins():
    first = Node("dup", (), [Assignment("v", "first")])
    second = Node("dup", (), [Assignment("v", "second")])
    registry = NodeRegistry([first, second])
    assert len(registry) == 1
    assert registry["dup"] is second


def test_registry_lookup_of_unknown_name():
    registry = NodeRegistry([Node("a")])
    assert registry.get("b") is None
    assert "a" in registry
    assert list(registry) == ["a"]


def test_duplicate_script_nodes_run_last_declared():
    res, process = run(["dup"], "dup {\n exec first\n}\ndup {\n exec second\n}\n")
    assert_ok(res)
    assert process.commands == ["second"]


def test_registry_holds_top_level_nodes_only():
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    runner.load(SCRIPT)
    assert sorted(runner.registry) == ["all", "build", "clean", "setup"]
    assert "release" not in runner.registry


# --- Invocation resolution ---

def test_resolve_splits_path_and_flags():
    inv = resolve_invocation(["build", "--app", "release", "--x"])
    assert inv.path == ["build", "release"]
    assert inv.args == ["app", "x"]
    assert inv.root == "build"
    assert inv.subpath == ["release"]


def test_resolve_single_segment_has_no_subpath():
    assert resolve_invocation(["build"]).subpath is None


def test_resolve_strips_every_leading_dash_pair():
    inv = resolve_invocation(["b", "----x", "--", "---y"])
    assert inv.path == ["b"]
    assert inv.args == ["x", "", "-y"]


@pytest.mark.parametrize("tokens", [[], ["--only", "--flags"]])
def test_resolve_requires_a_command(tokens):
    with pytest.raises(InvocationError, match="No command specified"):
        resolve_invocation(tokens)


# --- Invocation ---

def test_no_tokens_is_an_error_and_runs_nothing():
    res, process = run([])
    assert_error(res, "No command specified")
    assert process.commands == []


def test_flags_only_is_an_error():
    res, process = run(["--app"])
    assert_error(res, "No command specified")
    assert process.commands == []


def test_unknown_root_is_an_error():
    res, process = run(["deploy"])
    assert_error(res, "Command 'deploy' not found")
    assert error_messages(res) == ["Command 'deploy' not found"]
    assert process.commands == []


def test_nested_name_is_not_a_root():
    res, _ = run(["release"])
    assert_error(res, "Command 'release' not found")


def test_bare_root_runs_whole_subtree_in_order():
    res, process = run(["build", "--app"])
    assert_ok(res, {"target": "app", "out": "dist/app"})
    assert process.commands == ["mkdir -p dist/app", "make release dist/app", "make debug dist/app"]


def test_path_runs_root_statements_then_target():
    res, process = run(["build", "debug", "--app"])
    assert_ok(res)
    assert process.commands == ["mkdir -p dist/app", "make debug dist/app"]


def test_missing_subcommand_reports_and_keeps_prior_effects():
    res, process = run(["build", "release", "fast", "--app"])
    # Not fatal: reported, earlier work stands
    assert_ok(res, {"out": "dist/app"})
    assert process.commands == ["mkdir -p dist/app", "make release dist/app"]
    assert error_messages(res) == ["Subcommand 'fast' not found in 'release'"]


def test_unknown_first_level_subcommand():
    res, process = run(["build", "package"])
    assert_ok(res)
    assert process.commands == ["mkdir -p dist/$target"]
    assert error_messages(res) == ["Subcommand 'package' not found in 'build'"]


def test_depends_share_environment_and_skip_unknown():
    res, process = run(["all"])
    assert_ok(res, {"ready": "yes"})
    assert process.commands == ["rm -rf dist", "echo yes"]
    depends = [e["message"] for e in res.side_effects if e["topics"] == ["stdout", "depends"]]
    assert depends == ["clean", "setup"]


def test_diagnostic_order():
    res, _ = run(["build", "release", "--app"])
    tags = [e["topics"][1] for e in res.side_effects if len(e["topics"]) > 1]
    assert tags == ["param", "set", "exec", "exec"]


def test_invoke_uses_supplied_environment():
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    runner.load("greet {\n msg = hello-$who\n}\n")
    env = Environment({"who": "ada"})
    res = runner.invoke(["greet"], env)
    assert_ok(res, {"msg": "hello-ada"})
    assert env["msg"] == "hello-ada"


def test_each_invoke_starts_fresh():
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    runner.load("a {\n x = 1\n}\nb {\n y = $x\n}\n")
    assert_ok(runner.invoke(["a"]), {"x": "1"})
    res = runner.invoke(["b"])
    assert_ok(res, {"y": "$x"})
    assert len(res.side_effects) == 1


def test_earlier_results_survive_later_invokes():
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    runner.load("a {\n x = 1\n}\nb {\n y = 2\n}\n")
    first = runner.invoke(["a"])
    before = list(first.side_effects)
    runner.invoke(["b"])
    runner.invoke(["missing"])
    assert first.side_effects == before
    assert [e["message"] for e in first.side_effects] == ["x = 1"]


def test_dependency_cycle_is_reported_not_raised():
    res, _ = run(["ping"], "ping {\n depends pong\n}\npong {\n depends ping\n}\n")
    assert_error(res, "RecursionError")


def test_parse_error_result():
    res, process = run(["x"], "x {\n y = \n}\n")
    assert_error(res, "ParseError")
    assert res.error_token == {"line": 3, "col": 1}
    assert res.format_error().startswith("Error on line 3, col 1: ParseError")
    assert process.commands == []


def test_load_file_missing(tmp_path):
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    with pytest.raises(ScriptLoadError, match="Cannot read script"):
        runner.load_file(str(tmp_path / "Make.cmd"))


def test_load_file(tmp_path):
    script = tmp_path / "Make.cmd"
    script.write_text("hello {\n exec echo hi\n}\n", encoding="utf-8")
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    nodes = runner.load_file(str(script))
    assert [n.name for n in nodes] == ["hello"]
    assert runner.source_path == str(script)


def test_load_file_parse_error(tmp_path):
    script = tmp_path / "Make.cmd"
    script.write_text("hello {\n", encoding="utf-8")
    runner = ScriptRunner(process=RecordingProcess(), debug=False)
    with pytest.raises(ParseError):
        runner.load_file(str(script))
