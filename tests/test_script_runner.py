import pytest

from bean.bean_runtime import ScriptRunner, Runtime, ExecutionResult, make_module
from bean.bean_datatypes import Number, FunctionCall, Program


def num(v):
    return {"type": "NumberLiteral", "value": v}

def mem(name):
    return {"type": "MemoryLiteral", "value": name}

def call(name, *params, then=None, line=None, col=None):
    node = {"type": "FunctionCall", "name": name, "parameters": list(params)}
    if then is not None:
        node["yieldFunction"] = then
    if line is not None:
        node.update(line=line, col=col)
    return node

def block(*body):
    return {"type": "Block", "body": list(body)}


@pytest.fixture
def runner():
    return ScriptRunner()

# --- Loading ---

def test_load_accepts_text_dicts_and_nodes(runner):
    text = '[{"type": "FunctionCall", "name": "f"}]'
    assert runner.load(text) == Program([FunctionCall("f")])
    assert runner.load(b"- {type: FunctionCall, name: f}") == Program([FunctionCall("f")])
    node = FunctionCall("g")
    assert runner.load(node) is node


def test_handle_document_accepts_text(runner):
    res = runner.handle_document('{"type": "Block", "body": [{"type": "FunctionCall", "name": "return", '
                                 '"parameters": [{"type": "NumberLiteral", "value": 3}]}]}')
    assert res.status == "success"
    assert res.value == Number(3)


@pytest.mark.parametrize("document", [
    {"type": "Mystery"},
    '{"type": ',
    42,
    None,
])
def test_malformed_documents_are_document_errors(runner, document):
    res = runner.handle_document(document)
    assert res.status == "error"
    assert res.error_message.startswith("DocumentError: ")
    assert res.error_kind is None
    assert res.side_effects[-1]["topics"] == ["stderr"]

# --- Runtime errors ---

def test_error_message_names_the_failing_call(runner):
    res = runner.handle_document(block(call("nope", num(1))))
    assert res.status == "error"
    assert res.error_kind == "Reference"
    lines = res.error_message.split("\n")
    assert lines[0] == 'ReferenceError: Unknown value or function "nope".'
    assert lines[1] == "At nope(1)"
    assert lines[2] == "bean stacktrace: (nope)"


def test_stacktrace_lists_active_calls_outermost_first(runner):
    res = runner.handle_document(block(
        call("def", mem("outer"), then=block(call("inner"))),
        call("def", mem("inner"), then=block(call("sub", mem("x"), num(1)))),
        call("outer"),
    ))
    assert res.error_kind == "Type"
    assert res.error_message.endswith("bean stacktrace: (outer) (inner) (sub)")


def test_error_location_comes_from_the_failing_call(runner):
    res = runner.handle_document(block(call("missing", line=4, col=9)))
    assert res.error_token == {"line": 4, "col": 9, "type": "FunctionCall"}
    assert res.format_error().startswith('Error on line 4, col 9: ReferenceError: Unknown value or function "missing".')


def test_yield_block_is_not_shown_in_the_error_location(runner):
    res = runner.handle_document(block(
        call("obj", mem("o"), then=num(1)),
    ))
    assert "\nAt obj(<o>)\n" in res.error_message


def test_unbounded_recursion_is_reported(runner):
    res = runner.handle_document(block(
        call("def", mem("forever"), then=block(call("forever"))),
        call("forever"),
    ))
    assert res.status == "error"
    assert res.error_message.startswith("RecursionError: maximum evaluation depth exceeded")
    assert runner.evaluator.call_stack == []


def test_host_exceptions_are_internal_errors():
    def boom(*args, context, yield_function=None):
        raise RuntimeError("boom")

    runner = ScriptRunner(modules={"host": make_module({"boom": boom})})
    res = runner.handle_document(block({"type": "ModuleImport", "name": "host"}, call("host.boom")))
    assert res.status == "error"
    assert res.error_message.startswith("InternalError: boom")


def test_error_sink_receives_message_and_kind():
    reports = []
    runner = ScriptRunner(runtime=Runtime(error_sink=lambda m, k: reports.append((m, k))))
    runner.handle_document(block(call("set", mem("x"), then=num(1))))
    assert reports == [("Value <x> is not defined.", "Memory")]


def test_stderr_side_effect_carries_the_message(runner):
    res = runner.handle_document(block(call("nope")))
    assert res.side_effects[-1] == {"topics": ["stderr"], "message": res.error_message}

# --- ExecutionResult ---

def test_format_error_without_location():
    res = ExecutionResult(status="error", error_message="TypeError: x")
    assert res.format_error() == "TypeError: x"
    assert ExecutionResult(status="success").format_error() == ""


def test_stdout_filters_side_effects():
    res = ExecutionResult(status="success", side_effects=[
        {"topics": ["stdout"], "message": "a"},
        {"topics": ["stderr"], "message": "b"},
        {"topics": ["stdout"], "message": "c"},
    ])
    assert res.stdout == ["a", "c"]

# --- Files ---

def test_run_file(tmp_path, runner):
    p = tmp_path / "prog.yaml"
    p.write_text(
        "type: Block\n"
        "body:\n"
        "  - type: FunctionCall\n"
        "    name: print\n"
        "    parameters: [{type: StringLiteral, value: from yaml}]\n",
        encoding="utf-8",
    )
    res = runner.run_file(p)
    assert res.status == "success"
    assert res.stdout == ["from yaml"]
    assert runner.source_dir == str(tmp_path.resolve())


def test_run_file_with_invalid_document(tmp_path, runner):
    p = tmp_path / "prog.json"
    p.write_text("{oops", encoding="utf-8")
    res = runner.run_file(p)
    assert res.status == "error"
    assert res.error_message.startswith("DocumentError: Invalid JSON document")


def test_run_file_missing(tmp_path, runner):
    res = runner.run_file(tmp_path / "nope.json")
    assert res.status == "error"
    assert res.error_message.startswith("DocumentError: ")
    assert res.side_effects == [{"topics": ["stderr"], "message": res.error_message}]


def test_results_keep_their_side_effects_after_later_runs(runner):
    def say(text):
        return block(call("print", {"type": "StringLiteral", "value": text}))

    first = runner.handle_document(say("first"))
    second = runner.handle_document(say("second"))
    failed = runner.handle_document(block(call("nope")))
    runner.handle_document(say("third"))
    assert first.stdout == ["first"]
    assert second.stdout == ["second"]
    assert failed.side_effects[-1]["topics"] == ["stderr"]
