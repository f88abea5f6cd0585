"""test_synthesize.py - Unit tests for the generated function body.

The generated ``def`` is compiled on its own and run with a fake
``_logcall_emit`` in its globals, so these tests cover the body synthesizer
without the decorator's source lookup or closure rebinding.

Covers:
    - The plain message form and every row of the ok/err decision table
    - Default and custom input templates, receivers, str conversion
    - Every return site logs exactly once; implicit returns log None
    - Exceptions propagate without a record
    - The record follows with/finally cleanup; formatting failures are reported
    - Nested defs, lambdas and classes are left alone
    - async bodies keep the same number of awaits
    - Stacked layers use distinct locals
"""

import ast
import asyncio
import logging

import pytest

from logcall.directive import Directive
from logcall.result import Err, Ok
from logcall.signature import analyze
from logcall.synthesize import default_input_format, synthesize


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build(source, directive=Directive(), layer=0, conversion="r", extra=None):
    """Synthesize the first def in ``source`` and return (function, records)."""
    node = ast.parse(source).body[0]
    shape = analyze(node)
    new = synthesize(
        node,
        directive,
        shape,
        qualname=f"app.{node.name}",
        origin="app",
        layer=layer,
        conversion=conversion,
    )
    records = []
    namespace = {
        "_logcall_emit": lambda level, origin, message: records.append((level, origin, message)),
        "Ok": Ok,
        "Err": Err,
        "Result": object,
    }
    namespace.update(extra or {})
    module = ast.Module(body=[new], type_ignores=[])
    exec(compile(module, "<generated>", "exec"), namespace)
    return namespace[node.name], records


def _await_count(node: ast.AST) -> int:
    return sum(isinstance(child, ast.Await) for child in ast.walk(node))


DIVIDE = '''
def divide(a, b) -> Result:
    if b == 0:
        return Err("Division by zero")
    return Ok(a // b)
'''


# ---------------------------------------------------------------------------
# Plain functions
# ---------------------------------------------------------------------------


class TestPlainBody:
    def test_message_format(self):
        """'qualname(input) => repr(value)' at the default level."""
        add, records = _build("def add(a, b):\n    return a + b")
        assert add(2, 3) == 5
        assert records == [(logging.DEBUG, "app", "app.add(a = 2, b = 3) => 5")]

    def test_repr_of_strings(self):
        """Values are shown with repr()."""
        greet, records = _build("def greet(name):\n    return 'hi ' + name")
        greet("ann")
        assert records[0][2] == "app.greet(name = 'ann') => 'hi ann'"

    def test_str_conversion(self):
        """conversion='s' shows values with str()."""
        greet, records = _build("def greet(name):\n    return 'hi ' + name", conversion="s")
        greet("ann")
        assert records[0][2] == "app.greet(name = ann) => hi ann"

    def test_each_return_site_logs_once(self):
        """Early and late returns each produce one record."""
        sign, records = _build(
            "def sign(x):\n"
            "    if x < 0:\n"
            "        return -1\n"
            "    elif x == 0:\n"
            "        return 0\n"
            "    return 1"
        )
        assert [sign(-5), sign(0), sign(7)] == [-1, 0, 1]
        assert [message for _, _, message in records] == [
            "app.sign(x = -5) => -1",
            "app.sign(x = 0) => 0",
            "app.sign(x = 7) => 1",
        ]

    def test_implicit_return_logs_none(self):
        """Falling off the end logs '=> None'."""
        touch, records = _build("def touch(items):\n    items.append(1)")
        items = []
        assert touch(items) is None
        assert items == [1]
        assert records[0][2] == "app.touch(items = []) => None"

    def test_bare_return_logs_none(self):
        """A bare 'return' logs '=> None'."""
        stop, records = _build("def stop(x):\n    if x:\n        return\n    x += 1")
        stop(True)
        stop(False)
        assert [message for _, _, message in records] == [
            "app.stop(x = True) => None",
            "app.stop(x = False) => None",
        ]

    def test_exception_produces_no_record(self):
        """An exception propagates unchanged and nothing is logged."""
        fail, records = _build("def fail(x):\n    raise KeyError(x)")
        with pytest.raises(KeyError):
            fail("k")
        assert records == []

    def test_return_expression_evaluated_once(self):
        """The returned expression runs exactly once."""
        counter = []
        bump, records = _build(
            "def bump():\n    return tick()",
            extra={"tick": lambda: counter.append(1) or len(counter)},
        )
        assert bump() == 1
        assert counter == [1]
        assert records[0][2] == "app.bump() => 1"

    def test_docstring_is_kept_first(self):
        """The docstring stays the first statement."""
        doc, _ = _build('def doc(x):\n    """Explain."""\n    return x')
        assert doc.__doc__ == "Explain."

    def test_docstring_only_body(self):
        """A body with just a docstring logs None."""
        doc, records = _build('def doc():\n    """Only this."""')
        assert doc() is None
        assert records[0][2] == "app.doc() => None"


# ---------------------------------------------------------------------------
# Result functions
# ---------------------------------------------------------------------------


class TestResultBody:
    def test_ok_and_err_levels(self):
        """Ok and Err records use their own levels."""
        divide, records = _build(DIVIDE, Directive(ok_level=logging.INFO, err_level=logging.ERROR))
        assert divide(4, 2) == Ok(2)
        assert divide(2, 0) == Err("Division by zero")
        assert records == [
            (logging.INFO, "app", "app.divide(a = 4, b = 2) => Ok(2)"),
            (logging.ERROR, "app", "app.divide(a = 2, b = 0) => Err('Division by zero')"),
        ]

    def test_ok_only(self):
        """Only successes are logged when err is unset."""
        divide, records = _build(DIVIDE, Directive(ok_level=logging.INFO))
        divide(4, 2)
        divide(2, 0)
        assert [message for _, _, message in records] == ["app.divide(a = 4, b = 2) => Ok(2)"]

    def test_err_only(self):
        """Only failures are logged when ok is unset."""
        divide, records = _build(DIVIDE, Directive(err_level=logging.WARNING))
        divide(4, 2)
        divide(2, 0)
        assert records == [(logging.WARNING, "app", "app.divide(a = 2, b = 0) => Err('Division by zero')")]

    def test_no_ok_or_err_uses_plain_form(self):
        """Without ok/err a result function logs like a plain one."""
        divide, records = _build(DIVIDE, Directive(default_level=logging.INFO))
        divide(2, 0)
        assert records == [(logging.INFO, "app", "app.divide(a = 2, b = 0) => Err('Division by zero')")]

    def test_plain_function_ignores_ok_and_err(self):
        """ok/err have no effect when the return type is not a result."""
        add, records = _build(
            "def add(a, b) -> int:\n    return a + b",
            Directive(default_level=logging.WARNING, ok_level=logging.INFO, err_level=logging.ERROR),
        )
        add(1, 1)
        assert records == [(logging.WARNING, "app", "app.add(a = 1, b = 1) => 2")]


# ---------------------------------------------------------------------------
# Input template
# ---------------------------------------------------------------------------


class TestInputTemplate:
    def test_default_template_lists_every_parameter(self):
        """Every parameter appears as 'name = {name!r}'."""
        shape = analyze(ast.parse("def f(a, *rest, key=1, **extra): pass").body[0])
        assert default_input_format(shape) == "a = {a!r}, rest = {rest!r}, key = {key!r}, extra = {extra!r}"

    def test_receiver_shown_by_name(self):
        """A leading self or cls is shown without its value."""
        shape = analyze(ast.parse("def area(self, scale): pass").body[0])
        assert default_input_format(shape) == "self, scale = {scale!r}"

    def test_custom_template_is_used_verbatim(self):
        """The custom template replaces the input part."""
        directive = Directive(input_format="{a} and {b * 2}")
        add, records = _build("def add(a, b):\n    return a + b", directive)
        add(1, 2)
        assert records[0][2] == "app.add(1 and 4) => 3"

    def test_template_evaluated_before_body(self):
        """The input part shows parameter values as they were on entry."""
        grow, records = _build(
            "def grow(items):\n    items.append(2)\n    return len(items)",
            Directive(input_format="{items!r}"),
        )
        grow([1])
        assert records[0][2] == "app.grow([1]) => 2"

    def test_malformed_template_is_a_syntax_error(self):
        """An unbalanced brace fails when the body is synthesized."""
        with pytest.raises(SyntaxError):
            _build("def f(a):\n    return a", Directive(input_format="{a"))


# ---------------------------------------------------------------------------
# Cleanup and formatting failures
# ---------------------------------------------------------------------------


class _Events:
    """Context manager recording enter/exit, optionally failing on exit."""

    def __init__(self, events, fail=False):
        self.events = events
        self.fail = fail

    def __enter__(self):
        self.events.append("enter")
        return self

    def __exit__(self, *exc):
        self.events.append("exit")
        if self.fail:
            raise RuntimeError("exit failed")
        return False


class _BadRepr:
    def __repr__(self):
        raise ValueError("no repr")


class TestAfterCleanup:
    def test_record_follows_with_exit(self):
        """The record is produced after __exit__ has run."""
        events = []
        use, _ = _build(
            "def use(x):\n    with Events(events):\n        return x",
            extra={"Events": _Events, "events": events, "_logcall_emit": lambda *record: events.append("record")},
        )
        assert use(1) == 1
        assert events == ["enter", "exit", "record"]

    def test_failing_exit_produces_no_record(self):
        """A return cancelled by a raising __exit__ is not logged."""
        events = []
        use, records = _build(
            "def use(x):\n    with Events(events, fail=True):\n        return x",
            extra={"Events": _Events, "events": events},
        )
        with pytest.raises(RuntimeError, match="exit failed"):
            use(1)
        assert records == []

    def test_record_follows_finally(self):
        """The function's own finally block runs before the record."""
        events = []
        step, _ = _build(
            "def step(x):\n"
            "    try:\n"
            "        return x\n"
            "    finally:\n"
            "        events.append('finally')",
            extra={"events": events, "_logcall_emit": lambda *record: events.append("record")},
        )
        step(1)
        assert events == ["finally", "record"]

    def test_return_in_finally_logs_final_value_once(self):
        """A return overridden by finally is logged once, with the returned value."""
        pick, records = _build(
            "def pick(x):\n"
            "    try:\n"
            "        return x\n"
            "    finally:\n"
            "        return x * 10"
        )
        assert pick(2) == 20
        assert records == [(logging.DEBUG, "app", "app.pick(x = 2) => 20")]

    def test_failing_repr_keeps_return_value(self):
        """A value whose repr raises is still returned; an ERROR record says why."""
        make, records = _build(
            "def make(flag):\n"
            "    try:\n"
            "        return BadRepr()\n"
            "    except ValueError:\n"
            "        return 'fallback'",
            extra={"BadRepr": _BadRepr},
        )
        assert isinstance(make(True), _BadRepr)
        assert records == [
            (logging.ERROR, "app", "app.make(flag = True) => <logging failed: ValueError('no repr')>"),
        ]

    def test_failing_result_check_keeps_return_value(self):
        """A non-result value in result mode is reported, not raised."""
        divide, records = _build(
            "def divide(a, b) -> Result:\n    return a // b",
            Directive(ok_level=logging.INFO),
        )
        assert divide(6, 3) == 2
        assert len(records) == 1
        level, _, message = records[0]
        assert level == logging.ERROR
        assert message.startswith("app.divide(a = 6, b = 3) => <logging failed: AttributeError(")


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


class TestStructure:
    def test_original_node_is_not_modified(self):
        """synthesize works on a copy."""
        node = ast.parse("def add(a, b):\n    return a + b").body[0]
        before = ast.dump(node)
        synthesize(node, Directive(), analyze(node), "app.add", "app")
        assert ast.dump(node) == before

    def test_nested_scopes_are_left_alone(self):
        """Returns inside nested defs, lambdas and classes are not rewritten."""
        outer, records = _build(
            "def outer(x):\n"
            "    def inner(y):\n"
            "        return y + 1\n"
            "    class Box:\n"
            "        def get(self):\n"
            "            return 0\n"
            "    double = lambda v: v * 2\n"
            "    return double(inner(x)) + Box().get()"
        )
        assert outer(1) == 4
        assert records == [(logging.DEBUG, "app", "app.outer(x = 1) => 4")]

    def test_async_await_count_preserved(self):
        """The async body has the same awaits and logs once per call."""
        source = (
            "async def fetch(x):\n"
            "    await asyncio.sleep(0)\n"
            "    if x:\n"
            "        return await asyncio.sleep(0, result=x)\n"
            "    return 0"
        )
        node = ast.parse(source).body[0]
        new = synthesize(node, Directive(), analyze(node), "app.fetch", "app")
        assert isinstance(new, ast.AsyncFunctionDef)
        assert _await_count(new) == _await_count(node)

        fetch, records = _build(source, extra={"asyncio": asyncio})
        assert asyncio.run(fetch(3)) == 3
        assert asyncio.run(fetch(0)) == 0
        assert [message for _, _, message in records] == [
            "app.fetch(x = 3) => 3",
            "app.fetch(x = 0) => 0",
        ]

    def test_layers_use_distinct_locals(self):
        """A second layer binds its own input and return names."""
        node = ast.parse("def add(a, b):\n    return a + b").body[0]
        shape = analyze(node)
        first = synthesize(node, Directive(), shape, "app.add", "app", layer=0)
        second = synthesize(first, Directive(default_level=logging.INFO), shape, "app.add", "app", layer=1)
        names = {child.id for child in ast.walk(second) if isinstance(child, ast.Name)}
        assert {"_logcall_input", "_logcall_ret", "_logcall_input_1", "_logcall_ret_1"} <= names

        records = []
        namespace = {"_logcall_emit": lambda *record: records.append(record)}
        exec(compile(ast.Module(body=[second], type_ignores=[]), "<generated>", "exec"), namespace)
        assert namespace["add"](1, 2) == 3
        assert [level for level, _, _ in records] == [logging.DEBUG, logging.INFO]
