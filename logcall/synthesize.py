"""synthesize.py - Build the instrumented body of a decorated function.

Given the parsed ``def``, its Directive and its FunctionShape, ``synthesize``
returns a new ``def`` node with the same signature and a body that logs
exactly one record per call. For ``add(a, b)`` decorated with ``@logcall``
the generated body reads::

    def add(a, b):
        _logcall_input = f'a = {a!r}, b = {b!r}'
        _logcall_done = False
        try:
            _logcall_ret = a + b
            _logcall_done = True
            return _logcall_ret
        except BaseException:
            _logcall_done = False
            raise
        finally:
            if _logcall_done:
                try:
                    _logcall_emit(10, 'app', f'app.add({_logcall_input}) => {_logcall_ret!r}')
                except Exception as _logcall_error:
                    _logcall_emit(40, 'app', f'app.add({_logcall_input}) => <logging failed: {_logcall_error!r}>')

Every ``return`` of the function itself binds its value once and marks the
call as returned. The record is produced in the outer ``finally``, after the
function's own ``with`` and ``finally`` blocks have run, and outside any
``try`` the function wrote. An exception leaving the body clears the mark,
so it propagates without a record. No closure or inner coroutine is
introduced: an ``async def`` keeps exactly its own ``await`` points.

A failure while formatting the record (a ``__repr__`` that raises, a result
whose ``is_ok()`` raises) never changes what the call returns. It is
reported as an ERROR record instead, the same way ``logging.Handler``
reports errors in ``handleError`` rather than raising into the caller.
"""

import ast
import copy
import logging
from typing import List, NamedTuple, Optional, Union

from .directive import Directive
from .signature import SCOPE_NODES, FunctionShape, ReturnKind

FunctionNode = Union[ast.FunctionDef, ast.AsyncFunctionDef]

# Name under which the generated code finds the logging capability. The
# definition-time decorator binds it as a closure cell, the build-time
# rewriter imports it at module level.
EMIT_NAME = "_logcall_emit"

# A leading receiver is shown by name only, never through its own __repr__.
RECEIVER_NAMES = ("self", "cls")

FAILURE_LEVEL = logging.ERROR


class _Names(NamedTuple):
    input: str
    ret: str
    done: str
    error: str


def _names(layer: int) -> _Names:
    suffix = f"_{layer}" if layer else ""
    return _Names(
        f"_logcall_input{suffix}",
        f"_logcall_ret{suffix}",
        f"_logcall_done{suffix}",
        f"_logcall_error{suffix}",
    )


def default_input_format(shape: FunctionShape, conversion: str = "r") -> str:
    """Synthesize the input template listing every parameter.

    ``def add(a, b)`` gives ``"a = {a!r}, b = {b!r}"``; ``def area(self, scale)``
    gives ``"self, scale = {scale!r}"``.
    """
    parts = []
    for index, param in enumerate(shape.parameters):
        if index == 0 and param.name in RECEIVER_NAMES and param.kind in ("positional-only", "positional"):
            parts.append(param.name)
        else:
            parts.append(f"{param.name} = {{{param.name}!{conversion}}}")
    return ", ".join(parts)


def _template(template: str, anchor: ast.AST) -> ast.expr:
    # SyntaxError from a malformed template propagates unchanged.
    expr = ast.parse("f" + repr(template), mode="eval").body
    for node in ast.walk(expr):
        ast.copy_location(node, anchor)
    return expr


def _message(
    qualname: str,
    names: _Names,
    value: ast.expr,
    variant: Optional[str],
    conversion: str,
) -> ast.JoinedStr:
    formatted = ast.FormattedValue(value=value, conversion=ord(conversion), format_spec=None)
    values: List[ast.expr] = [
        ast.Constant(value=f"{qualname}("),
        ast.FormattedValue(value=ast.Name(id=names.input, ctx=ast.Load()), conversion=-1, format_spec=None),
    ]
    if variant is None:
        values += [ast.Constant(value=") => "), formatted]
    else:
        values += [ast.Constant(value=f") => {variant}("), formatted, ast.Constant(value=")")]
    return ast.JoinedStr(values=values)


def _emit(level: int, origin: str, message: ast.expr) -> ast.stmt:
    call = ast.Call(
        func=ast.Name(id=EMIT_NAME, ctx=ast.Load()),
        args=[ast.Constant(value=level), ast.Constant(value=origin), message],
        keywords=[],
    )
    return ast.Expr(value=call)


def _outcome(
    directive: Directive,
    shape: FunctionShape,
    names: _Names,
    qualname: str,
    origin: str,
    conversion: str,
) -> List[ast.stmt]:
    """The decision table, as statements run after ``_logcall_ret`` is bound."""

    def ret() -> ast.expr:
        return ast.Name(id=names.ret, ctx=ast.Load())

    if shape.return_kind is not ReturnKind.RESULT or not directive.logs_result_variants:
        message = _message(qualname, names, ret(), None, conversion)
        return [_emit(directive.default_level, origin, message)]

    def check(method: str) -> ast.expr:
        return ast.Call(func=ast.Attribute(value=ret(), attr=method, ctx=ast.Load()), args=[], keywords=[])

    def log(level: int, attr: str, variant: str) -> List[ast.stmt]:
        payload = ast.Attribute(value=ret(), attr=attr, ctx=ast.Load())
        return [_emit(level, origin, _message(qualname, names, payload, variant, conversion))]

    if directive.ok_level is not None and directive.err_level is not None:
        return [
            ast.If(
                test=check("is_ok"),
                body=log(directive.ok_level, "value", "Ok"),
                orelse=log(directive.err_level, "error", "Err"),
            )
        ]
    if directive.ok_level is not None:
        return [ast.If(test=check("is_ok"), body=log(directive.ok_level, "value", "Ok"), orelse=[])]
    return [ast.If(test=check("is_err"), body=log(directive.err_level, "error", "Err"), orelse=[])]


class _ReturnRewriter(ast.NodeTransformer):
    """Rewrite ``return X`` into bind, mark, return. Nested scopes are skipped."""

    def __init__(self, names: _Names) -> None:
        self.names = names

    def visit(self, node):
        if isinstance(node, SCOPE_NODES):
            return node
        return super().visit(node)

    def visit_Return(self, node: ast.Return) -> List[ast.stmt]:
        value = node.value if node.value is not None else ast.Constant(value=None)
        statements = _returned(self.names, value) + [
            ast.Return(value=ast.Name(id=self.names.ret, ctx=ast.Load())),
        ]
        for statement in statements:
            ast.copy_location(statement, node)
        return statements


def _assign(name: str, value: ast.expr) -> ast.Assign:
    return ast.Assign(targets=[ast.Name(id=name, ctx=ast.Store())], value=value)


def _returned(names: _Names, value: ast.expr) -> List[ast.stmt]:
    return [_assign(names.ret, value), _assign(names.done, ast.Constant(value=True))]


def _failure(names: _Names, qualname: str, origin: str) -> ast.ExceptHandler:
    message = ast.JoinedStr(
        values=[
            ast.Constant(value=f"{qualname}("),
            ast.FormattedValue(value=ast.Name(id=names.input, ctx=ast.Load()), conversion=-1, format_spec=None),
            ast.Constant(value=") => <logging failed: "),
            ast.FormattedValue(value=ast.Name(id=names.error, ctx=ast.Load()), conversion=ord("r"), format_spec=None),
            ast.Constant(value=">"),
        ]
    )
    return ast.ExceptHandler(
        type=ast.Name(id="Exception", ctx=ast.Load()),
        name=names.error,
        body=[_emit(FAILURE_LEVEL, origin, message)],
    )


def _is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def synthesize(
    node: FunctionNode,
    directive: Directive,
    shape: FunctionShape,
    qualname: str,
    origin: str,
    layer: int = 0,
    conversion: str = "r",
) -> FunctionNode:
    """Return a copy of ``node`` whose body logs the call.

    Args:
        node: The original ``def``. It is not modified.
        directive: Parsed decorator arguments.
        shape: ``analyze(node)``.
        qualname: Fully qualified name used as the subject of the message,
            e.g. ``"app.math.add"``.
        origin: Logger/origin tag handed to the backend, normally the module.
        layer: Index of this decorator among stacked ``@logcall``s. Each layer
            binds its own locals.
        conversion: ``"r"`` or ``"s"``, the f-string conversion for values.

    Returns:
        A new FunctionDef/AsyncFunctionDef. Name, arguments, return
        annotation, decorators, docstring and type parameters are those of
        ``node``.
    """
    names = _names(layer)
    new = copy.deepcopy(node)
    body = new.body

    docstring: List[ast.stmt] = []
    if body and _is_docstring(body[0]):
        docstring = [body.pop(0)]

    anchor = body[0] if body else (docstring[0] if docstring else node)
    template = directive.input_format
    if template is None:
        template = default_input_format(shape, conversion)
    prologue = [
        _assign(names.input, _template(template, anchor)),
        _assign(names.done, ast.Constant(value=False)),
    ]

    rewriter = _ReturnRewriter(names)
    guarded: List[ast.stmt] = []
    for stmt in body:
        result = rewriter.visit(stmt)
        if isinstance(result, list):
            guarded.extend(result)
        else:
            guarded.append(result)
    if not body or not isinstance(body[-1], (ast.Return, ast.Raise)):
        guarded.extend(_returned(names, ast.Constant(value=None)))

    record = ast.Try(
        body=_outcome(directive, shape, names, qualname, origin, conversion),
        handlers=[_failure(names, qualname, origin)],
        orelse=[],
        finalbody=[],
    )
    wrapper = ast.Try(
        body=guarded,
        handlers=[
            ast.ExceptHandler(
                type=ast.Name(id="BaseException", ctx=ast.Load()),
                name=None,
                body=[_assign(names.done, ast.Constant(value=False)), ast.Raise(exc=None, cause=None)],
            )
        ],
        orelse=[],
        finalbody=[ast.If(test=ast.Name(id=names.done, ctx=ast.Load()), body=[record], orelse=[])],
    )
    for stmt in prologue + [wrapper]:
        ast.copy_location(stmt, anchor)

    new.body = docstring + prologue + [wrapper]
    return ast.fix_missing_locations(new)
