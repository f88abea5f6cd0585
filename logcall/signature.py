"""signature.py - Classify a function definition for the body synthesizer.

The analyzer looks only at syntax. Type information is not available when a
decorator runs (annotations may be strings, forward references or names
that are not defined yet), so whether a function returns a two-variant result
is decided from the *spelling* of its return annotation:

    -> Result[int, str]          RESULT
    -> "Result[int, str]"        RESULT (string annotations are parsed)
    -> results.Result[int, str]  RESULT (trailing attribute segment)
    -> Outcome                   PLAIN, even if ``Outcome = Result[int, str]``
    -> Ok[int] | Err[str]        PLAIN (no single outer name)

Aliases and re-exports under another name are therefore misclassified as
plain. This is a known limitation. Add the alias to
``TransformOptions.result_type_names`` to have it recognised.
"""

import ast
import enum
from dataclasses import dataclass
from typing import Any, FrozenSet, NamedTuple, Optional, Tuple

from .config import DEFAULT_RESULT_TYPE_NAMES
from .errors import UnsupportedItemError

FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)

# Nested scopes whose ``return``/``yield`` do not belong to the enclosing function.
SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)

_ITEM_KINDS = {
    ast.ClassDef: "class",
    ast.Assign: "assignment",
    ast.AnnAssign: "annotated assignment",
    ast.Expr: "expression",
    ast.Lambda: "lambda",
    ast.Import: "import",
    ast.ImportFrom: "import",
    ast.Module: "module",
}


class ReturnKind(enum.Enum):
    PLAIN = "plain"
    RESULT = "result"


class Parameter(NamedTuple):
    name: str
    annotation: Optional[str]
    kind: str


@dataclass(frozen=True)
class FunctionShape:
    """What the synthesizer needs to know about a function.

    Attributes:
        is_async: True for ``async def``.
        return_kind: RESULT when the return annotation names a recognised
            result type, otherwise PLAIN.
        parameters: Every parameter in declaration order.
    """

    is_async: bool
    return_kind: ReturnKind
    parameters: Tuple[Parameter, ...]


def describe_item(node: ast.AST) -> str:
    """Return a short human-readable kind for an AST node, e.g. ``"class"``."""
    if isinstance(node, FUNCTION_NODES) and is_generator(node):
        return "async generator function" if isinstance(node, ast.AsyncFunctionDef) else "generator function"
    kind = _ITEM_KINDS.get(type(node))
    if kind is None:
        kind = type(node).__name__.lower()
    return kind


def describe_object(obj: Any) -> str:
    """Return a short human-readable kind for a runtime object."""
    if isinstance(obj, type):
        return f"class {obj.__name__!r}"
    if isinstance(obj, (staticmethod, classmethod)):
        return f"{type(obj).__name__} object (apply @logcall below it)"
    if isinstance(obj, property):
        return "property object (apply @logcall to the getter)"
    name = getattr(obj, "__qualname__", None)
    if name is not None:
        return f"{type(obj).__name__} {name!r}"
    return f"{type(obj).__name__} object"


def is_generator(node: ast.AST) -> bool:
    """True if ``yield`` appears in the function's own body."""
    stack = list(ast.iter_child_nodes(node))
    while stack:
        child = stack.pop()
        if isinstance(child, (ast.Yield, ast.YieldFrom)):
            return True
        if isinstance(child, SCOPE_NODES):
            continue
        stack.extend(ast.iter_child_nodes(child))
    return False


def return_kind(
    annotation: Optional[ast.expr],
    result_type_names: FrozenSet[str] = DEFAULT_RESULT_TYPE_NAMES,
) -> ReturnKind:
    """Classify a return annotation by the trailing segment of its outer name."""
    if annotation is None:
        return ReturnKind.PLAIN
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        try:
            annotation = ast.parse(annotation.value, mode="eval").body
        except SyntaxError:
            return ReturnKind.PLAIN
    if isinstance(annotation, ast.Subscript):
        annotation = annotation.value
    if isinstance(annotation, ast.Name):
        name = annotation.id
    elif isinstance(annotation, ast.Attribute):
        name = annotation.attr
    else:
        return ReturnKind.PLAIN
    return ReturnKind.RESULT if name in result_type_names else ReturnKind.PLAIN


def parameters(args: ast.arguments) -> Tuple[Parameter, ...]:
    """List the parameters of an ``ast.arguments`` node in declaration order."""

    def make(arg: ast.arg, kind: str) -> Parameter:
        annotation = ast.unparse(arg.annotation) if arg.annotation is not None else None
        return Parameter(arg.arg, annotation, kind)

    result = [make(arg, "positional-only") for arg in args.posonlyargs]
    result += [make(arg, "positional") for arg in args.args]
    if args.vararg is not None:
        result.append(make(args.vararg, "var-positional"))
    result += [make(arg, "keyword-only") for arg in args.kwonlyargs]
    if args.kwarg is not None:
        result.append(make(args.kwarg, "var-keyword"))
    return tuple(result)


def analyze(
    node: ast.AST,
    result_type_names: FrozenSet[str] = DEFAULT_RESULT_TYPE_NAMES,
    filename: Optional[str] = None,
) -> FunctionShape:
    """Classify a decorated item.

    Args:
        node: The item the decorator was attached to.
        result_type_names: Trailing names recognised as a result type.
        filename: Source file used in diagnostics.

    Returns:
        The FunctionShape of ``node``.

    Raises:
        UnsupportedItemError: If ``node`` is not a ``def``/``async def``, or
            is a generator. The message names the kind found.
    """
    if not isinstance(node, FUNCTION_NODES) or is_generator(node):
        lineno = getattr(node, "lineno", None)
        offset = getattr(node, "col_offset", None)
        raise UnsupportedItemError(
            f"logcall can only be applied to function definitions, found {describe_item(node)}",
            filename,
            lineno,
            offset + 1 if offset is not None else None,
        )

    return FunctionShape(
        is_async=isinstance(node, ast.AsyncFunctionDef),
        return_kind=return_kind(node.returns, result_type_names),
        parameters=parameters(node.args),
    )
