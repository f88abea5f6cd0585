"""rewrite.py - Instrument a module's source text ahead of time.

``transform_source`` is the build-time counterpart of the ``@logcall``
decorator. It takes the source of a module and returns new source in which
every function decorated with ``@logcall`` has:

    - its ``@logcall(...)`` decorator line removed,
    - its body replaced with the instrumented body,
    - everything else (signature, other decorators, docstring, the code
      around it) left byte for byte as written.

A single import binding the logging capability is added near the top of the
module::

    from logcall.backend import emit as _logcall_emit

The rewritten module no longer needs ``logcall`` at definition time, which
makes it suitable for packaging steps that ship pre-instrumented code.

Example::

    with open("app/math.py") as f:
        instrumented = transform_source(f.read(), module="app.math", filename="app/math.py")
"""

import ast
import copy
import logging
from typing import List, Optional, Tuple

from .config import DEFAULT_OPTIONS, TransformOptions
from .directive import arguments_from_decorator, parse_directive
from .errors import UnsupportedItemError
from .signature import analyze
from .synthesize import EMIT_NAME, FunctionNode, synthesize

logger = logging.getLogger(__name__)

IMPORT_LINE = f"from logcall.backend import emit as {EMIT_NAME}\n"

# (first line index, end line index exclusive, replacement text)
_Edit = Tuple[int, int, str]


class SourceRewriter:
    """Rewrite module source so that ``@logcall`` functions log their calls.

    Attributes:
        options (TransformOptions): Recognised decorator names, result type
            names and value conversion.
    """

    def __init__(self, options: TransformOptions = DEFAULT_OPTIONS) -> None:
        self.options = options

    # ---------------------------------------------------------------------- #
    # Public interface
    # ---------------------------------------------------------------------- #

    def rewrite(self, source: str, module: str = "__main__", filename: str = "<unknown>") -> str:
        """Return ``source`` with every ``@logcall`` function instrumented.

        Args:
            source: Python source of one module.
            module: Dotted module path. It is the origin tag of the records
                and the prefix of the qualified names.
            filename: Used in diagnostics.

        Returns:
            The rewritten source, or ``source`` unchanged when it contains no
            decorated function.

        Raises:
            ConfigurationError: On an invalid decorator argument list.
            UnsupportedItemError: When the decorator is attached to a class
                or to a generator function.
            SyntaxError: When ``source`` or a custom input template does
                not parse.
        """
        tree = ast.parse(source, filename)
        targets = _TargetCollector(self, filename).collect(tree)
        if not targets:
            return source

        lines = source.splitlines(keepends=True)
        if lines and not lines[-1].endswith(("\n", "\r")):
            lines[-1] += "\n"

        edits: List[_Edit] = []
        for node, qualname in targets:
            new_node = self.instrument_node(node, module, qualname, filename)
            edits.append(self._splice(lines, node, new_node))
            logger.debug("instrumented %s.%s in %s", module, qualname, filename)
        edits.append((_import_index(tree), _import_index(tree), IMPORT_LINE))

        for start, end, text in sorted(edits, key=lambda edit: (edit[0], edit[1]), reverse=True):
            lines[start:end] = [text]
        return "".join(lines)

    def is_logcall(self, decorator: ast.expr) -> bool:
        """True if ``decorator`` is ``logcall``, ``x.logcall`` or a call of either."""
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        if isinstance(target, ast.Name):
            return target.id in self.options.decorator_names
        if isinstance(target, ast.Attribute):
            return target.attr in self.options.decorator_names
        return False

    def instrument_node(
        self, node: FunctionNode, module: str, qualname: str, filename: str = "<unknown>"
    ) -> FunctionNode:
        """Instrument one ``def`` node, including decorated functions nested in it.

        Stacked ``@logcall`` decorators are applied bottom-up, one layer
        each. The returned node keeps only the decorators that are not
        ``@logcall``.
        """
        node = copy.deepcopy(node)
        node.body = _NestedInstrumenter(self, module, qualname, filename).visit_body(node.body)

        decorators = [dec for dec in node.decorator_list if self.is_logcall(dec)]
        node.decorator_list = [dec for dec in node.decorator_list if not self.is_logcall(dec)]
        shape = analyze(node, self.options.result_type_names, filename)
        for layer, decorator in enumerate(reversed(decorators)):
            directive = parse_directive(arguments_from_decorator(decorator, filename), filename)
            node = synthesize(
                node,
                directive,
                shape,
                qualname=f"{module}.{qualname}",
                origin=module,
                layer=layer,
                conversion=self.options.conversion,
            )
        return node

    # ---------------------------------------------------------------------- #
    # Private helpers
    # ---------------------------------------------------------------------- #

    def _splice(self, lines: List[str], old: FunctionNode, new: FunctionNode) -> _Edit:
        """Build the edit replacing the lines of ``old`` with ``new``'s body.

        The kept prefix runs from the first decorator to the start of the
        first body statement. A docstring is kept as written. ``@logcall``
        lines are dropped from the prefix. The body is re-emitted with
        ``ast.unparse``.
        """
        first = min(dec.lineno for dec in old.decorator_list) - 1
        end = old.end_lineno

        body = old.body
        has_docstring = _is_docstring(body[0])
        # A decorated statement starts at its first decorator, not its def.
        decorators = getattr(body[0], "decorator_list", [])
        start_line = min([body[0].lineno] + [dec.lineno for dec in decorators]) - 1
        indent = _body_indent(lines, old, body[0])

        dropped = set()
        for dec in old.decorator_list:
            if self.is_logcall(dec):
                dropped.update(range(dec.lineno - 1, dec.end_lineno))

        prefix = [lines[index] for index in range(first, start_line) if index not in dropped]
        head = _byte_prefix(lines[start_line], body[0].col_offset)
        if head.strip():
            # One-line def: ``def f(x): "doc"; return x``
            prefix.append(head.rstrip() + "\n")
            if has_docstring:
                docstring = ast.get_source_segment("".join(lines), body[0])
                prefix.append(indent + docstring + "\n")
        elif has_docstring:
            prefix.extend(lines[start_line : body[0].end_lineno - 1])
            prefix.append(_byte_prefix(lines[body[0].end_lineno - 1], body[0].end_col_offset).rstrip() + "\n")

        new_body = new.body[1:] if has_docstring else new.body
        text = "".join(prefix)
        for stmt in new_body:
            for line in ast.unparse(stmt).splitlines():
                text += (indent + line if line else line) + "\n"
        return first, end, text


class _TargetCollector(ast.NodeVisitor):
    """Find the outermost ``@logcall`` functions and their qualified names."""

    def __init__(self, rewriter: SourceRewriter, filename: str) -> None:
        self.rewriter = rewriter
        self.filename = filename
        self.scope: List[str] = []
        self.targets: List[Tuple[FunctionNode, str]] = []

    def collect(self, tree: ast.Module) -> List[Tuple[FunctionNode, str]]:
        self.visit(tree)
        return self.targets

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for dec in node.decorator_list:
            if self.rewriter.is_logcall(dec):
                raise UnsupportedItemError(
                    f"logcall can only be applied to function definitions, found class {node.name!r}",
                    self.filename,
                    dec.lineno,
                    dec.col_offset + 1,
                )
        self.scope.append(node.name)
        self.generic_visit(node)
        self.scope.pop()

    def visit_FunctionDef(self, node: FunctionNode) -> None:
        qualname = ".".join(self.scope + [node.name])
        if any(self.rewriter.is_logcall(dec) for dec in node.decorator_list):
            # Nested targets are handled by SourceRewriter.instrument_node.
            self.targets.append((node, qualname))
            return
        self.scope.extend([node.name, "<locals>"])
        self.generic_visit(node)
        del self.scope[-2:]

    visit_AsyncFunctionDef = visit_FunctionDef


class _NestedInstrumenter(ast.NodeTransformer):
    """Instrument decorated functions inside an instrumented function's body."""

    def __init__(self, rewriter: SourceRewriter, module: str, qualname: str, filename: str) -> None:
        self.rewriter = rewriter
        self.module = module
        self.filename = filename
        self.scope = [qualname, "<locals>"]

    def visit_body(self, body: List[ast.stmt]) -> List[ast.stmt]:
        return [self.visit(stmt) for stmt in body]

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.ClassDef:
        if any(self.rewriter.is_logcall(dec) for dec in node.decorator_list):
            dec = next(dec for dec in node.decorator_list if self.rewriter.is_logcall(dec))
            raise UnsupportedItemError(
                f"logcall can only be applied to function definitions, found class {node.name!r}",
                self.filename,
                dec.lineno,
                dec.col_offset + 1,
            )
        self.scope.append(node.name)
        self.generic_visit(node)
        self.scope.pop()
        return node

    def visit_FunctionDef(self, node: FunctionNode) -> FunctionNode:
        qualname = ".".join(self.scope + [node.name])
        if any(self.rewriter.is_logcall(dec) for dec in node.decorator_list):
            return self.rewriter.instrument_node(node, self.module, qualname, self.filename)
        self.scope.extend([node.name, "<locals>"])
        self.generic_visit(node)
        del self.scope[-2:]
        return node

    visit_AsyncFunctionDef = visit_FunctionDef


def _is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def _byte_prefix(line: str, col_offset: int) -> str:
    # ast column offsets count UTF-8 bytes, not characters.
    return line.encode("utf-8")[:col_offset].decode("utf-8")


def _body_indent(lines: List[str], node: FunctionNode, first: ast.stmt) -> str:
    line = lines[first.lineno - 1]
    before = _byte_prefix(line, first.col_offset)
    if not before.strip():
        return before
    # One-line def: ``def f(x): return x``
    header = lines[node.lineno - 1]
    return header[: len(header) - len(header.lstrip())] + "    "


def _import_index(tree: ast.Module) -> int:
    """Line index after the module docstring and ``from __future__`` imports."""
    index: Optional[int] = None
    for position, stmt in enumerate(tree.body):
        is_future = isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__"
        if is_future or (position == 0 and _is_docstring(stmt)):
            index = stmt.end_lineno
            continue
        break
    if index is not None:
        return index
    first = tree.body[0]
    decorators = getattr(first, "decorator_list", [])
    return min([first.lineno] + [dec.lineno for dec in decorators]) - 1


def transform_source(
    source: str,
    module: str = "__main__",
    filename: str = "<unknown>",
    options: Optional[TransformOptions] = None,
) -> str:
    """Shortcut for ``SourceRewriter(options).rewrite(source, module, filename)``."""
    return SourceRewriter(options or DEFAULT_OPTIONS).rewrite(source, module, filename)
