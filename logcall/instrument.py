"""instrument.py - The @logcall decorator.

``@logcall`` instruments a function once, when its ``def`` executes. It
does not wrap the function in another one. Instead it re-reads the
function's source, rewrites the body with ``synthesize`` and compiles a
replacement function from the result. The replacement has the original code
location, globals, closure cells, defaults, annotations and attributes. Its
only behavioural difference is one call into the logging backend per
invocation.

    @logcall                                  DEBUG, every call
    @logcall("info")                          INFO, every call
    @logcall(ok="info", err="error")          Result-returning functions
    @logcall(input="user_id = {user_id!r}")   custom input part

Usage:
    from logcall import logcall

    @logcall("info")
    def add(a: int, b: int) -> int:
        return a + b

    add(2, 3)   # INFO app.add(a = 2, b = 3) => 5

Note:
    ``@logcall`` must sit directly above the ``def`` (other decorators may
    sit above it). A callable that is already wrapped, e.g. by a decorator
    using ``functools.wraps``, is rejected, since its body is not the one in
    the source. Stacking ``@logcall`` on itself is allowed and logs once per
    layer.
"""

import __future__
import ast
import inspect
import logging
import types
from collections import deque
from typing import Any, Callable, Dict, Optional

from .backend import emit
from .config import DEFAULT_OPTIONS, TransformOptions
from .directive import Directive, arguments_from_call, parse_directive
from .errors import UnsupportedItemError
from .signature import FUNCTION_NODES, FunctionShape, analyze, describe_object
from .synthesize import EMIT_NAME, FunctionNode, synthesize

logger = logging.getLogger(__name__)

_FACTORY_NAME = "_logcall_factory"

# Set on every instrumented function so that a second @logcall layer builds
# on the already rewritten body instead of the pristine source.
_NODE_ATTR = "__logcall_node__"
_LAYERS_ATTR = "__logcall_layers__"


class Instrumenter:
    """Decorator factory that instruments functions with call logging.

    ``logcall`` is the default instance. Create another one to change the
    options for a group of functions::

        logcall = Instrumenter(TransformOptions(conversion="s"))

    Attributes:
        options (TransformOptions): Result-type names and value conversion.
    """

    def __init__(self, options: TransformOptions = DEFAULT_OPTIONS) -> None:
        self.options = options

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        """Apply as ``@logcall`` or build a decorator as ``@logcall(...)``.

        Raises:
            ConfigurationError: On invalid arguments, pointing at the line of
                the decorator.
            UnsupportedItemError: When applied to something that is not an
                ordinary function definition.
        """
        frame = inspect.currentframe().f_back
        filename, lineno = frame.f_code.co_filename, frame.f_lineno
        scope = _function_locals(frame)
        del frame

        if len(args) == 1 and not kwargs and callable(args[0]):
            return self.instrument(args[0], Directive(), filename, lineno, scope)

        directive = parse_directive(arguments_from_call(args, kwargs, lineno), filename)

        def decorator(func: Callable) -> Callable:
            return self.instrument(func, directive, filename, lineno, scope)

        return decorator

    def instrument(
        self,
        func: Callable,
        directive: Directive,
        filename: Optional[str] = None,
        lineno: Optional[int] = None,
        scope: Optional[Dict[str, Any]] = None,
    ) -> types.FunctionType:
        """Return an instrumented replacement for ``func``.

        Args:
            func: A plain ``def`` or ``async def`` function.
            directive: The parsed decorator arguments.
            filename: Location of the decorator, used in diagnostics.
            lineno: Location of the decorator, used in diagnostics.
            scope: Local variables of the enclosing function, if ``func`` is
                defined inside one. Names of a custom input template found
                here are bound by value.

        Returns:
            A new function object with the same signature and metadata.

        Raises:
            UnsupportedItemError: If ``func`` is not an instrumentable
                function. The message names what was found.
        """
        found = None
        if not isinstance(func, types.FunctionType):
            found = describe_object(func)
        elif hasattr(func, "__wrapped__"):
            found = f"wrapped callable {func.__qualname__!r}"
        elif func.__name__ == "<lambda>":
            found = "lambda"
        if found is not None:
            raise UnsupportedItemError(
                f"logcall can only be applied to function definitions, found {found}",
                filename,
                lineno,
            )

        node = getattr(func, _NODE_ATTR, None)
        layer = getattr(func, _LAYERS_ATTR, 0)
        if node is None:
            node = _parse_function(func, filename, lineno)

        module = func.__module__ or "__main__"
        shape = analyze(node, self.options.result_type_names, func.__code__.co_filename)
        new_node = synthesize(
            node,
            directive,
            shape,
            qualname=f"{module}.{func.__qualname__}",
            origin=module,
            layer=layer,
            conversion=self.options.conversion,
        )

        new_func = _build_function(func, new_node, _template_bindings(directive, shape, func, scope))
        setattr(new_func, _NODE_ATTR, new_node)
        setattr(new_func, _LAYERS_ATTR, layer + 1)
        logger.debug(
            "instrumented %s.%s (%s, %s return, layer %d)",
            module,
            func.__qualname__,
            "async" if shape.is_async else "sync",
            shape.return_kind.value,
            layer,
        )
        return new_func


def _parse_function(
    func: types.FunctionType, filename: Optional[str], lineno: Optional[int]
) -> FunctionNode:
    """Parse the ``def`` of ``func`` with line numbers matching its file."""
    try:
        lines, firstlineno = inspect.getsourcelines(func)
    except (OSError, TypeError) as exc:
        raise UnsupportedItemError(
            f"cannot instrument {func.__qualname__!r}: its source is not available ({exc})",
            filename,
            lineno,
        ) from None

    source = "".join(lines)
    offset = firstlineno - 1
    # Methods and nested functions are indented: parse them under a dummy block.
    if lines and lines[0][:1] in (" ", "\t"):
        source = "if 1:\n" + source
        offset -= 1
    tree = ast.parse(source, func.__code__.co_filename)
    ast.increment_lineno(tree, offset)

    node = tree.body[0]
    if isinstance(node, ast.If):
        node = node.body[0]
    if not isinstance(node, FUNCTION_NODES) or node.name != func.__name__:
        raise UnsupportedItemError(
            f"cannot instrument {func.__qualname__!r}: its source does not start with its own def",
            filename,
            lineno,
        )
    # Decorators are applied by the interpreter, not by the rebuilt def.
    node.decorator_list = []
    return node


def _function_locals(frame: types.FrameType) -> Dict[str, Any]:
    # Module and class bodies resolve names on their own at call time.
    if frame.f_code.co_flags & inspect.CO_OPTIMIZED:
        return dict(frame.f_locals)
    return {}


def _template_bindings(
    directive: Directive,
    shape: FunctionShape,
    func: types.FunctionType,
    scope: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """Values for the names of a custom input template that live in ``scope``.

    A name the function already closes over keeps its own cell. Parameters
    are never taken from the enclosing scope.
    """
    if directive.input_format is None or not scope:
        return {}
    expr = ast.parse("f" + repr(directive.input_format), mode="eval")
    own = {param.name for param in shape.parameters} | set(func.__code__.co_freevars)
    bindings = {}
    for node in ast.walk(expr):
        if isinstance(node, ast.Name) and node.id in scope and node.id not in own:
            bindings[node.id] = scope[node.id]
    return bindings


def _enclosing_class(qualname: str) -> Optional[str]:
    """Name of the innermost class around the function, if any.

    ``C.m`` and ``C.m.<locals>.helper`` give ``"C"``, ``A.B.m`` gives
    ``"B"``, ``f.<locals>.g`` gives ``None``.
    """
    parts = qualname.split(".")[:-1]
    for index in range(len(parts) - 1, -1, -1):
        part = parts[index]
        if part == "<locals>":
            continue
        if index + 1 < len(parts) and parts[index + 1] == "<locals>":
            # A function scope.
            continue
        return part
    return None


def _find_code(code: types.CodeType, name: str) -> types.CodeType:
    """Breadth-first search for the instrumented function's code object."""
    queue = deque([code])
    while queue:
        current = queue.popleft()
        for const in current.co_consts:
            if not isinstance(const, types.CodeType):
                continue
            if const.co_name == name:
                return const
            queue.append(const)
    raise LookupError(f"compiled code for {name!r} not found")


def _build_function(
    func: types.FunctionType, node: FunctionNode, bindings: Optional[Dict[str, Any]] = None
) -> types.FunctionType:
    """Compile ``node`` and bind it to the environment of ``func``.

    The ``def`` is compiled inside a factory whose parameters are the
    logging capability, the free variables of ``func`` and the extra
    ``bindings``. The factory is never called: its nested code object is
    extracted and turned into a function that reuses ``func``'s own closure
    cells, so assignments to ``nonlocal`` variables stay visible on both
    sides. Methods are compiled inside a class of the same name to keep
    private-name mangling intact.
    """
    bindings = bindings or {}
    # A previous @logcall layer already closes over EMIT_NAME.
    freevars = tuple(name for name in func.__code__.co_freevars if name != EMIT_NAME)
    params = ", ".join((EMIT_NAME,) + freevars + tuple(bindings))
    scaffold = f"def {_FACTORY_NAME}({params}):\n    pass\n"
    class_name = _enclosing_class(func.__qualname__)
    if class_name is not None:
        scaffold = f"class {class_name}:\n    def {_FACTORY_NAME}({params}):\n        pass\n"

    module = ast.parse(scaffold)
    factory = module.body[0]
    if class_name is not None:
        factory = factory.body[0]
    factory.body = [node]
    ast.fix_missing_locations(module)

    flags = func.__code__.co_flags & __future__.annotations.compiler_flag
    code = compile(module, func.__code__.co_filename, "exec", flags=flags, dont_inherit=True)
    inner = _find_code(code, node.name)

    cells = {name: types.CellType(value) for name, value in bindings.items()}
    cells.update(zip(func.__code__.co_freevars, func.__closure__ or ()))
    cells[EMIT_NAME] = types.CellType(emit)
    closure = tuple(cells[name] for name in inner.co_freevars)

    new_func = types.FunctionType(inner, func.__globals__, func.__name__, func.__defaults__, closure)
    new_func.__kwdefaults__ = func.__kwdefaults__
    new_func.__qualname__ = func.__qualname__
    new_func.__module__ = func.__module__
    new_func.__doc__ = func.__doc__
    new_func.__dict__.update(func.__dict__)
    annotate = getattr(func, "__annotate__", None)
    if annotate is not None:
        new_func.__annotate__ = annotate
    else:
        new_func.__annotations__ = func.__annotations__
    if hasattr(func, "__type_params__"):
        new_func.__type_params__ = func.__type_params__
    return new_func


logcall = Instrumenter()
