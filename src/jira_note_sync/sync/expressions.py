"""Compile user-authored field-mapping expressions into sandboxed callables.

Expressions use Python expression syntax and are accepted in three shapes:

- a bare expression: ``issue.fields.summary.upper()``
- a lambda: ``lambda value: {"name": value}``
- arrow style: ``(issue, local) => issue.fields.priority.name``

Bare expressions see ``value`` for the to-remote direction and ``issue`` and
``local`` for from-remote. Sources are parsed with ``ast`` and evaluated by
a small interpreter over an allow-listed node set; nothing is handed to the
host ``eval``. Mappings are readable by attribute (``issue.fields.summary``),
a missing key reads as None.
"""

from __future__ import annotations

import ast
import copy
import logging
import operator
import re
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any, NamedTuple

from ..constants import DEFAULT_ISSUE, SAMPLE_LOCAL_SNAPSHOT, SAMPLE_VALUES
from ..converters import markdown_to_wiki, wiki_to_markdown
from ..errors import CompileError

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Which half of a field mapping an expression implements."""

    TO_REMOTE = "to_remote"
    FROM_REMOTE = "from_remote"


PARAMETERS: dict[Direction, tuple[str, ...]] = {
    Direction.TO_REMOTE: ("value",),
    Direction.FROM_REMOTE: ("issue", "local"),
}

# Identifiers no expression may name, as a variable, attribute, parameter or
# keyword: host globals, dynamic code, network and timer primitives. Any
# identifier containing a double underscore is refused as well.
FORBIDDEN_TOKENS: frozenset[str] = frozenset(
    {
        "eval",
        "exec",
        "compile",
        "globals",
        "locals",
        "vars",
        "open",
        "getattr",
        "setattr",
        "delattr",
        "os",
        "sys",
        "subprocess",
        "socket",
        "requests",
        "urllib",
        "httpx",
        "sleep",
        "threading",
        "asyncio",
        "window",
        "document",
        "fetch",
        "Function",
        "setTimeout",
        "setInterval",
    }
)
_ARROW_RE = re.compile(
    r"^\(?\s*(?P<params>[A-Za-z_]\w*(?:\s*,\s*[A-Za-z_]\w*)*)?\s*\)?\s*=>\s*(?P<body>.+)$",
    re.DOTALL,
)
_BLOCK_BODY_RE = re.compile(r"^\{\s*return\s+(?P<expr>.+?);?\s*\}$", re.DOTALL)
_SPEC_NUMBER_RE = re.compile(r"\d+")

MAX_SEQUENCE_LENGTH = 100_000

SAFE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "float": float,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "round": round,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "markdown_to_wiki": markdown_to_wiki,
    "wiki_to_markdown": wiki_to_markdown,
}
SAFE_CONSTANTS: dict[str, Any] = {
    "None": None,
    "True": True,
    "False": False,
    "null": None,
    "true": True,
    "false": False,
}
SAFE_METHODS: dict[type, frozenset[str]] = {
    str: frozenset(
        {
            "capitalize",
            "count",
            "endswith",
            "find",
            "join",
            "lower",
            "lstrip",
            "replace",
            "rstrip",
            "split",
            "splitlines",
            "startswith",
            "strip",
            "title",
            "upper",
            "zfill",
        }
    ),
    dict: frozenset({"get", "items", "keys", "values"}),
    list: frozenset({"count", "index"}),
    tuple: frozenset({"count", "index"}),
}

_BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}
_UNARY_OPERATORS: dict[type, Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}
_COMPARE_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

ALLOWED_NODES: tuple[type, ...] = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Store,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Dict,
    ast.List,
    ast.Tuple,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    ast.IfExp,
    ast.Call,
    ast.keyword,
    ast.JoinedStr,
    ast.FormattedValue,
    ast.ListComp,
    ast.GeneratorExp,
    ast.comprehension,
    *_BINARY_OPERATORS,
    *_UNARY_OPERATORS,
    *_COMPARE_OPERATORS,
)


class ValidationResult(NamedTuple):
    is_valid: bool
    error_message: str = ""


class SandboxViolation(Exception):
    """An expression tried something the interpreter does not allow."""


class MissingValueError(AttributeError):
    """An expression read through a field that holds None."""


# ---------------------------------------------------------------------------
# Parsing and static checks
# ---------------------------------------------------------------------------


def _split_source(source: str, direction: Direction) -> tuple[tuple[str, ...], str]:
    """Return (parameter names, expression body) for any accepted shape."""
    source = source.strip()
    if source.startswith("lambda"):
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise CompileError(f"Syntax error: {exc.msg}", source) from exc
        node = tree.body
        if not isinstance(node, ast.Lambda):
            raise CompileError("Expected a single lambda expression", source)
        args = node.args
        if args.vararg or args.kwarg or args.kwonlyargs or args.defaults:
            raise CompileError(
                "Lambda may only take plain positional parameters", source
            )
        params = tuple(arg.arg for arg in args.args)
        return params, ast.unparse(node.body)

    arrow = _ARROW_RE.match(source)
    if arrow:
        raw_params = arrow.group("params") or ""
        params = tuple(p.strip() for p in raw_params.split(",") if p.strip())
        body = arrow.group("body").strip()
        block = _BLOCK_BODY_RE.match(body)
        if block:
            body = block.group("expr").strip()
        return params, body

    return PARAMETERS[direction], source


def _screen_identifiers(tree: ast.Expression, params: Sequence[str]) -> None:
    """Refuse forbidden names; string literals are data and are not screened."""
    names = list(params)
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            names.append(node.id)
        elif isinstance(node, ast.Attribute):
            names.append(node.attr)
        elif isinstance(node, ast.keyword) and node.arg:
            names.append(node.arg)
    for name in names:
        if "__" in name or name in FORBIDDEN_TOKENS:
            raise CompileError(f"Forbidden token: {name}")


def _check_tree(tree: ast.Expression, params: Sequence[str]) -> None:
    bound = set(params)
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            bound.add(node.id)

    for node in ast.walk(tree):
        if not isinstance(node, ALLOWED_NODES):
            raise CompileError(
                f"Unsupported syntax: {type(node).__name__}"
            )
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            if (
                node.id not in bound
                and node.id not in SAFE_FUNCTIONS
                and node.id not in SAFE_CONSTANTS
            ):
                raise CompileError(f"Unknown name: {node.id}")
        elif isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise CompileError(f"Private attribute access: {node.attr}")
        elif isinstance(node, ast.Call):
            if isinstance(node.func, ast.Name):
                if node.func.id not in SAFE_FUNCTIONS:
                    raise CompileError(
                        f"Function not allowed: {node.func.id}"
                    )
            elif not isinstance(node.func, ast.Attribute):
                raise CompileError("Only named functions and methods can be called")
            if any(isinstance(arg, ast.Starred) for arg in node.args):
                raise CompileError("Argument unpacking is not allowed")
            if any(kw.arg is None for kw in node.keywords):
                raise CompileError("Keyword unpacking is not allowed")
        elif isinstance(node, ast.Dict) and any(k is None for k in node.keys):
            raise CompileError("Dict unpacking is not allowed")
        elif isinstance(node, ast.comprehension) and node.is_async:
            raise CompileError("Async comprehensions are not allowed")


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


def _check_size(value: Any) -> Any:
    if isinstance(value, (str, list, tuple)) and len(value) > MAX_SEQUENCE_LENGTH:
        raise SandboxViolation("Result too large")
    return value


def _check_str_call(
    target: str, method: str, args: Sequence[Any], kwargs: Mapping[str, Any]
) -> None:
    """Reject a growing str method before it allocates an oversized result."""
    if method == "zfill" and args and isinstance(args[0], int):
        projected = args[0]
    elif method == "replace" and len(args) >= 2:
        old, new = args[0], args[1]
        if not isinstance(old, str) or not isinstance(new, str):
            return
        occurrences = target.count(old) if old else len(target) + 1
        count = args[2] if len(args) > 2 else kwargs.get("count", -1)
        if isinstance(count, int) and count >= 0:
            occurrences = min(occurrences, count)
        projected = len(target) + occurrences * (len(new) - len(old))
    elif method == "join" and args and isinstance(args[0], (str, list, tuple)):
        items = args[0]
        projected = len(target) * max(len(items) - 1, 0) + sum(
            len(item) for item in items if isinstance(item, str)
        )
    else:
        return
    if projected > MAX_SEQUENCE_LENGTH:
        raise SandboxViolation("Result too large")


def _check_format_spec(spec: str) -> None:
    """Width and precision in a format spec are bounded like any result."""
    for digits in _SPEC_NUMBER_RE.findall(spec):
        if len(digits) > 6 or int(digits) > MAX_SEQUENCE_LENGTH:
            raise SandboxViolation("Format width too large")


class _Interpreter:
    """Evaluates a checked expression tree against a name environment."""

    def __init__(self, env: Mapping[str, Any]):
        self.env = dict(env)

    def evaluate(self, node: ast.AST) -> Any:
        handler = getattr(self, f"_eval_{type(node).__name__}", None)
        if handler is None:
            raise SandboxViolation(f"Unsupported node: {type(node).__name__}")
        return handler(node)

    def _eval_Expression(self, node: ast.Expression) -> Any:
        return self.evaluate(node.body)

    def _eval_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name) -> Any:
        if node.id in self.env:
            return self.env[node.id]
        if node.id in SAFE_CONSTANTS:
            return SAFE_CONSTANTS[node.id]
        if node.id in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[node.id]
        raise NameError(node.id)

    def _eval_Attribute(self, node: ast.Attribute) -> Any:
        target = self.evaluate(node.value)
        if isinstance(target, Mapping):
            return target.get(node.attr)
        if target is None:
            raise MissingValueError(f"Cannot read '{node.attr}' of None")
        raise SandboxViolation(
            f"Attribute access is only allowed on mappings: {node.attr}"
        )

    def _eval_Subscript(self, node: ast.Subscript) -> Any:
        target = self.evaluate(node.value)
        if isinstance(node.slice, ast.Slice):
            index: Any = slice(
                self.evaluate(node.slice.lower) if node.slice.lower else None,
                self.evaluate(node.slice.upper) if node.slice.upper else None,
                self.evaluate(node.slice.step) if node.slice.step else None,
            )
        else:
            index = self.evaluate(node.slice)
        if not isinstance(target, (Mapping, str, list, tuple)):
            raise SandboxViolation(
                f"Cannot subscript {type(target).__name__}"
            )
        return target[index]

    def _eval_Slice(self, node: ast.Slice) -> Any:
        raise SandboxViolation("Slice outside a subscript")

    def _eval_Dict(self, node: ast.Dict) -> Any:
        return {
            self.evaluate(k): self.evaluate(v)
            for k, v in zip(node.keys, node.values)
        }

    def _eval_List(self, node: ast.List) -> Any:
        return _check_size([self.evaluate(e) for e in node.elts])

    def _eval_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.evaluate(e) for e in node.elts)

    def _eval_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for value_node in node.values:
            result = self.evaluate(value_node)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def _eval_BinOp(self, node: ast.BinOp) -> Any:
        op = _BINARY_OPERATORS.get(type(node.op))
        if op is None:
            raise SandboxViolation(f"Operator not allowed: {type(node.op).__name__}")
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        if isinstance(node.op, ast.Mult):
            for seq, count in ((left, right), (right, left)):
                if (
                    isinstance(seq, (str, list, tuple))
                    and isinstance(count, int)
                    and len(seq) * count > MAX_SEQUENCE_LENGTH
                ):
                    raise SandboxViolation("Result too large")
        if isinstance(node.op, ast.Mod) and isinstance(left, str):
            raise SandboxViolation("printf-style formatting is not allowed")
        return _check_size(op(left, right))

    def _eval_UnaryOp(self, node: ast.UnaryOp) -> Any:
        return _UNARY_OPERATORS[type(node.op)](self.evaluate(node.operand))

    def _eval_Compare(self, node: ast.Compare) -> Any:
        left = self.evaluate(node.left)
        for op_node, right_node in zip(node.ops, node.comparators):
            right = self.evaluate(right_node)
            if not _COMPARE_OPERATORS[type(op_node)](left, right):
                return False
            left = right
        return True

    def _eval_IfExp(self, node: ast.IfExp) -> Any:
        if self.evaluate(node.test):
            return self.evaluate(node.body)
        return self.evaluate(node.orelse)

    def _eval_Call(self, node: ast.Call) -> Any:
        args = [self.evaluate(a) for a in node.args]
        kwargs = {kw.arg: self.evaluate(kw.value) for kw in node.keywords}

        if isinstance(node.func, ast.Name):
            func = SAFE_FUNCTIONS.get(node.func.id)
            if func is None:
                raise SandboxViolation(f"Function not allowed: {node.func.id}")
            return _check_size(func(*args, **kwargs))

        if isinstance(node.func, ast.Attribute):
            target = self.evaluate(node.func.value)
            method = node.func.attr
            for kind, allowed in SAFE_METHODS.items():
                if isinstance(target, kind) and method in allowed:
                    if isinstance(target, str):
                        _check_str_call(target, method, args, kwargs)
                    return _check_size(getattr(target, method)(*args, **kwargs))
            if target is None:
                raise MissingValueError(f"Cannot call '{method}' of None")
            raise SandboxViolation(
                f"Method not allowed: {type(target).__name__}.{method}"
            )

        raise SandboxViolation("Only named functions and methods can be called")

    def _eval_JoinedStr(self, node: ast.JoinedStr) -> Any:
        return _check_size("".join(str(self.evaluate(v)) for v in node.values))

    def _eval_FormattedValue(self, node: ast.FormattedValue) -> Any:
        value = self.evaluate(node.value)
        match node.conversion:
            case 115:
                value = str(value)
            case 114:
                value = repr(value)
            case 97:
                value = ascii(value)
        spec = self.evaluate(node.format_spec) if node.format_spec else ""
        _check_format_spec(spec)
        return format(value, spec)

    def _eval_ListComp(self, node: ast.ListComp) -> Any:
        return _check_size(list(self._comprehend(node)))

    def _eval_GeneratorExp(self, node: ast.GeneratorExp) -> Any:
        return _check_size(list(self._comprehend(node)))

    def _comprehend(self, node: ast.ListComp | ast.GeneratorExp) -> list[Any]:
        results: list[Any] = []

        def loop(generators: list[ast.comprehension]) -> None:
            if not generators:
                results.append(self.evaluate(node.elt))
                if len(results) > MAX_SEQUENCE_LENGTH:
                    raise SandboxViolation("Result too large")
                return
            generator, rest = generators[0], generators[1:]
            for item in self.evaluate(generator.iter):
                self._bind(generator.target, item)
                if all(self.evaluate(cond) for cond in generator.ifs):
                    loop(rest)

        saved = dict(self.env)
        try:
            loop(list(node.generators))
        finally:
            self.env = saved
        return results

    def _bind(self, target: ast.AST, value: Any) -> None:
        if isinstance(target, ast.Name):
            self.env[target.id] = value
        elif isinstance(target, ast.Tuple):
            values = list(value)
            if len(values) != len(target.elts):
                raise ValueError("Cannot unpack comprehension target")
            for elt, item in zip(target.elts, values):
                self._bind(elt, item)
        else:
            raise SandboxViolation("Unsupported comprehension target")


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


def _smoke_test_args(direction: Direction) -> list[tuple[Any, ...]]:
    if direction is Direction.TO_REMOTE:
        return [(sample,) for sample in SAMPLE_VALUES]
    return [(copy.deepcopy(dict(DEFAULT_ISSUE)), dict(SAMPLE_LOCAL_SNAPSHOT))]


def _smoke_test(
    tree: ast.Expression, params: Sequence[str], direction: Direction
) -> None:
    """Evaluate against placeholder inputs; passing on any one sample is enough.

    Reading through a field the placeholder issue lacks says nothing about
    real issues, so it is not a failure. Sandbox violations always are.
    """
    failure: Exception | None = None
    for args in _smoke_test_args(direction):
        try:
            _evaluate(tree, params, args)
        except SandboxViolation:
            raise
        except MissingValueError as exc:
            logger.debug("Smoke test read a field missing from the sample: %s", exc)
            return
        except Exception as exc:
            failure = failure or exc
        else:
            return
    if failure is not None:
        raise failure


class ExpressionCompiler:
    """Turns expression strings into never-raising mapping callables.

    Args:
        enable_validation: Run a smoke-test evaluation against a placeholder
            issue (or sample value) before accepting an expression.
    """

    def __init__(self, enable_validation: bool = True):
        self.enable_validation = enable_validation

    def compile(
        self, source: str, direction: Direction | str
    ) -> Callable[..., Any] | None:
        """Compile ``source``; return None (and log) if it is rejected."""
        try:
            return self.compile_or_raise(source, direction)
        except CompileError as exc:
            logger.warning(
                "Rejected %s mapping expression %r: %s",
                Direction(direction).value,
                source,
                exc.reason,
            )
            return None

    def validate(self, source: str, direction: Direction | str) -> ValidationResult:
        """Check an expression without keeping the compiled result."""
        try:
            self.compile_or_raise(source, direction)
        except CompileError as exc:
            return ValidationResult(False, exc.reason)
        return ValidationResult(True, "")

    def compile_or_raise(
        self, source: str, direction: Direction | str
    ) -> Callable[..., Any]:
        """Compile ``source`` or raise ``CompileError`` with the reason.

        Stages: syntax parse, forbidden-identifier screen, node allow-list,
        then (when validation is enabled) a smoke-test evaluation.
        """
        direction = Direction(direction)
        if not isinstance(source, str) or not source.strip():
            raise CompileError("Expression is empty", str(source or ""))

        params, body = _split_source(source, direction)
        try:
            tree = ast.parse(body, mode="eval")
        except SyntaxError as exc:
            raise CompileError(f"Syntax error: {exc.msg}", source) from exc

        try:
            _screen_identifiers(tree, params)
            _check_tree(tree, params)
        except CompileError as exc:
            raise CompileError(exc.reason, source) from exc

        if self.enable_validation:
            try:
                _smoke_test(tree, params, direction)
            except Exception as exc:
                raise CompileError(
                    f"Smoke test failed: {type(exc).__name__}: {exc}", source
                ) from exc

        return _wrap(tree, params, source)


def _evaluate(
    tree: ast.Expression, params: Sequence[str], args: Sequence[Any]
) -> Any:
    env = dict(zip(params, args))
    for name in params[len(args) :]:
        env[name] = None
    return _Interpreter(env).evaluate(tree)


def _wrap(
    tree: ast.Expression, params: Sequence[str], source: str
) -> Callable[..., Any]:
    def mapping_function(*args: Any) -> Any:
        try:
            return _evaluate(tree, params, args)
        except Exception as exc:
            logger.debug(
                "Mapping expression %r failed at runtime: %s", source, exc
            )
            return None

    mapping_function.source = source  # type: ignore[attr-defined]
    return mapping_function
