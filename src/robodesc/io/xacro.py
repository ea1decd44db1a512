"""Xacro preprocessing: expand a ``.xacro`` document into plain URDF.

Supported constructs are ``xacro:property`` (attribute, text and block
form), ``xacro:arg`` with ``$(arg name)``, ``xacro:macro`` definitions and
calls (default, ``^`` inherited and ``*block`` parameters, ``xacro:call``,
``xacro:insert_block``), ``xacro:if``/``xacro:unless`` and
``xacro:include`` resolved against an in-memory ``includes`` mapping.

``${...}`` expressions are evaluated over a small arithmetic grammar
(numbers, strings, property names, ``pi``, comparisons, boolean operators
and a handful of ``math`` functions). Anything outside that grammar is left
in place as written. ``$(find pkg)`` becomes ``package://pkg``; the
filesystem is never touched.
"""

import ast
import copy
import logging
import math
import operator
import posixpath
import re
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from lxml import etree

from robodesc.config import DEFAULT_CONFIG, ParserConfig
from robodesc.core.robot_model import Robot
from robodesc.core.topology import RobotStructureWarning
from robodesc.io.urdf_parser import decode_urdf
from robodesc.io.values import format_number
from robodesc.io.xml_utils import parse_document

logger = logging.getLogger(__name__)

_XACRO_PROBE = re.compile(r"xmlns:xacro|<xacro:")
_EXPRESSION = re.compile(r"\$\{([^}]*)\}")
_COMMAND = re.compile(r"\$\((\w+)\s+([^)]*)\)")
_FALSE_VALUES = ("", "false", "none")

_CONSTANTS = {"pi": math.pi, "e": math.e, "True": True, "False": False,
              "true": True, "false": False}
_FUNCTIONS = {name: getattr(math, name) for name in (
    "sin", "cos", "tan", "asin", "acos", "atan", "atan2", "sqrt", "radians",
    "degrees", "fabs", "floor", "ceil", "exp", "log")}
_FUNCTIONS.update(abs=abs, min=min, max=max, float=float, int=int)

_BINARY = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: lambda a, b: float(a) ** b,
}
_UNARY = {ast.USub: operator.neg, ast.UAdd: operator.pos, ast.Not: operator.not_}
_COMPARE = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

# Marks an expression (or sub-expression) outside the supported grammar.
_UNRESOLVED = object()

Scope = Dict[str, Union[str, List[etree._Element]]]


@dataclass(frozen=True)
class _Param:
    name: str
    default: Optional[str] = None
    block: bool = False
    contents_only: bool = False


@dataclass(frozen=True)
class _Macro:
    name: str
    params: List[_Param]
    body: List[etree._Element]


@dataclass
class _Expansion:
    """Document-wide state threaded through the recursive expansion."""
    args: Dict[str, str]
    includes: Mapping[str, str]
    config: ParserConfig
    global_scope: Scope = field(default_factory=dict)
    macros: Dict[str, _Macro] = field(default_factory=dict)
    including: List[str] = field(default_factory=list)
    calls: int = 0
    dropped: int = 0


def looks_like_xacro(text) -> bool:
    """Cheap content probe for the xacro namespace or a ``<xacro:`` element."""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return _XACRO_PROBE.search(text) is not None


def _xacro_name(element) -> Optional[str]:
    """Local name of a xacro element, ``None`` for everything else."""
    tag = element.tag
    if not isinstance(tag, str):
        return None
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return local if "xacro" in namespace else None
    # undeclared prefix kept verbatim by the lenient parser
    if tag.startswith("xacro:"):
        return tag[len("xacro:"):]
    return None


def _coerce(text: str) -> Any:
    stripped = text.strip()
    try:
        return float(stripped)
    except ValueError:
        pass
    if stripped.lower() in ("true", "false"):
        return stripped.lower() == "true"
    return text


def _apply(fn, *values) -> Any:
    try:
        result = fn(*values)
    except (ArithmeticError, TypeError, ValueError):
        return _UNRESOLVED
    return _UNRESOLVED if isinstance(result, complex) else result


def _eval_node(node: ast.AST, scope: Scope, depth: int, max_depth: int) -> Any:
    if depth > max_depth:
        return _UNRESOLVED

    def sub(child):
        return _eval_node(child, scope, depth + 1, max_depth)

    if isinstance(node, ast.Constant):
        return node.value if isinstance(node.value, (int, float, str)) else _UNRESOLVED
    if isinstance(node, ast.Name):
        value = scope.get(node.id)
        if isinstance(value, str):
            return _coerce(value)
        return _CONSTANTS.get(node.id, _UNRESOLVED)
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY:
        left, right = sub(node.left), sub(node.right)
        if left is _UNRESOLVED or right is _UNRESOLVED:
            return _UNRESOLVED
        # strings only concatenate
        if (isinstance(left, str) or isinstance(right, str)) and not isinstance(node.op, ast.Add):
            return _UNRESOLVED
        return _apply(_BINARY[type(node.op)], left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY:
        operand = sub(node.operand)
        return _UNRESOLVED if operand is _UNRESOLVED else _apply(_UNARY[type(node.op)], operand)
    if isinstance(node, ast.Compare) and len(node.ops) == 1 and type(node.ops[0]) in _COMPARE:
        left, right = sub(node.left), sub(node.comparators[0])
        if left is _UNRESOLVED or right is _UNRESOLVED:
            return _UNRESOLVED
        return _apply(_COMPARE[type(node.ops[0])], left, right)
    if isinstance(node, ast.BoolOp):
        values = [sub(v) for v in node.values]
        if any(v is _UNRESOLVED for v in values):
            return _UNRESOLVED
        return all(values) if isinstance(node.op, ast.And) else any(values)
    if isinstance(node, ast.IfExp):
        test = sub(node.test)
        if test is _UNRESOLVED:
            return _UNRESOLVED
        return sub(node.body) if test else sub(node.orelse)
    if (isinstance(node, ast.Call) and isinstance(node.func, ast.Name)
            and node.func.id in _FUNCTIONS and not node.keywords):
        args = [sub(a) for a in node.args]
        if any(a is _UNRESOLVED or isinstance(a, str) for a in args):
            return _UNRESOLVED
        return _apply(_FUNCTIONS[node.func.id], *args)
    return _UNRESOLVED


def _format(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_number(value) if math.isfinite(value) else repr(value)
    return str(value)


def evaluate(expression: str, scope: Scope, config: ParserConfig = DEFAULT_CONFIG) -> Optional[str]:
    """Evaluate the body of one ``${...}``; ``None`` when it cannot be resolved."""
    expression = expression.strip()
    value = scope.get(expression)
    if isinstance(value, str):
        return value
    try:
        tree = ast.parse(expression, mode="eval")
    except (SyntaxError, ValueError, RecursionError, MemoryError):
        return None
    result = _eval_node(tree.body, scope, 0, config.max_depth)
    return None if result is _UNRESOLVED else _format(result)


def _substitute(text: Optional[str], scope: Scope, state: _Expansion) -> Optional[str]:
    if not text or "$" not in text:
        return text

    def command(match):
        name, argument = match.group(1), match.group(2).strip()
        if name == "arg" and argument in state.args:
            return state.args[argument]
        if name == "find":
            return f"package://{argument}"
        logger.debug("Leaving $(%s %s) unexpanded", name, argument)
        return match.group(0)

    def expression(match):
        value = evaluate(match.group(1), scope, state.config)
        if value is None:
            logger.debug("Cannot evaluate ${%s}; left as written", match.group(1))
            return match.group(0)
        return value

    return _EXPRESSION.sub(expression, _COMMAND.sub(command, text))


def is_truthy(value: str) -> bool:
    """Truth value of an ``xacro:if``/``unless`` condition after substitution."""
    stripped = value.strip().lower()
    if stripped in _FALSE_VALUES:
        return False
    try:
        return float(stripped) != 0.0
    except ValueError:
        return True


def _parse_params(text: str) -> List[_Param]:
    params = []
    for token in (text or "").split():
        name, separator, default = token.partition(":=")
        if name.startswith("**"):
            params.append(_Param(name=name[2:], block=True, contents_only=True))
        elif name.startswith("*"):
            params.append(_Param(name=name[1:], block=True))
        else:
            params.append(_Param(name=name, default=default if separator else None))
    return params


def _find_include(filename: str, includes: Mapping[str, str]) -> Optional[str]:
    if filename in includes:
        return includes[filename]
    relative = filename
    if relative.startswith("package://"):
        relative = relative[len("package://"):]
    candidates = [relative.lstrip("/")]
    package_relative = candidates[0].partition("/")[2]
    if package_relative:
        candidates.append(package_relative)

    for candidate in candidates:
        for key, content in includes.items():
            if key == candidate or key.endswith("/" + candidate):
                return content
    basename = posixpath.basename(candidates[0])
    for key, content in includes.items():
        if basename and posixpath.basename(key) == basename:
            return content
    return None


def _expand_children(parent: etree._Element, scope: Scope, state: _Expansion, depth: int) -> None:
    """Expand every child of ``parent`` in place."""
    parent.text = _substitute(parent.text, scope, state)
    children = list(parent)
    for child in children:
        parent.remove(child)
    for child in children:
        for node in _expand_node(child, scope, state, depth):
            parent.append(node)


def _expand_fragment(elements: List[etree._Element], scope: Scope, state: _Expansion,
                     depth: int) -> List[etree._Element]:
    container = etree.Element("fragment")
    for element in elements:
        container.append(copy.deepcopy(element))
    _expand_children(container, scope, state, depth)
    return list(container)


def _call_macro(macro: _Macro, call_el: etree._Element, scope: Scope, state: _Expansion,
                depth: int) -> List[etree._Element]:
    state.calls += 1
    if state.calls > state.config.max_expansions:
        logger.warning("Macro call %s exceeds max_expansions=%d; dropped",
                       macro.name, state.config.max_expansions)
        state.dropped += 1
        return []

    local: Scope = dict(scope)
    blocks = [child for child in call_el if isinstance(child.tag, str)]
    for param in macro.params:
        if param.block:
            if not blocks:
                logger.warning("Macro %s: no element for block parameter '%s'",
                               macro.name, param.name)
                continue
            block = blocks.pop(0)
            local[param.name] = list(block) if param.contents_only else [block]
            continue

        value = call_el.get(param.name)
        if value is not None:
            local[param.name] = _substitute(value, scope, state)
        elif param.default is not None and param.default.startswith("^"):
            inherited = scope.get(param.name)
            fallback = param.default[2:] if param.default.startswith("^|") else None
            if isinstance(inherited, str):
                local[param.name] = inherited
            elif fallback is not None:
                local[param.name] = _substitute(fallback, scope, state)
        elif param.default is not None:
            local[param.name] = _substitute(param.default, scope, state)
        else:
            logger.warning("Macro %s called without parameter '%s'", macro.name, param.name)

    return _expand_fragment(macro.body, local, state, depth + 1)


def _expand_xacro_element(name: str, element: etree._Element, scope: Scope,
                          state: _Expansion, depth: int) -> List[etree._Element]:
    if name == "property":
        prop = element.get("name")
        if not prop:
            return []
        if element.get("value") is not None:
            value = _substitute(element.get("value"), scope, state)
        elif len(element):
            value = [copy.deepcopy(child) for child in element]
        else:
            value = (_substitute(element.text, scope, state) or "").strip()
        scope[prop] = value
        if element.get("scope") == "global":
            state.global_scope[prop] = value
        return []

    if name == "arg":
        arg = element.get("name")
        if arg:
            state.args.setdefault(arg, _substitute(element.get("default") or "", scope, state))
        return []

    if name == "macro":
        macro_name = element.get("name")
        if macro_name:
            state.macros[macro_name] = _Macro(name=macro_name,
                                              params=_parse_params(element.get("params")),
                                              body=list(element))
        return []

    if name in ("if", "unless"):
        truthy = is_truthy(_substitute(element.get("value") or "", scope, state))
        if truthy != (name == "if"):
            return []
        _expand_children(element, scope, state, depth + 1)
        return list(element)

    if name == "insert_block":
        block = scope.get(element.get("name") or "")
        if not isinstance(block, list):
            logger.warning("insert_block: no block named '%s'", element.get("name"))
            return []
        return _expand_fragment(block, scope, state, depth + 1)

    if name == "include":
        filename = _substitute(element.get("filename") or "", scope, state)
        content = _find_include(filename, state.includes)
        if content is None:
            logger.warning("Include not found: %s", filename)
            return []
        if filename in state.including:
            logger.warning("Recursive include of %s skipped", filename)
            return []
        included = parse_document(content)
        if included is None:
            logger.warning("Include %s is not XML", filename)
            return []
        state.including.append(filename)
        _expand_children(included, scope, state, depth + 1)
        state.including.pop()
        return list(included)

    if name == "call":
        macro = state.macros.get(_substitute(element.get("macro") or "", scope, state))
        if macro is not None:
            return _call_macro(macro, element, scope, state, depth)

    if name in state.macros:
        return _call_macro(state.macros[name], element, scope, state, depth)

    logger.debug("Unsupported xacro element <xacro:%s> dropped", name)
    return []


def _expand_node(element, scope: Scope, state: _Expansion, depth: int) -> List[etree._Element]:
    if depth > state.config.max_depth:
        logger.warning("Element nests deeper than max_depth=%d; dropped", state.config.max_depth)
        state.dropped += 1
        return []

    name = _xacro_name(element)
    if name is not None:
        return _expand_xacro_element(name, element, scope, state, depth)
    if not isinstance(element.tag, str):
        return [element]

    for key, value in element.attrib.items():
        element.set(key, _substitute(value, scope, state))
    _expand_children(element, scope, state, depth + 1)
    element.tail = _substitute(element.tail, scope, state)
    return [element]


def expand_xacro(text, args: Optional[Mapping[str, str]] = None,
                 includes: Optional[Mapping[str, str]] = None,
                 config: ParserConfig = DEFAULT_CONFIG) -> Optional[str]:
    """Expand xacro text into URDF text.

    Args:
        text: Xacro document as ``str`` or ``bytes``.
        args: Values for ``xacro:arg`` names; they override the declared
            defaults.
        includes: File name -> document text used to resolve
            ``xacro:include``. Lookup tries the exact name, then the path
            with the ``package://`` prefix or the package name removed, then
            the bare file name.
        config: Depth and macro-call caps.

    Returns:
        The expanded document, or ``None`` when the text is not XML.
    """
    root = parse_document(text)
    if root is None:
        logger.error("Invalid xacro: no XML document found")
        return None

    state = _Expansion(args=dict(args or {}), includes=includes or {}, config=config)
    _expand_children(root, state.global_scope, state, 1)
    for key, value in root.attrib.items():
        root.set(key, _substitute(value, state.global_scope, state))
    etree.cleanup_namespaces(root)

    if state.dropped:
        warnings.warn(f"xacro expansion exceeds max_depth={config.max_depth} or "
                      f"max_expansions={config.max_expansions}; dropped {state.dropped} "
                      f"element(s)", RobotStructureWarning, stacklevel=2)
    logger.debug("Expanded xacro: %d macro(s), %d call(s)", len(state.macros), state.calls)
    return etree.tostring(root, encoding="unicode")


def decode_xacro(text, config: ParserConfig = DEFAULT_CONFIG,
                 args: Optional[Mapping[str, str]] = None,
                 includes: Optional[Mapping[str, str]] = None) -> Optional[Robot]:
    """Expand a xacro document and decode the result as URDF."""
    urdf = expand_xacro(text, args=args, includes=includes, config=config)
    if urdf is None:
        return None
    return decode_urdf(urdf, config)
