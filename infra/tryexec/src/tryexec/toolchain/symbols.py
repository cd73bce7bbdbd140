"""
Static symbol resolution for completions and introspection.

Nothing from the submitted source is executed.  The dotted name in front of
the cursor is resolved against, in this order:

1. names the source binds itself (``def``, ``class``, assignments, imports),
2. the host prelude (``Console``),
3. builtins and keywords.

Modules imported by the source are imported here only when they belong to
the standard library (or are already loaded); attributes are read with
:func:`inspect.getattr_static` so no descriptor or property code runs.
"""

from __future__ import annotations

import ast
import builtins
import importlib
import inspect
import keyword
import logging
import re
import sys
import types
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .base import CompletionCandidate, Introspection
from .prelude import PRELUDE

logger = logging.getLogger("tryexec.symbols")

_NAME_AFTER_CURSOR = re.compile(r"\w*")
_IMPORT = re.compile(r"^[ \t]*import[ \t]+([^\n#;]+)", re.MULTILINE)
_FROM_IMPORT = re.compile(r"^[ \t]*from[ \t]+([\w.]+)[ \t]+import[ \t]+\(?([^\n#;)]+)", re.MULTILINE)
_BINDING = re.compile(
    r"^[ \t]*(?:async[ \t]+)?(?:def|class)[ \t]+([^\W\d]\w*)|^[ \t]*([^\W\d]\w*)[ \t]*(?::[^=\n]*)?=(?!=)",
    re.MULTILINE,
)

# Standard library modules with side effects on import.
_NEVER_IMPORT = {"antigravity", "this", "idlelib", "turtledemo", "tkinter", "turtle", "__hello__", "__phello__"}

_UNRESOLVED = object()


def _importable(name: str) -> bool:
    top = name.partition(".")[0]
    if top in _NEVER_IMPORT:
        return False
    return name in sys.modules or top in getattr(sys, "stdlib_module_names", ())


def _import(name: str) -> Any:
    if not _importable(name):
        return _UNRESOLVED
    try:
        return importlib.import_module(name)
    except Exception as exc:  # a module can fail in arbitrary ways while importing
        logger.debug("Could not import %s for completion: %s", name, exc)
        return _UNRESOLVED


def _split_names(text: str) -> Iterator[Tuple[str, Optional[str]]]:
    for part in text.split(","):
        pieces = part.split()
        if not pieces:
            continue
        if len(pieces) >= 3 and pieces[1] == "as":
            yield pieces[0], pieces[2]
        else:
            yield pieces[0], None


def source_scope(source: str) -> Dict[str, Any]:
    """Names bound by ``source``, in order of appearance.

    Imported standard-library modules resolve to the module object; other
    bindings are recorded as unresolved.
    """
    found: List[Tuple[int, str, Any]] = []
    for match in _IMPORT.finditer(source):
        for module, alias in _split_names(match.group(1)):
            if alias:
                found.append((match.start(), alias, _LazyImport(module)))
            else:
                top = module.partition(".")[0]
                found.append((match.start(), top, _LazyImport(top)))
    for match in _FROM_IMPORT.finditer(source):
        package = match.group(1)
        for name, alias in _split_names(match.group(2)):
            found.append((match.start(), alias or name, _LazyImport(package, name)))
    for match in _BINDING.finditer(source):
        name = match.group(1) or match.group(2)
        if not keyword.iskeyword(name):
            found.append((match.start(), name, _UNRESOLVED))

    scope: Dict[str, Any] = {}
    for _, name, value in sorted(found, key=lambda item: item[0]):
        scope.setdefault(name, value)
    return scope


class _LazyImport:
    """Deferred ``import module`` / ``from module import attribute``."""

    def __init__(self, module: str, attribute: Optional[str] = None) -> None:
        self.module = module
        self.attribute = attribute

    def resolve(self) -> Any:
        if self.attribute is None:
            return _import(self.module)
        module = _import(self.module)
        if module is _UNRESOLVED:
            return _UNRESOLVED
        value = _get_attribute(module, self.attribute)
        if value is _UNRESOLVED:
            value = _import(f"{self.module}.{self.attribute}")
        return value


def _resolve_root(name: str, scope: Dict[str, Any]) -> Any:
    if name in scope:
        value = scope[name]
        return value.resolve() if isinstance(value, _LazyImport) else value
    if name in PRELUDE:
        return PRELUDE[name]
    if hasattr(builtins, name):
        return getattr(builtins, name)
    return _UNRESOLVED


def _get_attribute(obj: Any, name: str) -> Any:
    try:
        return inspect.getattr_static(obj, name)
    except AttributeError:
        if isinstance(obj, types.ModuleType):
            return _import(f"{obj.__name__}.{name}")
        return _UNRESOLVED


def _resolve(parts: List[str], scope: Dict[str, Any]) -> Any:
    obj = _resolve_root(parts[0], scope)
    for part in parts[1:]:
        if obj is _UNRESOLVED:
            break
        obj = _get_attribute(obj, part)
    return obj


def _unwrap(value: Any) -> Any:
    if isinstance(value, (staticmethod, classmethod)):
        return value.__func__
    return value


def _kind(owner: Any, value: Any) -> str:
    if value is _UNRESOLVED:
        return "variable"
    if isinstance(value, types.ModuleType):
        return "module"
    if inspect.isclass(value):
        return "class"
    if isinstance(value, property):
        return "property"
    value = _unwrap(value)
    if inspect.isroutine(value):
        return "method" if inspect.isclass(owner) else "function"
    return "field" if inspect.isclass(owner) else "variable"


def _summary(value: Any) -> Optional[str]:
    value = _unwrap(value)
    if not (inspect.isclass(value) or inspect.isroutine(value) or inspect.ismodule(value)):
        return None
    doc = inspect.getdoc(value)
    return doc.splitlines()[0] if doc else None


def _visible(name: str, prefix: str) -> bool:
    if not name.startswith(prefix):
        return False
    return prefix.startswith("_") or not name.startswith("_")


def _is_word(char: str) -> bool:
    return char.isalnum() or char == "_"


def _skip_back(text: str, end: int, accept) -> int:
    start = end
    while start > 0 and accept(text[start - 1]):
        start -= 1
    return start


def _chain(text: str) -> Optional[Tuple[List[str], str]]:
    """Split the text before the cursor into base parts and a typed prefix.

    The text is scanned backwards from the cursor, so the cost only depends
    on the length of the dotted chain, not on the size of the source.
    """
    start = _skip_back(text, len(text), _is_word)
    prefix = text[start:]
    parts: List[str] = []
    while True:
        dot = _skip_back(text, start, str.isspace)
        if dot == 0 or text[dot - 1] != ".":
            break
        end = _skip_back(text, dot - 1, str.isspace)
        start = _skip_back(text, end, _is_word)
        name = text[start:end]
        # Calls, subscripts and number literals are not resolved.
        if not name or name[0].isdecimal():
            return None
        parts.append(name)
    if prefix[:1].isdecimal() and not parts:
        return None
    parts.reverse()
    return parts, prefix


def complete(source: str, position: int) -> List[CompletionCandidate]:
    chain = _chain(source[:position])
    if chain is None:
        return []
    parts, prefix = chain
    scope = source_scope(source)

    if parts:
        owner = _resolve(parts, scope)
        if owner is _UNRESOLVED:
            return []
        candidates = []
        for name in dir(owner):
            if not _visible(name, prefix):
                continue
            value = _get_attribute(owner, name) if not isinstance(owner, types.ModuleType) else owner.__dict__.get(name, _UNRESOLVED)
            candidates.append(CompletionCandidate(name, _kind(owner, value), name, _summary(value)))
        return candidates

    candidates = []
    seen = set()

    def add(name: str, kind: str, value: Any = None) -> None:
        if name in seen or not _visible(name, prefix):
            return
        seen.add(name)
        candidates.append(CompletionCandidate(name, kind, name, _summary(value)))

    for name, value in scope.items():
        add(name, "module" if isinstance(value, _LazyImport) and value.attribute is None else "variable")
    for name, value in PRELUDE.items():
        add(name, _kind(None, value), value)
    for name in dir(builtins):
        value = getattr(builtins, name)
        add(name, _kind(builtins, value), value)
    for name in keyword.kwlist:
        add(name, "keyword")
    return candidates


def _definition(source: str, name: str) -> Optional[ast.AST]:
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return None
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)) and node.name == name:
            return node
    return None


def introspect(source: str, position: int) -> Optional[Introspection]:
    """Describe the dotted name under the cursor."""
    tail = _NAME_AFTER_CURSOR.match(source, position).group(0)
    chain = _chain(source[:position] + tail)
    if chain is None:
        return None
    parts, name = chain
    parts = parts + [name] if name else parts
    if not parts:
        return None
    dotted = ".".join(parts)

    if len(parts) == 1:
        node = _definition(source, parts[0])
        if node is not None:
            if isinstance(node, ast.ClassDef):
                return Introspection(dotted, "class", None, ast.get_docstring(node))
            return Introspection(dotted, "function", f"({ast.unparse(node.args)})", ast.get_docstring(node))

    owner = _resolve(parts[:-1], source_scope(source)) if len(parts) > 1 else None
    value = _resolve(parts, source_scope(source))
    if value is _UNRESOLVED:
        return None
    target = _unwrap(value)
    signature = None
    if callable(target):
        try:
            signature = str(inspect.signature(target))
        except (TypeError, ValueError):
            signature = None
    doc = inspect.getdoc(target) if (inspect.isclass(target) or inspect.isroutine(target) or inspect.ismodule(target)) else None
    return Introspection(dotted, _kind(owner, value), signature, doc)
