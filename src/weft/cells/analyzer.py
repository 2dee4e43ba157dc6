"""Static name analysis — derives a cell's references and definitions.

Walks the Python AST of a cell once and produces its contract with the rest
of the notebook:

- **defs**: names bound at the top level of the cell (assignments, imports,
  function and class definitions, loop/with targets, walrus targets, match
  captures, and ``global`` declarations inside functions).
- **refs**: names read by the cell that the cell does not bind first.

Top-level statements run in order, so a name loaded before the cell binds it
is a reference (``x = x + 1`` both reads and defines ``x``).  Function and
lambda bodies run later, so names they load are checked against *all* of the
cell's top-level bindings.  Comprehension targets, function parameters and
function locals never leave their scope.

Private names (a single leading underscore) are dropped from both sets: they
are local to the cell's own execution and invisible to the graph.
"""

from __future__ import annotations

import ast
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Literal

type _ScopeKind = Literal["function", "class", "comprehension", "type_params"]


def is_private(name: str) -> bool:
    """True for names with exactly one leading underscore (``_x``, ``_``)."""
    return name.startswith("_") and not name.startswith("__")


@dataclass(frozen=True, slots=True)
class CellAnalysis:
    """The static contract of a cell.

    Attributes:
        defs: Public top-level bindings, in first-binding order.
        refs: Public names read before (or without) being bound.

    """

    defs: tuple[str, ...]
    refs: frozenset[str]


@dataclass(slots=True)
class _Scope:
    kind: _ScopeKind
    names: set[str]
    globals_: set[str]


def _stored_names(body: list[ast.stmt]) -> set[str]:
    """Names assigned anywhere in a function body (its locals), nested scopes excluded."""
    names: set[str] = set()
    pending: list[ast.AST] = list(body)
    while pending:
        node = pending.pop()
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            names.add(node.id)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            names.add(node.name)
            continue
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                if alias.name != "*":
                    names.add(_import_binding(alias))
        elif isinstance(node, ast.ExceptHandler) and node.name:
            names.add(node.name)
        elif isinstance(node, ast.Lambda):
            continue
        pending.extend(ast.iter_child_nodes(node))
    return names


def _import_binding(alias: ast.alias) -> str:
    if alias.asname:
        return alias.asname
    return alias.name.split(".", 1)[0]


class _NameVisitor(ast.NodeVisitor):
    """Single-pass scope tracker producing defs and refs for one module."""

    def __init__(self) -> None:
        self.defs: list[str] = []
        self.refs: set[str] = set()
        self._bound: set[str] = set()
        self._deferred: set[str] = set()
        self._scopes: list[_Scope] = []
        self._function_depth = 0

    # ----- results -----

    def result(self) -> CellAnalysis:
        refs = set(self.refs)
        refs.update(self._deferred - self._bound)
        return CellAnalysis(
            defs=tuple(n for n in self.defs if not is_private(n)),
            refs=frozenset(n for n in refs if not is_private(n)),
        )

    # ----- binding helpers -----

    def _bind(self, name: str) -> None:
        for scope in reversed(self._scopes):
            if scope.kind in ("comprehension", "type_params"):
                # Comprehension targets and type parameters are bound
                # explicitly; anything else escapes to the enclosing scope.
                continue
            if name in scope.globals_:
                break
            scope.names.add(name)
            return
        self._bind_global(name)

    def _bind_global(self, name: str) -> None:
        self._bound.add(name)
        if name not in self.defs:
            self.defs.append(name)

    def _load(self, name: str) -> None:
        innermost = self._scopes[-1] if self._scopes else None
        for scope in reversed(self._scopes):
            if scope.kind == "class" and scope is not innermost:
                # Class bodies are not enclosing scopes for nested functions.
                continue
            if name in scope.globals_:
                break
            if name in scope.names:
                return
        if self._function_depth:
            self._deferred.add(name)
        elif name not in self._bound:
            self.refs.add(name)

    # ----- names -----

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store):
            self._bind(node.id)
        else:
            self._load(node.id)

    def visit_Global(self, node: ast.Global) -> None:
        if self._scopes:
            self._scopes[-1].globals_.update(node.names)
            self._scopes[-1].names.difference_update(node.names)
            for name in node.names:
                self._bind_global(name)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        return

    # ----- statements with evaluation order that differs from field order -----

    def visit_Assign(self, node: ast.Assign) -> None:
        self.visit(node.value)
        for target in node.targets:
            self.visit(target)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self.visit(node.annotation)
        if node.value is None:
            if not isinstance(node.target, ast.Name):
                self.visit(node.target)
            return
        self.visit(node.value)
        self.visit(node.target)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        self.visit(node.value)
        if isinstance(node.target, ast.Name):
            self._load(node.target.id)
            self._bind(node.target.id)
        else:
            self.visit(node.target)

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.visit(node.value)
        self._bind(node.target.id)

    def visit_For(self, node: ast.For | ast.AsyncFor) -> None:
        self.visit(node.iter)
        self.visit(node.target)
        for stmt in node.body + node.orelse:
            self.visit(stmt)

    visit_AsyncFor = visit_For

    def visit_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                self._load(target.id)
            else:
                self.visit(target)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is not None:
            self.visit(node.type)
        if node.name:
            # The handler name is unbound again when the handler exits.
            if self._scopes:
                self._scopes[-1].names.add(node.name)
            else:
                self._bound.add(node.name)
        for stmt in node.body:
            self.visit(stmt)

    # ----- imports -----

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self._bind(_import_binding(alias))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name != "*":
                self._bind(_import_binding(alias))

    # ----- pattern matching -----

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.pattern is not None:
            self.visit(node.pattern)
        if node.name:
            self._bind(node.name)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name:
            self._bind(node.name)

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        for key in node.keys:
            self.visit(key)
        for pattern in node.patterns:
            self.visit(pattern)
        if node.rest:
            self._bind(node.rest)

    # ----- new scopes -----

    @contextmanager
    def _type_params(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef | ast.TypeAlias,
    ) -> Iterator[None]:
        """Scope holding the PEP 695 type parameters of a generic definition."""
        if not node.type_params:
            yield
            return
        self._scopes.append(_Scope("type_params", {p.name for p in node.type_params}, set()))
        try:
            for param in node.type_params:
                self.generic_visit(param)
            yield
        finally:
            self._scopes.pop()

    def _visit_arguments(self, args: ast.arguments) -> set[str]:
        """Visit defaults/annotations in the enclosing scope; return parameter names."""
        for default in args.defaults + [d for d in args.kw_defaults if d is not None]:
            self.visit(default)
        params: list[ast.arg] = [*args.posonlyargs, *args.args, *args.kwonlyargs]
        if args.vararg:
            params.append(args.vararg)
        if args.kwarg:
            params.append(args.kwarg)
        for param in params:
            if param.annotation is not None:
                self.visit(param.annotation)
        return {p.arg for p in params}

    def visit_FunctionDef(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        with self._type_params(node):
            params = self._visit_arguments(node.args)
            if node.returns is not None:
                self.visit(node.returns)
            self._bind(node.name)

            declared_global: set[str] = set()
            for child in ast.walk(node):
                if isinstance(child, ast.Global):
                    declared_global.update(child.names)
            local_names = (params | _stored_names(node.body)) - declared_global

            self._scopes.append(_Scope("function", local_names, set()))
            self._function_depth += 1
            try:
                for stmt in node.body:
                    self.visit(stmt)
            finally:
                self._function_depth -= 1
                self._scopes.pop()

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_Lambda(self, node: ast.Lambda) -> None:
        params = self._visit_arguments(node.args)
        self._scopes.append(_Scope("function", params, set()))
        self._function_depth += 1
        try:
            self.visit(node.body)
        finally:
            self._function_depth -= 1
            self._scopes.pop()

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        for decorator in node.decorator_list:
            self.visit(decorator)
        with self._type_params(node):
            for base in node.bases:
                self.visit(base)
            for keyword in node.keywords:
                self.visit(keyword.value)
            self._scopes.append(_Scope("class", set(), set()))
            try:
                for stmt in node.body:
                    self.visit(stmt)
            finally:
                self._scopes.pop()
        self._bind(node.name)

    def visit_TypeAlias(self, node: ast.TypeAlias) -> None:
        self._bind(node.name.id)
        with self._type_params(node):
            self.visit(node.value)

    def _visit_comprehension(
        self,
        generators: list[ast.comprehension],
        elements: list[ast.expr],
    ) -> None:
        # The first iterable is evaluated in the enclosing scope.
        self.visit(generators[0].iter)
        scope = _Scope("comprehension", set(), set())
        self._scopes.append(scope)
        try:
            for index, gen in enumerate(generators):
                if index:
                    self.visit(gen.iter)
                for name in ast.walk(gen.target):
                    if isinstance(name, ast.Name):
                        scope.names.add(name.id)
                    elif isinstance(name, (ast.Attribute, ast.Subscript)):
                        self.visit(name)
                for cond in gen.ifs:
                    self.visit(cond)
            for element in elements:
                self.visit(element)
        finally:
            self._scopes.pop()

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self._visit_comprehension(node.generators, [node.elt])

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self._visit_comprehension(node.generators, [node.elt])

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self._visit_comprehension(node.generators, [node.elt])

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self._visit_comprehension(node.generators, [node.key, node.value])


def analyze_tree(tree: ast.Module) -> CellAnalysis:
    """Compute the defs/refs contract of an already-parsed cell."""
    visitor = _NameVisitor()
    for stmt in tree.body:
        visitor.visit(stmt)
    return visitor.result()


def analyze(source: str) -> CellAnalysis:
    """Parse cell source and compute its defs/refs contract.

    Raises:
        SyntaxError: If the source is not valid Python.

    """
    return analyze_tree(ast.parse(source))
