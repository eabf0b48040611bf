"""Symbol-table construction for the compressed source format."""

from __future__ import annotations

from collections import Counter
from typing import Iterator, Optional

from muscript.ast import (
    Assert,
    Block,
    BoolLit,
    Call,
    CtorPattern,
    Decl,
    Ensure,
    ExportDecl,
    Expr,
    FunctionDecl,
    FunctionType,
    Ident,
    If,
    ImportDecl,
    IntLit,
    Lambda,
    Let,
    Match,
    Module,
    NameApp,
    NameExpr,
    NamePattern,
    ParenExpr,
    ParenPattern,
    Pattern,
    Require,
    StringLit,
    TuplePattern,
    TypeArray,
    TypeDecl,
    TypeExpr,
    TypeFunction,
    TypeGroup,
    TypeMap,
    TypeNamed,
    TypeOptional,
    TypePrim,
    TypeResult,
    TypeTuple,
    UnitExpr,
    ValueDecl,
    WildcardPattern,
)

__all__ = ["resolve_ident", "is_core_literal_name", "build_compressed_symtab"]

_CORE_LITERAL_NAMES = frozenset(
    {"E", "T", "V", "F", "v", "i", "m", "l", "c", "a", "t", "f"}
)

# Each visited identifier comes with a flag: True where it is a binding
# site (declaration, parameter, pattern, type or constructor name), False
# where it is a plain name reference in an expression.
_Visit = Iterator[tuple[Ident, bool]]


def resolve_ident(module: Module, ident: Ident) -> Optional[str]:
    """The text of ``ident``, looking symbol references up in the module table."""
    return ident.resolved(module.symtab)


def is_core_literal_name(name: str) -> bool:
    """Whether ``name`` is one of the single-letter keywords of the syntax."""
    return name in _CORE_LITERAL_NAMES


def build_compressed_symtab(module: Module) -> list[str]:
    """Choose the names worth replacing by ``#index`` references.

    Only names that appear at a binding site are eligible. Candidates are
    ranked by use count (descending), then by name, and each is kept only
    when the bytes it saves exceed the bytes it adds to the table.
    """
    eligible: set[str] = set()
    counts: Counter[str] = Counter()
    occurrences: list[str] = []
    for decl in module.decls:
        for ident, is_binding in _decl_idents(decl):
            name = resolve_ident(module, ident)
            if name is None or is_core_literal_name(name):
                continue
            if is_binding:
                eligible.add(name)
            occurrences.append(name)
    counts.update(name for name in occurrences if name in eligible)

    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    selected: list[str] = []
    for name, count in ranked:
        index_width = len(str(len(selected)))
        name_len = len(name.encode("utf-8"))
        gain = count * (name_len - (1 + index_width))
        cost = name_len + (1 if selected else 0)
        if gain > cost:
            selected.append(name)
    return selected


def _decl_idents(decl: Decl) -> _Visit:
    match decl:
        case ImportDecl(alias=alias):
            yield alias, True
        case ExportDecl(names=names):
            for name in names:
                yield name, True
        case TypeDecl(name=name, params=params, ctors=ctors):
            yield name, True
            for param in params:
                yield param, True
            for ctor in ctors:
                yield ctor.name, True
                for ty in ctor.fields:
                    yield from _type_idents(ty)
        case ValueDecl(name=name, ty=ty, expr=expr):
            yield name, True
            yield from _type_idents(ty)
            yield from _expr_idents(expr)
        case FunctionDecl(name=name, type_params=type_params, sig=sig, expr=expr):
            yield name, True
            for tp in type_params:
                yield tp, True
            yield from _sig_idents(sig)
            yield from _expr_idents(expr)


def _sig_idents(sig: FunctionType) -> _Visit:
    for param in sig.params:
        yield from _type_idents(param)
    yield from _type_idents(sig.ret)


def _type_idents(ty: TypeExpr) -> _Visit:
    match ty:
        case TypePrim():
            return
        case TypeNamed(name=name, args=args):
            yield name, True
            for arg in args:
                yield from _type_idents(arg)
        case TypeOptional(inner=inner) | TypeArray(inner=inner) | TypeGroup(inner=inner):
            yield from _type_idents(inner)
        case TypeMap(key=key, value=value):
            yield from _type_idents(key)
            yield from _type_idents(value)
        case TypeTuple(items=items):
            for item in items:
                yield from _type_idents(item)
        case TypeFunction(sig=sig):
            yield from _sig_idents(sig)
        case TypeResult(ok=ok, err=err):
            yield from _type_idents(ok)
            yield from _type_idents(err)


def _expr_idents(expr: Expr) -> _Visit:
    match expr:
        case Block(prefix=prefix, tail=tail):
            for item in prefix:
                yield from _expr_idents(item)
            yield from _expr_idents(tail)
        case UnitExpr() | IntLit() | BoolLit() | StringLit():
            return
        case Let(name=name, ty=ty, value=value, body=body):
            yield name, True
            if ty is not None:
                yield from _type_idents(ty)
            yield from _expr_idents(value)
            yield from _expr_idents(body)
        case If(cond=cond, then_branch=then_branch, else_branch=else_branch):
            yield from _expr_idents(cond)
            yield from _expr_idents(then_branch)
            yield from _expr_idents(else_branch)
        case Match(scrutinee=scrutinee, arms=arms):
            yield from _expr_idents(scrutinee)
            for arm in arms:
                yield from _pattern_idents(arm.pattern)
                yield from _expr_idents(arm.expr)
        case Call(callee=callee, args=args):
            yield from _expr_idents(callee)
            for arg in args:
                yield from _expr_idents(arg)
        case Lambda(params=params, ret=ret, body=body):
            for param in params:
                yield param.name, True
                yield from _type_idents(param.ty)
            yield from _type_idents(ret)
            yield from _expr_idents(body)
        case Assert(cond=cond, msg=msg):
            yield from _expr_idents(cond)
            if msg is not None:
                yield from _expr_idents(msg)
        case Require(expr=inner) | Ensure(expr=inner) | ParenExpr(inner=inner):
            yield from _expr_idents(inner)
        case NameExpr(ident=ident):
            yield ident, False
        case NameApp(name=name, args=args):
            yield name, True
            for arg in args:
                yield from _expr_idents(arg)


def _pattern_idents(pattern: Pattern) -> _Visit:
    match pattern:
        case WildcardPattern() | IntLit() | BoolLit() | StringLit():
            return
        case NamePattern(ident=ident):
            yield ident, True
        case CtorPattern(name=name, args=args):
            yield name, True
            for arg in args:
                yield from _pattern_idents(arg)
        case TuplePattern(items=items):
            for item in items:
                yield from _pattern_idents(item)
        case ParenPattern(inner=inner):
            yield from _pattern_idents(inner)