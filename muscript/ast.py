"""Syntax tree for muScript modules."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union


@dataclass(frozen=True)
class Span:
    """A half-open byte range in the source text."""

    start: int
    end: int

    def merge(self, other: Span) -> Span:
        """Return the smallest span covering both spans."""
        return Span(min(self.start, other.start), max(self.end, other.end))


@dataclass
class Ident:
    """An identifier: a plain name (``str``) or a symbol-table index (``int``)."""

    name: Union[str, int]
    span: Span

    @classmethod
    def from_ident(cls, name: str, span: Span) -> Ident:
        return cls(str(name), span)

    @classmethod
    def from_sym(cls, sym: int, span: Span) -> Ident:
        if sym < 0:
            raise ValueError("symbol index must be non-negative")
        return cls(int(sym), span)

    @property
    def is_sym(self) -> bool:
        return not isinstance(self.name, str)

    def resolved(self, symtab: Optional[Sequence[str]]) -> Optional[str]:
        """The name text, looking symbol references up in ``symtab``."""
        if isinstance(self.name, str):
            return self.name
        if symtab is None or self.name >= len(symtab):
            return None
        return symtab[self.name]

    def display(self) -> str:
        if isinstance(self.name, str):
            return self.name
        return f"#{self.name}"

    def resolved_string(self, symtab: Optional[Sequence[str]]) -> str:
        resolved = self.resolved(symtab)
        return resolved if resolved is not None else self.display()


@dataclass
class ModId:
    parts: list[str]
    span: Span


class PrimType(enum.Enum):
    BOOL = "bool"
    STRING = "string"
    I32 = "i32"
    I64 = "i64"
    U32 = "u32"
    U64 = "u64"
    F32 = "f32"
    F64 = "f64"
    UNIT = "unit"


class EffectAtom(enum.IntEnum):
    """Effect atoms, ordered canonically."""

    IO = 0
    FS = 1
    NET = 2
    PROC = 3
    RAND = 4
    TIME = 5
    ST = 6


@dataclass
class EffectSet:
    atoms: list[EffectAtom] = field(default_factory=list)


@dataclass
class FunctionType:
    params: list[TypeExpr]
    ret: TypeExpr
    effects: EffectSet
    span: Span


@dataclass
class TypePrim:
    prim: PrimType
    span: Span


@dataclass
class TypeNamed:
    name: Ident
    args: list[TypeExpr]
    span: Span


@dataclass
class TypeOptional:
    inner: TypeExpr
    span: Span


@dataclass
class TypeArray:
    inner: TypeExpr
    span: Span


@dataclass
class TypeMap:
    key: TypeExpr
    value: TypeExpr
    span: Span


@dataclass
class TypeTuple:
    items: list[TypeExpr]
    span: Span


@dataclass
class TypeFunction:
    sig: FunctionType
    span: Span


@dataclass
class TypeResult:
    ok: TypeExpr
    err: TypeExpr
    span: Span


@dataclass
class TypeGroup:
    inner: TypeExpr
    span: Span


TypeExpr = Union[
    TypePrim,
    TypeNamed,
    TypeOptional,
    TypeArray,
    TypeMap,
    TypeTuple,
    TypeFunction,
    TypeResult,
    TypeGroup,
]


@dataclass
class IntLit:
    value: int
    span: Span


@dataclass
class BoolLit:
    value: bool
    span: Span


@dataclass
class StringLit:
    value: str
    span: Span


Literal = Union[IntLit, BoolLit, StringLit]


@dataclass
class Param:
    name: Ident
    ty: TypeExpr
    span: Span


@dataclass
class MatchArm:
    pattern: Pattern
    expr: Expr
    span: Span


@dataclass
class Block:
    prefix: list[Expr]
    tail: Expr
    span: Span


@dataclass
class UnitExpr:
    span: Span


@dataclass
class Let:
    name: Ident
    ty: Optional[TypeExpr]
    value: Expr
    body: Expr
    span: Span


@dataclass
class If:
    cond: Expr
    then_branch: Expr
    else_branch: Expr
    span: Span


@dataclass
class Match:
    scrutinee: Expr
    arms: list[MatchArm]
    span: Span


@dataclass
class Call:
    callee: Expr
    args: list[Expr]
    span: Span


@dataclass
class Lambda:
    params: list[Param]
    ret: TypeExpr
    effects: EffectSet
    body: Expr
    span: Span


@dataclass
class Assert:
    cond: Expr
    msg: Optional[Expr]
    span: Span


@dataclass
class Require:
    expr: Expr
    span: Span


@dataclass
class Ensure:
    expr: Expr
    span: Span


@dataclass
class NameExpr:
    ident: Ident

    @property
    def span(self) -> Span:
        return self.ident.span


@dataclass
class NameApp:
    name: Ident
    args: list[Expr]
    span: Span


@dataclass
class ParenExpr:
    inner: Expr
    span: Span


Expr = Union[
    Block,
    UnitExpr,
    Let,
    If,
    Match,
    Call,
    Lambda,
    Assert,
    Require,
    Ensure,
    NameExpr,
    NameApp,
    IntLit,
    BoolLit,
    StringLit,
    ParenExpr,
]


@dataclass
class WildcardPattern:
    span: Span


@dataclass
class NamePattern:
    ident: Ident

    @property
    def span(self) -> Span:
        return self.ident.span


@dataclass
class CtorPattern:
    name: Ident
    args: list[Pattern]
    span: Span


@dataclass
class TuplePattern:
    items: list[Pattern]
    span: Span


@dataclass
class ParenPattern:
    inner: Pattern
    span: Span


Pattern = Union[
    WildcardPattern,
    IntLit,
    BoolLit,
    StringLit,
    NamePattern,
    CtorPattern,
    TuplePattern,
    ParenPattern,
]


@dataclass
class ImportDecl:
    alias: Ident
    module: ModId
    span: Span


@dataclass
class ExportDecl:
    names: list[Ident]
    span: Span


@dataclass
class CtorDecl:
    name: Ident
    fields: list[TypeExpr]
    span: Span


@dataclass
class TypeDecl:
    name: Ident
    params: list[Ident]
    ctors: list[CtorDecl]
    span: Span


@dataclass
class ValueDecl:
    name: Ident
    ty: TypeExpr
    expr: Expr
    span: Span


@dataclass
class FunctionDecl:
    name: Ident
    type_params: list[Ident]
    sig: FunctionType
    expr: Expr
    span: Span


Decl = Union[ImportDecl, ExportDecl, TypeDecl, ValueDecl, FunctionDecl]


@dataclass
class Module:
    mod_id: ModId
    symtab: Optional[list[str]]
    decls: list[Decl]
    span: Span


@dataclass
class Program:
    module: Module