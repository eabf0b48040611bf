"""Canonical source rendering of muScript programs in readable or compressed form."""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Optional, Sequence, Union

from muscript.ast import (
    Assert,
    Block,
    BoolLit,
    Call,
    CtorPattern,
    Decl,
    EffectAtom,
    EffectSet,
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
    Param,
    ParenExpr,
    ParenPattern,
    Pattern,
    PrimType,
    Program,
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
from muscript.symtab import build_compressed_symtab, resolve_ident

__all__ = ["FmtMode", "format_program", "format_program_mode", "collect_mu_files"]


class FmtMode(enum.Enum):
    """Output style of the formatter."""

    READABLE = "readable"
    COMPRESSED = "compressed"


_PRIM_TEXT = {
    PrimType.BOOL: "b",
    PrimType.STRING: "s",
    PrimType.I32: "i32",
    PrimType.I64: "i64",
    PrimType.U32: "u32",
    PrimType.U64: "u64",
    PrimType.F32: "f32",
    PrimType.F64: "f64",
    PrimType.UNIT: "unit",
}

_EFFECT_READABLE = {
    EffectAtom.IO: "io",
    EffectAtom.FS: "fs",
    EffectAtom.NET: "net",
    EffectAtom.PROC: "proc",
    EffectAtom.RAND: "rand",
    EffectAtom.TIME: "time",
    EffectAtom.ST: "st",
}

_EFFECT_COMPRESSED = {
    EffectAtom.IO: "I",
    EffectAtom.FS: "F",
    EffectAtom.NET: "N",
    EffectAtom.PROC: "P",
    EffectAtom.RAND: "R",
    EffectAtom.TIME: "T",
    EffectAtom.ST: "S",
}

_STRING_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def format_program(program: Program) -> str:
    """Render ``program`` in readable form."""
    return format_program_mode(program, FmtMode.READABLE)


def format_program_mode(program: Program, mode: FmtMode) -> str:
    """Render ``program`` in the given mode, ending with a newline."""
    module = program.module
    table: Optional[list[str]] = None
    if mode is FmtMode.COMPRESSED:
        table = build_compressed_symtab(module)
    fmt = _Formatter(module, table, mode)
    fmt.emit("@", ".".join(module.mod_id.parts), "{")
    if table is not None:
        fmt.emit("$[", ",".join(table), "];")
    for decl in module.decls:
        fmt.decl(decl)
    fmt.emit("}\n")
    return fmt.text()


def collect_mu_files(path: Union[str, Path]) -> list[Path]:
    """The ``.mu`` files at ``path``: the file itself, or all files below a directory.

    Raises ValueError for a file without the ``.mu`` extension and
    FileNotFoundError when the path does not exist.
    """
    path = Path(path)
    if path.is_file():
        if _is_mu_file(path):
            return [path]
        raise ValueError(f"expected a .mu file: {path}")
    if path.is_dir():
        return sorted(_walk_mu_files(path))
    raise FileNotFoundError(f"path does not exist: {path}")


def _walk_mu_files(directory: Path):
    for child in directory.iterdir():
        if child.is_dir():
            yield from _walk_mu_files(child)
        elif child.is_file() and _is_mu_file(child):
            yield child


def _is_mu_file(path: Path) -> bool:
    return path.suffix == ".mu"


def _format_literal(lit: Union[IntLit, BoolLit, StringLit]) -> str:
    if isinstance(lit, BoolLit):
        return "t" if lit.value else "f"
    if isinstance(lit, IntLit):
        return str(lit.value)
    body = "".join(_STRING_ESCAPES.get(ch, ch) for ch in lit.value)
    return f'"{body}"'


class _Formatter:
    def __init__(
        self, module: Module, table: Optional[Sequence[str]], mode: FmtMode
    ) -> None:
        self.module = module
        self.mode = mode
        self.table = table
        self.index = (
            {name: i for i, name in enumerate(table)} if table is not None else None
        )
        self.parts: list[str] = []

    @property
    def compressed(self) -> bool:
        return self.mode is FmtMode.COMPRESSED

    def emit(self, *parts: str) -> None:
        self.parts.extend(parts)

    def text(self) -> str:
        return "".join(self.parts)

    def name(self, ident: Ident) -> str:
        resolved = resolve_ident(self.module, ident)
        if resolved is None:
            return ident.display()
        if self.mode is FmtMode.COMPRESSED and self.index is not None:
            idx = self.index.get(resolved)
            if idx is not None:
                return f"#{idx}"
        return resolved

    def _sep(self, items, render, sep: str = ",") -> None:
        for i, item in enumerate(items):
            if i:
                self.emit(sep)
            render(item)

    def _names(self, idents: Sequence[Ident]) -> str:
        return ",".join(self.name(i) for i in idents)

    # -- declarations ---------------------------------------------------

    def decl(self, decl: Decl) -> None:
        match decl:
            case ImportDecl(alias=alias, module=mod):
                self.emit(":", self.name(alias), "=", ".".join(mod.parts), ";")
            case ExportDecl(names=names):
                self.emit("E[", self._names(names), "];")
            case TypeDecl(name=name, params=params, ctors=ctors):
                self.emit("T ", self.name(name))
                if params:
                    self.emit("[", self._names(params), "]")
                self.emit("=")
                for i, ctor in enumerate(ctors):
                    if i:
                        self.emit("|")
                    self.emit(self.name(ctor.name))
                    if ctor.fields:
                        self.emit("(")
                        self._sep(ctor.fields, self.type)
                        self.emit(")")
                self.emit(";")
            case ValueDecl(name=name, ty=ty, expr=expr):
                self.emit("V ", self.name(name), ":")
                self.type(ty)
                self.emit("=")
                self.expr(expr)
                self.emit(";")
            case FunctionDecl(name=name, type_params=type_params, sig=sig, expr=expr):
                self.emit("F ", self.name(name))
                if type_params:
                    self.emit("[", self._names(type_params), "]")
                self.emit(":")
                self.function_type(sig)
                self.emit("=")
                self.expr(expr)
                self.emit(";")

    # -- types ----------------------------------------------------------

    def effects(self, effects: EffectSet) -> None:
        present = set(effects.atoms)
        atoms = [atom for atom in EffectAtom if atom in present]
        if not atoms:
            return
        names = _EFFECT_COMPRESSED if self.compressed else _EFFECT_READABLE
        self.emit("!{", ",".join(names[a] for a in atoms), "}")

    def function_type(self, sig: FunctionType) -> None:
        self.emit("(")
        self._sep(sig.params, self.type)
        self.emit(")->")
        self.type(sig.ret)
        self.effects(sig.effects)

    def type(self, ty: TypeExpr) -> None:
        match ty:
            case TypePrim(prim=prim):
                self.emit(_PRIM_TEXT[prim])
            case TypeNamed(name=name, args=args):
                self.emit(self.name(name))
                if args:
                    self.emit("[")
                    self._sep(args, self.type)
                    self.emit("]")
            case TypeOptional(inner=inner):
                self.emit("?")
                self.type(inner)
            case TypeArray(inner=inner):
                self.type(inner)
                self.emit("[]")
            case TypeMap(key=key, value=value):
                self.emit("{")
                self.type(key)
                self.emit(":")
                self.type(value)
                self.emit("}")
            case TypeTuple(items=items):
                self.emit("(")
                self._sep(items, self.type)
                self.emit(")")
            case TypeFunction(sig=sig):
                self.function_type(sig)
            case TypeResult(ok=ok, err=err):
                self.type(ok)
                self.emit("!")
                self.type(err)
            case TypeGroup(inner=inner):
                self.emit("(")
                self.type(inner)
                self.emit(")")

    # -- expressions ----------------------------------------------------

    def params(self, params: Sequence[Param]) -> None:
        def render(p: Param) -> None:
            self.emit(self.name(p.name), ":")
            self.type(p.ty)

        self._sep(params, render)

    def expr(self, expr: Expr) -> None:
        c = self.compressed
        match expr:
            case Block(prefix=prefix, tail=tail):
                self.emit("{")
                for item in prefix:
                    self.expr(item)
                    self.emit(";")
                self.expr(tail)
                self.emit("}")
            case UnitExpr():
                self.emit("()")
            case Let(name=name, ty=ty, value=value, body=body):
                if c:
                    self.emit("[v ", self.name(name), " ")
                    self.expr(value)
                    self.emit(" ")
                    self.expr(body)
                    self.emit("]")
                else:
                    self.emit("v(", self.name(name))
                    if ty is not None:
                        self.emit(":")
                        self.type(ty)
                    self.emit("=")
                    self.expr(value)
                    self.emit(",")
                    self.expr(body)
                    self.emit(")")
            case If(cond=cond, then_branch=then_branch, else_branch=else_branch):
                sep = " " if c else ","
                self.emit("[i " if c else "i(")
                self.expr(cond)
                self.emit(sep)
                self.expr(then_branch)
                self.emit(sep)
                self.expr(else_branch)
                self.emit("]" if c else ")")
            case Match(scrutinee=scrutinee, arms=arms):
                if c:
                    self.emit("[m ")
                    self.expr(scrutinee)
                    for arm in arms:
                        self.emit(" {")
                        self.pattern(arm.pattern)
                        self.emit(" ")
                        self.expr(arm.expr)
                        self.emit("}")
                    self.emit("]")
                else:
                    self.emit("m(")
                    self.expr(scrutinee)
                    self.emit("){")
                    for arm in arms:
                        self.pattern(arm.pattern)
                        self.emit("=>")
                        self.expr(arm.expr)
                        self.emit(";")
                    self.emit("}")
            case Call(callee=callee, args=args):
                sep = " " if c else ","
                self.emit("(" if c else "c(")
                self.expr(callee)
                for arg in args:
                    self.emit(sep)
                    self.expr(arg)
                self.emit(")")
            case Lambda(params=params, ret=ret, effects=effects, body=body):
                self.emit("[l (" if c else "l(")
                self.params(params)
                self.emit("):")
                self.type(ret)
                self.effects(effects)
                self.emit(" " if c else "=")
                self.expr(body)
                if c:
                    self.emit("]")
            case Assert(cond=cond, msg=msg):
                self.emit("a(")
                self.expr(cond)
                if msg is not None:
                    self.emit(",")
                    self.expr(msg)
                self.emit(")")
            case Require(expr=inner):
                self.emit("^")
                self.expr(inner)
            case Ensure(expr=inner):
                self.emit("_ ")
                self.expr(inner)
            case NameExpr(ident=ident):
                self.emit(self.name(ident))
            case NameApp(name=name, args=args):
                self.emit(self.name(name), "(")
                self._sep(args, self.expr)
                self.emit(")")
            case IntLit() | BoolLit() | StringLit():
                self.emit(_format_literal(expr))
            case ParenExpr(inner=inner):
                self.emit("(")
                self.expr(inner)
                self.emit(")")

    def pattern(self, pattern: Pattern) -> None:
        match pattern:
            case WildcardPattern():
                self.emit("_")
            case IntLit() | BoolLit() | StringLit():
                self.emit(_format_literal(pattern))
            case NamePattern(ident=ident):
                self.emit(self.name(ident))
            case CtorPattern(name=name, args=args):
                self.emit(self.name(name))
                if args:
                    self.emit("(")
                    self._sep(args, self.pattern)
                    self.emit(")")
            case TuplePattern(items=items):
                self.emit("(")
                self._sep(items, self.pattern)
                self.emit(")")
            case ParenPattern(inner=inner):
                self.emit("(")
                self.pattern(inner)
                self.emit(")")