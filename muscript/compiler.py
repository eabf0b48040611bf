"""Lowering of a checked syntax tree into the binary bytecode format."""

from __future__ import annotations

import struct
from typing import Optional, Sequence

from muscript.ast import (
    Assert,
    Block,
    BoolLit,
    Call,
    CtorPattern,
    Ensure,
    Expr,
    FunctionDecl,
    Ident,
    If,
    IntLit,
    Lambda,
    Let,
    Match,
    NameApp,
    NameExpr,
    NamePattern,
    Param,
    ParenExpr,
    Program,
    Require,
    StringLit,
    TypeDecl,
    UnitExpr,
    ValueDecl,
    WildcardPattern,
)
from muscript.bytecode import (
    BytecodeError,
    FunctionBytecode,
    OpCode,
    builtin_id,
    encode_parts,
)

__all__ = ["compile_program"]

_U32 = struct.Struct("<I")
_I64 = struct.Struct("<q")

_MISSING_MAIN = "missing `main` function"


class _CompileCtx:
    """State shared by every function lowered from one program."""

    def __init__(self, symtab: Optional[Sequence[str]], ctor_names: set[str]) -> None:
        self.symtab = symtab
        self.ctor_names = ctor_names
        self.strings: list[str] = []
        self.string_ids: dict[str, int] = {}
        self.fn_ids: dict[str, int] = {}
        self.value_ids: dict[str, int] = {}
        self.functions: list[FunctionBytecode] = []

    def text(self, ident: Ident) -> str:
        return ident.resolved_string(self.symtab)

    def intern(self, s: str) -> int:
        existing = self.string_ids.get(s)
        if existing is not None:
            return existing
        idx = len(self.strings)
        self.strings.append(s)
        self.string_ids[s] = idx
        return idx


def compile_program(program: Program) -> bytes:
    """Compile ``program`` to an encoded bytecode stream.

    Raises :class:`BytecodeError` when the program has no ``main`` function
    or uses a construct the lowering does not support.
    """
    decls = program.module.decls
    top_values = [d for d in decls if isinstance(d, ValueDecl)]
    top_functions = [d for d in decls if isinstance(d, FunctionDecl)]
    if not top_functions:
        raise BytecodeError(_MISSING_MAIN)

    ctx = _CompileCtx(program.module.symtab, _collect_ctors(program))
    for idx, value in enumerate(top_values):
        ctx.value_ids[ctx.text(value.name)] = idx
    for idx, func in enumerate(top_functions, start=len(top_values)):
        ctx.fn_ids[ctx.text(func.name)] = idx
    ctx.functions = [
        FunctionBytecode() for _ in range(len(top_values) + len(top_functions))
    ]

    for idx, value in enumerate(top_values):
        ctx.functions[idx] = _Lowerer(ctx, {}, 0).finish(value.expr, 0, 0)
    for idx, func in enumerate(top_functions, start=len(top_values)):
        arity = len(func.sig.params)
        locals_ = {f"arg{i}": i for i in range(arity)}
        ctx.functions[idx] = _Lowerer(ctx, locals_, arity).finish(func.expr, arity, 0)

    entry_fn = ctx.fn_ids.get("main")
    if entry_fn is None:
        raise BytecodeError(_MISSING_MAIN)
    return encode_parts(ctx.strings, ctx.functions, entry_fn)


def _collect_ctors(program: Program) -> set[str]:
    names = {"Ok", "Er"}
    symtab = program.module.symtab
    for decl in program.module.decls:
        if isinstance(decl, TypeDecl):
            names.update(ctor.name.resolved_string(symtab) for ctor in decl.ctors)
    return names


class _Lowerer:
    """Emits the code of a single function body."""

    def __init__(self, ctx: _CompileCtx, locals_: dict[str, int], next_local: int) -> None:
        self.ctx = ctx
        self.code = bytearray()
        self.locals = locals_
        self.next_local = next_local

    def finish(self, body: Expr, arity: int, captures: int) -> FunctionBytecode:
        self.lower(body)
        self._op(OpCode.RETURN)
        return FunctionBytecode(arity & 0xFF, captures & 0xFF, bytes(self.code))

    # -- emission helpers -------------------------------------------------

    def _op(self, op: OpCode) -> None:
        self.code.append(op)

    def _u8(self, value: int) -> None:
        self.code.append(value & 0xFF)

    def _u32(self, value: int) -> None:
        self.code += _U32.pack(value)

    def _load(self, slot: int) -> None:
        self._op(OpCode.LOAD_LOCAL)
        self._u32(slot)

    def _store(self, slot: int) -> None:
        self._op(OpCode.STORE_LOCAL)
        self._u32(slot)

    def _alloc_local(self) -> int:
        slot = self.next_local
        self.next_local += 1
        return slot

    def _bind(self, name: str, slot: int) -> Optional[int]:
        prev = self.locals.get(name)
        self.locals[name] = slot
        return prev

    def _restore(self, name: str, prev: Optional[int]) -> None:
        if prev is None:
            self.locals.pop(name, None)
        else:
            self.locals[name] = prev

    def _emit_jump(self, op: OpCode) -> int:
        self._op(op)
        patch = len(self.code)
        self._u32(0)
        return patch

    def _emit_jump_if_tag(self, tag_id: int) -> int:
        self._op(OpCode.JUMP_IF_TAG)
        self._u32(tag_id)
        patch = len(self.code)
        self._u32(0)
        return patch

    def _patch(self, pos: int) -> None:
        self.code[pos : pos + 4] = _U32.pack(len(self.code))

    # -- expressions ------------------------------------------------------

    def lower(self, expr: Expr) -> None:
        match expr:
            case IntLit(value=value):
                self._op(OpCode.PUSH_INT)
                self.code += _I64.pack(value)
            case BoolLit(value=value):
                self._op(OpCode.PUSH_BOOL)
                self._u8(1 if value else 0)
            case StringLit(value=value):
                self._op(OpCode.PUSH_STRING)
                self._u32(self.ctx.intern(value))
            case UnitExpr():
                self._op(OpCode.PUSH_UNIT)
            case NameExpr(ident=ident):
                self._lower_name(ident)
            case Let(name=name, value=value, body=body):
                self.lower(value)
                slot = self._alloc_local()
                self._store(slot)
                text = self.ctx.text(name)
                prev = self._bind(text, slot)
                self.lower(body)
                self._restore(text, prev)
            case Block(prefix=prefix, tail=tail):
                for item in prefix:
                    self.lower(item)
                    self._op(OpCode.POP)
                self.lower(tail)
            case If(cond=cond, then_branch=then_branch, else_branch=else_branch):
                self.lower(cond)
                patch_false = self._emit_jump(OpCode.JUMP_IF_FALSE)
                self.lower(then_branch)
                patch_end = self._emit_jump(OpCode.JUMP)
                self._patch(patch_false)
                self.lower(else_branch)
                self._patch(patch_end)
            case Call(callee=callee, args=args):
                self._lower_call(callee, args)
            case Lambda(params=params, body=body):
                self._lower_lambda(params, body)
            case Match():
                self._lower_match(expr)
            case ParenExpr(inner=inner):
                self.lower(inner)
            case Assert(cond=cond, msg=msg):
                self.lower(cond)
                if msg is not None:
                    self.lower(msg)
                    self._op(OpCode.ASSERT_DYN)
                else:
                    self._op(OpCode.ASSERT_CONST)
                    self._u32(self.ctx.intern("assert failure"))
            case Require(expr=inner):
                self.lower(inner)
                self._op(OpCode.CONTRACT_CONST)
                self._u32(self.ctx.intern("contract require failure"))
            case Ensure(expr=inner):
                self.lower(inner)
                self._op(OpCode.CONTRACT_CONST)
                self._u32(self.ctx.intern("contract ensure failure"))
            case NameApp(name=name, args=args):
                ctor_name = self.ctx.text(name)
                if ctor_name not in self.ctx.ctor_names:
                    raise BytecodeError(
                        f"name application `{ctor_name}` is not a known "
                        "constructor in this module"
                    )
                for arg in args:
                    self.lower(arg)
                tag_id = self.ctx.intern(ctor_name)
                self._op(OpCode.MK_ADT)
                self._u32(tag_id)
                self._u8(len(args))
            case _:
                raise BytecodeError(f"unsupported expression {type(expr).__name__}")

    def _lower_name(self, ident: Ident) -> None:
        text = self.ctx.text(ident)
        slot = self.locals.get(text)
        if slot is not None:
            self._load(slot)
            return
        value_id = self.ctx.value_ids.get(text)
        if value_id is not None:
            self._op(OpCode.CALL_FN)
            self._u32(value_id)
            self._u8(0)
            return
        raise BytecodeError(f"unsupported unresolved name `{text}` in lowering")

    def _lower_call(self, callee: Expr, args: Sequence[Expr]) -> None:
        if isinstance(callee, NameExpr):
            text = self.ctx.text(callee.ident)
            builtin = builtin_id(text)
            if builtin is not None:
                for arg in args:
                    self.lower(arg)
                self._op(OpCode.CALL_BUILTIN)
                self._u8(builtin)
                self._u8(len(args))
                return
            fn_id = self.ctx.fn_ids.get(text)
            if fn_id is not None:
                for arg in args:
                    self.lower(arg)
                self._op(OpCode.CALL_FN)
                self._u32(fn_id)
                self._u8(len(args))
                return
            slot = self.locals.get(text)
            if slot is not None:
                self._load(slot)
                for arg in args:
                    self.lower(arg)
                self._op(OpCode.CALL_CLOSURE)
                self._u8(len(args))
                return

        self.lower(callee)
        for arg in args:
            self.lower(arg)
        self._op(OpCode.CALL_CLOSURE)
        self._u8(len(args))

    def _lower_lambda(self, params: Sequence[Param], body: Expr) -> None:
        param_names = {self.ctx.text(p.name) for p in params}
        captures = [name for name in sorted(self.locals) if name not in param_names]
        lambda_id = self._compile_lambda(params, body, captures)
        for cap in captures:
            slot = self.locals.get(cap)
            if slot is None:
                raise BytecodeError(f"missing capture `{cap}` during lambda lowering")
            self._load(slot)
        self._op(OpCode.MK_CLOSURE)
        self._u32(lambda_id)
        self._u8(len(captures))

    def _compile_lambda(
        self, params: Sequence[Param], body: Expr, captures: Sequence[str]
    ) -> int:
        lambda_id = len(self.ctx.functions)
        locals_: dict[str, int] = {}
        slot = 0
        for cap in captures:
            locals_[cap] = slot
            slot += 1
        for param in params:
            locals_[self.ctx.text(param.name)] = slot
            slot += 1
        nested = _Lowerer(self.ctx, locals_, slot)
        self.ctx.functions.append(nested.finish(body, len(params), len(captures)))
        return lambda_id

    def _lower_match(self, expr: Match) -> None:
        self.lower(expr.scrutinee)
        scrut_slot = self._alloc_local()
        self._store(scrut_slot)
        end_jumps: list[int] = []
        has_fallback = False

        for arm in expr.arms:
            pattern = arm.pattern
            if isinstance(pattern, WildcardPattern):
                has_fallback = True
                self.lower(arm.expr)
                end_jumps.append(self._emit_jump(OpCode.JUMP))
            elif isinstance(pattern, BoolLit):
                self._load(scrut_slot)
                if pattern.value:
                    next_patch = self._emit_jump(OpCode.JUMP_IF_FALSE)
                    self.lower(arm.expr)
                    end_jumps.append(self._emit_jump(OpCode.JUMP))
                    self._patch(next_patch)
                else:
                    arm_patch = self._emit_jump(OpCode.JUMP_IF_FALSE)
                    next_patch = self._emit_jump(OpCode.JUMP)
                    self._patch(arm_patch)
                    self.lower(arm.expr)
                    end_jumps.append(self._emit_jump(OpCode.JUMP))
                    self._patch(next_patch)
            elif isinstance(pattern, CtorPattern):
                self._lower_ctor_arm(pattern, arm.expr, scrut_slot, end_jumps)
            elif isinstance(pattern, NamePattern):
                text = self.ctx.text(pattern.ident)
                if text in self.ctx.ctor_names:
                    self._load(scrut_slot)
                    arm_patch = self._emit_jump_if_tag(self.ctx.intern(text))
                    next_patch = self._emit_jump(OpCode.JUMP)
                    self._patch(arm_patch)
                    self.lower(arm.expr)
                    end_jumps.append(self._emit_jump(OpCode.JUMP))
                    self._patch(next_patch)
                else:
                    has_fallback = True
                    self._load(scrut_slot)
                    slot = self._alloc_local()
                    self._store(slot)
                    prev = self._bind(text, slot)
                    self.lower(arm.expr)
                    self._restore(text, prev)
                    end_jumps.append(self._emit_jump(OpCode.JUMP))
            else:
                raise BytecodeError(
                    "only boolean, constructor, name, and wildcard patterns are "
                    "supported in bytecode lowering"
                )

        if not has_fallback:
            self._op(OpCode.TRAP)
            self._u32(self.ctx.intern("E4005: invalid match"))
        for patch in end_jumps:
            self._patch(patch)

    def _lower_ctor_arm(
        self, pattern: CtorPattern, body: Expr, scrut_slot: int, end_jumps: list[int]
    ) -> None:
        tag_id = self.ctx.intern(self.ctx.text(pattern.name))
        self._load(scrut_slot)
        arm_patch = self._emit_jump_if_tag(tag_id)
        next_patch = self._emit_jump(OpCode.JUMP)
        self._patch(arm_patch)

        bound: list[tuple[str, Optional[int]]] = []
        for idx, field_pattern in enumerate(pattern.args):
            if isinstance(field_pattern, NamePattern):
                self._load(scrut_slot)
                self._op(OpCode.GET_ADT_FIELD)
                self._u8(idx)
                slot = self._alloc_local()
                self._store(slot)
                text = self.ctx.text(field_pattern.ident)
                bound.append((text, self._bind(text, slot)))
            elif not isinstance(field_pattern, WildcardPattern):
                raise BytecodeError(
                    "only identifier and wildcard constructor field patterns are "
                    "supported in bytecode lowering"
                )

        self.lower(body)
        for text, prev in reversed(bound):
            self._restore(text, prev)
        end_jumps.append(self._emit_jump(OpCode.JUMP))
        self._patch(next_patch)