"""Binary bytecode container: encoding, decoding and validation."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Optional, Sequence

__all__ = [
    "MAGIC",
    "BytecodeError",
    "DecodeErrorCode",
    "DecodeError",
    "OpCode",
    "FunctionBytecode",
    "DecodedBytecode",
    "builtin_id",
    "builtin_name",
    "encode_parts",
    "encode",
    "decode",
]

MAGIC = b"MUB1"


class BytecodeError(Exception):
    """Raised when a program cannot be lowered to bytecode."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class DecodeErrorCode(enum.Enum):
    """Diagnostic codes reported while decoding bytecode."""

    INVALID_HEADER = "E4101"
    TRUNCATED = "E4102"
    INVALID_UTF8 = "E4103"
    INVALID_LENGTH = "E4104"
    INVALID_INDEX = "E4105"
    INVALID_JUMP_TARGET = "E4106"
    UNKNOWN_OPCODE = "E4107"
    UNKNOWN_BUILTIN = "E4108"
    TRAILING_BYTES = "E4109"

    def as_str(self) -> str:
        return self.value


class DecodeError(Exception):
    """Raised when a bytecode stream is malformed."""

    def __init__(self, code: DecodeErrorCode, offset: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.offset = offset
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message} at byte {self.offset}"


class OpCode(enum.IntEnum):
    PUSH_INT = 1
    PUSH_BOOL = 2
    PUSH_STRING = 3
    PUSH_UNIT = 4
    LOAD_LOCAL = 5
    STORE_LOCAL = 6
    POP = 7
    JUMP = 8
    JUMP_IF_FALSE = 9
    CALL_BUILTIN = 10
    RETURN = 11
    MK_ADT = 12
    JUMP_IF_TAG = 13
    ASSERT_CONST = 14
    ASSERT_DYN = 15
    GET_ADT_FIELD = 16
    CALL_FN = 17
    MK_CLOSURE = 18
    CALL_CLOSURE = 19
    TRAP = 20
    CONTRACT_CONST = 21


@dataclass
class FunctionBytecode:
    """One function body: its arity, number of captured values and code."""

    arity: int = 0
    captures: int = 0
    code: bytes = b""


@dataclass
class DecodedBytecode:
    """A decoded bytecode stream."""

    strings: list[str] = field(default_factory=list)
    functions: list[FunctionBytecode] = field(default_factory=list)
    entry_fn: int = 0


_BUILTINS = {
    "print": 1,
    "println": 2,
    "readln": 3,
    "read": 4,
    "write": 5,
    "parse": 6,
    "stringify": 7,
    "run": 8,
    "get": 9,
    "+": 20,
    "-": 21,
    "*": 22,
    "/": 23,
    "%": 24,
    "==": 25,
    "!=": 26,
    "<": 27,
    "<=": 28,
    ">": 29,
    ">=": 30,
    "and": 31,
    "or": 32,
    "not": 33,
    "neg": 34,
    "str_cat": 35,
    "len": 36,
}
_BUILTIN_NAMES = {ident: name for name, ident in _BUILTINS.items()}


def builtin_id(name: str) -> Optional[int]:
    """The builtin number for ``name``, or None if it is not a builtin."""
    return _BUILTINS.get(name)


def builtin_name(ident: int) -> Optional[str]:
    """The builtin name for number ``ident``, or None if unknown."""
    return _BUILTIN_NAMES.get(ident)


def encode_parts(
    strings: Sequence[str], functions: Sequence[FunctionBytecode], entry_fn: int
) -> bytes:
    """Serialize a string table, function table and entry index."""
    out = bytearray(MAGIC)
    out += struct.pack("<I", len(strings))
    for s in strings:
        raw = s.encode("utf-8")
        out += struct.pack("<I", len(raw))
        out += raw
    out += struct.pack("<I", len(functions))
    for f in functions:
        out += bytes((f.arity, f.captures))
        out += struct.pack("<I", len(f.code))
        out += f.code
    out += struct.pack("<I", entry_fn)
    return bytes(out)


def encode(decoded: DecodedBytecode) -> bytes:
    """Serialize a decoded bytecode structure."""
    return encode_parts(decoded.strings, decoded.functions, decoded.entry_fn)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    @property
    def remaining(self) -> int:
        return max(0, len(self.data) - self.pos)

    def _need(self, n: int) -> None:
        if self.pos + n > len(self.data):
            raise DecodeError(DecodeErrorCode.TRUNCATED, self.pos, "truncated bytecode")

    def u8(self) -> int:
        self._need(1)
        value = self.data[self.pos]
        self.pos += 1
        return value

    def u32(self) -> int:
        self._need(4)
        (value,) = struct.unpack_from("<I", self.data, self.pos)
        self.pos += 4
        return value

    def i64(self) -> int:
        self._need(8)
        (value,) = struct.unpack_from("<q", self.data, self.pos)
        self.pos += 8
        return value


def decode(data: bytes) -> DecodedBytecode:
    """Parse and validate a bytecode stream; raises :class:`DecodeError`."""
    data = bytes(data)
    if len(data) < 4 or data[:4] != MAGIC:
        raise DecodeError(DecodeErrorCode.INVALID_HEADER, 0, "invalid bytecode header")
    reader = _Reader(data)
    reader.pos = 4

    nstrings = reader.u32()
    if nstrings > reader.remaining // 4:
        raise DecodeError(
            DecodeErrorCode.INVALID_LENGTH,
            reader.pos,
            "string table count exceeds stream capacity",
        )
    strings: list[str] = []
    for _ in range(nstrings):
        length = reader.u32()
        start = reader.pos
        end = start + length
        if end > len(data):
            raise DecodeError(
                DecodeErrorCode.TRUNCATED, start, "corrupt bytecode string table"
            )
        try:
            strings.append(data[start:end].decode("utf-8"))
        except UnicodeDecodeError:
            raise DecodeError(
                DecodeErrorCode.INVALID_UTF8,
                start,
                "bytecode string table contains invalid utf-8",
            ) from None
        reader.pos = end

    nfuncs = reader.u32()
    if nfuncs > reader.remaining // 6:
        raise DecodeError(
            DecodeErrorCode.INVALID_LENGTH,
            reader.pos,
            "function table count exceeds stream capacity",
        )
    functions: list[FunctionBytecode] = []
    for _ in range(nfuncs):
        arity = reader.u8()
        captures = reader.u8()
        code_len = reader.u32()
        start = reader.pos
        end = start + code_len
        if end > len(data):
            raise DecodeError(
                DecodeErrorCode.TRUNCATED, start, "corrupt bytecode function section"
            )
        functions.append(FunctionBytecode(arity, captures, data[start:end]))
        reader.pos = end

    entry_fn = reader.u32()
    if reader.pos != len(data):
        raise DecodeError(
            DecodeErrorCode.TRAILING_BYTES,
            reader.pos,
            "trailing bytes in bytecode stream",
        )
    if entry_fn >= len(functions):
        raise DecodeError(
            DecodeErrorCode.INVALID_INDEX,
            max(0, reader.pos - 4),
            "entry function index out of bounds",
        )

    _validate_function_code(strings, functions)
    return DecodedBytecode(strings, functions, entry_fn)


def _validate_function_code(
    strings: Sequence[str], functions: Sequence[FunctionBytecode]
) -> None:
    for function in functions:
        code = function.code
        reader = _Reader(code)

        def check_string(idx: int, offset: int, what: str) -> None:
            if idx >= len(strings):
                raise DecodeError(DecodeErrorCode.INVALID_INDEX, offset, what)

        def check_target(target: int, offset: int) -> None:
            if target > len(code):
                raise DecodeError(
                    DecodeErrorCode.INVALID_JUMP_TARGET,
                    offset,
                    "jump target out of bounds",
                )

        while reader.pos < len(code):
            op_offset = reader.pos
            raw = reader.u8()
            try:
                op = OpCode(raw)
            except ValueError:
                raise DecodeError(
                    DecodeErrorCode.UNKNOWN_OPCODE, op_offset, f"unknown opcode {raw}"
                ) from None

            if op is OpCode.PUSH_INT:
                reader.i64()
            elif op is OpCode.PUSH_BOOL:
                reader.u8()
            elif op in (
                OpCode.PUSH_STRING,
                OpCode.ASSERT_CONST,
                OpCode.TRAP,
                OpCode.CONTRACT_CONST,
            ):
                check_string(reader.u32(), op_offset, "string index out of bounds")
            elif op in (OpCode.PUSH_UNIT, OpCode.POP, OpCode.RETURN, OpCode.ASSERT_DYN):
                pass
            elif op in (OpCode.LOAD_LOCAL, OpCode.STORE_LOCAL):
                reader.u32()
            elif op in (OpCode.JUMP, OpCode.JUMP_IF_FALSE):
                check_target(reader.u32(), op_offset)
            elif op is OpCode.CALL_BUILTIN:
                ident = reader.u8()
                reader.u8()
                if builtin_name(ident) is None:
                    raise DecodeError(
                        DecodeErrorCode.UNKNOWN_BUILTIN,
                        op_offset,
                        f"unknown builtin id {ident}",
                    )
            elif op is OpCode.MK_ADT:
                tag_idx = reader.u32()
                reader.u8()
                check_string(tag_idx, op_offset, "adt tag index out of bounds")
            elif op is OpCode.JUMP_IF_TAG:
                tag_idx = reader.u32()
                target = reader.u32()
                check_string(tag_idx, op_offset, "adt tag index out of bounds")
                check_target(target, op_offset)
            elif op in (OpCode.GET_ADT_FIELD, OpCode.CALL_CLOSURE):
                reader.u8()
            elif op in (OpCode.CALL_FN, OpCode.MK_CLOSURE):
                fn_id = reader.u32()
                reader.u8()
                if fn_id >= len(functions):
                    raise DecodeError(
                        DecodeErrorCode.INVALID_INDEX,
                        op_offset,
                        "function id out of bounds",
                    )