import struct

import pytest

from muscript.bytecode import (
    MAGIC,
    BytecodeError,
    DecodedBytecode,
    DecodeError,
    DecodeErrorCode,
    FunctionBytecode,
    OpCode,
    builtin_id,
    builtin_name,
    decode,
    encode,
    encode_parts,
)


def _u32(v):
    return struct.pack("<I", v)


def _ret_fn():
    return FunctionBytecode(0, 0, bytes([OpCode.RETURN]))


def _decode_err(strings, code, nfuncs_extra=()):
    functions = [FunctionBytecode(0, 0, code), *nfuncs_extra]
    with pytest.raises(DecodeError) as info:
        decode(encode_parts(strings, functions, 0))
    return info.value


def test_round_trip_preserves_everything():
    code = (
        bytes([OpCode.PUSH_INT])
        + struct.pack("<q", -42)
        + bytes([OpCode.PUSH_STRING])
        + _u32(1)
        + bytes([OpCode.CALL_BUILTIN, builtin_id("println"), 1])
        + bytes([OpCode.CALL_FN])
        + _u32(1)
        + bytes([0, OpCode.RETURN])
    )
    original = DecodedBytecode(
        strings=["héllo", "world"],
        functions=[FunctionBytecode(2, 1, code), _ret_fn()],
        entry_fn=1,
    )
    decoded = decode(encode(original))
    assert decoded == original
    assert encode(decoded) == encode(original)


def test_encoding_starts_with_magic():
    assert encode_parts([], [_ret_fn()], 0).startswith(MAGIC)
    assert MAGIC == b"MUB1"


def test_invalid_header():
    with pytest.raises(DecodeError) as info:
        decode(b"XXXX" + b"\x00" * 12)
    assert info.value.code is DecodeErrorCode.INVALID_HEADER
    assert info.value.code.as_str() == "E4101"


def test_short_input_is_invalid_header():
    with pytest.raises(DecodeError) as info:
        decode(b"MU")
    assert info.value.code is DecodeErrorCode.INVALID_HEADER


def test_truncated_after_magic():
    with pytest.raises(DecodeError) as info:
        decode(MAGIC)
    assert info.value.code is DecodeErrorCode.TRUNCATED
    assert info.value.offset == len(MAGIC)


def test_trailing_bytes():
    data = encode_parts([], [_ret_fn()], 0) + b"\x00"
    with pytest.raises(DecodeError) as info:
        decode(data)
    assert info.value.code is DecodeErrorCode.TRAILING_BYTES
    assert info.value.offset == len(data) - 1


def test_entry_out_of_bounds():
    with pytest.raises(DecodeError) as info:
        decode(encode_parts([], [_ret_fn()], 1))
    assert info.value.code is DecodeErrorCode.INVALID_INDEX


def test_string_count_exceeds_capacity():
    data = MAGIC + _u32(1000) + _u32(0)
    with pytest.raises(DecodeError) as info:
        decode(data)
    assert info.value.code is DecodeErrorCode.INVALID_LENGTH


def test_string_length_past_end_is_truncated():
    data = MAGIC + _u32(1) + _u32(50) + b"abcd"
    with pytest.raises(DecodeError) as info:
        decode(data)
    assert info.value.code is DecodeErrorCode.TRUNCATED


def test_invalid_utf8_in_string_table():
    data = MAGIC + _u32(1) + _u32(2) + b"\xff\xfe" + _u32(0) + _u32(0)
    with pytest.raises(DecodeError) as info:
        decode(data)
    assert info.value.code is DecodeErrorCode.INVALID_UTF8


def test_unknown_opcode():
    err = _decode_err([], bytes([99]))
    assert err.code is DecodeErrorCode.UNKNOWN_OPCODE
    assert "unknown opcode 99" in str(err)


def test_unknown_builtin():
    err = _decode_err([], bytes([OpCode.CALL_BUILTIN, 50, 0]))
    assert err.code is DecodeErrorCode.UNKNOWN_BUILTIN


def test_truncated_operand():
    err = _decode_err([], bytes([OpCode.PUSH_INT, 1, 2, 3]))
    assert err.code is DecodeErrorCode.TRUNCATED


def test_string_index_out_of_bounds():
    err = _decode_err(["a"], bytes([OpCode.PUSH_STRING]) + _u32(1))
    assert err.code is DecodeErrorCode.INVALID_INDEX


def test_adt_tag_out_of_bounds():
    err = _decode_err([], bytes([OpCode.MK_ADT]) + _u32(0) + bytes([0]))
    assert err.code is DecodeErrorCode.INVALID_INDEX


def test_jump_target_out_of_bounds():
    code = bytes([OpCode.JUMP]) + _u32(6)
    err = _decode_err([], code)
    assert err.code is DecodeErrorCode.INVALID_JUMP_TARGET


def test_jump_to_end_of_code_is_valid():
    code = bytes([OpCode.JUMP]) + _u32(5)
    decoded = decode(encode_parts([], [FunctionBytecode(0, 0, code)], 0))
    assert decoded.functions[0].code == code


def test_jump_if_tag_checks_target():
    code = bytes([OpCode.JUMP_IF_TAG]) + _u32(0) + _u32(100)
    err = _decode_err(["Ok"], code)
    assert err.code is DecodeErrorCode.INVALID_JUMP_TARGET


def test_function_id_out_of_bounds():
    err = _decode_err([], bytes([OpCode.MK_CLOSURE]) + _u32(3) + bytes([0]))
    assert err.code is DecodeErrorCode.INVALID_INDEX


def test_decode_error_str_format():
    err = DecodeError(DecodeErrorCode.TRUNCATED, 7, "truncated bytecode")
    assert str(err) == "E4102: truncated bytecode at byte 7"


def test_bytecode_error_message():
    err = BytecodeError("missing `main` function")
    assert str(err) == "missing `main` function"


@pytest.mark.parametrize(
    "name", ["print", "println", "readln", "+", "==", "and", "str_cat", "len"]
)
def test_builtin_round_trip(name):
    assert builtin_name(builtin_id(name)) == name


def test_builtin_known_values():
    assert builtin_id("print") == 1
    assert builtin_id("len") == 36
    assert builtin_id("nope") is None
    assert builtin_name(10) is None


def test_opcode_numbers():
    assert OpCode.PUSH_INT == 1
    assert OpCode.CONTRACT_CONST == 21
    assert OpCode(11) is OpCode.RETURN