# muscript

muscript is a Python toolkit for muScript. muScript is a compact language that is easy for machines to write. The package has these modules:

- `muscript.ast` holds the syntax tree as dataclasses:
  - `Span`, with `Span.merge`.
  - `Ident`, which stores a plain name or a symbol-table index. It has the methods `from_ident`, `from_sym`, `resolved`, `display` and `resolved_string`.
  - Module and declaration nodes: `Program`, `Module`, `ModId`, `ImportDecl`, `ExportDecl`, `TypeDecl`, `CtorDecl`, `ValueDecl` and `FunctionDecl`.
  - Type nodes: `TypePrim`, `TypeNamed`, `TypeOptional`, `TypeArray`, `TypeMap`, `TypeTuple`, `TypeFunction`, `TypeResult` and `TypeGroup`.
  - Expression nodes: `Block`, `UnitExpr`, `Let`, `If`, `Match`, `Call`, `Lambda`, `Assert`, `Require`, `Ensure`, `NameExpr`, `NameApp`, `ParenExpr` and the literals `IntLit`, `BoolLit` and `StringLit`.
  - Pattern nodes: `WildcardPattern`, `NamePattern`, `CtorPattern`, `TuplePattern` and `ParenPattern`.
  - The enums `PrimType` and `EffectAtom`, and the `EffectSet` class.
- `muscript.lexer`: `tokenize(src)` returns a list of `Token` objects, and the last token is always `TokenKind.EOF`. Each `Token` has three fields:
  - `kind`, a `TokenKind`;
  - `span`, given in byte offsets into the UTF-8 source;
  - `value`, which holds the name for identifiers, the number for integers and symbol references, and the text for strings.

  Invalid input raises `LexError`. The error carries a `LexErrorCode` (`E1001` to `E1007`) and a `span`.
- `muscript.compiler`: `compile_program(program)` lowers a `Program` to a `MUB1` bytecode stream. It raises `BytecodeError` in three cases: the program has no `main` function, a name cannot be resolved, or the program uses a pattern that the lowering does not support.
- `muscript.bytecode` handles the `MUB1` container:
  - `encode`, `encode_parts` and `decode`.
  - The data classes `FunctionBytecode` and `DecodedBytecode`.
  - The `OpCode` enum.
  - `builtin_id` and `builtin_name`, which map between builtin names and their numbers.

  `decode` checks the header, the lengths, the UTF-8 strings, the opcodes, the jump targets, the string indices, the function indices and the builtin ids. On failure it raises `DecodeError`, which has a `DecodeErrorCode` (`E4101` to `E4109`) and a byte `offset`.
- `muscript.symtab`:
  - `build_compressed_symtab(module)` picks the names that compressed output replaces with `#index` references.
  - `resolve_ident` returns the text of an identifier.
  - `is_core_literal_name` reports whether a name is one of the reserved one-letter keywords.
- `muscript.formatter`:
  - `format_program(program)` prints a `Program` as canonical source.
  - `format_program_mode(program, mode)` does the same, with `mode` set to `FmtMode.READABLE` or `FmtMode.COMPRESSED`.
  - `collect_mu_files(path)` returns the `.mu` file named by `path`, or every `.mu` file under a directory, sorted. It raises `ValueError` if the file is not a `.mu` file. It raises `FileNotFoundError` if the path does not exist.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from muscript.ast import (
    Call, EffectSet, FunctionDecl, FunctionType, Ident, IntLit, ModId,
    Module, NameExpr, PrimType, Program, Span, TypePrim,
)
from muscript.bytecode import decode
from muscript.compiler import compile_program
from muscript.formatter import FmtMode, format_program, format_program_mode
from muscript.lexer import tokenize

s = Span(0, 0)
main = FunctionDecl(
    name=Ident.from_ident("main", s),
    type_params=[],
    sig=FunctionType([], TypePrim(PrimType.I64, s), EffectSet(), s),
    expr=Call(NameExpr(Ident.from_ident("+", s)), [IntLit(1, s), IntLit(2, s)], s),
    span=s,
)
program = Program(Module(ModId(["app"], s), None, [main], s))

print(format_program(program), end="")   # @app{F main:()->i64=c(+,1,2);}
print(format_program_mode(program, FmtMode.COMPRESSED), end="")

tokens = tokenize(format_program(program))

image = decode(compile_program(program))
print(image.entry_fn, len(image.functions))   # 0 1
```

## Bytecode layout

Every integer is little-endian. A container holds these parts, in this order:

1. The magic bytes `MUB1`.
2. A `u32` string count. Each string follows as a `u32` byte length and then UTF-8 bytes.
3. A `u32` function count. Each function follows as a `u8` arity, a `u8` capture count, a `u32` code length and then the code.
4. A `u32` index of the entry function.

## What this package does not do

- **No parser.** Nothing here turns source text into a `Program`. `tokenize` stops at tokens, so you build syntax trees yourself, as in the example.
- **No type checker.**
- **No module loader.**
- **No interpreter.** The package produces and validates bytecode, but it cannot run it.
- **No command-line program.** It installs no commands.