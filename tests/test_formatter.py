import pytest

from muscript.ast import (
    BoolLit,
    Call,
    CtorDecl,
    CtorPattern,
    EffectAtom,
    EffectSet,
    FunctionDecl,
    FunctionType,
    Ident,
    IntLit,
    Let,
    Match,
    MatchArm,
    ModId,
    Module,
    NameExpr,
    NamePattern,
    PrimType,
    Program,
    Span,
    StringLit,
    TypeArray,
    TypeDecl,
    TypeNamed,
    TypePrim,
    TypeResult,
    WildcardPattern,
)
from muscript.formatter import (
    FmtMode,
    collect_mu_files,
    format_program,
    format_program_mode,
)

S = Span(0, 0)


def _id(name):
    return Ident.from_ident(name, S)


def _name(name):
    return NameExpr(_id(name))


def _main(body, effects=None, ret=None):
    sig = FunctionType([], ret or TypePrim(PrimType.UNIT, S), EffectSet(effects or []), S)
    return FunctionDecl(_id("main"), [], sig, body, S)


def _program(decls, symtab=None):
    return Program(Module(ModId(["app", "main"], S), symtab, decls, S))


def _hello():
    return _program([_main(Call(_name("println"), [StringLit("hi", S)], S))])


def test_readable_hello():
    out = format_program(_hello())
    assert out == '@app.main{F main:()->unit=c(println,"hi");}\n'


def test_compressed_hello_has_empty_table():
    out = format_program_mode(_hello(), FmtMode.COMPRESSED)
    assert out == '@app.main{$[];F main:()->unit=(println "hi");}\n'


def test_format_program_is_readable_mode():
    prog = _hello()
    assert format_program(prog) == format_program_mode(prog, FmtMode.READABLE)


def _accumulator_program():
    acc = "accumulator"
    body = Let(
        _id(acc),
        None,
        IntLit(1, S),
        Call(_name("+"), [_name(acc), _name(acc)], S),
        S,
    )
    return _program([_main(body)])


def test_compressed_replaces_frequent_binding():
    out = format_program_mode(_accumulator_program(), FmtMode.COMPRESSED)
    assert out.startswith("@app.main{$[accumulator];")
    assert out.count("accumulator") == 1
    assert out.count("#0") == 3
    assert out.endswith("}\n")


def test_readable_keeps_names():
    out = format_program(_accumulator_program())
    assert out.count("accumulator") == 3
    assert "#0" not in out
    assert "$[" not in out


def test_core_literal_names_never_in_table():
    body = Let(_id("t"), None, IntLit(1, S), Call(_name("+"), [_name("t")] * 6, S), S)
    out = format_program_mode(_program([_main(body)]), FmtMode.COMPRESSED)
    assert "$[];" in out
    assert "#0" not in out


def test_effects_are_canonical_and_deduplicated():
    prog = _program([_main(IntLit(0, S), effects=[EffectAtom.ST, EffectAtom.IO, EffectAtom.IO])])
    assert "->unit!{io,st}=" in format_program(prog)
    assert "->unit!{I,S}=" in format_program_mode(prog, FmtMode.COMPRESSED)


def test_no_effects_renders_nothing():
    out = format_program(_program([_main(IntLit(0, S))]))
    assert "!{" not in out


def test_string_escapes():
    prog = _program([_main(StringLit('say "hi"\n\t\\', S))])
    out = format_program(prog)
    assert '"say \\"hi\\"\\n\\t\\\\"' in out


def test_symbol_references_resolve_through_module_table():
    decl = FunctionDecl(
        Ident.from_sym(0, S),
        [],
        FunctionType([], TypePrim(PrimType.UNIT, S), EffectSet(), S),
        NameExpr(Ident.from_sym(5, S)),
        S,
    )
    out = format_program(_program([decl], symtab=["main"]))
    assert "F main:" in out
    assert "=#5;" in out


def test_type_and_match_rendering():
    ty = TypeDecl(
        _id("Shape"),
        [],
        [CtorDecl(_id("Dot"), [], S), CtorDecl(_id("Box"), [TypePrim(PrimType.I64, S)], S)],
        S,
    )
    ret = TypeResult(TypeArray(TypePrim(PrimType.STRING, S), S), TypeNamed(_id("Shape"), [], S), S)
    match = Match(
        NameExpr(_id("x")),
        [
            MatchArm(CtorPattern(_id("Box"), [NamePattern(_id("n"))], S), BoolLit(True, S), S),
            MatchArm(WildcardPattern(S), BoolLit(False, S), S),
        ],
        S,
    )
    out = format_program(_program([ty, _main(match, ret=ret)]))
    assert "T Shape=Dot|Box(i64);" in out
    assert "->s[]!Shape=" in out
    assert "m(x){Box(n)=>t;_=>f;}" in out


@pytest.mark.parametrize(
    "mode, expected",
    [
        (
            FmtMode.READABLE,
            "@app.main{F main:()->unit=v(accumulator=1,c(+,accumulator,accumulator));}\n",
        ),
        (
            FmtMode.COMPRESSED,
            "@app.main{$[accumulator];F main:()->unit=[v #0 1 (+ #0 #0)];}\n",
        ),
    ],
)
def test_let_and_call_rendering_per_mode(mode, expected):
    assert format_program_mode(_accumulator_program(), mode) == expected


def test_collect_mu_files_directory(tmp_path):
    (tmp_path / "b.mu").write_text("x")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "a.mu").write_text("x")
    (tmp_path / "c.txt").write_text("x")
    files = collect_mu_files(tmp_path)
    assert files == sorted([tmp_path / "b.mu", tmp_path / "sub" / "a.mu"])
    assert all(f.suffix == ".mu" for f in files)


def test_collect_mu_files_single_file(tmp_path):
    f = tmp_path / "one.mu"
    f.write_text("x")
    assert collect_mu_files(f) == [f]


def test_collect_mu_files_rejects_other_extension(tmp_path):
    f = tmp_path / "one.txt"
    f.write_text("x")
    with pytest.raises(ValueError):
        collect_mu_files(f)


def test_collect_mu_files_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        collect_mu_files(tmp_path / "missing")