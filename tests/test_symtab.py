import pytest

from muscript.ast import (
    Block,
    EffectSet,
    ExportDecl,
    FunctionDecl,
    FunctionType,
    Ident,
    IntLit,
    Let,
    ModId,
    Module,
    NameExpr,
    PrimType,
    Span,
    TypePrim,
)
from muscript.symtab import (
    build_compressed_symtab,
    is_core_literal_name,
    resolve_ident,
)

SP = Span(0, 0)


def ident(name):
    return Ident.from_ident(name, SP)


def module(decls, symtab=None):
    return Module(ModId(["app", "main"], SP), symtab, decls, SP)


def export(*names):
    return ExportDecl([ident(n) for n in names], SP)


def function(name, body):
    sig = FunctionType([], TypePrim(PrimType.I64, SP), EffectSet(), SP)
    return FunctionDecl(ident(name), [], sig, body, SP)


def uses(name, n):
    return Block([NameExpr(ident(name)) for _ in range(n - 1)], NameExpr(ident(name)), SP)


def test_resolve_plain_ident():
    assert resolve_ident(module([]), ident("hello")) == "hello"


def test_resolve_sym_ident():
    m = module([], symtab=["first", "second"])
    assert resolve_ident(m, Ident.from_sym(1, SP)) == "second"


def test_resolve_sym_out_of_range_or_without_table():
    assert resolve_ident(module([], symtab=["first"]), Ident.from_sym(5, SP)) is None
    assert resolve_ident(module([]), Ident.from_sym(0, SP)) is None


@pytest.mark.parametrize("name", ["E", "T", "V", "F", "v", "i", "m", "l", "c", "a", "t", "f"])
def test_core_literal_names(name):
    assert is_core_literal_name(name) is True


@pytest.mark.parametrize("name", ["x", "main", "e", "Ok", ""])
def test_not_core_literal_names(name):
    assert is_core_literal_name(name) is False


def test_empty_module_has_empty_table():
    assert build_compressed_symtab(module([])) == []


def test_frequently_used_function_name_selected():
    m = module([function("longname_alpha", uses("longname_alpha", 4))])
    assert build_compressed_symtab(m) == ["longname_alpha"]


def test_single_use_not_worth_it():
    m = module([export("abcdef")])
    assert build_compressed_symtab(m) == []


def test_short_names_never_selected():
    m = module([export(*(["x"] * 50))])
    assert build_compressed_symtab(m) == []


def test_unbound_names_are_not_eligible():
    m = module([function("main", uses("println_everywhere", 10))])
    assert "println_everywhere" not in build_compressed_symtab(m)


def test_ties_broken_by_name():
    m = module([export("beta_name", "alpha_name", "beta_name", "alpha_name")])
    assert build_compressed_symtab(m) == ["alpha_name", "beta_name"]


def test_higher_count_ranks_first():
    m = module([export("aaaa_name", "zzzz_name", "aaaa_name", "zzzz_name", "zzzz_name")])
    assert build_compressed_symtab(m) == ["zzzz_name", "aaaa_name"]


def test_let_binding_counts_uses():
    body = Let(ident("accumulator"), None, IntLit(1, SP), uses("accumulator", 3), SP)
    m = module([function("main", body)])
    table = build_compressed_symtab(m)
    assert "accumulator" in table
    assert "main" not in table


def test_sym_idents_resolve_through_module_table():
    names = [Ident.from_sym(0, SP) for _ in range(3)]
    m = module([ExportDecl(names, SP)], symtab=["resolved_name"])
    assert build_compressed_symtab(m) == ["resolved_name"]


def test_selected_names_are_unique_and_ordered():
    decls = [
        export("first_name", "second_name", "third_name"),
        function("first_name", uses("first_name", 5)),
        function("second_name", uses("second_name", 3)),
    ]
    table = build_compressed_symtab(module(decls))
    assert len(table) == len(set(table))
    assert table.index("first_name") < table.index("second_name")
    assert not any(is_core_literal_name(n) for n in table)