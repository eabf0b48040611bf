"""muScript toolkit: syntax tree, lexer, symbol table, formatter and bytecode compiler."""

__version__ = "0.2.0"
__all__ = ["ast", "lexer", "bytecode", "compiler", "symtab", "formatter"]