[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "muscript"
version = "0.2.0"
description = "Syntax tree, lexer, formatter and bytecode compiler for the muScript language"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "bytecode", "formatter", "lexer", "language"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["muscript"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
