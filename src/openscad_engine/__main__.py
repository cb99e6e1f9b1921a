#!/usr/bin/env python3
"""
Command line interface for the OpenSCAD engine.

Usage:
    python -m openscad_engine tokens FILE.scad
    python -m openscad_engine parse FILE.scad [--format text|json|yaml]
    python -m openscad_engine run FILE.scad [-D NAME=VALUE ...] [--max-depth N]

Use ``-`` as FILE to read the program from standard input.

Examples:
    # Show the AST as JSON, without source positions
    python -m openscad_engine parse model.scad --format json --no-positions

    # Evaluate with a finer tessellation and list the backend calls
    python -m openscad_engine run model.scad -D '$fn=64' --calls
"""

import argparse
import logging
import os
import sys
from typing import Any

from .ast import ast_to_json, ast_to_yaml, format_program
from .errors import OpenSCADError, format_error
from .evaluator import EvaluationContext, Evaluator, Scope
from .lexer import tokenize
from .parser import parse
from .backend import RecordingBackend
from .program import RunOptions, run_program
from .resolver import FileImportResolver


def read_source(path: str) -> tuple[str, str]:
    """Return ``(source, origin)`` for a file path, or standard input for ``-``."""
    if path == "-":
        return sys.stdin.read(), "<stdin>"
    with open(path, "r", encoding="utf-8") as f:
        return f.read(), path


def parse_define(define: str) -> tuple[str, Any]:
    """Parse a ``-D`` option like ``$fn=32`` into a name and an evaluated value."""
    if "=" not in define:
        raise ValueError(f"invalid definition: {define} (expected NAME=VALUE)")
    name, expr = define.split("=", 1)
    name = name.strip()
    if not name.startswith("$"):
        raise ValueError(f"only special variables can be defined, got {name!r}")
    statements = parse(tokenize(f"{name} = {expr};", "<command line>"))
    if len(statements) != 1:
        raise ValueError(f"invalid definition: {define}")
    value = Evaluator(EvaluationContext()).evaluate(statements[0].expr, Scope())
    return name, value


def cmd_tokens(args):
    source, origin = read_source(args.file)
    try:
        for token in tokenize(source, origin):
            print(f"{token.line}:{token.column}\t{token.kind.name}\t{token.lexeme}")
    except OpenSCADError as e:
        print(format_error(e, source), file=sys.stderr)
        return 1
    return 0


def cmd_parse(args):
    source, origin = read_source(args.file)
    try:
        statements = parse(tokenize(source, origin))
    except OpenSCADError as e:
        print(format_error(e, source), file=sys.stderr)
        return 1
    if args.format == "json":
        print(ast_to_json(statements, include_position=not args.no_positions))
    elif args.format == "yaml":
        print(ast_to_yaml(statements, include_position=not args.no_positions), end="")
    else:
        print(format_program(statements))
    return 0


def cmd_run(args):
    source, origin = read_source(args.file)
    try:
        special_vars = dict(parse_define(d) for d in args.define or [])
    except (ValueError, OpenSCADError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    search_dirs = list(args.include_dir or [])
    if origin != "<stdin>":
        search_dirs.insert(0, os.path.dirname(os.path.abspath(origin)))
    backend = RecordingBackend()
    options = RunOptions(
        special_vars=special_vars,
        max_recursion_depth=args.max_depth,
        import_resolver=FileImportResolver(),
        search_dirs=search_dirs,
        backend=backend,
        origin=origin,
    )
    try:
        program = run_program(source, options)
    except OpenSCADError as e:
        print(format_error(e, source), file=sys.stderr)
        return 1

    for line in program.echo_log:
        print(line)
    if args.calls:
        for method, call_args in backend.calls:
            print(f"{method}{call_args!r}")
    print(f"{len(program.roots)} root geometr{'y' if len(program.roots) == 1 else 'ies'}, "
          f"{len(backend.calls)} backend call(s)")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="python -m openscad_engine",
        description="OpenSCAD lexer, parser and evaluator",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Show info (-v) or debug (-vv) log messages")

    subparsers = parser.add_subparsers(dest="action", required=True)

    # tokens command
    tokens_parser = subparsers.add_parser("tokens", help="Print the token stream")
    tokens_parser.add_argument("file", help="OpenSCAD source file, or - for stdin")

    # parse command
    parse_parser = subparsers.add_parser("parse", help="Print the parsed program")
    parse_parser.add_argument("file", help="OpenSCAD source file, or - for stdin")
    parse_parser.add_argument("--format", choices=["text", "json", "yaml"], default="text",
                              help="Output format (default: text)")
    parse_parser.add_argument("--no-positions", action="store_true",
                              help="Leave source positions out of json/yaml output")

    # run command
    run_parser = subparsers.add_parser("run", help="Evaluate a program")
    run_parser.add_argument("file", help="OpenSCAD source file, or - for stdin")
    run_parser.add_argument("-D", "--define", action="append", metavar="NAME=VALUE",
                            help="Set a special variable, e.g. -D '$fn=32' (can be repeated)")
    run_parser.add_argument("-I", "--include-dir", action="append", metavar="DIR",
                            help="Additional directory for include/use/import")
    run_parser.add_argument("--max-depth", type=int, default=RunOptions.max_recursion_depth,
                            help="Maximum call nesting depth (default: %(default)s)")
    run_parser.add_argument("--calls", action="store_true",
                            help="List the recorded backend calls")

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(name)s: %(message)s")

    try:
        if args.action == "tokens":
            return cmd_tokens(args)
        elif args.action == "parse":
            return cmd_parse(args)
        elif args.action == "run":
            return cmd_run(args)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
