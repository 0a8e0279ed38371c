import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from bean.bean_runtime import ScriptRunner
from bean.bean_printer import Printer
from bean.bean_serialize import deserialize, read_document

HELP_MSG = """Function-based language interpreter.
Usage: beans [OPTIONS] [PATH]

PATH is an AST document (.json, .yaml or .yml) produced by a bean parser.

Options:
  -p, --parse     Print the transformed AST without evaluating it.
  -h, --help      Print this message and exit.
  -i, --stdin     Read the AST document from stdin."""


@dataclass
class CliArgs:
    no_args: bool
    f_help: bool
    f_parse: bool
    f_stdin: bool
    path: Optional[str]


def parse_args(argv: List[str]) -> CliArgs:
    flags = []
    path = None
    for arg in argv:
        if arg.startswith("-"):
            flags.append(arg)
        elif path is None:
            path = arg
    return CliArgs(
        no_args=not argv,
        f_help="--help" in flags or "-h" in flags,
        f_parse="--parse" in flags or "-p" in flags,
        f_stdin="--stdin" in flags or "-i" in flags,
        path=path,
    )


def _load(args: CliArgs):
    """Returns (document, source_dir), or None after reporting a missing or invalid file."""
    try:
        if args.f_stdin:
            return deserialize(sys.stdin.read()), str(Path.cwd())
        p = Path(args.path)
        return read_document(p), str(p.parent.resolve())
    except FileNotFoundError:
        print(f"Error: file not found: {args.path}", file=sys.stderr)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """Run an AST document and report its output; returns the process exit code."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.no_args or args.f_help or (args.path is None and not args.f_stdin):
        print(HELP_MSG)
        return 0

    loaded = _load(args)
    if loaded is None:
        return 1
    document, source_dir = loaded

    runner = ScriptRunner()
    runner.source_dir = source_dir
    printer = Printer()

    if args.f_parse:
        try:
            print(printer.pformat(runner.load(document)))
        except (ValueError, TypeError, KeyError) as e:
            print(f"DocumentError: {e}", file=sys.stderr)
            return 1
        return 0

    result = runner.handle_document(document)
    # Print side effects (from `print`)
    for line in result.stdout:
        print(line)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    if result.value is not None:
        print(printer.pformat(result.value))
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
