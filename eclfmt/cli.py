"""
eclfmt - Command Line Interface

Usage:
    eclfmt query.ecl                        print the formatted expression
    eclfmt query.ecl -o out.ecl [--indent-size 4]
    eclfmt query.ecl --in-place
    eclfmt query.ecl --range 120:184        format only that character range
    eclfmt query.ecl --check                exit 1 if the file is not formatted
    eclfmt query.ecl --emit-ast
    cat query.ecl | eclfmt
    python -m eclfmt query.ecl
"""

import sys
import json
import argparse

from .ast_nodes import node_to_dict
from .formatter import FormattingOptions, describe_error, format_ecl, format_range, parse_ecl


def _parse_range(text: str):
    start, sep, end = text.partition(":")
    if not sep or not start.isdigit() or not end.isdigit():
        raise argparse.ArgumentTypeError(f"expected START:END character offsets, got {text!r}")
    return int(start), int(end)


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {text!r}")
    return value


def _fail(message: str):
    print(f"[eclfmt] {message}", file=sys.stderr)
    sys.exit(1)


def _read_source(path) -> str:
    if path is None or path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="eclfmt",
        description="eclfmt - formatter for SNOMED CT Expression Constraint Language (ECL)",
    )
    parser.add_argument("input", nargs="?", help="ECL file to format (default: stdin)")
    parser.add_argument("-o", "--output", help="Write the result to this file instead of stdout")
    parser.add_argument(
        "--in-place",
        action="store_true",
        dest="in_place",
        help="Rewrite the input file with the formatted result",
    )
    parser.add_argument(
        "--indent-size",
        type=_positive_int,
        default=FormattingOptions().indent_size,
        dest="indent_size",
        help="Spaces per indentation level (default: 2)",
    )
    parser.add_argument(
        "--range",
        type=_parse_range,
        metavar="START:END",
        help="Format only the characters from START up to END",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Write nothing; exit with status 1 if formatting would change the input",
    )
    parser.add_argument(
        "--emit-ast",
        action="store_true",
        dest="emit_ast",
        help="Emit the parsed AST as JSON instead of formatted text",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print pipeline phase info to stderr",
    )

    args = parser.parse_args(argv)

    if args.in_place and (args.input is None or args.input == "-"):
        parser.error("--in-place needs an input file")
    if args.in_place and args.output:
        parser.error("--in-place and --output are mutually exclusive")
    if args.check and args.emit_ast:
        parser.error("--check and --emit-ast are mutually exclusive")

    try:
        source = _read_source(args.input)
    except FileNotFoundError:
        _fail(f"Error: Input file not found: {args.input!r}")
    except UnicodeDecodeError as e:
        _fail(f"Error: Input file is not valid UTF-8: {args.input!r} ({e.reason} at byte {e.start})")
    except OSError as e:
        _fail(f"Error: Cannot read {args.input!r}: {e.strerror or e}")

    if args.emit_ast:
        outcome = parse_ecl(source.strip(), debug=args.debug)
        if outcome.errors:
            _fail(describe_error(outcome.errors[0]))
        try:
            output = json.dumps(node_to_dict(outcome.ast), indent=2) + "\n"
        except RecursionError as e:
            _fail(describe_error(e))
    else:
        options = FormattingOptions(indent_size=args.indent_size)
        if args.range:
            start, end = args.range
            result = format_range(source, start, end, options, debug=args.debug)
            changed = result.formatted != source
            output = result.formatted
        else:
            result = format_ecl(source, options, debug=args.debug)
            output = None if result.formatted is None else result.formatted + "\n"
            changed = output != source

        if result.formatted is None:
            _fail(result.error)

        if args.check:
            if changed:
                print(f"[eclfmt] Would reformat {args.input or '<stdin>'!r}", file=sys.stderr)
                sys.exit(1)
            return

    target = args.input if args.in_place else args.output
    if target:
        with open(target, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"[eclfmt] Formatted {args.input or '<stdin>'!r} → {target!r}")
    else:
        sys.stdout.write(output)


if __name__ == "__main__":
    main()
