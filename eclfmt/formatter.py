"""
eclfmt - Format Facade
Runs the pipeline stages in sequence and reports the outcome as a value.

Nothing here raises for bad input: lexer and parser errors, builder and
printer failures, and invalid options all come back as
FormatResult(formatted=None, error=...), so a caller can leave its text
untouched whenever ``formatted`` is None.
"""

import sys
from dataclasses import dataclass, field
from typing import List, Optional
from .lexer import tokenize
from .parser import parse
from .builder import build_ast, AstBuildError
from .printer import FormattingOptions, PrintError, print_ast
from .ast_nodes import ASTNode

__all__ = [
    "FormattingOptions", "FormatResult", "ParseOutcome",
    "parse_ecl", "format_ecl", "format_range", "describe_error",
]


@dataclass
class FormatResult:
    formatted: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ParseOutcome:
    ast: Optional[ASTNode] = None
    errors: List[Exception] = field(default_factory=list)


def _logger(debug: bool):
    def log(msg):
        if debug:
            print(f"[eclfmt] {msg}", file=sys.stderr)
    return log


def _check_options(options: FormattingOptions) -> Optional[str]:
    size = options.indent_size
    if isinstance(size, bool) or not isinstance(size, int) or size < 1:
        return f"Invalid indent_size {size!r}: expected a positive integer"
    return None


def describe_error(error: Exception) -> str:
    """Stage errors already start with their "[Kind]" tag."""
    if isinstance(error, RecursionError):
        return f"[RecursionError] {error}"
    return str(error)


def parse_ecl(text: str, debug: bool = False) -> ParseOutcome:
    """
    Tokenize, parse and build the AST for ``text``.

    Stops at the first stage that reports errors; ``ast`` is only set when
    ``errors`` is empty. Nesting too deep for the interpreter stack is
    reported as a RecursionError in ``errors``.
    """
    log = _logger(debug)

    # ── Phase 1: Lexical Analysis ─────────────────────────────────────────────
    log("Phase 1: Lexical analysis")
    lexed = tokenize(text)
    log(f"  {len(lexed.tokens)-1} tokens produced, {len(lexed.errors)} errors")
    if lexed.errors:
        return ParseOutcome(errors=list(lexed.errors))

    try:
        # ── Phase 2: Parsing ──────────────────────────────────────────────────
        log("Phase 2: Parsing")
        parsed = parse(lexed.tokens)
        log(f"  {len(parsed.errors)} errors")
        if parsed.errors or parsed.cst is None:
            return ParseOutcome(errors=list(parsed.errors))

        # ── Phase 3: AST Construction ─────────────────────────────────────────
        log("Phase 3: AST construction")
        ast = build_ast(parsed.cst)
    except (AstBuildError, RecursionError) as e:
        return ParseOutcome(errors=[e])

    log(f"  root node: {ast.type}")
    return ParseOutcome(ast=ast)


def format_ecl(text: str, options: FormattingOptions = None, debug: bool = False) -> FormatResult:
    """
    Format an ECL expression.

    Parameters
    ----------
    text    : ECL source; surrounding whitespace is ignored
    options : FormattingOptions (default: 2-space indentation)
    debug   : print each phase summary to stderr

    Returns
    -------
    FormatResult with ``formatted`` set on success, or ``error`` set and
    ``formatted`` None on any failure.
    """
    options = options or FormattingOptions()
    log = _logger(debug)

    trimmed = text.strip()
    if not trimmed:
        return FormatResult(error="Empty input")

    problem = _check_options(options)
    if problem:
        return FormatResult(error=problem)

    try:
        outcome = parse_ecl(trimmed, debug=debug)
        if outcome.errors:
            return FormatResult(error=describe_error(outcome.errors[0]))

        # ── Phase 4: Printing ─────────────────────────────────────────────────
        log(f"Phase 4: Printing (indent size {options.indent_size})")
        formatted = print_ast(outcome.ast, options)
    except PrintError as e:
        return FormatResult(error=str(e))
    except Exception as e:
        # RecursionError on pathologically deep nesting, or a stage bug
        return FormatResult(error=f"[{type(e).__name__}] {e}")

    log("  Formatting successful")
    return FormatResult(formatted=formatted)


def format_range(text: str, start: int, end: int,
                 options: FormattingOptions = None, debug: bool = False) -> FormatResult:
    """
    Format ``text[start:end]`` as a standalone expression and splice it back.

    Whitespace around the selection is kept. On success ``formatted`` holds
    the whole document; on failure it is None and the document is unchanged.
    """
    if not (0 <= start <= end <= len(text)):
        return FormatResult(
            error=f"Range {start}:{end} is outside the document (length {len(text)})"
        )

    selection = text[start:end]
    result = format_ecl(selection, options, debug=debug)
    if result.formatted is None:
        return result

    body = selection.strip()
    lead = selection[:len(selection) - len(selection.lstrip())]
    trail = selection[len(lead) + len(body):]
    return FormatResult(formatted=text[:start] + lead + result.formatted + trail + text[end:])
