"""
eclfmt - formatter for SNOMED CT Expression Constraint Language (ECL)
"""

from .formatter import (
    FormattingOptions, FormatResult, ParseOutcome,
    format_ecl, format_range, parse_ecl,
)

__version__ = "0.1.0"

__all__ = [
    "FormattingOptions", "FormatResult", "ParseOutcome",
    "format_ecl", "format_range", "parse_ecl",
]
