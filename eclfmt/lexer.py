"""
eclfmt - Lexer
Tokenizes ECL source text into a flat token stream.

Patterns are tried in a fixed order and the first one that matches wins, so
the order of _TOKEN_SPEC is significant: longer operators precede their
prefixes, keywords precede the identifier catch-all, and concept IDs precede
plain integers.
"""

import re
from dataclasses import dataclass, field
from typing import List
from enum import Enum, auto


class TokenType(Enum):
    # Filter delimiters
    DOUBLE_LBRACE          = auto()   # {{
    DOUBLE_RBRACE          = auto()   # }}
    # Constraint operators - brief
    CHILD_OR_SELF_OF       = auto()   # <<!
    DESCENDANT_OR_SELF_OF  = auto()   # <<
    CHILD_OF               = auto()   # <!
    PARENT_OR_SELF_OF      = auto()   # >>!
    ANCESTOR_OR_SELF_OF    = auto()   # >>
    PARENT_OF              = auto()   # >!
    # Comparators
    NOT_EQUALS             = auto()   # !=
    LTE                    = auto()   # <=
    GTE                    = auto()   # >=
    EQUALS                 = auto()   # =
    DESCENDANT_OF          = auto()   # <  (also the less-than comparator)
    ANCESTOR_OF            = auto()   # >  (also the greater-than comparator)
    MEMBER_OF              = auto()   # ^
    WILDCARD               = auto()   # *
    # Logical (case-insensitive)
    AND                    = auto()
    OR                     = auto()
    MINUS                  = auto()
    REVERSE_OF             = auto()   # reverseOf
    # Constraint operators - long form
    DESCENDANT_OR_SELF_OF_KW = auto()
    DESCENDANT_OF_KW       = auto()
    CHILD_OR_SELF_OF_KW    = auto()
    CHILD_OF_KW            = auto()
    ANCESTOR_OR_SELF_OF_KW = auto()
    ANCESTOR_OF_KW         = auto()
    PARENT_OR_SELF_OF_KW   = auto()
    PARENT_OF_KW           = auto()
    MEMBER_OF_KW           = auto()
    # Filter keywords
    DEFINITION_STATUS_ID   = auto()
    EFFECTIVE_TIME         = auto()
    MODULE_ID              = auto()
    TYPE                   = auto()   # type | typeId
    LANGUAGE               = auto()
    DIALECT                = auto()   # dialect | dialectId
    TERM                   = auto()
    ACTIVE                 = auto()
    MATCH                  = auto()
    WILD                   = auto()
    PREFERRED              = auto()
    ACCEPTABLE             = auto()
    PRIMITIVE              = auto()
    DEFINED                = auto()
    TRUE                   = auto()
    FALSE                  = auto()
    # Delimiters
    LPAREN                 = auto()   # (
    RPAREN                 = auto()   # )
    LBRACE                 = auto()   # {
    RBRACE                 = auto()   # }
    LBRACKET               = auto()   # [
    RBRACKET               = auto()   # ]
    COLON                  = auto()   # :
    COMMA                  = auto()   # ,
    HASH                   = auto()   # #
    DOT_DOT                = auto()   # ..
    DOT                    = auto()   # .
    TERM_STRING            = auto()   # |Clinical finding|
    PIPE                   = auto()   # |
    # Literals
    DECIMAL                = auto()   # 3.14, -0.5
    SIGNED_INTEGER         = auto()   # +5, -12
    ALTERNATE_ID_CODE      = auto()   # 54486-6
    SCTID                  = auto()   # 6-18 digits
    INTEGER                = auto()
    STRING                 = auto()   # "heart"
    DIALECT_ALIAS          = auto()   # en-US
    IDENTIFIER             = auto()
    # Sentinel
    EOF                    = auto()


BRIEF_CONSTRAINT_OPERATORS = {
    TokenType.CHILD_OR_SELF_OF:      '<<!',
    TokenType.DESCENDANT_OR_SELF_OF: '<<',
    TokenType.CHILD_OF:              '<!',
    TokenType.DESCENDANT_OF:         '<',
    TokenType.PARENT_OR_SELF_OF:     '>>!',
    TokenType.ANCESTOR_OR_SELF_OF:   '>>',
    TokenType.PARENT_OF:             '>!',
    TokenType.ANCESTOR_OF:           '>',
    TokenType.MEMBER_OF:             '^',
}

LONG_CONSTRAINT_OPERATORS = {
    TokenType.DESCENDANT_OR_SELF_OF_KW: '<<',
    TokenType.DESCENDANT_OF_KW:         '<',
    TokenType.CHILD_OR_SELF_OF_KW:      '<<!',
    TokenType.CHILD_OF_KW:              '<!',
    TokenType.ANCESTOR_OR_SELF_OF_KW:   '>>',
    TokenType.ANCESTOR_OF_KW:           '>',
    TokenType.PARENT_OR_SELF_OF_KW:     '>>!',
    TokenType.PARENT_OF_KW:             '>!',
    TokenType.MEMBER_OF_KW:             '^',
}

# Both spellings of every constraint operator, keyed to the brief form.
CONSTRAINT_OPERATORS = {**BRIEF_CONSTRAINT_OPERATORS, **LONG_CONSTRAINT_OPERATORS}

COMPARATORS = {
    TokenType.EQUALS:        '=',
    TokenType.NOT_EQUALS:    '!=',
    TokenType.LTE:           '<=',
    TokenType.GTE:           '>=',
    TokenType.DESCENDANT_OF: '<',
    TokenType.ANCESTOR_OF:   '>',
}

# Bare words that may appear where an identifier-like code is expected.
WORD_TOKENS = frozenset({
    TokenType.IDENTIFIER, TokenType.AND, TokenType.OR, TokenType.MINUS,
    TokenType.REVERSE_OF, TokenType.DEFINITION_STATUS_ID,
    TokenType.EFFECTIVE_TIME, TokenType.MODULE_ID, TokenType.TYPE,
    TokenType.LANGUAGE, TokenType.DIALECT, TokenType.TERM, TokenType.ACTIVE,
    TokenType.MATCH, TokenType.WILD, TokenType.PREFERRED,
    TokenType.ACCEPTABLE, TokenType.PRIMITIVE, TokenType.DEFINED,
    TokenType.TRUE, TokenType.FALSE,
} | set(LONG_CONSTRAINT_OPERATORS))


@dataclass
class Token:
    type: TokenType
    value: str
    offset: int
    line: int = 1
    column: int = 1

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, offset={self.offset})"


class LexerError(Exception):
    def __init__(self, message: str, offset: int, line: int, column: int):
        super().__init__(f"[LexerError] Line {line}, column {column}: {message}")
        self.offset = offset
        self.line = line
        self.column = column


@dataclass
class LexResult:
    tokens: List[Token] = field(default_factory=list)
    errors: List[LexerError] = field(default_factory=list)


_WORD_END = r'(?![A-Za-z0-9_])'


def _kw(pattern: str) -> str:
    return pattern + _WORD_END


def _kw_nocase(pattern: str) -> str:
    return f'(?i:{pattern})' + _WORD_END


# Token specification: ordered list of (TokenType, regex) pairs
_TOKEN_SPEC = [
    (TokenType.DOUBLE_LBRACE,            r'\{\{'),
    (TokenType.DOUBLE_RBRACE,            r'\}\}'),

    (TokenType.CHILD_OR_SELF_OF,         r'<<!'),
    (TokenType.DESCENDANT_OR_SELF_OF,    r'<<'),
    (TokenType.CHILD_OF,                 r'<!'),
    (TokenType.PARENT_OR_SELF_OF,        r'>>!'),
    (TokenType.ANCESTOR_OR_SELF_OF,      r'>>'),
    (TokenType.PARENT_OF,                r'>!'),

    (TokenType.NOT_EQUALS,               r'!='),
    (TokenType.LTE,                      r'<='),
    (TokenType.GTE,                      r'>='),
    (TokenType.EQUALS,                   r'='),

    (TokenType.DESCENDANT_OF,            r'<'),
    (TokenType.ANCESTOR_OF,              r'>'),
    (TokenType.MEMBER_OF,                r'\^'),
    (TokenType.WILDCARD,                 r'\*'),

    (TokenType.AND,                      _kw_nocase(r'AND')),
    (TokenType.OR,                       _kw_nocase(r'OR')),
    (TokenType.MINUS,                    _kw_nocase(r'MINUS')),
    (TokenType.REVERSE_OF,               _kw_nocase(r'reverseOf')),

    (TokenType.DESCENDANT_OR_SELF_OF_KW, _kw(r'descendantOrSelfOf')),
    (TokenType.DESCENDANT_OF_KW,         _kw(r'descendantOf')),
    (TokenType.CHILD_OR_SELF_OF_KW,      _kw(r'childOrSelfOf')),
    (TokenType.CHILD_OF_KW,              _kw(r'childOf')),
    (TokenType.ANCESTOR_OR_SELF_OF_KW,   _kw(r'ancestorOrSelfOf')),
    (TokenType.ANCESTOR_OF_KW,           _kw(r'ancestorOf')),
    (TokenType.PARENT_OR_SELF_OF_KW,     _kw(r'parentOrSelfOf')),
    (TokenType.PARENT_OF_KW,             _kw(r'parentOf')),
    (TokenType.MEMBER_OF_KW,             _kw(r'memberOf')),

    (TokenType.DEFINITION_STATUS_ID,     _kw(r'definitionStatusId')),
    (TokenType.EFFECTIVE_TIME,           _kw(r'effectiveTime')),
    (TokenType.MODULE_ID,                _kw(r'moduleId')),
    (TokenType.TYPE,                     _kw(r'(?:typeId|type)')),
    (TokenType.LANGUAGE,                 _kw(r'language')),
    (TokenType.DIALECT,                  _kw(r'(?:dialectId|dialect)')),
    (TokenType.TERM,                     _kw(r'term')),
    (TokenType.ACTIVE,                   _kw(r'active')),
    (TokenType.MATCH,                    _kw(r'match')),
    (TokenType.WILD,                     _kw(r'wild')),
    (TokenType.PREFERRED,                _kw(r'PREFERRED')),
    (TokenType.ACCEPTABLE,               _kw(r'ACCEPTABLE')),
    (TokenType.PRIMITIVE,                _kw(r'PRIMITIVE')),
    (TokenType.DEFINED,                  _kw(r'DEFINED')),
    (TokenType.TRUE,                     _kw(r'true')),
    (TokenType.FALSE,                    _kw(r'false')),

    (TokenType.LPAREN,                   r'\('),
    (TokenType.RPAREN,                   r'\)'),
    (TokenType.LBRACE,                   r'\{'),
    (TokenType.RBRACE,                   r'\}'),
    (TokenType.LBRACKET,                 r'\['),
    (TokenType.RBRACKET,                 r'\]'),
    (TokenType.COLON,                    r':'),
    (TokenType.COMMA,                    r','),
    (TokenType.HASH,                     r'#'),
    (TokenType.DOT_DOT,                  r'\.\.'),
    (TokenType.DOT,                      r'\.'),

    (TokenType.TERM_STRING,              r'\|[^|]*\|'),
    (TokenType.PIPE,                     r'\|'),

    # A fraction of six or more digits is a dotted concept ID, not a decimal:
    # 929360061000036106.127489000 is SCTID DOT SCTID.
    (TokenType.DECIMAL,                  r'[+-]?\d+\.(?!\d{6})\d+'),
    (TokenType.SIGNED_INTEGER,           r'[+-]\d+'),
    (TokenType.ALTERNATE_ID_CODE,        r'\d+(?:-[0-9A-Za-z]+)+'),
    (TokenType.SCTID,                    r'\d{6,18}'),
    (TokenType.INTEGER,                  r'\d+'),

    (TokenType.STRING,                   r'"(?:[^"\\]|\\.)*"'),
    (TokenType.DIALECT_ALIAS,            r'[a-z]{2}-[A-Z]{2}' + _WORD_END),
    (TokenType.IDENTIFIER,               r'[A-Za-z][A-Za-z0-9_]*'),
]

_MASTER_RE = re.compile(
    r'(?:' + '|'.join(f'(?P<T{i}>{spec[1]})' for i, spec in enumerate(_TOKEN_SPEC)) + r')',
    re.ASCII | re.DOTALL
)

_WHITESPACE_RE = re.compile(r'\s+')
_COMMENT_RE    = re.compile(r'/\*.*?\*/', re.DOTALL)


def tokenize(source: str) -> LexResult:
    """
    Convert ECL source text into a LexResult.

    Never raises: characters no pattern accepts are reported in
    ``errors`` and skipped, so ``tokens`` is always a best-effort stream
    terminated by an EOF token.
    """
    result = LexResult()
    line = 1
    line_start = 0
    pos = 0
    length = len(source)

    def consume(raw: str):
        nonlocal line, line_start, pos
        newlines = raw.count('\n')
        if newlines:
            line += newlines
            line_start = pos + raw.rfind('\n') + 1
        pos += len(raw)

    while pos < length:
        # Whitespace and comments produce no tokens
        m = _WHITESPACE_RE.match(source, pos) or _COMMENT_RE.match(source, pos)
        if m:
            consume(m.group(0))
            continue

        m = _MASTER_RE.match(source, pos)
        if not m:
            result.errors.append(LexerError(
                f"Unexpected character: {source[pos]!r}",
                pos, line, pos - line_start + 1,
            ))
            consume(source[pos])
            continue

        raw = m.group(0)
        # m.lastgroup names the alternative that matched
        tok_type = _TOKEN_SPEC[int(m.lastgroup[1:])][0]
        result.tokens.append(Token(tok_type, raw, pos, line, pos - line_start + 1))
        consume(raw)

    result.tokens.append(Token(TokenType.EOF, '', length, line, pos - line_start + 1))
    return result
