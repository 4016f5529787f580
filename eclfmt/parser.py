"""
eclfmt - Recursive Descent Parser
Converts a token stream into a concrete syntax tree (CST).

Every rule is decided by the kind of the next token, except
``sub_attribute_set``: a '(' there may open a parenthesized attribute set
or a parenthesized attribute name, so that branch is tried first and
rolled back if it does not match.

The parser is error tolerant. A failed list item (refinement item,
attribute, filter, compound operand) is recorded and the parser skips
ahead to the next conjunction or closing delimiter, so one typo yields
an error list rather than an aborted parse. Any recorded error means the
CST must not be trusted.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
from .lexer import (
    Token, TokenType, COMPARATORS, CONSTRAINT_OPERATORS, WORD_TOKENS,
)


class ParseError(Exception):
    def __init__(self, message: str, token: Token):
        super().__init__(
            f"[ParseError] Line {token.line}, column {token.column}: {message}"
        )
        self.token = token
        self.offset = token.offset
        self.line = token.line
        self.column = token.column


@dataclass
class CstNode:
    """A grammar rule match: child tokens and nodes grouped by label."""
    rule: str
    children: Dict[str, List[Union[Token, "CstNode"]]] = field(default_factory=dict)

    def add(self, label: str, item):
        self.children.setdefault(label, []).append(item)
        return item

    def get(self, label: str) -> list:
        return self.children.get(label, [])

    def first(self, label: str):
        items = self.children.get(label)
        return items[0] if items else None

    def has(self, label: str) -> bool:
        return label in self.children


@dataclass
class ParseResult:
    cst: Optional[CstNode] = None
    errors: List[ParseError] = field(default_factory=list)


_BOOLEAN_OPERATORS = (TokenType.AND, TokenType.OR, TokenType.MINUS)
_CONJUNCTIONS      = (TokenType.AND, TokenType.OR, TokenType.COMMA)

# Short numerals are accepted as concept IDs; the formatter does not
# validate identifiers.
_CONCEPT_IDS = (TokenType.SCTID, TokenType.INTEGER)
_NUMERIC_VALUES = (
    TokenType.DECIMAL, TokenType.SIGNED_INTEGER,
    TokenType.INTEGER, TokenType.SCTID,
)
_ALTERNATE_CODES = (
    TokenType.STRING, TokenType.ALTERNATE_ID_CODE, TokenType.SCTID,
    TokenType.INTEGER, TokenType.DIALECT_ALIAS,
) + tuple(WORD_TOKENS)
_CARDINALITY_BOUNDS = (TokenType.INTEGER, TokenType.SCTID, TokenType.WILDCARD)
_REVERSE_BRIEF = ('R', 'r')

# Recovery points: where to resume after a failed list item
_SYNC_OPERAND   = frozenset(_BOOLEAN_OPERATORS + (TokenType.RPAREN,))
_SYNC_ITEM      = frozenset(_CONJUNCTIONS + (TokenType.RPAREN, TokenType.RBRACE))
_SYNC_FILTER    = frozenset(_CONJUNCTIONS + (TokenType.DOUBLE_RBRACE,))


class Parser:
    def __init__(self, tokens: List[Token]):
        self._tokens = tokens
        self._pos = 0
        self._speculating = 0
        self.errors: List[ParseError] = []

    # ------------------------------------------------------------------ helpers

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _peek_at(self, k: int) -> Token:
        idx = min(self._pos + k, len(self._tokens) - 1)
        return self._tokens[idx]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != TokenType.EOF:
            self._pos += 1
        return tok

    def _match(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _expect(self, *types: TokenType, what: str = None) -> Token:
        tok = self._peek()
        if tok.type not in types:
            wanted = what or " or ".join(t.name for t in types)
            raise ParseError(f"Expected {wanted} but got {_describe(tok)}", tok)
        return self._advance()

    def _recovering(self, node: CstNode, label: str, rule, sync: frozenset) -> None:
        """Run ``rule`` into ``node``; on failure record the error and resync."""
        try:
            node.add(label, rule())
        except ParseError as e:
            if self._speculating:
                raise
            self.errors.append(e)
            while not self._match(TokenType.EOF, *sync):
                self._advance()

    def _speculate(self, rule) -> Optional[CstNode]:
        """Try ``rule``; on failure rewind and return None."""
        start = self._pos
        self._speculating += 1
        try:
            return rule()
        except ParseError:
            self._pos = start
            return None
        finally:
            self._speculating -= 1

    # ------------------------------------------------------------------ public

    def parse(self) -> ParseResult:
        cst = None
        try:
            cst = self._parse_expression_constraint()
            if not self._match(TokenType.EOF):
                tok = self._peek()
                raise ParseError(f"Unexpected {_describe(tok)} after expression", tok)
        except ParseError as e:
            self.errors.append(e)
        return ParseResult(cst=cst, errors=self.errors)

    # ------------------------------------------------------------------ expressions

    def _parse_expression_constraint(self) -> CstNode:
        node = CstNode("expression_constraint")
        self._recovering(node, "operand", self._parse_simple_or_refined, _SYNC_OPERAND)
        while self._match(*_BOOLEAN_OPERATORS):
            node.add("operator", self._advance())
            self._recovering(node, "operand", self._parse_simple_or_refined, _SYNC_OPERAND)
        return node

    def _parse_simple_or_refined(self) -> CstNode:
        node = CstNode("simple_or_refined")
        node.add("sub_expression", self._parse_sub_expression())
        if self._match(TokenType.COLON):
            node.add("colon", self._advance())
            node.add("refinement", self._parse_refinement())
        return node

    def _parse_sub_expression(self, rule: str = "sub_expression", dotted: bool = True) -> CstNode:
        node = CstNode(rule)

        if self._match(*CONSTRAINT_OPERATORS):
            op_tok = node.add("constraint_operator", self._advance())
            # << ^ 700043003: descendants of the members of a reference set
            if (CONSTRAINT_OPERATORS[op_tok.type] != '^'
                    and self._match(TokenType.MEMBER_OF, TokenType.MEMBER_OF_KW)):
                node.add("member_of", self._advance())

        node.add("focus", self._parse_focus_concept())

        while self._match(TokenType.DOUBLE_LBRACE):
            node.add("filter", self._parse_filter_constraint())

        if dotted:
            while self._match(TokenType.DOT):
                node.add("dot", self._advance())
                node.add("attribute_name", self._parse_sub_expression("attribute_name", dotted=False))

        return node

    def _parse_focus_concept(self) -> CstNode:
        node = CstNode("focus_concept")
        tok = self._peek()

        if tok.type in _CONCEPT_IDS:
            node.add("concept_reference", self._parse_concept_reference())
        elif tok.type == TokenType.WILDCARD:
            node.add("wildcard", self._advance())
        elif tok.type == TokenType.LPAREN:
            node.add("lparen", self._advance())
            node.add("expression", self._parse_expression_constraint())
            node.add("rparen", self._expect(TokenType.RPAREN, what="')'"))
        elif tok.type == TokenType.IDENTIFIER:
            node.add("alternate_identifier", self._parse_alternate_identifier())
        else:
            raise ParseError(
                f"Expected a concept, '*', '(' or alternate identifier but got {_describe(tok)}",
                tok
            )
        return node

    def _parse_concept_reference(self) -> CstNode:
        node = CstNode("concept_reference")
        node.add("sctid", self._expect(*_CONCEPT_IDS, what="a concept ID"))
        if self._match(TokenType.TERM_STRING):
            node.add("term", self._advance())
        return node

    def _parse_alternate_identifier(self) -> CstNode:
        node = CstNode("alternate_identifier")
        node.add("scheme", self._expect(TokenType.IDENTIFIER, what="a scheme name"))
        node.add("hash", self._expect(TokenType.HASH, what="'#'"))
        node.add("code", self._expect(*_ALTERNATE_CODES, what="an alternate identifier code"))
        return node

    # ------------------------------------------------------------------ refinements

    def _parse_refinement(self) -> CstNode:
        node = CstNode("refinement")
        self._recovering(node, "item", self._parse_refinement_item, _SYNC_ITEM)
        while self._match(*_CONJUNCTIONS):
            node.add("conjunction", self._advance())
            self._recovering(node, "item", self._parse_refinement_item, _SYNC_ITEM)
        return node

    def _parse_refinement_item(self) -> CstNode:
        node = CstNode("refinement_item")
        if self._match(TokenType.LBRACKET):
            node.add("cardinality", self._parse_cardinality())
        if self._match(TokenType.LBRACE):
            node.add("attribute_group", self._parse_attribute_group())
        else:
            node.add("sub_attribute_set", self._parse_sub_attribute_set())
        return node

    def _parse_attribute_group(self) -> CstNode:
        node = CstNode("attribute_group")
        node.add("lbrace", self._expect(TokenType.LBRACE, what="'{'"))
        node.add("attribute_set", self._parse_attribute_set())
        node.add("rbrace", self._expect(TokenType.RBRACE, what="'}'"))
        return node

    def _parse_attribute_set(self) -> CstNode:
        node = CstNode("attribute_set")
        self._recovering(node, "item", self._parse_attribute_set_item, _SYNC_ITEM)
        while self._match(*_CONJUNCTIONS):
            node.add("conjunction", self._advance())
            self._recovering(node, "item", self._parse_attribute_set_item, _SYNC_ITEM)
        return node

    def _parse_attribute_set_item(self) -> CstNode:
        node = CstNode("attribute_set_item")
        if self._match(TokenType.LBRACKET):
            node.add("cardinality", self._parse_cardinality())
        node.add("sub_attribute_set", self._parse_sub_attribute_set())
        return node

    def _parse_sub_attribute_set(self) -> CstNode:
        node = CstNode("sub_attribute_set")
        if self._match(TokenType.LPAREN):
            # ( 363698007 = * ) versus ( << 363698007 ) = *
            inner = self._speculate(self._parse_parenthesized_attribute_set)
            if inner is not None:
                node.add("parenthesized_attribute_set", inner)
                return node
        node.add("attribute", self._parse_attribute())
        return node

    def _parse_parenthesized_attribute_set(self) -> CstNode:
        node = CstNode("parenthesized_attribute_set")
        node.add("lparen", self._expect(TokenType.LPAREN, what="'('"))
        node.add("attribute_set", self._parse_attribute_set())
        node.add("rparen", self._expect(TokenType.RPAREN, what="')'"))
        return node

    def _parse_attribute(self) -> CstNode:
        node = CstNode("attribute")
        tok = self._peek()

        if tok.type == TokenType.REVERSE_OF:
            node.add("reverse", self._advance())
        elif (tok.type == TokenType.IDENTIFIER and tok.value in _REVERSE_BRIEF
              and self._peek_at(1).type != TokenType.HASH):
            node.add("reverse", self._advance())

        node.add("name", self._parse_sub_expression("attribute_name", dotted=False))
        node.add("comparator", self._expect(*COMPARATORS, what="a comparator"))

        if self._match(TokenType.HASH):
            node.add("hash", self._advance())
            node.add("numeric", self._expect(*_NUMERIC_VALUES, what="a numeric value"))
        else:
            node.add("value", self._parse_attribute_value())
        return node

    def _parse_attribute_value(self) -> CstNode:
        node = CstNode("attribute_value")
        tok = self._peek()

        if tok.type == TokenType.STRING:
            node.add("string", self._advance())
        elif tok.type in (TokenType.TRUE, TokenType.FALSE):
            node.add("boolean", self._advance())
        elif tok.type in (TokenType.MATCH, TokenType.WILD):
            node.add("search_term", self._parse_search_term())
        elif (tok.type == TokenType.LPAREN
              and self._peek_at(1).type in (TokenType.STRING, TokenType.MATCH, TokenType.WILD)):
            node.add("search_term_set", self._parse_search_term_set())
        else:
            node.add("sub_expression", self._parse_sub_expression())
        return node

    def _parse_search_term(self) -> CstNode:
        node = CstNode("search_term")
        if self._match(TokenType.MATCH, TokenType.WILD):
            node.add("search_type", self._advance())
            node.add("colon", self._expect(TokenType.COLON, what="':'"))
        node.add("string", self._expect(TokenType.STRING, what="a string"))
        return node

    def _parse_search_term_set(self) -> CstNode:
        node = CstNode("search_term_set")
        node.add("lparen", self._expect(TokenType.LPAREN, what="'('"))
        node.add("search_term", self._parse_search_term())
        while not self._match(TokenType.RPAREN, TokenType.EOF):
            node.add("search_term", self._parse_search_term())
        node.add("rparen", self._expect(TokenType.RPAREN, what="')'"))
        return node

    def _parse_cardinality(self) -> CstNode:
        node = CstNode("cardinality")
        node.add("lbracket", self._expect(TokenType.LBRACKET, what="'['"))
        node.add("min", self._expect(*_CARDINALITY_BOUNDS, what="a cardinality bound"))
        node.add("dotdot", self._expect(TokenType.DOT_DOT, what="'..'"))
        node.add("max", self._expect(*_CARDINALITY_BOUNDS, what="a cardinality bound"))
        node.add("rbracket", self._expect(TokenType.RBRACKET, what="']'"))
        return node

    # ------------------------------------------------------------------ filters

    def _parse_filter_constraint(self) -> CstNode:
        node = CstNode("filter_constraint")
        node.add("open", self._expect(TokenType.DOUBLE_LBRACE, what="'{{'"))
        self._recovering(node, "filter", self._parse_filter, _SYNC_FILTER)
        while self._match(*_CONJUNCTIONS):
            node.add("conjunction", self._advance())
            self._recovering(node, "filter", self._parse_filter, _SYNC_FILTER)
        node.add("close", self._expect(TokenType.DOUBLE_RBRACE, what="'}}'"))
        return node

    def _parse_filter(self) -> CstNode:
        tok = self._peek()
        rule = self._FILTER_RULES.get(tok.type)
        if rule is None:
            raise ParseError(f"Expected a filter keyword but got {_describe(tok)}", tok)
        node = CstNode("filter")
        node.add(rule.__name__[len("_parse_"):], rule(self))
        return node

    def _parse_term_filter(self) -> CstNode:
        node = CstNode("term_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        if self._match(TokenType.LPAREN):
            node.add("search_term_set", self._parse_search_term_set())
        else:
            node.add("search_term", self._parse_search_term())
        return node

    def _parse_language_filter(self) -> CstNode:
        node = CstNode("language_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        node.add("value", self._expect(
            TokenType.DIALECT_ALIAS, TokenType.IDENTIFIER, what="a language code"
        ))
        return node

    def _parse_type_filter(self) -> CstNode:
        node = CstNode("type_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        if self._match(*_CONCEPT_IDS):
            node.add("concept_reference", self._parse_concept_reference())
        else:
            node.add("value", self._expect(
                TokenType.PREFERRED, TokenType.ACCEPTABLE,
                what="PREFERRED, ACCEPTABLE or a concept"
            ))
        return node

    def _parse_dialect_filter(self) -> CstNode:
        node = CstNode("dialect_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        if self._match(*_CONCEPT_IDS):
            node.add("concept_reference", self._parse_concept_reference())
        else:
            node.add("value", self._expect(
                TokenType.DIALECT_ALIAS, TokenType.IDENTIFIER,
                what="a dialect alias or a concept"
            ))
        if self._match(TokenType.LPAREN):
            node.add("lparen", self._advance())
            node.add("acceptability", self._expect(
                TokenType.PREFERRED, TokenType.ACCEPTABLE, what="PREFERRED or ACCEPTABLE"
            ))
            node.add("rparen", self._expect(TokenType.RPAREN, what="')'"))
        return node

    def _parse_module_filter(self) -> CstNode:
        node = CstNode("module_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        node.add("concept_reference", self._parse_concept_reference())
        return node

    def _parse_effective_time_filter(self) -> CstNode:
        node = CstNode("effective_time_filter")
        node.add("keyword", self._advance())
        node.add("comparator", self._expect(*COMPARATORS, what="a comparator"))
        node.add("string", self._expect(TokenType.STRING, what="a quoted date"))
        return node

    def _parse_active_filter(self) -> CstNode:
        node = CstNode("active_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        node.add("value", self._expect(TokenType.TRUE, TokenType.FALSE, what="true or false"))
        return node

    def _parse_definition_status_filter(self) -> CstNode:
        node = CstNode("definition_status_filter")
        node.add("keyword", self._advance())
        node.add("equals", self._expect(TokenType.EQUALS, what="'='"))
        if self._match(*_CONCEPT_IDS):
            node.add("concept_reference", self._parse_concept_reference())
        else:
            node.add("value", self._expect(
                TokenType.PRIMITIVE, TokenType.DEFINED, what="PRIMITIVE, DEFINED or a concept"
            ))
        return node

    _FILTER_RULES = {
        TokenType.TERM:                 _parse_term_filter,
        TokenType.LANGUAGE:             _parse_language_filter,
        TokenType.TYPE:                 _parse_type_filter,
        TokenType.DIALECT:              _parse_dialect_filter,
        TokenType.MODULE_ID:            _parse_module_filter,
        TokenType.EFFECTIVE_TIME:       _parse_effective_time_filter,
        TokenType.ACTIVE:               _parse_active_filter,
        TokenType.DEFINITION_STATUS_ID: _parse_definition_status_filter,
    }


def _describe(tok: Token) -> str:
    if tok.type == TokenType.EOF:
        return "end of input"
    return f"{tok.type.name} ({tok.value!r})"


def parse(tokens: List[Token]) -> ParseResult:
    """Parse a token list (as produced by ``tokenize``) into a CST."""
    return Parser(tokens).parse()
