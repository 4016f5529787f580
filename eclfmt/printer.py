"""
eclfmt - Printer
Renders an AST back to ECL text.

Every render method receives the current indent (spaces at the start of a
broken line) and the current column (where its text starts on the line).
The column is threaded through every call so that a multi-line
parenthesized expression can put its closing ')' exactly under its '('.
Whether a node breaks is decided only by the complexity classifier, never
by line width.
"""

import re
from dataclasses import dataclass
from .ast_nodes import (
    ASTNode, SubExpression, NestedExpression, ConceptReference,
)
from .complexity import (
    is_complex, should_break_compound, should_break_refinement,
    should_break_attribute_group,
)


@dataclass
class FormattingOptions:
    indent_size: int = 2    # spaces per nesting level


class PrintError(Exception):
    def __init__(self, message: str, node_type: str = ""):
        where = f" {node_type}" if node_type else ""
        super().__init__(f"[PrintError]{where}: {message}")
        self.node_type = node_type


# An alternate identifier code may be printed unquoted only if it lexes back
# as one code token: a word, a hyphenated code, or at most 18 digits.
_BARE_CODE_RE = re.compile(r'[A-Za-z][A-Za-z0-9_]*|\d+(?:-[0-9A-Za-z]+)+|\d{1,18}', re.ASCII)


def _column_after(column: int, text: str) -> int:
    """Column reached once ``text`` has been written starting at ``column``."""
    last_newline = text.rfind('\n')
    if last_newline < 0:
        return column + len(text)
    return len(text) - last_newline - 1


def _is_bare_parens(node: ASTNode) -> bool:
    """True for a sub-expression that is nothing but ( ... )."""
    return (isinstance(node, SubExpression)
            and node.constraint_operator is None
            and not node.member_of
            and not node.filters
            and isinstance(node.focus_concept, NestedExpression))


def _separator(conjunction: str, broken: bool) -> str:
    if conjunction == ",":
        return "," if broken else ", "
    return f" {conjunction}" if broken else f" {conjunction} "


class Printer:
    def __init__(self, options: FormattingOptions = None):
        self.options = options or FormattingOptions()

    def print(self, node: ASTNode, indent: int = 0, column: int = None) -> str:
        return self._print(node, indent, indent if column is None else column)

    # ------------------------------------------------------------------ dispatch

    def _print(self, node: ASTNode, indent: int, column: int) -> str:
        method = getattr(self, f"_print_{type(node).__name__}", None)
        if method is None:
            raise PrintError("Unknown node type", type(node).__name__)
        return method(node, indent, column)

    def _join_inline(self, items, conjunctions, indent: int, column: int) -> str:
        out = ""
        for i, item in enumerate(items):
            if i:
                out += _separator(conjunctions[i - 1], broken=False)
            out += self._print(item, indent, _column_after(column, out))
        return out

    def _join_broken(self, items, conjunctions, indent: int) -> str:
        """One item per line at ``indent``; conjunctions end the previous line."""
        pad = " " * indent
        out = ""
        for i, item in enumerate(items):
            if i:
                out += _separator(conjunctions[i - 1], broken=True) + "\n"
            out += pad + self._print(item, indent, indent)
        return out

    def _cardinality_prefix(self, node) -> str:
        if node.cardinality is None:
            return ""
        return self._print_Cardinality(node.cardinality, 0, 0) + " "

    # ------------------------------------------------------------------ expressions

    def _print_CompoundExpression(self, node, indent: int, column: int) -> str:
        op = node.operator
        left = self._print(node.left, indent, column)

        if not should_break_compound(node):
            right_column = _column_after(column, f"{left} {op} ")
            return f"{left} {op} {self._print(node.right, indent, right_column)}"

        pad = " " * indent
        if _is_bare_parens(node.right):
            # OP( on one line, contents one level in, ')' under the '('
            paren_column = indent + len(op)
            content = paren_column + self.options.indent_size
            inner = self._print(node.right.focus_concept.expression, content, content)
            return f"{left}\n{pad}{op}(\n{' ' * content}{inner}\n{' ' * paren_column})"

        right = self._print(node.right, indent, indent + len(op) + 1)
        return f"{left}\n{pad}{op} {right}"

    def _print_RefinedExpression(self, node, indent: int, column: int) -> str:
        expr = self._print(node.expression, indent, column)

        if should_break_refinement(node.refinement):
            deeper = indent + self.options.indent_size
            return f"{expr}:\n{self._print(node.refinement, deeper, deeper)}"

        refinement_column = _column_after(column, expr + ": ")
        return f"{expr}: {self._print(node.refinement, indent, refinement_column)}"

    def _print_SubExpression(self, node, indent: int, column: int) -> str:
        out = ""
        if node.constraint_operator:
            out += node.constraint_operator + " "
        if node.member_of:
            out += "^ "

        out += self._print(node.focus_concept, indent, _column_after(column, out))
        for f in node.filters:
            out += " "
            out += self._print(f, indent, _column_after(column, out))
        return out

    def _print_ConceptReference(self, node, indent: int, column: int) -> str:
        if node.term is not None:
            return f"{node.sctid} |{node.term}|"
        return node.sctid

    def _print_WildcardConcept(self, node, indent: int, column: int) -> str:
        return "*"

    def _print_AlternateIdentifier(self, node, indent: int, column: int) -> str:
        if _BARE_CODE_RE.fullmatch(node.code):
            return f"{node.scheme}#{node.code}"
        return f'{node.scheme}#"{node.code}"'

    def _print_NestedExpression(self, node, indent: int, column: int) -> str:
        if not is_complex(node.expression):
            return f"({self._print(node.expression, indent, column + 1)})"

        # A '(' directly inside a '(' only needs one space of offset
        if _is_bare_parens(node.expression):
            content = column + 1
        else:
            content = column + self.options.indent_size
        inner = self._print(node.expression, content, content)
        return f"(\n{' ' * content}{inner}\n{' ' * column})"

    def _print_DottedAttributePath(self, node, indent: int, column: int) -> str:
        out = self._print(node.base, indent, column)
        for attr in node.attributes:
            out += " . "
            out += self._print(attr, indent, _column_after(column, out))
        return out

    # ------------------------------------------------------------------ refinements

    def _print_Refinement(self, node, indent: int, column: int) -> str:
        if should_break_refinement(node):
            return self._join_broken(node.items, node.conjunctions, indent)
        return self._join_inline(node.items, node.conjunctions, indent, column)

    def _print_AttributeGroup(self, node, indent: int, column: int) -> str:
        card = self._cardinality_prefix(node)

        if should_break_attribute_group(node):
            inner_indent = indent + self.options.indent_size
            inner = self._join_broken(node.items, node.conjunctions, inner_indent)
            return f"{card}{{\n{inner}\n{' ' * indent}}}"

        inner = self._join_inline(node.items, node.conjunctions, indent, column + len(card) + 2)
        return f"{card}{{ {inner} }}"

    def _print_NestedAttributeSet(self, node, indent: int, column: int) -> str:
        card = self._cardinality_prefix(node)
        paren_column = column + len(card)

        if not is_complex(node):
            inner = self._join_inline(node.items, node.conjunctions, indent, paren_column + 1)
            return f"{card}({inner})"

        content = paren_column + self.options.indent_size
        inner = self._join_broken(node.items, node.conjunctions, content)
        return f"{card}(\n{inner}\n{' ' * paren_column})"

    def _print_Attribute(self, node, indent: int, column: int) -> str:
        out = self._cardinality_prefix(node)
        if node.reverse:
            out += "R "

        out += self._print(node.name, indent, _column_after(column, out))
        out += f" {node.comparator} "
        out += self._print(node.value, indent, _column_after(column, out))
        return out

    def _print_Cardinality(self, node, indent: int, column: int) -> str:
        return f"[{node.min}..{node.max}]"

    # ------------------------------------------------------------------ values

    def _print_StringValue(self, node, indent: int, column: int) -> str:
        return f'"{node.value}"'

    def _print_NumberValue(self, node, indent: int, column: int) -> str:
        return f"#{node.value}"

    def _print_BooleanValue(self, node, indent: int, column: int) -> str:
        return "true" if node.value else "false"

    def _print_TypedSearchTerm(self, node, indent: int, column: int) -> str:
        if node.search_type:
            return f'{node.search_type}:"{node.value}"'
        return f'"{node.value}"'

    def _print_TypedSearchTermSet(self, node, indent: int, column: int) -> str:
        return "(" + " ".join(self._print(t, indent, column) for t in node.terms) + ")"

    # ------------------------------------------------------------------ filters

    def _print_Filter(self, node, indent: int, column: int) -> str:
        inner = self._join_inline(node.constraints, node.conjunctions, indent, column + 3)
        return f"{{{{ {inner} }}}}"

    def _keyword_or_concept(self, value) -> str:
        if isinstance(value, ConceptReference):
            return self._print_ConceptReference(value, 0, 0)
        return value

    def _print_TermFilter(self, node, indent: int, column: int) -> str:
        return f"term = {self._print(node.value, indent, column + 7)}"

    def _print_LanguageFilter(self, node, indent: int, column: int) -> str:
        return f"language = {node.value}"

    def _print_TypeFilter(self, node, indent: int, column: int) -> str:
        return f"type = {self._keyword_or_concept(node.value)}"

    def _print_DialectFilter(self, node, indent: int, column: int) -> str:
        out = f"dialect = {self._keyword_or_concept(node.value)}"
        if node.acceptability:
            out += f" ({node.acceptability})"
        return out

    def _print_ModuleFilter(self, node, indent: int, column: int) -> str:
        return f"moduleId = {self._keyword_or_concept(node.value)}"

    def _print_EffectiveTimeFilter(self, node, indent: int, column: int) -> str:
        return f'effectiveTime {node.comparator} "{node.value}"'

    def _print_ActiveFilter(self, node, indent: int, column: int) -> str:
        return "active = true" if node.value else "active = false"

    def _print_DefinitionStatusFilter(self, node, indent: int, column: int) -> str:
        return f"definitionStatusId = {self._keyword_or_concept(node.value)}"


def print_ast(node: ASTNode, options: FormattingOptions = None, indent: int = 0, column: int = None) -> str:
    """
    Render ``node`` as ECL text.

    ``indent`` is the number of spaces that start any line this node breaks
    onto; ``column`` is where the node's first character lands (defaults to
    ``indent``). Raises PrintError for a node type it cannot render.
    """
    return Printer(options).print(node, indent, column)
