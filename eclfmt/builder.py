"""
eclfmt - AST Builder
Walks the CST produced by the parser and builds the compact AST:
  - brief and long-form constraint operators map to one brief tag
  - logical keywords are upper-cased whatever their spelling
  - item/conjunction runs become parallel lists
  - cardinality and reverse flags are attached to what they prefix
  - every attribute value is resolved to exactly one value node

The builder assumes a CST from an error-free parse. A CST shape it does not
recognise means the grammar and this visitor are out of step, and is
reported as an AstBuildError.
"""

from decimal import Decimal
from typing import List, Tuple
from .lexer import Token, TokenType, COMPARATORS, CONSTRAINT_OPERATORS
from .parser import CstNode
from .ast_nodes import (
    ASTNode, CompoundExpression, RefinedExpression, SubExpression,
    ConceptReference, WildcardConcept, AlternateIdentifier, NestedExpression,
    DottedAttributePath, Refinement, AttributeGroup, NestedAttributeSet,
    Attribute, Cardinality, StringValue, NumberValue, BooleanValue,
    TypedSearchTerm, TypedSearchTermSet, Filter, TermFilter, LanguageFilter,
    TypeFilter, DialectFilter, ModuleFilter, EffectiveTimeFilter,
    ActiveFilter, DefinitionStatusFilter, UNBOUNDED,
)

_CONJUNCTION_TAGS = {
    TokenType.AND:   "AND",
    TokenType.OR:    "OR",
    TokenType.MINUS: "MINUS",
    TokenType.COMMA: ",",
}

_VALUE_SLOTS = ("string", "boolean", "search_term", "search_term_set", "sub_expression", "numeric")


class AstBuildError(Exception):
    def __init__(self, message: str, rule: str = ""):
        where = f" in {rule!r}" if rule else ""
        super().__init__(f"[AstBuildError]{where}: {message}")
        self.rule = rule


class AstBuilder:
    def build(self, cst: CstNode) -> ASTNode:
        return self._visit(cst)

    # ------------------------------------------------------------------ visitor

    def _visit(self, node: CstNode):
        if not isinstance(node, CstNode):
            raise AstBuildError(f"Expected a CST node but got {node!r}")
        visitor = getattr(self, f"_visit_{node.rule}", None)
        if visitor is None:
            raise AstBuildError("No visitor for this rule", node.rule)
        return visitor(node)

    def _only(self, node: CstNode, *labels: str) -> str:
        """Return the single populated label among ``labels``."""
        present = [label for label in labels if node.has(label)]
        if len(present) != 1:
            raise AstBuildError(
                f"Expected exactly one of {', '.join(labels)} but found {present or 'none'}",
                node.rule
            )
        return present[0]

    def _conjunction(self, tok: Token, node: CstNode) -> str:
        tag = _CONJUNCTION_TAGS.get(tok.type)
        if tag is None:
            raise AstBuildError(f"Unknown conjunction {tok.value!r}", node.rule)
        return tag

    def _items(self, node: CstNode, label: str = "item") -> Tuple[List[ASTNode], List[str]]:
        items = [self._visit(child) for child in node.get(label)]
        conjunctions = [self._conjunction(tok, node) for tok in node.get("conjunction")]
        if not items or len(conjunctions) != len(items) - 1:
            raise AstBuildError(
                f"{len(items)} items with {len(conjunctions)} conjunctions", node.rule
            )
        return items, conjunctions

    # ------------------------------------------------------------------ expressions

    def _visit_expression_constraint(self, node: CstNode) -> ASTNode:
        operands = [self._visit(child) for child in node.get("operand")]
        operators = [self._conjunction(tok, node) for tok in node.get("operator")]
        if not operands or len(operators) != len(operands) - 1:
            raise AstBuildError(
                f"{len(operands)} operands with {len(operators)} operators", node.rule
            )

        result = operands[0]
        for op, right in zip(operators, operands[1:]):
            result = CompoundExpression(operator=op, left=result, right=right)
        return result

    def _visit_simple_or_refined(self, node: CstNode) -> ASTNode:
        expr = self._visit(node.first("sub_expression"))
        if node.has("refinement"):
            return RefinedExpression(expression=expr, refinement=self._visit(node.first("refinement")))
        return expr

    def _visit_sub_expression(self, node: CstNode) -> SubExpression:
        op_tok = node.first("constraint_operator")
        operator = None
        if op_tok is not None:
            operator = CONSTRAINT_OPERATORS.get(op_tok.type)
            if operator is None:
                raise AstBuildError(f"Unknown constraint operator {op_tok.value!r}", node.rule)

        expr = SubExpression(
            focus_concept=self._visit(node.first("focus")),
            constraint_operator=operator,
            member_of=node.has("member_of"),
            filters=[self._visit(f) for f in node.get("filter")],
        )

        chained = [self._visit(name) for name in node.get("attribute_name")]
        if chained:
            return SubExpression(focus_concept=DottedAttributePath(base=expr, attributes=chained))
        return expr

    _visit_attribute_name = _visit_sub_expression

    def _visit_focus_concept(self, node: CstNode) -> ASTNode:
        slot = self._only(node, "concept_reference", "wildcard", "expression", "alternate_identifier")
        if slot == "wildcard":
            return WildcardConcept()
        if slot == "expression":
            return NestedExpression(expression=self._visit(node.first("expression")))
        return self._visit(node.first(slot))

    def _visit_concept_reference(self, node: CstNode) -> ConceptReference:
        term_tok = node.first("term")
        term = term_tok.value[1:-1].strip() if term_tok is not None else None
        return ConceptReference(sctid=node.first("sctid").value, term=term)

    def _visit_alternate_identifier(self, node: CstNode) -> AlternateIdentifier:
        code_tok = node.first("code")
        code = code_tok.value
        if code_tok.type == TokenType.STRING:
            code = _unquote(code)
        return AlternateIdentifier(scheme=node.first("scheme").value, code=code)

    # ------------------------------------------------------------------ refinements

    def _visit_refinement(self, node: CstNode) -> Refinement:
        items, conjunctions = self._items(node)
        return Refinement(items=items, conjunctions=conjunctions)

    def _visit_refinement_item(self, node: CstNode) -> ASTNode:
        item = self._visit(node.first(self._only(node, "attribute_group", "sub_attribute_set")))
        if node.has("cardinality"):
            item.cardinality = self._visit(node.first("cardinality"))
        return item

    _visit_attribute_set_item = _visit_refinement_item

    def _visit_attribute_group(self, node: CstNode) -> AttributeGroup:
        items, conjunctions = self._items(node.first("attribute_set"))
        return AttributeGroup(items=items, conjunctions=conjunctions)

    def _visit_sub_attribute_set(self, node: CstNode) -> ASTNode:
        return self._visit(node.first(self._only(node, "parenthesized_attribute_set", "attribute")))

    def _visit_parenthesized_attribute_set(self, node: CstNode) -> NestedAttributeSet:
        items, conjunctions = self._items(node.first("attribute_set"))
        return NestedAttributeSet(items=items, conjunctions=conjunctions)

    def _visit_attribute(self, node: CstNode) -> Attribute:
        # The reverse slot only exists in this rule, so its presence is the
        # flag: "R" here is the same IDENTIFIER token a scheme name would be.
        cmp_tok = node.first("comparator")
        comparator = COMPARATORS.get(cmp_tok.type)
        if comparator is None:
            raise AstBuildError(f"Unknown comparator {cmp_tok.value!r}", node.rule)

        slot = self._only(node, "numeric", "value")
        if slot == "numeric":
            value = NumberValue(value=_make_number(node.first("numeric")))
        else:
            value = self._visit(node.first("value"))

        return Attribute(
            name=self._visit(node.first("name")),
            comparator=comparator,
            value=value,
            reverse=node.has("reverse"),
        )

    def _visit_attribute_value(self, node: CstNode) -> ASTNode:
        slot = self._only(node, *_VALUE_SLOTS)
        child = node.first(slot)

        if slot == "string":
            return StringValue(value=_unquote(child.value))
        if slot == "boolean":
            return BooleanValue(value=child.type == TokenType.TRUE)
        if slot == "numeric":
            return NumberValue(value=_make_number(child))

        value = self._visit(child)
        # A value that is nothing but "( ... )" keeps its parentheses as a
        # NestedExpression rather than a bare SubExpression wrapper.
        if (isinstance(value, SubExpression)
                and value.constraint_operator is None
                and not value.member_of
                and not value.filters
                and isinstance(value.focus_concept, NestedExpression)):
            return value.focus_concept
        return value

    def _visit_search_term(self, node: CstNode) -> TypedSearchTerm:
        type_tok = node.first("search_type")
        return TypedSearchTerm(
            value=_unquote(node.first("string").value),
            search_type=type_tok.value if type_tok is not None else None,
        )

    def _visit_search_term_set(self, node: CstNode) -> TypedSearchTermSet:
        return TypedSearchTermSet(terms=[self._visit(t) for t in node.get("search_term")])

    def _visit_cardinality(self, node: CstNode) -> Cardinality:
        return Cardinality(min=_bound(node.first("min")), max=_bound(node.first("max")))

    # ------------------------------------------------------------------ filters

    def _visit_filter_constraint(self, node: CstNode) -> Filter:
        constraints, conjunctions = self._items(node, "filter")
        return Filter(constraints=constraints, conjunctions=conjunctions)

    def _visit_filter(self, node: CstNode) -> ASTNode:
        if len(node.children) != 1:
            raise AstBuildError(f"Expected one filter but found {list(node.children)}", node.rule)
        (child,) = next(iter(node.children.values()))
        return self._visit(child)

    def _visit_term_filter(self, node: CstNode) -> TermFilter:
        slot = self._only(node, "search_term", "search_term_set")
        return TermFilter(value=self._visit(node.first(slot)))

    def _visit_language_filter(self, node: CstNode) -> LanguageFilter:
        return LanguageFilter(value=node.first("value").value)

    def _visit_type_filter(self, node: CstNode) -> TypeFilter:
        return TypeFilter(value=self._keyword_or_concept(node))

    def _visit_dialect_filter(self, node: CstNode) -> DialectFilter:
        acceptability = node.first("acceptability")
        return DialectFilter(
            value=self._keyword_or_concept(node),
            acceptability=acceptability.value if acceptability is not None else None,
        )

    def _visit_module_filter(self, node: CstNode) -> ModuleFilter:
        return ModuleFilter(value=self._visit(node.first("concept_reference")))

    def _visit_effective_time_filter(self, node: CstNode) -> EffectiveTimeFilter:
        return EffectiveTimeFilter(
            comparator=COMPARATORS[node.first("comparator").type],
            value=_unquote(node.first("string").value),
        )

    def _visit_active_filter(self, node: CstNode) -> ActiveFilter:
        return ActiveFilter(value=node.first("value").type == TokenType.TRUE)

    def _visit_definition_status_filter(self, node: CstNode) -> DefinitionStatusFilter:
        return DefinitionStatusFilter(value=self._keyword_or_concept(node))

    def _keyword_or_concept(self, node: CstNode):
        slot = self._only(node, "value", "concept_reference")
        if slot == "value":
            return node.first("value").value
        return self._visit(node.first("concept_reference"))


# ------------------------------------------------------------------ helpers

def _unquote(text: str) -> str:
    return text[1:-1]


def _make_number(tok: Token):
    return Decimal(tok.value) if '.' in tok.value else int(tok.value)


def _bound(tok: Token):
    if tok.type == TokenType.WILDCARD:
        return UNBOUNDED
    return int(tok.value)


def build_ast(cst: CstNode) -> ASTNode:
    """Build the AST for a CST from an error-free parse."""
    return AstBuilder().build(cst)
