"""
eclfmt - Parser and AST Builder Tests
"""

import sys
import os
import unittest
from decimal import Decimal

# Allow running from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from eclfmt.lexer import tokenize
from eclfmt.parser import parse, CstNode, ParseError
from eclfmt.builder import build_ast, AstBuilder, AstBuildError
from eclfmt.ast_nodes import (
    CompoundExpression, RefinedExpression, SubExpression, ConceptReference,
    WildcardConcept, AlternateIdentifier, NestedExpression, DottedAttributePath,
    Refinement, AttributeGroup, NestedAttributeSet, Attribute, Cardinality,
    StringValue, NumberValue, BooleanValue, TypedSearchTerm, TypedSearchTermSet,
    Filter, TermFilter, LanguageFilter, TypeFilter, DialectFilter, ModuleFilter,
    EffectiveTimeFilter, ActiveFilter, DefinitionStatusFilter, UNBOUNDED,
    node_to_dict,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════

def parse_(source: str):
    lexed = tokenize(source.strip())
    assert not lexed.errors, lexed.errors
    return parse(lexed.tokens)


def ast_(source: str):
    result = parse_(source)
    assert not result.errors, [str(e) for e in result.errors]
    return build_ast(result.cst)


def concept(sctid: str, term: str = None) -> SubExpression:
    return SubExpression(focus_concept=ConceptReference(sctid=sctid, term=term))


def refinement_of(source: str) -> Refinement:
    node = ast_(source)
    assert isinstance(node, RefinedExpression), node
    return node.refinement


def attribute_value(source: str):
    """Value of the single attribute in '<< 404684003: 363698007 = <source>'."""
    refinement = refinement_of(f"<< 404684003: 363698007 = {source}")
    return refinement.items[0].value


# ═══════════════════════════════════════════════════════════════════════════════
# Parser (CST)
# ═══════════════════════════════════════════════════════════════════════════════

class TestParser(unittest.TestCase):

    def test_root_rule(self):
        result = parse_("<< 404684003")
        self.assertEqual(result.errors, [])
        self.assertEqual(result.cst.rule, "expression_constraint")

    def test_operands_and_operators_are_labelled(self):
        cst = parse_("<< 1 AND << 2 OR << 3").cst
        self.assertEqual(len(cst.get("operand")), 3)
        self.assertEqual([t.value for t in cst.get("operator")], ["AND", "OR"])

    def test_refinement_slots(self):
        cst = parse_("<< 404684003: 363698007 = *").cst
        operand = cst.first("operand")
        self.assertTrue(operand.has("colon"))
        self.assertEqual(operand.first("refinement").rule, "refinement")

    def test_missing_operand(self):
        result = parse_("<< 404684003 AND")
        self.assertEqual(len(result.errors), 1)
        self.assertIsInstance(result.errors[0], ParseError)
        self.assertIn("end of input", str(result.errors[0]))

    def test_trailing_tokens(self):
        result = parse_("<< 404684003 )")
        self.assertEqual(len(result.errors), 1)
        self.assertIn("after expression", str(result.errors[0]))

    def test_invalid_operator_sequence(self):
        result = parse_("<<< invalid")
        self.assertTrue(result.errors)
        self.assertIn("[ParseError] Line 1, column 3", str(result.errors[0]))

    def test_recovers_after_bad_refinement_item(self):
        result = parse_("<< 404684003: 363698007 = , 116676008 = << 55641003")
        self.assertEqual(len(result.errors), 1)
        self.assertIsNotNone(result.cst)
        refinement = result.cst.first("operand").first("refinement")
        self.assertEqual(len(refinement.get("item")), 1)
        self.assertEqual(len(refinement.get("conjunction")), 1)

    def test_reports_several_errors(self):
        result = parse_("<< 404684003: 363698007 = , 116676008 = , 246075003 = << 1")
        self.assertGreaterEqual(len(result.errors), 2)

    def test_bad_filter_recovers_to_close(self):
        result = parse_("<< 404684003 {{ colour = red, active = true }}")
        self.assertEqual(len(result.errors), 1)
        self.assertIn("filter keyword", str(result.errors[0]))

    def test_error_carries_location(self):
        result = parse_("<< 404684003:\n  363698007 = )")
        err = result.errors[0]
        self.assertEqual(err.line, 2)
        self.assertEqual(err.column, 15)


# ═══════════════════════════════════════════════════════════════════════════════
# AST Builder - expressions
# ═══════════════════════════════════════════════════════════════════════════════

class TestBuildExpressions(unittest.TestCase):

    def test_bare_concept(self):
        self.assertEqual(ast_("404684003"), concept("404684003"))

    def test_concept_with_term(self):
        node = ast_("404684003 | Clinical finding |")
        self.assertEqual(node.focus_concept, ConceptReference("404684003", "Clinical finding"))

    def test_wildcard(self):
        node = ast_("<< *")
        self.assertEqual(node.focus_concept, WildcardConcept())
        self.assertEqual(node.constraint_operator, "<<")

    def test_long_and_brief_operators_agree(self):
        pairs = [
            ("descendantOf", "<"), ("descendantOrSelfOf", "<<"),
            ("childOf", "<!"), ("childOrSelfOf", "<<!"),
            ("ancestorOf", ">"), ("ancestorOrSelfOf", ">>"),
            ("parentOf", ">!"), ("parentOrSelfOf", ">>!"),
            ("memberOf", "^"),
        ]
        for long_form, brief in pairs:
            with self.subTest(operator=long_form):
                self.assertEqual(
                    ast_(f"{long_form} 404684003"),
                    ast_(f"{brief} 404684003"),
                )
                self.assertEqual(ast_(f"{long_form} 404684003").constraint_operator, brief)

    def test_member_of_after_operator(self):
        node = ast_("<< ^ 700043003")
        self.assertEqual(node.constraint_operator, "<<")
        self.assertTrue(node.member_of)

    def test_member_of_alone_is_the_operator(self):
        node = ast_("^ 700043003")
        self.assertEqual(node.constraint_operator, "^")
        self.assertFalse(node.member_of)

    def test_compound_is_left_associative(self):
        node = ast_("<< 1 OR << 2 OR << 3")
        self.assertIsInstance(node, CompoundExpression)
        self.assertEqual(node.operator, "OR")
        self.assertIsInstance(node.left, CompoundExpression)
        self.assertEqual(node.left.left.focus_concept.sctid, "1")
        self.assertEqual(node.left.right.focus_concept.sctid, "2")
        self.assertEqual(node.right.focus_concept.sctid, "3")

    def test_logical_keywords_upper_cased(self):
        self.assertEqual(ast_("<< 1 and << 2").operator, "AND")
        self.assertEqual(ast_("<< 1 Or << 2").operator, "OR")
        self.assertEqual(ast_("<< 1 minus << 2").operator, "MINUS")

    def test_parenthesized_focus(self):
        node = ast_("(<< 404684003 OR << 71388002)")
        self.assertIsInstance(node.focus_concept, NestedExpression)
        self.assertIsInstance(node.focus_concept.expression, CompoundExpression)

    def test_dotted_attribute_path(self):
        node = ast_("<< 19829001 . < 47429007 . 363698007")
        path = node.focus_concept
        self.assertIsInstance(path, DottedAttributePath)
        self.assertEqual(path.base, SubExpression(ConceptReference("19829001"), "<<"))
        self.assertEqual(len(path.attributes), 2)
        self.assertEqual(path.attributes[0].constraint_operator, "<")
        self.assertEqual(path.attributes[1], concept("363698007"))

    def test_alternate_identifier(self):
        self.assertEqual(ast_("LOINC#54486-6").focus_concept, AlternateIdentifier("LOINC", "54486-6"))
        self.assertEqual(ast_('LOINC#"54486 6"').focus_concept, AlternateIdentifier("LOINC", "54486 6"))

    def test_filters_attach_to_sub_expression(self):
        node = ast_('<< 404684003 {{ term = "heart", active = false }}')
        self.assertEqual(len(node.filters), 1)
        f = node.filters[0]
        self.assertEqual(f.conjunctions, [","])
        self.assertEqual(f.constraints[0], TermFilter(TypedSearchTerm("heart")))
        self.assertEqual(f.constraints[1], ActiveFilter(False))


# ═══════════════════════════════════════════════════════════════════════════════
# AST Builder - refinements
# ═══════════════════════════════════════════════════════════════════════════════

class TestBuildRefinements(unittest.TestCase):

    def test_single_attribute(self):
        refinement = refinement_of("<< 404684003: 363698007 = << 39057004")
        self.assertEqual(len(refinement.items), 1)
        self.assertEqual(refinement.conjunctions, [])
        attr = refinement.items[0]
        self.assertEqual(attr.name, concept("363698007"))
        self.assertEqual(attr.comparator, "=")
        self.assertEqual(attr.value, SubExpression(ConceptReference("39057004"), "<<"))

    def test_conjunctions_parallel_items(self):
        refinement = refinement_of(
            "<< 404684003: 363698007 = *, 116676008 = * AND 246075003 = * or 42752001 = *"
        )
        self.assertEqual(len(refinement.items), 4)
        self.assertEqual(refinement.conjunctions, [",", "AND", "OR"])

    def test_attribute_group(self):
        refinement = refinement_of("<< 404684003: { 363698007 = *, 116676008 = * }")
        group = refinement.items[0]
        self.assertIsInstance(group, AttributeGroup)
        self.assertEqual(len(group.items), 2)
        self.assertEqual(group.conjunctions, [","])

    def test_cardinality_on_group_and_attribute(self):
        refinement = refinement_of("<< 404684003: [1..*] { [0..1] 363698007 = * }")
        group = refinement.items[0]
        self.assertEqual(group.cardinality, Cardinality(1, UNBOUNDED))
        self.assertEqual(group.items[0].cardinality, Cardinality(0, 1))

    def test_reverse_flag_spellings(self):
        for marker in ("R", "r", "reverseOf", "REVERSEOF"):
            with self.subTest(marker=marker):
                attr = refinement_of(f"<< 404684003: {marker} 363698007 = *").items[0]
                self.assertTrue(attr.reverse)
                self.assertEqual(attr.name, concept("363698007"))

    def test_scheme_named_r_is_not_a_reverse_flag(self):
        attr = refinement_of("<< 404684003: R#123 = *").items[0]
        self.assertFalse(attr.reverse)
        self.assertEqual(attr.name.focus_concept, AlternateIdentifier("R", "123"))

    def test_parenthesized_attribute_set(self):
        refinement = refinement_of("<< 404684003: (363698007 = *, 116676008 = *)")
        nested = refinement.items[0]
        self.assertIsInstance(nested, NestedAttributeSet)
        self.assertEqual(len(nested.items), 2)

    def test_parenthesized_attribute_name_backtracks(self):
        attr = refinement_of("<< 404684003: (<< 363698007) = << 39057004").items[0]
        self.assertIsInstance(attr, Attribute)
        self.assertIsInstance(attr.name.focus_concept, NestedExpression)

    def test_comparators(self):
        for cmp in ("=", "!=", "<", ">", "<=", ">="):
            with self.subTest(comparator=cmp):
                attr = refinement_of(f"<< 404684003: 1142135004 {cmp} #5").items[0]
                self.assertEqual(attr.comparator, cmp)


# ═══════════════════════════════════════════════════════════════════════════════
# AST Builder - values and filters
# ═══════════════════════════════════════════════════════════════════════════════

class TestBuildValues(unittest.TestCase):

    def test_numbers(self):
        self.assertEqual(attribute_value("#250"), NumberValue(250))
        self.assertEqual(attribute_value("#+5"), NumberValue(5))
        self.assertEqual(attribute_value("#-2"), NumberValue(-2))
        self.assertEqual(attribute_value("#3.50"), NumberValue(Decimal("3.50")))

    def test_string_keeps_escapes(self):
        self.assertEqual(attribute_value(r'"say \"hi\""'), StringValue(r'say \"hi\"'))

    def test_boolean(self):
        self.assertEqual(attribute_value("true"), BooleanValue(True))
        self.assertEqual(attribute_value("false"), BooleanValue(False))

    def test_typed_search_term(self):
        self.assertEqual(attribute_value('match:"heart"'), TypedSearchTerm("heart", "match"))
        self.assertEqual(attribute_value('wild:"hea*"'), TypedSearchTerm("hea*", "wild"))

    def test_search_term_set(self):
        self.assertEqual(
            attribute_value('("heart" wild:"card*")'),
            TypedSearchTermSet([TypedSearchTerm("heart"), TypedSearchTerm("card*", "wild")]),
        )

    def test_parenthesized_value_is_nested_expression(self):
        value = attribute_value("(<< 39057004 OR << 55641003)")
        self.assertIsInstance(value, NestedExpression)
        self.assertEqual(value.expression.operator, "OR")

    def test_operator_value_stays_sub_expression(self):
        value = attribute_value("<< (39057004)")
        self.assertIsInstance(value, SubExpression)
        self.assertEqual(value.constraint_operator, "<<")

    def test_all_filter_kinds(self):
        node = ast_(
            '<< 404684003 {{ term = match:"heart", language = en, typeId = PREFERRED,'
            ' dialect = en-US (ACCEPTABLE), moduleId = 900000000000207008,'
            ' effectiveTime >= "20190131", active = true, definitionStatusId = PRIMITIVE }}'
        )
        self.assertEqual(node.filters[0].constraints, [
            TermFilter(TypedSearchTerm("heart", "match")),
            LanguageFilter("en"),
            TypeFilter("PREFERRED"),
            DialectFilter("en-US", "ACCEPTABLE"),
            ModuleFilter(ConceptReference("900000000000207008")),
            EffectiveTimeFilter(">=", "20190131"),
            ActiveFilter(True),
            DefinitionStatusFilter("PRIMITIVE"),
        ])

    def test_filter_values_may_be_concepts(self):
        node = ast_("<< 404684003 {{ type = 900000000000013009 AND dialect = 900000000000509007 }}")
        f = node.filters[0]
        self.assertEqual(f.conjunctions, ["AND"])
        self.assertEqual(f.constraints[0], TypeFilter(ConceptReference("900000000000013009")))
        self.assertEqual(f.constraints[1], DialectFilter(ConceptReference("900000000000509007")))

    def test_term_filter_set(self):
        node = ast_('<< 404684003 {{ term = ("heart" "card") }}')
        self.assertEqual(
            node.filters[0].constraints[0],
            TermFilter(TypedSearchTermSet([TypedSearchTerm("heart"), TypedSearchTerm("card")])),
        )

    def test_several_filter_blocks(self):
        node = ast_("<< 404684003 {{ active = true }} {{ definitionStatusId = DEFINED }}")
        self.assertEqual(len(node.filters), 2)
        self.assertIsInstance(node.filters[1], Filter)


# ═══════════════════════════════════════════════════════════════════════════════
# AST Builder - construction errors and serialization
# ═══════════════════════════════════════════════════════════════════════════════

class TestBuilderErrors(unittest.TestCase):

    def test_unknown_rule(self):
        with self.assertRaises(AstBuildError) as cm:
            AstBuilder().build(CstNode("bogus"))
        self.assertIn("[AstBuildError]", str(cm.exception))
        self.assertIn("bogus", str(cm.exception))

    def test_value_without_slot(self):
        with self.assertRaises(AstBuildError):
            AstBuilder().build(CstNode("attribute_value"))

    def test_conjunction_count_mismatch(self):
        cst = parse_("<< 404684003: 363698007 = *, 116676008 = *").cst
        refinement = cst.first("operand").first("refinement")
        refinement.children["conjunction"] = []
        with self.assertRaises(AstBuildError):
            build_ast(cst)


class TestNodeToDict(unittest.TestCase):

    def test_sub_expression(self):
        self.assertEqual(node_to_dict(ast_("<< 404684003")), {
            "type": "SubExpression",
            "focus_concept": {"type": "ConceptReference", "sctid": "404684003", "term": None},
            "constraint_operator": "<<",
            "member_of": False,
            "filters": [],
        })

    def test_decimal_becomes_string(self):
        self.assertEqual(node_to_dict(NumberValue(Decimal("3.50"))), {"type": "NumberValue", "value": "3.50"})


if __name__ == "__main__":
    unittest.main(verbosity=2)
