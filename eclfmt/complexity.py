"""
eclfmt - Complexity Classifier
Decides which AST nodes are heavy enough to be laid out over several lines.

The verdict depends only on tree shape, never on rendered width or indent
size, so formatted output reparses to the same tree and the same layout.
"""

from .ast_nodes import (
    ASTNode, CompoundExpression, RefinedExpression, SubExpression,
    NestedExpression, Refinement, AttributeGroup, NestedAttributeSet,
)


def _chain_length(node: CompoundExpression) -> int:
    """Number of operands in a left-folded chain: A OR B OR C has 3."""
    count = 2
    current = node.left
    while isinstance(current, CompoundExpression):
        count += 1
        current = current.left
    return count


def is_complex(node: ASTNode) -> bool:
    if isinstance(node, RefinedExpression):
        return True

    if isinstance(node, CompoundExpression):
        if _chain_length(node) > 2:
            return True
        return is_complex(node.left) or is_complex(node.right)

    if isinstance(node, SubExpression):
        return bool(node.filters) or isinstance(node.focus_concept, NestedExpression)

    if isinstance(node, NestedExpression):
        return is_complex(node.expression)

    if isinstance(node, (AttributeGroup, NestedAttributeSet)):
        return len(node.items) > 1

    if isinstance(node, Refinement):
        return len(node.items) > 1 or any(isinstance(i, AttributeGroup) for i in node.items)

    return False


def should_break_compound(node: CompoundExpression) -> bool:
    return is_complex(node.left) or is_complex(node.right)


def should_break_refinement(node: Refinement) -> bool:
    return is_complex(node)


def should_break_attribute_group(node: AttributeGroup) -> bool:
    return len(node.items) > 1
