"""
eclfmt - AST Node Definitions
Compact, position-free AST for ECL expression constraints.

Nodes are plain dataclasses; the class name is the node's type tag. Lists
of items are paired with a ``conjunctions`` list one shorter than the
items, holding "AND", "OR" or ",".
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, List, Union

# Marker for an open cardinality bound, as in [1..*]
UNBOUNDED = "*"


@dataclass
class ASTNode:
    """Base class for all AST nodes."""

    @property
    def type(self) -> str:
        return type(self).__name__


# ── Expressions ───────────────────────────────────────────────────────────────

@dataclass
class CompoundExpression(ASTNode):
    """left AND|OR|MINUS right, folded to the left."""
    operator: str = "AND"
    left: ASTNode = None
    right: ASTNode = None


@dataclass
class RefinedExpression(ASTNode):
    """expression : refinement"""
    expression: ASTNode = None
    refinement: "Refinement" = None


@dataclass
class SubExpression(ASTNode):
    """[constraint operator] [^] focus {{ filters }}"""
    focus_concept: ASTNode = None
    constraint_operator: Optional[str] = None   # brief form: "<", "<<", "^", ...
    member_of: bool = False
    filters: List["Filter"] = field(default_factory=list)


@dataclass
class ConceptReference(ASTNode):
    sctid: str = ""
    term: Optional[str] = None


@dataclass
class WildcardConcept(ASTNode):
    pass


@dataclass
class AlternateIdentifier(ASTNode):
    """SCHEME#code"""
    scheme: str = ""
    code: str = ""


@dataclass
class NestedExpression(ASTNode):
    """An expression that was written in parentheses."""
    expression: ASTNode = None


@dataclass
class DottedAttributePath(ASTNode):
    """base . attribute . attribute ..."""
    base: SubExpression = None
    attributes: List[SubExpression] = field(default_factory=list)


# ── Refinements ───────────────────────────────────────────────────────────────

@dataclass
class Cardinality(ASTNode):
    """[min..max]; either bound may be UNBOUNDED."""
    min: Union[int, str] = 0
    max: Union[int, str] = UNBOUNDED


@dataclass
class Refinement(ASTNode):
    items: List[ASTNode] = field(default_factory=list)
    conjunctions: List[str] = field(default_factory=list)


@dataclass
class AttributeGroup(ASTNode):
    """{ attribute, attribute, ... }"""
    items: List[ASTNode] = field(default_factory=list)
    conjunctions: List[str] = field(default_factory=list)
    cardinality: Optional[Cardinality] = None


@dataclass
class NestedAttributeSet(ASTNode):
    """( attribute, attribute, ... ) inside a refinement."""
    items: List[ASTNode] = field(default_factory=list)
    conjunctions: List[str] = field(default_factory=list)
    cardinality: Optional[Cardinality] = None


@dataclass
class Attribute(ASTNode):
    """[cardinality] [R] name comparator value"""
    name: SubExpression = None
    comparator: str = "="
    value: ASTNode = None
    cardinality: Optional[Cardinality] = None
    reverse: bool = False


# ── Concrete values ───────────────────────────────────────────────────────────

@dataclass
class StringValue(ASTNode):
    value: str = ""   # contents between the quotes, escapes kept as written


@dataclass
class NumberValue(ASTNode):
    value: Union[int, Decimal] = 0


@dataclass
class BooleanValue(ASTNode):
    value: bool = False


@dataclass
class TypedSearchTerm(ASTNode):
    """match:"heart", wild:"hea*", or a bare "heart" inside a set."""
    value: str = ""
    search_type: Optional[str] = None   # "match" | "wild"


@dataclass
class TypedSearchTermSet(ASTNode):
    terms: List[TypedSearchTerm] = field(default_factory=list)


# ── Filters ───────────────────────────────────────────────────────────────────

@dataclass
class Filter(ASTNode):
    """{{ constraint, constraint, ... }}"""
    constraints: List[ASTNode] = field(default_factory=list)
    conjunctions: List[str] = field(default_factory=list)


@dataclass
class TermFilter(ASTNode):
    value: ASTNode = None   # TypedSearchTerm | TypedSearchTermSet


@dataclass
class LanguageFilter(ASTNode):
    value: str = ""


@dataclass
class TypeFilter(ASTNode):
    value: Union[str, ConceptReference] = "PREFERRED"


@dataclass
class DialectFilter(ASTNode):
    value: Union[str, ConceptReference] = ""
    acceptability: Optional[str] = None


@dataclass
class ModuleFilter(ASTNode):
    value: ConceptReference = None


@dataclass
class EffectiveTimeFilter(ASTNode):
    comparator: str = "="
    value: str = ""


@dataclass
class ActiveFilter(ASTNode):
    value: bool = True


@dataclass
class DefinitionStatusFilter(ASTNode):
    value: Union[str, ConceptReference] = "PRIMITIVE"


# ── Serialization (for --emit-ast and test fixtures) ──────────────────────────

def node_to_dict(node):
    if node is None:
        return None
    if isinstance(node, list):
        return [node_to_dict(n) for n in node]
    if isinstance(node, Decimal):
        return str(node)
    if not hasattr(node, '__dataclass_fields__'):
        return node  # primitive
    d = {"type": node.type}
    for field_name in node.__dataclass_fields__:
        d[field_name] = node_to_dict(getattr(node, field_name))
    return d
