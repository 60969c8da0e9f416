"""
Ontology validation for MCR

The ontology is the declared vocabulary a session accepts: entity types
(unary predicates), relationships (predicates of two or more arguments),
opaque constraint tokens, and synonyms mapping an alias to its canonical
name. Clauses are checked here before they enter the program.

Clause text is read lexically by `parse_clause_shape`; nothing else in
this module looks at raw clause text.
"""

from typing import List, Dict, Set, Optional, Sequence, Any
from dataclasses import dataclass
from enum import Enum
import re

from .prolog_parser import CLAUSE_TERMINATOR, NECK, NEGATION, COMPARISON_OPERATORS

PREDICATE_NAME = re.compile(r"^[a-z][a-zA-Z0-9_]*$")

# Loose name pattern for heads so that a badly cased name is reported as
# MALFORMED_NAME rather than MALFORMED_HEAD
_HEAD_SHAPE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(?:\((.*)\))?$", re.DOTALL)
_LITERAL_SHAPE = re.compile(r"^([a-z][a-zA-Z0-9_]*)\s*(?:\((.*)\))?$", re.DOTALL)

BUILTIN_GOALS = {"true", "fail", "false"}
_OPERATOR_CHARS = set("\\=")


class OntologyErrorKind(Enum):
    """Why a clause or name was rejected"""
    MALFORMED_NAME = "malformed_name"
    ARITY_MISMATCH = "arity_mismatch"
    NOT_IN_ONTOLOGY = "not_in_ontology"
    MALFORMED_HEAD = "malformed_head"
    MALFORMED_BODY_PREDICATE = "malformed_body_predicate"
    EMPTY_BODY = "empty_body"


class OntologyError(ValueError):
    """Raised when a clause or predicate does not conform to the ontology"""

    def __init__(self, kind: OntologyErrorKind, message: str,
                 suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.suggestions = suggestions or []


@dataclass
class ClauseShape:
    """
    Lexical shape of a clause.

    `body` is None for a fact and a (possibly empty) list of literal
    strings when the clause contains the rule operator.
    """
    head: str
    args: List[str]
    body: Optional[List[str]] = None

    @property
    def is_rule(self) -> bool:
        return self.body is not None


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """
    Split on `separator` outside parentheses, brackets and quotes.

    Examples:
        >>> split_top_level("a(X, Y), b(Y)")
        ['a(X, Y)', ' b(Y)']
    """
    parts = []
    depth = 0
    quote = None
    start = 0
    i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\":
                i += 2
                continue
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif char == separator and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return parts


def _top_level_operator(literal: str) -> Optional[str]:
    """Return the first run of '=' / '\\' characters outside nesting, if any"""
    depth = 0
    quote = None
    i = 0
    while i < len(literal):
        char = literal[i]
        if quote:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif depth == 0 and char in _OPERATOR_CHARS and not literal.startswith(NEGATION, i):
            end = i
            while end < len(literal) and literal[end] in _OPERATOR_CHARS:
                end += 1
            return literal[i:end]
        i += 1
    return None


def parse_clause_shape(text: str) -> ClauseShape:
    """
    Read the head name, head arguments and body literals of a clause.

    The terminator is optional. Only the first ':-' separates head from
    body; arguments and literals are split on top-level commas.

    Raises:
        OntologyError: MALFORMED_HEAD if the head is not `name` or `name(args)`
    """
    stripped = text.strip()
    if stripped.endswith(CLAUSE_TERMINATOR):
        stripped = stripped[:-1].rstrip()

    head_text, neck, body_text = stripped.partition(NECK)
    head_text = head_text.strip()

    match = _HEAD_SHAPE.match(head_text)
    if not match:
        raise OntologyError(OntologyErrorKind.MALFORMED_HEAD,
                            f"Invalid Prolog head format: {head_text}")

    name, arg_text = match.group(1), match.group(2)
    args = [a.strip() for a in split_top_level(arg_text)] if arg_text and arg_text.strip() else []

    body = None
    if neck:
        body_text = body_text.strip()
        body = [lit.strip() for lit in split_top_level(body_text)] if body_text else []

    return ClauseShape(head=name, args=args, body=body)


class OntologyManager:
    """
    Holds the admissible vocabulary and validates clauses against it.

    Mutators never validate the names they are given; validation happens
    only when a clause is offered for acceptance.
    """

    def __init__(self, types: Optional[Sequence[str]] = None,
                 relationships: Optional[Sequence[str]] = None,
                 constraints: Optional[Sequence[str]] = None,
                 synonyms: Optional[Dict[str, str]] = None,
                 max_suggestions: int = 5):
        self.types: Set[str] = set(types or [])
        self.relationships: Set[str] = set(relationships or [])
        self.constraints: Set[str] = set(constraints or [])
        self.synonyms: Dict[str, str] = dict(synonyms or {})
        self.max_suggestions = max_suggestions

    # Lookup

    def resolve(self, term: str) -> str:
        """Canonical name for `term`, or `term` itself when it has no synonym"""
        return self.synonyms.get(term, term)

    def is_defined(self, name: str) -> bool:
        resolved = self.resolve(name)
        return resolved in self.types or resolved in self.relationships

    def suggestions(self, name: str) -> List[str]:
        """Declared names close to `name`: same 3-character prefix, or containing it"""
        prefix = name[:3]
        candidates = self.types | self.relationships | set(self.synonyms)
        similar = []
        for candidate in sorted(candidates):
            resolved = self.resolve(candidate)
            if resolved.startswith(prefix) or name in resolved:
                similar.append(candidate)
        return similar[:self.max_suggestions]

    def _not_in_ontology(self, name: str, role: str = "Predicate") -> OntologyError:
        similar = self.suggestions(name)
        hint = f"Did you mean: {', '.join(similar)}?" if similar else "No similar terms found"
        return OntologyError(OntologyErrorKind.NOT_IN_ONTOLOGY,
                             f"{role} '{name}' not in ontology. {hint}",
                             suggestions=similar)

    # Validation

    def validate_fact(self, name: str, args: Sequence[Any]) -> None:
        """
        Check a predicate name and its argument count.

        Types take exactly one argument, relationships two or more.

        Raises:
            OntologyError: MALFORMED_NAME, ARITY_MISMATCH or NOT_IN_ONTOLOGY
        """
        if not PREDICATE_NAME.match(name):
            raise OntologyError(OntologyErrorKind.MALFORMED_NAME,
                                f"Invalid predicate: {name}. Must follow Prolog naming conventions")

        resolved = self.resolve(name)
        if resolved in self.types:
            if len(args) != 1:
                raise OntologyError(OntologyErrorKind.ARITY_MISMATCH,
                                    f"{resolved} expects 1 argument, got {len(args)}")
            return
        if resolved in self.relationships:
            if len(args) < 2:
                raise OntologyError(OntologyErrorKind.ARITY_MISMATCH,
                                    f"{resolved} expects at least 2 arguments, got {len(args)}")
            return

        raise self._not_in_ontology(resolved)

    def validate_clause_text(self, text: str) -> None:
        """
        Validate a fact or rule given as text.

        Raises:
            OntologyError: describing the first violation found
        """
        shape = parse_clause_shape(text)
        self.validate_fact(shape.head, shape.args)

        if not shape.is_rule:
            return
        if not shape.body:
            raise OntologyError(OntologyErrorKind.EMPTY_BODY, "Rule body cannot be empty.")
        for literal in shape.body:
            self._validate_body_literal(literal)

    def _validate_body_literal(self, literal: str) -> None:
        if literal.startswith(NEGATION):
            inner = literal[len(NEGATION):].strip()
            if inner.startswith("(") and inner.endswith(")"):
                inner = inner[1:-1].strip()
            parts = [p.strip() for p in split_top_level(inner)] if inner else [""]
            for part in parts:
                self._validate_body_literal(part)
            return

        operator = _top_level_operator(literal)
        if operator is not None:
            if operator not in COMPARISON_OPERATORS:
                raise OntologyError(OntologyErrorKind.MALFORMED_BODY_PREDICATE,
                                    f"Invalid Prolog body predicate format: {literal}")
            return

        match = _LITERAL_SHAPE.match(literal)
        if not match:
            raise OntologyError(OntologyErrorKind.MALFORMED_BODY_PREDICATE,
                                f"Invalid Prolog body predicate format: {literal}")

        name = match.group(1)
        if name in BUILTIN_GOALS:
            return
        if not self.is_defined(name):
            raise self._not_in_ontology(self.resolve(name), role="Rule body predicate")

    def validate_constraint(self, name: str) -> None:
        resolved = self.resolve(name)
        if resolved not in self.constraints:
            raise OntologyError(OntologyErrorKind.NOT_IN_ONTOLOGY,
                                f"Constraint '{resolved}' not in ontology")

    # Mutation

    def add_type(self, name: str) -> None:
        self.types.add(name)

    def add_relationship(self, name: str) -> None:
        self.relationships.add(name)

    def add_constraint(self, name: str) -> None:
        self.constraints.add(name)

    def add_synonym(self, alias: str, canonical: str) -> None:
        self.synonyms[alias] = canonical

    # Snapshots

    def ontology_terms(self) -> List[str]:
        """All names a translation prompt may use"""
        return sorted(self.types | self.relationships | set(self.synonyms))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": sorted(self.types),
            "relationships": sorted(self.relationships),
            "constraints": sorted(self.constraints),
            "synonyms": dict(self.synonyms),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], max_suggestions: int = 5) -> "OntologyManager":
        data = data or {}
        return cls(
            types=data.get("types"),
            relationships=data.get("relationships"),
            constraints=data.get("constraints"),
            synonyms=data.get("synonyms"),
            max_suggestions=max_suggestions,
        )

    def copy(self) -> "OntologyManager":
        return OntologyManager.from_dict(self.to_dict(), self.max_suggestions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OntologyManager):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (f"OntologyManager(types={len(self.types)}, relationships={len(self.relationships)}, "
                f"constraints={len(self.constraints)}, synonyms={len(self.synonyms)})")
