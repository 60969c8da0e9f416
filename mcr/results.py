"""
Result records returned by session operations.

Documented session operations report failures through these objects
instead of raising; `error_type` names the failure category.
"""

from typing import List, Optional
from dataclasses import dataclass, field

from .translation import TranslationAttempt

INVALID_SYNTAX = "InvalidSyntax"
ONTOLOGY_VIOLATION = "OntologyViolation"
NOT_FOUND = "NotFound"
TRANSLATION_FAILURE = "TranslationFailure"


@dataclass
class AssertResult:
    success: bool
    prolog: Optional[str] = None
    message: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None
    natural_language: Optional[str] = None
    strategy: Optional[str] = None
    attempts: List[TranslationAttempt] = field(default_factory=list)


@dataclass
class RetractResult:
    success: bool
    prolog: Optional[str] = None
    removed: int = 0
    message: str = ""
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class QueryResult:
    """
    Outcome of one query.

    `bindings` holds one formatted string per solution ("X = tweety").
    A proven query without visible variables has an empty list; a
    failed query has None.
    """
    success: bool
    bindings: Optional[List[str]] = None
    explanation: List[str] = field(default_factory=list)
    confidence: float = 0.0
    prolog_query: Optional[str] = None
    answer: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


@dataclass
class ReasonResult:
    answer: str
    explanation: str = ""
    steps: List[str] = field(default_factory=list)
    confidence: float = 0.0
