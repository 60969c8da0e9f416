"""
Syntax boundary check for translated Prolog.

Decides whether a string is a parseable clause (terminated) or query
(unterminated) before any other layer trusts it. Nothing is proved.
"""

from typing import Any, Optional
import logging

from .engine import PrologEngine
from .prolog_parser import CLAUSE_TERMINATOR, PrologSyntaxError, parse_program

logger = logging.getLogger(__name__)


def is_valid_prolog_syntax(text: Any, engine: Optional[PrologEngine] = None) -> bool:
    """
    True when `text` parses as a program (ends with '.') or as a query.

    The engine is only asked to parse; its theory is never touched.
    """
    if not isinstance(text, str) or not text.strip():
        return False

    candidate = text.strip()
    try:
        if candidate.endswith(CLAUSE_TERMINATOR):
            parse_program(candidate)
        else:
            (engine or PrologEngine()).prepare_query(candidate)
    except PrologSyntaxError as e:
        logger.debug(f"Rejected as Prolog: {candidate!r} ({e})")
        return False
    return True
