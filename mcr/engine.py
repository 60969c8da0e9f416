"""
Symbolic engine for MCR

Thin facade over the parser, knowledge base and evaluator exposing the
four entry points the session layer needs: consult a whole program,
prepare (parse) a query, solve a query, and format a solution.
"""

from typing import List, Iterator
import logging

from .terms import Term
from .knowledge import KnowledgeBase
from .evaluator import PrologEvaluator, Solution
from .prolog_parser import parse_program, parse_query

logger = logging.getLogger(__name__)


class PrologEngine:
    """
    Holds the current theory and answers queries against it.

    The theory is replaced wholesale by `consult`; there is no
    incremental assert/retract at this level.
    """

    def __init__(self, max_depth: int = 100):
        self.kb = KnowledgeBase()
        self.max_depth = max_depth
        self.evaluator = PrologEvaluator(self.kb, max_depth=max_depth)

    def consult(self, program_text: str) -> None:
        """
        Replace the working theory with the clauses in `program_text`.

        The new theory is parsed completely before the old one is dropped,
        so a syntax error leaves the engine unchanged.

        Raises:
            PrologSyntaxError: if the program does not parse
        """
        clauses = parse_program(program_text)
        self.kb.clear()
        for clause in clauses:
            self.kb.add(clause)
        logger.debug(f"Consulted {len(clauses)} clause(s), {len(self.kb)} distinct")

    def prepare_query(self, query_text: str) -> List[Term]:
        """Parse a query without running it"""
        return parse_query(query_text)

    def solve(self, query_text: str) -> Iterator[Solution]:
        """Yield every solution of `query_text` against the current theory"""
        goals = self.prepare_query(query_text)
        yield from self.evaluator.query(goals)

    @staticmethod
    def format_answer(solution: Solution) -> str:
        """
        Render one solution as a binding string.

        Examples:
            "X = tweety"
            "X = john, Y = mary"
            ""  (proven with no variables to report)
        """
        return ", ".join(f"{name} = {value}" for name, value in solution.bindings.items())

    @property
    def program_text(self) -> str:
        return "\n".join(str(clause) for clause in self.kb.clauses)

    def __str__(self) -> str:
        return f"PrologEngine: {len(self.kb.facts)} facts, {len(self.kb.rules)} rules"
