"""
Prolog-style evaluator for MCR

Implements SLD resolution with backtracking (via generators), negation
as failure and a handful of control built-ins.
"""

from typing import List, Dict, Iterator, Optional
from dataclasses import dataclass
import itertools
import logging

from .terms import Term, Atom, Variable, Compound
from .knowledge import KnowledgeBase
from .unification import unify, resolve

logger = logging.getLogger(__name__)

TRUE_ATOMS = {"true"}
FAIL_ATOMS = {"fail", "false"}


@dataclass
class Solution:
    """A solution to a query: bindings for the query's own variables"""
    bindings: Dict[str, Term]

    def get_binding(self, var_name: str) -> Optional[Term]:
        return self.bindings.get(var_name)


class PrologEvaluator:
    """
    Evaluates Prolog queries using SLD resolution.

    Unknown predicates simply fail. Resolution depth is bounded by
    `max_depth` so left-recursive programs terminate; branches cut off
    by the bound are logged at debug level.
    """

    def __init__(self, knowledge_base: KnowledgeBase, max_depth: int = 100):
        self.kb = knowledge_base
        self.max_depth = max_depth
        self._renames = itertools.count(1)

    def query(self, goals: List[Term]) -> Iterator[Solution]:
        """
        Evaluate a query (list of goals) and yield all solutions.

        Bindings are reported only for variables that appear in the query
        and do not start with an underscore.
        """
        if not goals:
            return

        query_vars = set()
        for goal in goals:
            query_vars.update(goal.get_variables())
        visible = sorted(name for name in query_vars if not name.startswith("_"))

        for bindings in self._solve(list(goals), {}, 0):
            yield Solution({name: resolve(Variable(name), bindings) for name in visible})

    def _solve(self, goals: List[Term], bindings: Dict[str, Term], depth: int) -> Iterator[Dict[str, Term]]:
        if not goals:
            yield bindings
            return

        if depth > self.max_depth:
            logger.debug(f"Depth limit {self.max_depth} reached at goal {goals[0]}")
            return

        goal = resolve(goals[0], bindings)
        remaining = goals[1:]

        if isinstance(goal, Variable):
            # Unbound variable as a goal cannot be called
            return

        if isinstance(goal, Atom):
            if goal.value in TRUE_ATOMS:
                yield from self._solve(remaining, bindings, depth)
                return
            if goal.value in FAIL_ATOMS:
                return

        if isinstance(goal, Compound) and goal.arity == 2:
            left, right = goal.args
            if goal.functor == ",":
                yield from self._solve([left, right] + remaining, bindings, depth)
                return
            if goal.functor == "=":
                unified = unify(left, right, bindings)
                if unified is not None:
                    yield from self._solve(remaining, unified, depth)
                return
            if goal.functor == "\\=":
                if unify(left, right, bindings) is None:
                    yield from self._solve(remaining, bindings, depth)
                return
            if goal.functor == "==":
                if resolve(left, bindings) == resolve(right, bindings):
                    yield from self._solve(remaining, bindings, depth)
                return
            if goal.functor == "\\==":
                if resolve(left, bindings) != resolve(right, bindings):
                    yield from self._solve(remaining, bindings, depth)
                return

        if isinstance(goal, Compound) and goal.functor == "\\+" and goal.arity == 1:
            # Negation as failure: no bindings escape the inner proof
            if next(self._solve([goal.args[0]], bindings, depth + 1), None) is None:
                yield from self._solve(remaining, bindings, depth)
            return

        for clause in self.kb.get_matching_clauses(goal):
            renamed = clause.rename_variables(str(next(self._renames)))
            unified = unify(goal, renamed.head, bindings)
            if unified is None:
                continue
            yield from self._solve(list(renamed.body) + remaining, unified, depth + 1)
