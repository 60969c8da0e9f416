"""
Knowledge representation for MCR

Facts, rules, and the indexed clause store the evaluator resolves against.
"""

from typing import List, Dict, Set, Iterator, Union
from dataclasses import dataclass
from .terms import Term, Variable


@dataclass(frozen=True)
class Fact:
    """A term that is assumed true"""
    term: Term

    @property
    def head(self) -> Term:
        return self.term

    @property
    def body(self) -> tuple:
        return ()

    def get_variables(self) -> Set[str]:
        return self.term.get_variables()

    def rename_variables(self, suffix: str) -> 'Fact':
        variables = self.get_variables()
        if not variables:
            return self
        bindings = {name: Variable(f"{name}#{suffix}") for name in variables}
        return Fact(self.term.substitute(bindings))

    def __str__(self) -> str:
        return f"{self.term}."


@dataclass(frozen=True)
class Rule:
    """A logical implication: head holds when every body goal holds"""
    head: Term
    body: tuple  # Tuple[Term, ...]

    def __init__(self, head: Term, body: List[Term]):
        object.__setattr__(self, 'head', head)
        object.__setattr__(self, 'body', tuple(body))

    def get_variables(self) -> Set[str]:
        variables = self.head.get_variables()
        for term in self.body:
            variables.update(term.get_variables())
        return variables

    def rename_variables(self, suffix: str) -> 'Rule':
        """Rename all variables in this rule to avoid clashes with the goal"""
        bindings = {name: Variable(f"{name}#{suffix}") for name in self.get_variables()}
        return Rule(self.head.substitute(bindings), [t.substitute(bindings) for t in self.body])

    def __str__(self) -> str:
        body_str = ", ".join(str(term) for term in self.body)
        return f"{self.head} :- {body_str}."


Clause = Union[Fact, Rule]


class KnowledgeBase:
    """Container for facts and rules with lookup by name/arity"""

    def __init__(self):
        self._clauses: List[Clause] = []
        # Clause order within a predicate is the order solutions are produced in
        self._index: Dict[tuple, List[Clause]] = {}

    def add(self, clause: Clause) -> None:
        """Add a clause; an identical clause is stored once"""
        key = clause.head.indicator
        if key is None:
            raise ValueError(f"Clause head must be callable: {clause}")
        bucket = self._index.setdefault(key, [])
        if clause in bucket:
            return
        bucket.append(clause)
        self._clauses.append(clause)

    def get_matching_clauses(self, term: Term) -> Iterator[Clause]:
        """Clauses whose head has the same name and arity as `term`"""
        key = term.indicator
        if key is not None and key in self._index:
            yield from list(self._index[key])

    @property
    def facts(self) -> List[Fact]:
        return [c for c in self._clauses if isinstance(c, Fact)]

    @property
    def rules(self) -> List[Rule]:
        return [c for c in self._clauses if isinstance(c, Rule)]

    @property
    def clauses(self) -> List[Clause]:
        return self._clauses.copy()

    def clear(self) -> None:
        self._clauses.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._clauses)

    def __str__(self) -> str:
        lines = [str(clause) for clause in self._clauses]
        return "\n".join(lines) if lines else "Empty knowledge base"
