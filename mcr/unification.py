"""
Unification for MCR terms

Functional API alongside a class-based unifier with optional tracing
and occurs check.
"""

from typing import Dict, Optional, List
from dataclasses import dataclass, field
from .terms import Term, Atom, Variable, Compound


@dataclass
class UnificationResult:
    """Result of unification with optional trace"""
    success: bool
    bindings: Optional[Dict[str, Term]] = None
    steps: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


class UnificationTrace:
    """Trace unification steps for debugging"""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self.steps: List[str] = []

    def add(self, message: str) -> None:
        if self.enabled:
            self.steps.append(message)

    def get_trace(self) -> List[str]:
        return self.steps.copy()


def unify(term1: Term, term2: Term,
          bindings: Optional[Dict[str, Term]] = None,
          occurs_check: bool = True) -> Optional[Dict[str, Term]]:
    """
    Unify two terms, extending `bindings`.

    Returns the extended bindings, or None when the terms do not unify.
    The input dictionary is never mutated.

    Examples:
        >>> unify(compound("p", var("X")), compound("p", atom("a")))
        {'X': Atom(value='a')}
    """
    result = Unifier(occurs_check=occurs_check).unify(term1, term2, bindings)
    return result.bindings if result.success else None


def resolve(term: Term, bindings: Dict[str, Term]) -> Term:
    """Apply bindings to a term until no bound variable remains"""
    return term.substitute(bindings)


class Unifier:
    """Robinson unification with optional occurs check and tracing"""

    def __init__(self, trace: bool = False, occurs_check: bool = True):
        self.trace = UnificationTrace(trace)
        self.occurs_check = occurs_check

    def unify(self, term1: Term, term2: Term,
              bindings: Optional[Dict[str, Term]] = None) -> UnificationResult:
        result_bindings = self._unify_internal(term1, term2, dict(bindings or {}))
        return UnificationResult(result_bindings is not None, result_bindings, self.trace.get_trace())

    def _unify_internal(self, term1: Term, term2: Term,
                        bindings: Dict[str, Term]) -> Optional[Dict[str, Term]]:
        term1 = self._deref(term1, bindings)
        term2 = self._deref(term2, bindings)

        self.trace.add(f"Unifying: {term1} with {term2}")

        if term1 == term2:
            return bindings

        if isinstance(term1, Variable):
            return self._bind_variable(term1, term2, bindings)

        if isinstance(term2, Variable):
            return self._bind_variable(term2, term1, bindings)

        if isinstance(term1, Compound) and isinstance(term2, Compound):
            return self._unify_compound(term1, term2, bindings)

        if isinstance(term1, Atom) and isinstance(term2, Atom):
            self.trace.add(f"Different constants: {term1} vs {term2}")
            return None

        self.trace.add(f"Cannot unify different types: {type(term1).__name__} vs {type(term2).__name__}")
        return None

    def _deref(self, term: Term, bindings: Dict[str, Term]) -> Term:
        """Follow variable bindings without rebuilding compound terms"""
        visited = set()
        while isinstance(term, Variable) and term.name in bindings and term.name not in visited:
            visited.add(term.name)
            term = bindings[term.name]
        return term

    def _bind_variable(self, variable: Variable, term: Term,
                       bindings: Dict[str, Term]) -> Optional[Dict[str, Term]]:
        if self.occurs_check and self._occurs_in(variable.name, term, bindings):
            self.trace.add(f"Occurs check failed: {variable.name} occurs in {term}")
            return None

        new_bindings = bindings.copy()
        new_bindings[variable.name] = term
        self.trace.add(f"Bound: {variable.name} = {term}")
        return new_bindings

    def _unify_compound(self, comp1: Compound, comp2: Compound,
                        bindings: Dict[str, Term]) -> Optional[Dict[str, Term]]:
        if comp1.functor != comp2.functor:
            self.trace.add(f"Different functors: {comp1.functor} vs {comp2.functor}")
            return None

        if comp1.arity != comp2.arity:
            self.trace.add(f"Different arity: {comp1.arity} vs {comp2.arity}")
            return None

        current_bindings = bindings
        for arg1, arg2 in zip(comp1.args, comp2.args):
            current_bindings = self._unify_internal(arg1, arg2, current_bindings)
            if current_bindings is None:
                return None

        return current_bindings

    def _occurs_in(self, var_name: str, term: Term,
                   bindings: Dict[str, Term]) -> bool:
        term = self._deref(term, bindings)

        if isinstance(term, Variable):
            return var_name == term.name
        if isinstance(term, Compound):
            return any(self._occurs_in(var_name, arg, bindings) for arg in term.args)
        return False
