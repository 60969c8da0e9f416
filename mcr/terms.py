"""
Term representations for MCR

This module defines the core term types used by the Prolog engine:
- Atom: Constants like 'tweety', 42 or 'New York'
- Variable: Variables like 'X', 'Bird' or '_Tmp'
- Compound: Complex terms like 'parent(john, mary)'

Lists are compounds with the functor '[|]' terminated by the atom '[]',
so `[a, b]` is `'[|]'(a, '[|]'(b, []))`.
"""

from typing import List, Dict, Any, Set, Optional
from dataclasses import dataclass
from abc import ABC, abstractmethod
import re

LIST_FUNCTOR = "[|]"
EMPTY_LIST = "[]"

# Goal operators rendered infix/prefix by __str__
INFIX_OPERATORS = {"=", "\\=", "==", "\\==", ","}
PREFIX_OPERATORS = {"\\+"}

_PLAIN_ATOM = re.compile(r"^[a-z][a-zA-Z0-9_]*$")


class Term(ABC):
    """Abstract base class for all terms"""

    @abstractmethod
    def substitute(self, bindings: Dict[str, 'Term']) -> 'Term':
        """
        Apply variable substitutions to this term.

        Args:
            bindings: Dictionary mapping variable names to terms.
                     Chains of variables are followed transitively.

        Returns:
            New term with all variables replaced according to bindings.
            Returns self if no substitutions apply.

        Examples:
            >>> term = compound("p", var("X"), var("Y"))
            >>> str(term.substitute({"X": atom("a"), "Y": atom("b")}))
            'p(a, b)'
        """
        pass

    @abstractmethod
    def get_variables(self) -> Set[str]:
        """Get all variable names in this term"""
        pass

    @property
    def indicator(self) -> Optional[tuple]:
        """Name/arity pair used for indexing, None for variables"""
        return None


@dataclass(frozen=True)
class Atom(Term):
    """Represents an atomic constant (symbol or number)"""
    value: Any

    def substitute(self, bindings: Dict[str, Term]) -> Term:
        """Atoms are not affected by substitution"""
        return self

    def get_variables(self) -> Set[str]:
        """Atoms contain no variables"""
        return set()

    @property
    def indicator(self) -> Optional[tuple]:
        return (self.value, 0)

    @property
    def is_number(self) -> bool:
        return isinstance(self.value, (int, float)) and not isinstance(self.value, bool)

    def __str__(self) -> str:
        if self.is_number:
            return str(self.value)
        text = str(self.value)
        if _PLAIN_ATOM.match(text) or text in (EMPTY_LIST, "!", ";"):
            return text
        escaped = text.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"


@dataclass(frozen=True)
class Variable(Term):
    """Represents a logical variable"""
    name: str

    def substitute(self, bindings: Dict[str, Term]) -> Term:
        """Apply substitution to this variable, following chains"""
        result = dereference(self, bindings)
        if result is self or isinstance(result, Variable):
            return result
        return result.substitute(bindings)

    def get_variables(self) -> Set[str]:
        """Variables contain themselves"""
        return {self.name}

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Compound(Term):
    """Represents a compound term with functor and arguments"""
    functor: str
    args: tuple  # Tuple[Term, ...] for immutability

    def __init__(self, functor: str, args: List[Term]):
        if not functor:
            raise ValueError("Compound term functor cannot be empty")
        if not isinstance(args, (list, tuple)):
            raise TypeError(f"Compound args must be list or tuple, got {type(args)}")
        object.__setattr__(self, 'functor', functor)
        object.__setattr__(self, 'args', tuple(args))

    @property
    def arity(self) -> int:
        """Number of arguments"""
        return len(self.args)

    @property
    def indicator(self) -> Optional[tuple]:
        return (self.functor, self.arity)

    def substitute(self, bindings: Dict[str, Term]) -> Term:
        """Apply substitutions to all arguments"""
        if not bindings:
            return self
        return Compound(self.functor, [arg.substitute(bindings) for arg in self.args])

    def get_variables(self) -> Set[str]:
        """Get variables from all arguments"""
        variables = set()
        for arg in self.args:
            variables.update(arg.get_variables())
        return variables

    def __str__(self) -> str:
        if self.functor == LIST_FUNCTOR and self.arity == 2:
            return _list_to_str(self)
        if self.functor in INFIX_OPERATORS and self.arity == 2:
            left, right = self.args
            separator = ", " if self.functor == "," else f" {self.functor} "
            return f"{left}{separator}{right}"
        if self.functor in PREFIX_OPERATORS and self.arity == 1:
            return f"{self.functor} {self.args[0]}"
        args_str = ", ".join(str(arg) for arg in self.args)
        return f"{Atom(self.functor)}({args_str})"


def _list_to_str(term: Compound) -> str:
    items = []
    tail: Term = term
    while isinstance(tail, Compound) and tail.functor == LIST_FUNCTOR and tail.arity == 2:
        items.append(str(tail.args[0]))
        tail = tail.args[1]
    if isinstance(tail, Atom) and tail.value == EMPTY_LIST:
        return f"[{', '.join(items)}]"
    return f"[{', '.join(items)}|{tail}]"


def dereference(variable: Variable, bindings: Dict[str, Term]) -> Term:
    """
    Follow variable bindings to find the final value.

    Follows chains of variable-to-variable bindings until a non-variable
    term or an unbound variable is found. Circular chains stop at the
    first repeated variable.

    Examples:
        >>> dereference(Variable("X"), {"X": Variable("Y"), "Y": Atom("a")})
        Atom(value='a')
    """
    if variable.name not in bindings:
        return variable

    result = bindings[variable.name]
    visited = {variable.name}

    while isinstance(result, Variable) and result.name in bindings:
        if result.name in visited:
            break
        visited.add(result.name)
        result = bindings[result.name]

    return result


def atom(value: Any) -> Atom:
    """Create an atomic term"""
    return Atom(value)


def var(name: str) -> Variable:
    """
    Create a logical variable.

    Variables should start with an uppercase letter or underscore.
    """
    return Variable(name)


def compound(functor: str, *args: Term) -> Compound:
    """
    Create a compound term.

    Examples:
        >>> str(compound("parent", atom("john"), var("X")))
        'parent(john, X)'
    """
    return Compound(functor, list(args))


def make_list(items: List[Term], tail: Optional[Term] = None) -> Term:
    """Build a Prolog list term from Python items"""
    result: Term = tail if tail is not None else Atom(EMPTY_LIST)
    for item in reversed(items):
        result = Compound(LIST_FUNCTOR, [item, result])
    return result
