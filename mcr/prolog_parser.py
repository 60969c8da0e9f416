"""
Prolog text parser for MCR.

Reads standard Prolog clause syntax into terms:

    bird(tweety).
    flies(X) :- bird(X), \\+ penguin(X).
    parent(john, X)

Supported: atoms (plain, quoted, symbolic), variables, integers and floats,
double-quoted strings (read as atoms), lists with tails, conjunction `,`,
negation `\\+`, and the comparison operators `=`, `\\=`, `==`, `\\==`.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .terms import Term, Atom, Variable, Compound, make_list
from .knowledge import Fact, Rule, Clause

CLAUSE_TERMINATOR = "."
NECK = ":-"
COMPARISON_OPERATORS = ("=", "\\=", "==", "\\==")
NEGATION = "\\+"

_SYMBOL_CHARS = set("+-*/\\^<>=~:.?@#&$")
_NUMBER = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")
_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class PrologSyntaxError(SyntaxError):
    """Raised when text is not well-formed Prolog"""

    def __init__(self, message: str, position: Optional[int] = None, text: str = ""):
        self.position = position
        self.source = text
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{message}{where}")


@dataclass
class Token:
    kind: str  # atom, var, number, string, punct, end
    value: object
    position: int
    # True when an atom is immediately followed by '(' (functional notation)
    functional: bool = False


def tokenize(text: str) -> List[Token]:
    """
    Split Prolog text into tokens.

    A '.' followed by whitespace, a comment or end of input is the clause
    terminator; any other '.' is part of a symbolic atom.
    """
    tokens: List[Token] = []
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char.isspace():
            i += 1
            continue

        if char == "%":
            newline = text.find("\n", i)
            i = length if newline == -1 else newline + 1
            continue

        if text.startswith("/*", i):
            close = text.find("*/", i + 2)
            if close == -1:
                raise PrologSyntaxError("Unterminated block comment", i, text)
            i = close + 2
            continue

        if char.isdigit():
            match = _NUMBER.match(text, i)
            if match is None:
                raise PrologSyntaxError(f"Unexpected character {char!r}", i, text)
            literal = match.group(0)
            # "1." at clause end is the integer 1 followed by the terminator
            value = float(literal) if any(c in literal for c in ".eE") else int(literal)
            tokens.append(Token("number", value, i))
            i = match.end()
            continue

        if char.isalpha() or char == "_":
            match = _NAME.match(text, i)
            if match is None:
                raise PrologSyntaxError(f"Unexpected character {char!r}", i, text)
            name = match.group(0)
            end = match.end()
            if char.isupper() or char == "_":
                tokens.append(Token("var", name, i))
            else:
                tokens.append(Token("atom", name, i, functional=text.startswith("(", end)))
            i = end
            continue

        if char in "'\"":
            value, end = _read_quoted(text, i)
            if char == "'":
                tokens.append(Token("atom", value, i, functional=text.startswith("(", end)))
            else:
                tokens.append(Token("string", value, i))
            i = end
            continue

        if char in "()[],|":
            tokens.append(Token("punct", char, i))
            i += 1
            continue

        if char == "!" or char == ";":
            tokens.append(Token("atom", char, i, functional=text.startswith("(", i + 1)))
            i += 1
            continue

        if char in _SYMBOL_CHARS:
            if char == "." and (i + 1 >= length or text[i + 1].isspace() or text[i + 1] == "%"):
                tokens.append(Token("end", CLAUSE_TERMINATOR, i))
                i += 1
                continue
            start = i
            while i < length and text[i] in _SYMBOL_CHARS:
                # Stop before a terminating '.' glued to a symbol, e.g. "X = a."
                if text[i] == "." and i > start and (i + 1 >= length or text[i + 1].isspace()):
                    break
                i += 1
            symbol = text[start:i]
            tokens.append(Token("atom", symbol, start, functional=text.startswith("(", i)))
            continue

        raise PrologSyntaxError(f"Unexpected character {char!r}", i, text)

    return tokens


def _read_quoted(text: str, start: int) -> Tuple[str, int]:
    quote = text[start]
    chars = []
    i = start + 1
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            chars.append(text[i + 1])
            i += 2
            continue
        if char == quote:
            # Doubled quote is an escaped quote
            if text.startswith(quote * 2, i):
                chars.append(quote)
                i += 2
                continue
            return "".join(chars), i + 1
        chars.append(char)
        i += 1
    raise PrologSyntaxError("Unterminated quoted text", start, text)


class Parser:
    """Recursive-descent parser over a token list"""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0
        self._anonymous = 0

    # Token helpers

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _advance(self) -> Token:
        token = self._peek()
        if token is None:
            raise PrologSyntaxError("Unexpected end of input", len(self.text), self.text)
        self.pos += 1
        return token

    def _at(self, kind: str, value: object = None) -> bool:
        token = self._peek()
        return token is not None and token.kind == kind and (value is None or token.value == value)

    def _expect(self, kind: str, value: object = None) -> Token:
        token = self._peek()
        if not self._at(kind, value):
            expected = value if value is not None else kind
            if token is None:
                raise PrologSyntaxError(f"Expected {expected!r} but input ended", len(self.text), self.text)
            raise PrologSyntaxError(f"Expected {expected!r} but found {token.value!r}", token.position, self.text)
        return self._advance()

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    # Grammar

    def parse_clause_term(self) -> Term:
        """term1200: body [':-' body]"""
        head = self.parse_conjunction()
        if self._at("atom", NECK):
            self._advance()
            body = self.parse_conjunction()
            return Compound(NECK, [head, body])
        return head

    def parse_conjunction(self) -> Term:
        """term1000: goal (',' goal)*, right associative"""
        left = self.parse_goal()
        if self._at("punct", ","):
            self._advance()
            return Compound(",", [left, self.parse_conjunction()])
        return left

    def parse_goal(self) -> Term:
        """term900: ['\\+'] comparison"""
        if self._at("atom", NEGATION) and not self._peek().functional:
            self._advance()
            return Compound(NEGATION, [self.parse_goal()])
        return self.parse_comparison()

    def parse_comparison(self) -> Term:
        """term700: primary [op primary]"""
        left = self.parse_primary()
        token = self._peek()
        if token is not None and token.kind == "atom" and token.value in COMPARISON_OPERATORS:
            self._advance()
            right = self.parse_primary()
            return Compound(token.value, [left, right])
        return left

    def parse_primary(self) -> Term:
        token = self._advance()

        if token.kind == "number":
            return Atom(token.value)

        if token.kind == "var":
            if token.value == "_":
                self._anonymous += 1
                return Variable(f"_G{self._anonymous}")
            return Variable(token.value)

        if token.kind == "string":
            return Atom(token.value)

        if token.kind == "punct":
            if token.value == "(":
                inner = self.parse_clause_term()
                self._expect("punct", ")")
                return inner
            if token.value == "[":
                return self._parse_list()
            raise PrologSyntaxError(f"Unexpected {token.value!r}", token.position, self.text)

        if token.kind == "atom":
            if token.value == "-" and self._at("number"):
                return Atom(-self._advance().value)
            if token.functional:
                self._expect("punct", "(")
                args = self._parse_arguments(")")
                return Compound(token.value, args)
            if token.value in (NECK, NEGATION) or token.value in COMPARISON_OPERATORS:
                raise PrologSyntaxError(f"Operator {token.value!r} used as an operand", token.position, self.text)
            return Atom(token.value)

        raise PrologSyntaxError(f"Unexpected {token.value!r}", token.position, self.text)

    def _parse_argument(self) -> Term:
        return self.parse_goal()

    def _parse_arguments(self, closing: str) -> List[Term]:
        args = [self._parse_argument()]
        while self._at("punct", ","):
            self._advance()
            args.append(self._parse_argument())
        self._expect("punct", closing)
        return args

    def _parse_list(self) -> Term:
        if self._at("punct", "]"):
            self._advance()
            return make_list([])
        items = [self._parse_argument()]
        while self._at("punct", ","):
            self._advance()
            items.append(self._parse_argument())
        tail = None
        if self._at("punct", "|"):
            self._advance()
            tail = self._parse_argument()
        self._expect("punct", "]")
        return make_list(items, tail)


def flatten_conjunction(term: Term) -> List[Term]:
    """Turn ','(A, ','(B, C)) into [A, B, C]"""
    goals = []
    while isinstance(term, Compound) and term.functor == "," and term.arity == 2:
        goals.append(term.args[0])
        term = term.args[1]
    goals.append(term)
    return goals


def _check_callable(term: Term, role: str, parser: Parser) -> None:
    if isinstance(term, Variable):
        raise PrologSyntaxError(f"{role} cannot be a variable: {term}", None, parser.text)
    if isinstance(term, Atom) and isinstance(term.value, (int, float)):
        raise PrologSyntaxError(f"{role} cannot be a number: {term}", None, parser.text)


def _to_clause(term: Term, parser: Parser) -> Clause:
    if isinstance(term, Compound) and term.functor == NECK and term.arity == 2:
        head, body = term.args
        _check_callable(head, "Clause head", parser)
        if isinstance(head, Compound) and head.functor in (",", NECK):
            raise PrologSyntaxError(f"Invalid clause head: {head}", None, parser.text)
        goals = flatten_conjunction(body)
        for goal in goals:
            _check_callable(goal, "Body goal", parser)
        return Rule(head, goals)
    _check_callable(term, "Clause", parser)
    if isinstance(term, Compound) and term.functor == ",":
        raise PrologSyntaxError(f"A fact cannot be a conjunction: {term}", None, parser.text)
    return Fact(term)


def parse_program(text: str) -> List[Clause]:
    """
    Parse a sequence of terminated clauses.

    Raises:
        PrologSyntaxError: if any clause is malformed or unterminated
    """
    parser = Parser(text)
    clauses = []
    while not parser.at_end:
        term = parser.parse_clause_term()
        parser._expect("end", CLAUSE_TERMINATOR)
        clauses.append(_to_clause(term, parser))
    return clauses


def parse_clause(text: str) -> Clause:
    """Parse exactly one terminated clause"""
    clauses = parse_program(text)
    if len(clauses) != 1:
        raise PrologSyntaxError(f"Expected exactly one clause, found {len(clauses)}", None, text)
    return clauses[0]


def parse_query(text: str) -> List[Term]:
    """
    Parse a query into its list of goals.

    A single trailing terminator is tolerated so that "bird(X)." and
    "bird(X)" read the same.
    """
    parser = Parser(text)
    if parser.at_end:
        raise PrologSyntaxError("Empty query", 0, text)
    term = parser.parse_conjunction()
    if parser._at("end"):
        parser._advance()
    if not parser.at_end:
        token = parser._peek()
        raise PrologSyntaxError(f"Unexpected {token.value!r} after query", token.position, text)
    goals = flatten_conjunction(term)
    for goal in goals:
        _check_callable(goal, "Query goal", parser)
    return goals


def parse_term(text: str) -> Term:
    """Parse a single term (no terminator)"""
    parser = Parser(text)
    term = parser.parse_goal()
    if not parser.at_end:
        token = parser._peek()
        raise PrologSyntaxError(f"Unexpected {token.value!r} after term", token.position, text)
    return term
