"""
Reasoning sessions for MCR

A session owns an ordered program of accepted clause strings, the live
ontology and its own usage counters. Every mutation of the program goes
through validation and is followed by a full re-consult of the engine.
"""

from typing import List, Dict, Any, Optional, Union, Tuple
import asyncio
import logging
import uuid

from .agent import ReasoningLoop, ReasoningDriver, CallableReasoningDriver, ActionFunction
from .engine import PrologEngine
from .evaluator import Solution
from .llm_providers import LLMProvider, ChatMessage
from .metrics import LLMUsage, MeteredChat, UsageSink
from .ontology import OntologyManager, OntologyError, parse_clause_shape
from .prolog_parser import CLAUSE_TERMINATOR, PrologSyntaxError, parse_clause
from .prompts import SYSTEM_PROMPT, build_fallback_prompt
from .results import (
    AssertResult, RetractResult, QueryResult, ReasonResult,
    INVALID_SYNTAX, ONTOLOGY_VIOLATION, NOT_FOUND, TRANSLATION_FAILURE,
)
from .translation import (
    StrategyRegistry, StrategySpec, TranslationContext, TranslationOutcome, translate_with_retry,
)

logger = logging.getLogger(__name__)

OntologySpec = Union[None, OntologyManager, Dict[str, Any]]


class Session:
    """
    One conversation with the knowledge base.

    Not safe for overlapping operations: await each call before the next.
    """

    def __init__(self,
                 ontology: OntologySpec = None,
                 program: Optional[List[str]] = None,
                 session_id: Optional[str] = None,
                 llm: Optional[LLMProvider] = None,
                 translator: StrategySpec = None,
                 registry: Optional[StrategyRegistry] = None,
                 max_translation_attempts: int = 2,
                 retry_delay: float = 0.5,
                 max_reasoning_steps: int = 5,
                 sub_symbolic_confidence: float = 0.7,
                 max_depth: int = 100,
                 max_suggestions: int = 5,
                 usage_sink: Optional[UsageSink] = None):
        self.session_id = session_id or str(uuid.uuid4())
        self.max_suggestions = max_suggestions
        self.ontology = self._coerce_ontology(ontology)
        self._initial_ontology = self.ontology.copy()

        self.engine = PrologEngine(max_depth=max_depth)
        self._program: List[str] = []

        self.llm = llm
        self.usage = LLMUsage()
        sinks: List[UsageSink] = [self.usage.record]
        if usage_sink is not None:
            sinks.append(usage_sink)
        self.chat: Optional[MeteredChat] = MeteredChat(llm, sinks) if llm is not None else None

        self.registry = registry or StrategyRegistry()
        self.translator = translator
        # Checked now so a bad translator setting fails at construction;
        # names are looked up again on every translation
        self.registry.resolve(translator)

        self.max_translation_attempts = max_translation_attempts
        self.retry_delay = retry_delay
        self.max_reasoning_steps = max_reasoning_steps
        self.sub_symbolic_confidence = sub_symbolic_confidence

        for clause in program or []:
            result = self.assert_prolog(clause)
            if not result.success:
                logger.warning(f"Skipping initial clause {clause!r}: {result.error}")

    def _coerce_ontology(self, ontology: OntologySpec) -> OntologyManager:
        if ontology is None:
            return OntologyManager(max_suggestions=self.max_suggestions)
        if isinstance(ontology, OntologyManager):
            return ontology.copy()
        if isinstance(ontology, dict):
            return OntologyManager.from_dict(ontology, self.max_suggestions)
        raise TypeError(f"Ontology must be an OntologyManager or dict, got {type(ontology).__name__}")

    @property
    def program(self) -> List[str]:
        return list(self._program)

    def _consult(self) -> None:
        self.engine.consult("\n".join(self._program))

    # Direct symbolic manipulation

    def _check_clause(self, text: Any) -> Tuple[str, Optional[AssertResult]]:
        """Normalize `text` and return a failure result if it may not be accepted"""
        clause = text.strip() if isinstance(text, str) else ""
        if not clause.endswith(CLAUSE_TERMINATOR):
            return clause, AssertResult(False, prolog=clause,
                                        error=f"Clause must end with '{CLAUSE_TERMINATOR}': {clause!r}",
                                        error_type=INVALID_SYNTAX)
        try:
            parse_clause(clause)
        except PrologSyntaxError as e:
            return clause, AssertResult(False, prolog=clause, error=f"Invalid Prolog syntax: {e}",
                                        error_type=INVALID_SYNTAX)
        try:
            self.ontology.validate_clause_text(clause)
        except OntologyError as e:
            return clause, AssertResult(False, prolog=clause, error=str(e), error_type=ONTOLOGY_VIOLATION)
        return clause, None

    def assert_prolog(self, text: str) -> AssertResult:
        """
        Add one terminated clause to the program.

        Duplicates are kept; the engine stores an identical clause once.
        """
        clause, failure = self._check_clause(text)
        if failure is not None:
            logger.info(f"Rejected clause {clause!r}: {failure.error}")
            return failure

        self._program.append(clause)
        self._consult()
        logger.debug(f"Asserted {clause}")
        return AssertResult(True, prolog=clause, message="Clause asserted")

    def retract_prolog(self, text: str) -> RetractResult:
        """Remove every exact occurrence of a clause"""
        clause = text.strip() if isinstance(text, str) else ""
        removed = self._program.count(clause)
        if not removed:
            return RetractResult(False, prolog=clause, error=f"Clause not found: {clause!r}",
                                 error_type=NOT_FOUND)

        self._program = [c for c in self._program if c != clause]
        self._consult()
        logger.debug(f"Retracted {removed} occurrence(s) of {clause}")
        return RetractResult(True, prolog=clause, removed=removed, message="Clause retracted")

    def _revalidate(self, clauses: List[str]) -> List[str]:
        """Rebuild the program from `clauses`, keeping those valid now; return the dropped ones"""
        kept, dropped = [], []
        for clause in clauses:
            normalized, failure = self._check_clause(clause)
            if failure is None:
                kept.append(normalized)
            else:
                dropped.append(clause)
                logger.warning(f"Dropping clause {clause!r}: {failure.error}")
        self._program = kept
        self._consult()
        return dropped

    def reload_ontology(self, ontology: OntologySpec) -> List[str]:
        """
        Replace the ontology and revalidate the whole program.

        Returns:
            The clauses that no longer validate and were removed
        """
        self.ontology = self._coerce_ontology(ontology)
        return self._revalidate(self.program)

    def save_state(self) -> Dict[str, Any]:
        return {
            "program": self.program,
            "sessionId": self.session_id,
            "ontology": self.ontology.to_dict(),
        }

    def load_state(self, snapshot: Dict[str, Any]) -> List[str]:
        """
        Restore program, ontology and session id from `save_state` output.

        Clauses the restored ontology rejects are skipped with a warning.

        Returns:
            The skipped clauses
        """
        self.session_id = snapshot.get("sessionId") or self.session_id
        self.ontology = OntologyManager.from_dict(snapshot.get("ontology"), self.max_suggestions)
        return self._revalidate(list(snapshot.get("program") or []))

    def clear(self) -> None:
        """Empty the program and restore the construction-time ontology"""
        self._program = []
        self.ontology = self._initial_ontology.copy()
        self._consult()

    # Queries

    def _solve_all(self, query_text: str) -> List[Solution]:
        return list(self.engine.solve(query_text))

    async def query(self, text: str, allow_sub_symbolic_fallback: bool = False) -> QueryResult:
        """Run a Prolog query; one trailing '.' is ignored"""
        return await self._run_query(text, text, allow_sub_symbolic_fallback)

    async def _run_query(self, text: str, question: str, allow_fallback: bool) -> QueryResult:
        query_text = text.strip() if isinstance(text, str) else ""
        if query_text.endswith(CLAUSE_TERMINATOR):
            query_text = query_text[:-1].rstrip()

        try:
            solutions = await asyncio.to_thread(self._solve_all, query_text)
        except PrologSyntaxError as e:
            return QueryResult(False, None, [f"Invalid query {query_text!r}: {e}"], 0.0,
                               prolog_query=query_text, error=str(e), error_type=INVALID_SYNTAX)

        if solutions:
            bindings = [b for b in (self.engine.format_answer(s) for s in solutions) if b]
            explanation = [f"Proven by the symbolic knowledge base ({len(solutions)} solution(s))."]
            return QueryResult(True, bindings, explanation, 1.0, prolog_query=query_text)

        explanation = [f"No proof found for {query_text}."]
        if allow_fallback and self.chat is not None:
            try:
                response = await self.chat([
                    ChatMessage("system", SYSTEM_PROMPT),
                    ChatMessage("user", build_fallback_prompt(question, self.program)),
                ])
            except Exception as e:
                logger.warning(f"Sub-symbolic fallback failed for {query_text!r}: {e}")
                explanation.append(f"Language model fallback failed: {e}")
                return QueryResult(False, None, explanation, 0.0, prolog_query=query_text, error=str(e))

            answer = response.text.strip()
            explanation.append(f"Answered by the language model: {answer}")
            return QueryResult(True, None, explanation, self.sub_symbolic_confidence,
                               prolog_query=query_text, answer=answer)

        return QueryResult(False, None, explanation, 0.0, prolog_query=query_text)

    # Natural language

    def _context_factory(self, feedback: Optional[str]) -> TranslationContext:
        return TranslationContext(ontology_terms=self.ontology.ontology_terms(), feedback=feedback,
                                  chat=self.chat)

    async def translate(self, text: str, translator: StrategySpec = None) -> TranslationOutcome:
        """
        Translate natural language with the retry chain.

        Raises:
            The last strategy error when every attempt fails
        """
        strategies = self.registry.resolve(self.translator if translator is None else translator)
        return await translate_with_retry(text, strategies, self._context_factory,
                                          max_attempts=self.max_translation_attempts,
                                          retry_delay=self.retry_delay, engine=self.engine)

    async def assert_statement(self, text: str) -> AssertResult:
        """Translate a statement into a clause and assert it"""
        try:
            outcome = await self.translate(text)
        except Exception as e:
            logger.warning(f"Translation failed for {text!r}: {e}")
            return AssertResult(False, error=str(e), error_type=TRANSLATION_FAILURE, natural_language=text)

        if not outcome.prolog.endswith(CLAUSE_TERMINATOR):
            result = AssertResult(False, prolog=outcome.prolog,
                                  error=f"Translation is a query, not a fact or rule: {outcome.prolog!r}",
                                  error_type=INVALID_SYNTAX)
        else:
            result = self.assert_prolog(outcome.prolog)

        result.natural_language = text
        result.strategy = outcome.strategy
        result.attempts = outcome.attempts
        return result

    async def nquery(self, text: str, allow_sub_symbolic_fallback: bool = False) -> QueryResult:
        """Translate a question into a query and run it"""
        try:
            outcome = await self.translate(text)
        except Exception as e:
            logger.warning(f"Translation failed for {text!r}: {e}")
            return QueryResult(False, None, [f"Translation failed: {e}"], 0.0,
                               error=str(e), error_type=TRANSLATION_FAILURE)

        if outcome.prolog.endswith(CLAUSE_TERMINATOR):
            return QueryResult(False, None, ["Translation produced a clause, not a query."], 0.0,
                               prolog_query=outcome.prolog,
                               error=f"Expected a query without a terminator: {outcome.prolog!r}",
                               error_type=INVALID_SYNTAX)

        result = await self._run_query(outcome.prolog, text, allow_sub_symbolic_fallback)
        result.prolog_query = outcome.prolog
        return result

    async def reason(self, task: str, max_steps: Optional[int] = None,
                     allow_sub_symbolic_fallback: bool = False,
                     driver: Union[None, ReasoningDriver, ActionFunction] = None) -> ReasonResult:
        """Run the agentic reasoning loop on `task`"""
        if driver is not None and not isinstance(driver, ReasoningDriver):
            driver = CallableReasoningDriver(driver)
        loop = ReasoningLoop(self, driver)
        steps = self.max_reasoning_steps if max_steps is None else max_steps
        return await loop.run(task, max_steps=steps, allow_sub_symbolic_fallback=allow_sub_symbolic_fallback)

    # Convenience builders

    @staticmethod
    def _fact_text(predicate: str, *args: str) -> str:
        return f"{predicate}({', '.join(args)})."

    @staticmethod
    def _rule_text(head: str, body: Union[str, List[str]]) -> str:
        literals = [body] if isinstance(body, str) else list(body)
        literals = [lit.strip().rstrip(CLAUSE_TERMINATOR) for lit in literals]
        return f"{head.strip().rstrip(CLAUSE_TERMINATOR)} :- {', '.join(literals)}."

    def add_fact(self, entity: str, type_name: str) -> AssertResult:
        """Assert `type_name(entity).`"""
        return self.assert_prolog(self._fact_text(type_name, entity))

    def add_relationship(self, subject: str, relation: str, obj: str) -> AssertResult:
        """Assert `relation(subject, obj).`"""
        return self.assert_prolog(self._fact_text(relation, subject, obj))

    def add_rule(self, head: str, body: Union[str, List[str]]) -> AssertResult:
        return self.assert_prolog(self._rule_text(head, body))

    def remove_fact(self, entity: str, type_name: str) -> RetractResult:
        return self.retract_prolog(self._fact_text(type_name, entity))

    def remove_relationship(self, subject: str, relation: str, obj: str) -> RetractResult:
        return self.retract_prolog(self._fact_text(relation, subject, obj))

    def remove_rule(self, head: str, body: Union[str, List[str]]) -> RetractResult:
        return self.retract_prolog(self._rule_text(head, body))

    # Ontology

    def add_type(self, name: str) -> None:
        self.ontology.add_type(name)

    def define_relationship_type(self, name: str) -> None:
        self.ontology.add_relationship(name)

    def add_constraint(self, name: str) -> None:
        self.ontology.add_constraint(name)

    def add_synonym(self, alias: str, canonical: str) -> None:
        self.ontology.add_synonym(alias, canonical)

    def get_ontology(self) -> Dict[str, Any]:
        return self.ontology.to_dict()

    # Introspection

    def get_knowledge_graph(self, format: str = "prolog") -> Union[str, Dict[str, Any]]:
        """
        The program as text, or split into facts and rules alongside the
        declared vocabulary.

        Raises:
            ValueError: for a format other than "prolog" or "json"
        """
        if format == "prolog":
            return "\n".join(self._program)
        if format == "json":
            facts, rules = [], []
            for clause in self._program:
                (rules if parse_clause_shape(clause).is_rule else facts).append(clause)
            return {
                "facts": facts,
                "rules": rules,
                "entities": sorted(self.ontology.types),
                "relationships": sorted(self.ontology.relationships),
                "constraints": sorted(self.ontology.constraints),
            }
        raise ValueError(f"Unknown knowledge graph format: {format}. Choose from: ['prolog', 'json']")

    def get_llm_metrics(self) -> Dict[str, Any]:
        return self.usage.to_dict()

    def __repr__(self) -> str:
        return f"Session(id={self.session_id!r}, clauses={len(self._program)}, ontology={self.ontology!r})"
