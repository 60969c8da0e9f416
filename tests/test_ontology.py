"""
Tests for ontology validation
"""
import pytest
from mcr.ontology import (
    OntologyManager, OntologyError, OntologyErrorKind,
    parse_clause_shape, split_top_level,
)


@pytest.fixture
def ontology():
    return OntologyManager(
        types=["bird", "penguin", "person", "flies"],
        relationships=["parent", "sibling", "has_color"],
        constraints=["disjoint_bird_fish"],
        synonyms={"avian": "bird", "colour": "has_color"},
    )


def error_kind(ontology, text):
    with pytest.raises(OntologyError) as exc_info:
        ontology.validate_clause_text(text)
    return exc_info.value.kind


class TestClauseShape:

    def test_fact_shape(self):
        shape = parse_clause_shape("parent(john, mary).")
        assert shape.head == "parent"
        assert shape.args == ["john", "mary"]
        assert not shape.is_rule

    def test_rule_shape(self):
        shape = parse_clause_shape("flies(X) :- bird(X), \\+ penguin(X).")
        assert shape.head == "flies"
        assert shape.body == ["bird(X)", "\\+ penguin(X)"]

    def test_zero_arity_head(self):
        assert parse_clause_shape("raining.").args == []

    def test_nested_arguments_kept_whole(self):
        shape = parse_clause_shape("likes(john, f(a, b), [x, y]).")
        assert shape.args == ["john", "f(a, b)", "[x, y]"]

    def test_malformed_head(self):
        with pytest.raises(OntologyError) as exc_info:
            parse_clause_shape("flies X.")
        assert exc_info.value.kind == OntologyErrorKind.MALFORMED_HEAD

    def test_split_respects_quotes(self):
        assert split_top_level("'a, b', c") == ["'a, b'", " c"]


class TestFactValidation:
    """Head name and arity checks"""

    def test_type_fact_accepted(self, ontology):
        ontology.validate_clause_text("bird(tweety).")

    def test_relationship_fact_accepted(self, ontology):
        ontology.validate_clause_text("parent(john, mary).")

    def test_synonym_resolved(self, ontology):
        ontology.validate_clause_text("avian(tweety).")
        ontology.validate_clause_text("colour(tweety, yellow).")

    def test_malformed_name(self, ontology):
        assert error_kind(ontology, "Bird(tweety).") == OntologyErrorKind.MALFORMED_NAME

    def test_type_arity(self, ontology):
        assert error_kind(ontology, "bird(tweety, opus).") == OntologyErrorKind.ARITY_MISMATCH

    def test_relationship_arity(self, ontology):
        assert error_kind(ontology, "parent(john).") == OntologyErrorKind.ARITY_MISMATCH

    def test_not_in_ontology_with_suggestions(self, ontology):
        with pytest.raises(OntologyError) as exc_info:
            ontology.validate_clause_text("birdie(tweety).")
        error = exc_info.value
        assert error.kind == OntologyErrorKind.NOT_IN_ONTOLOGY
        assert "bird" in error.suggestions
        assert "Did you mean" in str(error)

    def test_not_in_ontology_without_suggestions(self, ontology):
        with pytest.raises(OntologyError) as exc_info:
            ontology.validate_clause_text("xylophone(a).")
        assert "No similar terms found" in str(exc_info.value)
        assert exc_info.value.suggestions == []

    def test_empty_ontology_rejects_everything(self):
        with pytest.raises(OntologyError):
            OntologyManager().validate_clause_text("bird(tweety).")

    def test_suggestions_capped(self):
        ontology = OntologyManager(types=[f"bird{i}" for i in range(10)], max_suggestions=3)
        assert len(ontology.suggestions("birx")) == 3


class TestRuleValidation:
    """Body literal checks"""

    def test_rule_accepted(self, ontology):
        ontology.validate_clause_text("flies(X) :- bird(X), \\+ penguin(X).")

    def test_comparison_literal_accepted(self, ontology):
        ontology.validate_clause_text("sibling(X, Y) :- person(X), person(Y), X \\= Y.")

    def test_builtin_goal_accepted(self, ontology):
        ontology.validate_clause_text("flies(X) :- true.")

    def test_empty_body(self, ontology):
        assert error_kind(ontology, "flies(X) :- .") == OntologyErrorKind.EMPTY_BODY

    def test_undefined_body_predicate(self, ontology):
        with pytest.raises(OntologyError) as exc_info:
            ontology.validate_clause_text("flies(X) :- wings(X).")
        assert exc_info.value.kind == OntologyErrorKind.NOT_IN_ONTOLOGY
        assert "Rule body predicate 'wings'" in str(exc_info.value)

    def test_undefined_predicate_inside_negation(self, ontology):
        assert error_kind(ontology, "flies(X) :- bird(X), \\+ fish(X).") == OntologyErrorKind.NOT_IN_ONTOLOGY

    def test_malformed_body_literal(self, ontology):
        assert error_kind(ontology, "flies(X) :- Bird(X).") == OntologyErrorKind.MALFORMED_BODY_PREDICATE

    def test_unknown_operator(self, ontology):
        assert error_kind(ontology, "flies(X) :- X \\\\ Y.") == OntologyErrorKind.MALFORMED_BODY_PREDICATE


class TestOntologyState:

    def test_mutators(self):
        ontology = OntologyManager()
        ontology.add_type("fish")
        ontology.add_relationship("eats")
        ontology.add_constraint("no_flying_fish")
        ontology.add_synonym("swimmer", "fish")
        ontology.validate_clause_text("swimmer(nemo).")
        ontology.validate_constraint("no_flying_fish")
        assert ontology.ontology_terms() == ["eats", "fish", "swimmer"]

    def test_unknown_constraint(self, ontology):
        with pytest.raises(OntologyError):
            ontology.validate_constraint("unknown")

    def test_dict_round_trip(self, ontology):
        restored = OntologyManager.from_dict(ontology.to_dict())
        assert restored == ontology
        assert restored.to_dict()["types"] == ["bird", "flies", "penguin", "person"]

    def test_copy_is_independent(self, ontology):
        clone = ontology.copy()
        clone.add_type("fish")
        assert "fish" not in ontology.types
