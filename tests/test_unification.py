"""
Tests for MCR unification
"""
import pytest
from mcr.terms import atom, var, compound
from mcr.unification import unify, resolve, Unifier


class TestBasicUnification:
    """Test basic unification operations"""

    def test_unify_atoms(self):
        assert unify(atom("john"), atom("john")) == {}
        assert unify(atom("john"), atom("mary")) is None

    def test_unify_variable_with_atom(self):
        result = unify(var("X"), atom("john"))
        assert result == {"X": atom("john")}

    def test_unify_variables(self):
        result = unify(var("X"), var("Y"))
        assert result is not None
        assert result.get("X") == var("Y") or result.get("Y") == var("X")

    def test_unify_compound(self):
        t1 = compound("parent", var("X"), atom("mary"))
        t2 = compound("parent", atom("john"), var("Y"))
        result = unify(t1, t2)
        assert result["X"] == atom("john")
        assert result["Y"] == atom("mary")

    def test_functor_and_arity_mismatch(self):
        assert unify(compound("p", atom("a")), compound("q", atom("a"))) is None
        assert unify(compound("f", atom("a")), compound("f", atom("a"), atom("b"))) is None

    def test_atom_does_not_unify_with_compound(self):
        assert unify(atom("f"), compound("f", atom("a"))) is None

    def test_shared_variable_consistency(self):
        """X cannot be both a and b"""
        t1 = compound("p", var("X"), var("X"))
        assert unify(t1, compound("p", atom("a"), atom("a"))) is not None
        assert unify(t1, compound("p", atom("a"), atom("b"))) is None

    def test_existing_bindings_respected(self):
        result = unify(var("X"), atom("b"), {"X": atom("a")})
        assert result is None

    def test_input_bindings_not_mutated(self):
        bindings = {"Y": atom("a")}
        unify(var("X"), atom("b"), bindings)
        assert bindings == {"Y": atom("a")}


class TestOccursCheck:

    def test_occurs_check_prevents_cyclic_binding(self):
        assert unify(var("X"), compound("f", var("X"))) is None

    def test_occurs_check_can_be_disabled(self):
        result = unify(var("X"), compound("f", var("X")), occurs_check=False)
        assert result is not None


class TestResolveAndTrace:

    def test_resolve_applies_bindings(self):
        bindings = unify(compound("p", var("X"), var("Y")), compound("p", atom("a"), var("X")))
        assert str(resolve(compound("pair", var("X"), var("Y")), bindings)) == "pair(a, a)"

    def test_trace_records_steps(self):
        unifier = Unifier(trace=True)
        result = unifier.unify(compound("p", var("X")), compound("p", atom("a")))
        assert result.success
        assert any("Bound: X = a" in step for step in result.steps)

    def test_failed_result_is_falsy(self):
        result = Unifier().unify(atom("a"), atom("b"))
        assert not result
