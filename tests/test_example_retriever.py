"""
Tests for TF-IDF embeddings and few-shot example retrieval
"""
import numpy as np
import pytest
from unittest.mock import MagicMock
from mcr.embeddings import EmbeddingProvider, TfIdfEmbeddingProvider
from mcr.example_retriever import ExampleRetriever
from mcr.prompts import TRANSLATION_EXAMPLES

EXAMPLES = [
    {"domain": "animals", "text": "Tweety is a bird.", "prolog": "bird(tweety)."},
    {"domain": "family", "text": "John is the parent of Mary.", "prolog": "parent(john, mary)."},
    {"domain": "geography", "text": "Paris is in France.", "prolog": "located_in(paris, france)."},
]


class TestTfIdfEmbeddingProvider:

    def test_protocol(self):
        assert isinstance(TfIdfEmbeddingProvider(["a b"]), EmbeddingProvider)

    def test_dimension_is_vocabulary_size(self):
        provider = TfIdfEmbeddingProvider(["the bird flies", "the fish swims"])
        assert provider.dimension == 5
        assert len(provider.embed("anything")) == 5

    def test_unknown_words_give_zero_vector(self):
        provider = TfIdfEmbeddingProvider(["the bird flies"])
        assert provider.embed("quantum chromodynamics") == [0.0, 0.0, 0.0]

    def test_rare_words_weigh_more(self):
        provider = TfIdfEmbeddingProvider(["the bird", "the fish", "the cat"])
        assert provider.idf["bird"] > provider.idf["the"]

    def test_example_dicts(self):
        provider = TfIdfEmbeddingProvider(EXAMPLES)
        assert "tweety" in provider.vocabulary
        assert "located_in" in provider.vocabulary

    def test_empty_text(self):
        provider = TfIdfEmbeddingProvider(["bird"])
        assert provider.embed("") == [0.0]


class TestExampleRetriever:
    """Similarity ranking and sampling"""

    def test_default_bank(self):
        retriever = ExampleRetriever()
        assert len(retriever.examples) == len(TRANSLATION_EXAMPLES)

    def test_most_similar_first(self):
        retriever = ExampleRetriever(EXAMPLES)
        result = retriever.retrieve("Is Paris in France?", num_examples=1)
        assert result == [EXAMPLES[2]]

    def test_ranking(self):
        retriever = ExampleRetriever(EXAMPLES)
        result = retriever.retrieve("Mary is the parent of Ann.", num_examples=3)
        assert result[0] is EXAMPLES[1]
        assert len(result) == 3

    def test_count_capped_by_bank(self):
        assert len(ExampleRetriever(EXAMPLES).retrieve("bird", num_examples=10)) == 3

    def test_no_examples(self):
        assert ExampleRetriever([]).retrieve("bird") == []

    def test_non_positive_count(self):
        assert ExampleRetriever(EXAMPLES).retrieve("bird", num_examples=0) == []

    def test_scores_in_example_order(self):
        scores = ExampleRetriever(EXAMPLES).scores("Tweety is a bird.")
        assert scores.shape == (3,)
        assert int(np.argmax(scores)) == 0

    def test_sampling_is_seeded(self):
        first = ExampleRetriever(EXAMPLES, seed=7).retrieve("bird", num_examples=2, temperature=1.0)
        second = ExampleRetriever(EXAMPLES, seed=7).retrieve("bird", num_examples=2, temperature=1.0)
        assert first == second
        assert len({e["text"] for e in first}) == 2

    def test_softmax(self):
        probabilities = ExampleRetriever(EXAMPLES)._softmax(np.array([1.0, 1.0, 1.0]), 0.5)
        assert np.allclose(probabilities, [1 / 3, 1 / 3, 1 / 3])

    def test_custom_embedding_provider(self):
        provider = MagicMock()
        provider.embed.side_effect = lambda text: [1.0, 0.0] if "bird" in text else [0.0, 1.0]
        retriever = ExampleRetriever(EXAMPLES, embedding_provider=provider)
        assert retriever.retrieve("a bird", num_examples=1) == [EXAMPLES[0]]

    def test_add_example(self):
        retriever = ExampleRetriever(list(EXAMPLES))
        retriever.add_example("Paris is in Europe.", "located_in(paris, europe).", domain="geography")
        assert len(retriever.examples) == 4
        assert retriever.scores("paris").shape == (4,)
