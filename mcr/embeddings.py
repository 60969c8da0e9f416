"""
Embedding providers for MCR

TF-IDF embeddings fitted on the few-shot example bank. Completely local,
no external API or server required.
"""

from typing import List, Dict, Optional, Protocol, runtime_checkable, Any
from collections import Counter
import math
import re

__all__ = ['EmbeddingProvider', 'TfIdfEmbeddingProvider']


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Protocol for embedding providers.

    All embedding providers must implement the embed() method.
    """

    def embed(self, text: str) -> List[float]:
        """
        Generate embedding vector for the given text.

        Args:
            text: Text to embed

        Returns:
            List of floats representing the embedding vector
        """
        ...

    @property
    def dimension(self) -> Optional[int]:
        """Return the dimensionality of embeddings from this provider, or None if unknown"""
        ...


class TfIdfEmbeddingProvider:
    """
    TF-IDF based embedding provider.

    The vocabulary and IDF weights are fixed at construction from the
    corpus; words outside the vocabulary contribute nothing.
    """

    def __init__(self, corpus: List[Any]):
        """
        Args:
            corpus: Either plain strings, or example dicts with 'text'
                    and/or 'prolog' keys
        """
        self.corpus = corpus
        self.vocabulary: Dict[str, int] = {}
        self.idf: Dict[str, float] = {}
        self._dimension: Optional[int] = None

        self._fit_corpus()

    def _tokenize(self, text: str) -> List[str]:
        """Lowercase, split on non-alphanumeric"""
        return re.findall(r'\w+', text.lower())

    def _extract_text(self, item: Any) -> str:
        if isinstance(item, str):
            return item
        if isinstance(item, dict):
            return f"{item.get('text', '')} {item.get('prolog', '')}"
        return str(item)

    def _fit_corpus(self) -> None:
        documents = [self._extract_text(item) for item in self.corpus]

        # word -> number of documents containing it
        doc_frequency: Counter = Counter()
        for doc in documents:
            doc_frequency.update(set(self._tokenize(doc)))

        self.vocabulary = {word: idx for idx, word in enumerate(sorted(doc_frequency))}
        self._dimension = len(self.vocabulary)

        # Smoothed IDF so words present in every document keep a small weight
        num_docs = len(documents)
        for word, df in doc_frequency.items():
            self.idf[word] = math.log((1 + num_docs) / (1 + df)) + 1.0

    def embed(self, text: str) -> List[float]:
        """
        Generate TF-IDF embedding for text.

        Returns:
            Dense vector of TF-IDF scores (dimension = vocabulary size)
        """
        tokens = self._tokenize(text)
        tf = Counter(tokens)
        total_terms = len(tokens) if tokens else 1

        embedding = [0.0] * self._dimension
        for word, count in tf.items():
            if word in self.vocabulary:
                embedding[self.vocabulary[word]] = (count / total_terms) * self.idf[word]
        return embedding

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __repr__(self) -> str:
        return f"TfIdfEmbeddingProvider(vocabulary_size={self._dimension}, corpus_size={len(self.corpus)})"
