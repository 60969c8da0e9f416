"""
Few-shot example retrieval for MCR

Ranks worked translation examples by cosine similarity between the
embedding of the input sentence and each example's embedding, then
either takes the top matches or samples from a softmax over the scores.
"""

from typing import List, Dict, Any, Optional
import logging

import numpy as np

from .embeddings import EmbeddingProvider, TfIdfEmbeddingProvider
from .prompts import TRANSLATION_EXAMPLES

logger = logging.getLogger(__name__)


class ExampleRetriever:
    """
    Retrieves examples similar to a natural-language input.

    Temperature controls exploration vs exploitation:
    - None or 0: deterministic, most similar first
    - Low temperature (0.1): peaked distribution, nearly top-k
    - High temperature (5.0): more uniform, diverse selection
    """

    def __init__(
        self,
        examples: Optional[List[Dict[str, Any]]] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        seed: Optional[int] = None,
    ):
        """
        Args:
            examples: Dicts with 'text' and 'prolog' keys (defaults to the built-in bank)
            embedding_provider: Defaults to TF-IDF fitted on the examples
            seed: Seed for sampling when a temperature is used
        """
        self.examples = list(examples if examples is not None else TRANSLATION_EXAMPLES)
        self.embedding_provider = embedding_provider or TfIdfEmbeddingProvider(self.examples)
        self._rng = np.random.default_rng(seed)
        self._example_embeddings: List[np.ndarray] = []

        if self.examples:
            self._precompute_embeddings()

    def _normalize(self, vec: np.ndarray) -> np.ndarray:
        norm = np.linalg.norm(vec)
        if norm == 0:
            return vec
        return vec / norm

    def _embed_example(self, example: Dict[str, Any]) -> np.ndarray:
        text = f"{example.get('text', '')} {example.get('prolog', '')}"
        return self._normalize(np.array(self.embedding_provider.embed(text), dtype=float))

    def _precompute_embeddings(self) -> None:
        self._example_embeddings = [self._embed_example(ex) for ex in self.examples]

    def scores(self, text: str) -> np.ndarray:
        """Cosine similarity of `text` to every example, in example order"""
        query = self._normalize(np.array(self.embedding_provider.embed(text), dtype=float))
        return np.array([self._cosine_similarity(query, emb) for emb in self._example_embeddings])

    def retrieve(self, text: str, num_examples: int = 5,
                 temperature: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        Pick up to `num_examples` examples for `text`.

        Args:
            text: The natural-language input being translated
            num_examples: Number of examples to return
            temperature: Softmax temperature; None or 0 gives the top matches

        Returns:
            Example dicts, most relevant first when deterministic
        """
        if not self.examples or num_examples <= 0:
            return []

        scores = self.scores(text)
        count = min(num_examples, len(self.examples))

        if not temperature:
            # Stable sort keeps bank order among ties
            order = np.argsort(-scores, kind="stable")[:count]
            return [self.examples[i] for i in order]

        probabilities = self._softmax(scores, temperature)
        indices = self._rng.choice(len(self.examples), size=count, replace=False, p=probabilities)
        return [self.examples[i] for i in indices]

    def _softmax(self, scores: np.ndarray, temperature: float) -> np.ndarray:
        scaled = np.asarray(scores, dtype=float) / temperature
        # Numerical stability: subtract max before exp
        scaled = scaled - np.max(scaled)
        exp_scores = np.exp(scaled)
        return exp_scores / np.sum(exp_scores)

    def _cosine_similarity(self, vec1: np.ndarray, vec2: np.ndarray) -> float:
        norm1 = np.linalg.norm(vec1)
        norm2 = np.linalg.norm(vec2)
        if norm1 == 0 or norm2 == 0:
            return 0.0
        return float(np.dot(vec1, vec2) / (norm1 * norm2))

    def add_example(self, text: str, prolog: str, domain: str = "custom") -> None:
        """
        Add a worked example to the bank.

        The embedding space is not refitted, so words unseen at construction
        do not contribute to the new example's vector.
        """
        example = {"domain": domain, "text": text, "prolog": prolog}
        self.examples.append(example)
        self._example_embeddings.append(self._embed_example(example))
        logger.debug(f"Added few-shot example: {text!r} -> {prolog!r}")
