"""
Feature extraction for sentiment classification.

Builds a vocabulary over normalized token sequences and converts each
sequence into a fixed-dimension term-frequency (optionally TF-IDF) vector.
Counting and IDF weights come from scikit-learn; token sequences are
already normalized, so the vectorizers are given them as-is.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Sequence

import numpy as np
from sklearn.feature_extraction.text import CountVectorizer, TfidfTransformer

logger = logging.getLogger("review_analytics")


VOCABULARY_SCHEMA_VERSION = 1
VOCABULARY_FILENAME = "vocabulary.json"


class FeatureDimensionError(ValueError):
    """Raised when a vector does not match the vocabulary it should come from."""
    pass


def _pretokenized(tokens: Sequence[str]) -> Sequence[str]:
    return tokens


class VocabularyModel:
    """
    Fitted vocabulary: token -> column index, plus IDF weights.

    Instances are immutable once fitted and safe to share between threads.
    """

    def __init__(
        self,
        token_to_index: dict[str, int],
        idf: np.ndarray | None = None,
        document_count: int = 0,
        use_idf: bool = True,
    ):
        if use_idf and idf is None:
            raise ValueError("IDF weights are required when use_idf is True")
        if idf is not None and len(idf) != len(token_to_index):
            raise FeatureDimensionError(
                f"IDF length ({len(idf)}) does not match vocabulary size "
                f"({len(token_to_index)})"
            )

        self.token_to_index = dict(token_to_index)
        self.idf = np.asarray(idf, dtype=np.float64) if idf is not None else None
        self.document_count = document_count
        self.use_idf = use_idf

    @property
    def size(self) -> int:
        return len(self.token_to_index)

    def __len__(self) -> int:
        return self.size

    def __contains__(self, token: str) -> bool:
        return token in self.token_to_index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VocabularyModel):
            return NotImplemented
        if self.idf is None or other.idf is None:
            same_idf = self.idf is None and other.idf is None
        else:
            same_idf = np.array_equal(self.idf, other.idf)
        return (
            self.token_to_index == other.token_to_index
            and same_idf
            and self.document_count == other.document_count
            and self.use_idf == other.use_idf
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": VOCABULARY_SCHEMA_VERSION,
            "use_idf": self.use_idf,
            "document_count": self.document_count,
            "token_to_index": self.token_to_index,
            "idf": self.idf.tolist() if self.idf is not None else None,
        }

    @classmethod
    def from_dict(cls, state: dict[str, Any]) -> "VocabularyModel":
        version = state.get("schema_version")
        if version != VOCABULARY_SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported vocabulary schema version: {version} "
                f"(expected {VOCABULARY_SCHEMA_VERSION})"
            )
        idf = state.get("idf")
        return cls(
            token_to_index={k: int(v) for k, v in state["token_to_index"].items()},
            idf=np.asarray(idf, dtype=np.float64) if idf is not None else None,
            document_count=int(state["document_count"]),
            use_idf=bool(state["use_idf"]),
        )

    def save(self, path: str | Path) -> None:
        """
        Save vocabulary state.

        Args:
            path: Save directory path
        """
        save_path = Path(path)
        save_path.mkdir(parents=True, exist_ok=True)

        with open(save_path / VOCABULARY_FILENAME, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)

        logger.info(f"Vocabulary saved to {save_path}")

    @classmethod
    def load(cls, path: str | Path) -> "VocabularyModel":
        """
        Load vocabulary state.

        Args:
            path: Load directory path

        Returns:
            Loaded VocabularyModel instance
        """
        load_path = Path(path)

        with open(load_path / VOCABULARY_FILENAME, "r", encoding="utf-8") as f:
            state = json.load(f)

        vocabulary = cls.from_dict(state)
        logger.info(f"Vocabulary loaded from {load_path} ({vocabulary.size} terms)")
        return vocabulary


class FeatureExtractor:
    """
    Fits a vocabulary and converts token sequences into feature vectors.
    """

    def __init__(
        self,
        max_vocab_size: int | None = 20000,
        min_document_frequency: int = 1,
        use_idf: bool = True,
    ):
        """
        Initialize the extractor.

        Args:
            max_vocab_size: Maximum vocabulary size; None keeps every term
            min_document_frequency: Minimum number of documents a term must
                appear in to be kept
            use_idf: Multiply term frequencies by inverse document frequency
        """
        if max_vocab_size is not None and max_vocab_size < 1:
            raise ValueError(f"max_vocab_size must be positive, got {max_vocab_size}")
        if min_document_frequency < 1:
            raise ValueError(
                f"min_document_frequency must be at least 1, got {min_document_frequency}"
            )

        self.max_vocab_size = max_vocab_size
        self.min_document_frequency = min_document_frequency
        self.use_idf = use_idf

    def fit(self, corpus: Sequence[Sequence[str]]) -> VocabularyModel:
        """
        Build vocabulary from token sequences.

        When the vocabulary is capped, terms with the lowest document
        frequency are dropped first; ties are broken alphabetically.

        Args:
            corpus: Normalized token sequences, one per document

        Returns:
            Fitted VocabularyModel
        """
        if len(corpus) == 0:
            raise ValueError("Cannot fit vocabulary on an empty corpus")

        logger.info(f"Building vocabulary from {len(corpus)} documents...")

        counter = CountVectorizer(analyzer=_pretokenized, binary=True)
        try:
            presence = counter.fit_transform(corpus)
        except ValueError as e:
            raise ValueError("Vocabulary is empty: no document has any token") from e

        terms = counter.get_feature_names_out()
        document_freq = np.asarray(presence.sum(axis=0)).ravel()
        logger.info(f"Total unique terms: {len(terms)}")

        kept = [
            i for i in range(len(terms))
            if document_freq[i] >= self.min_document_frequency
        ]
        kept.sort(key=lambda i: (-document_freq[i], terms[i]))
        if self.max_vocab_size is not None:
            kept = kept[:self.max_vocab_size]

        if not kept:
            raise ValueError("Vocabulary is empty after frequency filtering")

        # terms are sorted, so ascending column order is alphabetical order
        columns = np.array(sorted(kept))
        token_to_index = {str(terms[col]): idx for idx, col in enumerate(columns)}

        idf = None
        if self.use_idf:
            weighting = TfidfTransformer(norm=None, use_idf=True, smooth_idf=True)
            idf = weighting.fit(presence[:, columns]).idf_

        vocabulary = VocabularyModel(
            token_to_index=token_to_index,
            idf=idf,
            document_count=len(corpus),
            use_idf=self.use_idf,
        )
        logger.info(f"Final vocabulary size: {vocabulary.size}")
        return vocabulary

    def transform(self, tokens: Sequence[str], vocabulary: VocabularyModel) -> np.ndarray:
        """
        Convert one token sequence to a feature vector.

        Out-of-vocabulary tokens contribute nothing; an empty sequence gives
        the zero vector.

        Args:
            tokens: Normalized tokens
            vocabulary: Fitted vocabulary

        Returns:
            float64 array of shape (vocabulary.size,)
        """
        return self.transform_batch([tokens], vocabulary)[0]

    def transform_batch(
        self,
        corpus: Iterable[Sequence[str]],
        vocabulary: VocabularyModel,
    ) -> np.ndarray:
        """
        Convert a batch of token sequences to a feature matrix.

        Term counts are divided by the sequence length (out-of-vocabulary
        tokens included), then weighted by IDF when enabled.

        Returns:
            float64 array of shape (n_documents, vocabulary.size)
        """
        documents = [list(tokens) for tokens in corpus]
        if not documents:
            return np.zeros((0, vocabulary.size), dtype=np.float64)

        counter = CountVectorizer(
            analyzer=_pretokenized,
            vocabulary=vocabulary.token_to_index,
            dtype=np.float64,
        )
        counts = counter.transform(documents).toarray()

        lengths = np.array([len(tokens) for tokens in documents], dtype=np.float64)
        matrix = counts / np.maximum(lengths, 1.0)[:, np.newaxis]

        if vocabulary.use_idf:
            matrix *= vocabulary.idf

        return matrix


def check_dimension(vector: np.ndarray, n_features: int) -> None:
    """
    Fail fast when a vector does not have the expected dimension.

    Raises:
        FeatureDimensionError: On mismatch
    """
    actual = vector.shape[-1] if vector.ndim > 0 else 0
    if actual != n_features:
        raise FeatureDimensionError(
            f"Feature vector has dimension {actual}, expected {n_features}"
        )
