"""
Text preprocessing module for review sentiment analysis.

Handles text cleaning, tokenization and stopword removal.
"""

import html
import logging
import re
from typing import Any, Iterable

import numpy as np
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

logger = logging.getLogger("review_analytics")


# "not good" must stay distinguishable from "good" for the classifier
NEGATIONS = frozenset({
    "no", "nor", "not", "never", "nothing", "none", "nobody", "noone",
    "nowhere", "neither", "cannot", "cant", "without", "against",
})

DEFAULT_STOPWORDS = frozenset(ENGLISH_STOP_WORDS) - NEGATIONS

CONTRACTIONS = {
    "n't": " not",
    "'re": " are",
    "'s": " is",
    "'d": " would",
    "'ll": " will",
    "'ve": " have",
    "'m": " am",
}

MAX_TEXT_LENGTH = 50000


class TextNormalizer:
    """
    Turns raw review text into a sequence of normalized word tokens.

    Cleaning is deterministic and locale independent: the same input always
    yields the same tokens, and normalizing already-normalized text is a no-op.
    """

    def __init__(self, stopwords: Iterable[str] | None = None):
        """
        Initialize the normalizer.

        Args:
            stopwords: Words to drop after tokenization (case-insensitive).
                Defaults to DEFAULT_STOPWORDS; pass an empty set to keep all.
        """
        if stopwords is None:
            stopwords = DEFAULT_STOPWORDS
        self.stopwords = frozenset(word.lower() for word in stopwords)

    def clean_text(self, text: str) -> str:
        """
        Clean and normalize text.

        Args:
            text: Raw text string

        Returns:
            Cleaned text string
        """
        if not isinstance(text, str):
            return ""

        text = html.unescape(text)

        text = text.lower()

        text = re.sub(r"<[^>]+>", " ", text)

        text = re.sub(r"http\S+|www\S+", " ", text)

        text = re.sub(r"\S+@\S+", " ", text)

        text = text.replace("’", "'")
        for contraction, expansion in CONTRACTIONS.items():
            text = text.replace(contraction, expansion)

        text = re.sub(r"[^a-z0-9\s]", " ", text)

        text = re.sub(r"\s+", " ", text).strip()

        return text

    def tokenize(self, text: str) -> list[str]:
        """
        Split cleaned text into word tokens, stopwords included.

        Args:
            text: Raw text string

        Returns:
            List of tokens
        """
        return self.clean_text(text).split()

    def normalize(self, text: str | None) -> list[str]:
        """
        Tokenize text and remove stopwords.

        Empty or missing text yields an empty list, never an error.

        Args:
            text: Raw review text

        Returns:
            Ordered list of normalized tokens
        """
        return [token for token in self.tokenize(text) if token not in self.stopwords]

    def normalize_batch(self, texts: Iterable[str | None]) -> list[list[str]]:
        return [self.normalize(text) for text in texts]


def validate_text(text: Any) -> tuple[bool, str]:
    """
    Validate input text.

    Args:
        text: Input to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if text is None:
        return False, "Text cannot be None"

    if not isinstance(text, str):
        return False, f"Text must be string, got {type(text).__name__}"

    if len(text.strip()) == 0:
        return False, "Text cannot be empty"

    if len(text) > MAX_TEXT_LENGTH:
        return False, f"Text exceeds maximum length of {MAX_TEXT_LENGTH} characters"

    return True, ""


def get_text_statistics(texts: list[str]) -> dict[str, Any]:
    """
    Compute statistics for a collection of texts.

    Args:
        texts: List of text strings

    Returns:
        Dictionary with text statistics
    """
    lengths = [len(text.split()) for text in texts if isinstance(text, str)]

    if not lengths:
        return {"error": "No valid texts found"}

    return {
        "total_texts": len(texts),
        "valid_texts": len(lengths),
        "avg_word_count": float(np.mean(lengths)),
        "std_word_count": float(np.std(lengths)),
        "min_word_count": int(np.min(lengths)),
        "max_word_count": int(np.max(lengths)),
        "median_word_count": float(np.median(lengths)),
    }
