"""
Inference module for sentiment classification.

Provides the pure prediction function over feature vectors and a predictor
that runs the whole text -> tokens -> vector -> label chain for reviews.
"""

import logging
from typing import Sequence

import numpy as np

from .features import FeatureExtractor, VocabularyModel, check_dimension
from .model import ModelParameters
from .preprocessing import TextNormalizer
from .records import SENTIMENT_LABELS, Prediction, Review

logger = logging.getLogger("review_analytics")


CONFIDENCE_THRESHOLDS = {"high": 0.8, "medium": 0.6, "low": 0.0}
DECISION_THRESHOLD = 0.5


def sigmoid(z: np.ndarray | float) -> np.ndarray:
    """Numerically stable logistic function."""
    z = np.asarray(z, dtype=np.float64)
    exp_neg = np.exp(-np.abs(z))
    return np.where(z >= 0, 1.0 / (1.0 + exp_neg), exp_neg / (1.0 + exp_neg))


def score_to_prediction(score: float) -> tuple[str, float]:
    """
    Turn a positive-class probability into a label and its confidence.

    Returns:
        Tuple of (label, probability of that label)
    """
    if score >= DECISION_THRESHOLD:
        return SENTIMENT_LABELS[1], float(score)
    return SENTIMENT_LABELS[0], float(1.0 - score)


def predict_scores(features: np.ndarray, params: ModelParameters) -> np.ndarray:
    """
    Positive-class probabilities for a feature matrix.

    Args:
        features: Feature matrix [n, d] or a single vector [d]
        params: Trained parameters

    Returns:
        Scores with shape [n] (or a 0-d array for a single vector)
    """
    features = np.asarray(features, dtype=np.float64)
    check_dimension(features, params.n_features)
    return sigmoid(features @ params.weights + params.bias)


def predict(vector: np.ndarray, params: ModelParameters) -> tuple[str, float]:
    """
    Predict sentiment for one feature vector.

    Deterministic: identical inputs always give identical outputs.

    Args:
        vector: Feature vector [d]
        params: Trained parameters

    Returns:
        Tuple of (label, confidence)

    Raises:
        FeatureDimensionError: If the vector does not match the parameters
    """
    vector = np.asarray(vector, dtype=np.float64)
    if vector.ndim != 1:
        raise ValueError(f"Expected a 1-D feature vector, got shape {vector.shape}")
    score = float(predict_scores(vector, params))
    return score_to_prediction(score)


def get_confidence_level(confidence: float) -> str:
    """
    Get confidence level string from confidence score.

    Args:
        confidence: Confidence score (0-1)

    Returns:
        Confidence level: 'high', 'medium', or 'low'
    """
    if confidence >= CONFIDENCE_THRESHOLDS["high"]:
        return "high"
    elif confidence >= CONFIDENCE_THRESHOLDS["medium"]:
        return "medium"
    else:
        return "low"


class SentimentPredictor:
    """
    High-level predictor for reviews.

    Holds only read-only state, so one instance can serve several threads.
    """

    def __init__(
        self,
        vocabulary: VocabularyModel,
        params: ModelParameters,
        normalizer: TextNormalizer | None = None,
        extractor: FeatureExtractor | None = None,
    ):
        """
        Initialize the predictor.

        Args:
            vocabulary: Fitted vocabulary
            params: Trained classifier parameters
            normalizer: Text normalizer; must match the one used in training
            extractor: Feature extractor
        """
        if vocabulary.size != params.n_features:
            raise ValueError(
                f"Vocabulary size ({vocabulary.size}) does not match model "
                f"dimension ({params.n_features})"
            )
        self.vocabulary = vocabulary
        self.params = params
        self.normalizer = normalizer or TextNormalizer()
        self.extractor = extractor or FeatureExtractor(use_idf=vocabulary.use_idf)

    def vectorize(self, text: str | None) -> np.ndarray:
        tokens = self.normalizer.normalize(text)
        return self.extractor.transform(tokens, self.vocabulary)

    def predict_text(self, text: str | None) -> tuple[str, float]:
        """Predict (label, confidence) for raw text."""
        return predict(self.vectorize(text), self.params)

    def predict_reviews(self, reviews: Sequence[Review]) -> list[Prediction]:
        """
        Make predictions for multiple reviews.

        Args:
            reviews: Parsed reviews

        Returns:
            One Prediction per review, in input order
        """
        if not reviews:
            return []

        token_sequences = self.normalizer.normalize_batch(r.text for r in reviews)
        features = self.extractor.transform_batch(token_sequences, self.vocabulary)
        scores = predict_scores(features, self.params)

        predictions = []
        for review, score in zip(reviews, scores):
            label, confidence = score_to_prediction(float(score))
            predictions.append(Prediction(
                review_id=review.review_id,
                brand=review.brand,
                categories=review.categories,
                label=label,
                confidence=confidence,
                score=float(score),
                recommended=review.recommended,
                rating=review.rating,
            ))

        return predictions
