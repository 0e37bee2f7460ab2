"""
Pytest configuration and fixtures for review analytics tests.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from review_analytics.config import PipelineConfig
from review_analytics.features import FeatureExtractor
from review_analytics.model import ModelParameters
from review_analytics.preprocessing import TextNormalizer
from review_analytics.records import LabeledExample, Prediction, Review


POSITIVE_TEXTS = [
    "Great tablet, fast and the screen is excellent. Love it!",
    "Excellent speaker, great sound and easy setup.",
    "Love this reader, great battery and excellent display.",
    "Great value, works perfectly and my kids love it.",
    "Excellent quality, fast charging, love it.",
    "Great product, excellent battery life.",
]

NEGATIVE_TEXTS = [
    "Terrible battery, broke after a week. Awful.",
    "Awful sound, terrible support and it stopped working.",
    "Broke quickly, terrible quality, waste of money.",
    "Slow and awful screen, terrible purchase.",
    "Stopped charging, awful, returned it.",
    "Terrible, broke on day one, waste.",
]


@pytest.fixture
def sample_texts() -> list[str]:
    """Sample review texts for testing."""
    return POSITIVE_TEXTS + NEGATIVE_TEXTS


@pytest.fixture
def sample_rows() -> list[dict[str, str]]:
    """Raw review rows as they come out of the CSV table."""
    rows = []
    for i, text in enumerate(POSITIVE_TEXTS):
        rows.append({
            "review_id": f"p{i}",
            "brand": "Amazon" if i % 2 == 0 else "Acme",
            "categories": "Electronics,Tablets" if i % 2 == 0 else "Electronics,Audio",
            "text": text,
            "recommended": "true",
            "rating": "5",
            "date_added": "2017-01-0{}T10:00:00Z".format(i + 1),
        })
    for i, text in enumerate(NEGATIVE_TEXTS):
        rows.append({
            "review_id": f"n{i}",
            "brand": "Acme" if i % 2 == 0 else "Globex",
            "categories": "Electronics,Audio" if i % 2 == 0 else "Kitchen",
            "text": text,
            "recommended": "false",
            "rating": "1",
            "date_added": "2017-02-0{}T10:00:00Z".format(i + 1),
        })
    return rows


@pytest.fixture
def small_config(tmp_path) -> PipelineConfig:
    """Fast configuration writing its model under tmp_path."""
    return PipelineConfig(
        max_vocabulary_size=500,
        regularization_strength=0.0,
        max_train_iterations=200,
        convergence_threshold=0.0,
        learning_rate=0.1,
        partition_size=4,
        model_dir=str(tmp_path / "model"),
    )


@pytest.fixture
def normalizer() -> TextNormalizer:
    return TextNormalizer()


@pytest.fixture
def extractor() -> FeatureExtractor:
    return FeatureExtractor(max_vocab_size=1000)


@pytest.fixture
def separable_examples() -> list[LabeledExample]:
    """Four linearly separable examples."""
    return [
        LabeledExample(vector=np.array([1.0, 0.0]), label=1),
        LabeledExample(vector=np.array([0.9, 0.1]), label=1),
        LabeledExample(vector=np.array([0.0, 1.0]), label=0),
        LabeledExample(vector=np.array([0.1, 0.9]), label=0),
    ]


@pytest.fixture
def params() -> ModelParameters:
    """Hand-set parameters: first feature positive, second negative."""
    return ModelParameters(weights=np.array([2.0, -2.0, 0.0]), bias=0.0)


def make_review(review_id: str, brand: str = "Amazon", categories=("Electronics",), **kwargs) -> Review:
    kwargs.setdefault("text", "Works fine")
    return Review(review_id=review_id, brand=brand, categories=tuple(categories), **kwargs)


def make_prediction(
    review_id: str,
    label: str = "positive",
    brand: str = "Amazon",
    categories=("Electronics",),
    recommended: bool | None = True,
    rating: float | None = 5.0,
) -> Prediction:
    score = 0.9 if label == "positive" else 0.1
    return Prediction(
        review_id=review_id,
        brand=brand,
        categories=tuple(categories),
        label=label,
        confidence=0.9,
        score=score,
        recommended=recommended,
        rating=rating,
    )
