"""
Review Analytics Package

Batch sentiment classification of product reviews with per-brand and
per-category trend aggregation.
"""
from .aggregation import TrendAggregator
from .artifacts import ModelArtifact
from .config import PipelineConfig
from .features import FeatureExtractor, VocabularyModel
from .inference import SentimentPredictor
from .model import ModelParameters, SentimentClassifier
from .pipeline import PipelineOrchestrator
from .preprocessing import TextNormalizer
from .train import train_classifier

__all__ = [
    "FeatureExtractor",
    "ModelArtifact",
    "ModelParameters",
    "PipelineConfig",
    "PipelineOrchestrator",
    "SentimentClassifier",
    "SentimentPredictor",
    "TextNormalizer",
    "TrendAggregator",
    "VocabularyModel",
    "train_classifier",
]
