"""
Logistic-regression model for review sentiment classification.

The model is a single linear layer over the feature vector; the positive
class score is sigmoid(w.x + b).
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import torch
import torch.nn as nn

logger = logging.getLogger("review_analytics")


MODEL_TYPE = "logistic_regression_sentiment_classifier"
WEIGHTS_FILENAME = "pytorch_model.bin"
CONFIG_FILENAME = "config.json"


@dataclass(eq=False)
class ModelParameters:
    """Trained weights and bias, independent of torch."""

    weights: np.ndarray
    bias: float

    def __post_init__(self):
        self.weights = np.asarray(self.weights, dtype=np.float64).reshape(-1)
        self.bias = float(self.bias)

    @property
    def n_features(self) -> int:
        return int(self.weights.shape[0])

    def to_dict(self) -> dict[str, Any]:
        return {
            "n_features": self.n_features,
            "weights": self.weights.tolist(),
            "bias": self.bias,
        }

    @classmethod
    def from_dict(cls, state: dict[str, Any]) -> "ModelParameters":
        params = cls(weights=state["weights"], bias=state["bias"])
        if "n_features" in state and params.n_features != state["n_features"]:
            raise ValueError(
                f"Stored n_features ({state['n_features']}) does not match "
                f"weights length ({params.n_features})"
            )
        return params


class SentimentClassifier(nn.Module):
    """
    Binary logistic-regression classifier.

    Architecture:
    - Linear layer (n_features -> 1), float64
    - Sigmoid applied at prediction time
    """

    def __init__(self, n_features: int):
        """
        Initialize the model.

        Args:
            n_features: Feature vector dimension (vocabulary size)
        """
        super().__init__()

        if n_features < 1:
            raise ValueError(f"n_features must be positive, got {n_features}")

        self.n_features = n_features
        self.linear = nn.Linear(n_features, 1, dtype=torch.float64)

        self.reset_parameters()

    def reset_parameters(
        self,
        generator: torch.Generator | None = None,
        std: float = 0.01,
    ) -> None:
        """Draw small normal weights and zero the bias."""
        with torch.no_grad():
            self.linear.weight.normal_(0.0, std, generator=generator)
            self.linear.bias.zero_()

    def forward(self, features: torch.Tensor) -> torch.Tensor:
        """
        Forward pass.

        Args:
            features: Feature matrix [batch_size, n_features]

        Returns:
            Logits tensor [batch_size]
        """
        return self.linear(features).squeeze(-1)

    def predict_proba(self, features: torch.Tensor) -> torch.Tensor:
        """Positive-class probabilities [batch_size]."""
        self.eval()
        with torch.no_grad():
            return torch.sigmoid(self.forward(features))

    def to_parameters(self) -> ModelParameters:
        """Detach weights into a ModelParameters value."""
        return ModelParameters(
            weights=self.linear.weight.detach().cpu().numpy().reshape(-1).copy(),
            bias=float(self.linear.bias.detach().cpu().item()),
        )

    @classmethod
    def from_parameters(cls, params: ModelParameters) -> "SentimentClassifier":
        model = cls(params.n_features)
        with torch.no_grad():
            model.linear.weight.copy_(
                torch.from_numpy(params.weights).reshape(1, -1)
            )
            model.linear.bias.fill_(params.bias)
        return model

    def save_pretrained(self, save_path: str | Path) -> None:
        """
        Save model weights and config.

        Args:
            save_path: Directory to save the model
        """
        save_path = Path(save_path)
        save_path.mkdir(parents=True, exist_ok=True)

        torch.save(self.state_dict(), save_path / WEIGHTS_FILENAME)

        config = {
            "n_features": self.n_features,
            "model_type": MODEL_TYPE,
        }

        with open(save_path / CONFIG_FILENAME, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)

        logger.info(f"Model saved to {save_path}")

    @classmethod
    def from_pretrained(cls, load_path: str | Path) -> "SentimentClassifier":
        """
        Load model saved with save_pretrained.

        Args:
            load_path: Directory containing the model

        Returns:
            Loaded model instance
        """
        load_path = Path(load_path)

        with open(load_path / CONFIG_FILENAME, "r", encoding="utf-8") as f:
            config = json.load(f)

        model_type = config.pop("model_type", None)
        if model_type != MODEL_TYPE:
            raise ValueError(f"Unexpected model type: {model_type}")

        model = cls(**config)

        state_dict = torch.load(
            load_path / WEIGHTS_FILENAME,
            map_location=torch.device("cpu"),
            weights_only=True,
        )
        model.load_state_dict(state_dict)
        model.eval()

        logger.info(f"Model loaded from {load_path}")
        return model
