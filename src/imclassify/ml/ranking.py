"""Top-k ranking of raw model scores into labelled predictions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

UNKNOWN_LABEL: str = "Unknown"
DEFAULT_TOP_K: int = 3


@dataclass(frozen=True)
class Prediction:
    """A single ranked prediction."""

    label: str
    confidence: float  # percent, score * 100


@dataclass(frozen=True)
class ClassificationResult:
    """Ranked predictions plus the elapsed inference time."""

    predictions: tuple[Prediction, ...]
    inference_time_ms: int

    def format(self) -> str:
        """Render the human-readable, multi-line result text."""
        lines = [f"Results (inference time: {self.inference_time_ms}ms):"]
        for rank, prediction in enumerate(self.predictions, start=1):
            lines.append(f"{rank}. {prediction.label} ({prediction.confidence:.1f}%)")
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.format()


def top_indices(scores: Sequence[float], k: int = DEFAULT_TOP_K) -> list[int]:
    """Return the indices of the k highest scores, highest first.

    The sort is stable, so equal scores keep their index order.
    """
    ordered = sorted(range(len(scores)), key=lambda i: scores[i], reverse=True)
    return ordered[:k]


def label_for(labels: Sequence[str], index: int) -> str:
    if 0 <= index < len(labels):
        return labels[index]
    return UNKNOWN_LABEL


def rank(
    scores: Sequence[float],
    labels: Sequence[str],
    inference_time_ms: int = 0,
    k: int = DEFAULT_TOP_K,
) -> ClassificationResult:
    """Build a ClassificationResult from raw scores and a label table."""
    predictions = tuple(
        Prediction(label=label_for(labels, index), confidence=float(scores[index]) * 100)
        for index in top_indices(scores, k)
    )
    return ClassificationResult(predictions=predictions, inference_time_ms=inference_time_ms)
