"""Label table loading."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from imclassify.ml.assets import AssetStore

logger = logging.getLogger(__name__)

SYNTHETIC_LABEL_COUNT: int = 1001


def load_labels(store: AssetStore, name: str) -> list[str]:
    """Load a newline-delimited label list; index is the class id.

    Blank lines are skipped and surrounding whitespace is stripped.

    Raises:
        ResourceNotFoundError: If the label file is missing or unreadable.
    """
    text = store.read_text(name)
    labels = [line.strip() for line in text.splitlines() if line.strip()]
    logger.info("Loaded %d labels from %s", len(labels), name)
    return labels


def synthetic_labels(count: int = SYNTHETIC_LABEL_COUNT) -> list[str]:
    """Return numbered placeholder labels: Class_0, Class_1, ..."""
    return [f"Class_{i}" for i in range(count)]
