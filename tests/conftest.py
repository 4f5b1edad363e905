"""Shared fixtures: a temporary asset directory and a faked ONNX runtime."""

from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from pathlib import Path

MODEL_NAME = "tiny.onnx"
LABELS = ["cat", "dog", "bird"]
SCORES = [0.1, 0.7, 0.2]


def _fake_session(shape: Sequence[object], scores: Sequence[float]) -> MagicMock:
    session = MagicMock()
    session.get_inputs.return_value = [SimpleNamespace(name="input", shape=list(shape))]
    session.run.return_value = [np.array([scores], dtype=np.float32)]
    return session


@pytest.fixture()
def make_session() -> Callable[[Sequence[object], Sequence[float]], MagicMock]:
    """Factory for fake InferenceSession objects with a given input shape and output."""
    return _fake_session


@pytest.fixture()
def assets_dir(tmp_path: Path) -> Path:
    """Asset directory holding one model artifact and a three-entry label file."""
    (tmp_path / MODEL_NAME).write_bytes(b"onnx-model-bytes")
    (tmp_path / "labels.txt").write_text("\n".join(LABELS) + "\n", encoding="utf-8")
    return tmp_path


@pytest.fixture()
def session_cls() -> Iterator[MagicMock]:
    """Patch InferenceSession so loading builds an NCHW 8x8 model scoring SCORES."""
    with patch("imclassify.ml.model_loader.InferenceSession") as mock_cls:
        mock_cls.return_value = _fake_session([1, 3, 8, 8], SCORES)
        yield mock_cls
