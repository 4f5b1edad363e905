"""Model loader: read ONNX artifacts, build sessions, and derive input geometry.

A loaded model is wrapped in a ModelHandle that owns its InferenceSession,
knows the width/height the tensor packer must produce, and runs timed
single-shot inference.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from onnxruntime import ExecutionMode, InferenceSession, SessionOptions

from imclassify.ml.errors import InferenceFailureError, InvalidShapeError, UninitializedError
from imclassify.ml.packing import PIXEL_SIZE, buffer_size

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from imclassify.config import Settings
    from imclassify.ml.assets import AssetStore

logger = logging.getLogger(__name__)

_PROVIDERS: list[str] = ["CPUExecutionProvider"]


# ---------------------------------------------------------------------------
# Input shape interpretation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InputGeometry:
    """Image geometry derived from a model's declared input shape."""

    width: int
    height: int
    channels_first: bool
    feed_shape: tuple[int, ...]

    @property
    def buffer_size(self) -> int:
        return buffer_size(self.width, self.height)


def _static_dim(value: object) -> int:
    # ONNX reports symbolic dimensions as strings or None.
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
        raise InvalidShapeError(f"Dimension is not a positive integer: {value!r}")
    return int(value)


def parse_input_shape(shape: Sequence[object]) -> tuple[int, int, bool]:
    """Return (width, height, channels_first) for a rank-4 image input.

    [batch, 3, H, W] is channel-first; anything else of rank 4 is read as
    [batch, H, W, channels].

    Raises:
        InvalidShapeError: If the shape is not rank 4 or H/W are not static.
    """
    if len(shape) != 4:
        raise InvalidShapeError(f"Expected a rank-4 input shape, got {list(shape)}")

    channels_first = shape[1] == PIXEL_SIZE
    if channels_first:
        height, width = _static_dim(shape[2]), _static_dim(shape[3])
    else:
        height, width = _static_dim(shape[1]), _static_dim(shape[2])
    return width, height, channels_first


def derive_geometry(shape: Sequence[object], fallback_size: int = 28) -> InputGeometry:
    """Derive width, height, and feed shape, falling back to a square default."""
    try:
        width, height, channels_first = parse_input_shape(shape)
    except InvalidShapeError as exc:
        logger.warning("%s; using %dx%d input", exc, fallback_size, fallback_size)
        width = height = fallback_size
        channels_first = len(shape) == 4 and shape[1] == PIXEL_SIZE
        feed_shape = _fallback_feed_shape(shape, width, height)
    else:
        if channels_first:
            feed_shape = (1, PIXEL_SIZE, height, width)
        else:
            feed_shape = (1, height, width, PIXEL_SIZE)

    return InputGeometry(
        width=width,
        height=height,
        channels_first=channels_first,
        feed_shape=feed_shape,
    )


def _fallback_feed_shape(shape: Sequence[object], width: int, height: int) -> tuple[int, ...]:
    # Keep the declared layout when the packed floats fit it exactly, e.g. [1, 2352].
    declared = tuple(d if isinstance(d, (int, np.integer)) and d > 0 else 1 for d in shape)
    if len(declared) == 4 and declared[1] == PIXEL_SIZE:
        return (1, PIXEL_SIZE, height, width)
    if declared and math.prod(declared) == width * height * PIXEL_SIZE:
        return tuple(int(d) for d in declared)
    return (1, height, width, PIXEL_SIZE)


# ---------------------------------------------------------------------------
# Model handle
# ---------------------------------------------------------------------------


@dataclass
class ModelHandle:
    """A loaded model bound to its inference session."""

    name: str
    session: InferenceSession | None
    input_name: str
    input_shape: tuple[object, ...]
    geometry: InputGeometry
    class_count: int
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def input_width(self) -> int:
        return self.geometry.width

    @property
    def input_height(self) -> int:
        return self.geometry.height

    @property
    def input_channels(self) -> int:
        return PIXEL_SIZE

    @property
    def buffer_size(self) -> int:
        return self.geometry.buffer_size

    @property
    def released(self) -> bool:
        return self.session is None

    def run(self, buffer: bytes) -> tuple[NDArray[np.float32], int]:
        """Run the model once on a packed buffer.

        Returns:
            The flattened output scores and the elapsed time in whole milliseconds.

        Raises:
            UninitializedError: If the handle has been released.
            InferenceFailureError: If the runtime fails or the output size is unexpected.
        """
        with self._lock:
            session = self.session
            if session is None:
                raise UninitializedError(f"Model '{self.name}' has been released")

            if len(buffer) != self.buffer_size:
                raise InferenceFailureError(
                    f"Packed buffer is {len(buffer)} bytes, model '{self.name}' expects {self.buffer_size}"
                )
            tensor = np.frombuffer(buffer, dtype=np.float32).reshape(self.geometry.feed_shape)

            start = time.perf_counter_ns()
            try:
                outputs = session.run(None, {self.input_name: tensor})
            except Exception as exc:
                raise InferenceFailureError(f"Inference failed for model '{self.name}': {exc}") from exc
            elapsed_ms = (time.perf_counter_ns() - start) // 1_000_000

        scores = np.asarray(outputs[0], dtype=np.float32).reshape(-1)
        if scores.size != self.class_count:
            raise InferenceFailureError(
                f"Model '{self.name}' produced {scores.size} scores, expected {self.class_count}"
            )
        logger.debug("Inference time: %d ms, raw output: %s", elapsed_ms, scores.tolist())
        return scores, elapsed_ms

    def release(self) -> None:
        """Drop the inference session. Safe to call more than once."""
        with self._lock:
            if self.session is None:
                return
            self.session = None
        logger.info("Released session for %s", self.name)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def build_session_options(settings: Settings) -> SessionOptions:
    opts = SessionOptions()
    opts.intra_op_num_threads = settings.intra_op_threads
    opts.inter_op_num_threads = settings.inter_op_threads
    opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
    opts.enable_mem_pattern = True
    opts.enable_mem_reuse = True
    return opts


def load_model(store: AssetStore, name: str, settings: Settings, class_count: int) -> ModelHandle:
    """Read a model artifact and build a ready-to-run ModelHandle.

    Args:
        store: Asset store holding the artifact.
        name: Artifact file name, e.g. "mobilenet.onnx".
        settings: Runtime and fallback settings.
        class_count: Number of output scores the model must produce.

    Raises:
        ResourceNotFoundError: If the artifact is missing or unreadable.
        InferenceFailureError: If the runtime cannot build a session from it.
    """
    model_bytes = store.read_bytes(name)

    try:
        session = InferenceSession(
            model_bytes,
            sess_options=build_session_options(settings),
            providers=_PROVIDERS,
        )
        model_input = session.get_inputs()[0]
    except Exception as exc:
        raise InferenceFailureError(f"Cannot create inference session for '{name}': {exc}") from exc

    input_shape = tuple(model_input.shape)
    logger.info("Model %s input %s shape: %s", name, model_input.name, list(input_shape))

    geometry = derive_geometry(input_shape, settings.fallback_input_size)
    handle = ModelHandle(
        name=name,
        session=session,
        input_name=model_input.name,
        input_shape=input_shape,
        geometry=geometry,
        class_count=class_count,
    )
    logger.info(
        "Loaded %s (%dx%d, %s, %d bytes per input, %d classes)",
        name,
        handle.input_width,
        handle.input_height,
        "NCHW" if geometry.channels_first else "NHWC",
        handle.buffer_size,
        class_count,
    )
    return handle
