"""Classifier facade: load a model, classify images, close.

All work runs on the InferencePool worker. The installed ModelHandle sits
in a lock-guarded slot: a load releases the previous handle, builds the new
one off-lock, and installs it only once it is complete, so classify never
sees a partially initialized model.
"""

from __future__ import annotations

import logging
import threading
from enum import StrEnum
from typing import TYPE_CHECKING

from imclassify.ml import model_loader
from imclassify.ml.assets import AssetStore
from imclassify.ml.errors import ClassifierClosedError, ResourceNotFoundError, UninitializedError
from imclassify.ml.inference import InferencePool
from imclassify.ml.labels import load_labels, synthetic_labels
from imclassify.ml.packing import pack
from imclassify.ml.ranking import ClassificationResult, rank

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray
    from PIL import Image

    from imclassify.config import Settings

logger = logging.getLogger(__name__)


class ClassifierState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"


class ImageClassifier:
    """Asynchronous facade over the load -> pack -> infer -> rank pipeline."""

    def __init__(
        self,
        settings: Settings,
        store: AssetStore | None = None,
        pool: InferencePool | None = None,
    ) -> None:
        self._settings = settings
        self._store = store if store is not None else AssetStore(settings)
        self._pool = pool if pool is not None else InferencePool(settings)

        self._lock = threading.Lock()
        self._state = ClassifierState.UNINITIALIZED
        self._handle: model_loader.ModelHandle | None = None
        self._labels: list[str] = []

    # -- Properties ---------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self._state is ClassifierState.READY

    @property
    def state(self) -> ClassifierState:
        with self._lock:
            return self._state

    @property
    def model_name(self) -> str | None:
        with self._lock:
            return self._handle.name if self._handle is not None else None

    @property
    def input_size(self) -> tuple[int, int] | None:
        """(width, height) of the installed model, if any."""
        with self._lock:
            if self._handle is None:
                return None
            return self._handle.input_width, self._handle.input_height

    @property
    def labels(self) -> list[str]:
        with self._lock:
            return list(self._labels)

    @property
    def store(self) -> AssetStore:
        return self._store

    @property
    def pool(self) -> InferencePool:
        return self._pool

    # -- Public API ---------------------------------------------------------

    async def initialize(self) -> None:
        """Load the configured default model, if one is set."""
        if self._settings.default_model is None:
            logger.info("No default model configured")
            return
        await self.load_model_from_assets(self._settings.default_model)

    async def load_model_from_assets(self, name: str) -> None:
        """Load a model artifact by name and make it the active model.

        Raises:
            ResourceNotFoundError: If the artifact cannot be read.
            InferenceFailureError: If the runtime rejects the artifact.
            ClassifierClosedError: If the classifier has been closed.
        """
        with self._lock:
            self._check_open()
            self._state = ClassifierState.LOADING
        await self._pool.run(self._load_sync, name)

    load_model = load_model_from_assets

    async def classify(self, image: Image.Image | NDArray[np.uint8]) -> ClassificationResult:
        """Classify a decoded image and return the ranked top predictions.

        Raises:
            UninitializedError: If no model is ready.
            ClassifierClosedError: If the classifier has been closed.
            InferenceFailureError: If the inference call fails.
        """
        with self._lock:
            self._check_open()
            if self._state is not ClassifierState.READY:
                raise UninitializedError("Model is not initialized yet")
        return await self._pool.run(self._classify_sync, image)

    async def classify_async(self, image: Image.Image | NDArray[np.uint8]) -> str:
        """Classify a decoded image and return the formatted result text."""
        result = await self.classify(image)
        return result.format()

    async def close(self) -> None:
        """Release the inference session and stop the worker."""
        with self._lock:
            if self._state is ClassifierState.CLOSED:
                return
            self._state = ClassifierState.CLOSED
        try:
            await self._pool.run(self._release_sync)
        finally:
            self._pool.shutdown(wait=False)

    # -- Worker tasks -------------------------------------------------------

    def _load_sync(self, name: str) -> None:
        with self._lock:
            previous, self._handle = self._handle, None
        if previous is not None:
            previous.release()

        try:
            labels = self._read_labels()
            class_count = len(labels) or self._settings.fallback_class_count
            handle = model_loader.load_model(self._store, name, self._settings, class_count)
        except Exception:
            with self._lock:
                # An overlapping load may have installed its model meanwhile.
                if self._state is not ClassifierState.CLOSED and self._handle is None:
                    self._state = ClassifierState.UNINITIALIZED
                    self._labels = []
            logger.exception("Error loading model %s", name)
            raise

        with self._lock:
            if self._state is ClassifierState.CLOSED:
                replaced, closed = handle, True
            else:
                replaced, self._handle = self._handle, handle
                closed = False
                self._labels = labels
                self._state = ClassifierState.READY
        if replaced is not None:
            replaced.release()
        if closed:
            raise ClassifierClosedError(f"Classifier closed while loading '{name}'")
        logger.info("Model %s loaded from assets", name)

    def _read_labels(self) -> list[str]:
        try:
            return load_labels(self._store, self._settings.labels_file)
        except ResourceNotFoundError as exc:
            logger.warning("Could not load labels (%s), using generic labels", exc)
            return synthetic_labels(self._settings.fallback_class_count)

    def _classify_sync(self, image: Image.Image | NDArray[np.uint8]) -> ClassificationResult:
        with self._lock:
            if self._state is ClassifierState.CLOSED:
                raise ClassifierClosedError("Classifier has been closed")
            handle, labels = self._handle, self._labels
        if handle is None:
            raise UninitializedError("Model is not initialized yet")

        buffer = pack(image, handle.input_width, handle.input_height)
        scores, elapsed_ms = handle.run(buffer)
        return rank(scores, labels, elapsed_ms, k=self._settings.top_k)

    def _release_sync(self) -> None:
        with self._lock:
            handle, self._handle = self._handle, None
            self._labels = []
        if handle is not None:
            handle.release()
        logger.info("Classifier closed")

    def _check_open(self) -> None:
        if self._state is ClassifierState.CLOSED:
            raise ClassifierClosedError("Classifier has been closed")
