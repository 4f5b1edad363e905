"""Packaged asset store: model artifacts and label files.

Assets live in a local directory. When a Hugging Face Hub repository is
configured, missing assets are downloaded into that directory on first use.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from huggingface_hub.errors import HfHubHTTPError

from imclassify.ml.errors import ResourceNotFoundError

if TYPE_CHECKING:
    from imclassify.config import Settings

logger = logging.getLogger(__name__)


class AssetStore:
    """Resolves, reads, and lists packaged assets."""

    def __init__(self, settings: Settings) -> None:
        self._root = Path(settings.assets_dir)
        self._repo_id = settings.assets_repo_id
        self._model_extension = settings.model_extension

    @property
    def root(self) -> Path:
        return self._root

    # -- Public API ---------------------------------------------------------

    def path_for(self, name: str) -> Path:
        """Return the local path of an asset, downloading it if configured."""
        path = self._root / name
        if not path.resolve().is_relative_to(self._root.resolve()):
            raise ResourceNotFoundError(f"Asset name escapes the asset directory: {name}")

        if path.is_file():
            return path

        if self._repo_id is None:
            raise ResourceNotFoundError(f"Asset not found: {name}")

        try:
            downloaded = Path(
                hf_hub_download(
                    repo_id=self._repo_id,
                    filename=name,
                    local_dir=str(self._root),
                )
            )
        except (HfHubHTTPError, OSError, ValueError) as exc:
            raise ResourceNotFoundError(f"Asset not found: {name} ({exc})") from exc

        logger.info("Downloaded %s from %s to %s", name, self._repo_id, downloaded)
        return downloaded

    def read_bytes(self, name: str) -> bytes:
        """Read an asset fully into memory."""
        path = self.path_for(name)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ResourceNotFoundError(f"Asset not readable: {name} ({exc})") from exc

    def read_text(self, name: str) -> str:
        """Read a UTF-8 text asset, ignoring a leading byte order mark."""
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            raise ResourceNotFoundError(f"Asset not readable: {name} ({exc})") from exc

    def list_models(self, extension: str | None = None) -> list[str]:
        """Return the sorted names of local model artifacts."""
        suffix = extension if extension is not None else self._model_extension
        if not self._root.is_dir():
            return []
        return sorted(p.name for p in self._root.iterdir() if p.is_file() and p.name.endswith(suffix))
