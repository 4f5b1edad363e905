"""Tests for the imclassify HTTP API."""

from __future__ import annotations

import io
import os
import threading
from typing import TYPE_CHECKING
from unittest.mock import patch

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path
    from unittest.mock import MagicMock

import httpx
import numpy as np
import pytest
from fastapi import FastAPI, status
from PIL import Image

from imclassify.config import get_settings
from imclassify.main import create_app
from imclassify.ml.classifier import ImageClassifier


def _init_app_state(app: FastAPI, assets_dir: Path, **env_overrides: str) -> None:
    """Manually initialize app state (ASGITransport does not trigger lifespan)."""
    with patch.dict(os.environ, {"IMCLASSIFY_ASSETS_DIR": str(assets_dir), **env_overrides}):
        settings = get_settings()
    app.state.settings = settings
    app.state.classifier = ImageClassifier(settings)


async def _make_client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac
    classifier: ImageClassifier = app.state.classifier
    await classifier.close()


def _jpeg(size: tuple[int, int] = (64, 48)) -> io.BytesIO:
    out = io.BytesIO()
    Image.new("RGB", size, (10, 200, 30)).save(out, format="JPEG")
    out.seek(0)
    return out


@pytest.fixture()
def app(assets_dir: Path) -> FastAPI:
    """Create a fresh app instance over the temporary asset directory."""
    application = create_app()
    _init_app_state(application, assets_dir)
    return application


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client for testing the app."""
    async for ac in _make_client(app):
        yield ac


class TestHealthEndpoint:
    async def test_health_before_load(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "ok"
        assert data["state"] == "uninitialized"
        assert data["model"] is None
        assert data["input_width"] is None
        assert isinstance(data["concurrent_requests"], int)
        assert isinstance(data["queue_depth"], int)

    async def test_health_after_load(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        await client.post("/api/v1/models/tiny.onnx/load")
        data = (await client.get("/api/v1/health")).json()
        assert data["state"] == "ready"
        assert data["model"] == "tiny.onnx"
        assert (data["input_width"], data["input_height"]) == (8, 8)


class TestModelsEndpoint:
    async def test_lists_model_artifacts(self, client: httpx.AsyncClient, assets_dir: Path) -> None:
        (assets_dir / "other.onnx").write_bytes(b"x")
        response = await client.get("/api/v1/models")
        assert response.status_code == status.HTTP_200_OK
        models = response.json()["models"]
        assert [m["name"] for m in models] == ["other.onnx", "tiny.onnx"]
        assert {m["status"] for m in models} == {"available"}

    async def test_loaded_model_is_active(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        await client.post("/api/v1/models/tiny.onnx/load")
        models = (await client.get("/api/v1/models")).json()["models"]
        tiny = next(m for m in models if m["name"] == "tiny.onnx")
        assert tiny["status"] == "active"

    async def test_load_model(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        response = await client.post("/api/v1/models/tiny.onnx/load")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"model": "tiny.onnx", "input_width": 8, "input_height": 8}

    async def test_load_missing_model_returns_404(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/api/v1/models/missing.onnx/load")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert "missing.onnx" in response.json()["detail"]

    async def test_load_corrupt_model_returns_500(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        session_cls.side_effect = RuntimeError("protobuf parsing failed")
        response = await client.post("/api/v1/models/tiny.onnx/load")
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "protobuf" in response.json()["detail"]


class TestClassifyImageEndpoint:
    async def test_classify_before_load_returns_409(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/api/v1/classify-image",
            files={"file": ("test.jpg", _jpeg(), "image/jpeg")},
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert "not initialized" in response.json()["detail"].lower()

    async def test_classify_returns_ranked_tags(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        await client.post("/api/v1/models/tiny.onnx/load")

        response = await client.post(
            "/api/v1/classify-image",
            files={"file": ("test.jpg", _jpeg(), "image/jpeg")},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [t["label"] for t in data["tags"]] == ["dog", "bird", "cat"]
        assert [t["confidence"] for t in data["tags"]] == pytest.approx([0.7, 0.2, 0.1], abs=1e-6)
        assert isinstance(data["inference_time_ms"], int)
        assert data["text"].endswith("1. dog (70.0%)\n2. bird (20.0%)\n3. cat (10.0%)\n")

    async def test_undecodable_image_returns_400(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        await client.post("/api/v1/models/tiny.onnx/load")
        response = await client.post(
            "/api/v1/classify-image",
            files={"file": ("test.jpg", io.BytesIO(b"fake image data"), "image/jpeg")},
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    async def test_large_file_returns_413(self, assets_dir: Path, session_cls: MagicMock) -> None:
        app = create_app()
        _init_app_state(app, assets_dir, IMCLASSIFY_MAX_FILE_SIZE="100")
        async for ac in _make_client(app):
            await ac.post("/api/v1/models/tiny.onnx/load")
            response = await ac.post(
                "/api/v1/classify-image",
                files={"file": ("test.jpg", _jpeg(), "image/jpeg")},
            )
            assert response.status_code == status.HTTP_413_CONTENT_TOO_LARGE

    async def test_inference_failure_returns_500(self, client: httpx.AsyncClient, session_cls: MagicMock) -> None:
        await client.post("/api/v1/models/tiny.onnx/load")
        session_cls.return_value.run.side_effect = RuntimeError("bad node")

        response = await client.post(
            "/api/v1/classify-image",
            files={"file": ("test.jpg", _jpeg(), "image/jpeg")},
        )
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "bad node" in response.json()["detail"]


class TestOperationTimeout:
    async def test_slow_load_returns_503(self, assets_dir: Path, session_cls: MagicMock) -> None:
        gate = threading.Event()
        fake_session = session_cls.return_value

        def slow_build(*args: object, **kwargs: object) -> MagicMock:
            gate.wait(5)
            return fake_session

        session_cls.side_effect = slow_build
        app = create_app()
        _init_app_state(app, assets_dir, IMCLASSIFY_OPERATION_TIMEOUT="0.2")
        async for ac in _make_client(app):
            try:
                response = await ac.post("/api/v1/models/tiny.onnx/load")
                assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
                assert response.json()["detail"] == "Model loading timed out"
                assert (await ac.get("/api/v1/health")).json()["state"] == "loading"
            finally:
                gate.set()

    async def test_slow_classify_returns_503(self, assets_dir: Path, session_cls: MagicMock) -> None:
        gate = threading.Event()

        def slow_run(*args: object, **kwargs: object) -> list[np.ndarray]:
            gate.wait(5)
            return [np.array([[0.1, 0.7, 0.2]], dtype=np.float32)]

        app = create_app()
        _init_app_state(app, assets_dir, IMCLASSIFY_OPERATION_TIMEOUT="0.2")
        async for ac in _make_client(app):
            assert (await ac.post("/api/v1/models/tiny.onnx/load")).status_code == status.HTTP_200_OK
            session_cls.return_value.run.side_effect = slow_run
            try:
                response = await ac.post(
                    "/api/v1/classify-image",
                    files={"file": ("test.jpg", _jpeg(), "image/jpeg")},
                )
                assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
                assert response.json()["detail"] == "Classification timed out"
            finally:
                gate.set()
