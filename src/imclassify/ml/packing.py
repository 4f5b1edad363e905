"""Image decoding and tensor packing.

The packed layout is a flat float32 buffer in native byte order, traversed
height -> width -> channel (R, G, B). Channel values stay in the raw 0-255
range: models served here expect unnormalized input.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, UnidentifiedImageError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

FLOAT_TYPE_SIZE: int = 4
PIXEL_SIZE: int = 3


def buffer_size(width: int, height: int) -> int:
    """Return the packed byte length for a width x height RGB image."""
    return FLOAT_TYPE_SIZE * width * height * PIXEL_SIZE


def decode_image(data: bytes, max_pixels: int) -> Image.Image:
    """Decode raw image bytes into an RGB PIL image.

    Raises:
        ValueError: If the bytes cannot be decoded or the image exceeds max_pixels.
    """
    try:
        image = Image.open(io.BytesIO(data))
        width, height = image.size
        if width * height > max_pixels:
            raise ValueError(f"Image has {width * height} pixels, limit is {max_pixels}")
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise ValueError(f"Cannot decode image: {exc}") from exc
    return image.convert("RGB")


def pack(image: Image.Image | NDArray[np.uint8], width: int, height: int) -> bytes:
    """Resize an image to width x height and pack its RGB channels as float32.

    Args:
        image: A PIL image in any mode, or an HxWx3 / HxWx4 uint8 array.
        width: Target width in pixels.
        height: Target height in pixels.

    Returns:
        A bytes object of length 4 * width * height * 3.
    """
    if isinstance(image, np.ndarray):
        image = Image.fromarray(image)

    resized = image.convert("RGB").resize((width, height), Image.Resampling.BILINEAR)
    pixels = np.asarray(resized, dtype=np.uint8)

    # (height, width, 3) in C order is exactly the y -> x -> channel traversal.
    tensor = np.ascontiguousarray(pixels, dtype=np.float32)
    packed = tensor.tobytes()

    if logger.isEnabledFor(logging.DEBUG):
        r, g, b = tensor[0, 0]
        logger.debug("First pixel: R=%s, G=%s, B=%s", r, g, b)
    return packed
