"""Perceptual fingerprint computation for uploaded images."""

import hashlib
import io
from dataclasses import dataclass
from typing import Optional

import imagehash
import numpy as np
from PIL import Image

from .codec import combine, fit_bits, to_hex
from ..logging import get_logger

logger = get_logger(__name__)

AVERAGE_HASH_SIZE = 32
DCT_GRID_SIZE = 32
DCT_BLOCK_SIZE = 8
COLOR_GRID_SIZE = 64
COLOR_BINS = 8
FALLBACK_HASH_SIZE = 16

AVERAGE_HASH_BITS = AVERAGE_HASH_SIZE * AVERAGE_HASH_SIZE
FREQUENCY_HASH_BITS = DCT_BLOCK_SIZE * DCT_BLOCK_SIZE - 1

RESAMPLE = Image.Resampling.LANCZOS

# Decoded modes that are expanded to RGB before hashing
_COLOR_MODES = {"CMYK", "YCbCr", "LAB", "HSV"}
# Decoded modes that only carry luminance
_GRAY_MODES = {"1", "I", "I;16", "I;16B", "I;16L", "F"}


@dataclass(frozen=True)
class FingerprintSet:
    """Perceptual fingerprints derived once from an image's bytes."""
    average_hash: str                   # 1024-bit string
    frequency_hash: str                 # 63-bit string
    color_hash: Optional[str]           # 24 hex digits, None for images without colour channels
    combined_hash: str                  # 64 hex digits, primary key of the duplicate index
    is_fallback: bool = False


class InvalidImageError(Exception):
    """Raised when image bytes cannot be decoded or carry too little signal to hash."""


def compute_fingerprints(image_bytes: bytes) -> FingerprintSet:
    """
    Compute the fingerprint set of raw image bytes.

    Degenerate images (uniform after resize) and undecodable bytes fall back
    to a deterministic low-resolution hash, so this never raises.

    Args:
        image_bytes: Encoded image file contents

    Returns:
        FingerprintSet for the image
    """
    try:
        image = decode_image(image_bytes)
    except InvalidImageError as exc:
        logger.warning(f"{exc}; using digest fallback hash")
        return _digest_fallback(image_bytes)

    try:
        fingerprints = _primary_fingerprints(image)
    except InvalidImageError as exc:
        logger.warning(f"{exc}; using fallback hash")
        fingerprints = _fallback_fingerprints(image)

    logger.debug(
        f"Computed fingerprints {fingerprints.combined_hash[:16]}... "
        f"(color={fingerprints.color_hash}, fallback={fingerprints.is_fallback})"
    )
    return fingerprints


def primary_fingerprints(image_bytes: bytes) -> FingerprintSet:
    """
    Compute fingerprints without the fallback path.

    Raises:
        InvalidImageError: If the bytes cannot be decoded or the image is degenerate
    """
    return _primary_fingerprints(decode_image(image_bytes))


def decode_image(image_bytes: bytes) -> Image.Image:
    """
    Decode image bytes into a Pillow image in L, LA, RGB or RGBA mode.

    Raises:
        InvalidImageError: If the bytes are empty or not a readable image
    """
    if not image_bytes:
        raise InvalidImageError("No image data to decode")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            return _normalize_mode(img)
    except Exception as exc:
        raise InvalidImageError(f"Failed to decode image ({len(image_bytes)} bytes): {exc}") from exc


def frequency_hash(image: Image.Image) -> str:
    """
    DCT hash: 63 low-frequency AC coefficients thresholded against their median.
    """
    pixels = _luminance_grid(image, DCT_GRID_SIZE)
    coefficients = _dct_block(pixels, DCT_BLOCK_SIZE)

    # Row-major over (v, u), dropping the DC term at (0, 0)
    ac = coefficients.flatten()[1:]
    median = np.sort(ac)[len(ac) // 2]
    return _bits(ac > median)


def color_hash(image: Image.Image) -> Optional[str]:
    """
    Colour histogram hash: 8 bins per R/G/B channel, each scaled to one hex digit.

    Returns None for images with fewer than three channels.
    """
    if len(image.getbands()) < 3:
        return None

    rgb = image.convert("RGB").resize((COLOR_GRID_SIZE, COLOR_GRID_SIZE), RESAMPLE)
    pixels = np.asarray(rgb).reshape(-1, 3)
    total = pixels.shape[0]
    buckets = np.minimum(pixels // (256 // COLOR_BINS), COLOR_BINS - 1)

    digits = []
    for channel in range(3):
        counts = np.bincount(buckets[:, channel], minlength=COLOR_BINS)
        digits.extend(format(int(count) * 15 // total, "x") for count in counts)
    return "".join(digits)


def _primary_fingerprints(image: Image.Image) -> FingerprintSet:
    grid = _luminance_grid(image, AVERAGE_HASH_SIZE)
    if np.unique(grid).size < 2:
        raise InvalidImageError("Image is uniform after resize")

    average = _bits(imagehash.average_hash(image, hash_size=AVERAGE_HASH_SIZE).hash)
    return _assemble(average, frequency_hash(image), color_hash(image), is_fallback=False)


def _fallback_fingerprints(image: Image.Image) -> FingerprintSet:
    bits = _bits(imagehash.average_hash(image, hash_size=FALLBACK_HASH_SIZE).hash)
    return _assemble(
        fit_bits(bits, AVERAGE_HASH_BITS),
        fit_bits(bits, FREQUENCY_HASH_BITS),
        color_hash(image),
        is_fallback=True,
    )


def _digest_fallback(image_bytes: bytes) -> FingerprintSet:
    digest = hashlib.sha256(image_bytes).digest()
    bits = "".join(format(byte, "08b") for byte in digest)
    return _assemble(
        fit_bits(bits, AVERAGE_HASH_BITS),
        fit_bits(bits, FREQUENCY_HASH_BITS),
        None,
        is_fallback=True,
    )


def _assemble(average: str, frequency: str, color: Optional[str], is_fallback: bool) -> FingerprintSet:
    return FingerprintSet(
        average_hash=average,
        frequency_hash=frequency,
        color_hash=color,
        combined_hash=to_hex(combine(average, frequency)),
        is_fallback=is_fallback,
    )


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode == "P":
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode == "PA":
        return img.convert("RGBA")
    if img.mode in _COLOR_MODES:
        return img.convert("RGB")
    if img.mode in _GRAY_MODES:
        return img.convert("L")
    return img.copy()


def _luminance_grid(image: Image.Image, size: int) -> np.ndarray:
    gray = image.convert("L").resize((size, size), RESAMPLE)
    return np.asarray(gray, dtype=np.float64)


def _dct_block(pixels: np.ndarray, size: int) -> np.ndarray:
    """Naive 2-D DCT-II of a square grid, restricted to the top-left size x size block."""
    n = pixels.shape[0]
    positions = np.arange(n)
    frequencies = np.arange(size)
    # basis[u, x] = cos((2x + 1) * u * pi / 2N)
    basis = np.cos((2 * positions[None, :] + 1) * frequencies[:, None] * np.pi / (2 * n))
    scale = np.where(frequencies == 0, 1 / np.sqrt(2), 1.0)
    return (2 / n) * np.outer(scale, scale) * (basis @ pixels @ basis.T)


def _bits(values: np.ndarray) -> str:
    return "".join("1" if bit else "0" for bit in np.asarray(values).flatten())
