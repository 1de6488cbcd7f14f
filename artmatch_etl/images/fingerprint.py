"""
ARTMATCH Fingerprint Codec
==========================
64-bit difference hash (dHash) used to recognise reposted artwork.

The image is reduced to grayscale, resampled with a triangle filter to a
9x8 grid, and every sample is compared with its right neighbour: the bit is
set when the left sample is darker. The 64 comparisons are packed
big-endian, first comparison in the most significant bit.

Stored and query fingerprints must come from the same grid size, so the
grid is a module constant rather than a parameter.
"""
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Union

import imagehash
import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import DecodeError

HASH_SIZE = 8
HASH_BITS = HASH_SIZE * HASH_SIZE
HASH_BYTES = HASH_BITS // 8


@dataclass(frozen=True)
class Fingerprint:
    """Immutable 64-bit perceptual hash."""
    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value < (1 << HASH_BITS):
            raise ValueError(f"fingerprint out of range: {self.value}")

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, memoryview]) -> "Fingerprint":
        data = bytes(data)
        if len(data) != HASH_BYTES:
            raise ValueError(f"fingerprint must be {HASH_BYTES} bytes, got {len(data)}")
        return cls(int.from_bytes(data, "big"))

    @classmethod
    def from_hex(cls, value: str) -> "Fingerprint":
        return cls(int(value, 16))

    @classmethod
    def from_image_hash(cls, image_hash: imagehash.ImageHash) -> "Fingerprint":
        # ImageHash renders its bit array most significant bit first
        return cls.from_hex(str(image_hash))

    def to_bytes(self) -> bytes:
        return self.value.to_bytes(HASH_BYTES, "big")

    def __str__(self) -> str:
        return f"{self.value:0{HASH_BYTES * 2}x}"


def compute(image: Image.Image) -> Fingerprint:
    """Fingerprint an already-decoded image. Never fails on a decoded image."""
    gray = image.convert("L")
    grid = gray.resize((HASH_SIZE + 1, HASH_SIZE), Image.Resampling.BILINEAR)
    pixels = np.asarray(grid, dtype=np.int16)
    darker_than_next = pixels[:, :-1] < pixels[:, 1:]
    return Fingerprint.from_image_hash(imagehash.ImageHash(darker_than_next))


def decode_image(data: bytes) -> Image.Image:
    """Decode raw image bytes, raising DecodeError for corrupt, unknown or oversized images."""
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"could not decode image ({len(data)} bytes): {exc}") from exc
    return image


def compute_from_bytes(data: bytes) -> Fingerprint:
    """Decode and fingerprint raw image bytes."""
    with decode_image(data) as image:
        return compute(image)


def distance(a: Fingerprint, b: Fingerprint) -> int:
    """
    Hamming distance between two fingerprints.

    - 0: identical
    - 1-14: same artwork after re-encoding or resizing
    - 15+: different images
    """
    return bin(a.value ^ b.value).count("1")
