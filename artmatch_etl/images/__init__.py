"""
ARTMATCH Image Processing
=========================

Modules:
- fingerprint: 64-bit dHash codec and Hamming distance
- download: image file downloads for ingestion
- matcher: corpus matching for inbound images (import explicitly)
"""

from .download import ImageDownloader
from .fingerprint import (
    HASH_BITS,
    HASH_SIZE,
    Fingerprint,
    compute,
    compute_from_bytes,
    decode_image,
    distance,
)

__all__ = [
    # Fingerprints
    "Fingerprint",
    "HASH_BITS",
    "HASH_SIZE",
    "compute",
    "compute_from_bytes",
    "decode_image",
    "distance",

    # Downloads
    "ImageDownloader",
]
