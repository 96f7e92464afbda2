"""
Content hashing for the duplicate-detection layer.
"""

import hashlib
from typing import Union


def hash_bytes(data: bytes) -> str:
    """SHA-256 hex digest of the exact bytes."""
    return hashlib.sha256(data).hexdigest()


def hash_content(content: Union[bytes, str]) -> str:
    """Hash raw bytes, or the UTF-8 bytes of a text submission."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hash_bytes(content)
