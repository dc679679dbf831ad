"""
CertChain - SHA-256 fingerprint helpers

Every fingerprint in the system is the lowercase hex SHA-256 digest of
UTF-8 bytes: certificate content hashes, uploaded file hashes and block
hashes all come from here.
"""

import hashlib
from typing import BinaryIO

from exceptions import HashProviderUnavailable

HASH_ALGORITHM = "sha256"

# Read size for streamed digests (uploads, files on disk)
CHUNK_SIZE = 8192

# Length of a hex-encoded SHA-256 digest
FINGERPRINT_LENGTH = 64


def ensure_hash_provider() -> None:
    """
    Verify that SHA-256 is available.

    Called once at process start; the server cannot run without it.

    Raises:
        HashProviderUnavailable: If the interpreter has no SHA-256 implementation
    """
    try:
        hashlib.new(HASH_ALGORITHM)
    except (ValueError, AttributeError) as e:
        raise HashProviderUnavailable(f"{HASH_ALGORITHM} hash provider unavailable: {e}") from e


def sha256_hex(text: str) -> str:
    """
    Fingerprint a string.

    Args:
        text: String to hash (encoded as UTF-8)

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_bytes(data: bytes) -> str:
    """Fingerprint a byte buffer."""
    return hashlib.sha256(data).hexdigest()


def hash_stream(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Fingerprint a binary stream without loading it in one allocation.

    Args:
        stream: Readable binary file object, consumed to EOF
        chunk_size: Bytes read per iteration

    Returns:
        64-character lowercase hex digest
    """
    digest = hashlib.sha256()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        digest.update(chunk)
    return digest.hexdigest()


def hash_file(path: str) -> str:
    """Fingerprint the full contents of a file on disk."""
    with open(path, "rb") as f:
        return hash_stream(f)


def is_fingerprint(value: str) -> bool:
    """Check whether a value looks like a fingerprint produced by this module."""
    if not isinstance(value, str) or len(value) != FINGERPRINT_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
