"""
In-memory storage backend.

This backend keeps certificates and blocks in memory only, useful for:
- Unit testing
- Development
- Throwaway demo servers
"""

import threading
from dataclasses import replace
from typing import Any

from blockchain import Block
from certificate import Certificate
from storage.base import DuplicateCertificateError, StorageBackend, lowest_available_id


class MemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    All data is lost when the process exits. Thread-safe operations.
    Certificates are copied on the way in and out, so callers cannot
    modify stored records in place.
    """

    def __init__(self):
        """Initialize empty memory storage."""
        self._certificates: dict[int, Certificate] = {}
        self._blocks: list[Block] = []
        self._removed_hashes: set[str] = set()
        # Use RLock to allow reentrant locking (get_info calls the counters)
        self._lock = threading.RLock()

    def find_certificate_by_id(self, certificate_id: int) -> Certificate | None:
        with self._lock:
            certificate = self._certificates.get(certificate_id)
            return replace(certificate) if certificate else None

    def find_certificate_by_hash(self, certificate_hash: str) -> Certificate | None:
        with self._lock:
            for certificate in self._certificates.values():
                if certificate.hash == certificate_hash:
                    return replace(certificate)
        return None

    def find_certificate_by_file_hash(self, file_hash: str) -> Certificate | None:
        with self._lock:
            for certificate in self._certificates.values():
                if certificate.file_hash is not None and certificate.file_hash == file_hash:
                    return replace(certificate)
        return None

    def save_certificate(self, certificate: Certificate) -> int:
        with self._lock:
            if any(c.hash == certificate.hash for c in self._certificates.values()):
                raise DuplicateCertificateError(certificate.hash)
            certificate_id = lowest_available_id(self._certificates)
            self._certificates[certificate_id] = replace(certificate, id=certificate_id)
            return certificate_id

    def delete_certificate(self, certificate_id: int) -> bool:
        with self._lock:
            return self._certificates.pop(certificate_id, None) is not None

    def load_all_certificates(self) -> list[Certificate]:
        with self._lock:
            return [
                replace(self._certificates[certificate_id])
                for certificate_id in sorted(self._certificates, reverse=True)
            ]

    def load_all_blocks(self) -> list[Block]:
        with self._lock:
            return list(self._blocks)

    def save_block(self, block: Block) -> None:
        with self._lock:
            self._blocks.append(block)

    def delete_block_by_certificate_hash(self, certificate_hash: str) -> bool:
        with self._lock:
            remaining = []
            for block in self._blocks:
                if block.index != 0 and block.certificate_hash == certificate_hash:
                    self._removed_hashes.add(block.hash)
                else:
                    remaining.append(block)
            deleted = len(remaining) != len(self._blocks)
            self._blocks = remaining
            return deleted

    def load_removed_block_hashes(self) -> set[str]:
        with self._lock:
            return set(self._removed_hashes)

    def is_available(self) -> bool:
        """Memory storage is always available."""
        return True

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        with self._lock:
            info.update(
                {
                    "certificate_count": len(self._certificates),
                    "block_count": len(self._blocks),
                }
            )
        return info

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._certificates.clear()
            self._blocks.clear()
            self._removed_hashes.clear()
