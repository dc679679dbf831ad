"""
Abstract base class for storage backends.

This module defines the interface that all storage backends must implement:
certificate records (by id, content hash or file hash) and chain blocks
(in insertion order, deletable by certificate hash, with the hashes of
deleted blocks kept).
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from blockchain import Block
from certificate import Certificate


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageConnectionError(StorageError):
    """Raised when connection to storage backend fails."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to storage fails."""
    pass


class DuplicateCertificateError(StorageWriteError):
    """Raised when a certificate with the same content hash is already stored."""

    def __init__(self, certificate_hash: str):
        super().__init__(f"Certificate with hash {certificate_hash} already exists")
        self.certificate_hash = certificate_hash


def lowest_available_id(used_ids: Iterable[int]) -> int:
    """
    Get the lowest positive id not in use.

    Ids freed by deleted certificates are handed out again.
    """
    used = set(used_ids)
    candidate = 1
    while candidate in used:
        candidate += 1
    return candidate


class StorageBackend(ABC):
    """
    Abstract base class for certificate storage backends.

    Every call is atomic from the caller's point of view; backends provide
    their own locking or transactions.
    """

    # Certificates

    @abstractmethod
    def find_certificate_by_id(self, certificate_id: int) -> Certificate | None:
        """
        Find a certificate by id.

        Returns:
            The certificate, or None if not found

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def find_certificate_by_hash(self, certificate_hash: str) -> Certificate | None:
        """Find a certificate by content hash."""
        pass

    @abstractmethod
    def find_certificate_by_file_hash(self, file_hash: str) -> Certificate | None:
        """Find a certificate by the hash of its uploaded file."""
        pass

    @abstractmethod
    def save_certificate(self, certificate: Certificate) -> int:
        """
        Save a new certificate under the lowest available id.

        Args:
            certificate: Certificate to store; its ``id`` is ignored

        Returns:
            The assigned certificate id

        Raises:
            DuplicateCertificateError: If the content hash is already stored
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def delete_certificate(self, certificate_id: int) -> bool:
        """
        Delete a certificate by id.

        Returns:
            True if a certificate was deleted, False if not found
        """
        pass

    @abstractmethod
    def load_all_certificates(self) -> list[Certificate]:
        """Load every certificate, newest id first."""
        pass

    # Chain blocks

    @abstractmethod
    def load_all_blocks(self) -> list[Block]:
        """
        Load every stored block in the order it was saved.

        Positions can repeat after deletions, so insertion order rather than
        position is the chain order.
        """
        pass

    @abstractmethod
    def save_block(self, block: Block) -> None:
        """
        Save a single block.

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def delete_block_by_certificate_hash(self, certificate_hash: str) -> bool:
        """
        Delete the non-genesis block for a certificate hash.

        The deleted block's own hash is recorded in the same transaction
        and reported by ``load_removed_block_hashes``.

        Returns:
            True if a block was deleted
        """
        pass

    @abstractmethod
    def load_removed_block_hashes(self) -> set[str]:
        """Load the hashes of every block deleted so far."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the storage backend is available and ready.

        Returns:
            True if storage is accessible, False otherwise
        """
        pass

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type, status, and configuration
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }

    def get_certificate_count(self) -> int:
        return len(self.load_all_certificates())

    def get_block_count(self) -> int:
        return len(self.load_all_blocks())

    def close(self) -> None:
        """
        Close the storage connection and release resources.

        Default implementation does nothing - backends with connections
        should override this.
        """
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes connection."""
        self.close()
        return False
