"""
CertChain - Certificate Hash Chain
Core chain data structures and integrity checks

A single-node, single-writer tamper-evidence log. Each block vouches for one
certificate by carrying its content hash and links to its predecessor by hash.
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from hash_utils import sha256_hex

logger = logging.getLogger(__name__)

# Genesis block constants
GENESIS_CERTIFICATE_HASH = "genesis"
GENESIS_PREVIOUS_HASH = "0"


@dataclass(frozen=True)
class Block:
    """
    A block in the certificate chain.

    Immutable once built. ``hash`` is computed at construction time from the
    other four fields by plain string concatenation.
    """

    index: int
    timestamp: str
    certificate_hash: str
    previous_hash: str
    hash: str

    @classmethod
    def create(cls, index: int, certificate_hash: str, previous_hash: str) -> "Block":
        """
        Create a new block stamped with the current time.

        Args:
            index: Block position in chain
            certificate_hash: Fingerprint of the certificate this block vouches for
            previous_hash: Hash of the previous block

        Returns:
            The new block with its hash computed
        """
        timestamp = datetime.now().isoformat()
        return cls(
            index=index,
            timestamp=timestamp,
            certificate_hash=certificate_hash,
            previous_hash=previous_hash,
            hash=cls.calculate_hash(index, timestamp, certificate_hash, previous_hash),
        )

    @classmethod
    def reconstruct(
        cls,
        index: int,
        timestamp: str,
        certificate_hash: str,
        previous_hash: str,
        hash: str,
    ) -> "Block":
        """Rebuild a stored block verbatim. The stored hash is trusted, not recomputed."""
        return cls(
            index=index,
            timestamp=timestamp,
            certificate_hash=certificate_hash,
            previous_hash=previous_hash,
            hash=hash,
        )

    @staticmethod
    def calculate_hash(index: int, timestamp: str, certificate_hash: str, previous_hash: str) -> str:
        """Calculate the SHA-256 hash of the concatenated block fields."""
        return sha256_hex(f"{index}{timestamp}{certificate_hash}{previous_hash}")

    def is_self_consistent(self) -> bool:
        """Check that the stored hash still matches the block's own fields."""
        expected = self.calculate_hash(
            self.index, self.timestamp, self.certificate_hash, self.previous_hash
        )
        return expected == self.hash

    @property
    def is_genesis(self) -> bool:
        return self.index == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert block to dictionary for serialization."""
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "certificateHash": self.certificate_hash,
            "previousHash": self.previous_hash,
            "currentHash": self.hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Block":
        """Create block from dictionary."""
        return cls.reconstruct(
            index=int(data["index"]),
            timestamp=data["timestamp"],
            certificate_hash=data["certificateHash"],
            previous_hash=data["previousHash"],
            hash=data["currentHash"],
        )


class CertificateChain:
    """
    The certificate chain.

    Position 0 always holds the genesis block. Every public operation runs
    under one re-entrant lock, so appends, removals and validation passes
    from different worker threads never interleave. Callers that need several
    operations to see the same state can hold ``chain.lock`` themselves.
    """

    def __init__(self, genesis: Block | None = None):
        """
        Initialize the chain with a genesis block.

        Args:
            genesis: A previously persisted genesis block to restore verbatim.
                     If None, a fresh genesis block is created.
        """
        self._lock = threading.RLock()
        self._chain: list[Block] = [genesis if genesis is not None else self.create_genesis_block()]
        # Hashes of blocks taken out by remove(); successors may still point at them
        self._removed_hashes: set[str] = set()

    @staticmethod
    def create_genesis_block() -> Block:
        """Create the first block in the chain."""
        return Block.create(
            index=0,
            certificate_hash=GENESIS_CERTIFICATE_HASH,
            previous_hash=GENESIS_PREVIOUS_HASH,
        )

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def genesis_block(self) -> Block:
        with self._lock:
            return self._chain[0]

    def get_latest_block(self) -> Block:
        """Get the most recent block in the chain."""
        with self._lock:
            return self._chain[-1]

    def append(self, certificate_hash: str) -> Block:
        """
        Add a new block vouching for a certificate.

        Reading the latest block and appending the new one happen under the
        same lock hold, so two concurrent appends never share a predecessor.

        Args:
            certificate_hash: Fingerprint of the certificate

        Returns:
            The newly created block
        """
        with self._lock:
            new_block = Block.create(
                index=len(self._chain),
                certificate_hash=certificate_hash,
                previous_hash=self._chain[-1].hash,
            )
            self._chain.append(new_block)
        logger.debug("Appended block %d for %s", new_block.index, certificate_hash)
        return new_block

    def load_existing(self, block: Block) -> None:
        """
        Append a stored block as-is (restoration from durable storage).

        No hashes are recomputed and position continuity is not enforced.
        """
        with self._lock:
            self._chain.append(block)

    def load_removed(self, block_hashes: Iterable[str]) -> None:
        """Record hashes of blocks removed before the chain was restored."""
        with self._lock:
            self._removed_hashes.update(block_hashes)

    def remove(self, certificate_hash: str) -> bool:
        """
        Remove the non-genesis block carrying a certificate hash.

        Surviving blocks keep their index and hash; strict validation will
        fail afterwards if the removed block had a successor. The removed
        block's hash is remembered so lenient validation can tell the gap
        apart from a forged link.

        Args:
            certificate_hash: The certificate hash to remove

        Returns:
            True if a block was removed, False otherwise
        """
        with self._lock:
            for i in range(1, len(self._chain)):
                block = self._chain[i]
                if not block.is_genesis and block.certificate_hash == certificate_hash:
                    del self._chain[i]
                    self._removed_hashes.add(block.hash)
                    logger.info("Removed block %d for %s", block.index, certificate_hash)
                    return True
        return False

    def contains(self, certificate_hash: str) -> bool:
        """Check whether any block carries the certificate hash."""
        with self._lock:
            return any(block.certificate_hash == certificate_hash for block in self._chain)

    def find_by_payload(self, certificate_hash: str) -> Block | None:
        """Get the first block carrying the certificate hash, or None."""
        with self._lock:
            for block in self._chain:
                if block.certificate_hash == certificate_hash:
                    return block
        return None

    def validate_strict(self) -> bool:
        """
        Validate the entire chain for integrity.

        Every non-genesis block must be self-consistent and link to the hash
        of the block immediately before it. Any deletion breaks this.

        Returns:
            True if chain is valid, False otherwise
        """
        with self._lock:
            for i in range(1, len(self._chain)):
                current_block = self._chain[i]
                previous_block = self._chain[i - 1]

                if not current_block.is_self_consistent():
                    logger.warning("Block %d has invalid hash", current_block.index)
                    return False

                if current_block.previous_hash != previous_block.hash:
                    logger.debug("Block %d has invalid previous hash", current_block.index)
                    return False

        return True

    def validate_lenient(self) -> bool:
        """
        Validate the chain while tolerating gaps left by authorized deletions.

        Every non-genesis block must be self-consistent. A block whose
        predecessor is non-genesis must link to it, unless it links to a
        block that was removed. A block right after genesis is not
        required to link to it.

        Returns:
            True if existing blocks form a valid chain
        """
        with self._lock:
            if len(self._chain) <= 1:
                return True

            for i in range(1, len(self._chain)):
                current_block = self._chain[i]
                previous_block = self._chain[i - 1]

                if not current_block.is_self_consistent():
                    logger.warning("Block %d has invalid hash", current_block.index)
                    return False

                if previous_block.is_genesis:
                    continue

                if current_block.previous_hash == previous_block.hash:
                    continue

                if current_block.previous_hash not in self._removed_hashes:
                    logger.warning("Block %d does not link to block %d", current_block.index, previous_block.index)
                    return False

        return True

    def length(self) -> int:
        """Get the total number of blocks, genesis included."""
        with self._lock:
            return len(self._chain)

    def __len__(self) -> int:
        return self.length()

    def get_blocks(self) -> list[Block]:
        """Get a snapshot of all blocks."""
        with self._lock:
            return list(self._chain)

    def clear(self) -> None:
        """Drop every block except a fresh genesis block."""
        with self._lock:
            self._chain = [self.create_genesis_block()]
            self._removed_hashes.clear()

    def to_dict(self) -> dict[str, Any]:
        """Export the chain with per-block and strict whole-chain validity."""
        with self._lock:
            return {
                "chainLength": len(self._chain),
                "valid": self.validate_strict(),
                "blocks": [
                    {**block.to_dict(), "valid": block.is_self_consistent()}
                    for block in self._chain
                ],
            }
