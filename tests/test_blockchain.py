"""
Tests for CertChain block and chain integrity.
"""

import os
import sys
from dataclasses import FrozenInstanceError, replace

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from blockchain import (
    GENESIS_CERTIFICATE_HASH,
    GENESIS_PREVIOUS_HASH,
    Block,
    CertificateChain,
)
from hash_utils import sha256_hex


def test_genesis_block():
    """A new chain holds exactly the genesis block."""
    chain = CertificateChain()
    assert chain.length() == 1
    genesis = chain.genesis_block
    assert genesis.index == 0
    assert genesis.certificate_hash == GENESIS_CERTIFICATE_HASH
    assert genesis.previous_hash == GENESIS_PREVIOUS_HASH
    assert genesis.is_genesis
    assert genesis.is_self_consistent()


def test_block_hash_is_string_concatenation():
    block = Block.create(index=3, certificate_hash="abc", previous_hash="def")
    assert block.hash == sha256_hex(f"3{block.timestamp}abcdef")


def test_block_is_immutable():
    block = Block.create(index=1, certificate_hash="abc", previous_hash="def")
    with pytest.raises(FrozenInstanceError):
        block.hash = "0" * 64


def test_reconstruct_does_not_recompute():
    block = Block.reconstruct(
        index=1,
        timestamp="2024-01-15T10:30:00",
        certificate_hash="abc",
        previous_hash="def",
        hash="not-a-real-hash",
    )
    assert block.hash == "not-a-real-hash"
    assert not block.is_self_consistent()


def test_block_dict_round_trip():
    block = Block.create(index=2, certificate_hash="abc", previous_hash="def")
    data = block.to_dict()
    assert set(data) == {"index", "timestamp", "certificateHash", "previousHash", "currentHash"}
    assert Block.from_dict(data) == block


def test_append_links_to_previous():
    chain = CertificateChain()
    first = chain.append("h1")
    second = chain.append("h2")

    assert first.index == 1
    assert first.previous_hash == chain.genesis_block.hash
    assert second.index == 2
    assert second.previous_hash == first.hash
    assert chain.get_latest_block() == second


def test_strict_validation_after_appends():
    chain = CertificateChain()
    for i in range(20):
        chain.append(sha256_hex(f"certificate {i}"))
    assert chain.validate_strict()
    assert chain.validate_lenient()


def test_contains_and_find_by_payload():
    chain = CertificateChain()
    block = chain.append("h1")

    assert chain.contains("h1")
    assert chain.contains(GENESIS_CERTIFICATE_HASH)
    assert not chain.contains("h2")
    assert chain.find_by_payload("h1") == block
    assert chain.find_by_payload("h2") is None


def test_remove_middle_block_scenario():
    """Removing h2 from G,h1,h2,h3 breaks strict but not lenient validation."""
    chain = CertificateChain()
    chain.append("h1")
    chain.append("h2")
    chain.append("h3")
    assert chain.length() == 4
    assert chain.validate_strict()

    assert chain.remove("h2") is True

    assert chain.length() == 3
    assert not chain.contains("h2")
    assert chain.validate_lenient()
    assert not chain.validate_strict()


def test_remove_keeps_positions():
    chain = CertificateChain()
    chain.append("h1")
    chain.append("h2")
    chain.append("h3")
    chain.remove("h2")

    assert [block.index for block in chain.get_blocks()] == [0, 1, 3]


def test_remove_first_block_after_genesis():
    chain = CertificateChain()
    chain.append("h1")
    chain.append("h2")
    chain.remove("h1")

    assert chain.validate_lenient()
    assert not chain.validate_strict()


def test_remove_last_block_keeps_strict_validity():
    chain = CertificateChain()
    chain.append("h1")
    chain.append("h2")
    chain.remove("h2")

    assert chain.validate_strict()
    assert chain.validate_lenient()


def test_remove_unknown_hash():
    chain = CertificateChain()
    chain.append("h1")
    assert chain.remove("missing") is False
    assert chain.length() == 2


def test_remove_never_touches_genesis():
    chain = CertificateChain()
    assert chain.remove(GENESIS_CERTIFICATE_HASH) is False
    assert chain.length() == 1


def test_remove_deletes_only_first_match():
    chain = CertificateChain()
    chain.append("dup")
    chain.append("dup")
    assert chain.remove("dup") is True
    assert chain.length() == 2
    assert chain.contains("dup")


def test_append_after_removal_still_validates_leniently():
    chain = CertificateChain()
    chain.append("h1")
    chain.append("h2")
    chain.append("h3")
    chain.remove("h2")
    new_block = chain.append("h4")

    assert new_block.previous_hash == chain.get_blocks()[-2].hash
    assert chain.validate_lenient()


def test_reused_positions_after_deletions_validate_leniently():
    chain = CertificateChain()
    chain.append("a")
    chain.append("b")
    chain.remove("a")
    chain.append("c")
    chain.append("d")
    chain.remove("c")

    assert [(b.certificate_hash, b.index) for b in chain.get_blocks()] == [
        ("genesis", 0),
        ("b", 2),
        ("d", 3),
    ]
    assert chain.validate_lenient()
    assert not chain.validate_strict()


def test_restored_chain_needs_removed_hashes_for_gaps():
    original = CertificateChain()
    original.append("h1")
    removed = original.append("h2")
    original.append("h3")
    original.remove("h2")
    stored = original.get_blocks()

    restored = CertificateChain(genesis=stored[0])
    for block in stored[1:]:
        restored.load_existing(block)
    assert not restored.validate_lenient()

    restored.load_removed([removed.hash])
    assert restored.validate_lenient()


def test_clear_forgets_removed_blocks():
    chain = CertificateChain()
    chain.append("h1")
    chain.remove("h1")
    chain.clear()

    first = Block.create(index=1, certificate_hash="h2", previous_hash=chain.genesis_block.hash)
    second = Block.create(index=2, certificate_hash="h3", previous_hash="f" * 64)
    chain.load_existing(first)
    chain.load_existing(second)

    assert not chain.validate_lenient()


def test_lenient_validation_trivial_chain():
    assert CertificateChain().validate_lenient()


def test_tampered_block_fails_both_modes():
    chain = CertificateChain()
    chain.append("h1")
    chain.append("h2")

    blocks = chain.get_blocks()
    forged = replace(blocks[1], certificate_hash="forged")
    rebuilt = CertificateChain(genesis=blocks[0])
    rebuilt.load_existing(forged)
    rebuilt.load_existing(blocks[2])

    assert not rebuilt.validate_strict()
    assert not rebuilt.validate_lenient()


def test_broken_link_between_contiguous_blocks_fails_lenient():
    genesis = CertificateChain.create_genesis_block()
    first = Block.create(index=1, certificate_hash="h1", previous_hash=genesis.hash)
    second = Block.create(index=2, certificate_hash="h2", previous_hash="f" * 64)

    chain = CertificateChain(genesis=genesis)
    chain.load_existing(first)
    chain.load_existing(second)

    assert not chain.validate_lenient()


def test_restore_with_persisted_genesis_keeps_strict_validity():
    original = CertificateChain()
    original.append("h1")
    original.append("h2")
    stored = original.get_blocks()

    restored = CertificateChain(genesis=stored[0])
    for block in stored[1:]:
        restored.load_existing(block)

    assert restored.get_blocks() == stored
    assert restored.validate_strict()


def test_to_dict():
    chain = CertificateChain()
    chain.append("h1")
    data = chain.to_dict()

    assert data["chainLength"] == 2
    assert data["valid"] is True
    assert len(data["blocks"]) == 2
    assert data["blocks"][1]["certificateHash"] == "h1"
    assert all(block["valid"] for block in data["blocks"])


def test_clear_resets_to_genesis():
    chain = CertificateChain()
    chain.append("h1")
    chain.clear()
    assert len(chain) == 1
    assert chain.get_latest_block().is_genesis
