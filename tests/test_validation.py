"""
Tests for the certificate validation workflow.
"""

import os
import sys
from dataclasses import replace
from datetime import date

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from blockchain import CertificateChain
from certificate import Certificate
from validation import ReasonCode, ValidationWorkflow


def issue(chain: CertificateChain, name: str, course: str = "Algorithms") -> Certificate:
    certificate = Certificate.create(name, course, date(2024, 1, 15))
    chain.append(certificate.hash)
    return certificate


def test_authentic_certificate(fresh_chain):
    certificate = issue(fresh_chain, "Alice").with_id(1)

    result = ValidationWorkflow(fresh_chain).evaluate(certificate)

    assert result.authentic
    assert result.reasons == []
    assert result.message == "Certificate is authentic"
    assert result.to_dict() == {
        "valid": True,
        "message": "Certificate is authentic",
        "reasons": [],
        "certificateId": 1,
    }


def test_tampered_data(fresh_chain):
    certificate = issue(fresh_chain, "Alice")
    tampered = replace(certificate, student_name="Mallory")

    result = ValidationWorkflow(fresh_chain).evaluate(tampered)

    assert not result.authentic
    assert result.reasons == [ReasonCode.DATA_TAMPERED]
    assert result.message == "Certificate is invalid - Data tampered"


def test_not_in_chain_does_not_evaluate_chain(fresh_chain):
    issue(fresh_chain, "Alice")
    issue(fresh_chain, "Bob")
    issue(fresh_chain, "Carol")
    fresh_chain.remove(Certificate.create("Bob", "Algorithms", date(2024, 1, 15)).hash)
    orphan = Certificate.create("Dave", "Algorithms", date(2024, 1, 15))

    result = ValidationWorkflow(fresh_chain).evaluate(orphan)

    assert result.reasons == [ReasonCode.NOT_IN_CHAIN]
    assert result.message == "Certificate is invalid - Not in blockchain"


def test_tampered_and_not_in_chain(fresh_chain):
    orphan = Certificate.create("Dave", "Algorithms", date(2024, 1, 15))
    tampered = replace(orphan, course="Physics")

    result = ValidationWorkflow(fresh_chain).evaluate(tampered)

    assert result.reasons == [ReasonCode.DATA_TAMPERED, ReasonCode.NOT_IN_CHAIN]
    assert result.message == "Certificate is invalid - Data tampered - Not in blockchain"


def test_surviving_certificate_authentic_after_deletion(fresh_chain):
    alice = issue(fresh_chain, "Alice")
    bob = issue(fresh_chain, "Bob")
    carol = issue(fresh_chain, "Carol")
    fresh_chain.remove(bob.hash)

    workflow = ValidationWorkflow(fresh_chain)

    assert workflow.evaluate(alice).authentic
    assert workflow.evaluate(carol).authentic
    assert workflow.evaluate(bob).reasons == [ReasonCode.NOT_IN_CHAIN]


def test_compromised_chain(fresh_chain):
    alice = issue(fresh_chain, "Alice")
    issue(fresh_chain, "Bob")
    issue(fresh_chain, "Carol")

    blocks = fresh_chain.get_blocks()
    forged = replace(blocks[2], certificate_hash="f" * 64)
    compromised = CertificateChain(genesis=blocks[0])
    for block in (blocks[1], forged, blocks[3]):
        compromised.load_existing(block)

    result = ValidationWorkflow(compromised).evaluate(alice)

    assert not result.authentic
    assert result.reasons == [ReasonCode.CHAIN_COMPROMISED]
    assert result.message == "Certificate is invalid - Blockchain compromised"
    assert result.to_dict()["reasons"] == ["ChainCompromised"]
