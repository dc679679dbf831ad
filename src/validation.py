"""
CertChain - Certificate Validation Workflow

Decides whether a certificate is authentic:

1. Its stored hash must match a fresh hash of its data (else DATA_TAMPERED).
2. The chain must contain a block for its stored hash (else NOT_IN_CHAIN).
3. Only when step 2 passed, the chain must pass lenient validation
   (else CHAIN_COMPROMISED). A certificate that was never chained says
   nothing about the chain, so the chain is not evaluated for it.

All failing reasons are reported together.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from blockchain import CertificateChain
from certificate import Certificate

logger = logging.getLogger(__name__)

MESSAGE_AUTHENTIC = "Certificate is authentic"
MESSAGE_INVALID = "Certificate is invalid"


class ReasonCode(Enum):
    """Why a certificate failed validation."""
    DATA_TAMPERED = "DataTampered"
    NOT_IN_CHAIN = "NotInChain"
    CHAIN_COMPROMISED = "ChainCompromised"


REASON_MESSAGES = {
    ReasonCode.DATA_TAMPERED: "Data tampered",
    ReasonCode.NOT_IN_CHAIN: "Not in blockchain",
    ReasonCode.CHAIN_COMPROMISED: "Blockchain compromised",
}


@dataclass
class ValidationResult:
    """Outcome of evaluating one certificate."""

    authentic: bool
    reasons: list[ReasonCode] = field(default_factory=list)
    certificate_id: int | None = None
    certificate_hash: str | None = None

    @property
    def message(self) -> str:
        message = MESSAGE_AUTHENTIC if self.authentic else MESSAGE_INVALID
        for reason in self.reasons:
            message += f" - {REASON_MESSAGES[reason]}"
        return message

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.authentic,
            "message": self.message,
            "reasons": [reason.value for reason in self.reasons],
            "certificateId": self.certificate_id,
        }


class ValidationWorkflow:
    """Evaluates certificates against a shared CertificateChain."""

    def __init__(self, chain: CertificateChain):
        self.chain = chain

    def evaluate(self, certificate: Certificate) -> ValidationResult:
        """
        Evaluate a certificate.

        The containment check and the chain check run under one hold of the
        chain lock, so they observe the same chain state.

        Args:
            certificate: The stored certificate to check

        Returns:
            ValidationResult with every failing reason
        """
        reasons: list[ReasonCode] = []

        if not certificate.is_valid():
            reasons.append(ReasonCode.DATA_TAMPERED)

        with self.chain.lock:
            in_chain = self.chain.contains(certificate.hash)
            if not in_chain:
                reasons.append(ReasonCode.NOT_IN_CHAIN)
            elif not self.chain.validate_lenient():
                reasons.append(ReasonCode.CHAIN_COMPROMISED)

        result = ValidationResult(
            authentic=not reasons,
            reasons=reasons,
            certificate_id=certificate.id,
            certificate_hash=certificate.hash,
        )
        logger.info(
            "Validated certificate %s: %s",
            certificate.id,
            result.message,
        )
        return result
