"""
Certificate record.

The content hash is ``SHA256(student_name + course + issue_date)`` with the
date in ISO-8601 (YYYY-MM-DD) form. That hash is what the chain vouches for.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Any

from exceptions import ClientDataError
from hash_utils import sha256_hex


def compute_certificate_hash(student_name: str, course: str, issue_date: date) -> str:
    """Compute the content hash for certificate data."""
    return sha256_hex(f"{student_name}{course}{issue_date.isoformat()}")


def parse_issue_date(value: str) -> date:
    """
    Parse an ISO-8601 calendar date.

    Raises:
        ClientDataError: If the value is not a YYYY-MM-DD date
    """
    try:
        return date.fromisoformat(value.strip())
    except (ValueError, AttributeError) as e:
        raise ClientDataError(f"Invalid issue date: {value}") from e


@dataclass
class Certificate:
    """A certificate with its stored content hash and optional uploaded file."""

    student_name: str
    course: str
    issue_date: date
    hash: str
    id: int | None = None
    file_path: str | None = None
    file_hash: str | None = None

    @classmethod
    def create(cls, student_name: str, course: str, issue_date: date) -> "Certificate":
        """Create a new certificate and compute its hash."""
        return cls(
            student_name=student_name,
            course=course,
            issue_date=issue_date,
            hash=compute_certificate_hash(student_name, course, issue_date),
        )

    def expected_hash(self) -> str:
        return compute_certificate_hash(self.student_name, self.course, self.issue_date)

    def is_valid(self) -> bool:
        """Check that the stored hash still matches the certificate data."""
        return self.expected_hash() == self.hash

    def with_id(self, certificate_id: int) -> "Certificate":
        return replace(self, id=certificate_id)

    def to_summary(self) -> dict[str, Any]:
        """Summary used by the certificate listing endpoint."""
        return {
            "id": self.id,
            "studentName": self.student_name,
            "course": self.course,
            "issueDate": self.issue_date.isoformat(),
            "hash": self.hash,
            "filePath": self.file_path,
        }
