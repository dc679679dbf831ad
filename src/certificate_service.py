"""
CertChain - Certificate Handlers

Issue, validate, delete and download operations behind the HTTP routes.
Each handler returns the JSON payload for a successful outcome and raises
``ClientDataError`` or a ``StorageError`` otherwise; the server maps those
to 400 and 500 responses.
"""

import logging
import os
import re
import time
from typing import Any

from blockchain import CertificateChain
from certificate import Certificate, parse_issue_date
from exceptions import ClientDataError
from hash_utils import hash_bytes, hash_file, is_fingerprint
from monitoring import metrics
from monitoring.metrics import MetricsCollector
from multipart import FileData
from storage.base import StorageBackend, StorageError
from validation import ValidationWorkflow

logger = logging.getLogger(__name__)

UPLOAD_FIELD = "certificateFile"
REQUIRED_ISSUE_FIELDS = ("studentName", "course", "issueDate")

_NUMERIC_ID = re.compile(r"[+-]?[0-9]+")


def parse_certificate_id(value: str | None) -> int:
    """
    Parse a certificate id from a path tail or form field.

    Raises:
        ClientDataError: If the value is not an integer
    """
    text = (value or "").strip()
    if not _NUMERIC_ID.fullmatch(text):
        raise ClientDataError("Invalid certificate ID")
    return int(text)


def download_name(stored_path: str) -> str:
    """Strip the ``<millis>_`` prefix added when the upload was stored."""
    filename = os.path.basename(stored_path)
    if "_" in filename:
        filename = filename.split("_", 1)[1]
    return filename


def _usable_upload(upload: FileData | None) -> FileData | None:
    # An empty upload counts as no file at all
    if upload is None or upload.size == 0:
        return None
    return upload


class CertificateService:
    """Certificate operations shared by all worker threads."""

    def __init__(
        self,
        chain: CertificateChain,
        storage: StorageBackend,
        uploads_dir: str = "uploads",
        metrics_collector: MetricsCollector | None = None,
    ):
        self.chain = chain
        self.storage = storage
        self.uploads_dir = uploads_dir
        self.metrics = metrics_collector or metrics
        self.workflow = ValidationWorkflow(chain)

    def _record_chain_length(self) -> None:
        self.metrics.set_gauge("chain_length", self.chain.length())

    # Uploaded files

    def _store_upload(self, upload: FileData) -> str:
        """Write an upload to ``<uploads_dir>/<epoch-millis>_<basename>`` and return the path."""
        basename = os.path.basename(upload.filename.replace("\\", "/")) or "upload"
        os.makedirs(self.uploads_dir, exist_ok=True)
        millis = int(time.time() * 1000)
        while True:
            path = os.path.join(self.uploads_dir, f"{millis}_{basename}")
            try:
                with open(path, "xb") as f:
                    f.write(upload.data)
                return path
            except FileExistsError:
                millis += 1

    def _discard_file(self, path: str | None) -> None:
        if not path:
            return
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            # The record is already gone; a leftover file is not fatal
            logger.warning("Could not delete file %s: %s", path, e)

    # Operations

    def issue(self, fields: dict[str, str], upload: FileData | None = None) -> dict[str, Any]:
        """
        Issue a certificate and append it to the chain.

        Args:
            fields: Form fields (studentName, course, issueDate)
            upload: Optional certificate file

        Returns:
            Payload with certificateId, hash, blockIndex and, with a file, fileHash

        Raises:
            ClientDataError: On missing fields, a bad date or duplicate data
            StorageError: If the store fails
        """
        if any(not fields.get(name) for name in REQUIRED_ISSUE_FIELDS):
            raise ClientDataError("Missing required fields")

        certificate = Certificate.create(
            student_name=fields["studentName"],
            course=fields["course"],
            issue_date=parse_issue_date(fields["issueDate"]),
        )

        if self.storage.find_certificate_by_hash(certificate.hash) is not None:
            raise ClientDataError(
                f"Certificate with this data already exists. Hash: {certificate.hash}"
            )

        upload = _usable_upload(upload)
        if upload is not None:
            certificate.file_path = self._store_upload(upload)
            certificate.file_hash = hash_file(certificate.file_path)

        try:
            certificate_id = self.storage.save_certificate(certificate)
        except StorageError:
            self._discard_file(certificate.file_path)
            raise
        certificate = certificate.with_id(certificate_id)

        block = self.chain.append(certificate.hash)
        self.storage.save_block(block)

        self.metrics.increment("certificates_issued_total")
        self._record_chain_length()
        logger.info(
            "Issued certificate %d in block %d",
            certificate_id,
            block.index,
            extra={"certificate_hash": certificate.hash},
        )

        payload: dict[str, Any] = {
            "success": True,
            "certificateId": certificate_id,
            "hash": certificate.hash,
        }
        if certificate.file_hash is not None:
            payload["fileHash"] = certificate.file_hash
        payload["blockIndex"] = block.index
        return payload

    def _lookup_for_validation(
        self, fields: dict[str, str], upload: FileData | None
    ) -> Certificate:
        upload = _usable_upload(upload)
        if upload is not None:
            certificate = self.storage.find_certificate_by_file_hash(hash_bytes(upload.data))
            if certificate is None:
                raise ClientDataError(
                    "Certificate not found - File hash does not match any stored certificate"
                )
            return certificate

        certificate = None
        if fields.get("certificateId"):
            certificate = self.storage.find_certificate_by_id(
                parse_certificate_id(fields["certificateId"])
            )
        elif fields.get("hash"):
            # Only a well-formed digest can match a stored certificate
            if is_fingerprint(fields["hash"]):
                certificate = self.storage.find_certificate_by_hash(fields["hash"])

        if certificate is None:
            raise ClientDataError("Certificate not found")
        return certificate

    def validate(self, fields: dict[str, str], upload: FileData | None = None) -> dict[str, Any]:
        """
        Check a certificate's authenticity.

        The certificate is found by uploaded file, else by certificateId,
        else by hash. Tampering and chain damage are reported in the payload.
        """
        certificate = self._lookup_for_validation(fields, upload)
        result = self.workflow.evaluate(certificate)

        outcome = "authentic" if result.authentic else "invalid"
        self.metrics.increment("validations_total", labels={"result": outcome})

        return {"success": True, **result.to_dict(), "hash": certificate.hash}

    def delete(self, certificate_id: int) -> dict[str, Any]:
        """
        Delete a certificate, its chain block and its uploaded file.

        The record and block deletions are not rolled back if removing the
        file fails.
        """
        certificate = self.storage.find_certificate_by_id(certificate_id)
        if certificate is None:
            raise ClientDataError("Certificate not found")

        if not self.storage.delete_certificate(certificate_id):
            raise ClientDataError("Failed to delete certificate")

        self.chain.remove(certificate.hash)
        self.storage.delete_block_by_certificate_hash(certificate.hash)
        self._discard_file(certificate.file_path)

        self.metrics.increment("certificates_deleted_total")
        self._record_chain_length()
        logger.info("Deleted certificate %d", certificate_id)

        return {
            "success": True,
            "message": "Certificate deleted successfully",
            "certificateId": certificate_id,
        }

    def download(self, certificate_id: int) -> tuple[str, str]:
        """
        Locate a certificate's uploaded file for streaming.

        Returns:
            Tuple of (file path on disk, download filename)

        Raises:
            ClientDataError: If the certificate, its file reference, or the
                file on disk is missing
        """
        certificate = self.storage.find_certificate_by_id(certificate_id)
        if certificate is None:
            raise ClientDataError("Certificate not found")
        if not certificate.file_path:
            raise ClientDataError("No file associated with this certificate")
        if not os.path.isfile(certificate.file_path):
            raise ClientDataError("Certificate file not found on disk")

        return certificate.file_path, download_name(certificate.file_path)

    def list_certificates(self) -> list[dict[str, Any]]:
        return [certificate.to_summary() for certificate in self.storage.load_all_certificates()]

    def chain_summary(self) -> dict[str, Any]:
        return self.chain.to_dict()
