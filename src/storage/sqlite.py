"""
SQLite storage backend.

The default backend: a single database file holding the ``certificates``
and ``blockchain`` tables. One connection is shared by all worker threads
and serialized with a lock.
"""

import logging
import os
import sqlite3
import threading
from datetime import date
from typing import Any

from blockchain import Block
from certificate import Certificate
from storage.base import (
    DuplicateCertificateError,
    StorageBackend,
    StorageConnectionError,
    StorageReadError,
    StorageWriteError,
    lowest_available_id,
)

logger = logging.getLogger(__name__)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS certificates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    student_name TEXT NOT NULL,
    course TEXT NOT NULL,
    issue_date TEXT NOT NULL,
    hash TEXT NOT NULL UNIQUE,
    file_path TEXT,
    file_hash TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS blockchain (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    block_index INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    certificate_hash TEXT NOT NULL,
    previous_hash TEXT NOT NULL,
    current_hash TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS removed_blocks (
    block_hash TEXT PRIMARY KEY,
    removed_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_cert_hash ON certificates(hash);
CREATE INDEX IF NOT EXISTS idx_cert_file_hash ON certificates(file_hash);
CREATE INDEX IF NOT EXISTS idx_blockchain_hash ON blockchain(certificate_hash);
"""

CERTIFICATE_COLUMNS = "id, student_name, course, issue_date, hash, file_path, file_hash"


def _row_to_certificate(row: tuple) -> Certificate:
    certificate_id, student_name, course, issue_date, hash_val, file_path, file_hash = row
    return Certificate(
        id=certificate_id,
        student_name=student_name,
        course=course,
        issue_date=date.fromisoformat(issue_date),
        hash=hash_val,
        file_path=file_path,
        file_hash=file_hash,
    )


class SQLiteStorage(StorageBackend):
    """SQLite storage backend using the standard library driver."""

    def __init__(self, database_path: str = "certificate_validator.db"):
        """
        Initialize SQLite storage and create tables if needed.

        Args:
            database_path: Path to the database file, or ":memory:"
        """
        self.database_path = database_path
        self._lock = threading.RLock()
        try:
            self._conn: sqlite3.Connection | None = sqlite3.connect(
                database_path, check_same_thread=False
            )
            with self._lock:
                self._conn.executescript(CREATE_TABLES_SQL)
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageConnectionError(f"Failed to open SQLite database {database_path}: {e}") from e

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageConnectionError("SQLite connection is closed")
        return self._conn

    def _fetch_certificate(self, where: str, value: Any) -> Certificate | None:
        with self._lock:
            try:
                row = self._connection().execute(
                    f"SELECT {CERTIFICATE_COLUMNS} FROM certificates WHERE {where} = ?",
                    (value,),
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageReadError(f"Failed to read certificate: {e}") from e
        return _row_to_certificate(row) if row else None

    def find_certificate_by_id(self, certificate_id: int) -> Certificate | None:
        return self._fetch_certificate("id", certificate_id)

    def find_certificate_by_hash(self, certificate_hash: str) -> Certificate | None:
        return self._fetch_certificate("hash", certificate_hash)

    def find_certificate_by_file_hash(self, file_hash: str) -> Certificate | None:
        return self._fetch_certificate("file_hash", file_hash)

    def save_certificate(self, certificate: Certificate) -> int:
        with self._lock:
            conn = self._connection()
            try:
                if self.find_certificate_by_hash(certificate.hash) is not None:
                    raise DuplicateCertificateError(certificate.hash)

                used_ids = [row[0] for row in conn.execute("SELECT id FROM certificates")]
                certificate_id = lowest_available_id(used_ids)
                conn.execute(
                    """
                    INSERT INTO certificates
                        (id, student_name, course, issue_date, hash, file_path, file_hash)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        certificate_id,
                        certificate.student_name,
                        certificate.course,
                        certificate.issue_date.isoformat(),
                        certificate.hash,
                        certificate.file_path,
                        certificate.file_hash,
                    ),
                )
                conn.commit()
                return certificate_id
            except sqlite3.IntegrityError as e:
                conn.rollback()
                if "UNIQUE" in str(e) and "hash" in str(e):
                    raise DuplicateCertificateError(certificate.hash) from e
                raise StorageWriteError(f"Failed to save certificate: {e}") from e
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageWriteError(f"Failed to save certificate: {e}") from e

    def delete_certificate(self, certificate_id: int) -> bool:
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute("DELETE FROM certificates WHERE id = ?", (certificate_id,))
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageWriteError(f"Failed to delete certificate: {e}") from e

    def load_all_certificates(self) -> list[Certificate]:
        with self._lock:
            try:
                rows = self._connection().execute(
                    f"SELECT {CERTIFICATE_COLUMNS} FROM certificates ORDER BY id DESC"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageReadError(f"Failed to load certificates: {e}") from e
        return [_row_to_certificate(row) for row in rows]

    def load_all_blocks(self) -> list[Block]:
        with self._lock:
            try:
                rows = self._connection().execute(
                    """
                    SELECT block_index, timestamp, certificate_hash, previous_hash, current_hash
                    FROM blockchain ORDER BY id ASC
                    """
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageReadError(f"Failed to load blocks: {e}") from e
        return [Block.reconstruct(*row) for row in rows]

    def save_block(self, block: Block) -> None:
        with self._lock:
            conn = self._connection()
            try:
                conn.execute(
                    """
                    INSERT INTO blockchain
                        (block_index, timestamp, certificate_hash, previous_hash, current_hash)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (block.index, block.timestamp, block.certificate_hash, block.previous_hash, block.hash),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageWriteError(f"Failed to save block: {e}") from e

    def delete_block_by_certificate_hash(self, certificate_hash: str) -> bool:
        with self._lock:
            conn = self._connection()
            try:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO removed_blocks (block_hash)
                    SELECT current_hash FROM blockchain
                    WHERE certificate_hash = ? AND block_index > 0
                    """,
                    (certificate_hash,),
                )
                cursor = conn.execute(
                    "DELETE FROM blockchain WHERE certificate_hash = ? AND block_index > 0",
                    (certificate_hash,),
                )
                conn.commit()
                return cursor.rowcount > 0
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageWriteError(f"Failed to delete block: {e}") from e

    def load_removed_block_hashes(self) -> set[str]:
        with self._lock:
            try:
                rows = self._connection().execute("SELECT block_hash FROM removed_blocks").fetchall()
            except sqlite3.Error as e:
                raise StorageReadError(f"Failed to load removed blocks: {e}") from e
        return {row[0] for row in rows}

    def is_available(self) -> bool:
        """Check if the database answers a trivial query."""
        with self._lock:
            try:
                self._connection().execute("SELECT 1")
                return True
            except (sqlite3.Error, StorageConnectionError):
                return False

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        info["database_path"] = self.database_path
        if self.database_path != ":memory:" and os.path.exists(self.database_path):
            info["file_size_bytes"] = os.path.getsize(self.database_path)
        if info["available"]:
            with self._lock:
                conn = self._connection()
                info["certificate_count"] = conn.execute("SELECT COUNT(*) FROM certificates").fetchone()[0]
                info["block_count"] = conn.execute("SELECT COUNT(*) FROM blockchain").fetchone()[0]
        return info

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("Closed SQLite database %s", self.database_path)
