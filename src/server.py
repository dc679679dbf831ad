"""
CertChain - Certificate Server

A small HTTP/1.1 server on a raw listening socket. One thread accepts
connections and hands each one to a fixed-size worker pool; a worker reads
the request, routes it, writes the response and closes the socket.

Usage:
    config = ServerConfig.from_env()
    server = build_application(config)
    server.serve_forever()
"""

import logging
import os
import socket
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from http import HTTPStatus

import pages
from blockchain import CertificateChain
from certificate_service import CertificateService, parse_certificate_id
from config import ServerConfig
from exceptions import ClientDataError, MalformedRequest
from hash_utils import ensure_hash_provider
from http_protocol import (
    HTTPRequest,
    HTTPResponse,
    attachment_response,
    content_response,
    error_response,
    json_response,
    not_found,
    parse_form_urlencoded,
    read_request,
)
from monitoring import LoggingContext, clear_request_context, metrics, set_request_context
from monitoring.metrics import MetricsCollector
from multipart import decode_multipart
from storage import get_storage_backend
from storage.base import DuplicateCertificateError, StorageBackend, StorageError

logger = logging.getLogger(__name__)

DELETE_PREFIX = "/api/certificates/delete/"
DOWNLOAD_PREFIX = "/api/certificates/download/"

STATIC_ROUTES = {
    "/": (pages.INDEX_HTML, "text/html; charset=UTF-8"),
    "/index.html": (pages.INDEX_HTML, "text/html; charset=UTF-8"),
    "/style.css": (pages.STYLE_CSS, "text/css"),
    "/script.js": (pages.SCRIPT_JS, "application/javascript"),
}

LISTEN_BACKLOG = 128
# How often the accept loop checks for shutdown
ACCEPT_POLL_SECONDS = 0.5


class CertificateServer:
    """Accept loop, worker pool and request routing."""

    def __init__(
        self,
        service: CertificateService,
        config: ServerConfig | None = None,
        metrics_collector: MetricsCollector | None = None,
    ):
        self.service = service
        self.config = config or ServerConfig()
        self.metrics = metrics_collector or metrics

        self._socket: socket.socket | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._accept_thread: threading.Thread | None = None
        self._running = threading.Event()

    @property
    def chain(self) -> CertificateChain:
        return self.service.chain

    @property
    def storage(self) -> StorageBackend:
        return self.service.storage

    @property
    def server_address(self) -> tuple[str, int]:
        """The bound (host, port); the port is real even when configured as 0."""
        if self._socket is None:
            return self.config.host, self.config.port
        return self._socket.getsockname()[:2]

    # Lifecycle

    def bind(self) -> None:
        """Create the listening socket and the worker pool."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.config.port))
            sock.listen(LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise
        sock.settimeout(ACCEPT_POLL_SECONDS)
        self._socket = sock
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="certchain-worker",
        )
        self._running.set()
        host, port = self.server_address
        logger.info(
            "Listening on %s:%d with %d workers", host, port, self.config.max_workers
        )

    def serve_forever(self) -> None:
        """Accept connections until ``stop()`` is called."""
        if self._socket is None:
            self.bind()

        while self._running.is_set():
            try:
                conn, address = self._socket.accept()
            except TimeoutError:
                continue
            except OSError as e:
                if not self._running.is_set():
                    break
                logger.error("Accept failed: %s", e)
                continue

            try:
                self._executor.submit(self.handle_connection, conn, address)
            except RuntimeError:
                # Pool already shut down
                conn.close()
                break

    def start(self) -> None:
        """Bind and run the accept loop on a background thread."""
        self.bind()
        self._accept_thread = threading.Thread(
            target=self.serve_forever, name="certchain-accept", daemon=True
        )
        self._accept_thread.start()

    def shutdown(self) -> None:
        """Ask the accept loop to exit. Safe to call from a signal handler."""
        self._running.clear()

    def stop(self) -> None:
        """Stop accepting, let in-flight requests finish, and release storage."""
        self._running.clear()
        if self._accept_thread is not None:
            self._accept_thread.join(timeout=ACCEPT_POLL_SECONDS * 4)
            self._accept_thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.storage.close()
        logger.info("Server stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    # Connections

    def handle_connection(self, conn: socket.socket, address: tuple) -> None:
        """
        Serve one request on an accepted connection, then close it.

        Never raises: request errors become error responses and socket
        errors are logged.
        """
        start = time.perf_counter()
        method, path = "-", "-"
        status = None
        self.metrics.increment_gauge("http_requests_active")
        try:
            conn.settimeout(self.config.connection_timeout)
            with conn.makefile("rb") as rfile:
                try:
                    request = read_request(rfile, self.config.max_body_bytes)
                except MalformedRequest as e:
                    response = error_response(e.message, HTTPStatus.BAD_REQUEST)
                else:
                    if request is None:
                        return
                    method, path = request.method, request.path
                    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
                    set_request_context(request_id=request_id, method=method, path=path)
                    response = self.dispatch(request)
                    response.headers["X-Request-ID"] = request_id

            status = int(response.status)
            response.write_to(conn)
        except OSError as e:
            logger.warning("Connection from %s dropped: %s", address[0], e)
        finally:
            conn.close()
            self.metrics.decrement_gauge("http_requests_active")
            if status is not None:
                self._record_request(method, path, status, start)
            clear_request_context()

    def _record_request(self, method: str, path: str, status: int, start: float) -> None:
        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.increment(
            "http_requests_total", labels={"method": method, "status": str(status)}
        )
        self.metrics.timing("http_request_duration_ms", duration_ms, labels={"method": method})
        logger.info(
            "%s %s %d %.1fms",
            method,
            path,
            status,
            duration_ms,
            extra={"status": status, "duration_ms": round(duration_ms, 2)},
        )

    # Routing

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """Route a request and map handler errors to error responses."""
        try:
            return self.route(request)
        except (MalformedRequest, ClientDataError) as e:
            return error_response(e.message, HTTPStatus.BAD_REQUEST)
        except DuplicateCertificateError:
            return error_response("Certificate with this data already exists", HTTPStatus.BAD_REQUEST)
        except StorageError as e:
            logger.exception("Storage failure handling %s %s", request.method, request.path)
            return error_response(f"Database error: {e}", HTTPStatus.INTERNAL_SERVER_ERROR)
        except Exception as e:
            logger.exception("Unhandled error handling %s %s", request.method, request.path)
            return error_response(str(e) or type(e).__name__, HTTPStatus.INTERNAL_SERVER_ERROR)

    def route(self, request: HTTPRequest) -> HTTPResponse:
        method, path = request.method, request.path

        if method == "GET":
            if path in STATIC_ROUTES:
                body, content_type = STATIC_ROUTES[path]
                return content_response(body, content_type)
            if path == "/api/certificates":
                return json_response(self.service.list_certificates())
            if path == "/api/blockchain":
                return json_response(self.service.chain_summary())
            if path == "/api/metrics":
                return json_response(self.metrics.get_all())
            if path.startswith(DELETE_PREFIX):
                return self._delete(path)
            if path.startswith(DOWNLOAD_PREFIX):
                certificate_id = parse_certificate_id(path[len(DOWNLOAD_PREFIX):])
                file_path, filename = self.service.download(certificate_id)
                return attachment_response(file_path, filename)

        elif method == "DELETE":
            if path.startswith(DELETE_PREFIX):
                return self._delete(path)

        elif method == "POST":
            if path == "/":
                return self._form_post(request)

        return not_found()

    def _delete(self, path: str) -> HTTPResponse:
        certificate_id = parse_certificate_id(path[len(DELETE_PREFIX):])
        return json_response(self.service.delete(certificate_id))

    def _form_post(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch an issue or validate form, multipart or URL-encoded."""
        upload = None
        if request.is_multipart:
            form = decode_multipart(request.content_type, request.body)
            fields = form.fields
            upload = form.get_file("certificateFile")
        else:
            fields = parse_form_urlencoded(request.body.decode("utf-8", errors="replace"))

        action = fields.get("action")
        if action == "issue":
            return json_response(self.service.issue(fields, upload))
        if action == "validate":
            return json_response(self.service.validate(fields, upload))
        return not_found()


def restore_chain(storage: StorageBackend) -> CertificateChain:
    """
    Rebuild the in-memory chain from stored blocks.

    Blocks are loaded in the order they were saved, together with the hashes
    of deleted blocks. A stored block at index 0 is reused as the genesis
    block. When none is stored, the fresh genesis block is persisted so
    later restarts see the same chain.
    """
    blocks = storage.load_all_blocks()
    genesis = next((block for block in blocks if block.is_genesis), None)

    if genesis is not None:
        chain = CertificateChain(genesis=genesis)
        blocks = [block for block in blocks if block is not genesis]
    else:
        chain = CertificateChain()
        storage.save_block(chain.genesis_block)
        if blocks:
            logger.warning(
                "No stored genesis block; created a new one ahead of %d stored blocks", len(blocks)
            )

    for block in blocks:
        chain.load_existing(block)
    chain.load_removed(storage.load_removed_block_hashes())

    logger.info(
        "Restored chain with %d blocks (strict validation %s)",
        chain.length(),
        "passed" if chain.validate_strict() else "failed",
    )
    return chain


def build_application(
    config: ServerConfig | None = None,
    storage: StorageBackend | None = None,
) -> CertificateServer:
    """
    Wire storage, chain, handlers and server together.

    The hash provider is checked and the chain restored before any
    connection is accepted.

    Raises:
        HashProviderUnavailable: If SHA-256 is missing
        StorageError: If storage cannot be opened or read
    """
    config = config or ServerConfig.from_env()
    with LoggingContext(phase="startup"):
        ensure_hash_provider()

        storage = storage if storage is not None else get_storage_backend(config)
        chain = restore_chain(storage)

        os.makedirs(config.uploads_dir, exist_ok=True)
        logger.info("Upload directory: %s", os.path.abspath(config.uploads_dir))

    service = CertificateService(chain, storage, config.uploads_dir)
    metrics.set_gauge("chain_length", chain.length())
    return CertificateServer(service, config)
