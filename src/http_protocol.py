"""
CertChain - HTTP/1.1 wire protocol

Reads one request from a connection's binary stream and writes one response
back. Every connection carries exactly one request/response pair and is
closed afterwards, so there is no keep-alive or chunked encoding. File
downloads are streamed from disk in fixed-size chunks.
"""

import json
import os
import socket
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, BinaryIO

from exceptions import MalformedRequest
from hash_utils import CHUNK_SIZE

# Longest request or header line accepted, in bytes
MAX_LINE_BYTES = 65536
MAX_HEADER_COUNT = 100

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

JSON_CONTENT_TYPE = "application/json"


@dataclass
class HTTPRequest:
    """A parsed request. Header names are lower-cased."""

    method: str
    path: str
    version: str = "HTTP/1.1"
    query: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def is_multipart(self) -> bool:
        return "multipart/form-data" in self.content_type.lower()


@dataclass
class HTTPResponse:
    """
    A response ready to be written to the socket.

    The body is either held in ``body`` or, for downloads, read from
    ``file_path`` while sending; ``content_length`` is then the file size.
    """

    status: int = HTTPStatus.OK
    body: bytes = b""
    content_type: str = "text/plain"
    headers: dict[str, str] = field(default_factory=dict)
    file_path: str | None = None
    content_length: int | None = None

    def head_bytes(self) -> bytes:
        try:
            reason = HTTPStatus(self.status).phrase
        except ValueError:
            reason = "Unknown"
        length = len(self.body) if self.content_length is None else self.content_length
        lines = [
            f"HTTP/1.1 {int(self.status)} {reason}",
            f"Content-Type: {self.content_type}",
            f"Content-Length: {length}",
        ]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1", errors="replace")

    def to_bytes(self) -> bytes:
        """Serialize a response whose body is held in memory."""
        return self.head_bytes() + self.body

    def write_to(self, conn: socket.socket) -> None:
        """Send the response, streaming a file body in ``CHUNK_SIZE`` pieces."""
        if self.file_path is None:
            conn.sendall(self.to_bytes())
            return

        with open(self.file_path, "rb") as f:
            conn.sendall(self.head_bytes())
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                conn.sendall(chunk)


def _read_line(rfile: BinaryIO) -> bytes:
    line = rfile.readline(MAX_LINE_BYTES + 1)
    if len(line) > MAX_LINE_BYTES:
        raise MalformedRequest("Request line or header too long")
    return line


def _parse_content_length(value: str | None, max_body_bytes: int) -> int:
    if value is None:
        return 0
    try:
        length = int(value.strip())
    except ValueError:
        raise MalformedRequest(f"Invalid Content-Length: {value}")
    if length < 0:
        raise MalformedRequest(f"Negative Content-Length: {length}")
    if length > max_body_bytes:
        raise MalformedRequest(
            f"Request body too large: {length} bytes",
            details={"limit": max_body_bytes},
        )
    return length


def read_request(rfile: BinaryIO, max_body_bytes: int) -> HTTPRequest | None:
    """
    Read a single request from a binary stream.

    The body is exactly ``Content-Length`` bytes; requests without that
    header have an empty body.

    Args:
        rfile: Buffered binary reader over the connection
        max_body_bytes: Largest accepted Content-Length

    Returns:
        The parsed request, or None if the peer closed without sending one

    Raises:
        MalformedRequest: On an unparseable request line, bad header,
            invalid or oversized Content-Length, or a truncated body
    """
    request_line = _read_line(rfile)
    # Tolerate stray blank lines before the request line
    while request_line in (b"\r\n", b"\n"):
        request_line = _read_line(rfile)
    if not request_line:
        return None

    parts = request_line.decode("latin-1").strip().split()
    if len(parts) < 2:
        raise MalformedRequest("Malformed request line")
    method, target = parts[0].upper(), parts[1]
    version = parts[2] if len(parts) > 2 else "HTTP/1.0"
    path, _, query = target.partition("?")

    headers: dict[str, str] = {}
    while True:
        line = _read_line(rfile)
        if line in (b"\r\n", b"\n", b""):
            break
        if len(headers) >= MAX_HEADER_COUNT:
            raise MalformedRequest("Too many headers")
        name, sep, value = line.decode("latin-1").partition(":")
        if not sep:
            raise MalformedRequest(f"Malformed header line: {line[:80]!r}")
        headers[name.strip().lower()] = value.strip()

    length = _parse_content_length(headers.get("content-length"), max_body_bytes)
    body = rfile.read(length) if length else b""
    if len(body) < length:
        raise MalformedRequest(
            f"Request body ended after {len(body)} of {length} bytes"
        )

    return HTTPRequest(
        method=method,
        path=path,
        version=version,
        query=query,
        headers=headers,
        body=body,
    )


def parse_form_urlencoded(body: str) -> dict[str, str]:
    """
    Parse ``key=value&key=value`` form data.

    Only pairs with exactly one ``=`` and a non-empty value are kept, and
    ``+`` becomes a space. Percent-escapes are left as they are.
    """
    params = {}
    for pair in body.split("&"):
        key_value = pair.split("=")
        if len(key_value) == 2 and key_value[1]:
            params[key_value[0]] = key_value[1].replace("+", " ")
    return params


def json_response(payload: Any, status: int = HTTPStatus.OK) -> HTTPResponse:
    """Serialize a payload as JSON with the cross-origin header."""
    return HTTPResponse(
        status=status,
        body=json.dumps(payload).encode("utf-8"),
        content_type=JSON_CONTENT_TYPE,
        headers=dict(CORS_HEADERS),
    )


def error_response(message: str, status: int = HTTPStatus.BAD_REQUEST) -> HTTPResponse:
    return json_response({"success": False, "error": message}, status=status)


def not_found() -> HTTPResponse:
    return HTTPResponse(status=HTTPStatus.NOT_FOUND, body=b"404 Not Found", content_type="text/plain")


def content_response(body: str, content_type: str) -> HTTPResponse:
    """Serve fixed page content."""
    return HTTPResponse(body=body.encode("utf-8"), content_type=content_type)


def attachment_response(file_path: str, filename: str) -> HTTPResponse:
    """Serve a file on disk as a download under the given name."""
    safe_name = filename.replace('"', "").replace("\r", "").replace("\n", "")
    headers = {"Content-Disposition": f'attachment; filename="{safe_name}"'}
    headers.update(CORS_HEADERS)
    return HTTPResponse(
        content_type="application/octet-stream",
        headers=headers,
        file_path=file_path,
        content_length=os.path.getsize(file_path),
    )
