"""
Tests for HTTP request parsing and response serialization.
"""

import io
import json
import os
import socket
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from exceptions import MalformedRequest
from hash_utils import CHUNK_SIZE
from http_protocol import (
    MAX_HEADER_COUNT,
    MAX_LINE_BYTES,
    HTTPResponse,
    attachment_response,
    error_response,
    json_response,
    not_found,
    parse_form_urlencoded,
    read_request,
)

LIMIT = 1024 * 1024


def parse(raw: bytes, limit: int = LIMIT):
    return read_request(io.BytesIO(raw), limit)


class TestReadRequest:

    def test_simple_get(self):
        request = parse(b"GET /api/certificates HTTP/1.1\r\nHost: localhost\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/api/certificates"
        assert request.version == "HTTP/1.1"
        assert request.headers == {"host": "localhost"}
        assert request.body == b""

    def test_query_string_is_split_off(self):
        request = parse(b"GET /download/3?inline=1 HTTP/1.1\r\n\r\n")
        assert request.path == "/download/3"
        assert request.query == "inline=1"

    def test_body_is_exactly_content_length(self):
        request = parse(
            b"POST / HTTP/1.1\r\n"
            b"Content-Type: application/x-www-form-urlencoded\r\n"
            b"Content-Length: 15\r\n\r\n"
            b"action=validateEXTRA"
        )
        assert request.body == b"action=validate"
        assert request.content_type == "application/x-www-form-urlencoded"
        assert not request.is_multipart

    def test_header_names_case_insensitive(self):
        request = parse(b"POST / HTTP/1.1\r\nCONTENT-TYPE: multipart/form-data; boundary=x\r\n\r\n")
        assert request.is_multipart

    def test_lowercase_method_normalised(self):
        assert parse(b"get / HTTP/1.1\r\n\r\n").method == "GET"

    def test_missing_version_defaults(self):
        assert parse(b"GET /\r\n\r\n").version == "HTTP/1.0"

    def test_bare_newlines(self):
        request = parse(b"GET /style.css HTTP/1.1\nHost: x\n\n")
        assert request.path == "/style.css"
        assert request.headers["host"] == "x"

    def test_leading_blank_lines_skipped(self):
        assert parse(b"\r\n\r\nGET / HTTP/1.1\r\n\r\n").path == "/"

    def test_empty_stream(self):
        assert parse(b"") is None

    def test_malformed_request_line(self):
        with pytest.raises(MalformedRequest):
            parse(b"GARBAGE\r\n\r\n")

    def test_malformed_header(self):
        with pytest.raises(MalformedRequest):
            parse(b"GET / HTTP/1.1\r\nno colon here\r\n\r\n")

    @pytest.mark.parametrize("value", [b"abc", b"-5", b"1.5"])
    def test_invalid_content_length(self, value):
        with pytest.raises(MalformedRequest):
            parse(b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n")

    def test_oversized_body(self):
        with pytest.raises(MalformedRequest) as exc_info:
            parse(b"POST / HTTP/1.1\r\nContent-Length: 101\r\n\r\n" + b"x" * 101, limit=100)
        assert exc_info.value.details == {"limit": 100}

    def test_truncated_body(self):
        with pytest.raises(MalformedRequest):
            parse(b"POST / HTTP/1.1\r\nContent-Length: 50\r\n\r\nshort")

    def test_line_too_long(self):
        with pytest.raises(MalformedRequest):
            parse(b"GET /" + b"a" * MAX_LINE_BYTES + b" HTTP/1.1\r\n\r\n")

    def test_too_many_headers(self):
        headers = b"".join(b"X-H%d: v\r\n" % i for i in range(MAX_HEADER_COUNT + 1))
        with pytest.raises(MalformedRequest):
            parse(b"GET / HTTP/1.1\r\n" + headers + b"\r\n")

    def test_binary_body_preserved(self):
        body = bytes(range(256))
        request = parse(b"POST / HTTP/1.1\r\nContent-Length: 256\r\n\r\n" + body)
        assert request.body == body


class TestParseFormUrlencoded:

    def test_pairs(self):
        assert parse_form_urlencoded("action=issue&studentName=Alice") == {
            "action": "issue",
            "studentName": "Alice",
        }

    def test_plus_becomes_space(self):
        assert parse_form_urlencoded("course=Data+Structures")["course"] == "Data Structures"

    def test_percent_escapes_left_alone(self):
        assert parse_form_urlencoded("studentName=Zo%C3%AB")["studentName"] == "Zo%C3%AB"

    def test_empty_value_dropped(self):
        assert parse_form_urlencoded("certificateId=&hash=abc") == {"hash": "abc"}

    def test_extra_equals_dropped(self):
        assert parse_form_urlencoded("a=b=c&d=e") == {"d": "e"}

    def test_key_without_value_dropped(self):
        assert parse_form_urlencoded("flag&x=1") == {"x": "1"}

    def test_empty_body(self):
        assert parse_form_urlencoded("") == {}


class TestResponses:

    def test_to_bytes(self):
        raw = HTTPResponse(status=200, body=b"hello", content_type="text/plain").to_bytes()
        head, _, body = raw.partition(b"\r\n\r\n")
        lines = head.split(b"\r\n")

        assert lines[0] == b"HTTP/1.1 200 OK"
        assert b"Content-Type: text/plain" in lines
        assert b"Content-Length: 5" in lines
        assert b"Connection: close" in lines
        assert body == b"hello"

    def test_unknown_status_reason(self):
        assert HTTPResponse(status=599).to_bytes().startswith(b"HTTP/1.1 599 Unknown")

    def test_json_response(self):
        response = json_response({"success": True})
        assert response.content_type == "application/json"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert json.loads(response.body) == {"success": True}

    def test_error_response(self):
        response = error_response("Missing required fields")
        assert response.status == 400
        assert json.loads(response.body) == {"success": False, "error": "Missing required fields"}

    def test_server_error_response(self):
        assert error_response("Database error: gone", status=500).status == 500

    def test_not_found(self):
        response = not_found()
        assert response.status == 404
        assert response.body == b"404 Not Found"
        assert response.content_type == "text/plain"

    def test_attachment_response(self, tmp_path):
        path = tmp_path / "stored.pdf"
        path.write_bytes(b"%PDF")

        response = attachment_response(str(path), 'cert"\r\nX-Evil: 1.pdf')

        assert response.content_type == "application/octet-stream"
        assert response.headers["Content-Disposition"] == 'attachment; filename="certX-Evil: 1.pdf"'
        assert b"Content-Length: 4" in response.head_bytes()
        assert b"\r\nX-Evil" not in response.head_bytes()


def read_all(sock):
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


class TestWriteTo:

    def test_in_memory_body(self):
        sender, receiver = socket.socketpair()
        with sender, receiver:
            json_response({"success": True}).write_to(sender)
            sender.shutdown(socket.SHUT_WR)
            raw = read_all(receiver)

        head, _, body = raw.partition(b"\r\n\r\n")
        assert head.startswith(b"HTTP/1.1 200 OK")
        assert json.loads(body) == {"success": True}

    def test_file_body_is_streamed_in_chunks(self, tmp_path):
        data = bytes(range(256)) * (CHUNK_SIZE // 256 * 3 + 1)
        path = tmp_path / "big.pdf"
        path.write_bytes(data)
        response = attachment_response(str(path), "big.pdf")

        sent = []

        class RecordingSocket:
            def sendall(self, chunk):
                sent.append(bytes(chunk))

        response.write_to(RecordingSocket())

        head, _, body = b"".join(sent).partition(b"\r\n\r\n")
        assert f"Content-Length: {len(data)}".encode() in head
        assert body == data
        assert max(len(chunk) for chunk in sent[1:]) == CHUNK_SIZE
        assert len(sent) == 1 + 4
