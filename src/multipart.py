"""
multipart/form-data decoding.

A deliberately small decoder: the body is split on exact occurrences of the
boundary bytes, and each part's ``name`` / ``filename`` attributes are read
by literal substring search. Only the first occurrence of each attribute in
a part's headers is used.

Usage:
    from multipart import decode_multipart

    data = decode_multipart(headers["content-type"], body)
    action = data.get_field("action")
    upload = data.get_file("certificateFile")
"""

import logging
from dataclasses import dataclass, field

from exceptions import MalformedRequest

logger = logging.getLogger(__name__)

CRLF = b"\r\n"
HEADER_SEPARATOR = b"\r\n\r\n"
BOUNDARY_PARAM = "boundary="


@dataclass
class FileData:
    """An uploaded file attachment."""

    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class MultipartData:
    """Decoded form: text fields and file attachments keyed by field name (last wins)."""

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, FileData] = field(default_factory=dict)

    def add_field(self, name: str, value: str) -> None:
        self.fields[name] = value

    def add_file(self, name: str, filename: str, data: bytes) -> None:
        self.files[name] = FileData(filename=filename, data=data)

    def get_field(self, name: str, default: str | None = None) -> str | None:
        return self.fields.get(name, default)

    def get_file(self, name: str) -> FileData | None:
        return self.files.get(name)

    def has_file(self, name: str) -> bool:
        return name in self.files


def extract_boundary(content_type: str | None) -> str:
    """
    Extract the boundary token from a Content-Type header value.

    Args:
        content_type: e.g. ``multipart/form-data; boundary=----abc``

    Returns:
        The boundary token without the leading ``--``

    Raises:
        MalformedRequest: If no boundary parameter is present
    """
    if not content_type or BOUNDARY_PARAM not in content_type:
        raise MalformedRequest("No boundary found in Content-Type")

    token = content_type[content_type.index(BOUNDARY_PARAM) + len(BOUNDARY_PARAM):]
    token = token.split(";", 1)[0].strip().strip('"')
    if not token:
        raise MalformedRequest("Empty boundary in Content-Type")
    return token


def _extract_attribute(headers: str, attribute: str) -> str | None:
    """
    Find ``attribute="value"`` in a part's header block.

    An occurrence preceded by a letter is skipped, so ``name`` never
    matches inside ``filename``.
    """
    marker = f'{attribute}="'
    search_from = 0
    while True:
        start = headers.find(marker, search_from)
        if start == -1:
            return None
        if start > 0 and (headers[start - 1].isalnum() or headers[start - 1] == "_"):
            search_from = start + 1
            continue
        value_start = start + len(marker)
        value_end = headers.find('"', value_start)
        if value_end == -1:
            return None
        return headers[value_start:value_end]


class MultipartDecoder:
    """
    Decodes a raw multipart/form-data body.

    Parts are the byte ranges between two consecutive boundary markers.
    Anything after the last marker (the closing ``--`` and epilogue) is
    discarded, as is anything before the first one (the preamble).
    """

    def __init__(self, content_type: str | None, body: bytes):
        self.boundary = extract_boundary(content_type)
        self.body = body
        self._delimiter = b"--" + self.boundary.encode("utf-8")

    def decode(self) -> MultipartData:
        data = MultipartData()

        start = self.body.find(self._delimiter)
        while start != -1:
            part_start = start + len(self._delimiter)
            end = self.body.find(self._delimiter, part_start)
            if end == -1:
                break
            self._parse_part(self.body[part_start:end], data)
            start = end

        logger.debug(
            "Decoded multipart body: %d fields, %d files", len(data.fields), len(data.files)
        )
        return data

    @staticmethod
    def _parse_part(part: bytes, data: MultipartData) -> None:
        if part.startswith(CRLF):
            part = part[len(CRLF):]

        header_end = part.find(HEADER_SEPARATOR)
        if header_end == -1:
            return

        headers = part[:header_end].decode("utf-8", errors="replace")
        body = part[header_end + len(HEADER_SEPARATOR):]
        if body.endswith(CRLF):
            body = body[:-len(CRLF)]

        name = _extract_attribute(headers, "name")
        if name is None:
            return

        filename = _extract_attribute(headers, "filename")
        if filename:
            data.add_file(name, filename, body)
        else:
            # Absent and empty filenames both land here
            data.add_field(name, body.decode("utf-8", errors="replace"))


def decode_multipart(content_type: str | None, body: bytes) -> MultipartData:
    """Decode a multipart/form-data body. Raises MalformedRequest without a boundary."""
    return MultipartDecoder(content_type, body).decode()
