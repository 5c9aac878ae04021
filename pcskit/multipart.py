"""Streaming multipart/form-data bodies built from length-aware readers."""

from __future__ import annotations

import io
import secrets
import threading
from typing import Any, Optional

from .rio import MultiReaderLen, _reader_length


class MultipartReader:
    """Builds a multipart/form-data body without loading file contents into memory.

    Add fields and files, call :meth:`close_multipart`, then read the body.
    """

    def __init__(self) -> None:
        self.boundary = secrets.token_hex(30)
        self._content_type = "multipart/form-data; boundary=" + self.boundary
        self._form_body = b""
        self._parts: list[tuple[bytes, Any]] = []
        self._file_parts: list[tuple[bytes, Any]] = []
        self._form_close = b""
        self._length = len(self._form_body)
        self._closed = False
        self._multi: Optional[MultiReaderLen] = None
        self._lock = threading.Lock()

    @property
    def content_type(self) -> str:
        """Value for the Content-Type header."""
        return self._content_type

    def add_form_field(self, fieldname: str, reader: Any) -> None:
        """Add a form field whose value is read from ``reader``; ``None`` is ignored."""
        if reader is None:
            return
        form = (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{fieldname}"\r\n\r\n'
        ).encode()
        with self._lock:
            self._length += len(form) + _reader_length(reader)
            self._parts.append((form, reader))

    def add_form_file(self, fieldname: str, filename: str, reader: Any) -> None:
        """Add a file field read from ``reader``; ``None`` is ignored."""
        if reader is None:
            return
        form = (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{fieldname}"; filename="{filename}"\r\n\r\n'
        ).encode()
        with self._lock:
            self._length += len(form) + _reader_length(reader)
            self._file_parts.append((form, reader))

    def close_multipart(self) -> None:
        """Finish the body; raises RuntimeError if it was already finished."""
        with self._lock:
            if self._closed:
                raise RuntimeError("multipartreader already closed")
            self._form_close = f"\r\n--{self.boundary}--\r\n".encode()
            self._length += len(self._form_close)
            readers: list[Any] = [io.BytesIO(self._form_body)]
            for form, reader in self._parts + self._file_parts:
                readers.append(io.BytesIO(form))
                readers.append(reader)
            readers.append(io.BytesIO(self._form_close))
            self._multi = MultiReaderLen(readers)
            self._closed = True

    def read(self, size: int = -1) -> bytes:
        """Read from the body; raises RuntimeError before :meth:`close_multipart`."""
        if not self._closed or self._multi is None:
            raise RuntimeError("multipartreader not closed")
        return self._multi.read(size)

    def length(self) -> int:
        """Total length of the body in bytes."""
        with self._lock:
            return self._length