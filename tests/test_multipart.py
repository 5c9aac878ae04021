import io

import pytest

from pcskit.multipart import MultipartReader


def _read_all(mr):
    chunks = []
    while True:
        chunk = mr.read(7)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def test_content_type_carries_boundary():
    mr = MultipartReader()
    assert mr.content_type == "multipart/form-data; boundary=" + mr.boundary
    assert len(mr.boundary) == 60


def test_read_before_close_raises():
    mr = MultipartReader()
    with pytest.raises(RuntimeError, match="not closed"):
        mr.read(10)


def test_close_twice_raises():
    mr = MultipartReader()
    mr.close_multipart()
    with pytest.raises(RuntimeError, match="already closed"):
        mr.close_multipart()


def test_empty_body_is_closing_delimiter():
    mr = MultipartReader()
    mr.add_form_field("ignored", None)
    mr.close_multipart()
    expected = b"\r\n--" + mr.boundary.encode() + b"--\r\n"
    assert mr.read() == expected
    assert mr.length() == len(expected)


def test_field_body_layout_and_length():
    mr = MultipartReader()
    mr.add_form_field("name", io.BytesIO(b"value"))
    mr.close_multipart()
    b = mr.boundary.encode()
    expected = (
        b"--" + b + b'\r\nContent-Disposition: form-data; name="name"\r\n\r\n'
        + b"value" + b"\r\n--" + b + b"--\r\n"
    )
    data = _read_all(mr)
    assert data == expected
    assert mr.length() == len(data)


def test_fields_come_before_files():
    mr = MultipartReader()
    mr.add_form_file("file", "a.txt", io.BytesIO(b"FILEDATA"))
    mr.add_form_field("field", io.BytesIO(b"FIELDDATA"))
    mr.close_multipart()
    data = mr.read()
    assert data.index(b"FIELDDATA") < data.index(b"FILEDATA")
    assert b'name="file"; filename="a.txt"' in data
    assert mr.length() == len(data)
    assert data.endswith(b"--" + mr.boundary.encode() + b"--\r\n")