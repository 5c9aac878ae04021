import io

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from pcskit.rio import Buffer
from pcskit.transfer import DownloadStatus, Range
from pcskit.worker import Worker, sort_by_left_desc
from pcskit.workerstatus import StatusCode

URL = "http://example.com/file.bin"


def make_response(status, body, headers=None, reason="OK"):
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp.raw = io.BytesIO(body)
    resp.headers = CaseInsensitiveDict(headers or {})
    return resp


class FakeClient:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def req(self, method, url, post=None, header=None):
        self.calls.append((method, url, dict(header or {})))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


BODY = bytes(range(256)) * 20


def range_worker(result, r, writer=None):
    w = Worker(1, URL, writer)
    w.client = FakeClient(result)
    w.accept_ranges = "bytes"
    w.set_range(r)
    return w


def test_single_stream_download():
    buf = Buffer(len(BODY))
    w = Worker(0, URL, buf)
    w.client = FakeClient(make_response(200, BODY))
    status = DownloadStatus()
    w.download_status = status
    w.cache_size = 1000
    w.execute()
    assert w.status.status_code == StatusCode.SUCCESSED
    assert bytes(buf) == BODY
    assert status.downloaded == len(BODY)
    assert status.total_size == len(BODY)
    assert "Range" not in w.client.calls[0][2]


def test_range_download_sends_range_header():
    buf = Buffer(len(BODY))
    resp = make_response(206, BODY, {"Content-Length": str(len(BODY))})
    w = range_worker(resp, Range(0, len(BODY)), buf)
    w.referer = "http://example.com/"
    w.execute()
    method, url, header = w.client.calls[0]
    assert (method, url) == ("GET", URL)
    assert header["Range"] == f"bytes=0-{len(BODY) - 1}"
    assert header["Referer"] == "http://example.com/"
    assert w.status.status_code == StatusCode.SUCCESSED
    assert bytes(buf) == BODY
    assert w.range.length() == 0


@pytest.mark.parametrize(
    "code, expected",
    [
        (404, StatusCode.INTERNAL_ERROR),
        (403, StatusCode.INTERNAL_ERROR),
        (416, StatusCode.INTERNAL_ERROR),
        (406, StatusCode.NET_ERROR),
        (429, StatusCode.TOO_MANY_CONNECTIONS),
        (509, StatusCode.TOO_MANY_CONNECTIONS),
        (500, StatusCode.NET_ERROR),
    ],
)
def test_error_status_codes(code, expected):
    w = range_worker(make_response(code, b"", reason="Nope"), Range(0, 10))
    w.execute()
    assert w.status.status_code == expected
    assert str(code) in str(w.err)
    assert w.failed()


def test_unexpected_status_message():
    w = range_worker(make_response(500, b"", reason="Server Error"), Range(0, 10))
    w.execute()
    assert str(w.err).startswith("unexpected http status code")


def test_content_length_mismatch_is_net_error():
    resp = make_response(206, BODY[:5], {"Content-Length": "5"})
    w = range_worker(resp, Range(0, 10))
    w.execute()
    assert w.status.status_code == StatusCode.NET_ERROR
    assert "Content-Length" in str(w.err)


def test_content_range_total_mismatch_is_internal_error():
    resp = make_response(206, BODY[:10], {"Content-Length": "10", "Content-Range": "bytes 0-9/999"})
    w = range_worker(resp, Range(0, 10))
    w.total_size = len(BODY)
    w.execute()
    assert w.status.status_code == StatusCode.INTERNAL_ERROR
    assert "Content-Range" in str(w.err)


def test_request_exception_is_net_error():
    exc = requests.ConnectionError("refused")
    w = range_worker(exc, Range(0, 10))
    w.execute()
    assert w.status.status_code == StatusCode.NET_ERROR
    assert w.err is exc


def test_empty_range_succeeds_without_request():
    w = range_worker(make_response(206, b""), Range(10, 10))
    w.execute()
    assert w.status.status_code == StatusCode.SUCCESSED
    assert w.client.calls == []


def test_short_body_fails():
    resp = make_response(206, BODY[:5], {"Content-Length": "10"})
    w = range_worker(resp, Range(0, 10))
    w.first_resp = resp
    w.execute()
    assert w.status.status_code == StatusCode.FAILED
    assert isinstance(w.err, EOFError)


def test_long_body_is_truncated_to_range():
    buf = Buffer(len(BODY))
    resp = make_response(206, BODY, {"Content-Length": str(len(BODY))})
    w = range_worker(resp, Range(0, 100), buf)
    w.first_resp = resp
    w.execute()
    assert w.status.status_code == StatusCode.SUCCESSED
    assert bytes(buf)[:100] == BODY[:100]
    assert bytes(buf)[100:] == bytes(len(BODY) - 100)


def test_first_response_is_used_once():
    resp = make_response(206, BODY[:10], {"Content-Length": "10"})
    w = range_worker(RuntimeError("must not be called"), Range(0, 10))
    w.first_resp = resp
    w.execute()
    assert w.status.status_code == StatusCode.SUCCESSED
    assert w.client.calls == []
    assert w.first_resp is None


def test_cancel_before_execute_raises():
    w = Worker(1, URL)
    with pytest.raises(RuntimeError, match="cancelFunc not set"):
        w.cancel()


def test_reset_before_execute_keeps_status():
    w = Worker(1, URL)
    w.reset()
    assert w.status.status_code == StatusCode.INIT


def test_pause_single_stream_is_ignored():
    w = Worker(1, URL)
    w.client = FakeClient(make_response(200, b""))
    w.pause()
    assert w.status.status_code == StatusCode.INIT


def test_paused_worker_stops_before_writing():
    buf = Buffer(10)
    resp = make_response(206, BODY[:10], {"Content-Length": "10"})
    w = range_worker(resp, Range(0, 10), buf)
    w.pause()
    assert w.status.status_code == StatusCode.PAUSED
    w.execute()
    assert w.status.status_code == StatusCode.PAUSED
    assert bytes(buf) == bytes(10)
    assert w.range.begin == 0


def test_resume_when_not_paused_does_nothing():
    w = Worker(1, URL)
    w.resume()
    assert w.status.status_code == StatusCode.INIT


def test_state_predicates():
    w = Worker(1, URL)
    w.status.status_code = StatusCode.CANCELED
    assert (w.completed(), w.canceled(), w.failed()) == (True, True, False)
    w.status.status_code = StatusCode.NET_ERROR
    assert (w.completed(), w.canceled(), w.failed()) == (False, False, True)
    w.clear_status()
    assert w.status.status_code == StatusCode.INIT


def test_set_range_copies_bounds():
    w = Worker(1, URL)
    original = Range(3, 7)
    w.set_range(original)
    assert w.range is original
    w.set_range(Range(10, 20))
    assert (original.begin, original.end) == (10, 20)


def test_sort_by_left_desc():
    workers = []
    for i, r in enumerate([Range(0, 5), Range(0, 50), Range(10, 30)]):
        w = Worker(i, URL)
        w.set_range(r)
        workers.append(w)
    sort_by_left_desc(workers)
    assert [w.id for w in workers] == [1, 2, 0]
    lengths = [w.range.length() for w in workers]
    assert lengths == sorted(lengths, reverse=True)