import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from pcskit.dlcommon import (
    CACHE_SIZE,
    PARALLEL_SIZE,
    Config,
    DownloadFirstInfo,
    get_file_name,
    new_download_first_info_by_resp,
    open_downloader_writer,
    parse_content_range,
    random_number,
)

_PROXY_VARS = ("http_proxy", "HTTP_PROXY", "https_proxy", "HTTPS_PROXY", "all_proxy", "ALL_PROXY")


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, *args):
        pass

    def do_HEAD(self):
        self.send_response(200)
        if self.path == "/named":
            self.send_header("Content-Disposition", 'attachment; filename="a%20b.txt"')
        elif self.path == "/bad":
            self.send_header("Content-Disposition", 'attachment; filename="bad%zz"')
        self.send_header("Content-Length", "0")
        self.end_headers()


@pytest.fixture
def server(monkeypatch):
    for var in _PROXY_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{httpd.server_address[1]}"
    httpd.shutdown()
    httpd.server_close()


def test_random_number_in_range():
    for _ in range(10):
        assert 0 <= random_number(0, 5) < 5


def test_random_number_swapped_bounds():
    for _ in range(10):
        assert 0 <= random_number(5, 0) < 5


def test_config_defaults():
    cfg = Config()
    assert cfg.max_parallel == PARALLEL_SIZE
    assert cfg.cache_size == CACHE_SIZE
    assert cfg.is_test is False


def test_config_fix_raises_minimums():
    cfg = Config(cache_size=10, max_parallel=0)
    cfg.fix()
    assert cfg.cache_size == 1024
    assert cfg.max_parallel == 1


def test_config_copy_is_independent():
    cfg = Config(max_parallel=10)
    other = cfg.copy()
    other.max_parallel = 3
    assert cfg.max_parallel == 10
    assert other == Config(max_parallel=3)


def test_first_info_compare():
    a = DownloadFirstInfo(content_length=10, accept_ranges="bytes", referer="r")
    assert a.compare(DownloadFirstInfo(content_length=10, accept_ranges="bytes", referer="r", content_md5="x"))
    assert not a.compare(DownloadFirstInfo(content_length=11, accept_ranges="bytes", referer="r"))
    assert not a.compare(None)


def test_first_info_to_map():
    info = DownloadFirstInfo(content_md5="m", content_crc32="c", accept_ranges="bytes", referer="r")
    assert info.to_map() == {
        "Content-MD5": "m",
        "x-bs-meta-crc32": "c",
        "Accept-Ranges": "bytes",
        "Referer": "r",
    }


def _response():
    resp = requests.Response()
    resp.headers["Content-Length"] = "5"
    resp.headers["Accept-Ranges"] = "bytes"
    resp.headers["Referer"] = "http://example.com/"
    return resp


def test_first_info_from_none_response():
    assert new_download_first_info_by_resp(10, None).content_length == 10


def test_first_info_from_response_with_different_length():
    info = new_download_first_info_by_resp(10, _response())
    assert info.content_length == 10
    assert info.accept_ranges == "bytes"
    assert info.referer == "http://example.com/"


def test_first_info_from_response_with_same_length_leaves_zero():
    assert new_download_first_info_by_resp(5, _response()).content_length == 0


@pytest.mark.parametrize(
    "header,expected",
    [("bytes 0-99/1000", 1000), ("bytes */1000", -1), ("", -1), ("bytes 0-99/", -1)],
)
def test_parse_content_range(header, expected):
    assert parse_content_range(header) == expected


def test_get_file_name_from_disposition(server):
    assert get_file_name(server + "/named", None) == "a b.txt"


def test_get_file_name_falls_back_to_path(server):
    assert get_file_name(server + "/files/data.bin") == "data.bin"
    assert get_file_name(server + "/dir/") == "dir"


def test_get_file_name_bad_escape(server):
    with pytest.raises(ValueError):
        get_file_name(server + "/bad")


def test_open_downloader_writer_writes_at_offsets(tmp_path):
    target = tmp_path / "out.bin"
    with open_downloader_writer(str(target)) as writer:
        assert writer.write_at(b"world", 5) == 5
        writer.write_at(b"hello", 0)
    assert target.read_bytes() == b"helloworld"