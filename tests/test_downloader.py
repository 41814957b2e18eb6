import gzip
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from limakit.downloader import (
    DigestMismatchError,
    DownloadError,
    Status,
    decompressor,
    download,
    is_local,
    parse_digest,
)

EMPTY_FILE_DIGEST = "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
TEST_DOWNLOAD_LOCAL_DIGEST = "sha256:0c1e0fba69e8919b306d030bf491e3e0c46cf0a8140ff5d7516ba3a83cbea5b3"
CONTENT = b"TestDownloadLocal"
WRONG_DIGEST = "sha256:8313944efb4f38570c689813f288058b674ea6c487017a5a4738dc674b65f9d9"


class _Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/file.txt":
            self.send_response(200)
            self.send_header("Content-Length", str(len(CONTENT)))
            self.end_headers()
            self.wfile.write(CONTENT)
        else:
            self.send_error(404)

    def log_message(self, *args):
        pass


@pytest.fixture
def server(monkeypatch):
    for name in ("http_proxy", "HTTP_PROXY", "https_proxy", "HTTPS_PROXY", "all_proxy", "ALL_PROXY"):
        monkeypatch.delenv(name, raising=False)
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{srv.server_address[1]}"
    srv.shutdown()
    srv.server_close()


def test_remote_without_cache_without_digest(server, tmp_path):
    local = str(tmp_path / "out")
    r = download(local, server + "/file.txt")
    assert r.status == Status.DOWNLOADED
    assert Path(local).read_bytes() == CONTENT
    r = download(local, server + "/file.txt")
    assert r.status == Status.SKIPPED


def test_remote_without_cache_with_digest(server, tmp_path):
    local = str(tmp_path / "out")
    with pytest.raises(DigestMismatchError, match="expected digest"):
        download(local, server + "/file.txt", expected_digest=WRONG_DIGEST)
    assert not Path(local).exists()
    r = download(local, server + "/file.txt", expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.DOWNLOADED
    assert r.validated_digest is True
    r = download(local, server + "/file.txt", expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.SKIPPED
    assert r.validated_digest is False


def test_remote_with_cache(server, tmp_path):
    cache_dir = str(tmp_path / "cache")
    local = str(tmp_path / "out")
    url = server + "/file.txt"
    r = download(local, url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.DOWNLOADED
    assert Path(r.cache_path).name == "data"
    assert (Path(r.cache_path).parent / "url").read_text() == url
    assert (Path(r.cache_path).parent / "sha256.digest").read_text() == TEST_DOWNLOAD_LOCAL_DIGEST

    r = download(local, url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.SKIPPED

    local2 = local + "-2"
    r = download(local2, url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.USED_CACHE
    assert Path(local2).read_bytes() == CONTENT


def test_caching_only_mode(server, tmp_path):
    url = server + "/file.txt"
    with pytest.raises(DownloadError, match="cache directory to be specified"):
        download("", url, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)

    cache_dir = str(tmp_path / "cache")
    r = download("", url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.DOWNLOADED
    r = download("", url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.USED_CACHE

    local = str(tmp_path / "out")
    r = download(local, url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.USED_CACHE
    assert Path(local).read_bytes() == CONTENT


def test_cached_digest_mismatch(server, tmp_path):
    cache_dir = str(tmp_path / "cache")
    url = server + "/file.txt"
    download("", url, cache_dir=cache_dir, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    with pytest.raises(DigestMismatchError, match="does not match the cached digest"):
        download(str(tmp_path / "out"), url, cache_dir=cache_dir, expected_digest=EMPTY_FILE_DIGEST)


def test_http_error_status(server, tmp_path):
    with pytest.raises(DownloadError, match="expected HTTP status 200"):
        download(str(tmp_path / "out"), server + "/missing.txt")


def test_download_local_without_digest(tmp_path):
    local_file = tmp_path / "test-file"
    local_file.touch()
    local = str(tmp_path / "dst" / "out")
    r = download(local, "file://" + str(local_file))
    assert r.status == Status.DOWNLOADED
    assert r.validated_digest is False
    assert Path(local).read_bytes() == b""


def test_download_local_with_file_digest(tmp_path):
    local_file = tmp_path / "some-file"
    local_file.write_bytes(CONTENT)
    url = "file://" + str(local_file)
    local = str(tmp_path / "out")
    with pytest.raises(DigestMismatchError, match="expected digest"):
        download(local, url, expected_digest=EMPTY_FILE_DIGEST)
    r = download(local, url, expected_digest=TEST_DOWNLOAD_LOCAL_DIGEST)
    assert r.status == Status.DOWNLOADED
    assert r.validated_digest is True
    assert Path(local).read_bytes() == CONTENT


def test_download_compressed_gzip(tmp_path):
    contents = b"TestDownloadCompressed"
    local_file = tmp_path / "test-file.gz"
    local_file.write_bytes(gzip.compress(contents))
    local = str(tmp_path / "out")
    r = download(local, "file://" + str(local_file), decompress=True)
    assert r.status == Status.DOWNLOADED
    assert Path(local).read_bytes() == contents


def test_compressed_without_decompress_is_copied(tmp_path):
    data = gzip.compress(b"payload")
    local_file = tmp_path / "x.gz"
    local_file.write_bytes(data)
    local = str(tmp_path / "out")
    download(local, str(local_file))
    assert Path(local).read_bytes() == data


def test_non_absolute_file_url_is_rejected(tmp_path):
    with pytest.raises(DownloadError, match="non-absolute"):
        download("file://relative/path", str(tmp_path / "x"))


def test_is_local():
    assert is_local("/tmp/foo") is True
    assert is_local("file:///tmp/foo") is True
    assert is_local("https://example.com/foo") is False


def test_decompressor():
    assert decompressor(".gz") == ["gzip", "-d"]
    assert decompressor(".bz2") == ["bzip2", "-d"]
    assert decompressor(".xz") == ["xz", "-d"]
    assert decompressor(".zst") == ["zstd", "-d"]
    assert decompressor(".txt") is None


def test_parse_digest():
    algo, encoded = parse_digest(EMPTY_FILE_DIGEST)
    assert algo == "sha256"
    assert f"{algo}:{encoded}" == EMPTY_FILE_DIGEST


@pytest.mark.parametrize(
    "value, message",
    [
        ("sha256:abc", "length"),
        ("md5:d41d8cd98f00b204e9800998ecf8427e", "not available"),
        ("nocolon", "not available"),
        ("sha256:" + "G" * 64, "format"),
    ],
)
def test_parse_digest_invalid(value, message):
    with pytest.raises(ValueError, match=message):
        parse_digest(value)


def test_invalid_digest_rejected_before_download(tmp_path):
    local_file = tmp_path / "f"
    local_file.write_bytes(CONTENT)
    with pytest.raises(ValueError):
        download(str(tmp_path / "out"), str(local_file), expected_digest="sha256:zz")
    assert not (tmp_path / "out").exists()