"""
Tests for the download cache.
"""

import threading

import pytest

from ybuild.core.cancel import CancelToken
from ybuild.core.errors import CancelError, NetworkError, NotFoundError
from ybuild.core.services.downloads import Downloader, cache_filename


@pytest.fixture
def downloader(tmp_path):
    return Downloader(tmp_path / "downloads", timeout=10)


class TestCacheFilename:
    def test_strips_unsafe_characters(self):
        assert cache_filename("https://example.com/go1.16.linux-amd64.tar.gz") == (
            "httpsexample.comgo1.16.linuxamd64.tar.gz"
        )

    def test_deterministic(self):
        url = "https://example.com/a/b?c=d"
        assert cache_filename(url) == cache_filename(url)

    def test_long_urls_stay_distinct(self):
        base = "https://example.com/" + "x" * 300
        a, b = cache_filename(base + "1"), cache_filename(base + "2")
        assert a != b
        assert len(a) <= 200


class TestDownload:
    def test_fetches_file(self, downloader, file_server):
        file_server.files["/tool.tar.gz"] = b"archive bytes"

        path = downloader.download(file_server.url("/tool.tar.gz"))

        assert path.read_bytes() == b"archive bytes"
        assert path.parent == downloader.cache_dir
        assert path.name == cache_filename(file_server.url("/tool.tar.gz"))

    def test_second_call_only_validates(self, downloader, file_server):
        file_server.files["/tool.tar.gz"] = b"archive bytes"
        url = file_server.url("/tool.tar.gz")

        first = downloader.download(url)
        second = downloader.download(url)

        assert first == second
        assert file_server.count("GET", "/tool.tar.gz") == 1
        assert file_server.count("HEAD", "/tool.tar.gz") == 1

    def test_refetches_when_size_changes(self, downloader, file_server):
        file_server.files["/tool.tar.gz"] = b"old"
        url = file_server.url("/tool.tar.gz")
        downloader.download(url)

        file_server.files["/tool.tar.gz"] = b"new and longer"
        path = downloader.download(url)

        assert path.read_bytes() == b"new and longer"
        assert file_server.count("GET", "/tool.tar.gz") == 2

    def test_refetches_when_cache_file_corrupted(self, downloader, file_server):
        file_server.files["/tool.tar.gz"] = b"archive bytes"
        url = file_server.url("/tool.tar.gz")
        path = downloader.download(url)
        path.write_bytes(b"trunc")

        assert downloader.download(url).read_bytes() == b"archive bytes"

    @pytest.mark.parametrize("status", [404, 410])
    def test_not_found(self, downloader, file_server, status):
        file_server.statuses["/missing.zip"] = status

        with pytest.raises(NotFoundError) as exc_info:
            downloader.download(file_server.url("/missing.zip"))

        assert exc_info.value.status == status
        assert not list(downloader.cache_dir.glob("*missing*"))

    def test_missing_path_is_not_found(self, downloader, file_server):
        with pytest.raises(NotFoundError):
            downloader.download(file_server.url("/nope.tar.gz"))

    def test_server_error_is_network_error(self, downloader, file_server):
        file_server.statuses["/broken.tar.gz"] = 500

        with pytest.raises(NetworkError):
            downloader.download(file_server.url("/broken.tar.gz"))

    def test_truncated_body_leaves_no_cache_file(self, downloader, file_server):
        file_server.files["/short.tar.gz"] = b"12345"
        file_server.lengths["/short.tar.gz"] = 100

        with pytest.raises(NetworkError):
            downloader.download(file_server.url("/short.tar.gz"))

        assert list(downloader.cache_dir.iterdir()) == []

    def test_unreachable_host(self, downloader):
        with pytest.raises(NetworkError):
            downloader.download("http://127.0.0.1:1/tool.tar.gz")

    def test_cancelled_before_start(self, downloader, file_server):
        file_server.files["/tool.tar.gz"] = b"x"
        token = CancelToken()
        token.cancel()

        with pytest.raises(CancelError):
            downloader.download(file_server.url("/tool.tar.gz"), token)

        assert file_server.requests == []

    def test_concurrent_downloads_agree(self, downloader, file_server):
        data = b"z" * 500_000
        file_server.files["/big.tar.gz"] = data
        url = file_server.url("/big.tar.gz")
        results, errors = [], []

        def fetch():
            try:
                results.append(downloader.download(url))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=fetch) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == 1
        assert results[0].read_bytes() == data
        assert [p.name for p in downloader.cache_dir.iterdir()] == [results[0].name]
