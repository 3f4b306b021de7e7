"""Tests for uvscaffold.scaffolder.fetcher.

Tests cover:
- Download through an httpx mock transport, including redirects
- HTTP and transport errors mapped to ExternalToolError
- Extraction with a stripped top-level directory
- Unsafe archive members and non-zip payloads
- Skipping an already populated target
- Retrying after an interrupted extraction
"""

from __future__ import annotations

import errno
from pathlib import Path

import httpx
import pytest

from uvscaffold.errors import ExternalToolError, ScaffoldIOError
from uvscaffold.scaffolder.fetcher import ArchiveFetcher

pytestmark = pytest.mark.unit

URL = "https://example.com/skeleton.zip"


def serving(payload: bytes, status: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=payload)

    return httpx.MockTransport(handler)


class TestDownload:
    def test_returns_body(self, skeleton_zip: bytes):
        fetcher = ArchiveFetcher(transport=serving(skeleton_zip))
        assert fetcher.download(URL) == skeleton_zip

    def test_follows_redirects(self, skeleton_zip: bytes):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/skeleton.zip":
                return httpx.Response(302, headers={"Location": "https://codeload.example.com/final.zip"})
            return httpx.Response(200, content=skeleton_zip)

        fetcher = ArchiveFetcher(transport=httpx.MockTransport(handler))
        assert fetcher.download(URL) == skeleton_zip

    def test_http_error(self):
        fetcher = ArchiveFetcher(transport=serving(b"missing", status=404))
        with pytest.raises(ExternalToolError) as exc_info:
            fetcher.download(URL)
        assert exc_info.value.tool == "download"
        assert exc_info.value.exit_code == 404
        assert exc_info.value.argv == [URL]

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = ArchiveFetcher(transport=httpx.MockTransport(handler))
        with pytest.raises(ExternalToolError, match="connection refused") as exc_info:
            fetcher.download(URL)
        assert exc_info.value.exit_code == -1


class TestExtract:
    def test_strips_single_top_level_directory(self, tmp_path: Path, skeleton_zip: bytes):
        written = ArchiveFetcher().extract(skeleton_zip, tmp_path / "app")
        assert (tmp_path / "app" / "README.md").read_text() == "# skeleton\n"
        assert (tmp_path / "app" / "backend" / "app" / "main.py").is_file()
        assert len(written) == 3

    def test_keeps_multiple_top_level_entries(self, tmp_path: Path, zip_factory):
        data = zip_factory({"a.txt": "a", "pkg/b.txt": "b"})
        ArchiveFetcher().extract(data, tmp_path / "out")
        assert (tmp_path / "out" / "a.txt").read_text() == "a"
        assert (tmp_path / "out" / "pkg" / "b.txt").read_text() == "b"

    def test_rejects_escaping_members(self, tmp_path: Path, zip_factory):
        data = zip_factory({"top/../../evil.txt": "x"})
        with pytest.raises(ScaffoldIOError, match="escapes"):
            ArchiveFetcher().extract(data, tmp_path / "out")
        assert not (tmp_path / "evil.txt").exists()

    def test_not_a_zip(self, tmp_path: Path):
        with pytest.raises(ExternalToolError) as exc_info:
            ArchiveFetcher().extract(b"<html>not found</html>", tmp_path / "out")
        assert exc_info.value.tool == "extract"


class TestFetch:
    def test_populates_target(self, tmp_path: Path, skeleton_zip: bytes):
        effect = ArchiveFetcher(transport=serving(skeleton_zip)).fetch(URL, tmp_path / "app")
        assert effect.action == "download"
        assert effect.target == "app"
        assert effect.detail == f"3 files from {URL}"

    def test_populated_target_skipped(self, tmp_path: Path):
        target = tmp_path / "app"
        target.mkdir()
        (target / "existing.py").write_text("keep\n")

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        effect = ArchiveFetcher(transport=httpx.MockTransport(handler)).fetch(URL, target, label="app")
        assert effect.action == "skip"
        assert (target / "existing.py").read_text() == "keep\n"

    def test_empty_target_directory_populated(self, tmp_path: Path, skeleton_zip: bytes):
        target = tmp_path / "app"
        target.mkdir()
        effect = ArchiveFetcher(transport=serving(skeleton_zip)).fetch(URL, target)
        assert effect.action == "download"
        assert (target / "README.md").exists()

    def test_interrupted_extraction_is_retried(self, tmp_path: Path, skeleton_zip: bytes, monkeypatch):
        target = tmp_path / "app"
        target.mkdir()
        original_write_bytes = Path.write_bytes
        calls = []

        def failing_write_bytes(self: Path, data: bytes) -> int:
            calls.append(self)
            if len(calls) == 2:
                raise OSError(errno.ENOSPC, "No space left on device", str(self))
            return original_write_bytes(self, data)

        fetcher = ArchiveFetcher(transport=serving(skeleton_zip))
        monkeypatch.setattr(Path, "write_bytes", failing_write_bytes)
        with pytest.raises(ScaffoldIOError, match="No space left"):
            fetcher.fetch(URL, target)
        monkeypatch.undo()

        assert list(target.iterdir()) == []
        assert [p.name for p in tmp_path.iterdir()] == ["app"]

        effect = fetcher.fetch(URL, target)
        assert effect.action == "download"
        assert sorted(p.relative_to(target).as_posix() for p in target.rglob("*") if p.is_file()) == [
            "README.md",
            "backend/app/main.py",
            "backend/pyproject.toml",
        ]

    def test_stale_staging_directory_replaced(self, tmp_path: Path, skeleton_zip: bytes):
        stale = tmp_path / ".app.partial"
        stale.mkdir()
        (stale / "leftover.txt").write_text("old")
        effect = ArchiveFetcher(transport=serving(skeleton_zip)).fetch(URL, tmp_path / "app")
        assert effect.action == "download"
        assert not stale.exists()
        assert not (tmp_path / "app" / "leftover.txt").exists()
