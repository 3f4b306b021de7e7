"""Download and unpack the prebuilt web-application skeleton.

The archive is a zip (GitHub's ``archive/refs/heads/<branch>.zip`` format).
A single top-level directory inside the archive is stripped so the
skeleton's files land directly in the target directory.  Members are
extracted into a sibling ``.<name>.partial`` directory that replaces the
target only once every file is written, so an interrupted extraction
leaves the target empty.  A target that already has content is left
alone, which keeps ``add-fastapi`` safe to re-run.
"""

from __future__ import annotations

import io
import shutil
import zipfile
from pathlib import Path, PurePosixPath

import httpx

from uvscaffold.errors import ExternalToolError, ScaffoldIOError
from uvscaffold.scaffolder.writer import Effect


class ArchiveFetcher:
    """Fetches a zip archive over HTTP and extracts it under a directory."""

    def __init__(
        self,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.transport = transport

    def fetch(self, url: str, target: str | Path, label: str | None = None) -> Effect:
        """Populate *target* from the archive at *url* unless it has content."""
        target = Path(target)
        label = label or target.name
        if target.is_dir() and any(target.iterdir()):
            return Effect(action="skip", target=label, detail="already populated")

        data = self.download(url)
        written = self.extract(data, target)
        return Effect(action="download", target=label, detail=f"{len(written)} files from {url}")

    def download(self, url: str) -> bytes:
        """Return the body of *url*, following redirects."""
        try:
            with httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as exc:
            raise ExternalToolError(
                "download", exc.response.status_code, [url], detail=f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalToolError("download", -1, [url], detail=str(exc)) from exc

    def extract(self, data: bytes, target: str | Path) -> list[Path]:
        """Extract zip *data* into *target* and return the written files."""
        target = Path(target)
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise ExternalToolError("extract", 1, detail=f"not a zip archive: {exc}") from exc

        with archive:
            members = [info for info in archive.infolist() if info.filename.strip("/")]
            names = [PurePosixPath(info.filename) for info in members]
            for name in names:
                if name.is_absolute() or ".." in name.parts:
                    raise ScaffoldIOError(target, f"archive member {name} escapes the target directory")

            strip = 0
            tops = {name.parts[0] for name in names}
            if len(tops) == 1 and any(len(name.parts) > 1 for name in names):
                strip = 1

            written: list[Path] = []
            staging = target.with_name(f".{target.name}.partial")
            try:
                if staging.exists():
                    shutil.rmtree(staging)
                staging.mkdir(parents=True)
                for info, name in zip(members, names):
                    parts = name.parts[strip:]
                    if not parts:
                        continue
                    destination = staging.joinpath(*parts)
                    if info.is_dir():
                        destination.mkdir(parents=True, exist_ok=True)
                        continue
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    destination.write_bytes(archive.read(info))
                    written.append(target.joinpath(*parts))
                # only a complete extraction is moved into place
                if target.is_dir():
                    target.rmdir()
                staging.rename(target)
            except OSError as exc:
                raise ScaffoldIOError(
                    exc.filename or target, exc.strerror or str(exc)
                ) from exc
            finally:
                if staging.exists():
                    shutil.rmtree(staging, ignore_errors=True)
        return written
