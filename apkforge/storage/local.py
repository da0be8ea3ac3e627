"""
Local filesystem file store.

Persists uploaded archives, owns one working directory per project and
extracts archives into it. Blocking disk and archive work runs off the
event loop through aiofiles or ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import shutil
import time
import zipfile
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import aiofiles
import aiofiles.os
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..core.exceptions import CorruptArchiveError
from ..core.logging import get_logger

logger = get_logger(__name__)

# Directory names never descended into while walking a project tree
EXCLUDED_DIRECTORIES = frozenset({"node_modules", "bower_components", "Pods", "build", "__pycache__"})
MAX_WALK_DEPTH = 10


@dataclass(frozen=True)
class FileStat:
    """Subset of ``os.stat`` used by the pipeline."""

    size: int
    is_directory: bool
    modified_at: datetime


def _is_excluded(name: str) -> bool:
    return name.startswith(".") or name in EXCLUDED_DIRECTORIES


class LocalFileStore:
    """Filesystem-backed upload and working-directory store."""

    def __init__(self, uploads_path: Path, builds_path: Path) -> None:
        """Initialize the store.

        Args:
            uploads_path: Directory receiving raw uploaded archives
            builds_path: Directory holding one ``project_<id>`` folder per project
        """
        self.uploads_path = uploads_path.resolve()
        self.builds_path = builds_path.resolve()

    async def save_upload(self, data: bytes, name: str) -> Path:
        """Persist raw upload bytes under a time-prefixed name.

        Raises:
            OSError: If the file cannot be written
        """
        await aiofiles.os.makedirs(self.uploads_path, exist_ok=True)
        target = self.uploads_path / f"{int(time.time() * 1000)}_{Path(name).name}"
        async with aiofiles.open(target, "wb") as f:
            await f.write(data)
        logger.debug("Upload saved", path=str(target), size=len(data))
        return target

    def project_path(self, project_id: int) -> Path:
        """Working directory location for a project, without creating it."""
        return self.builds_path / f"project_{project_id}"

    async def project_directory(self, project_id: int) -> Path:
        """Return the working directory for a project, creating it if absent."""
        directory = self.project_path(project_id)
        await aiofiles.os.makedirs(directory, exist_ok=True)
        return directory

    async def extract_archive(self, archive_path: Path, dest: Path) -> int:
        """Unpack a ZIP archive into ``dest``, overwriting existing files.

        Entries resolving outside ``dest`` are skipped.

        Returns:
            Number of extracted entries

        Raises:
            CorruptArchiveError: If the archive cannot be parsed or unpacked
                (encrypted entries, unsupported compression, damaged streams)
        """
        try:
            return await asyncio.to_thread(self._extract_sync, archive_path, dest)
        except (
            zipfile.BadZipFile,
            zipfile.LargeZipFile,
            EOFError,
            RuntimeError,
            NotImplementedError,
            ValueError,
            zlib.error,
        ) as e:
            raise CorruptArchiveError(
                message=f"Cannot read archive: {e}",
                archive_path=str(archive_path),
                cause=e,
            ) from e

    @staticmethod
    def _extract_sync(archive_path: Path, dest: Path) -> int:
        dest = dest.resolve()
        dest.mkdir(parents=True, exist_ok=True)
        extracted = 0
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                target = (dest / member.filename).resolve()
                try:
                    target.relative_to(dest)
                except ValueError:
                    logger.warning("Skipping archive entry outside destination", entry=member.filename)
                    continue
                archive.extract(member, dest)
                extracted += 1
        return extracted

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_fixed(0.2),
        reraise=True,
    )
    async def _remove_tree(self, path: Path) -> None:
        await asyncio.to_thread(shutil.rmtree, path)

    async def delete_directory(self, path: Path) -> bool:
        """Recursively delete a directory. Failures are logged, never raised."""
        if not await aiofiles.os.path.exists(path):
            return False
        try:
            await self._remove_tree(path)
        except OSError as e:
            logger.warning("Failed to delete directory", path=str(path), error=str(e))
            return False
        return True

    async def exists(self, path: Path) -> bool:
        return await aiofiles.os.path.exists(path)

    async def read_text(self, path: Path) -> str:
        async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
            return await f.read()

    async def read_bytes(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def write_text(self, path: Path, content: str) -> None:
        """Write text, creating parent directories as needed."""
        await self.ensure_directory(path.parent)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)

    async def write_bytes(self, path: Path, data: bytes) -> None:
        await self.ensure_directory(path.parent)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)

    async def ensure_directory(self, path: Path) -> None:
        await aiofiles.os.makedirs(path, exist_ok=True)

    async def make_executable(self, path: Path) -> None:
        await asyncio.to_thread(path.chmod, 0o755)

    async def list_files(self, directory: Path) -> list[str]:
        """Names of regular files directly inside ``directory``."""
        if not await aiofiles.os.path.isdir(directory):
            return []
        names = sorted(await aiofiles.os.listdir(directory))
        return [n for n in names if await aiofiles.os.path.isfile(directory / n)]

    async def list_directories(self, directory: Path) -> list[str]:
        """Names of visible subdirectories directly inside ``directory``."""
        if not await aiofiles.os.path.isdir(directory):
            return []
        names = sorted(await aiofiles.os.listdir(directory))
        return [n for n in names if not _is_excluded(n) and await aiofiles.os.path.isdir(directory / n)]

    async def stat(self, path: Path) -> FileStat | None:
        try:
            st = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return None
        return FileStat(
            size=st.st_size,
            is_directory=path.is_dir(),
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    async def walk(self, root: Path, max_depth: int = MAX_WALK_DEPTH) -> list[str]:
        """List regular files under ``root`` as POSIX paths relative to it.

        Hidden entries and dependency or build-cache directories are skipped.
        Recursion stops below ``max_depth``.
        """
        return await asyncio.to_thread(self._walk_sync, root, max_depth)

    @staticmethod
    def _walk_sync(root: Path, max_depth: int) -> list[str]:
        files: list[str] = []

        def visit(directory: Path, prefix: str, depth: int) -> None:
            if depth > max_depth:
                return
            try:
                entries = sorted(directory.iterdir(), key=lambda p: p.name)
            except OSError:
                return
            for entry in entries:
                if _is_excluded(entry.name):
                    continue
                relative = f"{prefix}{entry.name}"
                if entry.is_dir() and not entry.is_symlink():
                    visit(entry, f"{relative}/", depth + 1)
                elif entry.is_file():
                    files.append(relative)

        visit(root, "", 0)
        return files
