"""Test configuration for apkforge."""

import io
import tempfile
import zipfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from apkforge.core.config import Config, StorageConfig, ToolsConfig


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests.

    Yields:
        Path: A Path object pointing to the temporary directory.
            The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir):
    """Configuration rooted in the temporary directory with external tools disabled.

    Returns:
        Config: Configuration whose uploads and builds live under ``temp_dir``.
    """
    return Config(
        storage=StorageConfig(
            uploads_path=temp_dir / "uploads",
            builds_path=temp_dir / "builds",
        ),
        tools=ToolsConfig(enabled=False),
    )


@pytest.fixture
def file_store(config):
    """Create a file store for testing.

    Returns:
        LocalFileStore: A store whose roots are inside the temporary directory.
    """
    from apkforge.storage import LocalFileStore
    return LocalFileStore(config.storage.uploads_path, config.storage.builds_path)


@pytest.fixture
def repository():
    """Create an empty in-memory project repository."""
    from apkforge.storage import InMemoryProjectRepository
    return InMemoryProjectRepository()


@pytest.fixture
async def orchestrator(config, repository):
    """Create an orchestrator wired from the test configuration.

    Yields:
        PhaseOrchestrator: The orchestrator. Its phase queue is shut down
            after the test.
    """
    from apkforge.orchestration import PhaseOrchestrator
    orch = PhaseOrchestrator.from_config(config, repository=repository)
    yield orch
    await orch.shutdown()


@pytest.fixture
async def client(orchestrator, config):
    """Create an HTTP client bound to the FastAPI application.

    Yields:
        AsyncClient: Client sending requests straight to the ASGI app.
    """
    from apkforge.api import create_app
    app = create_app(orchestrator=orchestrator, config=config)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def build_zip(files):
    """Build ZIP archive bytes from a mapping of archive path to content."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def mark_encrypted(data):
    """Set the encryption flag on every entry of an archive built by ``build_zip``."""
    patched = bytearray(data)
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        start = patched.find(signature)
        while start != -1:
            patched[start + flag_offset] |= 0x01
            start = patched.find(signature, start + 4)
    return bytes(patched)


@pytest.fixture
def encrypted_zip():
    """Archive whose ``pubspec.yaml`` entry is flagged as password protected."""
    return mark_encrypted(build_zip({"pubspec.yaml": "name: secret\n"}))


@pytest.fixture
def make_zip():
    """Factory fixture returning ``build_zip``."""
    return build_zip


@pytest.fixture
def flutter_zip():
    """Minimal Flutter project archive.

    Returns:
        bytes: A ZIP holding ``pubspec.yaml`` (name demo, version 2.0.0+5)
            and ``lib/main.dart``.
    """
    return build_zip({
        "pubspec.yaml": (
            "name: demo\n"
            "version: 2.0.0+5\n"
            "environment:\n"
            "  sdk: '>=3.0.0 <4.0.0'\n"
            "dependencies:\n"
            "  flutter:\n"
            "    sdk: flutter\n"
            "  http: ^1.1.0\n"
        ),
        "lib/main.dart": "void main() {}\n",
    })


@pytest.fixture
def generic_zip():
    """Archive containing a single unrelated text file."""
    return build_zip({"notes.txt": "nothing to see here\n"})


@pytest.fixture
def flutter_project(temp_dir):
    """Extracted Flutter project directory.

    Returns:
        Path: Directory containing the files of ``flutter_zip``.
    """
    root = temp_dir / "flutter_project"
    (root / "lib").mkdir(parents=True)
    (root / "pubspec.yaml").write_text("name: demo\nversion: 2.0.0+5\n")
    (root / "lib" / "main.dart").write_text("void main() {}\n")
    return root
