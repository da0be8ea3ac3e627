"""
Artifact packaging.

Synthesizes an APK-shaped ZIP container: a manifest derived from the
analysis, placeholder DEX and resource-table payloads, a META-INF signature
block with real digests, launcher icons and a sample of the project's own
assets. If that fails, a minimal archive of the readable top-level project
files is written instead.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import struct
import zipfile
import zlib
from pathlib import Path

from ... import __version__
from ...core.config import PackagingConfig
from ...core.exceptions import ArtifactPackagingError
from ...core.logging import get_logger
from ...models.analysis import Framework, ProjectAnalysis

logger = get_logger(__name__)

DEX_MAGIC = b"dex\n035\x00"
DEX_SIZE = 8 * 1024
DEX_CHECKSUM = 0x12345678
ARSC_TYPE = 0x080C0003
ARSC_SIZE = 4 * 1024
ICON_SIZE = 48
ICON_DENSITIES = ("mdpi", "hdpi", "xhdpi")
FALLBACK_FILES = ("package.json", "index.html", "app.js", "main.dart", "pubspec.yaml")
GENERIC_ASSETS = ("index.html", "app.js", "main.js", "package.json")
CREATED_BY = f"apkforge {__version__}"

MANIFEST_XML = """<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
    package="{package}"
    android:versionCode="{version_code}"
    android:versionName="{version_name}">

    <uses-sdk android:minSdkVersion="{min_sdk}"
              android:targetSdkVersion="{target_sdk}" />

    <uses-permission android:name="android.permission.INTERNET" />
    <uses-permission android:name="android.permission.ACCESS_NETWORK_STATE" />

    <application
        android:allowBackup="true"
        android:icon="@mipmap/ic_launcher"
        android:label="{label}"
        android:theme="@style/AppTheme">

        <activity
            android:name=".MainActivity"
            android:exported="true"
            android:launchMode="singleTop">
            <intent-filter>
                <action android:name="android.intent.action.MAIN" />
                <category android:name="android.intent.category.LAUNCHER" />
            </intent-filter>
        </activity>
    </application>
</manifest>
"""


def _xml_escape(value: str) -> str:
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def render_manifest(analysis: ProjectAnalysis) -> str:
    config = analysis.build_config
    label = getattr(config, "app_name", None) or analysis.project_name or "Mobile App"
    return MANIFEST_XML.format(
        package=_xml_escape(analysis.effective_package_name),
        version_code=config.version_code,
        version_name=_xml_escape(config.version_name),
        min_sdk=config.min_sdk,
        target_sdk=config.target_sdk,
        label=_xml_escape(label),
    )


def placeholder_dex() -> bytes:
    data = bytearray(DEX_SIZE)
    data[: len(DEX_MAGIC)] = DEX_MAGIC
    struct.pack_into("<I", data, 8, DEX_CHECKSUM)
    return bytes(data)


def placeholder_arsc() -> bytes:
    data = bytearray(ARSC_SIZE)
    struct.pack_into("<II", data, 0, ARSC_TYPE, ARSC_SIZE)
    return bytes(data)


def _png_chunk(kind: bytes, payload: bytes) -> bytes:
    return (
        struct.pack(">I", len(payload))
        + kind
        + payload
        + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)
    )


def launcher_icon(size: int = ICON_SIZE, rgb: tuple[int, int, int] = (0x3D, 0xDC, 0x84)) -> bytes:
    """A solid-color RGB PNG."""
    row = b"\x00" + bytes(rgb) * size
    header = struct.pack(">IIBBBBB", size, size, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(row * size))
        + _png_chunk(b"IEND", b"")
    )


def _digest(data: bytes) -> str:
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def signature_block(entries: dict[str, bytes]) -> dict[str, bytes]:
    """META-INF manifest, signature file and placeholder certificate."""
    manifest_lines = ["Manifest-Version: 1.0", f"Created-By: {CREATED_BY}", ""]
    for name in sorted(entries):
        manifest_lines += [f"Name: {name}", f"SHA-256-Digest: {_digest(entries[name])}", ""]
    manifest = "\r\n".join(manifest_lines).encode("utf-8")
    main_attributes = "\r\n".join(manifest_lines[:3]).encode("utf-8")

    signature = "\r\n".join(
        [
            "Signature-Version: 1.0",
            f"Created-By: {CREATED_BY}",
            f"SHA-256-Digest-Manifest: {_digest(manifest)}",
            f"SHA-256-Digest-Manifest-Main-Attributes: {_digest(main_attributes)}",
            "",
        ]
    ).encode("utf-8")

    return {
        "META-INF/MANIFEST.MF": manifest,
        "META-INF/CERT.SF": signature,
        "META-INF/CERT.RSA": b"\x30" * 256,
    }


class ArtifactPackager:
    """Writes the build artifact for an analyzed project."""

    def __init__(self, config: PackagingConfig) -> None:
        self.config = config

    async def package(self, source_dir: Path, analysis: ProjectAnalysis, apk_path: Path) -> bool:
        """Write the artifact at ``apk_path``.

        Returns:
            True for the full artifact, False if the fallback archive was written

        Raises:
            ArtifactPackagingError: If not even the fallback could be written
        """
        try:
            await asyncio.to_thread(self._write_artifact, source_dir, analysis, apk_path)
            return True
        except Exception as e:
            logger.warning("Packaging failed, writing fallback archive", error=str(e), apk_path=str(apk_path))
            await asyncio.to_thread(self._write_fallback, source_dir, apk_path)
            return False

    def _write_artifact(self, source_dir: Path, analysis: ProjectAnalysis, apk_path: Path) -> None:
        entries: dict[str, bytes] = {
            "AndroidManifest.xml": render_manifest(analysis).encode("utf-8"),
            "classes.dex": placeholder_dex(),
            "resources.arsc": placeholder_arsc(),
        }
        entries.update(self.collect_assets(source_dir, analysis.framework))
        icon = launcher_icon()
        for density in ICON_DENSITIES:
            entries.setdefault(f"res/mipmap-{density}/ic_launcher.png", icon)
        entries.update(signature_block(entries))

        apk_path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(apk_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, data in entries.items():
                archive.writestr(name, data)
        logger.debug("Artifact written", apk_path=str(apk_path), entries=len(entries))

    def _write_fallback(self, source_dir: Path, apk_path: Path) -> None:
        contents: dict[str, bytes] = {}
        for name in FALLBACK_FILES:
            try:
                contents[name] = (source_dir / name).read_bytes()
            except OSError:
                continue
        try:
            apk_path.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(apk_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for name, data in contents.items():
                    archive.writestr(name, data)
        except OSError as e:
            raise ArtifactPackagingError(
                message=f"Could not write artifact: {e}",
                artifact_path=str(apk_path),
                cause=e,
            ) from e

    def _readable(self, path: Path) -> bytes | None:
        try:
            if not path.is_file() or path.stat().st_size > self.config.max_asset_bytes:
                return None
            return path.read_bytes()
        except OSError:
            logger.debug("Skipping unreadable asset", path=str(path))
            return None

    def _sample_directory(self, directory: Path, prefix: str, entries: dict[str, bytes]) -> None:
        """Copy up to the per-directory limit of files from ``directory``."""
        if not directory.is_dir():
            return
        files = sorted(p for p in directory.iterdir() if p.is_file() and not p.name.startswith("."))
        for path in files[: self.config.max_assets_per_directory]:
            data = self._readable(path)
            if data is not None:
                entries[f"{prefix}/{path.name}"] = data

    def _sample_tree(self, directory: Path, prefix: str, entries: dict[str, bytes]) -> None:
        """Sample ``directory`` and each of its visible subdirectories."""
        if not directory.is_dir():
            return
        self._sample_directory(directory, prefix, entries)
        for sub in sorted(p for p in directory.iterdir() if p.is_dir() and not p.name.startswith(".")):
            self._sample_directory(sub, f"{prefix}/{sub.name}", entries)

    def collect_assets(self, source_dir: Path, framework: Framework) -> dict[str, bytes]:
        """Pick a bounded sample of real project files for the artifact."""
        entries: dict[str, bytes] = {}
        if framework == Framework.FLUTTER:
            self._sample_tree(source_dir / "assets", "assets/flutter_assets", entries)
            for relative in ("pubspec.yaml", "lib/main.dart"):
                data = self._readable(source_dir / relative)
                if data is not None:
                    entries[f"flutter_project/{relative}"] = data
        elif framework == Framework.REACT_NATIVE:
            bundle = self._readable(source_dir / "index.js")
            if bundle is not None:
                entries["assets/index.android.bundle"] = bundle
        elif framework == Framework.CORDOVA:
            self._sample_tree(source_dir / "www", "assets/www", entries)
        elif framework == Framework.ANDROID:
            self._sample_tree(source_dir / "app" / "src" / "main" / "res", "res", entries)
        else:
            for name in GENERIC_ASSETS:
                data = self._readable(source_dir / name)
                if data is not None:
                    entries[f"assets/{name}"] = data
        return entries
