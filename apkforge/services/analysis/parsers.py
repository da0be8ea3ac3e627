"""
Manifest parsers for the supported frameworks.

Each parser takes file content and returns a plain dict of the values it
found. Missing values are simply absent. Malformed content raises
``AnalysisError``, which the analyzer records as an analysis error.
"""

from __future__ import annotations

import json
import re
import xml.etree.ElementTree as ET
from typing import Any

import yaml

from ...core.exceptions import AnalysisError

ANDROID_NS = "http://schemas.android.com/apk/res/android"

# Groovy (`minSdkVersion 21`) and Kotlin DSL (`minSdk = 21`) forms
_GRADLE_INT_KEYS = {
    "target_sdk": r"\b(?:targetSdkVersion|targetSdk)\b\s*=?\s*(\d+)",
    "min_sdk": r"\b(?:minSdkVersion|minSdk)\b\s*=?\s*(\d+)",
    "compile_sdk": r"\b(?:compileSdkVersion|compileSdk)\b\s*=?\s*(\d+)",
    "version_code": r"\bversionCode\b\s*=?\s*(\d+)",
}
_GRADLE_STR_KEYS = {
    "application_id": r"\bapplicationId\b\s*=?\s*[\"']([^\"']+)[\"']",
    "namespace": r"\bnamespace\b\s*=?\s*[\"']([^\"']+)[\"']",
    "version_name": r"\bversionName\b\s*=?\s*[\"']([^\"']+)[\"']",
}
_AGP_VERSION = re.compile(r"com\.android\.tools\.build:gradle:([\w.\-]+)")
_AGP_PLUGIN_VERSION = re.compile(r"id\s*\(?\s*[\"']com\.android\.application[\"']\s*\)?\s*version\s*[\"']([^\"']+)[\"']")
_KOTLIN_VERSION = (
    re.compile(r"\bkotlin_version\s*=\s*[\"']([^\"']+)[\"']"),
    re.compile(r"kotlin-gradle-plugin:([\w.\-]+)"),
    re.compile(r"id\s*\(?\s*[\"']org\.jetbrains\.kotlin\.android[\"']\s*\)?\s*version\s*[\"']([^\"']+)[\"']"),
)
_WRAPPER_DISTRIBUTION = re.compile(r"distributionUrl=.*gradle-([\d.]+)-(?:all|bin)\.zip")
_ROOT_PROJECT_NAME = re.compile(r"rootProject\.name\s*=\s*[\"']([^\"']+)[\"']")


def parse_gradle(content: str) -> dict[str, Any]:
    """Extract SDK levels, application id and versions from a Gradle script."""
    values: dict[str, Any] = {}
    for key, pattern in _GRADLE_INT_KEYS.items():
        match = re.search(pattern, content)
        if match:
            values[key] = int(match.group(1))
    for key, pattern in _GRADLE_STR_KEYS.items():
        match = re.search(pattern, content)
        if match:
            values[key] = match.group(1)

    agp = _AGP_VERSION.search(content) or _AGP_PLUGIN_VERSION.search(content)
    if agp:
        values["android_gradle_plugin"] = agp.group(1)
    for pattern in _KOTLIN_VERSION:
        kotlin = pattern.search(content)
        if kotlin:
            values["kotlin_version"] = kotlin.group(1)
            break
    return values


def parse_gradle_wrapper(content: str) -> str | None:
    """Gradle version from ``gradle-wrapper.properties``."""
    match = _WRAPPER_DISTRIBUTION.search(content)
    return match.group(1) if match else None


def parse_settings_gradle(content: str) -> str | None:
    """Root project name from ``settings.gradle``."""
    match = _ROOT_PROJECT_NAME.search(content)
    return match.group(1) if match else None


def parse_package_json(content: str) -> dict[str, Any]:
    """Parse an npm ``package.json``.

    Raises:
        AnalysisError: If the content is not a JSON object
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise AnalysisError(message=f"invalid JSON: {e}", file_path="package.json", cause=e) from e
    if not isinstance(data, dict):
        raise AnalysisError(message="expected a JSON object", file_path="package.json")
    return data


def parse_pubspec(content: str) -> dict[str, Any]:
    """Parse a Flutter ``pubspec.yaml`` into the fields the analyzer needs.

    ``version: X+Y`` is split into ``version_name`` X and ``version_code`` Y.

    Raises:
        AnalysisError: If the YAML is malformed or not a mapping
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise AnalysisError(message=f"invalid YAML: {e}", file_path="pubspec.yaml", cause=e) from e
    if not isinstance(data, dict):
        raise AnalysisError(message="expected a YAML mapping", file_path="pubspec.yaml")

    values: dict[str, Any] = {}
    if data.get("name"):
        values["name"] = str(data["name"]).strip()

    version = data.get("version")
    if version is not None:
        name, _, code = str(version).strip().partition("+")
        values["version_name"] = name
        values["version_code"] = int(code) if code.isdigit() else 1

    environment = data.get("environment") or {}
    if isinstance(environment, dict):
        if environment.get("flutter"):
            values["flutter_version"] = str(environment["flutter"]).strip()
        if environment.get("sdk"):
            values["dart_version"] = str(environment["sdk"]).strip()

    dependencies = data.get("dependencies") or {}
    dev_dependencies = data.get("dev_dependencies") or {}
    values["dependencies"] = [str(d) for d in dependencies if d != "flutter"] if isinstance(dependencies, dict) else []
    values["dev_dependencies"] = (
        [str(d) for d in dev_dependencies if d != "flutter_test"] if isinstance(dev_dependencies, dict) else []
    )
    return values


def _parse_xml(content: str, file_path: str) -> ET.Element:
    try:
        return ET.fromstring(content)
    except ET.ParseError as e:
        raise AnalysisError(message=f"invalid XML: {e}", file_path=file_path, cause=e) from e


def _int_or_none(value: str | None) -> int | None:
    return int(value) if value and value.strip().isdigit() else None


def parse_android_manifest(content: str) -> dict[str, Any]:
    """Extract package, versions and SDK bounds from ``AndroidManifest.xml``.

    Raises:
        AnalysisError: If the XML is malformed
    """
    root = _parse_xml(content, "AndroidManifest.xml")
    ns = {"android": ANDROID_NS}

    values: dict[str, Any] = {}
    if root.get("package"):
        values["package"] = root.get("package")
    version_code = _int_or_none(root.get(f"{{{ns['android']}}}versionCode"))
    if version_code is not None:
        values["version_code"] = version_code
    if root.get(f"{{{ns['android']}}}versionName"):
        values["version_name"] = root.get(f"{{{ns['android']}}}versionName")

    uses_sdk = root.find("uses-sdk")
    if uses_sdk is not None:
        min_sdk = _int_or_none(uses_sdk.get(f"{{{ns['android']}}}minSdkVersion"))
        target_sdk = _int_or_none(uses_sdk.get(f"{{{ns['android']}}}targetSdkVersion"))
        if min_sdk is not None:
            values["min_sdk"] = min_sdk
        if target_sdk is not None:
            values["target_sdk"] = target_sdk
    return values


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_cordova_config(content: str) -> dict[str, Any]:
    """Extract widget id, versions, app name and SDK preferences from ``config.xml``.

    Raises:
        AnalysisError: If the XML is malformed
    """
    root = _parse_xml(content, "config.xml")

    values: dict[str, Any] = {}
    if root.get("id"):
        values["id"] = root.get("id")
    if root.get("version"):
        values["version_name"] = root.get("version")
    version_code = _int_or_none(root.get("android-versionCode"))
    if version_code is not None:
        values["version_code"] = version_code

    for element in root.iter():
        tag = _local_name(element.tag)
        if tag == "name" and element.text and "app_name" not in values:
            values["app_name"] = element.text.strip()
        elif tag == "preference":
            name = element.get("name", "")
            sdk = _int_or_none(element.get("value"))
            if sdk is None:
                continue
            if name == "android-minSdkVersion":
                values["min_sdk"] = sdk
            elif name == "android-targetSdkVersion":
                values["target_sdk"] = sdk
    return values
