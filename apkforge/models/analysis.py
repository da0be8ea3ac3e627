"""
Project analysis models.

These models describe what the analyzer learned about an uploaded project:
its framework, build settings, dependencies and structural completeness.
The build configuration is a tagged union keyed by framework.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field

from .common import ApiModel, utcnow

ANALYSIS_SCHEMA_VERSION = 1


class Framework(str, Enum):
    """Mobile-app technology stacks the analyzer recognizes."""

    REACT_NATIVE = "react-native"
    FLUTTER = "flutter"
    ANDROID = "android"
    CORDOVA = "cordova"
    GENERIC = "generic-mobile"


class BuildConfigBase(ApiModel):
    """Build settings shared by every framework."""

    target_sdk: int = Field(default=33)
    min_sdk: int = Field(default=21)
    compile_sdk: int = Field(default=33)
    build_tools: str = Field(default="", description="Human-readable build tool label")
    build_variants: list[str] = Field(default_factory=lambda: ["debug", "release"])
    application_id: str | None = Field(default=None)
    version_name: str = Field(default="1.0.0")
    version_code: int = Field(default=1)


class ReactNativeBuildConfig(BuildConfigBase):
    """React Native build settings."""

    framework: Literal["react-native"] = "react-native"
    build_tools: str = "React Native CLI"
    react_native_version: str = Field(default="latest")
    node_version: str = Field(default=">=16.0.0")


class FlutterBuildConfig(BuildConfigBase):
    """Flutter build settings."""

    framework: Literal["flutter"] = "flutter"
    target_sdk: int = 34
    compile_sdk: int = 34
    build_tools: str = "Flutter SDK"
    build_variants: list[str] = Field(default_factory=lambda: ["debug", "profile", "release"])
    flutter_version: str = Field(default=">=3.0.0")
    dart_version: str = Field(default=">=3.0.0 <4.0.0")


class AndroidBuildConfig(BuildConfigBase):
    """Native Android (Gradle) build settings."""

    framework: Literal["android"] = "android"
    build_tools: str = "Gradle"
    gradle_version: str | None = Field(default=None)
    kotlin_version: str | None = Field(default=None)
    has_build_gradle: bool = Field(default=False)
    has_manifest: bool = Field(default=False)


class CordovaBuildConfig(BuildConfigBase):
    """Apache Cordova build settings."""

    framework: Literal["cordova"] = "cordova"
    build_tools: str = "Cordova CLI"
    app_name: str = Field(default="Mobile App")
    has_config_xml: bool = Field(default=False)
    has_www_folder: bool = Field(default=False)


class GenericBuildConfig(BuildConfigBase):
    """Settings used when no framework was recognized."""

    framework: Literal["generic-mobile"] = "generic-mobile"
    build_tools: str = "Generic packager"


BuildConfig = Annotated[
    Union[
        ReactNativeBuildConfig,
        FlutterBuildConfig,
        AndroidBuildConfig,
        CordovaBuildConfig,
        GenericBuildConfig,
    ],
    Field(discriminator="framework"),
]


class ProjectStats(ApiModel):
    """File-count statistics and derived estimates."""

    total_files: int = 0
    source_files: int = 0
    test_files: int = 0
    asset_files: int = 0
    config_files: int = 0
    dependencies: int = 0
    dev_dependencies: int = 0
    estimated_build_time: str | None = None
    project_size: str | None = None


class SourceStructure(ApiModel):
    """Relative paths grouped by role."""

    main_source: list[str] = Field(default_factory=list)
    test_source: list[str] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)


class ProjectAnalysis(ApiModel):
    """Structured profile of an extracted project tree."""

    schema_version: int = Field(default=ANALYSIS_SCHEMA_VERSION)
    framework: Framework = Field(default=Framework.GENERIC)
    framework_version: str | None = None
    language: str = Field(default="unknown")
    project_type: str = Field(default="unknown")
    project_name: str | None = None
    package_name: str | None = None
    source_root: str = Field(default="", description="Directory holding the framework manifest")
    has_valid_structure: bool = False
    missing_files: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    dev_dependencies: list[str] = Field(default_factory=list)
    build_config: BuildConfig = Field(default_factory=GenericBuildConfig)
    project_stats: ProjectStats = Field(default_factory=ProjectStats)
    source_structure: SourceStructure = Field(default_factory=SourceStructure)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=utcnow)

    @property
    def effective_package_name(self) -> str:
        """Package name to stamp into generated files and artifacts."""
        return (
            self.build_config.application_id
            or self.package_name
            or f"com.{self.framework.value.replace('-', '')}.app"
        )

    def root_path(self, relative: str) -> str:
        """Join ``relative`` onto the project's source root."""
        if not self.source_root:
            return relative
        return f"{self.source_root}/{relative}"
