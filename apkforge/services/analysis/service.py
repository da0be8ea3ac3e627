"""
Framework Analysis Service.

Classifies an extracted project tree into a framework and language profile,
collects dependencies and build settings, and checks the framework's
required-file list. Project content problems are recorded on the result;
``analyze`` itself never raises for them.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from pathlib import Path, PurePosixPath

from ...core.exceptions import AnalysisError
from ...core.logging import get_logger
from ...models.analysis import (
    AndroidBuildConfig,
    CordovaBuildConfig,
    FlutterBuildConfig,
    Framework,
    GenericBuildConfig,
    ProjectAnalysis,
    ReactNativeBuildConfig,
    SourceStructure,
)
from ...storage.local import LocalFileStore
from . import parsers

logger = get_logger(__name__)

SOURCE_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".dart", ".java", ".kt", ".swift", ".m", ".h")
TEST_PATTERNS = (".test.js", ".test.ts", ".spec.js", ".spec.ts", "_test.dart")
ASSET_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".ico", ".ttf", ".otf", ".woff", ".woff2")
CONFIG_EXTENSIONS = (".json", ".yaml", ".yml", ".xml", ".gradle", ".properties", ".plist")

GRADLE_FILES = ("build.gradle", "build.gradle.kts")
RN_APP_ENTRIES = ("App.js", "App.jsx", "App.ts", "App.tsx")

GENERIC_WARNING = "Framework not automatically detected - will use generic mobile project setup"


class ProjectTree:
    """Query helpers over a list of relative POSIX file paths."""

    def __init__(self, files: list[str]) -> None:
        self.files = files
        self._paths = set(files)

    def has(self, path: str) -> bool:
        return path in self._paths

    def has_any(self, *paths: str) -> bool:
        return any(p in self._paths for p in paths)

    def has_dir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        return any(f.startswith(prefix) for f in self.files)

    def named(self, *names: str) -> list[str]:
        """Paths whose basename is one of ``names``, shallowest first."""
        matches = [f for f in self.files if PurePosixPath(f).name in names]
        return sorted(matches, key=lambda f: (f.count("/"), f))

    def under(self, root: str) -> ProjectTree:
        """Sub-tree rooted at ``root`` with paths relative to it."""
        if not root:
            return self
        prefix = root + "/"
        return ProjectTree([f[len(prefix):] for f in self.files if f.startswith(prefix)])


def _parent(path: str) -> str:
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


def _segments(path: str) -> tuple[str, ...]:
    return PurePosixPath(path).parts


def _sanitize(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _is_test(path: str) -> bool:
    name = PurePosixPath(path).name.lower()
    return any(p in name for p in TEST_PATTERNS)


def detect_framework(tree: ProjectTree) -> tuple[Framework, str, str, str]:
    """Pick the framework for a tree. Order matters, the first match wins.

    Returns:
        ``(framework, language, project_type, source_root)``
    """
    package_json = tree.named("package.json")
    if package_json:
        mentions_rn = any(any("react-native" in s for s in _segments(f)) for f in tree.files)
        has_metro = any(PurePosixPath(f).name.startswith("metro.config.") for f in tree.files)
        if mentions_rn or has_metro:
            ts = sum(1 for f in tree.files if f.endswith((".ts", ".tsx")) and not _is_test(f))
            js = sum(1 for f in tree.files if f.endswith((".js", ".jsx")) and not _is_test(f))
            language = "typescript" if ts > js else "javascript"
            return Framework.REACT_NATIVE, language, "hybrid", _parent(package_json[0])

    pubspec = tree.named("pubspec.yaml", "pubspec.yml")
    if pubspec:
        return Framework.FLUTTER, "dart", "hybrid", _parent(pubspec[0])

    gradle = tree.named(*GRADLE_FILES)
    manifests = tree.named("AndroidManifest.xml")
    if gradle or manifests:
        if any(f.endswith(".kt") for f in tree.files):
            language = "kotlin"
        elif any(f.endswith(".java") for f in tree.files):
            language = "java"
        else:
            language = "unknown"
        return Framework.ANDROID, language, "native", _android_root(gradle, manifests)

    for config in tree.named("config.xml"):
        root = _parent(config)
        if tree.has_dir(f"{root}/www" if root else "www"):
            return Framework.CORDOVA, "javascript", "hybrid", root

    return Framework.GENERIC, "unknown", "unknown", ""


def _android_root(gradle: list[str], manifests: list[str]) -> str:
    if gradle:
        root = _parent(gradle[0])
        return _parent(root) if PurePosixPath(root).name == "app" else root
    parts = list(PurePosixPath(_parent(manifests[0])).parts)
    if parts[-2:] == ["src", "main"]:
        parts = parts[:-2]
    if parts and parts[-1] == "app":
        parts = parts[:-1]
    return "/".join(parts)


class FrameworkAnalyzer:
    """Service that profiles an extracted project tree."""

    def __init__(self, file_store: LocalFileStore) -> None:
        """Initialize the analyzer.

        Args:
            file_store: File store used to walk and read the project tree
        """
        self.file_store = file_store
        self._handlers: dict[Framework, Callable[[Path, ProjectTree, ProjectAnalysis], Awaitable[None]]] = {
            Framework.REACT_NATIVE: self._analyze_react_native,
            Framework.FLUTTER: self._analyze_flutter,
            Framework.ANDROID: self._analyze_android,
            Framework.CORDOVA: self._analyze_cordova,
            Framework.GENERIC: self._analyze_generic,
        }

    async def analyze(self, project_dir: Path) -> ProjectAnalysis:
        """Analyze a project working directory.

        Args:
            project_dir: Root of the extracted project

        Returns:
            The analysis. Failures are listed in ``errors``.
        """
        analysis = ProjectAnalysis()
        try:
            files = await self.file_store.walk(project_dir)
            tree = ProjectTree(files)
            analysis.project_stats.total_files = len(files)

            framework, language, project_type, source_root = detect_framework(tree)
            analysis.framework = framework
            analysis.language = language
            analysis.project_type = project_type
            analysis.source_root = source_root
            logger.info("Framework detected", framework=framework.value, source_root=source_root or ".")

            self._tally_file_types(tree, analysis)
            root_dir = project_dir / source_root if source_root else project_dir
            await self._handlers[framework](root_dir, tree.under(source_root), analysis)
            self._compute_metrics(analysis)
        except Exception as e:
            logger.exception("Analysis failed", project_dir=str(project_dir))
            analysis.errors.append(f"Analysis failed: {e}")

        analysis.has_valid_structure = not analysis.errors
        return analysis

    @staticmethod
    def _tally_file_types(tree: ProjectTree, analysis: ProjectAnalysis) -> None:
        stats = analysis.project_stats
        for path in tree.files:
            lower = path.lower()
            if _is_test(path):
                stats.test_files += 1
            elif lower.endswith(SOURCE_EXTENSIONS):
                stats.source_files += 1
            elif lower.endswith(ASSET_EXTENSIONS):
                stats.asset_files += 1
            elif lower.endswith(CONFIG_EXTENSIONS):
                stats.config_files += 1

    @staticmethod
    def _compute_metrics(analysis: ProjectAnalysis) -> None:
        stats = analysis.project_stats
        minutes = 2
        if stats.source_files > 100:
            minutes += 2
        if stats.source_files > 500:
            minutes += 3
        if len(analysis.dependencies) > 50:
            minutes += 2
        if analysis.framework == Framework.FLUTTER:
            minutes += 1
        elif analysis.framework == Framework.REACT_NATIVE:
            minutes += 2
        stats.estimated_build_time = f"{minutes}-{minutes + 2} minutes"

        if stats.total_files < 50:
            stats.project_size = "Small"
        elif stats.total_files < 200:
            stats.project_size = "Medium"
        else:
            stats.project_size = "Large"

    def _require(self, analysis: ProjectAnalysis, tree: ProjectTree, path: str, *alternatives: str) -> bool:
        """Record ``path`` as missing unless it or an alternative exists."""
        if tree.has_any(path, *alternatives):
            return True
        analysis.missing_files.append(analysis.root_path(path))
        return False

    def _record_parse_failure(self, analysis: ProjectAnalysis, error: AnalysisError) -> None:
        analysis.errors.append(f"Failed to analyze {error.file_path}: {error.message}")
        logger.warning("Manifest parse failed", file=error.file_path, error=error.message)

    async def _analyze_react_native(self, root: Path, tree: ProjectTree, analysis: ProjectAnalysis) -> None:
        if not tree.has("package.json"):
            analysis.missing_files.append(analysis.root_path("package.json"))
            analysis.errors.append("Missing package.json file - required for React Native projects")
            return

        config = ReactNativeBuildConfig()
        try:
            package = parsers.parse_package_json(await self.file_store.read_text(root / "package.json"))
        except AnalysisError as e:
            self._record_parse_failure(analysis, e)
            package = {}

        name = str(package.get("name") or "react-native-app")
        analysis.project_name = name
        analysis.package_name = f"com.reactnative.{_sanitize(name)}"
        config.version_name = str(package.get("version") or "1.0.0")

        dependencies = package.get("dependencies") or {}
        dev_dependencies = package.get("devDependencies") or {}
        analysis.dependencies = list(dependencies) if isinstance(dependencies, dict) else []
        analysis.dev_dependencies = list(dev_dependencies) if isinstance(dev_dependencies, dict) else []
        if isinstance(dependencies, dict) and dependencies.get("react-native"):
            config.react_native_version = str(dependencies["react-native"])
            analysis.framework_version = config.react_native_version
        engines = package.get("engines") or {}
        if isinstance(engines, dict) and engines.get("node"):
            config.node_version = str(engines["node"])

        module_gradle = next((p for p in ("android/app/build.gradle", "android/app/build.gradle.kts") if tree.has(p)), None)
        if module_gradle:
            try:
                gradle = parsers.parse_gradle(await self.file_store.read_text(root / module_gradle))
            except OSError as e:
                analysis.warnings.append(f"Failed to parse Android build.gradle: {e}")
            else:
                for key in ("target_sdk", "min_sdk", "compile_sdk", "version_code", "version_name"):
                    if key in gradle:
                        setattr(config, key, gradle[key])
                if gradle.get("application_id"):
                    analysis.package_name = gradle["application_id"]
                    config.application_id = gradle["application_id"]
        config.application_id = config.application_id or analysis.package_name
        analysis.build_config = config

        self._require(analysis, tree, "App.js", *RN_APP_ENTRIES)
        self._require(analysis, tree, "index.js")
        if not tree.has_any("android/app/build.gradle", "android/build.gradle", "android/app/build.gradle.kts"):
            analysis.warnings.append("Android platform files missing - APK build may require additional setup")
        ios_project = any(s.endswith(".xcodeproj") for f in tree.files for s in _segments(f)[:2] if f.startswith("ios/"))
        if not (tree.has("ios/Podfile") or ios_project):
            analysis.warnings.append("iOS platform files missing - iOS build not supported")

        analysis.source_structure = SourceStructure(
            main_source=[
                f for f in tree.files
                if f.endswith((".js", ".jsx", ".ts", ".tsx")) and not _is_test(f) and "__tests__" not in _segments(f)
            ],
            test_source=[f for f in tree.files if _is_test(f) or "__tests__" in _segments(f)],
            assets=[
                f for f in tree.files
                if {"assets", "images"} & set(_segments(f)) or f.lower().endswith((".png", ".jpg", ".ttf"))
            ],
            resources=[
                f for f in tree.files
                if f.startswith("android/app/src/main/res/")
                or (f.startswith("ios/") and ("Assets.xcassets" in _segments(f) or f.endswith("Info.plist")))
            ],
        )

    async def _analyze_flutter(self, root: Path, tree: ProjectTree, analysis: ProjectAnalysis) -> None:
        pubspec_name = next((n for n in ("pubspec.yaml", "pubspec.yml") if tree.has(n)), None)
        if pubspec_name is None:
            analysis.missing_files.append(analysis.root_path("pubspec.yaml"))
            analysis.errors.append("Missing pubspec.yaml file - required for Flutter projects")
            return

        config = FlutterBuildConfig()
        try:
            pubspec = parsers.parse_pubspec(await self.file_store.read_text(root / pubspec_name))
        except AnalysisError as e:
            self._record_parse_failure(analysis, e)
            pubspec = {}

        analysis.project_name = pubspec.get("name")
        analysis.dependencies = pubspec.get("dependencies", [])
        analysis.dev_dependencies = pubspec.get("dev_dependencies", [])
        for key in ("version_name", "version_code", "flutter_version", "dart_version"):
            if key in pubspec:
                setattr(config, key, pubspec[key])
        if "flutter_version" in pubspec:
            analysis.framework_version = pubspec["flutter_version"]
        config.application_id = f"com.example.{analysis.project_name or 'app'}"
        analysis.package_name = config.application_id

        manifest = "android/app/src/main/AndroidManifest.xml"
        if tree.has(manifest):
            try:
                values = parsers.parse_android_manifest(await self.file_store.read_text(root / manifest))
            except AnalysisError as e:
                analysis.warnings.append(f"Could not read {manifest}: {e.message}")
            else:
                if values.get("package"):
                    analysis.package_name = values["package"]
                    config.application_id = values["package"]
        analysis.build_config = config

        self._require(analysis, tree, "lib/main.dart")
        self._require(analysis, tree, "pubspec.yaml", "pubspec.yml")
        if not tree.has("android/app/build.gradle") and not tree.has("android/app/build.gradle.kts"):
            analysis.warnings.append("Recommended file/directory missing: android/app/build.gradle")
        if not tree.has("ios/Runner.xcodeproj/project.pbxproj"):
            analysis.warnings.append("Recommended file/directory missing: ios/Runner.xcodeproj/project.pbxproj")
        if not tree.has_dir("test"):
            analysis.warnings.append("Recommended file/directory missing: test/")

        analysis.source_structure = SourceStructure(
            main_source=[f for f in tree.files if f.startswith("lib/") and f.endswith(".dart")],
            test_source=[f for f in tree.files if f.startswith("test/") and f.endswith(".dart")],
            assets=[
                f for f in tree.files
                if {"assets", "images", "fonts"} & set(_segments(f)) or f.lower().endswith((".png", ".jpg", ".ttf"))
            ],
            resources=[
                f for f in tree.files
                if f.startswith("android/app/src/main/res/") or f.startswith("ios/Runner/Assets.xcassets/")
            ],
        )

    async def _analyze_android(self, root: Path, tree: ProjectTree, analysis: ProjectAnalysis) -> None:
        config = AndroidBuildConfig()
        root_gradle = next((g for g in GRADLE_FILES if tree.has(g)), None)
        module_gradle = next((f"app/{g}" for g in GRADLE_FILES if tree.has(f"app/{g}")), None)
        manifest = next(
            (m for m in ("app/src/main/AndroidManifest.xml", "src/main/AndroidManifest.xml") if tree.has(m)),
            None,
        )
        if manifest is None:
            # Manifest outside the standard module layout
            manifest = next(iter(tree.named("AndroidManifest.xml")), None)
        if not (root_gradle or module_gradle or manifest):
            analysis.missing_files.append(analysis.root_path("app/src/main/AndroidManifest.xml"))
            analysis.errors.append("Missing build.gradle and AndroidManifest.xml - required for Android projects")
            return

        self._require(analysis, tree, "build.gradle", "build.gradle.kts")
        self._require(analysis, tree, "app/build.gradle", "app/build.gradle.kts")
        if manifest is None:
            analysis.missing_files.append(analysis.root_path("app/src/main/AndroidManifest.xml"))

        config.has_build_gradle = module_gradle is not None
        config.has_manifest = manifest is not None

        gradle_script = module_gradle or root_gradle
        if gradle_script:
            gradle = parsers.parse_gradle(await self.file_store.read_text(root / gradle_script))
            for key in ("target_sdk", "min_sdk", "compile_sdk", "version_code", "version_name", "kotlin_version"):
                if key in gradle:
                    setattr(config, key, gradle[key])
            config.application_id = gradle.get("application_id") or gradle.get("namespace")
            if root_gradle and root_gradle != gradle_script:
                root_values = parsers.parse_gradle(await self.file_store.read_text(root / root_gradle))
                config.kotlin_version = config.kotlin_version or root_values.get("kotlin_version")
                if root_values.get("android_gradle_plugin"):
                    analysis.framework_version = root_values["android_gradle_plugin"]

        wrapper = "gradle/wrapper/gradle-wrapper.properties"
        if tree.has(wrapper):
            config.gradle_version = parsers.parse_gradle_wrapper(await self.file_store.read_text(root / wrapper))
        for settings in ("settings.gradle", "settings.gradle.kts"):
            if tree.has(settings):
                analysis.project_name = parsers.parse_settings_gradle(await self.file_store.read_text(root / settings))
                break

        if manifest:
            try:
                values = parsers.parse_android_manifest(await self.file_store.read_text(root / manifest))
            except AnalysisError as e:
                self._record_parse_failure(analysis, e)
            else:
                analysis.package_name = values.get("package")
                for key in ("version_code", "version_name", "min_sdk", "target_sdk"):
                    # Gradle settings win over manifest attributes
                    if key in values and key not in config.model_fields_set:
                        setattr(config, key, values[key])
        analysis.package_name = analysis.package_name or config.application_id
        config.application_id = config.application_id or analysis.package_name
        analysis.build_config = config

        analysis.source_structure = SourceStructure(
            main_source=[f for f in tree.files if f.endswith((".java", ".kt")) and not {"test", "androidTest"} & set(_segments(f))],
            test_source=[f for f in tree.files if {"test", "androidTest"} & set(_segments(f))],
            assets=[f for f in tree.files if "/src/main/assets/" in f"/{f}"],
            resources=[f for f in tree.files if "/src/main/res/" in f"/{f}"],
        )

    async def _analyze_cordova(self, root: Path, tree: ProjectTree, analysis: ProjectAnalysis) -> None:
        if not tree.has("config.xml"):
            analysis.missing_files.append(analysis.root_path("config.xml"))
            analysis.errors.append("Missing config.xml file - required for Cordova projects")
            return

        config = CordovaBuildConfig(has_config_xml=True, has_www_folder=tree.has_dir("www"))
        self._require(analysis, tree, "www/index.html")

        try:
            values = parsers.parse_cordova_config(await self.file_store.read_text(root / "config.xml"))
        except AnalysisError as e:
            self._record_parse_failure(analysis, e)
            values = {}

        for key in ("version_name", "version_code", "min_sdk", "target_sdk", "app_name"):
            if key in values:
                setattr(config, key, values[key])
        analysis.project_name = values.get("app_name")
        analysis.package_name = values.get("id")
        config.application_id = values.get("id")
        analysis.build_config = config

        analysis.source_structure = SourceStructure(
            main_source=[f for f in tree.files if f.startswith("www/") and f.endswith((".js", ".html", ".css"))],
            test_source=[f for f in tree.files if _is_test(f)],
            assets=[f for f in tree.files if f.startswith("www/") and f.lower().endswith(ASSET_EXTENSIONS)],
            resources=[f for f in tree.files if f.startswith("res/")],
        )

    async def _analyze_generic(self, root: Path, tree: ProjectTree, analysis: ProjectAnalysis) -> None:
        analysis.warnings.append(GENERIC_WARNING)
        analysis.build_config = GenericBuildConfig()
        analysis.source_structure = SourceStructure(
            main_source=[f for f in tree.files if f.lower().endswith(SOURCE_EXTENSIONS) and not _is_test(f)],
            test_source=[f for f in tree.files if _is_test(f)],
            assets=[f for f in tree.files if f.lower().endswith(ASSET_EXTENSIONS)],
        )
