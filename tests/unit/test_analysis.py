"""Unit tests for framework detection and project analysis."""

import json

import pytest

from apkforge.core.exceptions import AnalysisError
from apkforge.models import (
    AndroidBuildConfig,
    CordovaBuildConfig,
    FlutterBuildConfig,
    Framework,
    GenericBuildConfig,
    ReactNativeBuildConfig,
)
from apkforge.services.analysis import FrameworkAnalyzer, ProjectTree, detect_framework
from apkforge.services.analysis import parsers
from apkforge.services.analysis.service import GENERIC_WARNING


def write_tree(root, files):
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def analyzer(file_store):
    return FrameworkAnalyzer(file_store)


class TestDetectFramework:
    """Tests for framework detection order."""

    def test_react_native_by_dependency_folder(self):
        tree = ProjectTree(["package.json", "node_modules/react-native/package.json", "App.tsx", "index.js"])
        framework, language, project_type, root = detect_framework(tree)

        assert framework == Framework.REACT_NATIVE
        assert project_type == "hybrid"
        assert root == ""

    def test_react_native_by_metro_config(self):
        tree = ProjectTree(["package.json", "metro.config.js", "App.tsx", "src/a.ts"])
        framework, language, _, _ = detect_framework(tree)

        assert framework == Framework.REACT_NATIVE
        assert language == "typescript"

    def test_plain_package_json_is_not_react_native(self):
        tree = ProjectTree(["package.json", "index.js"])
        assert detect_framework(tree)[0] == Framework.GENERIC

    def test_flutter_in_wrapper_folder(self):
        tree = ProjectTree(["demo/pubspec.yaml", "demo/lib/main.dart"])
        framework, language, _, root = detect_framework(tree)

        assert framework == Framework.FLUTTER
        assert language == "dart"
        assert root == "demo"

    def test_android_kotlin(self):
        tree = ProjectTree(["build.gradle", "app/build.gradle", "app/src/main/java/Main.kt"])
        framework, language, project_type, root = detect_framework(tree)

        assert framework == Framework.ANDROID
        assert language == "kotlin"
        assert project_type == "native"
        assert root == ""

    def test_android_root_from_manifest(self):
        tree = ProjectTree(["myapp/app/src/main/AndroidManifest.xml", "myapp/app/src/main/java/Main.java"])
        framework, language, _, root = detect_framework(tree)

        assert framework == Framework.ANDROID
        assert language == "java"
        assert root == "myapp"

    def test_cordova_requires_www(self):
        assert detect_framework(ProjectTree(["config.xml", "www/index.html"]))[0] == Framework.CORDOVA
        assert detect_framework(ProjectTree(["config.xml"]))[0] == Framework.GENERIC

    def test_unrecognized_is_generic(self):
        assert detect_framework(ProjectTree(["notes.txt"])) == (Framework.GENERIC, "unknown", "unknown", "")


class TestParsers:
    """Tests for manifest parsers."""

    def test_parse_gradle_groovy_and_kts(self):
        groovy = parsers.parse_gradle(
            'android {\n compileSdkVersion 34\n defaultConfig {\n applicationId "com.example.app"\n'
            ' minSdkVersion 24\n targetSdkVersion 34\n versionCode 7\n versionName "1.2.3"\n }\n}\n'
        )
        kts = parsers.parse_gradle('android {\n compileSdk = 34\n defaultConfig {\n minSdk = 26\n }\n}\n')

        assert groovy == {
            "compile_sdk": 34,
            "min_sdk": 24,
            "target_sdk": 34,
            "version_code": 7,
            "version_name": "1.2.3",
            "application_id": "com.example.app",
        }
        assert kts == {"compile_sdk": 34, "min_sdk": 26}

    def test_parse_gradle_plugin_versions(self):
        values = parsers.parse_gradle(
            "buildscript {\n ext.kotlin_version = '1.9.0'\n dependencies {\n"
            " classpath 'com.android.tools.build:gradle:8.1.0'\n }\n}\n"
        )
        assert values["android_gradle_plugin"] == "8.1.0"
        assert values["kotlin_version"] == "1.9.0"

    def test_parse_gradle_wrapper_and_settings(self):
        wrapper = "distributionUrl=https\\://services.gradle.org/distributions/gradle-8.2-bin.zip\n"
        assert parsers.parse_gradle_wrapper(wrapper) == "8.2"
        assert parsers.parse_settings_gradle('rootProject.name = "MyApp"\ninclude ":app"\n') == "MyApp"

    def test_parse_pubspec_version(self):
        values = parsers.parse_pubspec("name: demo\nversion: 2.0.0+5\ndependencies:\n  flutter:\n    sdk: flutter\n  http: any\n")

        assert values["name"] == "demo"
        assert values["version_name"] == "2.0.0"
        assert values["version_code"] == 5
        assert values["dependencies"] == ["http"]

    def test_parse_pubspec_rejects_malformed(self):
        with pytest.raises(AnalysisError):
            parsers.parse_pubspec("name: [unclosed")
        with pytest.raises(AnalysisError):
            parsers.parse_pubspec("- just\n- a list\n")

    def test_parse_package_json_rejects_malformed(self):
        with pytest.raises(AnalysisError) as exc_info:
            parsers.parse_package_json("{not json")
        assert exc_info.value.file_path == "package.json"

    def test_parse_android_manifest(self):
        values = parsers.parse_android_manifest(
            '<manifest xmlns:android="http://schemas.android.com/apk/res/android" package="com.example.native"'
            ' android:versionCode="3" android:versionName="0.3">'
            '<uses-sdk android:minSdkVersion="23" android:targetSdkVersion="33"/></manifest>'
        )
        assert values == {
            "package": "com.example.native",
            "version_code": 3,
            "version_name": "0.3",
            "min_sdk": 23,
            "target_sdk": 33,
        }

    def test_parse_cordova_config(self):
        values = parsers.parse_cordova_config(
            '<widget xmlns="http://www.w3.org/ns/widgets" id="io.cordova.hello" version="1.4.0">'
            "<name>Hello</name>"
            '<preference name="android-minSdkVersion" value="22"/></widget>'
        )
        assert values == {"id": "io.cordova.hello", "version_name": "1.4.0", "app_name": "Hello", "min_sdk": 22}


@pytest.mark.asyncio
class TestFrameworkAnalyzer:
    """Tests for the analyzer against real directory trees."""

    async def test_flutter_project(self, analyzer, flutter_project):
        """Test a minimal Flutter project is fully profiled."""
        analysis = await analyzer.analyze(flutter_project)

        assert analysis.framework == Framework.FLUTTER
        assert analysis.project_name == "demo"
        assert analysis.missing_files == []
        assert analysis.has_valid_structure
        assert isinstance(analysis.build_config, FlutterBuildConfig)
        assert analysis.build_config.version_name == "2.0.0"
        assert analysis.build_config.version_code == 5
        assert analysis.package_name == "com.example.demo"
        assert analysis.source_structure.main_source == ["lib/main.dart"]
        assert analysis.project_stats.project_size == "Small"
        assert analysis.project_stats.estimated_build_time == "3-5 minutes"

    async def test_flutter_in_wrapper_folder_reports_rooted_missing_files(self, analyzer, temp_dir):
        root = write_tree(temp_dir / "p", {"demo/pubspec.yaml": "name: demo\n"})
        analysis = await analyzer.analyze(root)

        assert analysis.source_root == "demo"
        assert analysis.missing_files == ["demo/lib/main.dart"]
        assert analysis.has_valid_structure

    async def test_generic_project(self, analyzer, temp_dir):
        """Test unrecognized projects are valid generic projects with a warning."""
        root = write_tree(temp_dir / "p", {"notes.txt": "hello"})
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.GENERIC
        assert analysis.has_valid_structure
        assert analysis.missing_files == []
        assert GENERIC_WARNING in analysis.warnings
        assert isinstance(analysis.build_config, GenericBuildConfig)

    async def test_react_native_project(self, analyzer, temp_dir):
        package = {
            "name": "My App",
            "version": "0.5.0",
            "dependencies": {"react": "18.2.0", "react-native": "0.72.4"},
            "devDependencies": {"jest": "29"},
        }
        root = write_tree(temp_dir / "p", {
            "package.json": json.dumps(package),
            "metro.config.js": "module.exports = {}",
            "App.js": "export default function App() {}",
            "android/app/build.gradle": 'android { defaultConfig { applicationId "com.myapp"\n targetSdkVersion 34 } }',
        })
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.REACT_NATIVE
        assert isinstance(analysis.build_config, ReactNativeBuildConfig)
        assert analysis.build_config.react_native_version == "0.72.4"
        assert analysis.build_config.target_sdk == 34
        assert analysis.build_config.version_name == "0.5.0"
        assert analysis.package_name == "com.myapp"
        assert analysis.dependencies == ["react", "react-native"]
        assert analysis.dev_dependencies == ["jest"]
        assert analysis.missing_files == ["index.js"]
        assert "iOS platform files missing - iOS build not supported" in analysis.warnings

    async def test_react_native_malformed_package_json(self, analyzer, temp_dir):
        """Test a malformed manifest is recorded, not raised."""
        root = write_tree(temp_dir / "p", {"package.json": "{broken", "metro.config.js": ""})
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.REACT_NATIVE
        assert not analysis.has_valid_structure
        assert any(e.startswith("Failed to analyze package.json") for e in analysis.errors)

    async def test_android_project_gradle_wins_over_manifest(self, analyzer, temp_dir):
        root = write_tree(temp_dir / "p", {
            "build.gradle": "classpath 'com.android.tools.build:gradle:8.1.0'",
            "settings.gradle": 'rootProject.name = "Native"',
            "app/build.gradle": 'android { defaultConfig { applicationId "com.example.native"\n minSdkVersion 24 } }',
            "app/src/main/AndroidManifest.xml": (
                '<manifest xmlns:android="http://schemas.android.com/apk/res/android" package="com.example.native">'
                '<uses-sdk android:minSdkVersion="19" android:targetSdkVersion="30"/></manifest>'
            ),
            "app/src/main/java/Main.java": "class Main {}",
        })
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.ANDROID
        assert analysis.language == "java"
        assert analysis.project_name == "Native"
        assert analysis.framework_version == "8.1.0"
        assert analysis.missing_files == []
        config = analysis.build_config
        assert isinstance(config, AndroidBuildConfig)
        assert config.min_sdk == 24
        assert config.target_sdk == 30
        assert config.has_build_gradle and config.has_manifest

    async def test_android_manifest_only(self, analyzer, temp_dir):
        root = write_tree(temp_dir / "p", {
            "app/src/main/AndroidManifest.xml": '<manifest package="com.example.bare"/>',
        })
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.ANDROID
        assert set(analysis.missing_files) == {"build.gradle", "app/build.gradle"}
        assert analysis.package_name == "com.example.bare"
        assert analysis.has_valid_structure

    async def test_android_manifest_outside_module_layout(self, analyzer, temp_dir):
        """Test a manifest at a non-standard path is used rather than reported missing."""
        root = write_tree(temp_dir / "p", {
            "mobile/AndroidManifest.xml": '<manifest package="com.example.loose"/>',
            "mobile/Main.java": "class Main {}",
        })
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.ANDROID
        assert analysis.source_root == "mobile"
        assert analysis.has_valid_structure
        assert analysis.errors == []
        assert analysis.package_name == "com.example.loose"
        assert analysis.build_config.has_manifest
        assert set(analysis.missing_files) == {"mobile/build.gradle", "mobile/app/build.gradle"}

    async def test_android_unparsable_manifest(self, analyzer, temp_dir):
        root = write_tree(temp_dir / "p", {"app/src/main/AndroidManifest.xml": "<manifest"})
        analysis = await analyzer.analyze(root)

        assert not analysis.has_valid_structure
        assert any("AndroidManifest.xml" in e for e in analysis.errors)

    async def test_cordova_project(self, analyzer, temp_dir):
        root = write_tree(temp_dir / "p", {
            "config.xml": '<widget id="io.cordova.hello" version="1.4.0"><name>Hello</name></widget>',
            "www/js/app.js": "",
        })
        analysis = await analyzer.analyze(root)

        assert analysis.framework == Framework.CORDOVA
        assert isinstance(analysis.build_config, CordovaBuildConfig)
        assert analysis.build_config.app_name == "Hello"
        assert analysis.build_config.has_www_folder
        assert analysis.package_name == "io.cordova.hello"
        assert analysis.missing_files == ["www/index.html"]

    async def test_analysis_is_idempotent(self, analyzer, flutter_project):
        """Test analyzing an unchanged directory twice gives the same profile."""
        first = await analyzer.analyze(flutter_project)
        second = await analyzer.analyze(flutter_project)

        assert first.framework == second.framework
        assert first.missing_files == second.missing_files

    async def test_unexpected_failure_is_recorded(self, analyzer, temp_dir, monkeypatch):
        """Test an internal failure ends up in the error list."""
        async def broken_walk(root, max_depth=10):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(analyzer.file_store, "walk", broken_walk)
        analysis = await analyzer.analyze(temp_dir)

        assert not analysis.has_valid_structure
        assert analysis.errors == ["Analysis failed: disk on fire"]
