"""
Boilerplate for files a project is missing.

``render_template`` maps a missing path to minimal, valid content for it.
Values (package name, SDK levels, versions) come from the analysis.
"""

from __future__ import annotations

import json
import re
from pathlib import PurePosixPath

from ...models.analysis import ProjectAnalysis

ANDROID_MANIFEST = """<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
    package="{package}">

    <uses-permission android:name="android.permission.INTERNET" />
    <uses-permission android:name="android.permission.ACCESS_NETWORK_STATE" />

    <application
        android:allowBackup="true"
        android:icon="@mipmap/ic_launcher"
        android:label="{label}"
        android:theme="@style/AppTheme">

        <activity
            android:name=".MainActivity"
            android:exported="true">
            <intent-filter>
                <action android:name="android.intent.action.MAIN" />
                <category android:name="android.intent.category.LAUNCHER" />
            </intent-filter>
        </activity>
    </application>
</manifest>
"""

MODULE_GRADLE = """plugins {{
    id 'com.android.application'
}}

android {{
    namespace "{package}"
    compileSdkVersion {compile_sdk}

    defaultConfig {{
        applicationId "{package}"
        minSdkVersion {min_sdk}
        targetSdkVersion {target_sdk}
        versionCode {version_code}
        versionName "{version_name}"
    }}

    buildTypes {{
        release {{
            minifyEnabled false
            proguardFiles getDefaultProguardFile('proguard-android-optimize.txt'), 'proguard-rules.pro'
        }}
    }}
}}

dependencies {{
    implementation 'androidx.appcompat:appcompat:1.6.1'
    implementation 'com.google.android.material:material:1.9.0'
    implementation 'androidx.constraintlayout:constraintlayout:2.1.4'
}}
"""

ROOT_GRADLE = """buildscript {
    repositories {
        google()
        mavenCentral()
    }
    dependencies {
        classpath 'com.android.tools.build:gradle:7.4.2'
    }
}

allprojects {
    repositories {
        google()
        mavenCentral()
    }
}
"""

CORDOVA_CONFIG = """<?xml version='1.0' encoding='utf-8'?>
<widget id="{package}" version="{version_name}" xmlns="http://www.w3.org/ns/widgets" xmlns:cdv="http://cordova.apache.org/ns/1.0">
    <name>{label}</name>
    <description>
        A sample Apache Cordova application.
    </description>
    <content src="index.html" />
    <access origin="*" />
    <allow-intent href="http://*/*" />
    <allow-intent href="https://*/*" />
    <platform name="android">
        <allow-intent href="market:*" />
    </platform>
</widget>
"""

PUBSPEC = """name: {name}
description: A Flutter mobile application
version: {version_name}+{version_code}

environment:
  sdk: '>=2.19.0 <4.0.0'
  flutter: ">=1.17.0"

dependencies:
  flutter:
    sdk: flutter
  cupertino_icons: ^1.0.2

dev_dependencies:
  flutter_test:
    sdk: flutter
  flutter_lints: ^2.0.0

flutter:
  uses-material-design: true
"""

MAIN_DART = """import 'package:flutter/material.dart';

void main() {{
  runApp(const MyApp());
}}

class MyApp extends StatelessWidget {{
  const MyApp({{super.key}});

  @override
  Widget build(BuildContext context) {{
    return MaterialApp(
      title: '{label}',
      theme: ThemeData(primarySwatch: Colors.blue),
      home: const Scaffold(
        body: Center(child: Text('{label}')),
      ),
    );
  }}
}}
"""

RN_APP = """import React from 'react';
import {{SafeAreaView, Text}} from 'react-native';

const App = () => (
  <SafeAreaView>
    <Text>{label}</Text>
  </SafeAreaView>
);

export default App;
"""

RN_INDEX = """import {AppRegistry} from 'react-native';
import App from './App';
import {name as appName} from './app.json';

AppRegistry.registerComponent(appName, () => App);
"""

WWW_INDEX = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="initial-scale=1, width=device-width, viewport-fit=cover" />
    <title>{label}</title>
  </head>
  <body>
    <h1>{label}</h1>
    <script src="cordova.js"></script>
  </body>
</html>
"""


def _values(analysis: ProjectAnalysis) -> dict[str, object]:
    config = analysis.build_config
    label = analysis.project_name or "Mobile App"
    return {
        "package": analysis.effective_package_name,
        "label": label,
        "name": re.sub(r"[^a-z0-9_]", "_", label.lower()) or "mobile_app",
        "compile_sdk": config.compile_sdk,
        "target_sdk": config.target_sdk,
        "min_sdk": config.min_sdk,
        "version_code": config.version_code,
        "version_name": config.version_name,
    }


def _package_json(values: dict[str, object]) -> str:
    package = {
        "name": values["name"],
        "version": values["version_name"],
        "main": "index.js",
        "scripts": {
            "android": "react-native run-android",
            "ios": "react-native run-ios",
            "start": "react-native start",
        },
        "dependencies": {"react": "18.2.0", "react-native": "0.72.0"},
    }
    return json.dumps(package, indent=2) + "\n"


def render_template(path: str, analysis: ProjectAnalysis) -> str | None:
    """Boilerplate for ``path``, or None when no template applies."""
    values = _values(analysis)
    pure = PurePosixPath(path)
    name = pure.name

    if name == "AndroidManifest.xml":
        return ANDROID_MANIFEST.format(**values)
    if name in ("build.gradle", "build.gradle.kts"):
        is_module = pure.parent.name == "app"
        return MODULE_GRADLE.format(**values) if is_module else ROOT_GRADLE
    if name == "package.json":
        return _package_json(values)
    if name == "config.xml":
        return CORDOVA_CONFIG.format(**values)
    if name in ("pubspec.yaml", "pubspec.yml"):
        return PUBSPEC.format(**values)
    if name == "main.dart":
        return MAIN_DART.format(**values)
    if name in ("App.js", "App.jsx", "App.tsx", "App.ts"):
        return RN_APP.format(**values)
    if name == "index.js":
        return RN_INDEX
    if name == "index.html":
        return WWW_INDEX.format(**values)
    return None


GRADLEW_STUB = """#!/bin/sh
# Delegates to the Gradle installation on PATH.
exec gradle "$@"
"""
