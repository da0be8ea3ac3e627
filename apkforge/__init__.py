"""
apkforge: Mobile project archive to APK conversion service.

Accepts a zipped mobile-app project, detects its framework, sequences
analysis, setup and build phases, and emits an installable-looking APK.
"""

__version__ = "1.0.0"
__author__ = "apkforge Team"
