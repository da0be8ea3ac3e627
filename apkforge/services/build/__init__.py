"""Build phase and artifact packaging."""

from .packaging import ArtifactPackager
from .service import APK_RELATIVE_PATH, BuildService

__all__ = ["APK_RELATIVE_PATH", "ArtifactPackager", "BuildService"]
