"""Project setup steps."""

from .service import SETUP_STEPS, SetupService, SetupStep
from .templates import render_template

__all__ = ["SETUP_STEPS", "SetupService", "SetupStep", "render_template"]
