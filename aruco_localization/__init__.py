"""ArUco marker-map localization with robot-convention transform output."""

from .config import LocalizerConfig
from .localizer import ArucoLocalizer
from .worker import LocalizerWorker

__all__ = ["ArucoLocalizer", "LocalizerConfig", "LocalizerWorker"]
