"""Bell service for scheduled audio announcements."""

from pathlib import Path

# Default locations, relative to the directory holding bell.yml
# (or the working directory when there is none)
SOUNDS_DIR = Path("sounds")
SCHEDULE_FILE = Path("schedule.json")
WEB_DIST_DIR = Path("web") / "dist"
CONFIG_NAMES = ("bell.yml", "bell.yaml")
