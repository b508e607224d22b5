# quran_player/utils.py
import os
import sys
from pathlib import Path

import platformdirs

# --- Constants for platformdirs ---
APP_NAME = "QuranPlayer"
APP_AUTHOR = "QuranPlayer"

# This file provides path helpers for bundled assets and per-user storage,
# supporting both normal execution and PyInstaller frozen bundles.


def get_app_path(resource_path: str = '', writable: bool = False) -> str:
    """
    Get the absolute path to a resource or writable directory.

    Args:
        resource_path: Relative path to a resource/directory.
                       Leave empty for the base directory itself.
        writable:
            If True: Returns a path relative to the EXECUTABLE's directory
                     and makes sure the target directory exists.
            If False: Returns a path relative to the package root
                      (sys._MEIPASS when frozen). Use this for READ-ONLY
                      bundled assets such as the corpus database.

    Returns:
        Absolute path as a string.
    """
    if getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
        base_path = os.path.dirname(sys.executable) if writable else sys._MEIPASS
    else:
        # utils.py lives inside quran_player/, bundled assets sit beside it
        base_path = os.path.dirname(os.path.abspath(__file__))

    full_path = os.path.join(base_path, resource_path) if resource_path else base_path

    if writable and resource_path:
        # A name with an extension is a file: create its parent instead
        if '.' in os.path.basename(resource_path) and not resource_path.endswith(('/', '\\')):
            target_dir = os.path.dirname(full_path)
        else:
            target_dir = full_path
        if target_dir:
            os.makedirs(target_dir, exist_ok=True)

    return full_path


def get_config_dir() -> Path:
    """Per-user directory holding the preferences file."""
    config_dir = Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR))
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_cache_dir(name: str = '') -> Path:
    """Per-user cache directory, optionally a named subdirectory of it."""
    cache_dir = Path(platformdirs.user_cache_dir(APP_NAME, APP_AUTHOR))
    if name:
        cache_dir = cache_dir / name
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def format_time(seconds: float) -> str:
    """Format seconds to MM:SS"""
    if seconds is None or seconds < 0:
        seconds = 0
    return f"{int(seconds // 60):02d}:{int(seconds % 60):02d}"
