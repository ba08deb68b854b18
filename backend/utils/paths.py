"""Where the editor keeps its own files: settings.json and logs."""
import os
import sys
import tempfile
from pathlib import Path
from typing import List

APP_DIR_NAME = "FlyFF Item Editor"
BACKEND_ROOT = Path(__file__).resolve().parent.parent


def is_packaged() -> bool:
    """True for a bundled executable, False for a source checkout"""
    return bool(getattr(sys, "frozen", False)) or "__compiled__" in globals()


def user_data_dir() -> Path:
    base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA") or os.getenv("XDG_DATA_HOME")
    if base:
        return Path(base) / APP_DIR_NAME
    return Path.home() / ".flyff-item-editor"


def _home_candidates() -> List[Path]:
    override = os.getenv("FLYFF_EDITOR_HOME")
    if override:
        return [Path(override)]
    if is_packaged():
        return [user_data_dir()]
    return [BACKEND_ROOT, user_data_dir()]


def _is_writable(directory: Path) -> bool:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryFile(dir=directory):
            pass
    except OSError:
        return False
    return True


def get_writable_dir(sub_dir: str = "logs") -> Path:
    """
    Editor data folder, created on demand.

    FLYFF_EDITOR_HOME is used as is. Otherwise a source checkout keeps its
    data next to the backend and moves to the user data folder when the
    checkout is read-only; a packaged build always uses the user data folder.

    Raises:
        OSError: none of the candidate folders can be written
    """
    tried = []
    for home in _home_candidates():
        target = home / sub_dir
        if _is_writable(target):
            return target
        tried.append(str(target))
    raise OSError(f"No writable folder for editor data (tried {', '.join(tried)})")
