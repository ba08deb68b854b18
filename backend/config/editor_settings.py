"""
FlyFF Resource Folder and Editor Configuration

Resolves where the item resource files are read from and written to,
which encoding saved files use, and the optional known-overrides table
for the model registry.

Lookup order for every setting:
1. Environment variables (a '.env' file is honoured).
2. A 'settings.json' file in the writable data directory.
3. Built-in defaults.
"""
import os
import json
from pathlib import Path
from typing import Optional, List, Dict, Any
from dotenv import load_dotenv
from loguru import logger

# Load environment variables
load_dotenv()

from utils.paths import get_writable_dir

BACKEND_DIR = Path(__file__).parent.parent
PROJECT_DIR = BACKEND_DIR.parent

SPEC_ITEM_FILE = "Spec_Item.txt"
PROP_ITEM_FILE = "propItem.txt.txt"
DEFINE_ITEM_FILE = "defineItem.h"
MDL_DYNA_FILE = "mdlDyna.inc"

DEFAULT_FILE_NAMES = {
    'spec_item': SPEC_ITEM_FILE,
    'prop_item': PROP_ITEM_FILE,
    'define_item': DEFINE_ITEM_FILE,
    'mdl_dyna': MDL_DYNA_FILE,
}

# Encodings the game client can read back
SUPPORTED_SAVE_ENCODINGS = ('cp1252', 'cp1251', 'cp949', 'gbk', 'latin-1', 'source')


def default_resource_candidates() -> List[Path]:
    """Resource folders tried in order when nothing is configured."""
    cwd = Path.cwd()
    return [
        cwd / 'public' / 'resource',
        cwd / 'resource',
        PROJECT_DIR / 'resource',
    ]


def _split_paths(value: str) -> List[Path]:
    return [Path(part) for part in value.split(os.pathsep) if part.strip()]


class EditorSettings:
    """
    Centralized settings for the resource editor.

    Every setter persists to settings.json so the next start picks it up.
    Environment variables always take precedence over the file.
    """

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = Path(settings_path) if settings_path else get_writable_dir("") / "settings.json"
        self._resource_folder: Optional[Path] = None
        self._save_folders: List[Path] = []
        self._save_encoding: str = 'cp1252'
        self._legacy_encoding: str = 'cp1252'
        self._create_backups: bool = False
        self._batch_size: int = 1000
        self._model_overrides_path: Optional[Path] = None
        self._file_names: Dict[str, str] = dict(DEFAULT_FILE_NAMES)
        self._load_config()

    def _load_config(self):
        """Load configuration from various sources."""
        settings: Dict[str, Any] = {}
        if self.settings_path.exists():
            try:
                with open(self.settings_path, 'r', encoding='utf-8') as f:
                    settings = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Ignoring unreadable settings file {self.settings_path}: {e}")
                settings = {}

        env_resource = os.getenv('FLYFF_RESOURCE_DIR')
        if env_resource:
            self._resource_folder = Path(env_resource)
        elif settings.get('resource_folder'):
            self._resource_folder = Path(settings['resource_folder'])

        env_save = os.getenv('FLYFF_SAVE_DIRS')
        if env_save:
            self._save_folders = _split_paths(env_save)
        elif settings.get('save_folders'):
            self._save_folders = [Path(p) for p in settings['save_folders']]

        encoding = os.getenv('FLYFF_SAVE_ENCODING') or settings.get('save_encoding')
        if encoding:
            if encoding.lower() in SUPPORTED_SAVE_ENCODINGS:
                self._save_encoding = encoding.lower()
            else:
                logger.warning(f"Unsupported save encoding '{encoding}', keeping {self._save_encoding}")

        legacy = os.getenv('FLYFF_LEGACY_ENCODING') or settings.get('legacy_encoding')
        if legacy:
            self._legacy_encoding = legacy

        backups = os.getenv('FLYFF_CREATE_BACKUPS')
        if backups is not None:
            self._create_backups = backups.lower() in ('1', 'true', 'yes')
        elif 'create_backups' in settings:
            self._create_backups = bool(settings['create_backups'])

        batch = os.getenv('FLYFF_PARSE_BATCH_SIZE') or settings.get('batch_size')
        if batch:
            try:
                self._batch_size = max(1, int(batch))
            except (TypeError, ValueError):
                logger.warning(f"Invalid batch size '{batch}', keeping {self._batch_size}")

        overrides = os.getenv('FLYFF_MODEL_OVERRIDES') or settings.get('model_overrides')
        if overrides:
            self._model_overrides_path = Path(overrides)

        for kind, name in (settings.get('file_names') or {}).items():
            if kind in self._file_names and name:
                self._file_names[kind] = name

    @property
    def resource_folder(self) -> Optional[Path]:
        """Explicitly configured resource folder, if any"""
        return self._resource_folder

    @property
    def resource_candidates(self) -> List[Path]:
        """Folders searched for resource files, configured folder first"""
        candidates = []
        if self._resource_folder:
            candidates.append(self._resource_folder)
        for path in default_resource_candidates():
            if path not in candidates:
                candidates.append(path)
        return candidates

    @property
    def save_folders(self) -> List[Path]:
        """Explicitly configured save folders; empty when saves follow the resource folders"""
        return list(self._save_folders)

    @property
    def save_candidates(self) -> List[Path]:
        """Folders a save is attempted in, in preference order"""
        if self._save_folders:
            return list(self._save_folders)
        return self.resource_candidates

    @property
    def save_encoding(self) -> str:
        return self._save_encoding

    @property
    def legacy_encoding(self) -> str:
        return self._legacy_encoding

    @property
    def create_backups(self) -> bool:
        return self._create_backups

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def file_names(self) -> Dict[str, str]:
        return dict(self._file_names)

    def file_name(self, kind: str) -> str:
        return self._file_names[kind]

    def load_model_overrides(self) -> Dict[str, Dict[str, str]]:
        """
        Read the known-overrides table for the model registry.

        The file is JSON: {"II_KEY": {"file_name": "...", "mesh_name": "..."}}.
        A missing or broken file yields an empty table.
        """
        path = self._model_overrides_path
        if not path:
            return {}
        if not path.exists():
            logger.warning(f"Model overrides file not found: {path}")
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to read model overrides {path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Model overrides {path} must be a JSON object")
            return {}
        return {
            str(key): {k: str(v) for k, v in value.items() if k in ('file_name', 'mesh_name')}
            for key, value in data.items()
            if isinstance(value, dict)
        }

    def _save_settings(self) -> bool:
        """Save current settings to file"""
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)

        settings = {
            'resource_folder': str(self._resource_folder) if self._resource_folder else None,
            'save_folders': [str(p) for p in self._save_folders],
            'save_encoding': self._save_encoding,
            'legacy_encoding': self._legacy_encoding,
            'create_backups': self._create_backups,
            'batch_size': self._batch_size,
            'model_overrides': str(self._model_overrides_path) if self._model_overrides_path else None,
            'file_names': self._file_names,
        }

        try:
            with open(self.settings_path, 'w', encoding='utf-8') as f:
                json.dump(settings, f, indent=2)
            return True
        except IOError as e:
            logger.error(f"Failed to save settings to {self.settings_path}: {e}")
            return False

    def set_resource_folder(self, path: str) -> bool:
        """Update the resource folder and save it to user settings."""
        path_obj = Path(path)
        if not path_obj.is_dir():
            return False

        self._resource_folder = path_obj
        return self._save_settings()

    def set_save_folders(self, paths: List[str]) -> bool:
        """Replace the ordered list of save folders."""
        self._save_folders = [Path(p) for p in paths if p]
        return self._save_settings()

    def set_save_encoding(self, encoding: str) -> bool:
        """Choose the code page saved files are written in."""
        if encoding.lower() not in SUPPORTED_SAVE_ENCODINGS:
            return False
        self._save_encoding = encoding.lower()
        return self._save_settings()

    def set_create_backups(self, enabled: bool) -> bool:
        self._create_backups = bool(enabled)
        return self._save_settings()

    def get_all_settings_info(self) -> Dict[str, Any]:
        """Describe the effective configuration"""
        return {
            'resource_folder': {
                'path': str(self._resource_folder) if self._resource_folder else None,
                'exists': self._resource_folder.exists() if self._resource_folder else False,
                'from_env': bool(os.getenv('FLYFF_RESOURCE_DIR')),
            },
            'resource_candidates': [str(p) for p in self.resource_candidates],
            'save_candidates': [str(p) for p in self.save_candidates],
            'save_encoding': self._save_encoding,
            'legacy_encoding': self._legacy_encoding,
            'create_backups': self._create_backups,
            'batch_size': self._batch_size,
            'file_names': self.file_names,
        }


_editor_settings: Optional[EditorSettings] = None


def get_editor_settings() -> EditorSettings:
    """Get the process-wide settings instance, creating it on first use."""
    global _editor_settings
    if _editor_settings is None:
        _editor_settings = EditorSettings()
    return _editor_settings


def reset_editor_settings(settings: Optional[EditorSettings] = None):
    """Replace the process-wide settings (used after settings changes and in tests)."""
    global _editor_settings
    _editor_settings = settings
