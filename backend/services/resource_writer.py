"""
Resource Writer - saves edited resource files back to disk

Tries each configured output folder in order and stops at the first one
that accepts the file. Every write goes through a temp file in the target
folder and an atomic replace, so a failed save never leaves a half-written
resource behind. When no folder is writable the encoded payload is kept on
the result so the client can offer it as a download instead.
"""

import os
import re
import shutil
import stat
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from fastapi_core.exceptions import InvalidFileNameError
from parsers.diagnostics import Diagnostic
from parsers.encoding import UTF8, UTF16_BE, UTF16_LE, clean_for_legacy_save, encode_text

UNICODE_ENCODINGS = (UTF8, UTF16_LE, UTF16_BE)
NEW_FILE_MODE = 0o644

_SAFE_NAME = re.compile(r'^[A-Za-z0-9_. ()\-]+$')


@dataclass
class SaveAttempt:
    path: str
    error: str


@dataclass
class SaveResult:
    """Outcome of saving one file"""
    file_name: str
    success: bool
    encoding: str
    path: Optional[str] = None
    backup_path: Optional[str] = None
    attempts: List[SaveAttempt] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    download_available: bool = False
    payload: Optional[bytes] = field(default=None, repr=False)
    size: int = 0

    @property
    def message(self) -> str:
        if self.success:
            return f"Saved {self.file_name} to {self.path}"
        return (f"Could not write {self.file_name} to any of {len(self.attempts)} location(s); "
                f"download it instead")

    def to_dict(self) -> dict:
        return {
            'file_name': self.file_name,
            'success': self.success,
            'path': self.path,
            'encoding': self.encoding,
            'backup_path': self.backup_path,
            'size': self.size,
            'message': self.message,
            'download_available': self.download_available,
            'attempts': [{'path': a.path, 'error': a.error} for a in self.attempts],
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


def safe_file_name(file_name: str) -> str:
    """
    Reject names that could escape the output folder.

    Raises:
        InvalidFileNameError: empty name, path separators, '..' or odd characters
    """
    name = (file_name or '').strip()
    if not name or name in ('.', '..') or '..' in name:
        raise InvalidFileNameError(f"Invalid file name: {file_name!r}", file_name)
    if os.path.basename(name) != name or '/' in name or '\\' in name:
        raise InvalidFileNameError(f"File name must not contain a path: {file_name!r}", file_name)
    if not _SAFE_NAME.match(name):
        raise InvalidFileNameError(f"File name contains unsupported characters: {file_name!r}", file_name)
    return name


class ResourceWriter:
    """Writes resource files to the first writable candidate folder"""

    # One lock per target path, shared by every writer in the process
    _path_locks: Dict[str, threading.Lock] = {}
    _path_locks_guard = threading.Lock()

    def __init__(self, candidates: Sequence[Path], create_backups: bool = False):
        self.candidates = [Path(c) for c in candidates]
        self.create_backups = create_backups

    @classmethod
    def from_settings(cls, settings) -> 'ResourceWriter':
        return cls(settings.save_candidates, settings.create_backups)

    @classmethod
    def _lock_for(cls, target: Path) -> threading.Lock:
        key = os.path.normcase(os.path.abspath(target))
        with cls._path_locks_guard:
            lock = cls._path_locks.get(key)
            if lock is None:
                lock = cls._path_locks[key] = threading.Lock()
            return lock

    def save(self, file_name: str, text: str, encoding: str = 'cp1252', bom: bytes = b'') -> SaveResult:
        """Encode text and write it; see save_bytes for the fallback rules."""
        name = safe_file_name(file_name)
        if encoding.lower() not in UNICODE_ENCODINGS:
            text = clean_for_legacy_save(text)
            bom = b''
        payload, diagnostics = encode_text(text, encoding, bom, source=name)
        result = self.save_bytes(name, payload, encoding)
        result.diagnostics = diagnostics + result.diagnostics
        return result

    def save_bytes(self, file_name: str, payload: bytes, encoding: str = 'binary') -> SaveResult:
        """
        Write raw bytes to the first candidate folder that works.

        Missing folders are created and read-only targets are made writable
        first. Failures move on to the next candidate; if all of them fail
        the result keeps the payload and reports download_available.
        """
        name = safe_file_name(file_name)
        result = SaveResult(file_name=name, success=False, encoding=encoding, size=len(payload))

        if not self.candidates:
            logger.warning(f"No save locations configured for {name}")

        for directory in self.candidates:
            target = directory / name
            try:
                with self._lock_for(target):
                    result.backup_path = self._write_atomic(target, payload)
            except OSError as e:
                logger.warning(f"Cannot write {target}: {e}")
                result.attempts.append(SaveAttempt(str(target), str(e)))
                continue

            result.success = True
            result.path = str(target)
            result.attempts.append(SaveAttempt(str(target), ''))
            logger.info(f"Saved {name} ({len(payload)} bytes, {encoding}) to {target}")
            return result

        logger.error(f"Failed to save {name}: no writable location, offering download")
        result.download_available = True
        result.payload = payload
        return result

    def save_many(self, files: List[Tuple[str, str, str, bytes]]) -> Tuple[bool, List[SaveResult]]:
        """Save (file_name, text, encoding, bom) tuples; True only if all succeeded."""
        results = [self.save(name, text, encoding, bom) for name, text, encoding, bom in files]
        return all(r.success for r in results), results

    def _write_atomic(self, target: Path, payload: bytes) -> Optional[str]:
        target.parent.mkdir(parents=True, exist_ok=True)

        backup_path = None
        mode = NEW_FILE_MODE
        if target.exists():
            mode = self._clear_read_only(target)
            if self.create_backups:
                backup_path = self._create_backup(target)

        temp_fd, temp_path = tempfile.mkstemp(prefix=f".{target.name}.", suffix='.tmp', dir=target.parent)
        try:
            with os.fdopen(temp_fd, 'wb') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_path, mode)
            os.replace(temp_path, target)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        return backup_path

    @staticmethod
    def _clear_read_only(target: Path) -> int:
        """Make an existing file writable and return the mode to keep"""
        mode = stat.S_IMODE(target.stat().st_mode)
        if not mode & stat.S_IWUSR:
            logger.info(f"Clearing read-only attribute on {target}")
            mode |= stat.S_IWUSR
            os.chmod(target, mode)
        return mode

    @staticmethod
    def _create_backup(target: Path) -> str:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup = target.with_name(f"{target.name}.backup_{timestamp}")
        shutil.copy2(target, backup)
        logger.info(f"Backup created: {backup}")
        return str(backup)
