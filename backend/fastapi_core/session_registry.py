"""
FastAPI Resource Session Registry

Holds the single process-wide ResourceSession the API works on, plus the
payloads of saves that could not be written anywhere and are waiting to be
downloaded by the client.
"""

import threading
from typing import Dict, Optional

from loguru import logger

from services.resource_session import ResourceSession

_session: Optional[ResourceSession] = None
_registry_lock = threading.Lock()

_pending_downloads: Dict[str, bytes] = {}


def get_resource_session() -> ResourceSession:
    """Get the editing session, creating it on first use."""
    global _session
    with _registry_lock:
        if _session is None:
            logger.info("Creating resource session")
            _session = ResourceSession()
        return _session


def reset_resource_session(session: Optional[ResourceSession] = None):
    """Drop the current session (and pending downloads); used on settings changes and in tests."""
    global _session
    with _registry_lock:
        _session = session
        _pending_downloads.clear()


def store_download(file_name: str, payload: bytes):
    with _registry_lock:
        _pending_downloads[file_name] = payload
    logger.info(f"Keeping {file_name} ({len(payload)} bytes) for download")


def pop_download(file_name: str) -> Optional[bytes]:
    with _registry_lock:
        return _pending_downloads.pop(file_name, None)


def pending_downloads() -> Dict[str, int]:
    """File name -> payload size of every download waiting to be fetched"""
    with _registry_lock:
        return {name: len(payload) for name, payload in _pending_downloads.items()}
