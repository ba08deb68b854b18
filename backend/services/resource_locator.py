"""
Resource Locator - finds the four resource files on disk

Resolvers are tried in priority order and the first one that can read a
file wins. Every failed attempt is kept as a diagnostic so the client can
show where the editor looked.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from loguru import logger

from parsers.diagnostics import Diagnostic, DiagnosticLog


class ResourceResolver:
    """Something that can read a resource file by name"""

    def describe(self) -> str:
        raise NotImplementedError

    def read(self, file_name: str) -> bytes:
        raise NotImplementedError


class DirectoryResolver(ResourceResolver):
    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def describe(self) -> str:
        return str(self.directory)

    def read(self, file_name: str) -> bytes:
        path = self.directory / file_name
        if not path.is_file():
            raise FileNotFoundError(f"{path} does not exist")
        return path.read_bytes()

    def path_for(self, file_name: str) -> Path:
        return self.directory / file_name


@dataclass
class LocatedResources:
    """Raw bytes per resource kind (None when not found) and where they came from"""
    files: Dict[str, Optional[bytes]] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def found(self) -> List[str]:
        return [kind for kind, data in self.files.items() if data is not None]


class ResourceLocator:
    def __init__(self, resolvers: Sequence[ResourceResolver]):
        self.resolvers = list(resolvers)

    @classmethod
    def for_directories(cls, directories: Sequence[Path]) -> 'ResourceLocator':
        return cls([DirectoryResolver(d) for d in directories])

    @classmethod
    def from_settings(cls, settings, directory: Optional[str] = None) -> 'ResourceLocator':
        """An explicit directory replaces the configured candidates"""
        if directory:
            return cls.for_directories([Path(directory)])
        return cls.for_directories(settings.resource_candidates)

    def read(self, file_name: str, log: DiagnosticLog) -> Optional[tuple]:
        """Return (data, origin) from the first resolver that succeeds, or None"""
        failures = []
        for resolver in self.resolvers:
            try:
                data = resolver.read(file_name)
            except OSError as e:
                failures.append(f"{resolver.describe()}: {e}")
                continue
            if failures:
                log.info(f"Found after {len(failures)} failed location(s)")
            return data, resolver.describe()

        for failure in failures:
            log.info(failure)
        log.warning(f"{file_name} not found in any of {len(self.resolvers)} location(s)")
        return None

    def load(self, file_names: Dict[str, str]) -> LocatedResources:
        """Read every resource kind; missing files map to None"""
        located = LocatedResources()
        for kind, file_name in file_names.items():
            log = DiagnosticLog(file_name)
            found = self.read(file_name, log)
            if found is None:
                located.files[kind] = None
            else:
                located.files[kind], located.sources[kind] = found
            located.diagnostics.extend(log.entries)

        logger.info(f"Located {len(located.found)} of {len(file_names)} resource files")
        return located
