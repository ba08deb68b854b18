"""
mdlDyna.inc parser and in-place updater

The registry starts with a free-form header block closed by the first '{'.
After that every record is one line mixing quoted literals and bare tokens:

    "Item_WeaAxeRodney"   II_WEA_AXE_RODNEY    MODELTYPE_MESH  "..."  0 ...
    "Item_ArmCloth"       II_ARM_M_CLO_BODY    MODELTYPE_MESH  "Part_mCloth"

The quoted token in front of the key is the model file name. Armor keys also
carry a mesh name: the quoted token after the mesh-type marker. Older files
use SetItemName( II_KEY, "file" ) instead.

Updates rewrite a single quoted substring on a single line so that every
other byte of the file survives a save unchanged.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from .diagnostics import Diagnostic, DiagnosticLog

DEFAULT_KEY_PATTERN = r'II_[A-Z0-9_]+'
DEFAULT_ARMOR_PREFIX = 'II_ARM_'
DEFAULT_MESH_MARKER = 'MODELTYPE_MESH'

FIELD_FILE_NAME = 'file_name'
FIELD_MESH_NAME = 'mesh_name'
UPDATABLE_FIELDS = (FIELD_FILE_NAME, FIELD_MESH_NAME)

_QUOTED = re.compile(r'"([^"]*)"')
_LEGACY_CALL = re.compile(r'SetItemName\s*\(\s*(?P<key>II_[A-Za-z0-9_]+)\s*,\s*"(?P<file>[^"]*)"\s*\)')

Span = Tuple[int, int]


@dataclass
class ModelRegistryEntry:
    """Model file (and mesh, for armor) registered for one item key"""
    item_key: str
    file_name: str = ''
    mesh_name: Optional[str] = None
    line_index: Optional[int] = None  # 0-based; None for override entries
    overridden: bool = False

    def to_dict(self) -> dict:
        return {
            'item_key': self.item_key,
            'file_name': self.file_name,
            'mesh_name': self.mesh_name,
            'overridden': self.overridden,
        }


@dataclass
class _LineMatch:
    key: str
    file_span: Optional[Span]
    mesh_span: Optional[Span]


class ModelRegistry:
    """
    Parsed model registry with byte-preserving updates.

    The original lines (with their own line endings) are kept; serialize()
    joins them back together.
    """

    def __init__(self, lines: List[str], data_start: int, entries: Dict[str, ModelRegistryEntry],
                 parser: 'ModelRegistryParser', diagnostics: Optional[List[Diagnostic]] = None):
        self._lines = lines
        self._data_start = data_start
        self._parser = parser
        self.entries = entries
        self.diagnostics = diagnostics or []

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, item_key: str) -> bool:
        return item_key in self.entries

    def get(self, item_key: str) -> Optional[ModelRegistryEntry]:
        if not item_key:
            return None
        return self.entries.get(item_key.strip().strip('"'))

    def file_name(self, item_key: str) -> str:
        entry = self.get(item_key)
        return entry.file_name if entry else ''

    def mesh_name(self, item_key: str) -> str:
        entry = self.get(item_key)
        return (entry.mesh_name or '') if entry else ''

    def is_armor(self, item_key: str) -> bool:
        return self._parser.is_armor(item_key)

    def apply_overrides(self, overrides: Dict[str, Dict[str, str]]) -> int:
        """
        Fill keys the file did not provide from a known-overrides table.

        Keys that were parsed from the file are left alone. Returns the
        number of entries added.
        """
        added = 0
        for key, values in (overrides or {}).items():
            if key in self.entries:
                continue
            mesh = values.get(FIELD_MESH_NAME) if self.is_armor(key) else None
            self.entries[key] = ModelRegistryEntry(
                item_key=key,
                file_name=values.get(FIELD_FILE_NAME, ''),
                mesh_name=mesh,
                overridden=True,
            )
            added += 1
        if added:
            logger.info(f"Applied {added} known model overrides")
        return added

    def update(self, item_key: str, field_name: str, new_value: str) -> bool:
        """
        Replace the quoted file or mesh name of one key in place.

        Only the line the entry was parsed from (or, for unparsed keys, the
        first line carrying the key) is touched, and on that line
        only the characters between the relevant quotes. Returns False and
        leaves everything unchanged when the key, its line or the quoted
        token cannot be found.
        """
        if field_name not in UPDATABLE_FIELDS:
            logger.warning(f"Unknown model registry field '{field_name}'")
            return False
        if new_value is None or '"' in new_value or '\n' in new_value or '\r' in new_value:
            logger.warning(f"Rejected model registry value for {item_key}: {new_value!r}")
            return False
        if field_name == FIELD_MESH_NAME and not self.is_armor(item_key):
            logger.warning(f"{item_key} is not an armor key, it has no mesh name")
            return False

        entry = self.entries.get(item_key)
        if entry is not None and entry.overridden:
            logger.warning(f"{item_key} comes from the overrides table and has no source line")
            return False

        if entry is not None and entry.line_index is not None:
            index = entry.line_index
        else:
            index = self._find_line(item_key)
        if index is None:
            logger.warning(f"Model registry key not found: {item_key}")
            return False

        line = self._lines[index]
        match = self._parser.match_line(line, item_key)
        span = None
        if match is not None:
            span = match.file_span if field_name == FIELD_FILE_NAME else match.mesh_span
        if span is None:
            logger.warning(f"No quoted {field_name} next to {item_key} on line {index + 1}")
            return False

        start, end = span
        self._lines[index] = line[:start] + new_value + line[end:]

        if entry is None:
            entry = ModelRegistryEntry(item_key=item_key, line_index=index)
            self.entries[item_key] = entry
        setattr(entry, field_name, new_value)
        logger.debug(f"Updated {field_name} of {item_key} on line {index + 1}")
        return True

    def _find_line(self, item_key: str) -> Optional[int]:
        token = re.compile(r'(?<![A-Za-z0-9_])' + re.escape(item_key) + r'(?![A-Za-z0-9_])')
        for index in range(self._data_start, len(self._lines)):
            line = self._lines[index]
            if line.strip().startswith('//'):
                continue
            if token.search(line):
                return index
        return None

    def serialize(self) -> str:
        return ''.join(self._lines)


class ModelRegistryParser:
    """Parser for mdlDyna.inc style model registries"""

    def __init__(self, key_pattern: str = DEFAULT_KEY_PATTERN, armor_prefix: str = DEFAULT_ARMOR_PREFIX,
                 mesh_marker: str = DEFAULT_MESH_MARKER):
        self.armor_prefix = armor_prefix
        self.mesh_marker = mesh_marker
        self._key_re = re.compile(r'(?<![A-Za-z0-9_])(' + key_pattern + r')(?![A-Za-z0-9_])')
        self._marker_re = re.compile(r'(?<![A-Za-z0-9_])' + re.escape(mesh_marker) + r'(?![A-Za-z0-9_])')

    def is_armor(self, item_key: str) -> bool:
        return bool(item_key) and item_key.startswith(self.armor_prefix)

    def parse(self, content: str, source: str = 'mdlDyna.inc',
              overrides: Optional[Dict[str, Dict[str, str]]] = None) -> ModelRegistry:
        log = DiagnosticLog(source)
        lines = (content or '').splitlines(keepends=True)

        data_start = self._find_data_start(lines)
        if data_start is None:
            if lines:
                log.info("No opening brace found, scanning the whole file")
            data_start = 0

        entries: Dict[str, ModelRegistryEntry] = {}
        for index in range(data_start, len(lines)):
            stripped = lines[index].strip()
            if not stripped or stripped.startswith('//'):
                continue

            match = self.match_line(lines[index])
            if match is None or match.file_span is None:
                continue
            if match.key in entries:
                continue  # first line wins, the same one update() edits

            line = lines[index]
            entries[match.key] = ModelRegistryEntry(
                item_key=match.key,
                file_name=line[match.file_span[0]:match.file_span[1]],
                mesh_name=line[match.mesh_span[0]:match.mesh_span[1]] if match.mesh_span else None,
                line_index=index,
            )

        if not entries:
            log.warning("No model entries found")
        else:
            logger.info(f"Parsed {len(entries)} model mappings from {source}")

        registry = ModelRegistry(lines, data_start, entries, self, log.entries)
        if overrides:
            registry.apply_overrides(overrides)
        return registry

    @staticmethod
    def _find_data_start(lines: List[str]) -> Optional[int]:
        for index, line in enumerate(lines):
            if '{' in line and not line.strip().startswith('//'):
                return index + 1
        return None

    def match_line(self, line: str, item_key: Optional[str] = None) -> Optional[_LineMatch]:
        """
        Locate the key and its quoted values on one line.

        Spans point at the text between the quotes so a replacement keeps
        the quote characters themselves.
        """
        legacy = _LEGACY_CALL.search(line)
        if legacy and (item_key is None or legacy.group('key') == item_key):
            return _LineMatch(legacy.group('key'), legacy.span('file'), None)

        if item_key is None:
            key_match = self._key_re.search(line)
        else:
            key_match = re.search(
                r'(?<![A-Za-z0-9_])' + re.escape(item_key) + r'(?![A-Za-z0-9_])', line
            )
        if key_match is None:
            return None
        key = key_match.group(0)

        file_span = None
        for quoted in _QUOTED.finditer(line, 0, key_match.start()):
            file_span = quoted.span(1)  # the closest quote before the key

        mesh_span = None
        if self.is_armor(key):
            marker = self._marker_re.search(line, key_match.end())
            if marker:
                quoted = _QUOTED.search(line, marker.end())
                if quoted:
                    mesh_span = quoted.span(1)

        return _LineMatch(key, file_span, mesh_span)
