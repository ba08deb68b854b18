"""
propItem.txt.txt parser and writer

Each line carries one localized string:

    IDS_PROPITEM_TXT_000124	"Rodney Axe"
    IDS_PROPITEM_TXT_000125	"A heavy cutting weapon..."

Even numeric suffixes are display names, the following odd suffix is the
description for that name. Lines may use a tab or a run of two or more
spaces between key and value.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from .diagnostics import Diagnostic, DiagnosticLog

CANONICAL_WIDTH = 6

_KEY_SUFFIX = re.compile(r'^(.*?)(\d+)$')
_SPACE_SPLIT = re.compile(r'^(\s*\S+\s{2,})(\S.*?)(\s*)$')
_TAB_SPLIT = re.compile(r'^([^\t]*\t\s*)(.*?)(\s*)$')
# BOM and C0 control characters other than tab/newline/carriage return
_JUNK_CHARS = re.compile('[' + chr(0xFEFF) + r'\x00-\x08\x0b\x0c\x0e-\x1f]')


def split_key(key: str) -> Optional[Tuple[str, int, int]]:
    """Split 'IDS_X_000124' into ('IDS_X_', 124, 6); None without a numeric suffix"""
    match = _KEY_SUFFIX.match(key or '')
    if not match:
        return None
    return match.group(1), int(match.group(2)), len(match.group(2))


def make_key(prefix: str, number: int, width: int) -> str:
    return f"{prefix}{str(number).zfill(width)}"


def _name_key_for(key: str) -> Optional[str]:
    """Even name key owning an odd description key; None for even or unsuffixed keys"""
    parts = split_key(key)
    if parts is None or parts[1] % 2 == 0:
        return None
    prefix, number, width = parts
    return make_key(prefix, number - 1, width)


def canonical_key(key: str, width: int = CANONICAL_WIDTH) -> str:
    """Key with its numeric part zero-padded to a fixed width"""
    parts = split_key(key)
    if parts is None:
        return key
    prefix, number, _ = parts
    return make_key(prefix, number, width)


def _unquote(value: str) -> Tuple[str, bool]:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1], True
    return value, False


def _split_eol(line: str) -> Tuple[str, str]:
    body = line.rstrip('\r\n')
    return body, line[len(body):]


@dataclass
class StringPairEntry:
    """Display name and description resolved for one name key"""
    key: str
    display_name: str
    description: str = ''
    placeholder: bool = False  # description seen without its name line

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'display_name': self.display_name,
            'description': self.description,
            'placeholder': self.placeholder,
        }


@dataclass
class _LineSlot:
    """Where a key's value sits on its source line"""
    index: int
    head: str   # indentation, key and separator
    tail: str   # trailing whitespace
    quoted: bool


@dataclass
class StringPairTable:
    """Parsed string pairs plus the source lines they came from"""
    entries: Dict[str, StringPairEntry] = field(default_factory=dict)
    lines: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    _slots: Dict[str, _LineSlot] = field(default_factory=dict, repr=False)
    _canonical: Dict[str, str] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: str) -> bool:
        return self.lookup(key) is not None

    def _index(self, key: str):
        self._canonical.setdefault(canonical_key(key), key)

    def lookup(self, key: str) -> Optional[StringPairEntry]:
        """
        Exact key first, then the zero-padded canonical form.

        An odd key that is not a line of its own is the description slot of
        the name one below it, so it resolves to that entry.
        """
        entry = self._lookup_exact(key)
        if entry is not None:
            return entry
        name_key = _name_key_for(key)
        if name_key is not None:
            entry = self._lookup_exact(name_key)
            if entry is not None and not entry.placeholder:
                return entry
        return None

    def _lookup_exact(self, key: str) -> Optional[StringPairEntry]:
        if not key:
            return None
        entry = self.entries.get(key)
        if entry is not None:
            return entry
        actual = self._canonical.get(canonical_key(key))
        if actual is not None:
            return self.entries.get(actual)
        return None

    def resolve(self, name: str) -> Optional[StringPairEntry]:
        """
        lookup() plus substring containment as a last resort.

        The containment match takes the first key (in file order) that
        contains the name or is contained in it. It can pick an unrelated
        key when one id is a substring of another.
        """
        entry = self.lookup(name)
        if entry is not None or not name:
            return entry
        for key, candidate in self.entries.items():
            if key and (name in key or key in name):
                logger.debug(f"String key {name} matched {key} by containment")
                return candidate
        return None

    def set_text(self, key: str, display_name: Optional[str] = None,
                 description: Optional[str] = None) -> StringPairEntry:
        """
        Write a display name and/or description back into the file lines.

        Existing lines keep their key, separator and quote style; only the
        value text changes. Missing slots are appended as KEY<TAB>VALUE.

        Raises:
            ValueError: the key has no numeric suffix or a value spans lines
        """
        for value in (display_name, description):
            if value is not None and any(ch in value for ch in '\t\r\n'):
                raise ValueError("String values cannot contain tabs or line breaks")

        entry = self.lookup(key)
        if entry is None:
            if split_key(key) is None:
                raise ValueError(f"String key '{key}' has no numeric suffix")
            if display_name is None:
                raise ValueError(f"New string key '{key}' needs a display name")
            # An odd key gets its name on the even line below so lookup(key) finds it again
            name_key = _name_key_for(key) or key
            entry = self.entries.get(name_key)
            if entry is None:
                entry = StringPairEntry(key=name_key, display_name='')
                self.entries[name_key] = entry
                self._index(name_key)

        if entry.placeholder and display_name is not None:
            entry = self._promote_placeholder(entry)

        if display_name is not None:
            self._write_slot(entry.key, display_name)
            entry.display_name = display_name

        if description is not None:
            self._write_slot(self._description_key(entry), description)
            entry.description = description

        return entry

    def _description_key(self, entry: StringPairEntry) -> str:
        if entry.placeholder:
            return entry.key
        prefix, number, width = split_key(entry.key)
        return make_key(prefix, number + 1, width)

    def _promote_placeholder(self, placeholder: StringPairEntry) -> StringPairEntry:
        """Turn a description-only entry into a proper name entry"""
        prefix, number, width = split_key(placeholder.key)
        name_key = make_key(prefix, number - 1, width)
        entry = StringPairEntry(key=name_key, display_name=placeholder.key,
                                description=placeholder.description)
        del self.entries[placeholder.key]
        self.entries[name_key] = entry
        self._canonical = {}
        for key in self.entries:
            self._index(key)
        return entry

    def _write_slot(self, slot_key: str, value: str):
        slot = self._slots.get(slot_key)
        if slot is None:
            self._append_line(slot_key, value)
            return
        _, eol = _split_eol(self.lines[slot.index])
        text = f'"{value}"' if slot.quoted else value
        self.lines[slot.index] = slot.head + text + slot.tail + eol

    def _newline(self) -> str:
        for line in self.lines:
            _, eol = _split_eol(line)
            if eol:
                return eol
        return '\n'

    def _append_line(self, slot_key: str, value: str):
        newline = self._newline()
        quoted = any(slot.quoted for slot in self._slots.values())
        text = f'"{value}"' if quoted else value

        eol = newline
        if self.lines and not self.lines[-1].endswith(('\n', '\r')):
            self.lines[-1] += newline
            eol = ''
        self.lines.append(f"{slot_key}\t{text}{eol}")
        self._slots[slot_key] = _LineSlot(len(self.lines) - 1, f"{slot_key}\t", '', quoted)

    def serialize(self) -> str:
        return ''.join(self.lines)


class StringPairParser:
    """Parser for propItem.txt.txt style string tables"""

    def parse(self, content: str, source: str = 'propItem.txt.txt') -> StringPairTable:
        log = DiagnosticLog(source)
        table = StringPairTable(lines=(content or '').splitlines(keepends=True))

        empty_slots = []
        for index, raw in enumerate(table.lines):
            body, _ = _split_eol(raw)
            # Junk is dropped from what is parsed; the source line stays as read
            cleaned = _JUNK_CHARS.sub('', body)
            if not cleaned.strip():
                continue

            split = self._split(cleaned)
            if split is None:
                log.warning("No separator between key and value", line=index + 1)
                continue
            head, value, tail = split
            key = head.strip()

            if not value:
                log.warning(f"Empty value for {key}", line=index + 1)
                if key not in table._slots:
                    table._slots[key] = _LineSlot(index, head, tail, False)
                    empty_slots.append((key, index))
                continue

            parts = split_key(key)
            if parts is None:
                log.warning(f"Key '{key}' has no numeric suffix", line=index + 1)
                continue

            text, quoted = _unquote(value)
            text = text.strip()
            table._slots[key] = _LineSlot(index, head, tail, quoted)
            self._add(table, key, parts, text)

        # Filling an empty line later follows the quote style of the rest of the file
        quoted = any(slot.quoted for slot in table._slots.values())
        for key, index in empty_slots:
            if table._slots[key].index == index:
                table._slots[key].quoted = quoted

        if not table.entries:
            log.warning("No string entries found")
        else:
            logger.info(f"Parsed {len(table.entries)} string entries from {source}")

        table.diagnostics = log.entries
        return table

    @staticmethod
    def _split(line: str) -> Optional[Tuple[str, str, str]]:
        match = _TAB_SPLIT.match(line) if '\t' in line else _SPACE_SPLIT.match(line)
        if match is None:
            return None
        return match.group(1), match.group(2), match.group(3)

    @staticmethod
    def _add(table: StringPairTable, key: str, parts: Tuple[str, int, int], text: str):
        prefix, number, width = parts
        entries = table.entries

        if number % 2 == 0:
            existing = entries.get(key)
            if existing is not None:
                existing.display_name = text
                return
            entry = StringPairEntry(key=key, display_name=text)
            placeholder_key = make_key(prefix, number + 1, width)
            placeholder = entries.get(placeholder_key)
            if placeholder is not None and placeholder.placeholder:
                entry.description = placeholder.description
                del entries[placeholder_key]
                if table._canonical.get(canonical_key(placeholder_key)) == placeholder_key:
                    del table._canonical[canonical_key(placeholder_key)]
            entries[key] = entry
            table._index(key)
            return

        name_key = make_key(prefix, number - 1, width)
        if name_key in entries:
            entries[name_key].description = text
        else:
            entries[key] = StringPairEntry(key=key, display_name=key, description=text, placeholder=True)
            table._index(key)
