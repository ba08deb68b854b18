"""
Spec_Item.txt parser and serializer

The item table is a tab-delimited text file. The first line is the header,
usually prefixed with a '//' comment marker:

    //dwID	szName	dwItemKind1	...	dwDestParam1	nAdjParamVal1	...

Every other line is one item. Rows keep their original text so that a save
re-emits untouched rows byte for byte; only edited rows are rebuilt from
their cells.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

from loguru import logger

from .diagnostics import Diagnostic, DiagnosticLog
from .prop_item import StringPairTable

COMMENT_MARKER = '//'
TAB = '\t'
LEGACY_DELIMITER = '.'

DEFAULT_ID_COLUMN = 'dwID'
DEFAULT_NAME_COLUMN = 'szName'
DEFAULT_BATCH_SIZE = 1000

MAX_EFFECT_SLOTS = 6
EFFECT_PLACEHOLDER = '='
SET_ID_COLUMN = 'dwSetId'
SET_PIECES_COLUMN = 'dwSetItem'
DEFAULT_SET_PIECES = 2

_CELL_PARTS = re.compile(r'^(\s*)("*)(.*?)("*)(\s*)$', re.DOTALL)
_INTEGER = re.compile(r'^[-+]?\d+$')


def effect_column_aliases(base: str, slot: int) -> List[str]:
    """Historical column names for effect slot 1..6"""
    if slot == 1:
        return [base, f"{base}1", f"{base}[0]"]
    return [f"{base}{slot}", f"{base}[{slot - 1}]"]


def clean_value(value: str) -> str:
    """Trim a cell and strip any wrapping double quotes"""
    return value.strip().strip('"')


def _split_eol(line: str):
    body = line.rstrip('\r\n')
    return body, line[len(body):]


@dataclass
class ItemEffect:
    type: str
    value: Union[int, str]

    def to_dict(self) -> dict:
        return {'type': self.type, 'value': self.value}


@dataclass
class SetEffectRef:
    group_id: str
    required_pieces: int = DEFAULT_SET_PIECES

    def to_dict(self) -> dict:
        return {'group_id': self.group_id, 'required_pieces': self.required_pieces}


@dataclass
class ItemRecord:
    """
    One row of the item table.

    raw_fields is what gets saved. display_name and description are views
    resolved from the string table, and define_id, model_file_name and
    mesh_name are filled in from the other resource files; none of these
    are ever written back into the item table.
    """
    id: str
    raw_fields: Dict[str, str] = field(default_factory=dict)
    display_name: str = ''
    description: str = ''
    source_string_key: str = ''
    effects: List[ItemEffect] = field(default_factory=list)
    set_effect_refs: List[SetEffectRef] = field(default_factory=list)
    define_id: str = ''
    model_file_name: str = ''
    mesh_name: str = ''

    # Source row state
    raw_line: str = field(default='', repr=False)
    cells: List[str] = field(default_factory=list, repr=False)
    edited: bool = field(default=False, repr=False)

    def row_text(self, delimiter: str = TAB, header: Optional[List[str]] = None, newline: str = '\n') -> str:
        """Text of this row as it should be saved, line ending included"""
        if self.raw_line and not self.edited:
            return self.raw_line
        if self.cells:
            _, eol = _split_eol(self.raw_line) if self.raw_line else ('', newline)
            return delimiter.join(self.cells) + eol
        columns = header or list(self.raw_fields)
        return delimiter.join(self.raw_fields.get(col, '') for col in columns) + newline

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'raw_fields': dict(self.raw_fields),
            'display_name': self.display_name,
            'description': self.description,
            'source_string_key': self.source_string_key,
            'effects': [e.to_dict() for e in self.effects],
            'set_effect_refs': [s.to_dict() for s in self.set_effect_refs],
            'define_id': self.define_id,
            'model_file_name': self.model_file_name,
            'mesh_name': self.mesh_name,
        }


def extract_effects(raw_fields: Dict[str, str]) -> List[ItemEffect]:
    effects = []
    for slot in range(1, MAX_EFFECT_SLOTS + 1):
        param = _first_present(raw_fields, effect_column_aliases('dwDestParam', slot))
        value = _first_present(raw_fields, effect_column_aliases('nAdjParamVal', slot))
        if not param or not value:
            continue
        effects.append(ItemEffect(param, int(value) if _INTEGER.match(value) else value))
    return effects


def extract_set_refs(raw_fields: Dict[str, str]) -> List[SetEffectRef]:
    set_id = raw_fields.get(SET_ID_COLUMN, '')
    pieces = raw_fields.get(SET_PIECES_COLUMN, '')
    set_id = '' if set_id == EFFECT_PLACEHOLDER else set_id
    pieces = '' if pieces == EFFECT_PLACEHOLDER else pieces
    if not set_id and not pieces:
        return []
    try:
        required = int(pieces) or DEFAULT_SET_PIECES
    except ValueError:
        required = DEFAULT_SET_PIECES
    return [SetEffectRef(set_id or 'unknown', required)]


def _first_present(raw_fields: Dict[str, str], aliases: List[str]) -> str:
    for alias in aliases:
        value = raw_fields.get(alias)
        if value is not None and value != EFFECT_PLACEHOLDER:
            return value
    return ''


def serialize_item_table(header: List[str], items: List[ItemRecord], delimiter: str = TAB,
                         header_line: Optional[str] = None, newline: str = '\n') -> str:
    """
    Build item table text from a header and records alone.

    Records that still carry their source line are re-emitted verbatim when
    untouched. Without a header_line the header is written as the comment
    marker followed by the column names.
    """
    if header_line is None:
        header_line = COMMENT_MARKER + delimiter.join(header) + newline
    chunks = [header_line]
    for item in items:
        if not chunks[-1].endswith(('\n', '\r')):
            chunks[-1] += newline
        chunks.append(item.row_text(delimiter, header, newline))
    return ''.join(chunks)


class ItemTable:
    """Parsed item table with enough source state for a faithful save"""

    def __init__(self, header: List[str], items: List[ItemRecord], lines: List[str], delimiter: str = TAB,
                 row_lines: Optional[Dict[int, ItemRecord]] = None, id_column: str = DEFAULT_ID_COLUMN,
                 name_column: str = DEFAULT_NAME_COLUMN, diagnostics: Optional[List[Diagnostic]] = None):
        self.header = header
        self.items = items
        self.delimiter = delimiter
        self.id_column = id_column
        self.name_column = name_column
        self.diagnostics = diagnostics or []
        self._lines = lines
        self._row_lines = row_lines or {}
        self._original_header = list(header)
        self._by_id: Dict[str, ItemRecord] = {}
        for item in items:
            self._by_id.setdefault(item.id, item)
        # Duplicate names: the last column with a given name is the one used
        self._column_index = {name: i for i, name in enumerate(header) if name}

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ItemRecord]:
        return iter(self.items)

    def get(self, item_id: str) -> Optional[ItemRecord]:
        return self._by_id.get(item_id)

    @property
    def columns(self) -> List[str]:
        return [name for name in self.header if name]

    def set_field(self, item_id: str, column: str, value: str) -> str:
        """
        Change one cell of one row and return the previous value.

        Only the edited cell is rewritten on save; its original quote
        wrapping and padding are kept.

        Raises:
            KeyError: unknown item or column
            ValueError: the value would break the row structure
        """
        record = self._by_id.get(item_id)
        if record is None:
            raise KeyError(f"Item '{item_id}' not found")
        index = self._column_index.get(column)
        if index is None:
            raise KeyError(f"Column '{column}' not found")
        if column == self.id_column:
            raise ValueError(f"The key column '{column}' cannot be edited")
        if value is None or self.delimiter in value or '\n' in value or '\r' in value:
            raise ValueError(f"Value for {column} cannot contain the delimiter or a line break")

        old_value = record.raw_fields.get(column, '')
        record.raw_fields[column] = value

        while len(record.cells) <= index:
            record.cells.append('')
        record.cells[index] = _rewrap_cell(record.cells[index], value)
        record.edited = True

        record.effects = extract_effects(record.raw_fields)
        record.set_effect_refs = extract_set_refs(record.raw_fields)
        return old_value

    def _header_text(self) -> str:
        original = self._lines[0] if self._lines else ''
        if self.header == self._original_header and original:
            return original
        body, eol = _split_eol(original)
        prefix = COMMENT_MARKER if body.lstrip().startswith(COMMENT_MARKER) or not original else ''
        return prefix + self.delimiter.join(self.header) + (eol or '\n')

    def serialize(self) -> str:
        """
        Full file text.

        The header, blank and malformed lines and every unedited row come
        back exactly as read, line endings included.
        """
        if not self._lines:
            return serialize_item_table(self.header, self.items, self.delimiter) if self.header else ''

        chunks = [self._header_text()]
        for index in range(1, len(self._lines)):
            record = self._row_lines.get(index)
            chunks.append(record.row_text(self.delimiter) if record is not None else self._lines[index])
        return ''.join(chunks)


def _rewrap_cell(original: str, value: str) -> str:
    match = _CELL_PARTS.match(original)
    lead, open_quotes, _, close_quotes, trail = match.groups()
    return f"{lead}{open_quotes}{value}{close_quotes}{trail}"


class ItemTableParser:
    """Parser for Spec_Item.txt style item tables"""

    def __init__(self, id_column: str = DEFAULT_ID_COLUMN, name_column: str = DEFAULT_NAME_COLUMN,
                 batch_size: int = DEFAULT_BATCH_SIZE):
        self.id_column = id_column
        self.name_column = name_column
        self.batch_size = max(1, batch_size)

    @staticmethod
    def detect_delimiter(header_line: str) -> str:
        """Tab, unless a commented header has no tab but does have dots"""
        if TAB in header_line:
            return TAB
        if header_line.lstrip().startswith(COMMENT_MARKER) and LEGACY_DELIMITER in header_line:
            return LEGACY_DELIMITER
        return TAB

    def parse(self, content: str, string_pairs: Optional[StringPairTable] = None,
              source: str = 'Spec_Item.txt') -> ItemTable:
        log = DiagnosticLog(source)
        lines = (content or '').splitlines(keepends=True)

        if not lines or not lines[0].strip():
            log.warning("Item table is empty or has no header")
            return ItemTable([], [], lines, id_column=self.id_column, name_column=self.name_column,
                             diagnostics=log.entries)

        header_body, _ = _split_eol(lines[0])
        delimiter = self.detect_delimiter(header_body)
        header = [col.replace(COMMENT_MARKER, '').strip() for col in header_body.split(delimiter)]

        if self.id_column not in header:
            log.warning(f"Header has no '{self.id_column}' column, no items can be keyed")

        items: List[ItemRecord] = []
        batch: List[ItemRecord] = []
        row_lines: Dict[int, ItemRecord] = {}
        min_cells = len(header) / 2
        seen_ids = set()

        for index in range(1, len(lines)):
            body, _ = _split_eol(lines[index])
            if not body.strip():
                continue

            cells = body.split(delimiter)
            if len(cells) < min_cells:
                log.warning(f"Row has {len(cells)} of {len(header)} columns, skipped", line=index + 1)
                continue

            record = self._build_record(header, cells, lines[index], string_pairs)
            if record is None:
                continue
            if record.id in seen_ids:
                log.warning(f"Duplicate item id {record.id}, edits go to the first row", line=index + 1)
            seen_ids.add(record.id)

            row_lines[index] = record
            batch.append(record)
            if len(batch) >= self.batch_size:
                items.extend(batch)
                batch = []

        items.extend(batch)

        if items:
            logger.info(f"Parsed {len(items)} items from {source}")
        else:
            log.warning("No items found")

        return ItemTable(header, items, lines, delimiter, row_lines, self.id_column, self.name_column,
                         log.entries)

    def _build_record(self, header: List[str], cells: List[str], raw_line: str,
                      string_pairs: Optional[StringPairTable]) -> Optional[ItemRecord]:
        raw_fields: Dict[str, str] = {}
        for position, column in enumerate(header):
            if not column:
                continue
            raw_fields[column] = clean_value(cells[position]) if position < len(cells) else ''

        item_id = raw_fields.get(self.id_column, '').strip()
        if not item_id:
            return None

        record = ItemRecord(id=item_id, raw_fields=raw_fields, raw_line=raw_line, cells=list(cells))
        resolve_strings(record, string_pairs, self.name_column)
        record.effects = extract_effects(raw_fields)
        record.set_effect_refs = extract_set_refs(raw_fields)
        return record


def resolve_strings(record: ItemRecord, string_pairs: Optional[StringPairTable],
                    name_column: str = DEFAULT_NAME_COLUMN):
    """Attach display name and description from the string table"""
    name_key = record.raw_fields.get(name_column, '')
    entry = string_pairs.resolve(name_key) if string_pairs is not None and name_key else None
    if entry is None:
        record.display_name = name_key or record.id
        record.description = ''
        record.source_string_key = name_key
        return
    record.display_name = entry.display_name or name_key
    record.description = entry.description
    record.source_string_key = entry.key
