"""
Resource Session - the cross-reference coordinator

Owns one loaded set of the four item resource files, merges the define,
model and string lookups into the item records, routes edits to the file
that owns the edited field and tracks which files need saving.

A load always builds a private ResourceContext and only publishes it if no
newer load started in the meantime, so a slow load can never overwrite the
result of a later one.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from config.editor_settings import EditorSettings, get_editor_settings
from fastapi_core.exceptions import EditError, ItemNotFoundError, ResourceNotLoadedError
from parsers.define_item import DefineTable, DefineTableParser
from parsers.diagnostics import Diagnostic, DiagnosticLog
from parsers.encoding import UTF8, decode_bytes
from parsers.mdl_dyna import FIELD_FILE_NAME, FIELD_MESH_NAME, ModelRegistry, ModelRegistryParser
from parsers.prop_item import StringPairParser, StringPairTable
from parsers.spec_item import ItemRecord, ItemTable, ItemTableParser, resolve_strings
from services.resource_writer import ResourceWriter, SaveResult

SPEC_ITEM = 'spec_item'
PROP_ITEM = 'prop_item'
DEFINE_ITEM = 'define_item'
MDL_DYNA = 'mdl_dyna'
RESOURCE_KINDS = (SPEC_ITEM, PROP_ITEM, DEFINE_ITEM, MDL_DYNA)

STRING_FIELDS = ('display_name', 'description')
MODEL_FIELDS = {
    'model_file_name': FIELD_FILE_NAME,
    'mesh_name': FIELD_MESH_NAME,
}

# The game client reads these two in a legacy code page only
LEGACY_SAVE_KINDS = (SPEC_ITEM, PROP_ITEM)
SOURCE_ENCODING = 'source'
# Origin recorded for files that arrived through an upload rather than a folder
UPLOAD_ORIGIN = 'upload'


@dataclass
class LoadedFile:
    """What is known about one resource file of the current context"""
    kind: str
    file_name: str
    present: bool = False
    encoding: str = UTF8
    bom: bytes = b''
    origin: Optional[str] = None
    dirty: bool = False

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'file_name': self.file_name,
            'present': self.present,
            'encoding': self.encoding,
            'had_bom': bool(self.bom),
            'origin': self.origin,
            'dirty': self.dirty,
        }


@dataclass
class ResourceContext:
    """The four parsed tables of one load"""
    generation: int
    items: ItemTable
    strings: StringPairTable
    defines: DefineTable
    models: ModelRegistry
    files: Dict[str, LoadedFile]
    diagnostics: List[Diagnostic] = field(default_factory=list)
    loaded_at: datetime = field(default_factory=datetime.now)

    def serialize(self, kind: str) -> str:
        if kind == SPEC_ITEM:
            return self.items.serialize()
        if kind == PROP_ITEM:
            return self.strings.serialize()
        if kind == MDL_DYNA:
            return self.models.serialize()
        raise ValueError(f"{kind} is read-only")

    @property
    def dirty_kinds(self) -> List[str]:
        return [kind for kind, info in self.files.items() if info.dirty]


@dataclass
class EditRecord:
    """Before/after values of one successful edit"""
    item_id: str
    field: str
    old_value: Any
    new_value: Any
    resource: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'item_id': self.item_id,
            'field': self.field,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'resource': self.resource,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class PendingSave:
    kind: str
    file_name: str
    text: str
    encoding: str
    bom: bytes = b''


class ResourceSession:
    """
    Coordinator for one editing session.

    Thread safe: loads run outside the lock and publish under it, edits and
    saves hold the lock for their whole duration.
    """

    def __init__(self, settings: Optional[EditorSettings] = None):
        self.settings = settings or get_editor_settings()
        self._lock = threading.RLock()
        self._generation = 0
        self._context: Optional[ResourceContext] = None
        self._edits: List[EditRecord] = []

    @property
    def context(self) -> Optional[ResourceContext]:
        return self._context

    @property
    def is_loaded(self) -> bool:
        return self._context is not None

    @property
    def edits(self) -> List[EditRecord]:
        with self._lock:
            return list(self._edits)

    def require_context(self) -> ResourceContext:
        context = self._context
        if context is None:
            raise ResourceNotLoadedError()
        return context

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_all(self, files: Dict[str, Optional[bytes]], origins: Optional[Dict[str, str]] = None,
                 extra_diagnostics: Optional[List[Diagnostic]] = None) -> ResourceContext:
        """
        Parse a full resource set and make it the current one.

        Missing or unreadable files produce empty tables plus diagnostics;
        the item table is usable whatever else is missing. Returns the built
        context even when a newer load superseded it (it is then not
        published).
        """
        with self._lock:
            self._generation += 1
            generation = self._generation

        context = self._build_context(generation, files, origins or {})
        if extra_diagnostics:
            context.diagnostics[:0] = extra_diagnostics

        with self._lock:
            if generation != self._generation:
                logger.info(f"Discarding resource load #{generation}, load #{self._generation} is newer")
                return context
            self._context = context
            self._edits = []

        logger.info(f"Resource load #{generation} published: {len(context.items)} items, "
                    f"{len(context.strings)} strings, {len(context.defines)} defines, "
                    f"{len(context.models)} models")
        return context

    def _build_context(self, generation: int, files: Dict[str, Optional[bytes]],
                       origins: Dict[str, str]) -> ResourceContext:
        settings = self.settings
        diagnostics: List[Diagnostic] = []
        infos: Dict[str, LoadedFile] = {}
        texts: Dict[str, str] = {}

        for kind in RESOURCE_KINDS:
            info = LoadedFile(kind=kind, file_name=settings.file_name(kind), origin=origins.get(kind))
            data = files.get(kind)
            if data is None:
                log = DiagnosticLog(info.file_name)
                log.warning("File not provided, continuing with an empty table")
                diagnostics.extend(log.entries)
                texts[kind] = ''
            else:
                decoded = decode_bytes(data, settings.legacy_encoding, source=info.file_name)
                info.present = True
                info.encoding = decoded.encoding
                info.bom = decoded.bom
                texts[kind] = decoded.text
                diagnostics.extend(decoded.diagnostics)
            infos[kind] = info

        overrides = settings.load_model_overrides()

        # The lookup tables do not depend on each other
        with ThreadPoolExecutor(max_workers=3) as executor:
            defines_future = executor.submit(DefineTableParser().parse, texts[DEFINE_ITEM], infos[DEFINE_ITEM].file_name)
            models_future = executor.submit(ModelRegistryParser().parse, texts[MDL_DYNA], infos[MDL_DYNA].file_name,
                                            overrides)
            strings_future = executor.submit(StringPairParser().parse, texts[PROP_ITEM], infos[PROP_ITEM].file_name)
            defines = defines_future.result()
            models = models_future.result()
            strings = strings_future.result()

        items = ItemTableParser(batch_size=settings.batch_size).parse(
            texts[SPEC_ITEM], strings, infos[SPEC_ITEM].file_name
        )

        for table in (defines, models, strings, items):
            diagnostics.extend(table.diagnostics)

        for record in items:
            self._cross_reference(record, defines, models)

        return ResourceContext(generation, items, strings, defines, models, infos, diagnostics)

    @staticmethod
    def _cross_reference(record: ItemRecord, defines: DefineTable, models: ModelRegistry):
        record.define_id = defines.lookup(record.id)
        record.model_file_name = models.file_name(record.id)
        record.mesh_name = models.mesh_name(record.id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> ItemRecord:
        record = self.require_context().items.get(item_id)
        if record is None:
            raise ItemNotFoundError(f"Item '{item_id}' not found", item_id=item_id)
        return record

    def search_items(self, query: str = '', offset: int = 0, limit: int = 50) -> Tuple[int, List[ItemRecord]]:
        """Case-insensitive match on id, name key and display name"""
        items = self.require_context().items.items
        if query:
            needle = query.lower()
            items = [
                r for r in items
                if needle in r.id.lower() or needle in r.display_name.lower()
                or needle in r.source_string_key.lower()
            ]
        return len(items), items[offset:offset + limit]

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def apply_edit(self, item_id: str, field_name: str, value: str) -> EditRecord:
        """
        Change one field of one item in the file that owns it.

        display_name and description go to the string file, model_file_name
        and mesh_name to the model registry, everything else to the item
        table row. Exactly one file is marked dirty.

        Raises:
            ResourceNotLoadedError: nothing loaded yet
            ItemNotFoundError: unknown item id
            EditError: the owning file rejected the edit; nothing changed
        """
        if not isinstance(value, str):
            raise EditError(f"Value for {field_name} must be text", item_id, field_name)

        with self._lock:
            context = self.require_context()
            record = self.get_item(item_id)

            if field_name in STRING_FIELDS:
                old_value, resource = self._edit_string(context, record, field_name, value), PROP_ITEM
            elif field_name in MODEL_FIELDS:
                old_value, resource = self._edit_model(context, record, field_name, value), MDL_DYNA
            else:
                old_value, resource = self._edit_row(context, record, field_name, value), SPEC_ITEM

            context.files[resource].dirty = True
            edit = EditRecord(item_id, field_name, old_value, value, resource)
            self._edits.append(edit)

        logger.info(f"Edited {item_id}.{field_name}: {old_value!r} -> {value!r} ({resource})")
        return edit

    def _edit_string(self, context: ResourceContext, record: ItemRecord, field_name: str, value: str) -> str:
        key = record.source_string_key or record.raw_fields.get(context.items.name_column, '')
        if not key:
            raise EditError(f"Item '{record.id}' has no string key", record.id, field_name)

        old_value = getattr(record, field_name)
        try:
            entry = context.strings.set_text(key, **{field_name: value})
        except ValueError as e:
            raise EditError(str(e), record.id, field_name) from e

        for other in context.items:
            if other.source_string_key in (key, entry.key):
                other.display_name = entry.display_name
                other.description = entry.description
                other.source_string_key = entry.key
        return old_value

    def _edit_model(self, context: ResourceContext, record: ItemRecord, field_name: str, value: str) -> str:
        old_value = getattr(record, field_name)
        if not context.models.update(record.id, MODEL_FIELDS[field_name], value):
            raise EditError(f"No {field_name} entry for {record.id} in the model registry", record.id, field_name)
        setattr(record, field_name, value)
        return old_value

    def _edit_row(self, context: ResourceContext, record: ItemRecord, field_name: str, value: str) -> str:
        try:
            old_value = context.items.set_field(record.id, field_name, value)
        except (KeyError, ValueError) as e:
            message = e.args[0] if e.args else str(e)
            raise EditError(message, record.id, field_name) from e

        if field_name == context.items.name_column:
            resolve_strings(record, context.strings, context.items.name_column)
        return old_value

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def _encoding_for(self, info: LoadedFile) -> Tuple[str, bytes]:
        configured = self.settings.save_encoding
        if info.kind in LEGACY_SAVE_KINDS and configured != SOURCE_ENCODING:
            return configured, b''
        return info.encoding, info.bom

    def pending_saves(self) -> List[PendingSave]:
        """Serialized content of every dirty file"""
        with self._lock:
            context = self.require_context()
            pending = []
            for kind in context.dirty_kinds:
                info = context.files[kind]
                encoding, bom = self._encoding_for(info)
                pending.append(PendingSave(kind, info.file_name, context.serialize(kind), encoding, bom))
            return pending

    def serialize_dirty(self) -> Dict[str, str]:
        return {p.kind: p.text for p in self.pending_saves()}

    def mark_saved(self, kind: str):
        with self._lock:
            context = self.require_context()
            if kind in context.files:
                context.files[kind].dirty = False

    def save_dirty(self, writer: Optional[ResourceWriter] = None) -> List[SaveResult]:
        """
        Write every dirty file; files that saved are no longer dirty.

        Without an explicit writer each file is first tried in the folder it
        was loaded from, unless save folders are configured.
        """
        results = []
        with self._lock:
            context = self.require_context()
            for pending in self.pending_saves():
                file_writer = writer or self._writer_for(context.files[pending.kind])
                result = file_writer.save(pending.file_name, pending.text, pending.encoding, pending.bom)
                if result.success:
                    self.mark_saved(pending.kind)
                results.append(result)
        return results

    def _writer_for(self, info: LoadedFile) -> ResourceWriter:
        settings = self.settings
        candidates = settings.save_candidates
        if not settings.save_folders and info.origin and info.origin != UPLOAD_ORIGIN:
            origin = Path(info.origin)
            candidates = [origin] + [c for c in candidates if c != origin]
        return ResourceWriter(candidates, settings.create_backups)

    def status(self) -> Dict[str, Any]:
        context = self._context
        if context is None:
            return {'loaded': False, 'generation': self._generation}
        return {
            'loaded': True,
            'generation': context.generation,
            'loaded_at': context.loaded_at.isoformat(),
            'item_count': len(context.items),
            'string_count': len(context.strings),
            'define_count': len(context.defines),
            'model_count': len(context.models),
            'columns': context.items.columns,
            'files': {kind: info.to_dict() for kind, info in context.files.items()},
            'dirty': context.dirty_kinds,
            'edit_count': len(self._edits),
            'diagnostics': [d.to_dict() for d in context.diagnostics],
        }
