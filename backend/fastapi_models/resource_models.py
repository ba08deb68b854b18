"""
Pydantic models for the resource editor API
"""

from typing import Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


# ============================================================
# Shared
# ============================================================

class DiagnosticModel(BaseModel):
    """Non-fatal issue found while decoding, parsing or saving"""
    severity: Literal['error', 'warning', 'info']
    source: str
    message: str
    line: Optional[int] = None


class FileInfo(BaseModel):
    kind: str
    file_name: str
    present: bool
    encoding: str
    had_bom: bool = False
    origin: Optional[str] = None
    dirty: bool = False


# ============================================================
# Loading
# ============================================================

class LoadRequest(BaseModel):
    """Load the four resource files from disk"""
    directory: Optional[str] = Field(None, description="Folder to read from; configured folders when omitted")


class UploadedFile(BaseModel):
    """One resource file sent by the client"""
    kind: Literal['spec_item', 'prop_item', 'define_item', 'mdl_dyna']
    content: str = Field(..., description="File content, base64 encoded when encoding is 'base64'")
    encoding: Literal['text', 'base64'] = 'text'


class UploadRequest(BaseModel):
    files: List[UploadedFile] = Field(default_factory=list)


class LoadResponse(BaseModel):
    success: bool = True
    generation: int
    item_count: int
    string_count: int
    define_count: int
    model_count: int
    files: Dict[str, FileInfo]
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)


class StatusResponse(BaseModel):
    loaded: bool
    generation: int
    loaded_at: Optional[str] = None
    item_count: int = 0
    string_count: int = 0
    define_count: int = 0
    model_count: int = 0
    columns: List[str] = Field(default_factory=list)
    files: Dict[str, FileInfo] = Field(default_factory=dict)
    dirty: List[str] = Field(default_factory=list)
    edit_count: int = 0
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)
    pending_downloads: Dict[str, int] = Field(default_factory=dict)


# ============================================================
# Items
# ============================================================

class ItemEffectModel(BaseModel):
    type: str
    value: Union[int, str]


class SetEffectRefModel(BaseModel):
    group_id: str
    required_pieces: int


class ItemModel(BaseModel):
    """Unified view of one item across the four resource files"""
    id: str
    raw_fields: Dict[str, str]
    display_name: str
    description: str = ''
    source_string_key: str = ''
    effects: List[ItemEffectModel] = Field(default_factory=list)
    set_effect_refs: List[SetEffectRefModel] = Field(default_factory=list)
    define_id: str = ''
    model_file_name: str = ''
    mesh_name: str = ''


class ItemSummary(BaseModel):
    id: str
    display_name: str
    source_string_key: str = ''
    define_id: str = ''


class ItemListResponse(BaseModel):
    items: List[ItemSummary]
    total: int
    offset: int
    limit: int


class ItemEditRequest(BaseModel):
    """Change one field; display_name, description, model_file_name and mesh_name are routed to their own files"""
    field: str = Field(..., min_length=1)
    value: str


class EditRecordModel(BaseModel):
    item_id: str
    field: str
    old_value: Any
    new_value: Any
    resource: str
    timestamp: datetime


class ItemEditResponse(BaseModel):
    success: bool = True
    edit: EditRecordModel
    item: ItemModel
    dirty: List[str] = Field(default_factory=list)


class EditListResponse(BaseModel):
    edits: List[EditRecordModel]
    total: int


# ============================================================
# Saving
# ============================================================

class SaveAttemptModel(BaseModel):
    path: str
    error: str = ''


class SaveResultModel(BaseModel):
    file_name: str
    success: bool
    path: Optional[str] = None
    encoding: str
    backup_path: Optional[str] = None
    size: int = 0
    message: str = ''
    download_available: bool = False
    attempts: List[SaveAttemptModel] = Field(default_factory=list)
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)


class SaveFileEntry(BaseModel):
    name: Optional[str] = None
    content: Optional[str] = None


class SaveResourceRequest(BaseModel):
    """Either a single fileName/content pair or a list of files"""
    model_config = ConfigDict(populate_by_name=True)

    file_name: Optional[str] = Field(None, alias='fileName')
    content: Optional[str] = None
    files: Optional[List[SaveFileEntry]] = None
    encoding: Optional[str] = Field(None, description="Target code page; configured default when omitted")


class SaveResponse(BaseModel):
    success: bool
    message: str
    results: List[SaveResultModel] = Field(default_factory=list)


# ============================================================
# Settings
# ============================================================

class SettingsUpdateRequest(BaseModel):
    """Fields left out are not changed"""
    resource_folder: Optional[str] = None
    save_folders: Optional[List[str]] = None
    save_encoding: Optional[str] = None
    create_backups: Optional[bool] = None


class SettingsResponse(BaseModel):
    resource_folder: Dict[str, Any]
    resource_candidates: List[str]
    save_candidates: List[str]
    save_encoding: str
    legacy_encoding: str
    create_backups: bool
    batch_size: int
    file_names: Dict[str, str]
