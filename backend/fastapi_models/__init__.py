"""
FastAPI Pydantic models for the resource editor API
"""

from .resource_models import (
    # Shared
    DiagnosticModel,
    FileInfo,

    # Loading
    LoadRequest,
    UploadedFile,
    UploadRequest,
    LoadResponse,
    StatusResponse,

    # Items
    ItemEffectModel,
    SetEffectRefModel,
    ItemModel,
    ItemSummary,
    ItemListResponse,
    ItemEditRequest,
    EditRecordModel,
    ItemEditResponse,
    EditListResponse,

    # Saving
    SaveAttemptModel,
    SaveResultModel,
    SaveFileEntry,
    SaveResourceRequest,
    SaveResponse,

    # Settings
    SettingsUpdateRequest,
    SettingsResponse,
)

__all__ = [
    'DiagnosticModel', 'FileInfo',
    'LoadRequest', 'UploadedFile', 'UploadRequest', 'LoadResponse', 'StatusResponse',
    'ItemEffectModel', 'SetEffectRefModel', 'ItemModel', 'ItemSummary', 'ItemListResponse',
    'ItemEditRequest', 'EditRecordModel', 'ItemEditResponse', 'EditListResponse',
    'SaveAttemptModel', 'SaveResultModel', 'SaveFileEntry', 'SaveResourceRequest', 'SaveResponse',
    'SettingsUpdateRequest', 'SettingsResponse',
]
