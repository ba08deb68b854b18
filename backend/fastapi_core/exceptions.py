"""
Exception hierarchy for the resource editor

Services raise these; fastapi_server maps each one to a JSON error body
with the status code carried on the exception.
"""

from typing import Any, Dict, Optional

from fastapi import status


class ResourceEditorError(Exception):
    """Base class for every error the editor reports to the client"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = 'resource_editor_error'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {'error': self.error_code, 'detail': self.message}
        body.update(self.details)
        return body


class EditError(ResourceEditorError):
    """An edit was rejected; nothing was changed"""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = 'edit_rejected'

    def __init__(self, message: str, item_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, {'item_id': item_id, 'field': field})
        self.item_id = item_id
        self.field = field


class ItemNotFoundError(EditError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = 'item_not_found'


class ResourceNotLoadedError(ResourceEditorError):
    """No resource set has been loaded into the session yet"""
    status_code = status.HTTP_409_CONFLICT
    error_code = 'resources_not_loaded'

    def __init__(self, message: str = "No resources loaded"):
        super().__init__(message)


class ResourceSaveError(ResourceEditorError):
    """A file could not be written to any candidate location"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = 'save_failed'

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(message, {'file_name': file_name})
        self.file_name = file_name


class InvalidFileNameError(ResourceSaveError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = 'invalid_file_name'
