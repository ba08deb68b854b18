"""
Resource router - load, browse, edit and save the item resource files
"""

import base64
import binascii
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from loguru import logger

from config.editor_settings import SUPPORTED_SAVE_ENCODINGS
from fastapi_core.exceptions import InvalidFileNameError, ResourceSaveError
from fastapi_core.session_registry import get_resource_session, pending_downloads, pop_download, store_download
from fastapi_models import (
    EditListResponse, ItemEditRequest, ItemEditResponse, ItemListResponse, ItemModel, ItemSummary,
    LoadRequest, LoadResponse, SaveResourceRequest, SaveResponse, SaveResultModel, SettingsResponse,
    SettingsUpdateRequest, StatusResponse, UploadRequest
)
from parsers.encoding import UTF8, encode_text
from services.resource_locator import ResourceLocator
from services.resource_session import RESOURCE_KINDS, SOURCE_ENCODING, UPLOAD_ORIGIN, ResourceContext, ResourceSession
from services.resource_writer import ResourceWriter, SaveResult, safe_file_name

router = APIRouter()


def _load_response(context: ResourceContext) -> LoadResponse:
    return LoadResponse(
        generation=context.generation,
        item_count=len(context.items),
        string_count=len(context.strings),
        define_count=len(context.defines),
        model_count=len(context.models),
        files={kind: info.to_dict() for kind, info in context.files.items()},
        diagnostics=[d.to_dict() for d in context.diagnostics],
    )


def _keep_failed_download(result: SaveResult):
    if not result.success and result.payload is not None:
        store_download(result.file_name, result.payload)


def _encoding_for_name(session: ResourceSession, file_name: str, requested: Optional[str]):
    """Target encoding and BOM for client-supplied content"""
    encoding = (requested or session.settings.save_encoding).lower()
    if encoding not in SUPPORTED_SAVE_ENCODINGS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported encoding '{encoding}'"
        )
    if encoding != SOURCE_ENCODING:
        return encoding, b''

    context = session.context
    if context is not None:
        for info in context.files.values():
            if info.file_name == file_name and info.present:
                return info.encoding, info.bom
    return UTF8, b''


# ============================================================
# Loading
# ============================================================

@router.post("/resources/load", response_model=LoadResponse)
def load_resources(
    request: Optional[LoadRequest] = None,
    session: ResourceSession = Depends(get_resource_session)
):
    """Load the four resource files from the resource folder"""
    directory = request.directory if request else None
    locator = ResourceLocator.from_settings(session.settings, directory)
    located = locator.load(session.settings.file_names)

    if not located.found:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No resource files found in " + ", ".join(r.describe() for r in locator.resolvers)
        )

    context = session.load_all(located.files, located.sources, located.diagnostics)
    return _load_response(context)


@router.post("/resources/upload", response_model=LoadResponse)
def upload_resources(
    request: UploadRequest,
    session: ResourceSession = Depends(get_resource_session)
):
    """Load resource files sent in the request body"""
    if not request.files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")

    files: Dict[str, Optional[bytes]] = {kind: None for kind in RESOURCE_KINDS}
    for upload in request.files:
        if upload.encoding == 'base64':
            try:
                files[upload.kind] = base64.b64decode(upload.content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Invalid base64 content for {upload.kind}: {e}"
                )
        else:
            files[upload.kind] = upload.content.encode(UTF8)

    origins = {kind: UPLOAD_ORIGIN for kind, data in files.items() if data is not None}
    context = session.load_all(files, origins)
    return _load_response(context)


@router.get("/resources/status", response_model=StatusResponse)
def resource_status(session: ResourceSession = Depends(get_resource_session)):
    """Loaded files, dirty files, counts and load diagnostics"""
    info = session.status()
    info['pending_downloads'] = pending_downloads()
    return info


# ============================================================
# Items
# ============================================================

@router.get("/items", response_model=ItemListResponse)
def list_items(
    search: str = Query('', description="Matches id, string key or display name"),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=1000),
    session: ResourceSession = Depends(get_resource_session)
):
    total, items = session.search_items(search, offset, limit)
    return ItemListResponse(
        items=[
            ItemSummary(id=r.id, display_name=r.display_name, source_string_key=r.source_string_key,
                        define_id=r.define_id)
            for r in items
        ],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/items/{item_id}", response_model=ItemModel)
def get_item(item_id: str, session: ResourceSession = Depends(get_resource_session)):
    return session.get_item(item_id).to_dict()


@router.patch("/items/{item_id}", response_model=ItemEditResponse)
def edit_item(
    item_id: str,
    request: ItemEditRequest,
    session: ResourceSession = Depends(get_resource_session)
):
    """Apply one edit and return the before/after record"""
    edit = session.apply_edit(item_id, request.field, request.value)
    return ItemEditResponse(
        edit=edit.to_dict(),
        item=session.get_item(item_id).to_dict(),
        dirty=session.require_context().dirty_kinds,
    )


@router.get("/edits", response_model=EditListResponse)
def list_edits(session: ResourceSession = Depends(get_resource_session)):
    edits = [e.to_dict() for e in session.edits]
    return EditListResponse(edits=edits, total=len(edits))


# ============================================================
# Saving
# ============================================================

@router.post("/resources/save", response_model=SaveResponse)
def save_session(session: ResourceSession = Depends(get_resource_session)):
    """Write every file that has unsaved edits"""
    results = session.save_dirty()
    for result in results:
        _keep_failed_download(result)

    if not results:
        return SaveResponse(success=True, message="Nothing to save")

    success = all(r.success for r in results)
    message = (f"All {len(results)} files saved successfully" if success
               else "Some files failed to save")
    return SaveResponse(success=success, message=message,
                        results=[SaveResultModel(**r.to_dict()) for r in results])


@router.post("/save-resource", response_model=SaveResponse)
def save_resource(
    request: SaveResourceRequest,
    session: ResourceSession = Depends(get_resource_session)
):
    """
    Save client-supplied content to the resource folder.

    Accepts either fileName/content for one file or files=[{name, content}]
    for several. A file that cannot be written anywhere is kept for
    download from /resources/download/{file_name}.
    """
    writer = ResourceWriter.from_settings(session.settings)

    if request.files is not None:
        if not request.files:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")

        results: List[SaveResultModel] = []
        for entry in request.files:
            if not entry.name or entry.content is None:
                results.append(SaveResultModel(
                    file_name=entry.name or 'unknown', success=False, encoding='',
                    message="Missing filename or content"
                ))
                continue
            try:
                name = safe_file_name(entry.name)
            except InvalidFileNameError as e:
                results.append(SaveResultModel(file_name=entry.name, success=False, encoding='', message=e.message))
                continue
            encoding, bom = _encoding_for_name(session, name, request.encoding)
            result = writer.save(name, entry.content, encoding, bom)
            _keep_failed_download(result)
            results.append(SaveResultModel(**result.to_dict()))

        success = all(r.success for r in results)
        return SaveResponse(
            success=success,
            message=(f"All {len(results)} files saved successfully" if success
                     else "Some files failed to save"),
            results=results,
        )

    if not request.file_name or request.content is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing fileName or content")

    name = safe_file_name(request.file_name)
    encoding, bom = _encoding_for_name(session, name, request.encoding)
    result = writer.save(name, request.content, encoding, bom)
    if not result.success:
        _keep_failed_download(result)
        error = ResourceSaveError("Could not save file to any resource folder", name)
        error.details['download_url'] = f"/api/resources/download/{name}"
        error.details['attempts'] = [{'path': a.path, 'error': a.error} for a in result.attempts]
        raise error

    return SaveResponse(success=True, message=f"File {name} saved successfully",
                        results=[SaveResultModel(**result.to_dict())])


@router.get("/resources/download/{file_name}")
def download_resource(file_name: str, session: ResourceSession = Depends(get_resource_session)):
    """
    Fetch a file as an attachment.

    Serves a payload left behind by a failed save first; otherwise the
    current content of the loaded resource with that name.
    """
    name = safe_file_name(file_name)
    payload = pop_download(name)

    if payload is None and session.context is not None:
        for pending in session.pending_saves():
            if pending.file_name == name:
                payload, _ = encode_text(pending.text, pending.encoding, pending.bom, source=name)
                break

    if payload is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No content available for {name}")

    logger.info(f"Serving {name} as download ({len(payload)} bytes)")
    return Response(
        content=payload,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{name}"'}
    )


# ============================================================
# Settings
# ============================================================

@router.get("/settings", response_model=SettingsResponse)
def get_settings(session: ResourceSession = Depends(get_resource_session)):
    return session.settings.get_all_settings_info()


@router.patch("/settings", response_model=SettingsResponse)
def update_settings(
    request: SettingsUpdateRequest,
    session: ResourceSession = Depends(get_resource_session)
):
    settings = session.settings
    if request.resource_folder is not None and not settings.set_resource_folder(request.resource_folder):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Not a folder: {request.resource_folder}"
        )
    if request.save_encoding is not None and not settings.set_save_encoding(request.save_encoding):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported encoding '{request.save_encoding}'"
        )
    if request.save_folders is not None:
        settings.set_save_folders(request.save_folders)
    if request.create_backups is not None:
        settings.set_create_backups(request.create_backups)
    return settings.get_all_settings_info()
