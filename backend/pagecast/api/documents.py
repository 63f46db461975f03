# backend/pagecast/api/documents.py
import time
from typing import Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from ..config import settings
from ..dependencies import get_coordinator, get_owner_id
from ..errors import PagecastError
from ..schemas.document import DocumentDetail
from ..schemas.job import DispatchedRun, GenerateAudioRequest, PageResult
from ..services.coordinator import PipelineCoordinator
from ..utils.logging import api_logger
from .errors import to_http_exception

router = APIRouter(prefix="/api/documents", tags=["documents"])


def resolve_voice_id(request: GenerateAudioRequest) -> str:
    return settings.DEFAULT_VOICE_ID if request.voice_id is None else request.voice_id


@router.get("", response_model=List[DocumentDetail])
async def list_documents(
        owner_id: str = Depends(get_owner_id),
        coordinator: PipelineCoordinator = Depends(get_coordinator)
):
    api_logger.info("Listing documents", extra={"owner_id": owner_id})

    try:
        start_time = time.time()
        documents = coordinator.get_all_documents(owner_id)

        api_logger.info("Successfully listed documents", extra={
            "owner_id": owner_id,
            "document_count": len(documents),
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return documents

    except PagecastError as e:
        api_logger.error("Error listing documents", extra={
            "owner_id": owner_id,
            "error": str(e)
        })
        raise to_http_exception(e) from e


@router.post("", response_model=DocumentDetail)
async def create_document(
        name: str = Form(...),
        file: UploadFile = File(...),
        owner_id: str = Depends(get_owner_id),
        coordinator: PipelineCoordinator = Depends(get_coordinator)
):
    api_logger.info("Creating new document", extra={
        "owner_id": owner_id,
        "document_name": name,
        "file_name": file.filename,
        "content_type": file.content_type
    })

    try:
        start_time = time.time()
        data = await file.read()
        document = await coordinator.create_document(name, owner_id, data)

        api_logger.info("Successfully created document", extra={
            "document_id": document.id,
            "page_count": document.page_count,
            "execution_time_ms": round((time.time() - start_time) * 1000, 2)
        })
        return document

    except PagecastError as e:
        api_logger.error("Error creating document", extra={
            "owner_id": owner_id,
            "document_name": name,
            "error_kind": e.kind.value,
            "error": str(e)
        })
        raise to_http_exception(e) from e


@router.get("/{document_id}", response_model=DocumentDetail)
async def get_document(document_id: int, coordinator: PipelineCoordinator = Depends(get_coordinator)):
    api_logger.info("Retrieving document details", extra={"document_id": document_id})

    try:
        return coordinator.get_document(document_id)
    except PagecastError as e:
        api_logger.warning("Document lookup failed", extra={
            "document_id": document_id,
            "error": str(e)
        })
        raise to_http_exception(e) from e


@router.delete("/{document_id}")
async def delete_document(document_id: int, coordinator: PipelineCoordinator = Depends(get_coordinator)):
    api_logger.info("Deleting document", extra={"document_id": document_id})

    try:
        deleted: Dict[str, int] = coordinator.delete_document(document_id)
    except PagecastError as e:
        api_logger.error(f"Failed to delete document: {str(e)}", extra={"document_id": document_id})
        raise to_http_exception(e) from e

    api_logger.info(f"Successfully deleted document {document_id}")
    return {"success": True, "deleted": deleted}


@router.post("/{document_id}/audio", response_model=List[PageResult])
async def generate_audio(
        document_id: int,
        request: GenerateAudioRequest,
        coordinator: PipelineCoordinator = Depends(get_coordinator)
):
    voice_id = resolve_voice_id(request)
    api_logger.info("Generating audio", extra={
        "document_id": document_id,
        "page_ids": request.page_ids,
        "voice_id": voice_id
    })

    try:
        results = await coordinator.generate_audio(document_id, request.page_ids, voice_id)
    except PagecastError as e:
        api_logger.error("Audio generation rejected", extra={
            "document_id": document_id,
            "error_kind": e.kind.value,
            "error": str(e)
        })
        raise to_http_exception(e) from e

    api_logger.info("Audio generation finished", extra={
        "document_id": document_id,
        "succeeded": [r.page_id for r in results if r.succeeded],
        "failed": [r.page_id for r in results if not r.succeeded]
    })
    return results


@router.post("/{document_id}/audio/runs", response_model=List[DispatchedRun], status_code=202)
async def dispatch_audio(
        document_id: int,
        request: GenerateAudioRequest,
        background_tasks: BackgroundTasks,
        coordinator: PipelineCoordinator = Depends(get_coordinator)
):
    voice_id = resolve_voice_id(request)
    api_logger.info("Dispatching audio generation", extra={
        "document_id": document_id,
        "page_ids": request.page_ids,
        "voice_id": voice_id
    })

    try:
        runs = coordinator.dispatch_audio(
            document_id,
            request.page_ids,
            voice_id,
            schedule=background_tasks.add_task
        )
    except PagecastError as e:
        api_logger.error("Audio dispatch rejected", extra={
            "document_id": document_id,
            "error_kind": e.kind.value,
            "error": str(e)
        })
        raise to_http_exception(e) from e

    return runs
