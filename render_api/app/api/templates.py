"""
Template storage and forwarding endpoints.

    POST /templates/save        persist a new version of a named template
    GET  /templates/list        every stored template, newest version first
    GET  /templates/{filename}  stored template text (+ companion data)
    POST /templates/upload-dms  forward a stored template to the DMS

Saved templates are never overwritten by this API: each save allocates
the next version for the normalised name.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from render_api.app.api.dependencies import get_dms_client, get_template_store
from render_api.app.core.errors import RequestValidationFailure
from render_api.app.schemas.templates import (
    SaveTemplateRequest,
    SaveTemplateResponse,
    TemplateContentResponse,
    TemplateInfo,
    TemplateListResponse,
    UploadDmsRequest,
    UploadDmsResponse,
)
from render_api.app.services.dms import DmsClient, DmsMetadata
from render_api.app.services.template_store import TemplateStore

logger = logging.getLogger("render_api.api.templates")

router = APIRouter(prefix="/templates", tags=["Templates"])


# =============================================================================
# POST /templates/save
# =============================================================================

@router.post(
    "/save",
    response_model=SaveTemplateResponse,
    summary="Save a new template version",
)
def save_template(
    req: SaveTemplateRequest,
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> SaveTemplateResponse:
    if not req.name:
        raise RequestValidationFailure("name is required")
    if not req.template:
        raise RequestValidationFailure("template is required")

    stored = store.save_new_version(req.name, req.template, req.data)
    return SaveTemplateResponse(filename=stored.filename, version=stored.version)


# =============================================================================
# GET /templates/list
# =============================================================================

@router.get(
    "/list",
    response_model=TemplateListResponse,
    summary="List stored templates",
)
def list_templates(
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> TemplateListResponse:
    return TemplateListResponse(
        templates=[
            TemplateInfo(
                name=item.name,
                filename=item.filename,
                version=item.version,
            )
            for item in store.list()
        ]
    )


# =============================================================================
# POST /templates/upload-dms
# =============================================================================

@router.post(
    "/upload-dms",
    response_model=UploadDmsResponse,
    summary="Forward a stored template to the DMS",
    responses={
        404: {"description": "Template not found"},
        502: {"description": "DMS unreachable or rejected the upload"},
    },
)
async def upload_to_dms(
    req: UploadDmsRequest,
    dms: Annotated[DmsClient, Depends(get_dms_client)],
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> UploadDmsResponse:
    if not req.filename:
        raise RequestValidationFailure("filename is required")
    if not req.ref_id:
        raise RequestValidationFailure("ref_id is required")

    # Empty strings fall back to the defaults as well as missing fields
    defaults = DmsMetadata(ref_id=req.ref_id)
    metadata = DmsMetadata(
        ref_id=req.ref_id,
        id_type=req.id_type or defaults.id_type,
        document_type=req.document_type or defaults.document_type,
        source_system=req.source_system or defaults.source_system,
        document_sequence=req.document_sequence or defaults.document_sequence,
    )

    content = await run_in_threadpool(store.read, req.filename)
    result = await dms.upload(req.filename, content, metadata)

    return UploadDmsResponse(
        success=True,
        message=f"Template {req.filename} uploaded successfully",
        response=result.body,
    )


# =============================================================================
# GET /templates/{filename}
# =============================================================================

@router.get(
    "/{filename}",
    response_model=TemplateContentResponse,
    summary="Read a stored template",
    responses={404: {"description": "Template not found"}},
)
def read_template(
    filename: str,
    store: Annotated[TemplateStore, Depends(get_template_store)],
) -> TemplateContentResponse:
    content = store.read(filename)
    return TemplateContentResponse(
        filename=filename,
        template=content.decode("utf-8", errors="replace"),
        data=store.read_data(filename),
    )
