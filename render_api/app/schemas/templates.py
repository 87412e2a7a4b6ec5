"""
Request/response models for template storage and DMS forwarding.
"""

from typing import List, Optional

from pydantic import BaseModel


class SaveTemplateRequest(BaseModel):
    name: str = ""
    template: str = ""
    # Raw JSON text stored verbatim next to the template
    data: Optional[str] = None


class SaveTemplateResponse(BaseModel):
    filename: str
    version: int


class TemplateInfo(BaseModel):
    name: str
    filename: str
    version: int


class TemplateListResponse(BaseModel):
    templates: List[TemplateInfo]


class TemplateContentResponse(BaseModel):
    filename: str
    template: str
    data: Optional[str] = None


class UploadDmsRequest(BaseModel):
    filename: str = ""
    ref_id: str = ""
    id_type: Optional[str] = None
    document_type: Optional[str] = None
    source_system: Optional[str] = None
    document_sequence: Optional[str] = None


class UploadDmsResponse(BaseModel):
    success: bool
    message: str
    response: str = ""
