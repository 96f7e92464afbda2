from typing import Dict

from pydantic import BaseModel, Field


class PresignedUrlRequest(BaseModel):
    file_name: str = Field(min_length=1)
    file_type: str


class PresignedUrlResponse(BaseModel):
    key: str
    url: str
    fields: Dict[str, str]
    file_url: str


class UploadFileRequest(BaseModel):
    file_name: str = Field(min_length=1)
    mime_type: str
    file_data: str      # base64


class UploadFileResponse(BaseModel):
    file_url: str
    key: str
