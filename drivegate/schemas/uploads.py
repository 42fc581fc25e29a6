from pydantic import BaseModel, ConfigDict, Field


class InitiateUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName", min_length=1)
    mime_type: str = Field(default="application/octet-stream", alias="mimeType")


class InitiateUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    upload_url: str = Field(alias="uploadUrl")


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
