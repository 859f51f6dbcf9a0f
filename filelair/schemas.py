from pydantic import BaseModel, ConfigDict, Field


class UploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName", max_length=255)
    file_size: int = Field(alias="fileSize")
    content_type: str = Field(alias="contentType", max_length=255)
    password: str | None = None


class PasswordRequest(BaseModel):
    password: str | None = None
