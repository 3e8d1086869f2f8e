from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadRequest(_Camel):
    kind: Literal["avatar", "product"]
    content_type: str


class UploadResponse(_Camel):
    job_id: UUID
    upload_url: str
    public_url: str
    expires_in: int


class UploadCompleteRequest(_Camel):
    url: str
