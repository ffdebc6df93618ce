from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel, Field

class BucketCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    owner: str = Field(min_length=1, max_length=255)

class BucketOut(BaseModel):
    id: int
    name: str
    owner: str

    class Config:
        from_attributes = True

class MetadataEntryOut(BaseModel):
    label: str
    key: str
    value: str

    class Config:
        from_attributes = True

class RevisionOut(BaseModel):
    bucket_id: int
    name: str
    kind: str
    content_type: str
    project_name: str | None = None
    revision_id: int
    commit_time: datetime
    commit_message: str
    object_key_values: list[MetadataEntryOut]

class RawPayload(NamedTuple):
    payload: bytes
    content_type: str
