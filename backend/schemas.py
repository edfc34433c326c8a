# schemas.py
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional

from fields import Answer


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class FormCreate(CamelModel):
    title: str = Field(..., max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    fields: List[Any] = []    # raw editor payload, normalized by fields.build_field_schema


class FormUpdate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_active: Optional[bool] = None
    fields: Optional[List[Any]] = None


class FormOut(CamelModel):
    id: int
    title: str
    description: Optional[str] = ""
    fields: List[Dict[str, Any]]
    version: int
    is_active: bool
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubmissionCreate(CamelModel):
    form_id: int
    answers: List[Answer] = []


class SubmissionOut(CamelModel):
    id: int
    form_id: int
    form_version: int
    form_snapshot: Optional[Dict[str, Any]] = None
    answers: List[Dict[str, Any]]
    submitted_at: Optional[datetime] = None
    ip: str = ""


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class SubmissionPage(BaseModel):
    submissions: List[SubmissionOut]
    pagination: Pagination
