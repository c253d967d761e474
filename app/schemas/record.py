from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class RecordCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    data: dict[str, Any] = Field(default_factory=dict)


class RecordRead(BaseModel):
    id: str
    name: str
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
