from pydantic import BaseModel, Field


class CursorState(BaseModel):
    user_name: str
    user_avatar: str | None = None
    x: float
    y: float


class CursorLayerRequest(BaseModel):
    cursors: dict[str, CursorState] = Field(default_factory=dict)


class CursorMarkerRead(BaseModel):
    user_id: str
    label: str
    x: float
    y: float
    color: str
    avatar: str | None = None

    model_config = {"from_attributes": True}


class CursorLayerResponse(BaseModel):
    markers: list[CursorMarkerRead]
