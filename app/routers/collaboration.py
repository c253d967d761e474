from fastapi import APIRouter, Depends

from app.models.user import User
from app.routers.deps import get_current_user
from app.schemas.cursor import CursorLayerRequest, CursorLayerResponse, CursorMarkerRead
from app.services.cursors import build_cursor_layer

router = APIRouter(prefix="/collaboration", tags=["collaboration"])


@router.post("/cursor-layer", response_model=CursorLayerResponse, response_model_exclude_none=True)
def cursor_layer(payload: CursorLayerRequest, current_user: User = Depends(get_current_user)) -> CursorLayerResponse:
    markers = build_cursor_layer(payload.cursors)
    return CursorLayerResponse(markers=[CursorMarkerRead.model_validate(marker) for marker in markers])
