from collections.abc import Mapping
from dataclasses import dataclass

from app.schemas.cursor import CursorState

CURSOR_COLORS = (
    "#3b82f6",  # blue
    "#ef4444",  # red
    "#10b981",  # green
    "#f59e0b",  # amber
    "#8b5cf6",  # purple
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#f97316",  # orange
)


@dataclass(frozen=True, slots=True)
class CursorMarker:
    user_id: str
    label: str
    x: float
    y: float
    color: str
    avatar: str | None = None


def cursor_color(user_id: str) -> str:
    if not user_id:
        return CURSOR_COLORS[0]
    # First UTF-16 code unit, so ids outside the BMP match browser clients.
    code_unit = int.from_bytes(user_id[0].encode("utf-16-le", "surrogatepass")[:2], "little")
    return CURSOR_COLORS[code_unit % len(CURSOR_COLORS)]


def build_cursor_marker(
    user_id: str,
    x: float,
    y: float,
    user_name: str,
    user_avatar: str | None = None,
    is_visible: bool = True,
) -> CursorMarker | None:
    if not is_visible:
        return None
    return CursorMarker(
        user_id=user_id,
        label=user_name,
        x=x,
        y=y,
        color=cursor_color(user_id),
        avatar=user_avatar or None,
    )


def build_cursor_layer(cursors: Mapping[str, CursorState] | None) -> list[CursorMarker]:
    if not cursors:
        return []
    markers = []
    for user_id, state in cursors.items():
        marker = build_cursor_marker(user_id, state.x, state.y, state.user_name, state.user_avatar)
        if marker is not None:
            markers.append(marker)
    return markers
