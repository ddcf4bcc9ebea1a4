"""LogoPositioner: 로고 드래그 상태 머신 (Qt 비의존).

Pointer input (press / move-while-pressed / release) is converted into
percentage-based LogoOverlay updates. The widget only forwards
container-relative pixel coordinates, so the state machine can be tested
without a QApplication.
"""

from __future__ import annotations

from enum import Enum, auto

from storycanvas.models.overlay_settings import (
    LogoOverlayPatch,
    OverlaySettings,
    OverlaySettingsPatch,
)
from storycanvas.utils.config import POSITION_MAX, POSITION_MIN

PREVIEW_LOGO_MIN_WIDTH = 8.0  # percent of container width
PREVIEW_LOGO_WIDTH_PER_SCALE = 30.0


class DragState(Enum):
    IDLE = auto()
    DRAGGING = auto()


def preview_logo_width_percent(scale: float) -> float:
    """Interactive logo width as a percentage of the container width.

    Approximation used only for the on-screen preview; export sizes the logo
    from its natural pixel size instead.
    """
    return max(PREVIEW_LOGO_MIN_WIDTH, scale * PREVIEW_LOGO_WIDTH_PER_SCALE)


def _clamp_percent(value: float) -> float:
    return max(POSITION_MIN, min(POSITION_MAX, value))


class LogoPositioner:
    """Idle → Dragging → Idle. No other transitions."""

    def __init__(self, settings: OverlaySettings | None = None, interactive: bool = True) -> None:
        self._settings = settings
        self.interactive = interactive
        self.state = DragState.IDLE
        self.offset_x: float = 0.0
        self.offset_y: float = 0.0

    # ---- 대상 설정 ----

    def set_settings(self, settings: OverlaySettings | None) -> None:
        """Attach a different asset's settings. Any drag in progress ends."""
        self._settings = settings
        self.state = DragState.IDLE

    @property
    def settings(self) -> OverlaySettings | None:
        return self._settings

    @property
    def is_dragging(self) -> bool:
        return self.state == DragState.DRAGGING

    # ---- 입력 이벤트 ----

    def press(self, px: float, py: float, container_w: float, container_h: float) -> bool:
        """Start dragging if allowed. Returns True when the drag started."""
        logo = self._settings.logo_overlay if self._settings else None
        if not self.interactive or logo is None or not logo.visible:
            return False
        if container_w <= 0 or container_h <= 0:
            return False
        # 드래그 시작 시 로고가 포인터 위치로 점프하지 않도록 중심과의 차이를 기억
        center_x = logo.x / 100.0 * container_w
        center_y = logo.y / 100.0 * container_h
        self.offset_x = px - center_x
        self.offset_y = py - center_y
        self.state = DragState.DRAGGING
        return True

    def move(
        self, px: float, py: float, container_w: float, container_h: float
    ) -> LogoOverlayPatch | None:
        """Update the logo centre while dragging. Returns the applied patch, or None."""
        if self.state != DragState.DRAGGING or self._settings is None:
            return None
        if container_w <= 0 or container_h <= 0:
            return None
        x = (px - self.offset_x) / container_w * 100.0
        y = (py - self.offset_y) / container_h * 100.0
        patch = LogoOverlayPatch(x=_clamp_percent(x), y=_clamp_percent(y))
        self._settings.apply(OverlaySettingsPatch(logo_overlay=patch))
        return patch

    def release(self) -> None:
        self.state = DragState.IDLE

    def cancel(self) -> None:
        self.state = DragState.IDLE
