"""Brand configuration model and font lookup table (pure Python, no Qt dependency)."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_PRIMARY_COLOR = "#6366f1"  # indigo
DEFAULT_FONT_PREFERENCE = "Noto Sans JP Bold"


@dataclass(frozen=True, slots=True)
class FontSpec:
    family: str
    weight: int


FONT_MAP: dict[str, FontSpec] = {
    "Noto Sans JP Bold": FontSpec("Noto Sans JP", 700),
    "Inter Extra Bold": FontSpec("Inter", 800),
    "M PLUS Rounded 1c": FontSpec("M PLUS Rounded 1c", 700),
    "Shippori Mincho": FontSpec("Shippori Mincho", 400),
}

DEFAULT_FONT = FontSpec("Noto Sans JP", 700)


def resolve_font(preference: str | None) -> FontSpec:
    """Look up the (family, weight) pair for a font label. Unknown labels get DEFAULT_FONT."""
    if not preference:
        return DEFAULT_FONT
    return FONT_MAP.get(preference, DEFAULT_FONT)


@dataclass(slots=True)
class BrandConfig:
    """Process-wide brand settings edited by the user."""

    logo_image: str = ""  # empty = no logo
    primary_color: str = DEFAULT_PRIMARY_COLOR
    font_preference: str = DEFAULT_FONT_PREFERENCE

    @property
    def has_logo(self) -> bool:
        return bool(self.logo_image)

    @property
    def font(self) -> FontSpec:
        return resolve_font(self.font_preference)

    def is_factory_default(self) -> bool:
        return (
            self.logo_image == ""
            and self.primary_color == DEFAULT_PRIMARY_COLOR
            and self.font_preference == DEFAULT_FONT_PREFERENCE
        )

    def to_dict(self) -> dict:
        return {
            "logo_image": self.logo_image,
            "primary_color": self.primary_color,
            "font_preference": self.font_preference,
        }

    @classmethod
    def from_dict(cls, data: dict) -> BrandConfig:
        """Build from stored data. Raises TypeError/KeyError on malformed input."""
        if not isinstance(data, dict):
            raise TypeError(f"expected dict, got {type(data).__name__}")
        logo = data.get("logo_image", "")
        color = data["primary_color"]
        font = data["font_preference"]
        for name, value in (("logo_image", logo), ("primary_color", color), ("font_preference", font)):
            if not isinstance(value, str):
                raise TypeError(f"{name} must be a string")
        return cls(logo_image=logo, primary_color=color, font_preference=font)
