"""Module palette and approval status badges."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_COLOR = "blue"


@dataclass(frozen=True)
class ColorOption:
    id: str
    name: str
    bg_class: str
    text_class: str
    hover_class: str


MODULE_COLORS: tuple[ColorOption, ...] = tuple(
    ColorOption(
        id=color,
        name=color.capitalize(),
        bg_class=f"bg-{color}-100",
        text_class=f"text-{color}-800",
        hover_class=f"hover:bg-{color}-200",
    )
    for color in ("blue", "green", "purple", "orange", "pink", "cyan")
)

VALID_COLORS = frozenset(option.id for option in MODULE_COLORS)


def color_option(color_id: str | None) -> ColorOption:
    """Return the palette entry for ``color_id``, falling back to blue."""
    for option in MODULE_COLORS:
        if option.id == color_id:
            return option
    return MODULE_COLORS[0]


STATUS_LABELS = {
    "in_progress": "In Progress",
    "submitted": "Submitted",
    "approved": "Approved",
    "returned": "Returned",
}

STATUS_CLASSES = {
    "in_progress": "bg-blue-100 text-blue-800",
    "submitted": "bg-yellow-100 text-yellow-800",
    "approved": "bg-green-100 text-green-800",
    "returned": "bg-red-100 text-red-800",
}


def status_badge(status: str | None) -> dict[str, str]:
    normalized = status if status in STATUS_LABELS else "in_progress"
    return {
        "status": normalized,
        "label": STATUS_LABELS[normalized],
        "classes": STATUS_CLASSES[normalized],
    }
