# src/classsync/core/presentation.py

"""
Theme data and small display helpers shared by every front-end.

Accent and class colours are configuration data: one palette, no per-theme code paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit


@dataclass(slots=True, frozen=True)
class ColorTheme:
    name: str
    bg: str
    text: str
    border: str
    btn: str


def _theme(name: str) -> ColorTheme:
    return ColorTheme(
        name=name,
        bg=f"bg-{name}-100 dark:bg-{name}-900",
        text=f"text-{name}-800 dark:text-{name}-100",
        border=f"border-{name}-500",
        btn=f"bg-{name}-600 hover:bg-{name}-700",
    )


PALETTE: dict[str, ColorTheme] = {
    name: _theme(name) for name in ("blue", "red", "green", "purple", "orange", "pink")
}

DEFAULT_ACCENT = "blue"

# Subset offered for per-class tags.
CLASS_TAG_COLORS = ("blue", "red", "green", "purple")


def is_palette_color(name: object) -> bool:
    return isinstance(name, str) and name in PALETTE


def class_theme(class_id: str | None, class_colors: dict[str, str], accent: str) -> ColorTheme:
    """Class tag colour, falling back to the accent when the class has no override."""
    name = class_colors.get(class_id or "") if class_id else None
    if not is_palette_color(name):
        name = accent if is_palette_color(accent) else DEFAULT_ACCENT
    return PALETTE[name]  # type: ignore[index]


def normalize_link(link: str) -> str:
    link = (link or "").strip()
    if not link:
        return ""
    return link if link.startswith("http") else f"https://{link}"


def link_domain(link: str) -> str:
    """Short host label for a personal link, e.g. "docs.google.com". "Link" when unparsable."""
    try:
        host = urlsplit(normalize_link(link)).hostname
    except ValueError:
        return "Link"
    if not host:
        return "Link"
    return host.replace("www.", "", 1)


def note_lines(note: str) -> list[str]:
    """Bullet preview of a personal note: one entry per line."""
    if not note:
        return []
    return note.split("\n")
