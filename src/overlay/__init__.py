# Detection overlay rendering
from .palette import ThreatLabel, label_color
from .renderer import (
    PLACEHOLDER_TEXT,
    decode_frame,
    encode_jpeg,
    format_label,
    placeholder,
    render,
    render_payload,
)

__all__ = [
    # Palette
    "ThreatLabel",
    "label_color",
    # Renderer
    "PLACEHOLDER_TEXT",
    "decode_frame",
    "encode_jpeg",
    "format_label",
    "placeholder",
    "render",
    "render_payload",
]
