"""
Detection overlay renderer.

Composites bounding boxes and label chips onto a copy of a frame. Used by the
camera node for its local preview and by the admin node for every tile.

Usage:
    image = decode_frame(payload.frame)
    tile = render(image, payload.detections)

    # or, tolerating undecodable frames:
    tile = render_payload(payload)
"""

import base64
import binascii
import logging
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from events.errors import DecodeError
from events.models import DetectionPayload, DetectionSet

from .palette import label_color

logger = logging.getLogger(__name__)

STROKE_WIDTH = 3
FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.5
FONT_THICKNESS = 1
CHIP_HEIGHT = 20
CHIP_PADDING = 5
TEXT_COLOR = (0, 0, 0)

PLACEHOLDER_TEXT = "Frame Load Error"
PLACEHOLDER_SIZE = (300, 200)  # (width, height)
PLACEHOLDER_FILL = (51, 51, 51)
PLACEHOLDER_TEXT_COLOR = (255, 255, 255)


def format_label(label: str, confidence: float) -> str:
    """Chip text, e.g. "Weapon 87%"."""
    return f"{label} {int(round(confidence * 100))}%"


def placeholder(size: Tuple[int, int] = PLACEHOLDER_SIZE) -> np.ndarray:
    """Solid tile marked "Frame Load Error", shown instead of an undecodable frame."""
    width, height = size
    image = np.full((height, width, 3), PLACEHOLDER_FILL, dtype=np.uint8)
    cv2.putText(
        image, PLACEHOLDER_TEXT, (10, 20),
        FONT, FONT_SCALE, PLACEHOLDER_TEXT_COLOR, FONT_THICKNESS, cv2.LINE_AA,
    )
    return image


def decode_frame(data: Union[bytes, str]) -> np.ndarray:
    """
    Decode a frame into a BGR image.

    Accepts raw JPEG/PNG bytes, a base64 string, or a data URL
    ("data:image/jpeg;base64,..."). Raises DecodeError on anything else.
    """
    if isinstance(data, str):
        if data.startswith("data:"):
            _, _, data = data.partition(",")
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Frame is not valid base64: {e}") from e
    else:
        raw = bytes(data)

    if not raw:
        raise DecodeError("Frame is empty")

    try:
        image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise DecodeError(f"Frame could not be decoded: {e}") from e
    if image is None:
        raise DecodeError(f"Frame could not be decoded ({len(raw)} bytes)")
    return image


def encode_jpeg(image: np.ndarray, quality: int) -> bytes:
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buf.tobytes()


def _point(x: float, y: float, width: int, height: int) -> Tuple[int, int]:
    """Round to a pixel inside the canvas."""
    x = np.clip(np.nan_to_num(x), 0, width - 1)
    y = np.clip(np.nan_to_num(y), 0, height - 1)
    return int(round(float(x))), int(round(float(y)))


def render(base_image: np.ndarray, detections: Optional[DetectionSet] = None) -> np.ndarray:
    """
    Draw detections onto a copy of base_image.

    Missing labels/confidences (arrays shorter than boxes) render as
    "Unknown"/0%. The input image is never modified.
    """
    canvas = base_image.copy()
    if detections is None or not detections.boxes:
        return canvas

    if canvas.ndim == 2:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)

    height, width = canvas.shape[:2]
    for (x1, y1, x2, y2), label, confidence in detections.items():
        color = label_color(label)
        top_left = _point(x1, y1, width, height)
        bottom_right = _point(x2, y2, width, height)

        cv2.rectangle(canvas, top_left, bottom_right, color, STROKE_WIDTH)

        # Label chip sits directly on top of the box's upper edge
        text = format_label(label, confidence)
        (text_width, _), _ = cv2.getTextSize(text, FONT, FONT_SCALE, FONT_THICKNESS)
        left, top = top_left
        cv2.rectangle(
            canvas,
            (left, top - CHIP_HEIGHT),
            (left + text_width + 2 * CHIP_PADDING, top),
            color, cv2.FILLED,
        )
        cv2.putText(
            canvas, text, (left + CHIP_PADDING, top - CHIP_PADDING),
            FONT, FONT_SCALE, TEXT_COLOR, FONT_THICKNESS, cv2.LINE_AA,
        )

    return canvas


def render_payload(payload: DetectionPayload) -> np.ndarray:
    """Decode and render one detection payload; never raises DecodeError."""
    try:
        image = decode_frame(payload.frame)
    except DecodeError as e:
        logger.warning("Frame from camera %s not renderable: %s", payload.camera_id, e)
        return placeholder()
    return render(image, payload.detections)
