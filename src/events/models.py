"""
Payload schemas for the events exchanged with the hub.

Inbound data is validated here, at the boundary, so the rest of the code can
trust the shapes it works with. DetectionSet deliberately tolerates parallel
arrays of different lengths: the renderer degrades per index instead.
"""

from __future__ import annotations

import math
import time
from typing import Annotated, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Pixel coordinates; inf/NaN are rejected here, out-of-frame values are clipped by the renderer
Coord = Annotated[float, Field(allow_inf_nan=False)]
Box = Tuple[Coord, Coord, Coord, Coord]

UNKNOWN_LABEL = "Unknown"


class DetectionSet(BaseModel):
    """
    Detections for one frame.

    boxes/labels/confidences are parallel arrays; count normally equals
    len(boxes) and defaults to it when the producer leaves it out.
    """

    model_config = ConfigDict(extra="ignore")

    count: int = Field(0, ge=0)
    boxes: List[Box] = Field(default_factory=list)
    labels: List[Optional[str]] = Field(default_factory=list)
    confidences: List[Optional[float]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _default_count(cls, data):
        if isinstance(data, dict) and data.get("count") is None:
            data = dict(data)
            data["count"] = len(data.get("boxes") or [])
        return data

    @field_validator("boxes", "labels", "confidences", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return [] if value is None else value

    @field_validator("confidences")
    @classmethod
    def _clamp_confidences(cls, values: List[Optional[float]]) -> List[Optional[float]]:
        clamped: List[Optional[float]] = []
        for value in values:
            if value is None or math.isnan(value):
                clamped.append(None)
            else:
                clamped.append(min(1.0, max(0.0, value)))
        return clamped

    @property
    def is_consistent(self) -> bool:
        return len(self.boxes) == len(self.labels) == len(self.confidences) == self.count

    def label_at(self, index: int) -> str:
        if index < len(self.labels) and self.labels[index]:
            return self.labels[index]
        return UNKNOWN_LABEL

    def confidence_at(self, index: int) -> float:
        if index < len(self.confidences) and self.confidences[index] is not None:
            return self.confidences[index]
        return 0.0

    def items(self) -> Iterator[Tuple[Box, str, float]]:
        """Yield (box, label, confidence) for every box, filling gaps with defaults."""
        for i, box in enumerate(self.boxes):
            yield box, self.label_at(i), self.confidence_at(i)


class DetectionPayload(BaseModel):
    """`detection:result` as pushed by the hub after annotating a camera frame."""

    model_config = ConfigDict(extra="ignore")

    camera_id: str
    camera_sid: str
    frame: Union[bytes, str]
    detections: DetectionSet = Field(default_factory=DetectionSet)
    timestamp: float = Field(default_factory=time.time)

    @field_validator("detections", mode="before")
    @classmethod
    def _missing_detections(cls, value):
        return {} if value is None else value

    @property
    def threat_count(self) -> int:
        return self.detections.count


class CameraRecord(BaseModel):
    """Admin-side registry entry for one connected camera."""

    model_config = ConfigDict(extra="ignore")

    sid: str
    camera_id: str
    username: str = ""
    deployed: bool = False


class CameraList(BaseModel):
    cameras: List[CameraRecord] = Field(default_factory=list)


class CameraConnected(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sid: str
    camera_id: str
    username: str = ""

    def to_record(self) -> CameraRecord:
        return CameraRecord(sid=self.sid, camera_id=self.camera_id, username=self.username)


class CameraDisconnected(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sid: str


class DeployCommand(BaseModel):
    """Body of deploy_start / deploy_stop / deploy:success."""

    model_config = ConfigDict(extra="ignore")

    camera_sid: str


class DeployError(BaseModel):
    """Reported by a camera node when its capture device cannot be acquired."""

    camera_id: str
    message: str


class FrameMessage(BaseModel):
    """Outbound `camera_frame`: one base64 JPEG."""

    frame: str


class Stats(BaseModel):
    total_cameras: int = 0
    deployed_cameras: int = 0
    total_detections: int = 0
    active_threats: int = 0
