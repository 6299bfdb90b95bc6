"""
Label -> colour mapping for detection overlays.

Colours are BGR tuples, ready for OpenCV drawing calls.
"""

from enum import Enum
from typing import Optional, Tuple

Color = Tuple[int, int, int]


class ThreatLabel(Enum):
    """Closed set of labels with a dedicated colour; anything else is OTHER."""
    HUMAN = "Human"
    WEAPON = "Weapon"
    VEHICLE = "Vehicle"
    OTHER = "Other"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "ThreatLabel":
        for member in (cls.HUMAN, cls.WEAPON, cls.VEHICLE):
            if label == member.value:
                return member
        return cls.OTHER

    @property
    def color(self) -> Color:
        return _COLORS[self]


_COLORS = {
    ThreatLabel.HUMAN: (0, 255, 255),    # yellow
    ThreatLabel.WEAPON: (0, 0, 255),     # red
    ThreatLabel.VEHICLE: (255, 0, 0),    # blue
    ThreatLabel.OTHER: (0, 255, 0),      # green
}


def label_color(label: Optional[str]) -> Color:
    return ThreatLabel.from_label(label).color
