"""
Detection result types shared by the ball and target detectors.

Absence of a detection is always represented by None, never by a
zero-confidence Detection.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Iterator, Optional, Tuple

from .geometry import Region


class DetectorKind(Enum):
    """Which strategy produced a detection."""
    COLOR = "color"
    SHAPE = "shape"
    MOTION = "motion"
    SOCCER = "soccer"
    FREQUENCY = "frequency"
    TARGET = "target"


@dataclass(frozen=True)
class Detection:
    """A located object in one frame."""
    x: float                  # Center X in pixels (sub-pixel)
    y: float                  # Center Y in pixels (sub-pixel)
    confidence: float         # 0-1
    kind: DetectorKind
    radius: Optional[float] = None
    label: Optional[str] = None      # Colour name for targets / ball
    number: Optional[int] = None     # Target rank, 1 = most confident
    quadrant: Optional[int] = None   # Goal quadrant 1-4
    area: Optional[float] = None     # Blob area in pixels
    bbox: Optional[Tuple[int, int, int, int]] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def with_fields(self, **changes) -> 'Detection':
        """Copy with some fields replaced."""
        values = asdict(self)
        values['kind'] = self.kind
        values.update(changes)
        return Detection(**values)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['kind'] = self.kind.value
        if self.bbox is not None:
            data['bbox'] = list(self.bbox)
        return data


@dataclass(frozen=True)
class TargetSet:
    """
    Targets found inside a goal region.

    Ordered by confidence, highest first; each detection carries its
    rank in `number`.
    """
    targets: Tuple[Detection, ...] = ()
    goal_region: Region = field(default_factory=Region)
    tape_region: Optional[Region] = None

    @classmethod
    def empty(cls, goal_region: Optional[Region] = None) -> 'TargetSet':
        return cls((), goal_region or Region())

    @classmethod
    def ranked(cls, detections, goal_region: Region,
               tape_region: Optional[Region] = None) -> 'TargetSet':
        """Sort by confidence (stable) and number the targets 1..n."""
        ordered = sorted(detections, key=lambda d: d.confidence, reverse=True)
        numbered = tuple(
            d.with_fields(number=i + 1, quadrant=goal_region.quadrant_of(d.x, d.y))
            for i, d in enumerate(ordered)
        )
        return cls(numbered, goal_region, tape_region)

    def __len__(self) -> int:
        return len(self.targets)

    def __iter__(self) -> Iterator[Detection]:
        return iter(self.targets)

    def __getitem__(self, index: int) -> Detection:
        return self.targets[index]

    def __bool__(self) -> bool:
        return bool(self.targets)

    def to_dict(self) -> dict:
        return {
            'targets': [t.to_dict() for t in self.targets],
            'goal_region': self.goal_region.to_dict(),
            'tape_region': self.tape_region.to_dict() if self.tape_region else None,
        }
