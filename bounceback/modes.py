"""
Processing modes: the quality/speed trade-off.

- fast: half resolution search, two strategies, sequential
- balanced: three quarter resolution, all standard strategies in parallel
- accurate: full resolution, all strategies, stricter Hough accumulator
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class InvalidMode(ValueError):
    """Raised by set_mode for anything other than fast/accurate/balanced."""
    pass


class Mode(Enum):
    FAST = "fast"
    ACCURATE = "accurate"
    BALANCED = "balanced"

    @classmethod
    def parse(cls, value: Union['Mode', str]) -> 'Mode':
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidMode(f"unknown mode: {value!r} (expected fast, accurate or balanced)")


@dataclass(frozen=True)
class ModeParameters:
    """Detector settings selected by a mode."""
    search_scale: float = 0.75          # Resolution factor for ball search
    strategies: Tuple[str, ...] = ('motion', 'color', 'shape', 'soccer')
    confidence_threshold: float = 0.5   # Fusion drops candidates below this
    hough_dp: float = 1.2               # Accumulator resolution (1 = full)
    parallel: bool = True               # Fan strategies out to the thread pool

    def to_dict(self) -> dict:
        return {
            'search_scale': self.search_scale,
            'strategies': list(self.strategies),
            'confidence_threshold': self.confidence_threshold,
            'hough_dp': self.hough_dp,
            'parallel': self.parallel,
        }


DEFAULT_MODE_PARAMETERS: Dict[Mode, ModeParameters] = {
    Mode.FAST: ModeParameters(
        search_scale=0.5,
        strategies=('motion', 'color'),
        confidence_threshold=0.6,
        hough_dp=1.5,
        parallel=False,
    ),
    Mode.BALANCED: ModeParameters(),
    Mode.ACCURATE: ModeParameters(
        search_scale=1.0,
        strategies=('motion', 'color', 'shape', 'soccer', 'frequency'),
        confidence_threshold=0.4,
        hough_dp=1.0,
        parallel=True,
    ),
}


def parameters_from_dict(base: ModeParameters, data: dict) -> ModeParameters:
    """Override selected fields of a parameter set."""
    changes = {}
    for key, value in data.items():
        if key == 'strategies':
            changes[key] = tuple(value)
        elif hasattr(base, key):
            changes[key] = value
        else:
            logger.warning("[ModeController] Ignoring unknown mode parameter '%s'", key)
    return replace(base, **changes)


class ModeController:
    """Holds the current mode. Last writer wins."""

    def __init__(
        self,
        mode: Union[Mode, str] = Mode.BALANCED,
        parameters: Optional[Dict[Mode, ModeParameters]] = None
    ):
        self._lock = threading.Lock()
        self._parameters = dict(DEFAULT_MODE_PARAMETERS)
        if parameters:
            self._parameters.update(parameters)
        self._mode = Mode.parse(mode)

    def set_mode(self, mode: Union[Mode, str]):
        """
        Switch mode.

        Raises:
            InvalidMode: for an unknown mode; the current mode is kept.
        """
        new_mode = Mode.parse(mode)
        with self._lock:
            previous, self._mode = self._mode, new_mode
        if previous != new_mode:
            logger.info("[ModeController] Mode %s -> %s", previous.value, new_mode.value)

    @property
    def mode(self) -> Mode:
        with self._lock:
            return self._mode

    @property
    def parameters(self) -> ModeParameters:
        with self._lock:
            return self._parameters[self._mode]
