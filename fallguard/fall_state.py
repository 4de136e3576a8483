# fallguard/fall_state.py

import logging
from enum import Enum, auto

logger = logging.getLogger(__name__)


class FallState(Enum):
    NORMAL       = auto()
    ACCUMULATING = auto()
    CONFIRMED    = auto()


class FallStateMachine:
    def __init__(self, trigger_frames: int = 60):
        """
        trigger_frames: how many consecutive frames the fall condition must
        hold before the fall is confirmed.
        """
        if trigger_frames < 1:
            raise ValueError("trigger_frames must be at least 1")
        self.trigger_frames = trigger_frames
        self._count     = 0
        self._confirmed = False

    def update(self, fall_condition: bool) -> bool:
        """
        fall_condition: geometric fall or critical risk on this frame
        returns: True only on the frame the fall becomes confirmed
        """
        if fall_condition:
            self._count += 1
        else:
            self._count = 0

        if self._count == self.trigger_frames and not self._confirmed:
            self._confirmed = True
            logger.debug("Fall confirmed after %d frames", self._count)
            return True
        return False

    @property
    def state(self) -> FallState:
        if self._confirmed:
            return FallState.CONFIRMED
        if self._count > 0:
            return FallState.ACCUMULATING
        return FallState.NORMAL

    @property
    def count(self) -> int:
        return self._count

    @property
    def confirmed(self) -> bool:
        return self._confirmed

    def reset(self):
        """External reset signal: clears the alarm and the counter."""
        self._count     = 0
        self._confirmed = False
