"""
Phase tracking and status reporting for deployment workflows.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

StatusHandler = Callable[[str], None]


class DeploymentPhase(Enum):
    """Phases of one composite deployment."""
    IDLE = "idle"
    PRE_BUILD = "pre_build"
    BUILDING = "building"
    INSTALLING = "installing"
    LAUNCHING = "launching"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentPhase.DONE, DeploymentPhase.FAILED)


@dataclass
class PhaseInfo:
    """Display information about a phase."""
    name: str
    display_name: str


PHASE_INFO = {
    DeploymentPhase.IDLE: PhaseInfo("idle", "Idle"),
    DeploymentPhase.PRE_BUILD: PhaseInfo("pre_build", "Pre-build Scripts"),
    DeploymentPhase.BUILDING: PhaseInfo("building", "Building"),
    DeploymentPhase.INSTALLING: PhaseInfo("installing", "Installing"),
    DeploymentPhase.LAUNCHING: PhaseInfo("launching", "Launching"),
    DeploymentPhase.DONE: PhaseInfo("done", "Done"),
    DeploymentPhase.FAILED: PhaseInfo("failed", "Failed"),
}

# Forward-only; LAUNCHING is optional and FAILED is reachable from any
# non-terminal phase.
ALLOWED_TRANSITIONS = {
    DeploymentPhase.IDLE: {DeploymentPhase.PRE_BUILD, DeploymentPhase.BUILDING},
    DeploymentPhase.PRE_BUILD: {DeploymentPhase.BUILDING},
    DeploymentPhase.BUILDING: {DeploymentPhase.INSTALLING},
    DeploymentPhase.INSTALLING: {DeploymentPhase.LAUNCHING, DeploymentPhase.DONE},
    DeploymentPhase.LAUNCHING: {DeploymentPhase.DONE},
    DeploymentPhase.DONE: set(),
    DeploymentPhase.FAILED: set(),
}


@dataclass
class StatusUpdate:
    phase: DeploymentPhase
    message: str
    elapsed_time: float  # seconds since the workflow started


class DeploymentTracker:
    """Walks one workflow through its phases and reports each transition."""

    def __init__(self, status_handler: Optional[StatusHandler] = None):
        self.status_handler = status_handler
        self.phase = DeploymentPhase.IDLE
        self.history: List[StatusUpdate] = []
        self.phase_durations: Dict[DeploymentPhase, float] = {}
        self.error: Optional[BaseException] = None
        self.start_time = time.time()
        self.phase_start_time = self.start_time

    def _transition(self, phase: DeploymentPhase, message: str) -> StatusUpdate:
        if phase != DeploymentPhase.FAILED and phase not in ALLOWED_TRANSITIONS[self.phase]:
            raise ValueError(f"Illegal deployment transition {self.phase.value} -> {phase.value}")
        if phase == DeploymentPhase.FAILED and self.phase.is_terminal:
            raise ValueError(f"Cannot fail a deployment that is already {self.phase.value}")

        now = time.time()
        self.phase_durations[self.phase] = now - self.phase_start_time
        self.phase_start_time = now
        self.phase = phase

        update = StatusUpdate(phase=phase, message=message, elapsed_time=now - self.start_time)
        self.history.append(update)
        logger.info(f"[{PHASE_INFO[phase].display_name}] {message}")
        return update

    def enter(self, phase: DeploymentPhase, message: str) -> None:
        """Move to a non-terminal phase and announce it."""
        if phase.is_terminal:
            raise ValueError(f"Use finish() or fail() for {phase.value}")
        self._transition(phase, message)
        self._emit(message)

    def finish(self, message: str) -> None:
        self._transition(DeploymentPhase.DONE, message)
        self._emit(message)

    def fail(self, error: BaseException) -> None:
        """Record a failure. The caller is responsible for presenting it."""
        self.error = error
        self._transition(DeploymentPhase.FAILED, str(error))

    def _emit(self, message: str) -> None:
        if self.status_handler is not None:
            self.status_handler(message)


def create_status_callback(ui_update_func: Callable[[str], None]) -> StatusHandler:
    """Create a status callback that safely updates the UI."""
    def callback(message: str):
        try:
            ui_update_func(message)
        except Exception as e:
            logger.error(f"Status callback error: {e}")
    return callback
