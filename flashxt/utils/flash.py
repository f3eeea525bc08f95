"""
Flash Orchestrator - sequential flashing state machine

States:
- IDLE → LISTING → CONFIRMING → FLASHING → REBOOTING → DONE
- LISTING with no classified images goes straight to DONE (no_images)
- CONFIRMING without an affirmative answer goes to ABORTED
- the first failed flash goes to ABORTED

Rules:
- Images are flashed in listing order, one device per run
- Unclassified images are skipped with a warning and never attempted
- Every attempt produces exactly one FlashAttempt and one action-log record
- Nothing is retried and nothing is rolled back; a partial flash stays partial
- Action-log errors are warnings, never a reason to stop
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import Settings
from ..core.errors import FlashCoreError, FlashFailure, UserAborted
from .action_log import ActionLogger
from .bundles import ImageFile, list_images
from .outcome import CommandOutcome, FASTBOOT_FLASH_OUTCOME, FASTBOOT_REBOOT_OUTCOME
from .tools import DeviceTools

logger = logging.getLogger(__name__)

AFFIRMATIVE_ANSWERS = ("y", "yes")


class FlashState(Enum):
    IDLE = "idle"
    LISTING = "listing"
    CONFIRMING = "confirming"
    FLASHING = "flashing"
    REBOOTING = "rebooting"
    ABORTED = "aborted"
    DONE = "done"


class AttemptOutcome(str, Enum):
    OK = "OK"
    FAIL = "FAIL"


@dataclass(frozen=True)
class FlashAttempt:
    serial: str
    partition: str
    image_path: Path
    outcome: AttemptOutcome
    timestamp: datetime
    output: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serial": self.serial,
            "partition": self.partition,
            "image_path": str(self.image_path),
            "outcome": self.outcome.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class FlashPlan:
    """What the caller is asked to confirm"""
    serial: str
    directory: Path
    images: List[ImageFile]

    @property
    def to_flash(self) -> List[ImageFile]:
        return [image for image in self.images if image.classified]

    @property
    def to_skip(self) -> List[ImageFile]:
        return [image for image in self.images if not image.classified]


@dataclass
class FlashRunResult:
    serial: str
    final_state: FlashState
    attempts: List[FlashAttempt] = field(default_factory=list)
    skipped: List[ImageFile] = field(default_factory=list)
    no_images: bool = False
    error: Optional[FlashCoreError] = None

    @property
    def success(self) -> bool:
        return self.final_state == FlashState.DONE and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serial": self.serial,
            "success": self.success,
            "final_state": self.final_state.value,
            "no_images": self.no_images,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "skipped": [str(image.path) for image in self.skipped],
            "error": self.error.message if self.error else None,
        }


Confirm = Callable[[FlashPlan], Union[str, bool, None]]


class FlashOrchestrator:
    """
    Flashes every classified image in a directory onto one device.

    Usage:
        orchestrator = FlashOrchestrator(settings, tools, action_logger)
        result = orchestrator.run("SERIAL", Path("images"), confirm=lambda plan: input("Flash? [y/N] "))
    """

    def __init__(
        self,
        settings: Settings,
        tools: DeviceTools,
        action_logger: ActionLogger,
        outcome: CommandOutcome = FASTBOOT_FLASH_OUTCOME,
    ):
        self.settings = settings
        self.tools = tools
        self.action_logger = action_logger
        self.outcome = outcome
        self.current_state = FlashState.IDLE
        self.on_state: Optional[Callable[[FlashState], None]] = None

    def _transition(self, new_state: FlashState, message: str = "") -> None:
        old_state = self.current_state
        self.current_state = new_state
        logger.info(f"[STATE: {old_state.value} → {new_state.value}] {message}".rstrip(), extra={"step": new_state.value})
        if self.on_state:
            self.on_state(new_state)

    def _record(self, device_label: str, action: str, outcome: str) -> None:
        try:
            self.action_logger.record(device_label, action, outcome)
        except Exception as e:
            logger.warning(f"Could not write action log ({action}={outcome}): {e}")

    def is_affirmative(self, serial: str, answer: Union[str, bool, None]) -> bool:
        if answer is True:
            return not self.settings.REQUIRE_TYPED_CONFIRMATION
        if not isinstance(answer, str):
            return False
        if self.settings.REQUIRE_TYPED_CONFIRMATION:
            return answer.strip() == f"FLASH {serial}"
        return answer.strip().lower() in AFFIRMATIVE_ANSWERS

    def run(self, serial: str, directory: Path, confirm: Confirm) -> FlashRunResult:
        """Run one flash sequence; returns when DONE or ABORTED"""
        self.current_state = FlashState.IDLE
        directory = Path(directory)

        self._transition(FlashState.LISTING, f"Scanning {directory}")
        images = list_images(directory)
        if not images:
            logger.info(f"No images found in {directory}")
            self._transition(FlashState.DONE, "Nothing to flash")
            return FlashRunResult(serial=serial, final_state=FlashState.DONE, no_images=True)

        plan = FlashPlan(serial=serial, directory=directory, images=images)
        if not plan.to_flash:
            logger.warning(f"No flashable images in {directory}; {len(plan.to_skip)} unclassified")
            self._transition(FlashState.DONE, "Nothing to flash")
            return FlashRunResult(serial=serial, final_state=FlashState.DONE, skipped=plan.to_skip, no_images=True)

        result = FlashRunResult(serial=serial, final_state=FlashState.CONFIRMING, skipped=plan.to_skip)

        self._transition(FlashState.CONFIRMING, f"{len(plan.to_flash)} image(s) to flash on {serial}")
        if not self.is_affirmative(serial, confirm(plan)):
            self._transition(FlashState.ABORTED, "Not confirmed")
            self._record(serial, "flash", "aborted_by_user")
            result.final_state = FlashState.ABORTED
            result.error = UserAborted(serial)
            return result

        self._transition(FlashState.FLASHING)
        for image in images:
            if not image.classified:
                logger.warning(f"Skipping unclassified image: {image.filename}")
                continue

            attempt = self._flash_one(serial, image)
            result.attempts.append(attempt)

            if attempt.outcome == AttemptOutcome.FAIL:
                failure = FlashFailure(serial, image.partition, image.path)
                logger.error(failure.message)
                self._transition(FlashState.ABORTED, f"Stopped after {image.partition} failed")
                self._record(serial, "flash", "aborted")
                result.final_state = FlashState.ABORTED
                result.error = failure
                return result

        self._transition(FlashState.REBOOTING, f"Rebooting {serial}")
        reboot = self.tools.reboot(serial)
        if not FASTBOOT_REBOOT_OUTCOME.is_success(reboot.output):
            logger.warning("Reboot command may not have been accepted. Manually reboot device.")
        self._record(serial, "flash", "completed")

        self._transition(FlashState.DONE, f"Flashed {len(result.attempts)} image(s)")
        result.final_state = FlashState.DONE
        return result

    def _flash_one(self, serial: str, image: ImageFile) -> FlashAttempt:
        context = {"serial": serial, "partition": image.partition}
        logger.info(f"Flashing {image.partition} from {image.filename}", extra=context)
        process = self.tools.flash(serial, image.partition, image.path)
        ok = self.outcome.is_success(process.output)
        attempt = FlashAttempt(
            serial=serial,
            partition=image.partition,
            image_path=image.path,
            outcome=AttemptOutcome.OK if ok else AttemptOutcome.FAIL,
            timestamp=datetime.now(timezone.utc),
            output=process.output,
        )
        self._record(serial, f"flash:{image.partition}", attempt.outcome.value)
        if ok:
            logger.info(f"✓ {image.partition} flashed", extra=context)
        else:
            logger.error(f"✗ {image.partition} failed: {process.output[-200:] or 'no output'}", extra=context)
        return attempt


__all__ = [
    "FlashState",
    "AttemptOutcome",
    "FlashAttempt",
    "FlashPlan",
    "FlashRunResult",
    "FlashOrchestrator",
]
