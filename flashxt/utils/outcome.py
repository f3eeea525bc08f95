"""Marker-based success detection for tool output.

fastboot does not surface a reliable exit status across platforms, so a
command is judged by the text it printed. The marker strings live here as
data so they can be adjusted when a tool changes its wording.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class CommandOutcome:
    success_markers: Tuple[str, ...]
    failure_markers: Tuple[str, ...] = ()

    def is_success(self, output: str) -> bool:
        """True when a success marker is present and no failure marker is"""
        text = (output or "").lower()
        if not any(marker.lower() in text for marker in self.success_markers):
            return False
        return not any(marker.lower() in text for marker in self.failure_markers)


# "Sending 'boot' OKAY ... Writing 'boot' FAILED (remote: ...)" is a failure.
FASTBOOT_FLASH_OUTCOME = CommandOutcome(
    success_markers=("Finished", "OKAY"),
    failure_markers=("FAILED", "error:"),
)

FASTBOOT_REBOOT_OUTCOME = CommandOutcome(
    success_markers=("Rebooting", "Finished", "OKAY"),
    failure_markers=("FAILED", "error:"),
)
