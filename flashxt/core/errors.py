"""Error taxonomy for the flashing core.

None of these terminate a run. Download and extraction problems are raised
to the caller so it can retry or fall back to manual extraction; spawn,
flash and abort conditions travel as values on the result objects.
A missing device is not an error at all: discovery returns None or [].
"""

from pathlib import Path
from typing import Optional, Sequence


class FlashCoreError(Exception):
    """Base class for flashing core errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProcessSpawnFailure(FlashCoreError):
    """The external tool could not be started"""

    def __init__(self, command: Sequence[str], reason: str):
        super().__init__(f"Could not start {' '.join(command)}: {reason}")
        self.command = list(command)
        self.reason = reason


class DownloadFailure(FlashCoreError):
    """Network error, non-success HTTP status or unwritable destination"""

    def __init__(self, url: str, reason: str, partial_path: Optional[Path] = None):
        super().__init__(f"Download failed for {url}: {reason}")
        self.url = url
        self.reason = reason
        self.partial_path = partial_path


class ExtractionExhausted(FlashCoreError):
    """Every extractor in the chain ran and none left an image behind"""

    def __init__(self, archive: Path, destination: Path, attempted: Sequence[str]):
        super().__init__(
            f"Could not extract images from {archive.name} "
            f"(tried: {', '.join(attempted) or 'nothing'}). "
            f"Extract it manually into {destination}"
        )
        self.archive = archive
        self.destination = destination
        self.attempted = list(attempted)


class FlashFailure(FlashCoreError):
    """A flash command finished without a success marker"""

    def __init__(self, serial: str, partition: str, image: Path):
        super().__init__(f"Flashing {partition} from {image.name} failed on {serial}")
        self.serial = serial
        self.partition = partition
        self.image = image


class UserAborted(FlashCoreError):
    """The caller declined the destructive step"""

    def __init__(self, serial: str):
        super().__init__(f"Flash of {serial} aborted by user")
        self.serial = serial


class UnsafeDestination(FlashCoreError):
    """Extraction target lies outside the downloads directory"""

    def __init__(self, destination: Path, root: Path):
        super().__init__(f"Refusing to extract into {destination}: it must be inside {root}")
        self.destination = destination
        self.root = root
