import subprocess
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..core.errors import ProcessSpawnFailure

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Combined output and exit status of one external command"""
    command: List[str]
    output: str = ""
    returncode: Optional[int] = None
    started: bool = True
    error: Optional[ProcessSpawnFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.started and self.returncode == 0


class ProcessRunner:
    """Runs adb/fastboot style command lines and captures their output.

    stderr is folded into stdout; fastboot writes most of its progress there.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, command: Sequence[str], timeout: Optional[float] = None) -> ProcessResult:
        cmd = [str(part) for part in command]
        timeout = timeout if timeout is not None else self.timeout
        logger.debug(f"Executing: {' '.join(cmd)}")

        try:
            completed = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Command timed out after {timeout}s: {' '.join(cmd)}")
            partial = e.output or ""
            if isinstance(partial, bytes):
                partial = partial.decode(errors="replace")
            return ProcessResult(command=cmd, output=partial.rstrip(), returncode=-1)
        except OSError as e:
            # Missing binary, permission denied, bad executable format
            failure = ProcessSpawnFailure(cmd, str(e))
            logger.warning(failure.message)
            return ProcessResult(command=cmd, started=False, error=failure)

        output = (completed.stdout or "").rstrip()
        logger.debug(f"Exit {completed.returncode}: {output[:200]}")
        return ProcessResult(command=cmd, output=output, returncode=completed.returncode)
