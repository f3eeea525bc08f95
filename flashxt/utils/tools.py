import os
import shutil
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import List, Optional, Dict, Any

from ..config import Settings
from .process import ProcessRunner, ProcessResult

logger = logging.getLogger(__name__)

# "SERIAL\tdevice" is the only state adb reports for a usable, authorized device
ADB_ONLINE_MARKER = "\tdevice"
FASTBOOT_STATE_TAG = "fastboot"


class Transport(str, Enum):
    ADB = "adb"
    FASTBOOT = "fastboot"


@dataclass(frozen=True)
class Device:
    """A device seen during one discovery scan"""
    transport: Transport
    serial: str
    state: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["transport"] = self.transport.value
        return data


def parse_adb_devices(output: str) -> Optional[Device]:
    """Return the first online device in `adb devices` output"""
    for line in output.splitlines():
        line = line.rstrip()
        if not line:
            continue
        if ADB_ONLINE_MARKER in line:
            serial = line.split(ADB_ONLINE_MARKER, 1)[0].strip()
            if serial:
                return Device(transport=Transport.ADB, serial=serial, state="device")
    return None


def parse_fastboot_devices(output: str) -> List[Device]:
    """Return every device in `fastboot devices` output, in tool order"""
    devices: List[Device] = []
    for line in output.splitlines():
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 2 or parts[1].lower() != FASTBOOT_STATE_TAG:
            logger.debug(f"Skipping non-device fastboot line: {line!r}")
            continue
        devices.append(Device(transport=Transport.FASTBOOT, serial=parts[0], state=parts[1]))
    return devices


class DeviceTools:
    """adb/fastboot invocations used by discovery and flashing"""

    def __init__(self, settings: Settings, runner: Optional[ProcessRunner] = None):
        self.settings = settings
        self.runner = runner or ProcessRunner(timeout=settings.COMMAND_TIMEOUT_SEC)

    def run_adb(self, args: List[str], serial: Optional[str] = None) -> ProcessResult:
        """Run an ADB command"""
        cmd = [self.settings.ADB_PATH]
        if serial:
            cmd.extend(["-s", serial])
        cmd.extend(args)
        return self.runner.run(cmd)

    def run_fastboot(self, args: List[str], serial: Optional[str] = None) -> ProcessResult:
        """Run a Fastboot command"""
        cmd = [self.settings.FASTBOOT_PATH]
        if serial:
            cmd.extend(["-s", serial])
        cmd.extend(args)
        return self.runner.run(cmd)

    def adb_device(self) -> Optional[Device]:
        """First online device in ADB mode, or None"""
        result = self.run_adb(["devices"])
        if not result.started:
            return None
        device = parse_adb_devices(result.output)
        if device:
            logger.info(f"ADB device online: {device.serial}")
        else:
            logger.info("No online ADB device")
        return device

    def fastboot_devices(self) -> List[Device]:
        """All devices in bootloader/fastboot mode"""
        result = self.run_fastboot(["devices"])
        if not result.started:
            return []
        devices = parse_fastboot_devices(result.output)
        logger.info(f"Found {len(devices)} fastboot device(s): {[d.serial for d in devices]}")
        return devices

    def flash(self, serial: str, partition: str, image_path: Path) -> ProcessResult:
        return self.run_fastboot(["flash", partition, str(image_path)], serial=serial)

    def reboot(self, serial: str) -> ProcessResult:
        return self.run_fastboot(["reboot"], serial=serial)

    def getprop(self, serial: str, prop: str) -> str:
        """Read one Android system property; empty string when unavailable"""
        result = self.run_adb(["shell", "getprop", prop], serial=serial)
        if not result.succeeded:
            logger.warning(f"getprop {prop} failed on {serial}")
            return ""
        return result.output.strip()

    def check_tool(self, tool_path: str) -> bool:
        """Check if a tool is available at the given path or on PATH"""
        resolved = tool_path if os.path.isabs(tool_path) else shutil.which(tool_path)
        if not resolved or not os.path.exists(resolved):
            return False
        return self.runner.run([resolved, "--version"]).succeeded
