import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.database import DeviceRecord
from .tools import DeviceTools

logger = logging.getLogger(__name__)

# DeviceInfo field -> Android system property
DEVICE_PROPERTIES = {
    "model": "ro.product.model",
    "brand": "ro.product.brand",
    "device": "ro.product.device",
    "android_version": "ro.build.version.release",
    "sdk_version": "ro.build.version.sdk",
}


@dataclass
class DeviceInfo:
    serial: str
    model: str = ""
    brand: str = ""
    device: str = ""
    android_version: str = ""
    sdk_version: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def fetch_device_info(tools: DeviceTools, serial: str) -> DeviceInfo:
    """Read identification properties from a device in ADB mode"""
    values = {field: tools.getprop(serial, prop) for field, prop in DEVICE_PROPERTIES.items()}
    info = DeviceInfo(serial=serial, **values)
    logger.info(f"Device {serial}: {info.brand} {info.model} (Android {info.android_version})")
    return info


def save_device_info(session_factory: sessionmaker, info: DeviceInfo) -> bool:
    """Store a devices row; False if the database refused it"""
    try:
        with session_factory() as session:
            session.add(DeviceRecord(**info.to_dict()))
            session.commit()
    except SQLAlchemyError as e:
        logger.warning(f"Could not save device info for {info.serial}: {e}")
        return False
    logger.info(f"[OK] Device info saved to database ({info.serial})")
    return True


def write_details_file(info: DeviceInfo, path: Path) -> bool:
    """Write the plain-text device report"""
    lines = [
        f"Serial: {info.serial}",
        f"Model: {info.model}",
        f"Brand: {info.brand}",
        f"Device: {info.device}",
        f"Android Version: {info.android_version}",
        f"SDK Version: {info.sdk_version}",
    ]
    try:
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        logger.warning(f"Unable to write {path}: {e}")
        return False
    logger.info(f"[OK] Device info saved to {path}")
    return True
