from pathlib import Path

from fastapi import APIRouter, HTTPException, Request
import logging

from ..utils.device_info import fetch_device_info, save_device_info, write_details_file
from ..utils.tools import DeviceTools

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
def list_devices(request: Request):
    """List the online ADB device and every fastboot device"""
    tools: DeviceTools = request.app.state.tools

    logger.info("Listing devices - checking ADB and Fastboot...")
    adb_device = tools.adb_device()
    fastboot_devices = tools.fastboot_devices()

    return {
        "adb": adb_device.to_dict() if adb_device else None,
        "fastboot": [device.to_dict() for device in fastboot_devices],
    }


@router.get("/{serial}/info")
def device_info(serial: str, request: Request, save: bool = False):
    """Read model/brand/version properties from an ADB device"""
    tools: DeviceTools = request.app.state.tools

    adb_device = tools.adb_device()
    if adb_device is None or adb_device.serial != serial:
        raise HTTPException(
            status_code=404,
            detail=f"No online ADB device with serial {serial}. Make sure USB debugging is enabled.",
        )

    info = fetch_device_info(tools, serial)
    response = info.to_dict()

    if save:
        settings = request.app.state.settings
        response["saved_to_database"] = save_device_info(request.app.state.session_factory, info)
        response["saved_to_file"] = write_details_file(info, Path(settings.DETAILS_FILE))

    return response
