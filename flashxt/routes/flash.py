from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from pathlib import Path
from typing import Optional
import logging

from ..utils.flash import FlashOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class FlashRequest(BaseModel):
    device_serial: str
    directory: str
    confirmation: Optional[str] = None


@router.post("/execute")
def execute_flash(request: FlashRequest, http_request: Request):
    """Flash every classified image in a directory onto a fastboot device"""
    state = http_request.app.state

    directory = Path(request.directory).expanduser()
    if not directory.is_dir():
        raise HTTPException(status_code=404, detail=f"Directory not found: {directory}")

    serials = [device.serial for device in state.tools.fastboot_devices()]
    if request.device_serial not in serials:
        raise HTTPException(
            status_code=404,
            detail=f"Device {request.device_serial} is not in fastboot mode. Found: {serials or 'none'}",
        )

    orchestrator = FlashOrchestrator(state.settings, state.tools, state.action_logger)
    result = orchestrator.run(
        request.device_serial,
        directory,
        confirm=lambda plan: request.confirmation,
    )
    return result.to_dict()


@router.get("/attempts")
def list_attempts(request: Request, device: Optional[str] = None, limit: int = 50):
    """Most recent action-log records"""
    return {"records": request.app.state.action_logger.recent(limit=limit, device_label=device)}
