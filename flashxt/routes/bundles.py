from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic import BaseModel
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import uuid

from ..core.errors import DownloadFailure, ExtractionExhausted
from ..utils.bundles import BundleAcquirer, list_images

router = APIRouter()
logger = logging.getLogger(__name__)


class DownloadRequest(BaseModel):
    url: str
    name: Optional[str] = None


class ExtractRequest(BaseModel):
    archive_path: str
    destination: Optional[str] = None


def _image_listing(directory: Path) -> Dict[str, Any]:
    return {
        "directory": str(directory),
        "images": [
            {"path": str(image.path), "filename": image.filename, "partition": image.partition}
            for image in list_images(directory)
        ],
    }


def _run_download(acquirer: BundleAcquirer, progress: Dict[str, Any], request: DownloadRequest) -> None:
    def on_progress(transferred: int, total: int) -> None:
        progress["downloaded"] = transferred
        progress["total"] = total
        progress["progress"] = round(transferred / total * 100, 1) if total > 0 else None

    try:
        result = acquirer.acquire(request.url, request.name, on_progress=on_progress)
    except DownloadFailure as e:
        progress.update(status="download_failed", error=e.message)
        return
    except ExtractionExhausted as e:
        progress.update(
            status="extraction_failed",
            error=e.message,
            archive_path=str(e.archive),
            destination=str(e.destination),
        )
        return
    except Exception as e:
        logger.exception(f"Bundle acquisition for {request.url} failed unexpectedly")
        progress.update(status="failed", error=str(e) or type(e).__name__)
        return

    progress.update(
        status="completed",
        extractor=result.extractor,
        directory=str(result.destination),
        image_count=len(result.images),
        error=None,
    )


def _track_download(registry: Dict[str, Dict[str, Any]], download_id: str, progress: Dict[str, Any], limit: int) -> None:
    """Register a download, dropping the oldest finished entries beyond limit"""
    finished = [key for key, entry in registry.items() if entry["status"] != "downloading"]
    while finished and len(registry) >= limit:
        registry.pop(finished.pop(0))
    registry[download_id] = progress


@router.post("/download")
def start_download(request: DownloadRequest, background_tasks: BackgroundTasks, http_request: Request):
    """Download and extract a firmware bundle in the background"""
    state = http_request.app.state
    download_id = str(uuid.uuid4())

    progress = {
        "status": "downloading",
        "url": request.url,
        "progress": 0.0,
        "downloaded": 0,
        "total": 0,
        "error": None,
    }
    _track_download(state.download_progress, download_id, progress, state.settings.DOWNLOAD_HISTORY_LIMIT)

    background_tasks.add_task(_run_download, state.acquirer, progress, request)

    return {"download_id": download_id, "status": "started", "message": "Download started"}


@router.get("/download/{download_id}/status")
def get_download_status(download_id: str, request: Request):
    """Get download status and progress"""
    progress = request.app.state.download_progress.get(download_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Download not found")
    return progress


@router.post("/extract")
def extract_archive(request: ExtractRequest, http_request: Request):
    """Retry extraction of an archive that is already on disk"""
    acquirer: BundleAcquirer = http_request.app.state.acquirer
    archive = Path(request.archive_path).expanduser()
    if not archive.is_file():
        raise HTTPException(status_code=404, detail=f"Archive not found: {archive}")

    destination = Path(request.destination).expanduser() if request.destination else None
    # ExtractionExhausted is answered with 422 by the app-level handler
    result = acquirer.extract(archive, destination)

    listing = _image_listing(result.destination)
    listing["extractor"] = result.extractor
    return listing


@router.get("/images")
def get_images(directory: str):
    """List image files in a directory with their partition labels"""
    path = Path(directory).expanduser()
    if not path.is_dir():
        raise HTTPException(status_code=404, detail=f"Directory not found: {path}")
    return _image_listing(path)
