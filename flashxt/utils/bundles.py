"""
Bundle acquisition: download a firmware archive, then extract it.

Extraction walks a prioritized chain of mechanisms and stops at the first
one that leaves at least one ``*.img`` file in the destination. Exit codes
of the extraction tools are recorded but never trusted: the directory
contents decide. Exhausting the chain is an ordinary outcome and the caller
is expected to offer manual extraction.
"""

import re
import shutil
import logging
import platform
import tarfile
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence
from urllib.parse import unquote, urlparse

import requests

from ..config import Settings
from ..core.errors import DownloadFailure, ExtractionExhausted, UnsafeDestination
from .partitions import classify
from .process import ProcessRunner

logger = logging.getLogger(__name__)

IMAGE_SUFFIX = ".img"
ARCHIVE_SUFFIXES = (".tar.gz", ".tar.xz", ".tar.bz2", ".tgz", ".zip", ".tar", ".7z")

ProgressObserver = Callable[[int, int], None]


@dataclass(frozen=True)
class ImageFile:
    path: Path
    partition: Optional[str] = None

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def classified(self) -> bool:
        return self.partition is not None


def sanitize_name(name: str) -> str:
    """Replace whitespace and path separators with underscores"""
    cleaned = re.sub(r"[\s/\\]+", "_", name.strip())
    return cleaned or "bundle"


def find_images(directory: Path) -> List[Path]:
    """All *.img files below directory, sorted by path"""
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.rglob("*")
        if p.is_file() and p.suffix.lower() == IMAGE_SUFFIX
    )


def list_images(directory: Path) -> List[ImageFile]:
    """Image files in directory with their partition labels"""
    return [ImageFile(path=p, partition=classify(p.name)) for p in find_images(Path(directory))]


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

class DownloadOutcome(str, Enum):
    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"


@dataclass
class DownloadSession:
    url: str
    destination: Path
    bytes_expected: int = 0
    bytes_transferred: int = 0
    outcome: DownloadOutcome = DownloadOutcome.PENDING
    error: Optional[str] = None

    @property
    def percent(self) -> Optional[float]:
        """Completion percentage, None while the total size is unknown"""
        if self.bytes_expected <= 0:
            return None
        return min(100.0, self.bytes_transferred / self.bytes_expected * 100)

    @property
    def failed(self) -> bool:
        return self.outcome == DownloadOutcome.FAILED


def log_progress(transferred: int, total: int) -> None:
    """Default progress observer"""
    if total > 0:
        logger.debug(f"Download progress: {transferred / total * 100:.1f}% ({transferred}/{total} bytes)")
    else:
        logger.debug(f"Downloaded {transferred} bytes")


class BundleDownloader:
    """Streams a bundle to disk with progress reporting"""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": settings.USER_AGENT})

    def download(
        self,
        url: str,
        destination: Path,
        on_progress: Optional[ProgressObserver] = None,
        resume: bool = False,
    ) -> DownloadSession:
        """
        Download url to destination.

        Progress is reported once per received chunk as
        (bytes_transferred, bytes_total); bytes_total is 0 when the server
        does not announce a length. On failure the partial file is kept.
        """
        destination = Path(destination)
        state = DownloadSession(url=url, destination=destination)
        observer = on_progress or log_progress

        headers = {}
        resume_pos = 0
        if resume and destination.exists():
            resume_pos = destination.stat().st_size
            if resume_pos:
                headers["Range"] = f"bytes={resume_pos}-"
                logger.info(f"Resuming download from byte {resume_pos}...")

        logger.info(f"Downloading {url} -> {destination}")
        response = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            response = self.session.get(
                url,
                headers=headers,
                stream=True,
                timeout=self.settings.DOWNLOAD_TIMEOUT_SEC,
            )
            response.raise_for_status()

            # Server ignored the Range header: start over
            if resume_pos and response.status_code != 206:
                resume_pos = 0

            length = _content_length(response)
            state.bytes_expected = resume_pos + length if length > 0 else 0
            state.bytes_transferred = resume_pos

            with open(destination, "ab" if resume_pos else "wb") as f:
                for chunk in response.iter_content(chunk_size=self.settings.DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    state.bytes_transferred += len(chunk)
                    observer(state.bytes_transferred, state.bytes_expected)

            state.outcome = DownloadOutcome.OK
            logger.info(f"Download complete: {state.bytes_transferred} bytes")
        except requests.RequestException as e:
            state.outcome = DownloadOutcome.FAILED
            state.error = str(e)
            logger.error(f"Download failed: {e}")
        except OSError as e:
            state.outcome = DownloadOutcome.FAILED
            state.error = f"Cannot write {destination}: {e}"
            logger.error(state.error)
        finally:
            if response is not None:
                response.close()

        return state


def _content_length(response) -> int:
    try:
        return int(response.headers.get("content-length") or 0)
    except (TypeError, ValueError):
        return 0


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class Extractor(Protocol):
    name: str

    def extract(self, archive: Path, destination: Path) -> bool:
        """Run the mechanism; the return value is the tool's own verdict"""
        ...


class PythonArchiveExtractor:
    """zipfile/tarfile from the standard library"""

    name = "python"

    def extract(self, archive: Path, destination: Path) -> bool:
        try:
            if zipfile.is_zipfile(archive):
                with zipfile.ZipFile(archive, "r") as zip_ref:
                    zip_ref.extractall(destination)
                return True
            if tarfile.is_tarfile(archive):
                with tarfile.open(archive, "r:*") as tar_ref:
                    tar_ref.extractall(destination, filter="data")
                return True
        except (zipfile.BadZipFile, tarfile.TarError, OSError, EOFError) as e:
            logger.warning(f"Built-in extraction of {archive.name} failed: {e}")
            return False
        logger.info(f"{archive.name} is not a zip or tar archive")
        return False


class CommandExtractor:
    """An external extraction tool; {archive} and {destination} are substituted"""

    def __init__(self, name: str, command: Sequence[str], runner: Optional[ProcessRunner] = None):
        self.name = name
        self.command = list(command)
        self.runner = runner or ProcessRunner()

    def extract(self, archive: Path, destination: Path) -> bool:
        cmd = [
            part.format(archive=str(archive), destination=str(destination))
            for part in self.command
        ]
        result = self.runner.run(cmd)
        if not result.started:
            logger.info(f"{self.name} is not available")
        return result.succeeded


def default_extractors(runner: Optional[ProcessRunner] = None, system: Optional[str] = None) -> List[Extractor]:
    """Extraction chain for the host platform, most preferred first"""
    system = (system or platform.system()).lower()
    chain: List[Extractor] = [
        PythonArchiveExtractor(),
        CommandExtractor("tar", ["tar", "-xf", "{archive}", "-C", "{destination}"], runner),
    ]
    if system != "windows":
        chain.append(CommandExtractor("unzip", ["unzip", "-o", "{archive}", "-d", "{destination}"], runner))
    chain.append(CommandExtractor("7z", ["7z", "x", "-y", "-o{destination}", "{archive}"], runner))
    return chain


@dataclass
class ExtractionResult:
    archive: Path
    destination: Path
    images: List[Path] = field(default_factory=list)
    extractor: Optional[str] = None
    attempted: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.images)


class ArchiveExtractor:
    """Runs the extractor chain until one of them produces images"""

    def __init__(self, extractors: Optional[List[Extractor]] = None):
        self.extractors = extractors if extractors is not None else default_extractors()

    def extract(self, archive: Path, destination: Path) -> ExtractionResult:
        archive = Path(archive)
        destination = Path(destination)
        result = ExtractionResult(archive=archive, destination=destination)
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create {destination}: {e}")
            return result

        for extractor in self.extractors:
            result.attempted.append(extractor.name)
            logger.info(f"Extracting {archive.name} with {extractor.name}")
            try:
                # Leftovers from an earlier run or a previous attempt would
                # otherwise count as this attempt's output.
                _clear_directory(destination, keep=archive)
                reported_ok = extractor.extract(archive, destination)
            except Exception as e:
                logger.warning(f"{extractor.name} raised {type(e).__name__}: {e}")
                continue

            images = find_images(destination)
            if images:
                result.images = images
                result.extractor = extractor.name
                if not reported_ok:
                    logger.info(f"{extractor.name} reported failure but produced {len(images)} image(s)")
                logger.info(f"Extracted {len(images)} image(s) with {extractor.name}")
                return result

            logger.info(f"{extractor.name} produced no images")

        logger.warning(f"No extractor produced images from {archive.name}; manual extraction required")
        return result


def _clear_directory(directory: Path, keep: Optional[Path] = None) -> None:
    keep = keep.resolve() if keep else None
    for entry in directory.iterdir():
        resolved = entry.resolve()
        if keep is not None and (resolved == keep or resolved in keep.parents):
            continue
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as e:
            logger.warning(f"Could not remove {entry}: {e}")


# ---------------------------------------------------------------------------
# Download + extract
# ---------------------------------------------------------------------------

def archive_name_from_url(url: str) -> str:
    name = unquote(Path(urlparse(url).path).name)
    return sanitize_name(name) if name else "bundle.zip"


def strip_archive_suffix(filename: str) -> str:
    lower = filename.lower()
    for suffix in ARCHIVE_SUFFIXES:
        if lower.endswith(suffix) and len(filename) > len(suffix):
            return filename[: -len(suffix)]
    return f"{filename}_extracted"


class BundleAcquirer:
    """Downloads a bundle into DOWNLOADS_DIR and extracts it next to the archive"""

    def __init__(
        self,
        settings: Settings,
        downloader: Optional[BundleDownloader] = None,
        extractor: Optional[ArchiveExtractor] = None,
    ):
        self.settings = settings
        self.downloader = downloader or BundleDownloader(settings)
        self.extractor = extractor or ArchiveExtractor()

    @property
    def downloads_dir(self) -> Path:
        return Path(self.settings.DOWNLOADS_DIR).expanduser()

    def paths_for(self, url: str, name: Optional[str] = None):
        """(archive path, extraction directory) for a download"""
        filename = sanitize_name(name) if name else archive_name_from_url(url)
        archive = self.downloads_dir / filename
        destination = self.downloads_dir / strip_archive_suffix(filename)
        return archive, destination

    def acquire(
        self,
        url: str,
        name: Optional[str] = None,
        on_progress: Optional[ProgressObserver] = None,
    ) -> ExtractionResult:
        """
        Download and extract a bundle.

        Raises:
            DownloadFailure: the transfer did not complete
            ExtractionExhausted: no extractor produced an image file
        """
        archive, destination = self.paths_for(url, name)
        session = self.downloader.download(url, archive, on_progress=on_progress)
        if session.failed:
            partial = archive if archive.exists() else None
            raise DownloadFailure(url, session.error or "unknown error", partial)
        return self.extract(archive, destination)

    def check_destination(self, destination: Path) -> Path:
        """
        Resolve an extraction target; it must be strictly below DOWNLOADS_DIR
        because extraction empties it first.

        Raises:
            UnsafeDestination: the target is DOWNLOADS_DIR itself or outside it
        """
        root = self.downloads_dir.resolve()
        resolved = Path(destination).expanduser().resolve()
        if root not in resolved.parents:
            raise UnsafeDestination(resolved, root)
        return resolved

    def extract(self, archive: Path, destination: Optional[Path] = None) -> ExtractionResult:
        """Extract an archive already on disk; used again after a failed attempt"""
        archive = Path(archive)
        if destination is None:
            destination = archive.parent / strip_archive_suffix(archive.name)
        destination = self.check_destination(destination)
        result = self.extractor.extract(archive, destination)
        if not result.success:
            raise ExtractionExhausted(archive, Path(destination), result.attempted)
        return result


__all__ = [
    "ImageFile",
    "sanitize_name",
    "find_images",
    "list_images",
    "DownloadOutcome",
    "DownloadSession",
    "BundleDownloader",
    "PythonArchiveExtractor",
    "CommandExtractor",
    "default_extractors",
    "ExtractionResult",
    "ArchiveExtractor",
    "BundleAcquirer",
]
