import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional

import requests

from .config import CHUNK_SIZE, DOWNLOAD_TIMEOUT, USER_AGENT
from .errors import FilesystemError, IntegrityError, TransportError

logger = logging.getLogger(__name__)


def create_session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    return session


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def write_bytes(dest: Path, data: bytes) -> None:
    """Create missing parents and write ``data`` to ``dest``, replacing any file there."""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FilesystemError(dest.parent, f"Failed to create directory ({exc.strerror or exc})") from exc
    try:
        f = dest.open("wb")
    except OSError as exc:
        raise FilesystemError(dest, f"Failed to create file ({exc.strerror or exc})") from exc
    try:
        with f:
            f.write(data)
    except OSError as exc:
        # Truncated by open(); a half-written file is worse than none.
        try:
            dest.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove partial file %s", dest)
        raise FilesystemError(dest, f"Failed to write file ({exc.strerror or exc})") from exc


def download_bytes(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    progress_cb: Optional[Callable[[float], None]] = None,
    size_hint: Optional[int] = None,
) -> bytes:
    http = session or create_session()
    try:
        with http.get(url, stream=True, timeout=timeout) as resp:
            if not 200 <= resp.status_code < 300:
                raise TransportError(url, status=resp.status_code, body=resp.text or "")
            total = size_hint or int(resp.headers.get("Content-Length", 0) or 0)
            buffer = bytearray()
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                buffer.extend(chunk)
                if progress_cb and total:
                    progress_cb(min(len(buffer) / total, 1.0))
    except requests.RequestException as exc:
        raise TransportError(url, reason=str(exc)) from exc
    return bytes(buffer)


def fetch_and_store(
    url: str,
    dest: Path,
    expected_digest: Optional[str] = None,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DOWNLOAD_TIMEOUT,
    progress_cb: Optional[Callable[[float], None]] = None,
    size_hint: Optional[int] = None,
) -> Path:
    """Download ``url`` into ``dest``.

    The digest is checked against the in-memory body before anything touches
    the disk, so a corrupt download never lands at ``dest``. Nothing is
    retried; failures surface as TransportError, IntegrityError or
    FilesystemError.
    """
    dest = Path(dest)
    data = download_bytes(url, session=session, timeout=timeout, progress_cb=progress_cb, size_hint=size_hint)
    if expected_digest:
        actual = sha256_bytes(data)
        if actual.lower() != expected_digest.lower():
            raise IntegrityError(url, expected_digest.lower(), actual)
    write_bytes(dest, data)
    logger.debug("Stored %d bytes from %s at %s", len(data), url, dest)
    return dest
