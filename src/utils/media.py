# best-effort removal of uploaded class videos
import asyncio
import os
from typing import Iterable, Optional, Set

from utils.logger import get_logger

_logger = get_logger(__name__)

MEDIA_DIR = os.getenv("CLASSDESK_MEDIA_DIR", "uploads")
MEDIA_URL_PREFIX = "/uploads/"

_pending: Set[asyncio.Task] = set()


def local_media_file(video: Optional[str]) -> Optional[str]:
    """
    Map a stored class_video value to a file under MEDIA_DIR.
    External URLs and empty values map to None.
    """
    if not video or not video.startswith(MEDIA_URL_PREFIX):
        return None
    name = os.path.basename(video)
    if not name:
        return None
    return os.path.join(MEDIA_DIR, name)


def _remove(path: str) -> None:
    try:
        os.remove(path)
        _logger.debug(f"Removed media file {path}")
    except FileNotFoundError:
        _logger.debug(f"Media file already gone: {path}")
    except OSError as e:
        _logger.warning(f"Could not remove media file {path}: {e}")


async def _remove_all(paths: Iterable[str]) -> None:
    for path in paths:
        await asyncio.to_thread(_remove, path)


def schedule_delete(videos: Iterable[Optional[str]]) -> None:
    """
    Queue deletion of the local files behind the given video values.
    Never raises and never blocks the caller; failures are only logged.
    """
    paths = [p for p in (local_media_file(v) for v in videos) if p]
    if not paths:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        for path in paths:
            _remove(path)
        return
    task = loop.create_task(_remove_all(paths))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def drain() -> None:
    """Wait for every queued deletion of the current loop to finish."""
    loop = asyncio.get_running_loop()
    tasks = [t for t in _pending if t.get_loop() is loop]
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
