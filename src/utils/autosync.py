# periodic, re-entrancy guarded catalog sync from a spreadsheet source
import asyncio
import os
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from db import bulk_sync, models
from db.errors import CatalogError
from utils.logger import get_logger

_logger = get_logger(__name__)

AUTOSYNC_INTERVAL = float(os.getenv("CLASSDESK_AUTOSYNC_INTERVAL", "300"))

SourceLoader = Callable[[], Awaitable[List[Mapping[str, Any]]]]


class AutoSync:
    """
    Runs bulk_sync.reconcile() on the rows returned by `source_loader`,
    every `interval` seconds once started. An overlapping run is skipped,
    not queued.
    """

    def __init__(
        self,
        source_loader: SourceLoader,
        interval: float = AUTOSYNC_INTERVAL,
        on_report: Optional[Callable[[models.SyncReport], None]] = None,
    ) -> None:
        self.source_loader = source_loader
        self.interval = interval
        self.on_report = on_report
        self.last_report: Optional[models.SyncReport] = None
        self.last_error: Optional[str] = None
        self._running = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def trigger(self) -> Optional[models.SyncReport]:
        """One sync now. Returns None when a sync is already in progress."""
        if self._running.locked():
            _logger.info("Sync already running, skipping this trigger")
            return None
        async with self._running:
            try:
                rows = await self.source_loader()
                report = await bulk_sync.reconcile(rows, update_only=False)
            except CatalogError as e:
                self.last_error = str(e)
                _logger.warning(f"Auto sync failed: {e}")
                raise
            self.last_error = None
            self.last_report = report
        if self.on_report:
            self.on_report(report)
        return report

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.trigger()
            except CatalogError:
                # already logged; the next tick retries
                continue
            except Exception as e:
                self.last_error = str(e) or type(e).__name__
                _logger.exception("Auto sync tick failed")

    def start(self) -> None:
        if self.is_started:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        _logger.info(f"Auto sync started, every {self.interval:g}s")

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            _logger.exception("Auto sync task had failed")
        self._task = None
        _logger.info("Auto sync stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "started": self.is_started,
            "running": self.is_running,
            "last_error": self.last_error,
            "last_report": self.last_report.as_dict() if self.last_report else None,
        }
