# Overview: Background timer that runs a sync cycle every N minutes for one application.

from __future__ import annotations

import threading

from flask import Flask

from ..extensions import db


class SyncScheduler:
    """
    One daemon thread per app.

    start() runs a cycle immediately and then one every interval. Calling
    start() again replaces the running timer. Ticks never overlap because a
    single thread runs them one after another.
    """

    def __init__(self, app: Flask, *, context_factory=None):
        self.app = app
        self._context_factory = context_factory
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self.interval_minutes: int | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_minutes: int) -> None:
        with self._lock:
            self._stop_locked()
            self.interval_minutes = interval_minutes
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, interval_minutes * 60),
                name="jewelerp-sync",
                daemon=True,
            )
            self._thread.start()
        self.app.logger.info("Periodic sync started (every %s minutes)", interval_minutes)

    def stop(self) -> None:
        with self._lock:
            was_running = self._stop_locked()
        if was_running:
            self.app.logger.info("Periodic sync stopped")

    def _stop_locked(self) -> bool:
        thread = self._thread
        if thread is None:
            return False
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=5)
        self._thread = None
        return True

    def _run(self, stop_event: threading.Event, interval_seconds: float) -> None:
        while not stop_event.is_set():
            self.tick()
            if stop_event.wait(interval_seconds):
                break

    def tick(self) -> dict | None:
        from . import sync_service
        from .branch_service import build_branch_context

        with self.app.app_context():
            try:
                ctx = self._context_factory() if self._context_factory else build_branch_context()
                return sync_service.perform_sync(ctx)
            except Exception:
                self.app.logger.exception("Scheduled sync tick failed")
                return None
            finally:
                db.session.remove()


def initialize_sync(app: Flask) -> SyncScheduler | None:
    """
    Prepare the branch SyncStatus and start the timer.

    Local-only mode (no cloud store configured) skips the timer entirely.
    """
    from . import sync_service
    from .branch_service import build_branch_context

    with app.app_context():
        if app.extensions.get("cloud_store") is None:
            app.logger.info("Cloud store not configured; sync disabled, running local-only")
            return None

        ctx = build_branch_context()
        sync_service.reset_stale_flag(ctx.branch_id)
        status = sync_service.get_or_create_status(ctx.branch_id)
        db.session.commit()
        enabled = status.sync_enabled
        interval = status.sync_interval_minutes or app.config.get("SYNC_INTERVAL_MINUTES", 5)

    scheduler = app.extensions.get("sync_scheduler")
    if scheduler is None:
        scheduler = SyncScheduler(app)
        app.extensions["sync_scheduler"] = scheduler

    if enabled:
        scheduler.start(interval)
    return scheduler
