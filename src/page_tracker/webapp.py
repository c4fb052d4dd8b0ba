"""FastAPI application bridging the host editor, the UI and the tracker."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import TrackerSettings, to_ms
from .context import TrackerContext
from .db import LocalCache
from .driver import TickDriver
from .emitter import MessageOutbox, StatusEmitter
from .host import HOST_EVENT_TYPES, HostContext, ReportedHostState
from .messages import parse_command
from .paths import get_db_path
from .remote import HttpRemoteStore, RemoteStore
from .sync import PersistenceSynchronizer
from .tracker import TrackingStateMachine

logger = logging.getLogger(__name__)


class TrackerRunner:
    """Manage the tick driver in a background thread."""

    def __init__(
        self,
        db_path: Path,
        settings: TrackerSettings,
        remote: Optional[RemoteStore] = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings
        self.host = ReportedHostState()
        self.outbox = MessageOutbox()
        self.cache = LocalCache(self.db_path)
        self.context = TrackerContext(settings=settings)
        self.synchronizer = PersistenceSynchronizer(self.cache, settings, remote)
        self.emitter = StatusEmitter(self.outbox, self.context)
        self.tracker = TrackingStateMachine(
            self.context, self.host, self.synchronizer, self.emitter
        )
        self.driver = TickDriver(self.tracker, settings)
        self.synchronizer.bind(self.driver.post)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._wanted = False

    def start(self) -> None:
        with self._lock:
            self._wanted = True
            self._start_locked()

    def resume(self) -> None:
        """Restart the driver after the host closed, unless the runner was stopped."""
        with self._lock:
            if self._wanted and not (self._thread and self._thread.is_alive()):
                logger.info("Host context reported again; restarting tracker.")
                self._start_locked()

    def _start_locked(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self.driver.run_until_stopped,
            args=(stop_event,),
            name="page-tracker-driver",
            daemon=True,
        )
        self._thread = thread
        self._stop_event = stop_event
        thread.start()
        logger.info("Tracker background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            self._wanted = False
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Tracker background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def post(self, event: Any) -> None:
        self.driver.post(event)


class HostContextPayload(BaseModel):
    file_id: str = Field(min_length=1)
    page_id: str = Field(min_length=1)
    file_name: str = ""
    page_name: str = ""
    has_selection: bool = False
    viewport: Optional[tuple[float, float, float]] = None

    model_config = ConfigDict(extra="forbid")


class HostEventPayload(BaseModel):
    type: Literal["selection-changed", "document-changed", "page-changed", "host-closing"]

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    remote_url: Optional[str] = None,
    remote_token: Optional[str] = None,
    autostart: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or get_db_path())
    resolved_settings = settings or TrackerSettings()
    remote: Optional[RemoteStore] = None
    if remote_url:
        remote = HttpRemoteStore(
            remote_url,
            timeout=resolved_settings.remote_timeout.total_seconds(),
            auth_token=remote_token,
        )
    runner = TrackerRunner(resolved_db_path, resolved_settings, remote)

    app = FastAPI(title="Page Time Tracker", version="0.3.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.tracker_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if autostart:
            runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        tracker_runner: TrackerRunner = request.app.state.tracker_runner
        return {
            "tracker_running": tracker_runner.is_running(),
            "database_path": str(request.app.state.db_path),
            "remote_enabled": tracker_runner.synchronizer.remote is not None,
            "inactivity_ms": resolved_settings.inactivity_threshold_ms,
            "save_ms": to_ms(resolved_settings.save_interval),
            "remote_sync_ms": resolved_settings.remote_sync_interval_ms,
            "pending_events": tracker_runner.driver.pending(),
            "remote_in_flight": tracker_runner.synchronizer.remote_in_flight,
        }

    @app.get("/api/messages")
    def messages(request: Request) -> Dict[str, Any]:
        return {"messages": request.app.state.tracker_runner.outbox.drain()}

    @app.post("/api/commands", status_code=202)
    def command(payload: Dict[str, Any], request: Request) -> Dict[str, Any]:
        try:
            parsed = parse_command(payload)
        except ValidationError as exc:
            detail = exc.errors(include_url=False, include_context=False, include_input=False)
            raise HTTPException(status_code=400, detail=detail) from exc
        request.app.state.tracker_runner.post(parsed)
        return {"accepted": parsed.type}

    @app.post("/api/host/context", status_code=204)
    def host_context(payload: HostContextPayload, request: Request) -> None:
        request.app.state.tracker_runner.host.update(
            HostContext(
                file_id=payload.file_id,
                page_id=payload.page_id,
                file_name=payload.file_name,
                page_name=payload.page_name,
                has_selection=payload.has_selection,
                viewport=payload.viewport,
            )
        )
        request.app.state.tracker_runner.resume()

    @app.post("/api/host/events", status_code=202)
    def host_event(payload: HostEventPayload, request: Request) -> Dict[str, Any]:
        event = HOST_EVENT_TYPES[payload.type]()
        request.app.state.tracker_runner.post(event)
        return {"accepted": payload.type}

    return app
