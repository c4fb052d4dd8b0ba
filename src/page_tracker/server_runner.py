"""Run the tracker's HTTP surface under uvicorn."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import TrackerSettings
from .paths import get_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    remote_url: Optional[str] = None,
    remote_token: Optional[str] = None,
    open_docs: bool = False,
    log_level: str = "info",
) -> None:
    """Serve the API; the tracker loop starts and stops with the server."""
    app = create_app(
        db_path=db_path or get_db_path(),
        settings=settings or TrackerSettings(),
        remote_url=remote_url,
        remote_token=remote_token,
    )
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level))
    logger.info(
        "Serving tracker API on http://%s:%d (ledger at %s, remote %s)",
        host,
        port,
        app.state.db_path,
        "enabled" if remote_url else "disabled",
    )

    if open_docs:
        threading.Thread(
            target=_open_when_started,
            args=(server, f"http://{host}:{port}/docs"),
            name="page-tracker-docs",
            daemon=True,
        ).start()
    server.run()


def _open_when_started(server: uvicorn.Server, url: str, timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while not server.started:
        if time.monotonic() > deadline:
            logger.warning("Server not up after %.0fs; not opening %s", timeout, url)
            return
        time.sleep(0.1)
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to open %s", url)
