"""Run the dashboard API under uvicorn with a file log beside the state database."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import CoreSettings
from .paths import get_log_path, get_store_path
from .services import open_services
from .webapp import create_app

logger = logging.getLogger(__name__)

BROWSER_DELAY_SECONDS = 1.0


def attach_file_log(path: Path, level: int = logging.INFO) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    logging.getLogger("screen_balance").addHandler(handler)
    return handler


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[CoreSettings] = None,
    open_browser: bool = True,
    log_level: str = "info",
) -> None:
    """Serve the focus and usage API until interrupted, then release the store."""
    services = open_services(db_path or get_store_path(), settings or CoreSettings())
    handler = attach_file_log(get_log_path())
    app = create_app(services=services)

    if open_browser:
        timer = threading.Timer(
            BROWSER_DELAY_SECONDS, _open_docs, args=(f"http://{host}:{port}/docs",)
        )
        timer.daemon = True
        timer.start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    try:
        uvicorn.run(app, host=host, port=port, log_level=log_level)
    finally:
        services.shutdown()
        logging.getLogger("screen_balance").removeHandler(handler)
        handler.close()


def _open_docs(url: str) -> None:
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
