"""Control API for a running watch using FastAPI."""
from typing import Optional
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import logging
import threading
import time

from cmt.errors import InvalidPattern
from cmt.store import compile_pattern

logger = logging.getLogger(__name__)


class LogLevelRequest(BaseModel):
    """Request to change log level."""
    level: str


class ControlAPI:
    """FastAPI-based control API for a Watcher."""

    def __init__(self, watcher, shutdown: threading.Event):
        """
        Initialize control API.

        Args:
            watcher: The watcher whose state is exposed
            shutdown: Cancellation token of the watch loop
        """
        self.watcher = watcher
        self.shutdown = shutdown
        self.app = FastAPI(title="cmt Control API")
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Health check endpoint."""
            return {"status": "healthy", "timestamp": time.time()}

        @self.app.get("/status")
        async def status():
            """Current watch status."""
            info = self.watcher.status()
            info["stopping"] = self.shutdown.is_set()
            return info

        @self.app.get("/targets/{name}/keys")
        async def target_keys(name: str, pattern: Optional[str] = None):
            """Keys stored for one target, optionally filtered."""
            if name not in self.watcher.targets:
                raise HTTPException(
                    status_code=404,
                    detail=f"Target '{name}' not found. Available targets: {self.watcher.target_names()}"
                )
            try:
                regex = compile_pattern(pattern) if pattern else None
            except InvalidPattern as e:
                raise HTTPException(status_code=400, detail=str(e))

            keys = self.watcher.targets[name].store.keys()
            return {
                "target": name,
                "keys": [k.token for k in keys if regex is None or regex.search(k.token)],
            }

        @self.app.post("/control/stop")
        async def stop():
            """Ask the watch loop to stop and write its snapshot."""
            logger.info("Stop requested through control API")
            self.shutdown.set()
            return {"status": "stopping", "timestamp": time.time()}

        @self.app.post("/control/loglevel")
        async def set_log_level(request: LogLevelRequest):
            """Change log level at runtime."""
            level = request.level.upper()

            if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid log level: {level}"
                )

            logging.getLogger().setLevel(getattr(logging, level))
            logger.info(f"Log level changed to: {level}")

            return {
                "status": "log_level_changed",
                "level": level,
                "timestamp": time.time()
            }

    def run(self, host: str = "127.0.0.1", port: int = 8081):
        """Run the API server."""
        import uvicorn
        uvicorn.run(self.app, host=host, port=port, log_level="warning")

    def start_in_background(self, host: str = "127.0.0.1", port: int = 8081) -> threading.Thread:
        """Run the API server in a daemon thread."""
        thread = threading.Thread(target=self.run, args=(host, port), daemon=True)
        thread.start()
        logger.info(f"Control API listening on {host}:{port}")
        return thread
