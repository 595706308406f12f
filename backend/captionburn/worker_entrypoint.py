"""Worker entrypoint for container deployments.

Serves a health endpoint next to the Celery worker. The worker is only
reported healthy while ffmpeg and ffprobe can be found, since every render
job needs both.
"""

import json
import logging
import os
import shutil
import subprocess
import sys
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from captionburn.config import Settings, get_settings

logger = logging.getLogger(__name__)


def health_status(settings: Settings | None = None) -> tuple[int, dict[str, str | None]]:
    """HTTP status and body for the worker health check."""
    settings = settings or get_settings()
    tools = {
        "ffmpeg": shutil.which(settings.ffmpeg_path),
        "ffprobe": shutil.which(settings.ffprobe_path),
    }
    status = 200 if all(tools.values()) else 503
    return status, {"status": "healthy" if status == 200 else "degraded", **tools}


class HealthHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path not in ("/health", "/"):
            self.send_response(404)
            self.end_headers()
            return
        status, body = health_status()
        self.send_response(status)
        self.send_header("Content-type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(body).encode())

    def log_message(self, format, *args):
        # Probes hit this every few seconds
        pass


def run_health_server() -> None:
    port = int(os.environ.get("PORT", 8080))
    server = HTTPServer(("0.0.0.0", port), HealthHandler)
    logger.info(f"[WORKER] Health server listening on port {port}")
    server.serve_forever()


def build_worker_command(settings: Settings | None = None, beat: bool = False) -> list[str]:
    """Build the ``celery worker`` argv from settings."""
    settings = settings or get_settings()
    cmd = [
        "celery",
        "-A", "captionburn.celery_app",
        "worker",
        f"--loglevel={settings.log_level.lower()}",
        f"--concurrency={settings.worker_concurrency}",
    ]
    if beat:
        # Embedded beat runs the hourly retention sweep
        cmd.append("--beat")
    return cmd


def run_celery_worker() -> int:
    beat = os.environ.get("CAPTIONBURN_EMBED_BEAT", "").lower() in ("1", "true", "yes")
    cmd = build_worker_command(beat=beat)
    logger.info(f"[WORKER] Starting: {' '.join(cmd)}")
    return subprocess.run(cmd).returncode


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)

    threading.Thread(target=run_health_server, daemon=True).start()
    sys.exit(run_celery_worker())
