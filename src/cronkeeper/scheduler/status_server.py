"""Lightweight HTTP status endpoint — health, JSON summary, per-run download."""

from __future__ import annotations

import json
import logging
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlsplit

from cronkeeper.errors import PersistenceError, RecordNotFoundError
from cronkeeper.scheduler.query import render_log

if TYPE_CHECKING:
    from cronkeeper.scheduler.query import StatusQueryService

logger = logging.getLogger(__name__)


def _make_handler(
    query: StatusQueryService,
    health_path: str,
    timestamp_format: str,
) -> type[BaseHTTPRequestHandler]:
    """Create a handler class bound to the given query service."""

    class _StatusHandler(BaseHTTPRequestHandler):
        """GET-only: health, status summary, log download; 404 elsewhere."""

        def do_GET(self) -> None:  # noqa: N802 — BaseHTTPRequestHandler convention
            url = urlsplit(self.path)
            if url.path == health_path:
                self._send(HTTPStatus.OK, b"ok", "text/plain")
            elif url.path == "/status":
                self._status()
            elif url.path == "/download":
                self._download(parse_qs(url.query).get("task_uid", [""])[0])
            else:
                self._send(HTTPStatus.NOT_FOUND, b"not found", "text/plain")

        def _status(self) -> None:
            try:
                summaries = query.summarize()
            except PersistenceError:
                logger.exception("Status query failed")
                self._send(HTTPStatus.INTERNAL_SERVER_ERROR, b"Error querying database", "text/plain")
                return
            body = [
                {
                    "command": s.command,
                    "last_task_id": s.last_task_id,
                    "last_run": s.last_run.strftime(timestamp_format),
                    "success_count": s.success_count,
                    "failure_count": s.failure_count,
                    "last_output": s.last_output,
                }
                for s in summaries
            ]
            self._send(HTTPStatus.OK, json.dumps(body).encode(), "application/json")

        def _download(self, uid: str) -> None:
            if not uid:
                self._send(HTTPStatus.BAD_REQUEST, b"Task ID not specified", "text/plain")
                return
            try:
                record = query.fetch(uid)
            except RecordNotFoundError as exc:
                self._send(HTTPStatus.NOT_FOUND, str(exc).encode(), "text/plain")
                return
            except PersistenceError:
                logger.exception("Lookup for task %s failed", uid)
                self._send(HTTPStatus.INTERNAL_SERVER_ERROR, b"Error querying database", "text/plain")
                return
            self._send(
                HTTPStatus.OK,
                render_log(record, timestamp_format).encode(),
                "application/octet-stream",
                {"Content-Disposition": f"attachment; filename={uid}.log"},
            )

        def _send(
            self,
            status: HTTPStatus,
            body: bytes,
            content_type: str,
            headers: dict[str, str] | None = None,
        ) -> None:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for key, value in (headers or {}).items():
                self.send_header(key, value)
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:  # noqa: A002
            """Suppress default stderr logging — use our logger instead."""
            logger.debug("Status server: %s", format % args)

    return _StatusHandler


def start_status_server(
    query: StatusQueryService,
    host: str = "localhost",
    port: int = 8080,
    health_path: str = "/health",
    timestamp_format: str = "%d-%m-%Y %H:%M:%S",
) -> tuple[ThreadingHTTPServer, threading.Thread]:
    """Start the status HTTP server on a daemon thread.

    Returns:
        Tuple of (server, thread) for shutdown control.
    """
    handler = _make_handler(query, health_path, timestamp_format)
    server = ThreadingHTTPServer((host, port), handler)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    logger.info("Status server listening on %s:%d", host, server.server_address[1])
    return server, thread
