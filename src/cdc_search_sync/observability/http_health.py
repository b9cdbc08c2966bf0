"""Async HTTP health endpoint for container probes.

Built on ``asyncio.start_server``; serves three paths:

- ``/healthz``: liveness, always 200 while the loop is responsive
- ``/readyz``: readiness, 503 when the consumer or index reports an error
- ``/stats``: processing counters since start
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

import structlog

logger = structlog.get_logger()

ReadinessCheck = Callable[[], Awaitable[dict[str, Any]]]
StatsSnapshot = Callable[[], dict[str, Any]]

_REASONS = {
    200: "OK",
    404: "Not Found",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


class HealthServer:
    """Answers HTTP health probes on *port*.

    Parameters
    ----------
    port:
        TCP port to listen on (0 picks a free port, see ``bound_port``).
    readiness_check:
        Async callable returning a health dict.  Any nested entry with
        ``"status": "error"`` turns the readiness probe into a 503.
    stats:
        Callable returning the counters served on ``/stats``.
    """

    def __init__(
        self,
        port: int,
        readiness_check: ReadinessCheck,
        stats: StatsSnapshot | None = None,
        host: str = "0.0.0.0",  # noqa: S104
    ) -> None:
        self._port = port
        self._host = host
        self._readiness_check = readiness_check
        self._stats = stats
        self._server: asyncio.Server | None = None

    @property
    def bound_port(self) -> int | None:
        if self._server is None or not self._server.sockets:
            return None
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, host=self._host, port=self._port
        )
        logger.info("health.server_started", port=self.bound_port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("health.server_stopped")

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            path = self._parse_path(request_line)

            if path == "/healthz":
                await self._respond(writer, 200, {"status": "ok"})
            elif path == "/readyz":
                health = await self._readiness_check()
                status = 503 if self._contains_error(health) else 200
                await self._respond(writer, status, health)
            elif path == "/stats" and self._stats is not None:
                await self._respond(writer, 200, self._stats())
            else:
                await self._respond(writer, 404, {"error": "not found"})
        except Exception:
            logger.debug("health.request_error", exc_info=True)
            with suppress(Exception):
                await self._respond(writer, 500, {"error": "internal server error"})
        finally:
            with suppress(Exception):
                writer.close()
                await writer.wait_closed()

    @staticmethod
    def _contains_error(health: dict[str, Any]) -> bool:
        """Check if any component reports an error status."""
        for value in health.values():
            if isinstance(value, dict) and value.get("status") == "error":
                return True
            if isinstance(value, list):
                for item in value:
                    if isinstance(item, dict) and item.get("status") == "error":
                        return True
        return False

    @staticmethod
    def _parse_path(request_line: bytes) -> str:
        parts = request_line.decode("utf-8", errors="replace").strip().split()
        if len(parts) >= 2:
            return parts[1].split("?", 1)[0]
        return ""

    @staticmethod
    async def _respond(
        writer: asyncio.StreamWriter, status: int, body: dict[str, Any]
    ) -> None:
        payload = json.dumps(body, default=str).encode()
        header = (
            f"HTTP/1.1 {status} {_REASONS.get(status, 'Unknown')}\r\n"
            f"Content-Type: application/json\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(header.encode() + payload)
        await writer.drain()
