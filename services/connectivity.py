"""Network reachability reporting."""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol

from core.logging_setup import get_logger
from core.settings import CONNECTIVITY
from services.scheduler import AsyncioScheduler, Scheduler


@dataclass(frozen=True)
class ConnectivityStatus:
    connected: bool
    internet_reachable: bool

    @property
    def online(self) -> bool:
        return self.connected and self.internet_reachable


OFFLINE = ConnectivityStatus(connected=False, internet_reachable=False)

ConnectivityCallback = Callable[[ConnectivityStatus], None]


class ConnectivityOracle(Protocol):
    async def current_status(self) -> ConnectivityStatus: ...

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]: ...


def probe_socket(host: str, port: int, timeout: float) -> ConnectivityStatus:
    """Resolve ``host`` (connected) and open a TCP connection to it (reachable)."""

    try:
        addresses = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except OSError:
        return OFFLINE
    if not addresses:
        return OFFLINE
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return ConnectivityStatus(connected=True, internet_reachable=True)
    except OSError:
        return ConnectivityStatus(connected=True, internet_reachable=False)


class ProbeConnectivityOracle:
    """Polls a probe and notifies subscribers when reachability flips."""

    def __init__(
        self,
        *,
        host: str = CONNECTIVITY.probe_host,
        port: int = CONNECTIVITY.probe_port,
        timeout: float = CONNECTIVITY.probe_timeout_sec,
        poll_interval_sec: float = CONNECTIVITY.poll_interval_sec,
        scheduler: Optional[Scheduler] = None,
        probe: Optional[Callable[[], Awaitable[ConnectivityStatus]]] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.poll_interval_sec = poll_interval_sec
        self.scheduler = scheduler or AsyncioScheduler()
        self._probe = probe or self._probe_socket
        self._listeners: List[ConnectivityCallback] = []
        self._last: Optional[ConnectivityStatus] = None
        self._task = None
        self.logger = get_logger("connectivity")

    async def _probe_socket(self) -> ConnectivityStatus:
        return await asyncio.to_thread(probe_socket, self.host, self.port, self.timeout)

    async def current_status(self) -> ConnectivityStatus:
        try:
            return await self._probe()
        except Exception as exc:
            self.logger.warning("Error checking internet connection: %s", exc)
            return OFFLINE

    def subscribe(self, callback: ConnectivityCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    async def refresh(self) -> ConnectivityStatus:
        status = await self.current_status()
        previous = self._last
        self._last = status
        if previous is None or previous.online != status.online:
            self.logger.info("Connectivity changed: %s", "online" if status.online else "offline")
            for listener in list(self._listeners):
                try:
                    listener(status)
                except Exception as exc:
                    self.logger.error("Connectivity listener failed: %s", exc)
        return status

    def start(self) -> None:
        if self._task is None:
            self._task = self.scheduler.call_every(self.poll_interval_sec, self._tick)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _tick(self) -> None:
        await self.refresh()


__all__ = [
    "ConnectivityCallback",
    "ConnectivityOracle",
    "ConnectivityStatus",
    "OFFLINE",
    "ProbeConnectivityOracle",
    "probe_socket",
]
