# backend/attackmap/ingest/connection.py
"""Sessione verso il feed upstream: stato, riconnessione, ingestione.

Unico proprietario (e unico scrittore) di ConnectionState, RollingBuffer e
aggregatore statistiche. Tutto gira sul loop asyncio: gli handler vanno a
completamento prima del messaggio successivo, quindi niente lock.
"""
import asyncio
import enum
import json
import logging
import math
import time
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Generic, List, Optional, TypeVar, Union
from urllib.parse import urlsplit

import aiohttp
from aiohttp import WSMsgType

from ..errors import FeedConfigError
from ..schemas import AttackEvent, CountryCount, StatsSnapshot, TodayOverlay
from ..stats import IncrementalAggregator
from ..timers import TimerHandle, Timers
from .buffer import DEFAULT_CAPACITY, RollingBuffer
from .validate import validate_batch

logger = logging.getLogger(__name__)

Message = Union[str, bytes]
Transport = Callable[[str], AsyncContextManager[AsyncIterator[Message]]]

ERR_CONNECTION = "WebSocket connection error"
ERR_EXHAUSTED = "Max reconnection attempts reached"

DEFAULT_RECONNECT_MS = 3000
DEFAULT_MAX_ATTEMPTS = 10


class ConnectionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXHAUSTED = "exhausted"


# ---- Trasporto aiohttp ------------------------------------------------------

async def _ws_messages(ws: aiohttp.ClientWebSocketResponse) -> AsyncIterator[Message]:
    async for msg in ws:
        if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
            yield msg.data
        elif msg.type == WSMsgType.ERROR:
            raise ws.exception() or aiohttp.ClientError("websocket error")


@asynccontextmanager
async def aiohttp_transport(url: str) -> AsyncIterator[AsyncIterator[Message]]:
    """Apre il websocket e produce l'iteratore dei messaggi; l'uscita dal blocco chiude tutto."""
    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url, heartbeat=30.0) as ws:
            yield _ws_messages(ws)


def check_endpoint(url: Optional[str]) -> str:
    if not url or not str(url).strip():
        raise FeedConfigError("No feed endpoint configured")
    url = str(url).strip()
    parts = urlsplit(url)
    if parts.scheme not in ("ws", "wss", "http", "https") or not parts.netloc:
        raise FeedConfigError(f"Invalid feed endpoint: {url!r}")
    return url


# ---- Osservatori ------------------------------------------------------------

T = TypeVar("T")


class Signal(Generic[T]):
    """Registro di callback; un listener che solleva viene loggato e isolato."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def emit(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("listener %s fallito", self.name)

    def clear(self) -> None:
        self._listeners.clear()


@dataclass
class Counters:
    messages: int = 0
    batches: int = 0
    decode_errors: int = 0
    ignored: int = 0
    accepted: int = 0
    rejected: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


# ---- Manager ----------------------------------------------------------------

class ConnectionManager:
    def __init__(self, url: Optional[str] = None, *, timers: Timers,
                 transport: Transport = aiohttp_transport,
                 capacity: int = DEFAULT_CAPACITY,
                 reconnect_interval_ms: float = DEFAULT_RECONNECT_MS,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 clock: Callable[[], float] = time.time):
        self.url = url
        self.timers = timers
        self.transport = transport
        self.reconnect_interval_ms = reconnect_interval_ms
        self.max_attempts = max_attempts
        self.clock = clock

        self.state = ConnectionState.IDLE
        self.error: Optional[str] = None
        self.attempts = 0
        self.last_update: Optional[float] = None
        self.counters = Counters()

        # sessione: sopravvive alle riconnessioni
        self.observation_start = clock()
        self.buffer = RollingBuffer(capacity)
        self._agg = IncrementalAggregator()
        self.today: Optional[TodayOverlay] = None

        self.state_changed: Signal[ConnectionState] = Signal("state")
        self.attacks_received: Signal[List[AttackEvent]] = Signal("attacks")
        self.stats_changed: Signal[StatsSnapshot] = Signal("stats")

        self._timer: Optional[TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    # ---- Stato ----------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    @property
    def session_task(self) -> Optional[asyncio.Task]:
        return self._task

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.info("feed %s → %s", self.state.value, state.value)
        self.state = state
        if not self._closed:
            self.state_changed.emit(state)

    def stats(self, now: Optional[float] = None) -> StatsSnapshot:
        return self._agg.snapshot(self.observation_start, self.clock() if now is None else now, self.today)

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "isConnected": self.is_connected,
            "error": self.error,
            "attempt": self.attempts,
            "reconnectPending": self.reconnect_pending,
            "maxAttempts": self.max_attempts,
            "lastUpdate": self.last_update,
            "buffered": len(self.buffer),
            "counters": self.counters.as_dict(),
        }

    # ---- Ciclo di vita --------------------------------------------------------

    def open(self, url: Optional[str] = None) -> None:
        """Avvia (o riavvia) la sessione. Azzera il contatore di tentativi."""
        if url is not None:
            self.url = url
        self._closed = False
        self._cancel_timer()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.attempts = 0
        self._connect()

    async def close(self) -> None:
        """Cancella il timer di riconnessione e chiude il trasporto. Nessuna notifica dopo."""
        self._closed = True
        self._cancel_timer()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.state = ConnectionState.IDLE
        self.state_changed.clear()
        self.attacks_received.clear()
        self.stats_changed.clear()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _connect(self) -> None:
        try:
            url = check_endpoint(self.url)
        except FeedConfigError as e:
            # riprovare non serve: serve un'azione esterna (nuovo open)
            logger.error("feed non configurato: %s", e)
            self.error = str(e)
            self._set_state(ConnectionState.EXHAUSTED)
            return
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(self._run(url))

    async def _run(self, url: str) -> None:
        try:
            async with self.transport(url) as messages:
                self._on_open()
                async for raw in messages:
                    self.handle_message(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("errore websocket %s: %r", url, e)
            self.error = ERR_CONNECTION
        self._on_close()

    def _on_open(self) -> None:
        self.attempts = 0
        self.error = None
        self._set_state(ConnectionState.CONNECTED)

    def _on_close(self) -> None:
        if self._closed:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        if self.attempts < self.max_attempts:
            self.attempts += 1
            logger.info("riconnessione tra %d ms (%d/%d)",
                        self.reconnect_interval_ms, self.attempts, self.max_attempts)
            self._cancel_timer()
            self._timer = self.timers.call_later(self.reconnect_interval_ms, self._reconnect)
        else:
            self.error = ERR_EXHAUSTED
            logger.error("feed: %s", ERR_EXHAUSTED)
            self._set_state(ConnectionState.EXHAUSTED)

    def _reconnect(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._connect()

    # ---- Ingestione -----------------------------------------------------------

    def handle_message(self, raw: Any) -> None:
        """Decodifica e smista un messaggio: array = batch, statsToday = overlay."""
        self.counters.messages += 1
        if not raw:
            return
        try:
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode("utf-8")
            parsed = json.loads(raw)
        except (ValueError, TypeError) as e:
            # UnicodeDecodeError e JSONDecodeError sono ValueError
            self.counters.decode_errors += 1
            logger.warning("messaggio non decodificabile scartato: %s", e)
            return

        if isinstance(parsed, list):
            self._ingest_batch(parsed)
        elif isinstance(parsed, dict) and parsed.get("type") == "statsToday":
            self._apply_today(parsed.get("payload"))
        else:
            self.counters.ignored += 1

    def _ingest_batch(self, items: list) -> None:
        self.counters.batches += 1
        result = validate_batch(items)
        self.counters.accepted += len(result.valid)
        self.counters.rejected += result.rejected
        if result.empty:
            return
        evicted = self.buffer.append(result.valid)
        self._agg.add(result.valid)
        self._agg.evict(evicted)
        self.last_update = self.clock()
        if self._closed:
            return
        self.attacks_received.emit(list(result.valid))
        self.stats_changed.emit(self.stats())

    def _apply_today(self, payload: Any) -> None:
        # feed fidato: nessuna validazione evento, solo normalizzazione di forma
        payload = payload if isinstance(payload, dict) else {}
        total = payload.get("total")
        # NaN/Infinity passano json.loads ma non sono JSON valido verso le dashboard
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            total = 0
        elif isinstance(total, float) and not math.isfinite(total):
            total = 0
        countries = []
        raw_countries = payload.get("countries")
        for item in raw_countries if isinstance(raw_countries, list) else []:
            try:
                countries.append(CountryCount.model_validate(item))
            except ValueError:
                logger.debug("voce statsToday ignorata: %r", item)
        self.today = TodayOverlay(total=total, countries=countries)
        if not self._closed:
            self.stats_changed.emit(self.stats())
