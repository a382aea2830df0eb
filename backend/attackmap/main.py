# backend/attackmap/main.py
import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .animation import AnimatedElement, AnimationScheduler, Phase
from .config import Settings, settings
from .geo.viewport import ViewportTracker
from .ingest.connection import ConnectionManager, ConnectionState, Transport, aiohttp_transport
from .schemas import AttackEvent, StatsSnapshot
from .timers import LoopTimers, Timers

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

BROADCAST_MAXSIZE = 1000


# ------------------------- Runtime -------------------------

class Runtime:
    """Tiene insieme feed, animazioni e client dashboard per la durata del processo."""

    def __init__(self, cfg: Settings, transport: Transport, timers: Optional[Timers] = None):
        self.cfg = cfg
        self.timers = timers or LoopTimers()
        self.started = time.time()

        self.viewport = ViewportTracker(cfg.VIEWPORT_FALLBACK_WIDTH, cfg.VIEWPORT_FALLBACK_HEIGHT)
        self.scheduler = AnimationScheduler(
            self.timers, self.viewport,
            draw_ms=cfg.DRAW_MS, fade_ms=cfg.FADE_MS, scale_factor=cfg.PROJECTION_SCALE,
        )
        self.manager = ConnectionManager(
            cfg.FEED_URL,
            timers=self.timers,
            transport=transport,
            capacity=cfg.BUFFER_CAPACITY,
            reconnect_interval_ms=cfg.RECONNECT_INTERVAL_MS,
            max_attempts=cfg.MAX_RECONNECT_ATTEMPTS,
        )

        self.clients: Set[WebSocket] = set()
        self.broadcast_queue: asyncio.Queue[str] = asyncio.Queue(maxsize=BROADCAST_MAXSIZE)
        self._tasks: list[asyncio.Task] = []

        # wiring: feed → animazioni, stato/stats → dashboard
        self.manager.attacks_received.subscribe(self._on_attacks)
        self.manager.state_changed.subscribe(self._on_state)
        self.manager.stats_changed.subscribe(self._on_stats)
        self.scheduler.subscribe(self._on_phase)

    # ---- Listener ----

    def _on_attacks(self, events: list[AttackEvent]) -> None:
        self.scheduler.submit(events)

    def _on_state(self, state: ConnectionState) -> None:
        self.publish({"type": "connection", **self.manager.status()})

    def _on_stats(self, stats: StatsSnapshot) -> None:
        self.publish({"type": "stats", "stats": stats.model_dump(by_alias=True)})

    def _on_phase(self, el: AnimatedElement, phase: Phase) -> None:
        if phase is Phase.TERMINAL:
            self.publish({"type": "expired", "id": el.id})

    def publish(self, msg: dict) -> None:
        if not self.clients:
            return
        try:
            self.broadcast_queue.put_nowait(json.dumps(msg))
        except asyncio.QueueFull:
            logger.warning("[WS] coda broadcast piena, messaggio %s scartato", msg.get("type"))

    def hello(self) -> dict:
        vp = self.viewport.current
        return {
            "type": "hello",
            "connection": self.manager.status(),
            "stats": self.manager.stats().model_dump(by_alias=True),
            "viewport": {"width": vp.width, "height": vp.height},
        }

    # ---- Task ----

    async def broadcaster(self):
        """Legge messaggi JSON da broadcast_queue e li invia a tutti i WS."""
        while True:
            msg = await self.broadcast_queue.get()
            dead = set()
            for c in list(self.clients):
                try:
                    await c.send_text(msg)
                except Exception:
                    dead.add(c)
            for d in dead:
                self.clients.discard(d)

    async def render_loop(self):
        """Campiona gli elementi attivi e pubblica un frame ogni FRAME_INTERVAL_MS."""
        interval = self.cfg.FRAME_INTERVAL_MS / 1000.0
        while True:
            await asyncio.sleep(interval)
            if self.scheduler.active:
                self.publish({"type": "frame", "elements": self.scheduler.frames()})

    def start(self) -> None:
        logger.info("Avvio attack map, feed=%s", self.cfg.FEED_URL)
        self._tasks = [
            asyncio.create_task(self.broadcaster()),
            asyncio.create_task(self.render_loop()),
        ]
        self.manager.open()

    async def stop(self) -> None:
        # ordine: feed → animazioni → task di uscita
        await self.manager.close()
        self.scheduler.dispose()
        for t in self._tasks:
            t.cancel()
            try:
                await t
            except asyncio.CancelledError:
                pass
        self._tasks = []


# ------------------------- App -------------------------

def create_app(transport: Transport = aiohttp_transport, cfg: Settings = settings,
               timers: Optional[Timers] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = Runtime(cfg, transport, timers)
        app.state.runtime = runtime
        runtime.start()
        yield
        logger.info("Arresto attack map")
        await runtime.stop()

    app = FastAPI(title="Attack Map Backend", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------- API -------------------------

    @app.get("/api/health")
    async def health(request: Request):
        rt: Runtime = request.app.state.runtime
        vp = rt.viewport.current
        return {
            "status": "ok",
            "connection": rt.manager.state.value,
            "uptime_sec": int(time.time() - rt.started),
            "clients": len(rt.clients),
            "animations": len(rt.scheduler.active),
            "viewport": {"width": vp.width, "height": vp.height},
        }

    @app.get("/api/connection")
    async def connection(request: Request):
        return request.app.state.runtime.manager.status()

    @app.get("/api/stats")
    async def stats(request: Request):
        return request.app.state.runtime.manager.stats().model_dump(by_alias=True)

    @app.get("/api/attacks/recent")
    async def recent(request: Request, limit: Optional[int] = Query(default=None, ge=1, le=1000)):
        rt: Runtime = request.app.state.runtime
        n = limit or rt.cfg.RECENT_LIMIT
        return [ev.model_dump() for ev in rt.manager.buffer.recent(n)]

    @app.post("/api/reconnect")
    async def reconnect(request: Request):
        rt: Runtime = request.app.state.runtime
        rt.manager.open()
        return rt.manager.status()

    # ------------------------- WebSocket -------------------------

    @app.websocket("/ws/map")
    async def ws_map(ws: WebSocket):
        rt: Runtime = ws.app.state.runtime
        await ws.accept()
        rt.clients.add(ws)
        try:
            await ws.send_json(rt.hello())
            while True:
                message = await ws.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                text = message.get("text")
                if text is None:
                    logger.debug("[WS] frame binario dal client ignorato")
                    continue
                try:
                    msg = json.loads(text)
                except ValueError:
                    logger.debug("[WS] messaggio client non JSON ignorato")
                    continue
                if isinstance(msg, dict) and msg.get("type") == "viewport":
                    vp = rt.viewport.update(msg.get("width"), msg.get("height"))
                    await ws.send_json({"type": "viewport", "width": vp.width, "height": vp.height})
        except WebSocketDisconnect:
            pass
        finally:
            rt.clients.discard(ws)

    return app


app = create_app()
