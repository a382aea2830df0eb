# backend/attackmap/mockfeed.py
"""Feed finto per sviluppo locale: batch sintetici + statsToday periodico.

    uvicorn attackmap.mockfeed:app --port 3001
"""
import asyncio
import random
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from .config import settings

ATTACK_TYPES = ["DDoS", "SYN Flood", "UDP Flood", "HTTP Flood", "Brute Force", "Port Scan", "Malware"]

# Centroidi (lat, lon) per il rendering, nessun DB esterno
CENTROIDS = {
    "US": (38.0, -97.0), "CN": (36.0, 104.0), "RU": (61.5, 99.0), "GB": (54.0, -2.0),
    "DE": (51.0, 10.0), "FR": (46.0, 2.0), "IT": (42.8, 12.5), "ES": (40.4, -3.7),
    "NL": (52.2, 5.3), "UA": (49.0, 32.0), "TR": (39.0, 35.0), "IR": (32.0, 53.0),
    "IN": (22.0, 79.0), "JP": (36.0, 138.0), "KR": (36.5, 127.9), "SG": (1.35, 103.8),
    "ID": (-2.5, 118.0), "AU": (-25.0, 133.0), "BR": (-14.0, -52.0), "MX": (23.0, -102.0),
    "CA": (56.0, -106.0), "ZA": (-29.0, 24.0), "EG": (26.5, 30.0),
}

app = FastAPI(title="Attack Map Mock Feed", version="0.1.0")


def random_ip(rng: random.Random) -> str:
    return ".".join(str(rng.randint(1, 254)) for _ in range(4))


def random_geo(rng: random.Random, cc: str) -> dict:
    lat, lon = CENTROIDS[cc]
    return {
        "lat": round(max(-90.0, min(90.0, lat + rng.uniform(-2, 2))), 4),
        "lon": round(max(-180.0, min(180.0, lon + rng.uniform(-2, 2))), 4),
        "country": cc,
    }


def make_attack(rng: random.Random, now: Optional[datetime] = None) -> dict:
    src_cc, dst_cc = rng.sample(sorted(CENTROIDS), 2)
    now = now or datetime.now(timezone.utc)
    return {
        "id": str(uuid.UUID(int=rng.getrandbits(128))),
        "timestamp": now.isoformat(),
        "src_ip": random_ip(rng),
        "dst_ip": random_ip(rng),
        "src_geo": random_geo(rng, src_cc),
        "dst_geo": random_geo(rng, dst_cc),
        "type": rng.choice(ATTACK_TYPES),
    }


def make_batch(rng: random.Random, max_size: int) -> list:
    return [make_attack(rng) for _ in range(rng.randint(1, max(1, max_size)))]


def make_stats_today(by_country: Counter) -> dict:
    return {
        "type": "statsToday",
        "payload": {
            "total": sum(by_country.values()),
            "countries": [{"country": cc, "count": n} for cc, n in by_country.most_common()],
        },
    }


@app.websocket("/ws/attacks")
async def ws_attacks(ws: WebSocket):
    await ws.accept()
    rng = random.Random()
    today: Counter = Counter()
    sent = 0
    try:
        while True:
            batch = make_batch(rng, settings.MOCK_BATCH_MAX)
            today.update(a["src_geo"]["country"] for a in batch)
            await ws.send_json(batch)
            sent += 1
            if sent % settings.MOCK_STATS_EVERY == 0:
                await ws.send_json(make_stats_today(today))
            await asyncio.sleep(rng.uniform(0.5, 1.5) * settings.MOCK_INTERVAL_SEC)
    except (WebSocketDisconnect, OSError):
        # client andato via (uvicorn solleva OSError sul send dopo la chiusura)
        pass
