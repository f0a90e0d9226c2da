"""
TrafficWatch - WebSocket Endpoints.

Real-time classification feed for dashboards.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from trafficwatch.monitor import monitor

logger = logging.getLogger("trafficwatch.api.websocket")

router = APIRouter(tags=["WebSocket"])

# Active WebSocket connections
_connections: Set[WebSocket] = set()


def _snapshot(cursor: int, seen_alerts: set[str]) -> tuple[dict, int]:
    """Current counters plus records and alerts new since the last push."""
    records, cursor = monitor.records_since(cursor)
    current = list(monitor.recent_alerts)
    new_alerts = [a for a in current if a.id not in seen_alerts]
    # Only ids still on display need remembering
    seen_alerts.intersection_update(a.id for a in current)
    seen_alerts.update(a.id for a in new_alerts)
    message = {
        "type": "traffic",
        "timestamp": time.time(),
        "stats": monitor.stats(),
        "new_records": [r.to_dict() for r in records],
        "new_alerts": [a.to_dict() for a in new_alerts],
    }
    return message, cursor


@router.websocket("/traffic")
async def traffic_feed(websocket: WebSocket):
    """
    Real-time traffic feed.

    Pushes every second: counters, records classified since the last
    push and newly raised alerts.
    """
    await websocket.accept()
    _connections.add(websocket)
    logger.info("Dashboard connected (total: %d)", len(_connections))

    cursor = monitor.records_processed
    seen_alerts = {a.id for a in monitor.recent_alerts}

    try:
        while True:
            message, cursor = _snapshot(cursor, seen_alerts)
            await websocket.send_text(json.dumps(message))
            await asyncio.sleep(1)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        _connections.discard(websocket)
        logger.info("Dashboard disconnected (total: %d)", len(_connections))
