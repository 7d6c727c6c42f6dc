"""Live dashboard WebSocket.

Clients send commands to pick the viewed site and date range and receive a
fresh stats snapshot whenever a pageview or visitor is recorded for it.

Client messages::

    {"action": "view", "site_id": "...", "start_date": null, "end_date": null}
    {"action": "range", "start_date": "2024-01-01T00:00:00Z", "end_date": null}
    {"action": "clear_range"}

Server messages::

    {"type": "stats", "site_id": "...", "generation": 3, "data": {...}}
    {"type": "error", "site_id": "...", "generation": 4, "detail": "..."}
"""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitepulse.config import Settings
from sitepulse.dependencies import get_app_settings, get_store
from sitepulse.models.site import Site
from sitepulse.schemas.stats import StatsQuery
from sitepulse.services.aggregation import AggregationEngine
from sitepulse.services.live_sync import LiveSyncCoordinator, ViewState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


async def _owns_site(
    store: async_sessionmaker[AsyncSession], site_id: str, owner_id: str
) -> bool:
    async with store() as session:
        site = await session.get(Site, site_id)
    return site is not None and site.owner_id == owner_id


@router.websocket("/v1/live")
async def live(
    websocket: WebSocket,
    store: async_sessionmaker[AsyncSession] = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> None:
    owner_id = (websocket.headers.get("x-owner-id") or "").strip()
    if not owner_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def publish(state: ViewState) -> None:
        if state.error is not None:
            await websocket.send_json(
                {
                    "type": "error",
                    "site_id": state.site_id,
                    "generation": state.generation,
                    "detail": state.error,
                }
            )
            return
        await websocket.send_json(
            {
                "type": "stats",
                "site_id": state.site_id,
                "generation": state.generation,
                "data": state.stats.model_dump(mode="json"),
            }
        )

    async def reject(detail: str) -> None:
        await websocket.send_json(
            {"type": "error", "site_id": None, "generation": None, "detail": detail}
        )

    engine = AggregationEngine(store, limit=settings.top_n_limit)
    coordinator = LiveSyncCoordinator(engine, websocket.app.state.broadcaster, publish)

    try:
        while True:
            try:
                message = await websocket.receive_json()
                action = message.get("action")

                if action == "view":
                    query = StatsQuery(
                        site_id=message.get("site_id") or "",
                        start_date=message.get("start_date"),
                        end_date=message.get("end_date"),
                    )
                    if not await _owns_site(store, query.site_id, owner_id):
                        await reject("Site not found")
                        continue
                    coordinator.view_site(query.site_id, query.start_date, query.end_date)
                elif action in ("range", "clear_range"):
                    if coordinator.state.site_id is None:
                        await reject("No site selected")
                        continue
                    if action == "clear_range":
                        coordinator.clear_range()
                    else:
                        query = StatsQuery(
                            site_id=coordinator.state.site_id,
                            start_date=message.get("start_date"),
                            end_date=message.get("end_date"),
                        )
                        coordinator.set_range(query.start_date, query.end_date)
                else:
                    await reject(f"Unknown action: {action}")
            except (ValueError, AttributeError) as exc:
                # Bad JSON, a non-object message, or an invalid range
                logger.debug("Rejected live command: %s", exc)
                await reject("Invalid command")
    except WebSocketDisconnect:
        logger.debug("Live viewer for owner %s disconnected", owner_id)
    finally:
        await coordinator.close()
