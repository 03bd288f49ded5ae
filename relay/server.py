"""
Meeting Transcription Relay - FastAPI Server

Wires the relay pipeline together:
- /ws/bot          meeting bots stream audio in, one Gladia session per bot
- /ws/transcripts  dashboards receive every partial/final transcript
- /api/transcripts stored transcript queries
- /bots            send a MeetingBaas bot into a meeting / remove it
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from relay.api import transcripts_router, BotCreate, BotResponse, SuccessResponse
from relay.bots import MeetingBaasClient, BotIngressHandler, BOTS_TOPIC
from relay.config import RelayConfig, get_config
from relay.events import EventBus, InMemoryEventBus, RedisEventBus
from relay.storage import RetentionStore
from relay.websocket import ConnectionManager, BroadcastGateway

logger = logging.getLogger(__name__)


def build_event_bus(config: RelayConfig) -> EventBus:
    if config.event_bus == "memory":
        return InMemoryEventBus()
    return RedisEventBus(redis_url=config.redis_url)


def create_app(
    config: Optional[RelayConfig] = None,
    store: Optional[RetentionStore] = None,
    bus: Optional[EventBus] = None,
    bots: Optional[MeetingBaasClient] = None,
) -> FastAPI:
    """Build the relay application with explicitly constructed components."""
    config = config or get_config()
    store = store or RetentionStore(redis_url=config.redis_url, retention=config.retention)
    bus = bus or build_event_bus(config)
    bots = bots or MeetingBaasClient(
        api_key=config.meeting_baas_api_key,
        api_url=config.meeting_baas_api_url,
    )

    manager = ConnectionManager()
    gateway = BroadcastGateway(bus, manager)
    ingress = BotIngressHandler(manager, store, bus)

    app = FastAPI(
        title="Meeting Transcription Relay",
        description="Relays meeting bot audio to Gladia and fans transcripts out to dashboards",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.store = store
    app.state.bus = bus
    app.state.bots = bots
    app.state.manager = manager
    app.state.gateway = gateway
    app.state.ingress = ingress

    app.include_router(transcripts_router)

    # ==================== Lifecycle ====================

    @app.on_event("startup")
    async def startup_event():
        await gateway.start()
        logger.info(f"Relay started (event bus: {type(bus).__name__})")

    @app.on_event("shutdown")
    async def shutdown_event():
        await gateway.stop()
        await bus.close()
        await bots.close()
        await store.close()

    # ==================== Health ====================

    @app.get("/health")
    async def health_check():
        storage_ok = await store.ping()
        return {
            "status": "healthy" if storage_ok else "degraded",
            "version": "1.0.0",
            "storage": "available" if storage_ok else "unavailable",
            "event_bus": type(bus).__name__,
            "connected_clients": gateway.get_connection_count(),
            "connected_bots": manager.get_connection_count(BOTS_TOPIC),
        }

    @app.get("/ws/status")
    async def websocket_status():
        """Get WebSocket connection status."""
        return {
            "total_connections": manager.get_connection_count(),
            "topics": manager.get_topics(),
            "topics_detail": {
                topic: manager.get_connection_count(topic)
                for topic in manager.get_topics()
            }
        }

    # ==================== Bots ====================

    @app.post("/bots", response_model=BotResponse)
    async def create_bot(request: BotCreate):
        """Send a bot into a meeting; it streams audio back to /ws/bot."""
        webhook_url = request.webhook_url
        if not webhook_url and config.public_webhook_url:
            webhook_url = f"{config.public_webhook_url.rstrip('/')}/ws/bot"

        bot_id = await bots.create_bot(request.meeting_url, request.bot_name, webhook_url)
        if not bot_id:
            raise HTTPException(status_code=502, detail="Failed to create bot")

        return BotResponse(bot_id=bot_id, meeting_url=request.meeting_url, webhook_url=webhook_url)

    @app.delete("/bots/{bot_id}", response_model=SuccessResponse)
    async def remove_bot(bot_id: str):
        if not await bots.remove_bot(bot_id):
            raise HTTPException(status_code=502, detail="Failed to remove bot")
        return SuccessResponse(message=f"Bot {bot_id} removed")

    # ==================== WebSockets ====================

    @app.websocket("/ws/transcripts")
    async def transcripts_websocket(websocket: WebSocket):
        """
        Live transcript feed for dashboards.

        Server sends:
        - {"type": "transcript", "data": {id, meeting_id, text, final, emitted_at}}
        - {"type": "pong"} in reply to {"type": "ping"}
        """
        await gateway.serve(websocket)

    @app.websocket("/ws/bot")
    async def bot_websocket(websocket: WebSocket):
        """
        Audio ingress for meeting bots.

        Bot sends {"type": "register", "meetingUrl": "..."} then binary PCM frames.
        """
        await ingress.serve(websocket)

    return app


app = create_app()


# ==================== Main Entry Point ====================

if __name__ == "__main__":
    import uvicorn

    settings = get_config()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host=settings.host, port=settings.port)
