"""
Meeting Transcription Relay.

Components:
- RetentionStore: Redis transcript log with tiered TTLs
- EventBus: pub/sub fan-out of transcript events
- TranscriptionSession: Gladia live streaming session per bot
- BroadcastGateway: WebSocket push to dashboards
"""
