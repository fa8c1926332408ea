"""Domain layer - types, events and protocols shared by every other layer.

This layer contains:
- types: connection state and the serializable server/manager state models
- events: manager events and the in-process event bus
- protocols: the transport contract the connection state machine consumes
"""
