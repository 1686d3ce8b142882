"""distillate event bus."""

from distillate.events.bus import DistillateEvent, EventBus, Handler
from distillate.events.payloads import (
    ArtifactSavedPayload,
    CompressionFallbackPayload,
    CompressionPayload,
    CompressionRequestedPayload,
    SessionClosedPayload,
    SessionCreatedPayload,
)

__all__ = [
    "ArtifactSavedPayload",
    "CompressionFallbackPayload",
    "CompressionPayload",
    "CompressionRequestedPayload",
    "DistillateEvent",
    "EventBus",
    "Handler",
    "SessionClosedPayload",
    "SessionCreatedPayload",
]
