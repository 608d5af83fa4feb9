"""Core services: settings, logging, snapshot streaming, fan-out, and sessions."""

from .broadcast import Broadcast, BroadcastHub, HubClosedError, HubStats, SubscriberInfo, Subscription
from .config import MonitorConfig, load_config, save_config
from .session import SubscriberSession, Transport
from .stream_producer import ProducerStatus, StreamProducer

__all__ = [
    "Broadcast",
    "BroadcastHub",
    "HubClosedError",
    "HubStats",
    "MonitorConfig",
    "ProducerStatus",
    "StreamProducer",
    "SubscriberInfo",
    "SubscriberSession",
    "Subscription",
    "Transport",
    "load_config",
    "save_config",
]
