"""Broker transport — the paho-mqtt link and the reconnect backoff policy."""

from mqttshell.transport.backoff import Backoff, reconnect_policy
from mqttshell.transport.link import BrokerError, BrokerEvent, BrokerEventType, BrokerLink

__all__ = [
    "Backoff",
    "reconnect_policy",
    "BrokerError",
    "BrokerEvent",
    "BrokerEventType",
    "BrokerLink",
]
