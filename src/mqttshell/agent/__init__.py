"""Agent side — the shell restart loop and its broker transport."""

from mqttshell.agent.loop import AgentTransport, forward
from mqttshell.agent.orchestrator import AgentOrchestrator

__all__ = [
    "AgentTransport",
    "forward",
    "AgentOrchestrator",
]
