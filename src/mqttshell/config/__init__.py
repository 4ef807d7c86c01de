"""Configuration — Pydantic models for mqtt-shell settings."""

from __future__ import annotations

import os
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class BrokerConfig(BaseModel):
    """Where the MQTT broker lives. Must match between agent and controller."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=1883, gt=0, le=65535)
    keepalive: int = Field(default=5, gt=0, description="MQTT keep-alive in seconds")
    agent_client_id: str = Field(default="agent")
    controller_client_id: str = Field(default="controller")


class AgentConfig(BaseModel):
    """How the agent spawns its shell."""

    shell: str = Field(default="/bin/bash")
    shell_args: list[str] = Field(default_factory=lambda: ["-i"])
    term: str = Field(default="xterm-256color", description="TERM for the shell")
    colorterm: str = Field(default="truecolor", description="COLORTERM for the shell")
    rows: int = Field(
        default=24,
        gt=0,
        description="Initial PTY rows until the controller's first resize arrives",
    )
    cols: int = Field(default=80, gt=0)
    restart_delay: float = Field(
        default=2.0, ge=0, description="Settle delay between shell epochs"
    )

    @property
    def command(self) -> list[str]:
        return [self.shell, *self.shell_args]

    @property
    def env(self) -> dict[str, str]:
        return {"TERM": self.term, "COLORTERM": self.colorterm}


class BackoffConfig(BaseModel):
    """Reconnect delay: doubles from ``initial`` up to ``cap`` seconds."""

    initial: float = Field(default=1.0, gt=0)
    cap: float = Field(default=30.0, gt=0)


class ControllerConfig(BaseModel):
    """Controller-side settings."""

    resize_interval: float = Field(
        default=0.2, gt=0, description="Terminal size poll interval in seconds"
    )


class MqttShellConfig(BaseModel):
    """Top-level mqtt-shell configuration."""

    channel: str = Field(default="shell", min_length=1, description="Topic root")
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    controller: ControllerConfig = Field(default_factory=ControllerConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> MqttShellConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults. CLI flags are applied
        on top by the caller.

        Env vars:
            MQTT_SHELL_CHANNEL  - Topic root shared by agent and controller
            MQTT_SHELL_HOST     - Broker host
            MQTT_SHELL_PORT     - Broker port
            MQTT_SHELL_SHELL    - Shell executable spawned by the agent
        """
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            import json

            with open(config_path) as f:
                config_data = json.load(f)

        env_channel = os.environ.get("MQTT_SHELL_CHANNEL")
        if env_channel:
            config_data["channel"] = env_channel

        broker = config_data.get("broker", {})

        env_host = os.environ.get("MQTT_SHELL_HOST")
        if env_host:
            broker["host"] = env_host

        env_port = os.environ.get("MQTT_SHELL_PORT")
        if env_port:
            broker["port"] = int(env_port)

        if broker:
            config_data["broker"] = broker

        env_shell = os.environ.get("MQTT_SHELL_SHELL")
        if env_shell:
            agent = config_data.get("agent", {})
            agent["shell"] = env_shell
            config_data["agent"] = agent

        return cls.model_validate(config_data)
