"""ZeroMQ helpers for publishing pipeline stage changes.

Display/LED consumers subscribe to ``TOPIC_PIPELINE_STAGE`` and receive
``{"stage": str, "run": int, "timestamp": int}`` JSON payloads.
"""
from __future__ import annotations

import json
import os
import time
from typing import Any, Dict, Optional

import zmq

from abel_voice.core.config_loader import IPCConfig
from abel_voice.core.models import Stage

TOPIC_PIPELINE_STAGE = b"pipeline.stage"
TOPIC_PIPELINE_RESULT = b"pipeline.result"


def make_publisher(endpoint: str, *, bind: bool = True, context: Optional[zmq.Context] = None) -> zmq.Socket:
    ctx = context or zmq.Context.instance()
    sock = ctx.socket(zmq.PUB)
    (sock.bind if bind else sock.connect)(endpoint)
    return sock


def publish_json(sock: zmq.Socket, topic: bytes, payload: Dict[str, Any]) -> None:
    sock.send_multipart([topic, json.dumps(payload).encode("utf-8")])


class StagePublisher:
    """Publishes orchestrator transitions on the stage topic."""

    def __init__(self, endpoint: str, *, bind: bool = True) -> None:
        self.endpoint = os.environ.get("ABEL_STAGE_ENDPOINT", endpoint)
        self.sock = make_publisher(self.endpoint, bind=bind)

    @classmethod
    def from_config(cls, config: IPCConfig) -> Optional["StagePublisher"]:
        if not config.enabled:
            return None
        return cls(config.stage_endpoint)

    def stage(self, stage: Stage, run_index: int) -> None:
        publish_json(
            self.sock,
            TOPIC_PIPELINE_STAGE,
            {"stage": stage.value, "run": run_index, "timestamp": int(time.time())},
        )

    def result(self, payload: Dict[str, Any]) -> None:
        publish_json(self.sock, TOPIC_PIPELINE_RESULT, payload)

    def close(self) -> None:
        self.sock.close(0)
