"""Resize control message — ``{"rows": int, "cols": int}`` as JSON."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ResizeMessage(BaseModel):
    """Terminal dimensions sent by the controller.

    Both fields are required unsigned 16-bit values and must be positive.
    Strict mode rejects strings, floats and booleans so that a payload is
    either applied whole or not at all.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    rows: int = Field(gt=0, le=0xFFFF)
    cols: int = Field(gt=0, le=0xFFFF)


def encode_resize(rows: int, cols: int) -> bytes:
    """Serialize dimensions to the compact JSON wire form."""
    return ResizeMessage(rows=rows, cols=cols).model_dump_json().encode("utf-8")


def decode_resize(payload: bytes) -> ResizeMessage | None:
    """Parse a resize payload. Returns None for anything malformed."""
    try:
        return ResizeMessage.model_validate_json(payload)
    except ValidationError as e:
        logger.debug("Discarding resize payload %r: %s", payload[:64], e)
        return None
