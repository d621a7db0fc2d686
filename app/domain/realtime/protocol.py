"""Wire format of the realtime gateway."""

from typing import Any

import orjson
from pydantic import TypeAdapter, ValidationError

from .realtime_models import InboundFrame

INVALID_MESSAGE_FORMAT = "Invalid message format"

# Close codes sent when the handshake is rejected
CLOSE_AUTH_REQUIRED = 4001
CLOSE_INVALID_TOKEN = 4003

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


class GatewayError(Exception):
    """Rejection of a single inbound message; reported to the sender only."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def parse_frame(raw: str | bytes) -> InboundFrame:
    try:
        return _inbound_adapter.validate_json(raw)
    except ValidationError as e:
        raise GatewayError(INVALID_MESSAGE_FORMAT) from e


def encode_frame(payload: dict[str, Any]) -> str:
    return orjson.dumps(payload).decode("utf-8")


def error_frame(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}
