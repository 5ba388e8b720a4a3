"""
Job payload wire format.

Payloads are opaque JSON values; no schema is applied here. Decoding errors
surface on the consumer side as processing failures.
"""

import json
from typing import Any


def encode_payload(payload: Any) -> bytes:
    """Serialize a payload to compact UTF-8 JSON."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def decode_payload(body: bytes) -> Any:
    """Deserialize a message body produced by ``encode_payload``."""
    return json.loads(body.decode("utf-8"))
