"""
ScanNorm - Hardware Protocol Module

Message model of the local hardware service: JSON command requests,
JSON responses, request/response correlation by uuid and detection of new
high-speed scanner captures. The socket transport itself lives elsewhere.
"""

import json
import logging
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scannorm.config import JPEG_DATA_URL_PREFIX, PHOTO_FIELDS
from scannorm.utils.exceptions import ProtocolError

logger = logging.getLogger(__name__)


class DeviceType(str, Enum):
    CAMERA = "camera"
    HIGH_CAMERA = "highCamera"
    ID_CARD = "idCard"
    PASSPORT = "passport"
    FINGER = "finger"
    SIGN = "sign"


class DeviceMethod(str, Enum):
    OPEN = "open"
    FACE_DETECTION = "faceDetection"
    CLOSE = "close"
    TAKE_PHOTO = "takePhoto"
    START_READ = "startRead"
    STOP_READ = "stopRead"
    START_SCAN = "startScan"
    STOP_SCAN = "stopScan"
    START_SIGN = "startSign"
    STOP_SIGN = "stopSign"


def generate_uuid() -> str:
    """Five-digit request id, 10000-99999."""
    return str(random.randint(10000, 99999))


@dataclass(frozen=True)
class HardwareRequest:
    """Command sent to the hardware service."""

    device_type: DeviceType
    method: DeviceMethod
    uuid: str = field(default_factory=generate_uuid)

    def to_dict(self) -> dict[str, str]:
        return {
            "deviceType": self.device_type.value,
            "deviceMethods": self.method.value,
            "uuid": self.uuid,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class HardwareResponse:
    """Reply or event from the hardware service.

    ``result == 0`` means success; otherwise ``msg`` holds the reason.
    """

    uuid: str
    func: str
    msg: str
    result: int
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.result == 0

    @property
    def device_type(self) -> str:
        """Leading part of ``func`` (e.g. "highCamera" in "highCamera-takePhoto")."""
        return self.func.partition("-")[0]

    def image_data_url(self, name: str) -> str | None:
        """A base64 image field of ``data`` as a JPEG data URL, if present."""
        value = self.data.get(name)
        if not value or not isinstance(value, str):
            return None
        if value.startswith("data:"):
            return value
        return JPEG_DATA_URL_PREFIX + value

    @classmethod
    def from_dict(cls, message: Any) -> "HardwareResponse":
        """Validate and build a response from a decoded JSON object.

        Raises:
            ProtocolError: on missing or mistyped fields
        """
        if not isinstance(message, dict):
            raise ProtocolError(f"expected a JSON object, got {type(message).__name__}")

        result = message.get("result")
        if isinstance(result, bool) or not isinstance(result, int):
            raise ProtocolError("'result' must be an integer")

        data = message.get("data") or {}
        if not isinstance(data, dict):
            raise ProtocolError("'data' must be an object")

        return cls(
            uuid=str(message.get("uuid", "")),
            func=str(message.get("func", "")),
            msg=str(message.get("msg", "")),
            result=result,
            data=data,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "HardwareResponse":
        """Parse a response message.

        Raises:
            ProtocolError: on invalid JSON or fields
        """
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
            raise ProtocolError(f"invalid JSON: {e}", raw=text) from e
        try:
            return cls.from_dict(message)
        except ProtocolError as e:
            text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
            raise ProtocolError(e.reason, raw=text) from e


class ResponseRouter:
    """Delivers each response to the handler registered for its uuid, once."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[HardwareResponse], None]] = {}
        self._lock = threading.Lock()

    def register(
        self, request: HardwareRequest, handler: Callable[[HardwareResponse], None]
    ) -> None:
        with self._lock:
            self._handlers[request.uuid] = handler

    def forget(self, uuid: str) -> bool:
        """Drop a pending handler (e.g. after a timeout); True if one was pending."""
        with self._lock:
            return self._handlers.pop(uuid, None) is not None

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._handlers)

    def dispatch(self, response: HardwareResponse) -> bool:
        """Call and drop the matching handler; True if one was found."""
        with self._lock:
            handler = self._handlers.pop(response.uuid, None)
        if handler is None:
            logger.debug(f"No pending request for response {response.uuid} ({response.func})")
            return False
        handler(response)
        return True

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


class CaptureTracker:
    """Spots new captures in the response stream.

    A capture is new when its raw payload differs from the last accepted
    one; failed responses are ignored.
    """

    def __init__(self, fields: tuple[str, ...] = PHOTO_FIELDS) -> None:
        self.fields = tuple(fields)
        self._last: dict[str, str] = {}

    def accept(self, response: HardwareResponse) -> str | None:
        """Return the new capture as a JPEG data URL, or None."""
        if not response.ok:
            logger.debug(f"Ignoring failed response {response.func}: {response.msg}")
            return None

        for name in self.fields:
            capture = response.image_data_url(name)
            if capture is None:
                continue
            if self._last.get(name) == capture:
                logger.debug(f"Capture in '{name}' unchanged, ignoring")
                continue
            self._last[name] = capture
            logger.info(f"New capture in '{name}' from {response.func or 'unknown source'}")
            return capture
        return None

    def reset(self) -> None:
        self._last.clear()
