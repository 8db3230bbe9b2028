"""
Instruments Message Protocol

Command Proxy --> Instruments message format: {"cmd": "<CMD>"}

Instruments --> Command Proxy message format:
<one char message type>,<stringified json data>

<stringified json data> format: {"status": <status>, "value": <result>}
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
import json


# Reserved command asking instruments for the rest of a chunked result
MORE_COMMAND = "#more"

SUCCESS_STATUS = 0
UNKNOWN_ERROR_STATUS = 13


class MessageType(str, Enum):
    """Type tags of frames sent by instruments."""
    
    ERROR = "0"
    NO_DATA = "1"
    REGULAR = "2"
    CHUNK = "3"
    LAST_CHUNK = "4"


@dataclass
class CommandMessage:
    """Command frame sent from the proxy to instruments."""
    
    cmd: str
    
    def to_json(self) -> str:
        """Serialize command to JSON string."""
        return json.dumps({"cmd": self.cmd})
    
    def to_bytes(self) -> bytes:
        return self.to_json().encode()
    
    @property
    def is_continuation(self) -> bool:
        return self.cmd == MORE_COMMAND
    
    @classmethod
    def from_json(cls, json_str: str) -> "CommandMessage":
        """Deserialize command from JSON string."""
        data = json.loads(json_str)
        return cls(cmd=data["cmd"])


@dataclass
class UIAutoResult:
    """Outcome of parsing the bytes instruments sent for a command."""
    
    status: int = SUCCESS_STATUS
    value: Any = None
    needs_more_data: bool = False
    
    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS_STATUS
    
    @classmethod
    def more_data(cls) -> "UIAutoResult":
        return cls(needs_more_data=True)
    
    @classmethod
    def unknown_error(cls, detail: str) -> "UIAutoResult":
        return cls(status=UNKNOWN_ERROR_STATUS, value=detail)
    
    @classmethod
    def from_payload(cls, payload: Any) -> "UIAutoResult":
        """
        Build a result from a decoded {status, value} object.
        
        Payloads that are not such an object become an unknown error.
        """
        if not isinstance(payload, dict) or "status" not in payload:
            return cls.unknown_error(f"Malformed result from instruments: {payload!r}")
        
        status = payload["status"]
        if isinstance(status, bool) or not isinstance(status, int):
            return cls.unknown_error(f"Malformed result status from instruments: {status!r}")
        
        return cls(status=status, value=payload.get("value"))
    
    def to_dict(self) -> dict:
        return {"status": self.status, "value": self.value}


def encode_result_frame(message_type: MessageType, payload: str = "") -> str:
    """Build an instruments-side frame; used by peers and tests."""
    return f"{message_type.value},{payload}"
