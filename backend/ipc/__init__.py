"""IPC module relaying commands to instruments via Unix Domain Socket."""

from .server import CommandProxy, RelayStats
from .config import RelayConfig
from .protocol import (
    MORE_COMMAND,
    MessageType,
    CommandMessage,
    UIAutoResult,
)
from .response import UIAutoResponse
from .exceptions import (
    RelayError,
    CommandFailedError,
    InvalidCommandError,
    RelayShutdownError,
    AlreadyListeningError,
)

__all__ = [
    "CommandProxy",
    "RelayStats",
    "RelayConfig",
    "MORE_COMMAND",
    "MessageType",
    "CommandMessage",
    "UIAutoResult",
    "UIAutoResponse",
    "RelayError",
    "CommandFailedError",
    "InvalidCommandError",
    "RelayShutdownError",
    "AlreadyListeningError",
]
