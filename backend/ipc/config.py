"""
Command Proxy Configuration

Environment-based configuration for the instruments command relay.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/instruments_sock"
DEFAULT_LOG_LEVEL = "INFO"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass
class RelayConfig:
    """
    Settings for a command proxy session.

    Environment variables:
        UIAUTO_SOCKET_PATH: Unix socket path instruments connects to
        UIAUTO_SOCKET_MODE: Octal permission bits for the socket file (e.g. 600)
        UIAUTO_LOG_LEVEL: Logging level name
    """
    socket_path: str = DEFAULT_SOCKET_PATH
    socket_mode: Optional[int] = None
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """
        Load configuration from environment variables.

        Raises:
            ValueError: If UIAUTO_SOCKET_MODE is not an octal number
        """
        mode_str = os.getenv("UIAUTO_SOCKET_MODE")
        socket_mode = None
        if mode_str:
            try:
                socket_mode = int(mode_str, 8)
            except ValueError:
                raise ValueError(f"UIAUTO_SOCKET_MODE must be octal, got: {mode_str!r}")

        return cls(
            socket_path=os.getenv("UIAUTO_SOCKET_PATH", DEFAULT_SOCKET_PATH),
            socket_mode=socket_mode,
            log_level=os.getenv("UIAUTO_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        )

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Check the configuration for obvious mistakes.

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = []

        if not self.socket_path:
            errors.append("Socket path must not be empty")
        elif Path(self.socket_path).is_dir():
            errors.append(f"Socket path is a directory: {self.socket_path}")

        if self.socket_mode is not None and not 0 <= self.socket_mode <= 0o777:
            errors.append(f"Socket mode out of range: {oct(self.socket_mode)}")

        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(f"Unknown log level: {self.log_level}")

        for error in errors:
            logger.warning(f"Invalid relay configuration: {error}")

        return not errors, errors
