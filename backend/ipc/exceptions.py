"""
Command Proxy Exceptions

Custom exceptions for the instruments command relay.
"""

from typing import Any


class RelayError(Exception):
    """Base exception for command relay errors."""
    pass


class CommandFailedError(RelayError):
    """Raised when instruments reports a non-success status for a command."""
    
    def __init__(self, value: Any, status: int = 1):
        self.value = value
        self.status = status
        super().__init__(value if isinstance(value, str) else str(value))


class InvalidCommandError(RelayError, ValueError):
    """Raised when a command identifier cannot be queued."""
    
    def __init__(self, cmd: Any, reason: str = "Command must be a non-empty string"):
        self.cmd = cmd
        self.reason = reason
        super().__init__(f"Invalid command {cmd!r}: {reason}")


class RelayShutdownError(RelayError):
    """Raised for commands abandoned when the proxy shuts down."""
    
    def __init__(self, message: str = "Command proxy was shut down"):
        super().__init__(message)


class AlreadyListeningError(RelayError):
    """Raised when starting a proxy that is already listening."""
    
    def __init__(self, socket_path: str):
        self.socket_path = socket_path
        super().__init__(f"Command proxy is already listening at {socket_path}")
