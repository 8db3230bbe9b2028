"""
Unix Domain Socket Command Proxy

Relays commands to and from the instruments process. Instruments cannot
be addressed directly: it connects to our socket once per exchange,
sends the result of the previous command (if any), half-closes, and
reads the next command we write back before the connection is closed.

The message route is the following:
Driver <--> Command Proxy <--> Instruments
"""

import asyncio
import codecs
import logging
import os
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Deque, List, Optional

from .config import DEFAULT_SOCKET_PATH
from .exceptions import (
    AlreadyListeningError,
    CommandFailedError,
    InvalidCommandError,
    RelayShutdownError,
)
from .paths import prepare_socket_path
from .protocol import MORE_COMMAND, CommandMessage, UIAutoResult
from .response import UIAutoResponse

logger = logging.getLogger(__name__)


@dataclass
class Command:
    """A queued command and the future its caller is waiting on."""

    cmd: str
    future: asyncio.Future


@dataclass
class RelayStats:
    """Counters describing what a proxy session has done so far."""

    connections_accepted: int = 0
    commands_submitted: int = 0
    commands_dispatched: int = 0
    continuations_requested: int = 0
    results_resolved: int = 0
    results_rejected: int = 0
    unexpected_frames: int = 0
    abandoned_in_flight: int = 0

    @property
    def in_flight(self) -> int:
        """Commands written to instruments whose result has not settled."""
        return (
            self.commands_dispatched
            - self.continuations_requested
            - self.results_resolved
            - self.results_rejected
            - self.abandoned_in_flight
        )

    def to_dict(self) -> dict:
        return {**asdict(self), "in_flight": self.in_flight}


class CommandProxy:
    """
    Unix Domain Socket relay between a driver and instruments.

    Commands are executed strictly one at a time: at most one command is
    in flight, and the next one is only written once the previous result
    has been fully received.

    Usage::

        proxy = CommandProxy("/tmp/instruments_sock")
        connected = await proxy.listen()
        # ... launch instruments ...
        await connected
        value = await proxy.send_command("au.mainApp()")
        await proxy.shutdown()
    """

    DEFAULT_SOCKET_PATH = DEFAULT_SOCKET_PATH
    READ_CHUNK_SIZE = 65536

    def __init__(self, socket_path: Optional[str] = None, socket_mode: Optional[int] = None):
        self.socket_path = Path(socket_path or self.DEFAULT_SOCKET_PATH)
        self.socket_mode = socket_mode
        self.server: Optional[asyncio.Server] = None
        self.clients: List[asyncio.StreamWriter] = []
        self.stats = RelayStats()

        self._has_connected = False
        self._connected: Optional[asyncio.Future] = None
        self._response = UIAutoResponse()

        # Dispatch state
        self._command_queue: Deque[Command] = deque()
        self._current_command: Optional[Command] = None
        self._current_writer: Optional[asyncio.StreamWriter] = None
        self._on_receive_command: Optional[Callable[[], None]] = None

    @property
    def is_listening(self) -> bool:
        return self.server is not None

    @property
    def has_connected(self) -> bool:
        """Whether instruments has ever connected to this proxy."""
        return self._has_connected

    @property
    def is_connected(self) -> bool:
        return self._current_writer is not None

    @property
    def pending_commands(self) -> List[str]:
        return [command.cmd for command in self._command_queue]

    def submit(self, cmd: str) -> asyncio.Future:
        """
        Queue a command for instruments.

        If the proxy is idle, waiting on an open connection with nothing
        to send, the command is written immediately.

        Args:
            cmd: Command to execute in instruments

        Returns:
            Future resolved with the command's value, or failed with
            CommandFailedError if instruments reports an error.

        Raises:
            InvalidCommandError: If cmd is empty or the reserved continuation command
        """
        if not isinstance(cmd, str) or not cmd:
            raise InvalidCommandError(cmd)
        if cmd == MORE_COMMAND:
            raise InvalidCommandError(cmd, "Reserved for requesting the rest of a result")

        future = asyncio.get_running_loop().create_future()
        self._command_queue.append(Command(cmd=cmd, future=future))
        self.stats.commands_submitted += 1

        if self._on_receive_command is not None:
            self._on_receive_command()

        return future

    async def send_command(self, cmd: str) -> Any:
        """Send a command to instruments and wait for its value."""
        return await self.submit(cmd)

    async def listen(self) -> asyncio.Future:
        """
        Start listening for instruments.

        Returns:
            Future resolved once instruments connects. Its value is True
            only for the first connection this proxy ever accepts.

        Raises:
            AlreadyListeningError: If the proxy is already listening
            OSError: If the socket path cannot be prepared
        """
        if self.server is not None:
            raise AlreadyListeningError(str(self.socket_path))

        self._connected = asyncio.get_running_loop().create_future()
        self._response = UIAutoResponse()

        # remove socket file if it currently exists and create its directory
        prepare_socket_path(self.socket_path)

        self.server = await asyncio.start_unix_server(
            self._handle_connection,
            path=str(self.socket_path)
        )

        if self.socket_mode is not None:
            os.chmod(self.socket_path, self.socket_mode)

        logger.debug(f"Instruments socket server started at {self.socket_path}")
        return self._connected

    async def start(self) -> bool:
        """
        Start listening and wait for instruments to connect.

        Returns:
            True if the connection is the first one for this proxy session
        """
        connected = await self.listen()
        return await connected

    async def shutdown(self) -> None:
        """
        Tear down the session.

        Commands still waiting for a result are failed with
        RelayShutdownError so no caller waits forever, and no late
        connection can complete them afterwards.
        """
        abandoned = []
        if self._current_command is not None:
            abandoned.append(self._current_command)
            self.stats.abandoned_in_flight += 1
        abandoned.extend(self._command_queue)

        self._current_command = None
        self._on_receive_command = None
        self._command_queue.clear()
        self._response.reset_buffer()

        for command in abandoned:
            if not command.future.done():
                command.future.set_exception(RelayShutdownError())

        if self._connected is not None and not self._connected.done():
            self._connected.set_exception(
                RelayShutdownError("Command proxy was shut down before instruments connected")
            )
        self._connected = None

        if self.clients:
            logger.debug("Destroying instruments client socket.")
            for writer in self.clients:
                writer.transport.abort()
            self.clients.clear()
        self._current_writer = None

        if self.server is not None:
            logger.debug("Closing socket server.")
            server = self.server
            self.server = None
            server.close()
            await server.wait_closed()
            try:
                self.socket_path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug(f"Could not remove socket file {self.socket_path}: {e}")
            logger.debug("Instruments socket server was closed")

    async def safe_shutdown(self) -> None:
        """Shut down, logging instead of raising any error."""
        logger.debug("Shutting down command proxy and ignoring any errors")
        try:
            await self.shutdown()
        except Exception as e:
            logger.debug(f"Ignoring error: {e}")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ):
        """Handle one exchange with instruments."""
        self.stats.connections_accepted += 1
        if self._connected is not None and not self._connected.done():
            is_first = not self._has_connected
            self._has_connected = True
            if is_first:
                logger.info("Instruments is ready to receive commands")
            self._connected.set_result(is_first)

        # keep track of this so that we can destroy the socket
        # when shutting down
        self.clients.append(writer)
        self._current_writer = writer
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        try:
            # all data goes into the response buffer
            while True:
                chunk = await reader.read(self.READ_CHUNK_SIZE)
                if not chunk:
                    break
                logger.debug(f"Socket data received ({len(chunk)} bytes)")
                self._response.add_data(decoder.decode(chunk))
            self._response.add_data(decoder.decode(b"", final=True))

            # EOF caused by our own teardown is not an exchange boundary
            if writer.is_closing():
                return

            self._on_connection_end(writer)
            await writer.wait_closed()
        except OSError as e:
            logger.debug(f"Instruments connection error: {e}")
        finally:
            if writer in self.clients:
                self.clients.remove(writer)
            if self._current_writer is writer:
                self._current_writer = None
            writer.close()

    def _on_connection_end(self, writer: asyncio.StreamWriter) -> None:
        """
        Instruments finished writing: settle the command in flight, then
        send the next one.
        """
        # if we are midway through handling a command
        # we want to try out the data, getting more if necessary
        if self._current_command is not None:
            result = self._response.get_result()
            if result.needs_more_data:
                logger.debug("Not the last chunk, trying to get more")
                self._command_queue.appendleft(
                    Command(cmd=MORE_COMMAND, future=self._current_command.future)
                )
                self.stats.continuations_requested += 1
            else:
                self._complete(self._current_command, result)
                self._current_command = None
        else:
            if self._response.buffered_data:
                logger.debug("Got a result when we were not expecting one! Ignoring it")
                self.stats.unexpected_frames += 1
            self._response.reset_buffer()

        def on_receive_command():
            self._on_receive_command = None
            self._dispatch_next(writer)

        if self._command_queue:
            on_receive_command()
        else:
            self._on_receive_command = on_receive_command

    def _dispatch_next(self, writer: asyncio.StreamWriter) -> None:
        """Write the head of the queue and half-close our side."""
        command = self._command_queue.popleft()
        self._current_command = command
        self.stats.commands_dispatched += 1

        logger.debug(f"Sending command to instruments: {command.cmd}")
        writer.write(CommandMessage(command.cmd).to_bytes())
        writer.write_eof()
        writer.close()

    def _complete(self, command: Command, result: UIAutoResult) -> None:
        """Resolve or fail the caller's future with a final result."""
        if result.is_success:
            self.stats.results_resolved += 1
            if not command.future.done():
                command.future.set_result(result.value)
        else:
            self.stats.results_rejected += 1
            if not command.future.done():
                command.future.set_exception(CommandFailedError(result.value, result.status))
