"""
UIAuto Relay Main Entry Point

Starts the instruments command proxy, waits for instruments to connect,
and relays commands given on the command line (or read from stdin),
printing each result as a JSON line.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import stat
import sys
from typing import List, Optional

from ipc import CommandProxy, RelayConfig, RelayError, RelayShutdownError


def setup_logging(level: Optional[str] = None):
    """
    Configure logging for the relay.

    The level comes from the argument, then UIAUTO_LOG_LEVEL, then INFO.
    """
    log_level_str = (level or os.getenv("UIAUTO_LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


logger = logging.getLogger(__name__)


class RelayBackend:
    """
    Command relay application.

    Owns one CommandProxy session and feeds it commands in order.
    """

    STDIN_LINE_LIMIT = 1024 * 1024

    def __init__(self, config: RelayConfig):
        self.config = config
        self.proxy = CommandProxy(config.socket_path, socket_mode=config.socket_mode)
        self.failures = 0
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def start(self) -> None:
        """Listen on the socket and wait for instruments."""
        logger.info(f"Waiting for instruments on {self.config.socket_path}...")
        await self.proxy.start()

    async def stop(self) -> None:
        """Tear the proxy down, never raising."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("Stopping command relay...")
        await self.proxy.safe_shutdown()
        logger.info(f"Command relay stopped: {self.proxy.stats.to_dict()}")

    async def run_command(self, cmd: str) -> None:
        """Send one command and report its outcome."""
        if self._stopping:
            raise RelayShutdownError()

        try:
            value = await self.proxy.send_command(cmd)
        except RelayShutdownError:
            raise
        except RelayError as e:
            self.failures += 1
            print(f"error: {e}", file=sys.stderr)
            return

        print(json.dumps(value), flush=True)

    async def run(self, commands: List[str]) -> int:
        """
        Relay the given commands, or stdin lines if there are none.

        Returns:
            Process exit code
        """
        try:
            await self.start()

            if commands:
                for cmd in commands:
                    await self.run_command(cmd)
            else:
                async for cmd in self._read_stdin():
                    await self.run_command(cmd)
        except RelayShutdownError:
            logger.info("Relay shut down before all commands completed")
            self.failures += 1
        except asyncio.CancelledError:
            logger.info("Relay interrupted")
            self.failures += 1
        finally:
            await self.stop()

        return 1 if self.failures else 0

    async def _read_stdin(self):
        """Yield non-empty stdin lines without blocking the event loop."""
        if stat.S_ISREG(os.fstat(sys.stdin.fileno()).st_mode):
            # pipe transports refuse regular files, which never block
            for line in sys.stdin:
                cmd = line.strip()
                if cmd:
                    yield cmd
            return

        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self.STDIN_LINE_LIMIT)
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
        )
        try:
            while True:
                line = await reader.readline()
                if not line:
                    return
                cmd = line.decode("utf-8", errors="replace").strip()
                if cmd:
                    yield cmd
        finally:
            transport.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Relay UIAuto commands to instruments over a Unix domain socket."
    )
    parser.add_argument(
        "--socket",
        help="Socket path instruments connects to (default: $UIAUTO_SOCKET_PATH or /tmp/instruments_sock)",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: $UIAUTO_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "commands",
        nargs="*",
        help="Commands to send; read one per line from stdin if omitted",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RelayConfig:
    """Load config from the environment, then apply command line overrides."""
    config = RelayConfig.from_env()
    if args.socket:
        config.socket_path = args.socket
    if args.log_level:
        config.log_level = args.log_level.upper()
    return config


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(str(e))
        return 2

    is_valid, errors = config.validate()
    if not is_valid:
        logger.error(f"Invalid configuration: {'; '.join(errors)}")
        return 2

    backend = RelayBackend(config)
    run_task = asyncio.create_task(backend.run(args.commands))

    # Set up signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        # run() stops the proxy itself once interrupted
        if not backend.stopping:
            run_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        return await run_task
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
