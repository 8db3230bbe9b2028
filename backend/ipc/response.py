"""
Instruments Response Accumulator

Buffers the text instruments writes over a connection and turns it into
a UIAutoResult once a complete frame is available. Large results arrive
as a series of chunk frames, one per connection, and are joined here.
"""

import json
import logging
import re

from .protocol import MessageType, UIAutoResult

logger = logging.getLogger(__name__)

# Literal tokens the decoder accepts; "-" is a prefix of "-Infinity"
_LITERALS = ("true", "false", "null", "NaN", "Infinity", "-Infinity")

# What can follow the digits of a number the decoder stopped early on
_PARTIAL_NUMBER_TAIL = re.compile(r"\.\d*(?:[eE][+-]?\d*)?|[eE][+-]?\d*")

_PARTIAL_UNICODE_ESCAPE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")


def _is_truncated(error: json.JSONDecodeError) -> bool:
    """
    Whether decoding failed only because the input ended too early.

    True when the text from the error position to the end is a proper
    prefix of a JSON token: nothing at all, part of a string, a literal,
    a number or a \\uXXXX escape.
    """
    doc, pos = error.doc, error.pos
    rest = doc[pos:]

    if not rest.strip():
        return True
    if error.msg.startswith("Unterminated string"):
        return True
    if error.msg.startswith("Invalid \\uXXXX escape"):
        return _PARTIAL_UNICODE_ESCAPE.search(doc) is not None
    if any(literal != rest and literal.startswith(rest) for literal in _LITERALS):
        return True
    if pos > 0 and doc[pos - 1].isdigit():
        return _PARTIAL_NUMBER_TAIL.fullmatch(rest) is not None
    return False


class UIAutoResponse:
    """Accumulates raw frame text until a full result can be parsed."""

    def __init__(self):
        self.buffered_data = ""
        self.result_buffer = ""

    def add_data(self, data: str) -> None:
        """Append text received from instruments."""
        self.buffered_data += data

    def reset_buffer(self) -> None:
        """Discard buffered text, including any partially joined chunks."""
        self.buffered_data = ""
        self.result_buffer = ""

    def get_result(self) -> UIAutoResult:
        """
        Try to parse one complete frame from the buffered text.

        Returns:
            UIAutoResult with needs_more_data set if the frame is not complete
            yet. An incomplete regular frame is left in the buffer so the
            next connection's text extends it; a chunk frame is moved into
            the chunk buffer.
        """
        data = self.buffered_data
        if not data:
            return UIAutoResult.more_data()

        tag, separator, body = data.partition(",")
        try:
            message_type = MessageType(tag)
        except ValueError:
            logger.error(f"Could not parse data from socket: {data[:100]!r}")
            self.reset_buffer()
            return UIAutoResult.unknown_error("Error parsing socket data from instruments")

        if not separator and message_type is not MessageType.NO_DATA:
            # only the tag has arrived so far
            return UIAutoResult.more_data()

        if message_type is MessageType.NO_DATA:
            self.reset_buffer()
            return UIAutoResult()

        if message_type is MessageType.CHUNK:
            logger.debug(f"Got result chunk ({len(body)} chars)")
            self.result_buffer += body
            self.buffered_data = ""
            return UIAutoResult.more_data()

        if message_type is MessageType.LAST_CHUNK:
            text = self.result_buffer + body
        else:
            text = body

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            if _is_truncated(e):
                logger.debug("Result frame is incomplete, waiting for more data")
                return UIAutoResult.more_data()
            logger.error(f"Invalid JSON result from instruments: {e}")
            self.reset_buffer()
            return UIAutoResult.unknown_error(f"Invalid JSON result from instruments: {e}")

        self.reset_buffer()
        return UIAutoResult.from_payload(payload)
