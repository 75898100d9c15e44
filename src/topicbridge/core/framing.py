"""
Length-prefixed wire framing.

Every message crosses the network as::

    [8-byte little-endian unsigned length][length bytes of payload]

The decoder never assumes one transport receive equals one frame: it works
on an accumulated buffer and reports how much it consumed, or that more
bytes are needed.
"""

import struct

from topicbridge.core.errors import FrameError

HEADER = struct.Struct("<Q")
HEADER_SIZE = HEADER.size


class NeedMoreData(Exception):
    """The buffer does not yet hold a complete frame."""

    def __init__(self, missing: int) -> None:
        super().__init__(f"{missing} more bytes needed")
        self.missing = missing


def encode(payload: bytes) -> bytes:
    """Prefix a payload with its length."""
    return HEADER.pack(len(payload)) + bytes(payload)


def _frame_end(
    buffer: bytes | bytearray | memoryview,
    offset: int,
    max_payload_size: int | None,
) -> int | None:
    """End offset of the frame starting at ``offset``, or None if the header is incomplete."""
    if len(buffer) - offset < HEADER_SIZE:
        return None
    (length,) = HEADER.unpack_from(buffer, offset)
    if max_payload_size is not None and length > max_payload_size:
        raise FrameError(f"Frame announces {length} bytes, limit is {max_payload_size}")
    return offset + HEADER_SIZE + length


def is_whole_frame(chunk: bytes | bytearray | memoryview) -> bool:
    """True if ``chunk`` is exactly one frame, header included."""
    if len(chunk) < HEADER_SIZE:
        return False
    (length,) = HEADER.unpack_from(chunk)
    return length == len(chunk) - HEADER_SIZE


def decode(
    buffer: bytes | bytearray | memoryview,
    max_payload_size: int | None = None,
) -> tuple[bytes, int]:
    """
    Extract the first complete frame from a buffer.

    Args:
        buffer: Bytes received so far, starting at a frame boundary
        max_payload_size: Reject headers announcing more than this

    Returns:
        (payload, consumed) where consumed counts header and payload bytes

    Raises:
        NeedMoreData: The buffer holds no complete frame yet
        FrameError: The header announces a payload over the limit
    """
    end = _frame_end(buffer, 0, max_payload_size)
    if end is None:
        raise NeedMoreData(HEADER_SIZE - len(buffer))
    if len(buffer) < end:
        raise NeedMoreData(end - len(buffer))
    return bytes(buffer[HEADER_SIZE:end]), end


class FrameBuffer:
    """
    Accumulates transport chunks and yields complete payloads.

    A corrupt header makes the rest of the buffer meaningless, so on
    ``FrameError`` the buffer is cleared before the error is raised.

    Transport messages arrive whole, so a chunk that is exactly one frame
    starts on a frame boundary. If such a chunk arrives while a partial
    frame is pending, the pending bytes belong to a truncated message and
    are discarded before the chunk is decoded.
    """

    def __init__(self, max_payload_size: int | None = None) -> None:
        self._buffer = bytearray()
        self._max_payload_size = max_payload_size
        self._discards = 0
        self._discarded_bytes = 0

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append a chunk and return every payload it completes."""
        if self._buffer and is_whole_frame(chunk):
            self.discard()

        buffer = self._buffer
        buffer += chunk
        payloads: list[bytes] = []
        offset = 0
        try:
            while True:
                end = _frame_end(buffer, offset, self._max_payload_size)
                if end is None or len(buffer) < end:
                    break
                payloads.append(bytes(buffer[offset + HEADER_SIZE : end]))
                offset = end
        except FrameError:
            buffer.clear()
            raise
        if offset:
            del buffer[:offset]
        return payloads

    def discard(self) -> int:
        """Drop the pending partial frame. Returns how many bytes were dropped."""
        dropped = len(self._buffer)
        if dropped:
            self._buffer.clear()
            self._discards += 1
            self._discarded_bytes += dropped
        return dropped

    @property
    def pending(self) -> int:
        """Bytes held that do not yet form a complete frame."""
        return len(self._buffer)

    @property
    def discards(self) -> int:
        """How many partial frames were dropped."""
        return self._discards

    @property
    def discarded_bytes(self) -> int:
        return self._discarded_bytes
