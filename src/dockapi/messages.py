"""Demultiplex attached container streams.

When a container runs without a TTY the engine multiplexes stdout and
stderr over one connection. Each frame starts with an 8-byte header::

    [stream_type, 0, 0, 0, size (uint32, big endian)]

followed by ``size`` bytes of payload. Frames can be split across network
chunks, so :class:`Messages` keeps the incomplete tail until the next
chunk arrives. A UTF-8 character can likewise straddle two chunks or two
frames; each stream has its own incremental decoder for that.
"""

import codecs
import struct
from collections import deque
from enum import IntEnum
from typing import Deque, Dict, Iterable, List, Optional, Tuple, Union

from dockapi.logging import get_logger

logger = get_logger(__name__, component="messages")

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxI")


class StreamType(IntEnum):
    STDIN = 0
    STDOUT = 1
    STDERR = 2


Frame = Tuple[str, str]


def _utf8_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


class Messages:
    """Accumulates decoded stdout and stderr messages.

    Args:
        tty: The container has a TTY, so the stream is raw stdout with no
            frame headers.
        record: Append decoded frames to the per-stream lists.
    """

    def __init__(self, tty: bool = False, record: bool = True):
        self.tty = tty
        self.record = record
        self.stdout_messages: List[str] = []
        self.stderr_messages: List[str] = []
        self.all_messages: List[str] = []
        self._buffer = b""
        self._decoders: Dict[str, codecs.IncrementalDecoder] = {
            "stdout": _utf8_decoder(),
            "stderr": _utf8_decoder(),
        }

    def decipher(self, chunk: Union[str, bytes]) -> List[Frame]:
        """Decode ``chunk`` and return the frames it completed.

        Each frame is a ``(stream, text)`` tuple where stream is
        ``"stdout"`` or ``"stderr"``. Bytes of a character that is not
        complete yet are held back for the next frame of the same stream.
        """
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        data = self._buffer + chunk

        frames: List[Frame] = []
        if self.tty or not _looks_multiplexed(data):
            self._buffer = b""
            text = self._decoders["stdout"].decode(data)
            if text:
                frames.append(("stdout", text))
        else:
            while len(data) >= HEADER_SIZE:
                stream_type, size = _HEADER.unpack_from(data)
                if len(data) < HEADER_SIZE + size:
                    break
                payload = data[HEADER_SIZE:HEADER_SIZE + size]
                data = data[HEADER_SIZE + size:]
                stream = "stderr" if stream_type == StreamType.STDERR else "stdout"
                text = self._decoders[stream].decode(payload)
                if text or not payload:
                    frames.append((stream, text))
            self._buffer = data

        self._record(frames)
        return frames

    def finish(self) -> List[Frame]:
        """End the stream, returning text still held by the decoders.

        An incomplete frame left in the buffer cannot be completed any more
        and is dropped.
        """
        if self.pending:
            logger.debug("incomplete_frame_dropped", pending_bytes=self.pending)
            self._buffer = b""
        frames: List[Frame] = []
        for stream, decoder in self._decoders.items():
            text = decoder.decode(b"", final=True)
            if text:
                frames.append((stream, text))
        self._record(frames)
        return frames

    def _record(self, frames: List[Frame]) -> None:
        if self.record:
            for stream, text in frames:
                self.add(stream, text)

    def add(self, stream: str, text: str) -> None:
        if stream == "stderr":
            self.stderr_messages.append(text)
        else:
            self.stdout_messages.append(text)
        self.all_messages.append(text)

    @property
    def pending(self) -> int:
        """Bytes of an incomplete frame still buffered."""
        return len(self._buffer)


def _looks_multiplexed(data: bytes) -> bool:
    # Too short to tell yet: keep buffering as if framed.
    if len(data) < HEADER_SIZE:
        return not data or data[0] in (StreamType.STDIN, StreamType.STDOUT, StreamType.STDERR)
    return data[0] in (StreamType.STDIN, StreamType.STDOUT, StreamType.STDERR) and data[1:4] == b"\x00\x00\x00"


class MessagesStack:
    """Keeps the most recent frames, optionally bounded.

    Args:
        size: Maximum number of frames kept; ``None`` keeps everything.
    """

    def __init__(self, size: Optional[int] = None):
        self.size = size
        self.messages: Deque[Frame] = deque(maxlen=size)

    def append(self, frames: Iterable[Frame]) -> None:
        self.messages.extend(frames)

    def stream(self, name: str) -> List[str]:
        """Texts kept for ``name`` (``"stdout"`` or ``"stderr"``), oldest first."""
        return [text for stream, text in self.messages if stream == name]

    @property
    def all_messages(self) -> List[str]:
        return [text for _, text in self.messages]

    def __len__(self) -> int:
        return len(self.messages)
