"""Server-Sent Events framing for the agent chat stream.

Records look like::

    event: text
    data: {"type":"text","content":"Hello"}

and are separated by a blank line. Decoding is best-effort: records that do
not have this shape, or whose data is not a valid event, are dropped so that
older clients keep working when the server adds new event types.
"""

import codecs
import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from pydantic import ValidationError

from .events import StreamEvent, parse_event

logger = logging.getLogger(__name__)

RECORD_DELIMITER = "\n\n"

_RECORD_RE = re.compile(r"^event: (\w+)\ndata: ([\s\S]+)$")


@dataclass(frozen=True)
class SSERecord:
    """One framed record: the declared event name and its raw data."""

    event: str
    data: str


def parse_record(raw: str) -> SSERecord | None:
    """Match a raw record against the ``event:``/``data:`` shape."""
    if not raw.strip():
        return None
    match = _RECORD_RE.match(raw)
    if not match:
        logger.debug(f"Dropping unframed record: {raw[:80]!r}")
        return None
    return SSERecord(event=match.group(1), data=match.group(2))


class SSEDecoder:
    """Incremental record splitter.

    Feed it chunks as they arrive from the network; it returns only records
    whose terminating blank line has been seen and buffers the rest.
    """

    def __init__(self):
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending(self) -> str:
        """Buffered text of the incomplete trailing record."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[SSERecord]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        # A CRLF split across two reads is rejoined here because the
        # trailing "\r" stays in the buffer.
        self._buffer = (self._buffer + chunk).replace("\r\n", "\n")

        *complete, self._buffer = self._buffer.split(RECORD_DELIMITER)

        records = []
        for raw in complete:
            record = parse_record(raw)
            if record is not None:
                records.append(record)
        return records


def decode_record(record: SSERecord) -> StreamEvent | None:
    """Decode a record's data into a StreamEvent, or None if it is malformed.

    A payload without a ``type`` field takes the record's event name.
    """
    try:
        payload = json.loads(record.data)
    except json.JSONDecodeError:
        logger.debug(f"Dropping {record.event} record with invalid JSON")
        return None

    if not isinstance(payload, dict):
        logger.debug(f"Dropping {record.event} record with non-object data")
        return None

    payload.setdefault("type", record.event)
    try:
        return parse_event(payload)
    except ValidationError as e:
        logger.debug(f"Dropping {record.event} record: {e.error_count()} validation errors")
        return None


async def aiter_events(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[StreamEvent]:
    """Decode an async stream of raw chunks into StreamEvents, in order."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for record in decoder.feed(chunk):
            event = decode_record(record)
            if event is not None:
                yield event

    if decoder.pending.strip():
        logger.debug(f"Stream ended with {len(decoder.pending)} chars of unterminated record")


def iter_events(text: str) -> list[StreamEvent]:
    """Decode a complete SSE body (e.g. a recorded response)."""
    decoder = SSEDecoder()
    events = []
    for record in decoder.feed(text):
        event = decode_record(record)
        if event is not None:
            events.append(event)
    return events


def encode_event(event: StreamEvent) -> str:
    """Frame an event for the wire, camelCase JSON on a single data line."""
    data = event.model_dump_json(by_alias=True, exclude_none=True)
    return f"event: {event.type}\ndata: {data}{RECORD_DELIMITER}"
