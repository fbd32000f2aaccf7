"""
Server-Sent Events framing

Line-oriented decoder used by the push transport and the matching encoder
used by the API's event stream.

Wire format (text/event-stream):
    event: sprint_data_updated
    id: 42
    data: {"projectId": "Product", "timestamp": "2025-01-01T10:00:00Z"}
    <blank line dispatches the event>

Lines starting with ':' are comments (used as keep-alives) and are ignored.
Multiple `data:` lines are joined with newlines.
"""

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class SSEMessage:
    """A decoded SSE frame. `event` is None for unlabeled messages."""

    event: str | None
    data: str
    event_id: str | None = None
    retry: int | None = None

    def json(self) -> Any:
        """Parse `data` as JSON; empty data parses to None."""
        if not self.data:
            return None
        return json.loads(self.data)


class SSEDecoder:
    """
    Incremental SSE decoder.

    Feed it one line at a time (without the trailing newline); it returns an
    SSEMessage when a blank line completes a frame.

    Example:
        >>> decoder = SSEDecoder()
        >>> decoder.feed("event: heartbeat")
        >>> decoder.feed("data: {}")
        >>> decoder.feed("")
        SSEMessage(event='heartbeat', data='{}', event_id=None, retry=None)
    """

    def __init__(self):
        self._reset()

    def _reset(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._event_id: str | None = None
        self._retry: int | None = None
        self._has_fields = False

    def feed(self, line: str) -> SSEMessage | None:
        line = line.rstrip("\r")

        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value or None
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._event_id = value or None
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)
        else:
            # Unknown field names are ignored
            return None

        self._has_fields = True
        return None

    def _dispatch(self) -> SSEMessage | None:
        if not self._has_fields:
            return None
        message = SSEMessage(
            event=self._event,
            data="\n".join(self._data),
            event_id=self._event_id,
            retry=self._retry,
        )
        self._reset()
        return message


def encode_sse(data: Any, event: str | None = None, event_id: str | None = None) -> str:
    """
    Encode one SSE frame.

    Non-string data is JSON-encoded. Multi-line data is split across
    several `data:` lines.
    """
    payload = data if isinstance(data, str) else json.dumps(data, default=str)

    lines = []
    if event:
        lines.append(f"event: {event}")
    if event_id:
        lines.append(f"id: {event_id}")
    for chunk in payload.split("\n"):
        lines.append(f"data: {chunk}")
    return "\n".join(lines) + "\n\n"


def encode_comment(text: str) -> str:
    """Encode an SSE comment frame (ignored by clients, keeps proxies open)."""
    return f": {text}\n\n"
