"""Client-side contracts for the chat window.

These state machines are what a UI drives: the conversation pane, the
message composer and the optimistic timeline that reconciles locally
appended messages with the server's answer. They hold no I/O; callers feed
them results from the HTTP API and live events from the socket.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4


class InvalidTransition(Exception):
    pass


class PaneState(str, Enum):
    NO_ACTIVE_CONVERSATION = "no_active_conversation"
    LOADING = "loading"
    LOADED = "loaded"
    LOAD_ERROR = "load_error"


class ComposerState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    SEND_ERROR = "send_error"


class EntryStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SEND_ERROR = "send_error"


@dataclass
class TimelineEntry:
    id: str
    sender_id: str
    content: str
    status: EntryStatus
    created_at: Optional[str] = None
    read: bool = False
    local_id: Optional[str] = None

    @classmethod
    def from_api(cls, message: Dict[str, Any], local_id: Optional[str] = None) -> "TimelineEntry":
        return cls(
            id=message["id"],
            sender_id=message["senderId"],
            content=message.get("content", ""),
            status=EntryStatus.CONFIRMED,
            created_at=message.get("createdAt"),
            read=message.get("read", False),
            local_id=local_id,
        )


@dataclass
class Timeline:
    """Messages of the open conversation, optimistic entries included.

    A confirmed server message replaces its optimistic entry by local id; a
    failed send stays in place marked SEND_ERROR so it can be retried.
    """

    entries: List[TimelineEntry] = field(default_factory=list)

    def _index(self, entry_id: str) -> Optional[int]:
        for i, entry in enumerate(self.entries):
            if entry.id == entry_id or entry.local_id == entry_id:
                return i
        return None

    def add_optimistic(self, sender_id: str, content: str) -> TimelineEntry:
        local_id = f"local-{uuid4().hex}"
        entry = TimelineEntry(id=local_id, sender_id=sender_id, content=content, status=EntryStatus.PENDING, local_id=local_id)
        self.entries.append(entry)
        return entry

    def confirm(self, local_id: str, message: Dict[str, Any]) -> TimelineEntry:
        confirmed = TimelineEntry.from_api(message, local_id=local_id)
        # the live echo may have landed before the HTTP answer
        echo = self._index(confirmed.id)
        if echo is not None and self.entries[echo].local_id is None:
            del self.entries[echo]
        index = self._index(local_id)
        if index is None:
            self.entries.append(confirmed)
        else:
            self.entries[index] = confirmed
        return confirmed

    def fail(self, local_id: str) -> None:
        index = self._index(local_id)
        if index is None:
            raise InvalidTransition(f"No optimistic entry {local_id}")
        self.entries[index].status = EntryStatus.SEND_ERROR

    def retry(self, local_id: str) -> TimelineEntry:
        index = self._index(local_id)
        if index is None or self.entries[index].status != EntryStatus.SEND_ERROR:
            raise InvalidTransition(f"Entry {local_id} is not failed")
        self.entries[index].status = EntryStatus.PENDING
        return self.entries[index]

    def apply_new(self, message: Dict[str, Any]) -> None:
        if self._index(message["id"]) is None:
            self.entries.append(TimelineEntry.from_api(message))

    def apply_deleted(self, message_id: str) -> None:
        index = self._index(message_id)
        if index is not None:
            del self.entries[index]

    def apply_read(self, reader_id: str) -> None:
        for entry in self.entries:
            if entry.sender_id != reader_id and entry.status == EntryStatus.CONFIRMED:
                entry.read = True


@dataclass
class ConversationPane:

    state: PaneState = PaneState.NO_ACTIVE_CONVERSATION
    conversation_id: Optional[str] = None
    error: Optional[str] = None
    timeline: Timeline = field(default_factory=Timeline)

    def open(self, conversation_id: str) -> None:
        self.state = PaneState.LOADING
        self.conversation_id = conversation_id
        self.error = None
        self.timeline = Timeline()

    def loaded(self, conversation_id: str, messages: List[Dict[str, Any]]) -> bool:
        """Apply a load result; results for a conversation no longer open are dropped."""
        if self.state != PaneState.LOADING or conversation_id != self.conversation_id:
            return False
        self.timeline = Timeline([TimelineEntry.from_api(m) for m in messages])
        self.state = PaneState.LOADED
        return True

    def load_failed(self, conversation_id: str, error: str) -> bool:
        if self.state != PaneState.LOADING or conversation_id != self.conversation_id:
            return False
        self.state = PaneState.LOAD_ERROR
        self.error = error
        return True

    def close(self) -> None:
        self.state = PaneState.NO_ACTIVE_CONVERSATION
        self.conversation_id = None
        self.error = None
        self.timeline = Timeline()

    def on_event(self, event: str, data: Dict[str, Any]) -> None:
        if self.state != PaneState.LOADED or data.get("conversationId") != self.conversation_id:
            return
        if event == "message:new":
            self.timeline.apply_new(data)
        elif event == "message:deleted":
            self.timeline.apply_deleted(data["messageId"])
        elif event == "message:read":
            self.timeline.apply_read(data["readerId"])


@dataclass
class MessageComposer:
    """Idle -> Sending -> Idle, or Sending -> SendError -> Idle with the draft kept."""

    state: ComposerState = ComposerState.IDLE
    draft: str = ""
    pending_local_id: Optional[str] = None
    error: Optional[str] = None

    def submit(self, timeline: Timeline, sender_id: str) -> TimelineEntry:
        if self.state != ComposerState.IDLE:
            raise InvalidTransition(f"Cannot send while {self.state.value}")
        if not self.draft.strip():
            raise InvalidTransition("Nothing to send")
        entry = timeline.add_optimistic(sender_id, self.draft.strip())
        self.pending_local_id = entry.local_id
        self.state = ComposerState.SENDING
        return entry

    def succeeded(self, timeline: Timeline, message: Dict[str, Any]) -> TimelineEntry:
        if self.state != ComposerState.SENDING or self.pending_local_id is None:
            raise InvalidTransition("No send in flight")
        confirmed = timeline.confirm(self.pending_local_id, message)
        self.state = ComposerState.IDLE
        self.draft = ""
        self.pending_local_id = None
        return confirmed

    def failed(self, timeline: Timeline, error: str) -> None:
        if self.state != ComposerState.SENDING or self.pending_local_id is None:
            raise InvalidTransition("No send in flight")
        timeline.fail(self.pending_local_id)
        self.state = ComposerState.SEND_ERROR
        self.error = error

    def dismiss_error(self) -> None:
        if self.state != ComposerState.SEND_ERROR:
            raise InvalidTransition("No send error to dismiss")
        self.state = ComposerState.IDLE
        self.error = None

    def retry(self, timeline: Timeline) -> TimelineEntry:
        if self.state != ComposerState.SEND_ERROR or self.pending_local_id is None:
            raise InvalidTransition("Nothing to retry")
        entry = timeline.retry(self.pending_local_id)
        self.state = ComposerState.SENDING
        self.error = None
        return entry
