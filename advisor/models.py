"""Data models for the advisory chat core."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

import numpy as np

Role = Literal["user", "assistant", "system"]
VALID_ROLES: frozenset[str] = frozenset({"user", "assistant", "system"})


class Stage(str, Enum):
    """Discourse phase of a conversation, derived from the user-turn count."""

    DISCOVERY = "discovery"
    EXPLORATION = "exploration"
    SOLUTION = "solution"
    IMPLEMENTATION = "implementation"

    @property
    def ordinal(self) -> int:
        """Position of the stage on the progression ladder."""
        return list(Stage).index(self)


@dataclass(frozen=True)
class ConversationTurn:
    """Represents a single message in the conversation."""

    role: Role
    content: str

    def to_message(self) -> dict[str, str]:
        """Convert to the chat-completion message format.

        Returns:
            Mapping with ``role`` and ``content`` keys.
        """
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ConversationTurn":
        """Build a turn from a ``{"role", "content"}`` mapping.

        Raises:
            ValueError: If the role is not user, assistant or system.

        Returns:
            The parsed ConversationTurn.
        """
        role = str(message.get("role", ""))
        if role not in VALID_ROLES:
            msg = f"Unsupported message role: {role!r}"
            raise ValueError(msg)
        return cls(role=role, content=str(message.get("content") or ""))  # type: ignore[arg-type]


@dataclass(frozen=True)
class StoredMessage:
    """A persisted conversation message."""

    conversation_id: str
    role: Role
    content: str
    timestamp: str

    def to_turn(self) -> ConversationTurn:
        """Drop persistence fields.

        Returns:
            The message as a ConversationTurn.
        """
        return ConversationTurn(role=self.role, content=self.content)


@dataclass
class ConversationState:
    """Per-conversation record kept between processing passes."""

    stage: Stage = Stage.DISCOVERY
    token_count: int = 0
    message_history: list[ConversationTurn] = field(default_factory=list)


@dataclass
class ProcessedConversation:
    """Prompt ready for the model plus the stage metadata shown to the user."""

    prompt_messages: list[ConversationTurn]
    stage: Stage
    follow_up_questions: list[str]


@dataclass(frozen=True)
class DocumentMetadata:
    """Provenance of a knowledge-base passage."""

    industry: str
    source_url: str = ""
    doc_id: str = ""
    title: str = ""
    token_count: int = 0
    chunk_index: int = 0


@dataclass(frozen=True)
class RelevantDocument:
    """A knowledge-base passage returned by retrieval."""

    id: str
    content: str
    score: float
    metadata: DocumentMetadata


@dataclass
class DocumentChunk:
    """Represents a chunk of text from a document awaiting ingestion."""

    content: str
    metadata: dict[str, Any]
    embedding: np.ndarray | None = None
