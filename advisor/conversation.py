"""Conversation orchestration: stage tracking, compression and prompt assembly."""

import asyncio
from collections.abc import Sequence
from typing import Protocol

from .compression import ContextCompressor, estimate_tokens
from .config import config
from .models import ConversationState, ConversationTurn, ProcessedConversation
from .stages import build_system_prompt, determine_stage, get_follow_up_questions

logger = config.get_logger(__name__)


class ConversationStateStore(Protocol):
    """Storage for per-conversation state records."""

    def get(self, conversation_id: str) -> ConversationState | None: ...

    def put(self, conversation_id: str, state: ConversationState) -> None: ...

    def delete(self, conversation_id: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryConversationStateStore:
    """Process-local state store.

    Concurrent turns on the same conversation are last-writer-wins: the stage
    is recomputed from the full history on every pass, so a lost update only
    delays stage advancement by one turn. Callers needing serialized updates
    can hold ``lock(conversation_id)`` around processing.
    """

    def __init__(self) -> None:
        """Create an empty store."""
        self._states: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, conversation_id: str) -> ConversationState | None:
        """Return the state for ``conversation_id`` if one exists."""  # noqa: DOC201
        return self._states.get(conversation_id)

    def put(self, conversation_id: str, state: ConversationState) -> None:
        """Store ``state`` under ``conversation_id``."""
        self._states[conversation_id] = state

    def delete(self, conversation_id: str) -> None:
        """Forget a conversation and its lock."""
        self._states.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)

    def clear(self) -> None:
        """Forget every conversation."""
        self._states.clear()
        self._locks.clear()

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Return the mutual-exclusion lock for one conversation."""  # noqa: DOC201
        return self._locks.setdefault(conversation_id, asyncio.Lock())

    def __len__(self) -> int:
        return len(self._states)


class ConversationOrchestrator:
    """Turns a raw message history into a staged, token-bounded prompt."""

    def __init__(
        self,
        compressor: ContextCompressor,
        state_store: ConversationStateStore | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            compressor: Compressor used when the history exceeds its budget.
            state_store: Where conversation state lives. Defaults to an
                in-memory store.
        """
        self.compressor = compressor
        self.state_store: ConversationStateStore = (
            state_store if state_store is not None else InMemoryConversationStateStore()
        )

    async def process_conversation(
        self,
        conversation_id: str,
        history: Sequence[ConversationTurn],
    ) -> ProcessedConversation:
        """Build the prompt for the next assistant turn.

        Position 0 of the returned prompt is always a system turn carrying the
        freshly computed stage prompt; any caller-supplied turn in that slot is
        replaced.

        Returns:
            The prompt messages, current stage and follow-up questions.
        """
        state = self.state_store.get(conversation_id)
        if state is None:
            state = ConversationState()

        stage = determine_stage(history)
        token_count = estimate_tokens(history)

        state.stage = stage
        state.token_count = token_count
        state.message_history = list(history)
        self.state_store.put(conversation_id, state)

        if self.compressor.needs_compression(history):
            logger.info(
                "Conversation %s at ~%d tokens exceeds budget %d; compressing",
                conversation_id,
                token_count,
                self.compressor.token_budget,
            )
            prompt_messages = await self.compressor.compress(history)
        else:
            prompt_messages = list(history)

        system_turn = ConversationTurn(role="system", content=build_system_prompt(stage))
        if prompt_messages:
            prompt_messages[0] = system_turn
        else:
            prompt_messages.append(system_turn)

        return ProcessedConversation(
            prompt_messages=prompt_messages,
            stage=stage,
            follow_up_questions=get_follow_up_questions(stage),
        )

    def get_conversation_state(self, conversation_id: str) -> ConversationState | None:
        """Return the last recorded state for a conversation."""  # noqa: DOC201
        return self.state_store.get(conversation_id)

    def clear_conversation_state(self, conversation_id: str) -> None:
        """Drop the recorded state for one conversation."""
        self.state_store.delete(conversation_id)

    def clear_all_states(self) -> None:
        """Drop every recorded conversation state."""
        self.state_store.clear()
