"""Chat turn handling and event-stream framing."""

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

from .config import config
from .conversation import ConversationOrchestrator
from .errors import GenerationError, ValidationError
from .llm import LLMClient
from .models import ConversationTurn, ProcessedConversation, RelevantDocument, Stage
from .retrieval_cache import CachedKnowledgeBaseRetrieval
from .stages import MAX_DISPLAYED_FOLLOW_UPS
from .storage import ConversationRepository

logger = config.get_logger(__name__)

DONE_EVENT = "data: [DONE]\n\n"
FALLBACK_REPLY = (
    "I'm sorry, I'm having trouble generating a response right now. "
    "Please try again in a moment."
)
GROUNDING_HEADER = (
    "Relevant knowledge base information (use it where helpful and cite the "
    "source title):"
)


def format_event(payload: dict[str, Any]) -> str:
    """Frame one payload as an event-stream data record.

    Returns:
        ``data: <compact json>\\n\\n``.
    """
    body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {body}\n\n"


def content_event(fragment: str) -> str:
    """Frame one streamed content fragment."""  # noqa: DOC201
    return format_event({"content": fragment})


def control_event(stage: Stage, follow_up_questions: Sequence[str]) -> str:
    """Frame the closing record with the stage and displayed follow-ups."""  # noqa: DOC201
    return format_event({
        "content": "",
        "stage": stage.value,
        "followUpQuestions": list(follow_up_questions[:MAX_DISPLAYED_FOLLOW_UPS]),
    })


def format_grounding(documents: Sequence[RelevantDocument]) -> str:
    """Render retrieved passages as a prompt section.

    Returns:
        Header followed by one numbered block per passage.
    """
    blocks = []
    for number, document in enumerate(documents, start=1):
        source = document.metadata.title or document.metadata.doc_id or document.id
        if document.metadata.source_url:
            source = f"{source} ({document.metadata.source_url})"
        blocks.append(f"[{number}] {source}\n{document.content}")
    return GROUNDING_HEADER + "\n\n" + "\n\n".join(blocks)


@dataclass
class ChatReply:
    """A complete, non-streamed assistant answer."""

    content: str
    stage: Stage
    follow_up_questions: list[str]


class ChatService:
    """Runs one chat turn: persist, stage, compress, ground, generate."""

    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        llm: LLMClient,
        repository: ConversationRepository,
        retrieval: CachedKnowledgeBaseRetrieval | None = None,
        stream_timeout: float | None = None,
    ) -> None:
        """Wire the service.

        Args:
            orchestrator: Builds the staged, budgeted prompt.
            llm: Model client for answer generation.
            repository: Conversation message log.
            retrieval: Optional knowledge-base client for grounding passages.
            stream_timeout: Wall-clock limit on one streamed answer in seconds.
                If None, uses config.STREAM_TIMEOUT_SECONDS.
        """
        self.orchestrator = orchestrator
        self.llm = llm
        self.repository = repository
        self.retrieval = retrieval
        self.stream_timeout = (
            config.STREAM_TIMEOUT_SECONDS if stream_timeout is None else stream_timeout
        )

    async def _prepare_turn(
        self, guid: str, message: str, industry: str | None
    ) -> ProcessedConversation:
        if not guid or not message.strip():
            msg = "GUID and message are required"
            raise ValidationError(msg)

        await self.repository.get_or_create(guid)
        await self.repository.append_message(guid, "user", message)
        history = [stored.to_turn() for stored in await self.repository.list_messages(guid)]
        # Reserve slot 0 for the stage prompt so no user turn gets overwritten
        if not history or history[0].role != "system":
            history.insert(0, ConversationTurn(role="system", content=""))

        processed = await self.orchestrator.process_conversation(guid, history)
        if self.retrieval is not None and industry:
            documents = await self.retrieval.get_relevant_docs(industry, message)
            if documents:
                system = processed.prompt_messages[0]
                processed.prompt_messages[0] = ConversationTurn(
                    role="system",
                    content=f"{system.content}\n\n{format_grounding(documents)}",
                )
                logger.debug("Grounded turn with %d passages", len(documents))
        return processed

    async def _stream_fragments(
        self, prompt: Sequence[ConversationTurn]
    ) -> AsyncIterator[str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.stream_timeout
        stream = self.llm.stream_chat_completion(prompt)
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    msg = "Stream timeout"
                    raise TimeoutError(msg)
                try:
                    fragment = await asyncio.wait_for(anext(stream), remaining)
                except StopAsyncIteration:
                    return
                yield fragment
        finally:
            await stream.aclose()

    async def stream_chat(
        self, guid: str, message: str, industry: str | None = None
    ) -> AsyncIterator[str]:
        """Answer a user message as an event stream.

        Emits one content record per model fragment, then a control record with
        the stage and up to three follow-up questions, then ``[DONE]``. If
        generation fails or times out, a fallback content record is emitted in
        place of the rest of the answer and the stream still closes normally.

        Args:
            guid: Conversation identifier.
            message: The user's message.
            industry: Industry used to ground the answer in the knowledge base.

        Raises:
            ValidationError: If ``guid`` or ``message`` is empty.

        Yields:
            Framed event-stream records.
        """
        processed = await self._prepare_turn(guid, message, industry)

        parts: list[str] = []
        try:
            async for fragment in self._stream_fragments(processed.prompt_messages):
                parts.append(fragment)
                yield content_event(fragment)
        except Exception:
            logger.exception(
                "%s: streaming failed for conversation %s",
                GenerationError.public_code,
                guid,
            )
            yield content_event(FALLBACK_REPLY)
        else:
            try:
                await self.repository.append_message(
                    guid, "assistant", "".join(parts)
                )
            except Exception:
                logger.exception(
                    "Failed to save assistant reply for conversation %s", guid
                )

        yield control_event(processed.stage, processed.follow_up_questions)
        yield DONE_EVENT

    async def complete_chat(
        self, guid: str, message: str, industry: str | None = None
    ) -> ChatReply:
        """Answer a user message in one piece.

        Raises:
            ValidationError: If ``guid`` or ``message`` is empty.
            GenerationError: If the completion call fails.

        Returns:
            The answer with the conversation stage and displayed follow-ups.
        """
        processed = await self._prepare_turn(guid, message, industry)
        try:
            content = await asyncio.wait_for(
                self.llm.complete(processed.prompt_messages),
                timeout=self.stream_timeout,
            )
        except Exception as exc:
            logger.exception("Chat completion failed for conversation %s", guid)
            msg = "Failed to generate a response"
            raise GenerationError(msg, guid=guid) from exc

        await self.repository.append_message(guid, "assistant", content)
        return ChatReply(
            content=content,
            stage=processed.stage,
            follow_up_questions=processed.follow_up_questions[:MAX_DISPLAYED_FOLLOW_UPS],
        )
