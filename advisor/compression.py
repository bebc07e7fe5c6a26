"""Token-budget estimation and history summarization."""

import math
from collections.abc import Sequence

from .config import config
from .llm import LLMClient
from .models import ConversationTurn

logger = config.get_logger(__name__)

CHARS_PER_TOKEN = 4
RECENT_TURNS_KEPT = 4
FALLBACK_TURNS_KEPT = 6

SUMMARY_INSTRUCTION = (
    "Summarize the following conversation history concisely, "
    "preserving key context and decisions:"
)
SUMMARY_UNAVAILABLE = "Previous conversation context unavailable."


def estimate_tokens(history: Sequence[ConversationTurn]) -> int:
    """Approximate the token count of a history at four characters per token.

    Used only as a compression trigger, never for billing.

    Returns:
        Estimated token count.
    """
    total_content = " ".join(turn.content for turn in history)
    return math.ceil(len(total_content) / CHARS_PER_TOKEN)


class ContextCompressor:
    """Summarizes older turns so the prompt stays inside the token budget."""

    def __init__(
        self,
        llm: LLMClient,
        token_budget: int | None = None,
        model: str | None = None,
    ) -> None:
        """Initialize the compressor.

        Args:
            llm: Shared model client used for the summary call.
            token_budget: Estimated-token threshold above which compression
                runs. If None, uses config.TOKEN_BUDGET.
            model: Summary model. If None, uses config.SUMMARY_MODEL.
        """
        self.llm = llm
        self.token_budget = (
            config.TOKEN_BUDGET if token_budget is None else token_budget
        )
        self.model = model or config.SUMMARY_MODEL

    def needs_compression(self, history: Sequence[ConversationTurn]) -> bool:
        """Check whether the estimated size of ``history`` exceeds the budget."""  # noqa: DOC201
        return estimate_tokens(history) > self.token_budget

    async def summarize(self, turns: Sequence[ConversationTurn]) -> str:
        """Summarize ``turns`` with a single auxiliary model call.

        Returns:
            The summary text, or a placeholder when the model returned nothing.
        """
        transcript = "\n".join(f"{turn.role}: {turn.content}" for turn in turns)
        summary = await self.llm.complete(
            [
                ConversationTurn(role="system", content=SUMMARY_INSTRUCTION),
                ConversationTurn(role="user", content=transcript),
            ],
            model=self.model,
            temperature=config.SUMMARY_TEMPERATURE,
            max_tokens=config.SUMMARY_MAX_TOKENS,
        )
        return summary or SUMMARY_UNAVAILABLE

    async def compress(
        self, history: Sequence[ConversationTurn]
    ) -> list[ConversationTurn]:
        """Bound a history by summarizing everything but the recent turns.

        The leading system turn and the last four turns are kept verbatim; the
        turns in between collapse into one synthetic system turn. If the
        summary call fails the history is truncated to its last six turns.

        Returns:
            The compressed history as a new list.
        """
        if len(history) <= RECENT_TURNS_KEPT:
            return list(history)

        leading = history[0] if history[0].role == "system" else None
        start = 1 if leading is not None else 0
        middle = history[start:-RECENT_TURNS_KEPT]
        recent = history[-RECENT_TURNS_KEPT:]

        if not middle:
            return list(history)

        try:
            summary = await self.summarize(middle)
        except Exception:
            logger.exception(
                "Failed to compress %d turns; keeping the last %d",
                len(history),
                FALLBACK_TURNS_KEPT,
            )
            return list(history[-FALLBACK_TURNS_KEPT:])

        compressed: list[ConversationTurn] = []
        if leading is not None:
            compressed.append(leading)
        compressed.append(
            ConversationTurn(
                role="system",
                content=f"Previous conversation summary: {summary}",
            )
        )
        compressed.extend(recent)
        logger.info(
            "Compressed %d turns into %d (summarized %d)",
            len(history),
            len(compressed),
            len(middle),
        )
        return compressed
