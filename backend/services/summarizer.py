"""
services/summarizer.py — Three-level summary chain for a data source.

    content ──► sentence (detailed) ──► paragraph ──► full (2-3 sentences)

Each level summarises the previous one and is stored as soon as it exists,
linked to it through parent_id.  A failure part-way leaves the levels already
stored and is only logged.
"""

from typing import Iterable, List

from config import Config
from logging_config import get_logger
from models_async import (
    LEVEL_FULL, LEVEL_PARAGRAPH, LEVEL_SENTENCE, SUMMARY_LEVELS, Summary,
)

logger = get_logger(__name__)

DOCUMENT_CHAR_LIMIT = 8000
WEB_CHAR_LIMIT = 12000

_ANALYST = "You are a research analyst. "

# kind -> level -> (system prompt, user prompt prefix)
PROMPTS = {
    "document": {
        LEVEL_SENTENCE: (
            _ANALYST + "Create a detailed sentence-level summary of the key points in this "
            "document. Focus on facts, findings, methodologies, and conclusions.",
            "Please create a detailed summary of this document:\n\n",
        ),
        LEVEL_PARAGRAPH: (
            _ANALYST + "Create a concise paragraph-level summary that captures the main "
            "themes and key findings.",
            "Based on this detailed summary, create a shorter paragraph summary:\n\n",
        ),
        LEVEL_FULL: (
            _ANALYST + "Create a concise, high-level summary in 2-3 sentences that captures "
            "the essence of this document.",
            "Create a brief executive summary:\n\n",
        ),
    },
    "web": {
        LEVEL_SENTENCE: (
            _ANALYST + "Create a detailed sentence-level summary of the key points in this "
            "web content. Focus on facts, findings, and main arguments.",
            "Please create a detailed summary of this web content:\n\n",
        ),
        LEVEL_PARAGRAPH: (
            "Create a concise paragraph summary that captures the main themes and key points.",
            "Based on this detailed summary, create a shorter paragraph summary:\n\n",
        ),
        LEVEL_FULL: (
            "Create a concise, high-level summary in 2-3 sentences that captures the "
            "essence of this content.",
            "Create a brief executive summary:\n\n",
        ),
    },
}


def prepare_content(content: str, kind: str) -> str:
    if kind == "web":
        if len(content) > WEB_CHAR_LIMIT:
            return content[:WEB_CHAR_LIMIT] + "..."
        return content
    return content[:DOCUMENT_CHAR_LIMIT]


def summary_tree(summaries: Iterable[Summary]) -> List[Summary]:
    """Order a source's summaries most-detailed first: sentence, paragraph, full."""
    rank = {level: i for i, level in enumerate(SUMMARY_LEVELS)}
    return sorted(summaries, key=lambda s: (rank.get(s.level, len(rank)), s.created_at))


class Summarizer:
    def __init__(self, llm_service):
        self._llm = llm_service

    async def generate_summaries(self, db, data_source_id: str, content: str, kind: str = "document") -> List[Summary]:
        if kind not in PROMPTS:
            raise ValueError(f"unknown summary kind: {kind}")

        created: List[Summary] = []
        source_text = prepare_content(content, kind)
        parent_id = None
        try:
            for level in SUMMARY_LEVELS:
                system_prompt, user_prefix = PROMPTS[kind][level]
                text = await self._llm.complete(
                    [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prefix + source_text},
                    ],
                    model=Config.SUMMARY_MODEL,
                    temperature=Config.SUMMARY_TEMPERATURE,
                )
                summary = Summary(
                    data_source_id=data_source_id,
                    parent_id=parent_id,
                    content=text,
                    level=level,
                )
                db.add(summary)
                await db.commit()
                created.append(summary)

                parent_id = summary.id
                source_text = text
        except Exception as exc:
            logger.error(
                "summaries.failed",
                data_source_id=data_source_id,
                levels_done=len(created),
                error=str(exc),
            )
            await db.rollback()
        else:
            logger.info("summaries.generated", data_source_id=data_source_id, kind=kind)
        return created
