"""Retrieval-and-synthesis pipeline for chat queries.

One query runs as one async generator of text fragments:

    RECEIVED -> RETRIEVING -> (NO_SOURCES | BATCHING) -> ANALYZING (per batch)
             -> SUMMARIZING -> DONE

Any step may end in FAILED, which still closes the stream with an
``[ERROR: ...]`` fragment. Stage changes travel in-band as ``[STAGE: ...]``
fragments and success ends with ``[DONE]``.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum

from sourcelens.constants import (
    BATCH_CHAR_BUDGET,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    MAX_BATCHES,
    NO_SOURCES_MESSAGE,
    OVERVIEW_KEYWORDS,
    PIPELINE_TOP_K,
)
from sourcelens.llm.router import ModelRouter, estimate_tokens
from sourcelens.service.chunking import extract_content, split_oversized
from sourcelens.service.document_store import DocumentStore
from sourcelens.service.formatting import StreamFormatter
from sourcelens.service.models import ContentFormat, Document, DocumentType

logger = logging.getLogger(__name__)

DONE_MARKER = "[DONE]"
BATCH_SEPARATOR = "\n\n---\n\n"


class PipelineState(str, Enum):
    RECEIVED = "received"
    RETRIEVING = "retrieving"
    NO_SOURCES = "no_sources"
    BATCHING = "batching"
    ANALYZING = "analyzing"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineSettings:
    """Tunable limits for one pipeline instance.

    Attributes:
        batch_char_budget: Character ceiling for one batch
        max_batches: Batch cap; doubled for overview-style queries
        top_k: Candidate sources retrieved per query
        temperature: Sampling temperature for every model call
        max_tokens: Generation cap for every model call
        overview_keywords: Words marking a broad, chronological query
    """

    batch_char_budget: int = BATCH_CHAR_BUDGET
    max_batches: int = MAX_BATCHES
    top_k: int = PIPELINE_TOP_K
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    overview_keywords: tuple[str, ...] = OVERVIEW_KEYWORDS


@dataclass
class BatchItem:
    """A retrieved source, or one part of an oversized source, in a batch."""

    file_name: str
    content: str
    score: float | None = None
    timestamp: str | None = None
    part_index: int | None = None
    total_parts: int | None = None

    @property
    def label(self) -> str:
        if self.total_parts and self.total_parts > 1:
            return f"{self.file_name} (part {self.part_index} of {self.total_parts})"
        return self.file_name


@dataclass
class Batch:
    items: list[BatchItem] = field(default_factory=list)

    @property
    def size(self) -> int:
        return sum(len(item.content) for item in self.items)

    def render(self) -> str:
        return "\n\n".join(f"[From {item.label}]:\n{item.content}" for item in self.items)


def is_overview_query(query: str, keywords: tuple[str, ...] = OVERVIEW_KEYWORDS) -> bool:
    """True when the query asks for a broad pass over everything."""
    words = set(query.lower().replace("?", " ").replace(",", " ").split())
    return any(keyword in words for keyword in keywords)


def source_timestamp(document: Document) -> str | None:
    return getattr(document.metadata, "timestamp", None) or document.metadata.uploaded_at


def order_sources(documents: list[Document], overview: bool) -> list[Document]:
    """Chronological for overview queries, most relevant first otherwise.

    Overview ordering falls back to relevance when no document has a
    timestamp.
    """
    if overview and any(source_timestamp(doc) for doc in documents):
        return sorted(documents, key=lambda doc: source_timestamp(doc) or "")
    return sorted(documents, key=lambda doc: doc.metadata.score or 0.0, reverse=True)


def to_batch_items(documents: list[Document]) -> list[BatchItem]:
    """Extract each source's usable text; sources left empty are dropped."""
    items = []
    for doc in documents:
        content_format = getattr(doc.metadata, "content_format", ContentFormat.PLAIN)
        content = extract_content(doc.content, content_format)
        if not content:
            logger.debug(f"Skipping {doc.id}: no content after extraction")
            continue
        items.append(
            BatchItem(
                file_name=doc.metadata.file_name or doc.id,
                content=content,
                score=doc.metadata.score,
                timestamp=source_timestamp(doc),
            )
        )
    return items


def build_batches(items: list[BatchItem], char_budget: int, max_batches: int) -> list[Batch]:
    """Greedily pack whole sources into batches under ``char_budget``.

    A source larger than the budget on its own is split into equal parts,
    each emitted as a single-item batch tagged with its part index. Sources
    beyond ``max_batches`` are dropped.
    """
    batches: list[Batch] = []
    current = Batch()

    def close_current() -> None:
        nonlocal current
        if current.items:
            batches.append(current)
            current = Batch()

    for item in items:
        if len(batches) >= max_batches:
            break
        if len(item.content) > char_budget:
            close_current()
            for part in split_oversized(item.content, char_budget):
                if len(batches) >= max_batches:
                    break
                batches.append(
                    Batch(
                        items=[
                            BatchItem(
                                file_name=item.file_name,
                                content=part.text,
                                score=item.score,
                                timestamp=item.timestamp,
                                part_index=part.part_index,
                                total_parts=part.total_parts,
                            )
                        ]
                    )
                )
            continue
        if current.items and current.size + len(item.content) > char_budget:
            close_current()
            if len(batches) >= max_batches:
                break
        current.items.append(item)

    if len(batches) < max_batches:
        close_current()
    return batches[:max_batches]


def analysis_messages(query: str, batch: Batch, project_context: str = "") -> list[dict]:
    system = (
        f"You are analyzing a portion of the user's source material to answer: {query}\n\n"
        "Your task is to:\n"
        "1. Extract relevant quotes and information\n"
        "2. Provide a brief analysis\n"
        "3. Focus on facts and direct quotes\n"
        "4. Cite the source file for every quote\n\n"
        "Format your response with clear section headings, exact quotes with their "
        "sources and a brief analysis after each quote."
    )
    if project_context:
        system += f"\n\nProject context:\n{project_context}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": batch.render()},
    ]


def summary_messages(query: str, combined_analysis: str, project_context: str = "") -> list[dict]:
    system = (
        f"You are creating a final summary from analyses of the user's sources about: {query}\n\n"
        "Synthesize the key points, highlight the most significant quotes, draw overall "
        "conclusions and note patterns or themes across the analyses. Keep source citations."
    )
    if project_context:
        system += f"\n\nProject context:\n{project_context}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": combined_analysis},
    ]


class RetrievalPipeline:
    """Single-query retrieval and streamed, batched synthesis.

    Instances are cheap; create one per query. Closing the generator returned
    by ``run`` stops further model calls.
    """

    def __init__(
        self,
        document_store: DocumentStore,
        router: ModelRouter,
        settings: PipelineSettings | None = None,
    ) -> None:
        self.document_store = document_store
        self.router = router
        self.settings = settings or PipelineSettings()
        self.state = PipelineState.RECEIVED
        self.failure_reason: str | None = None

    async def run(
        self,
        query: str,
        project_context: str = "",
        top_k: int | None = None,
        overview: bool | None = None,
    ) -> AsyncIterator[str]:
        """Yield the answer to ``query`` as text fragments.

        ``overview`` forces or suppresses overview handling; None detects it
        from the query wording.
        """
        self.state = PipelineState.RECEIVED
        self.failure_reason = None
        logger.info(f"📨 Pipeline received query: '{query[:100]}'")
        if overview is None:
            overview = is_overview_query(query, self.settings.overview_keywords)
        steps = self._run(query, project_context, top_k or self.settings.top_k, overview)
        async with aclosing(steps):
            try:
                async for fragment in steps:
                    yield fragment
            except (GeneratorExit, asyncio.CancelledError):
                self.state = PipelineState.FAILED
                self.failure_reason = "cancelled"
                logger.info("🛑 Pipeline cancelled by consumer")
                raise
            except Exception as e:
                self.state = PipelineState.FAILED
                self.failure_reason = str(e)
                logger.error(f"❌ Pipeline failed: {e}", exc_info=True)
                yield f"\n\n[ERROR: {e}]"

    async def _run(
        self, query: str, project_context: str, top_k: int, overview: bool
    ) -> AsyncIterator[str]:
        self.state = PipelineState.RETRIEVING
        sources = await self.document_store.search_similar(
            query, {"type": DocumentType.SOURCE.value}, top_k
        )
        if not sources:
            self.state = PipelineState.NO_SOURCES
            logger.info("ℹ️ No relevant sources found")
            yield NO_SOURCES_MESSAGE
            return

        self.state = PipelineState.BATCHING
        max_batches = self.settings.max_batches * (2 if overview else 1)
        items = to_batch_items(order_sources(sources, overview))
        batches = build_batches(items, self.settings.batch_char_budget, max_batches)
        if not batches:
            self.state = PipelineState.NO_SOURCES
            logger.info("ℹ️ Retrieved sources had no usable content")
            yield NO_SOURCES_MESSAGE
            return
        logger.info(
            f"📦 {len(sources)} sources packed into {len(batches)} batches (overview={overview})"
        )

        self.state = PipelineState.ANALYZING
        analyses = []
        for index, batch in enumerate(batches, 1):
            yield f"[STAGE: Analyzing sources (part {index} of {len(batches)})]\n\n"
            content = batch.render()
            analysis = []
            messages = analysis_messages(query, batch, project_context)
            async with aclosing(self._stream(messages, content)) as fragments:
                async for fragment in fragments:
                    analysis.append(fragment)
                    yield fragment
            analyses.append("".join(analysis))
            if index < len(batches):
                yield BATCH_SEPARATOR

        self.state = PipelineState.SUMMARIZING
        yield "\n\n[STAGE: Creating final summary]\n\n"
        combined = BATCH_SEPARATOR.join(analyses)
        messages = summary_messages(query, combined, project_context)
        async with aclosing(self._stream(messages, combined)) as fragments:
            async for fragment in fragments:
                yield fragment

        self.state = PipelineState.DONE
        logger.info("✅ Pipeline complete")
        yield f"\n\n{DONE_MARKER}"

    async def _stream(self, messages: list[dict], content: str) -> AsyncIterator[str]:
        """Stream one model call, routed by the size of ``content``, through a formatter."""
        service = self.router.service_for(estimate_tokens(content))
        formatter = StreamFormatter()
        stream = service.stream_response(
            messages,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
        )
        try:
            async for fragment in stream:
                formatted = formatter.feed(fragment)
                if formatted:
                    yield formatted
            tail = formatter.flush()
            if tail:
                yield tail
        finally:
            close = getattr(stream, "aclose", None)
            if close is not None:
                await close()


async def sse_frames(fragments: AsyncIterable[str]) -> AsyncIterator[str]:
    """Wrap each fragment as a server-sent event ``data:`` frame.

    Multi-line fragments become multi-line events, one ``data:`` line per
    line, so clients reassemble the text with its newlines intact. Closing
    the frame stream closes ``fragments`` too.
    """
    try:
        async for fragment in fragments:
            lines = fragment.split("\n")
            yield "".join(f"data: {line}\n" for line in lines) + "\n"
    finally:
        close = getattr(fragments, "aclose", None)
        if close is not None:
            await close()
