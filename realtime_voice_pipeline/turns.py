#!/usr/bin/env python3
"""
Single-flight processing of one conversational turn.

retrieve context -> build prompt -> stream generation -> persist -> stream synthesis
"""

import asyncio
import contextlib
import logging
from typing import AsyncGenerator, AsyncIterator, Callable, List, Optional, Set, Tuple, Type

from .config import default_config
from .errors import GenerationError, PersistenceError, PipelineError, RetrievalError, SynthesisError
from .interfaces import Generator, MemoryStore, MessageStore, Synthesizer
from .llm import build_messages, build_system_prompt
from .models import (
    ConversationTurn,
    GenerationRequest,
    MemorySearchResult,
    Message,
    TurnEvent,
    TurnEventKind,
    TurnState,
    Utterance,
)
from .playback import PlaybackDriver

logger = logging.getLogger(__name__)


async def bounded_stream(
    stream: AsyncIterator,
    timeout: Optional[float],
    error_cls: Type[PipelineError],
    what: str,
) -> AsyncGenerator:
    """Re-yield ``stream``, failing with ``error_cls`` if the next item takes longer than ``timeout``."""
    iterator = stream.__aiter__()
    try:
        while True:
            try:
                item = await asyncio.wait_for(iterator.__anext__(), timeout)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError as e:
                raise error_cls(f"{what} produced nothing for {timeout:.1f}s") from e
            yield item
    finally:
        aclose = getattr(iterator, 'aclose', None)
        if aclose is not None:
            await aclose()


def _wrap(exc: Exception, error_cls: Type[PipelineError], what: str) -> PipelineError:
    if isinstance(exc, PipelineError):
        return exc
    err = error_cls(f"{what} failed: {exc}")
    err.__cause__ = exc
    return err


class TurnProcessor:
    """Runs one turn at a time.

    The guard is an ``asyncio.Lock`` that is never waited on: an utterance
    arriving while the lock is held is dropped, not queued.
    """

    def __init__(
        self,
        generator: Generator,
        synthesizer: Synthesizer,
        memory: MemoryStore,
        store: Optional[MessageStore] = None,
        playback: Optional[PlaybackDriver] = None,
        config=None,
    ):
        self.config = config or default_config
        self.generator = generator
        self.synthesizer = synthesizer
        self.memory = memory
        self.store = store if store is not None else memory
        self.playback = playback
        self._guard = asyncio.Lock()
        self._writes: Set[asyncio.Task] = set()
        self.current: Optional[ConversationTurn] = None

    @property
    def busy(self) -> bool:
        return self._guard.locked()

    @property
    def pending_writes(self) -> int:
        return len(self._writes)

    async def wait_persisted(self):
        """Wait for every turn write started so far."""
        if self._writes:
            await asyncio.gather(*self._writes)

    async def close(self):
        """Cancel writes that are still in flight."""
        writes = list(self._writes)
        for task in writes:
            task.cancel()
        await asyncio.gather(*writes, return_exceptions=True)

    def _start_persist(self, turn: ConversationTurn):
        task = asyncio.create_task(self._persist(turn))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _retrieve(self, utterance: Utterance) -> Tuple[List[Message], List[MemorySearchResult]]:
        context: List[Message] = []
        if self.config.conversation_id:
            context = await self.memory.get_recent_context(self.config.conversation_id)
        memories: List[MemorySearchResult] = []
        if self.config.memory_search_k > 0:
            memories = await self.memory.search(utterance.text, self.config.user_id, self.config.memory_search_k)
        return list(context), list(memories)[: self.config.memory_search_k]

    def build_request(self, utterance: Utterance, context, memories) -> GenerationRequest:
        return GenerationRequest(
            messages=build_messages(context, utterance.text),
            system_prompt=build_system_prompt(self.config.system_prompt, memories),
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

    async def _persist(self, turn: ConversationTurn):
        conversation_id = self.config.conversation_id
        if not conversation_id:
            return
        try:
            await self.store.append_message(conversation_id, 'user', turn.input_text)
            await self.store.append_message(conversation_id, 'assistant', turn.generated_text)
        except Exception as e:
            err = PersistenceError(f"Could not store turn in {conversation_id!r}: {e}")
            logger.warning("[Persistence Error] %s", err)

    async def stream_turn(self, utterance: Utterance, session: Optional[int] = None) -> AsyncGenerator[TurnEvent, None]:
        """Run a turn as a sequence of events.

        Yields PARTIAL (full response so far), RESPONSE, AUDIO chunks and ends with
        either DONE or a fatal ERROR. A synthesis failure yields a non-fatal ERROR
        followed by DONE. Yields nothing when another turn holds the guard.
        """
        if self._guard.locked():
            logger.warning("Turn already in progress; dropping utterance %r", utterance.text)
            return
        async with self._guard:
            turn = ConversationTurn(input_text=utterance.text, session=session)
            self.current = turn
            try:
                logger.info("Turn started: %r", utterance.text)
                try:
                    context, memories = await self._retrieve(utterance)
                except Exception as e:
                    turn.state, turn.error = TurnState.FAILED, _wrap(e, RetrievalError, "Context retrieval")
                    logger.error("[Turn Error] %s", turn.error)
                    yield TurnEvent(TurnEventKind.ERROR, error=turn.error, fatal=True)
                    return

                turn.state = TurnState.GENERATING
                request = self.build_request(utterance, context, memories)
                try:
                    fragments = bounded_stream(
                        self.generator.stream(request),
                        self.config.generation_timeout_sec,
                        GenerationError,
                        "Generation",
                    )
                    async with contextlib.aclosing(fragments):
                        async for fragment in fragments:
                            turn.generated_text += fragment
                            yield TurnEvent(TurnEventKind.PARTIAL, text=turn.generated_text)
                except Exception as e:
                    turn.state, turn.error = TurnState.FAILED, _wrap(e, GenerationError, "Generation")
                    logger.error("[Turn Error] %s", turn.error)
                    yield TurnEvent(TurnEventKind.ERROR, error=turn.error, fatal=True)
                    return

                yield TurnEvent(TurnEventKind.RESPONSE, text=turn.generated_text)
                self._start_persist(turn)

                turn.state = TurnState.SYNTHESIZING
                if turn.generated_text.strip():
                    try:
                        chunks = bounded_stream(
                            self.synthesizer.stream(turn.generated_text),
                            self.config.synthesis_timeout_sec,
                            SynthesisError,
                            "Synthesis",
                        )
                        async with contextlib.aclosing(chunks):
                            async for chunk in chunks:
                                turn.audio_chunks += 1
                                yield TurnEvent(TurnEventKind.AUDIO, audio=chunk)
                    except Exception as e:
                        turn.synthesis_error = _wrap(e, SynthesisError, "Synthesis")
                        logger.error("[TTS Error] %s", turn.synthesis_error)
                        yield TurnEvent(TurnEventKind.ERROR, error=turn.synthesis_error, fatal=False)

                turn.state = TurnState.COMPLETED
                logger.info("Turn finished (%d chars, %d audio chunks)", len(turn.generated_text), turn.audio_chunks)
                yield TurnEvent(TurnEventKind.DONE, text=turn.generated_text)
            finally:
                self.current = None

    async def process_utterance(
        self,
        utterance: Utterance,
        session: Optional[int] = None,
        is_live: Optional[Callable[[Optional[int]], bool]] = None,
        on_partial: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Optional[ConversationTurn]:
        """Drive ``stream_turn`` and route its events.

        Partial text goes to ``on_partial``, audio into the playback driver and
        errors to ``on_error``. Once ``is_live(session)`` turns False the rest of
        the turn is discarded. Returns None if the utterance was dropped.
        """
        turn: Optional[ConversationTurn] = None
        async with contextlib.aclosing(self.stream_turn(utterance, session)) as events:
            async for event in events:
                turn = self.current or turn
                if is_live is not None and not is_live(session):
                    logger.info("Session %s ended; discarding rest of turn", session)
                    if turn is not None:
                        turn.state = TurnState.DISCARDED
                    break
                if event.kind is TurnEventKind.PARTIAL:
                    if on_partial is not None:
                        on_partial(event.text)
                elif event.kind is TurnEventKind.AUDIO:
                    if self.playback is not None:
                        self.playback.enqueue(event.audio)
                elif event.kind is TurnEventKind.ERROR:
                    if on_error is not None:
                        on_error(event.error)
        return turn
