#!/usr/bin/env python3
"""
LLM streaming and prompt construction for the Realtime Voice Pipeline.
"""

import asyncio
import threading
from typing import AsyncGenerator, Dict, Iterable, List

import ollama

from .config import default_config
from .errors import GenerationError
from .models import GenerationRequest, MemorySearchResult, Message

_DONE = object()


def build_system_prompt(base_prompt: str, memories: Iterable[MemorySearchResult]) -> str:
    """Append relevant past messages to the system instruction as dated quotes."""
    memories = list(memories)
    prompt = base_prompt.strip()
    if memories:
        prompt += '\n\nRelevant past conversations:\n'
        for memory in memories:
            date = memory.message.timestamp.strftime('%Y-%m-%d')
            prompt += f'- On {date}: "{memory.message.content}"\n'
        prompt += '\nYou may reference these past conversations when relevant.'
    return prompt


def build_messages(context: Iterable[Message], user_text: str) -> List[Message]:
    """Recent context in chronological order followed by the new utterance."""
    messages = [m for m in context if m.role != 'system']
    messages.append(Message(role='user', content=user_text))
    return messages


def to_chat_messages(request: GenerationRequest) -> List[Dict[str, str]]:
    """Flatten a request into ollama's {'role', 'content'} message list."""
    chat = [{"role": "system", "content": request.system_prompt}]
    chat.extend({"role": m.role, "content": m.content} for m in request.messages)
    return chat


class OllamaGenerator:
    """Streams chat completions from Ollama.

    The ollama client is blocking, so a worker thread iterates the stream and
    hands fragments to the event loop through an asyncio.Queue.
    """

    def __init__(self, config=None, model=None, client=None):
        self.config = config or default_config
        self.model = model or self.config.ollama_model
        self.client = client

    def _chat(self, **kwargs):
        if self.client is not None:
            return self.client.chat(**kwargs)
        return ollama.chat(**kwargs)

    async def stream(self, request: GenerationRequest) -> AsyncGenerator[str, None]:
        loop = asyncio.get_running_loop()
        q: asyncio.Queue = asyncio.Queue()
        conversation = to_chat_messages(request)
        options = {"num_predict": request.max_tokens, "temperature": request.temperature}

        def worker():
            try:
                for part in self._chat(model=self.model, messages=conversation, stream=True, options=options):
                    content = (part.get('message') or {}).get('content')
                    if content:
                        loop.call_soon_threadsafe(q.put_nowait, content)
            except Exception as e:
                loop.call_soon_threadsafe(q.put_nowait, e)
            finally:
                loop.call_soon_threadsafe(q.put_nowait, _DONE)

        threading.Thread(target=worker, daemon=True).start()
        while True:
            chunk = await q.get()
            if chunk is _DONE:
                break
            if isinstance(chunk, Exception):
                raise GenerationError(f"Ollama chat failed: {chunk}") from chunk
            yield chunk
