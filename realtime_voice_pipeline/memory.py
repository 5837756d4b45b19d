#!/usr/bin/env python3
"""
In-process conversation history and memory search.
"""

import re
from typing import Dict, List, Optional, Set

from .config import default_config
from .models import MemorySearchResult, Message

_WORD_RE = re.compile(r"[a-z0-9']+")
_COMMON_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'is', 'are',
    'was', 'were', 'be', 'it', 'its', 'this', 'that', 'with', 'what', 'you', 'your', 'me',
    'my', 'i', 'do', 'does', 'did', 'have', 'has', 'can', 'about', 'from', 'just', 'how',
})


def keywords(text: str) -> Set[str]:
    """Lower-cased content words of ``text`` (common words and short tokens dropped)."""
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 2 and w not in _COMMON_WORDS}


class _Conversation:
    def __init__(self, conversation_id: str, user_id: str, title: Optional[str]):
        self.id = conversation_id
        self.user_id = user_id
        self.title = title or 'Untitled Conversation'
        self.messages: List[Message] = []


class InMemoryConversationStore:
    """Keeps messages per conversation and searches a user's history.

    Implements both the memory (context + search) and the persistence
    (``append_message``) contracts. Conversations created implicitly by
    ``append_message`` belong to ``config.user_id``.
    """

    def __init__(self, config=None):
        self.config = config or default_config
        self._conversations: Dict[str, _Conversation] = {}

    def open_conversation(self, conversation_id: str, user_id: Optional[str] = None, title: Optional[str] = None):
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = _Conversation(conversation_id, user_id or self.config.user_id, title)
            self._conversations[conversation_id] = conversation
        elif title:
            conversation.title = title
        return conversation

    async def append_message(self, conversation_id: str, role: str, content: str) -> Message:
        message = Message(role=role, content=content)
        self.open_conversation(conversation_id).messages.append(message)
        return message

    async def get_recent_context(self, conversation_id: str) -> List[Message]:
        """Last ``context_window_size`` messages, oldest first."""
        conversation = self._conversations.get(conversation_id)
        size = self.config.context_window_size
        if conversation is None or size <= 0:
            return []
        return list(conversation.messages[-size:])

    async def search(self, query: str, user_id: str, k: int) -> List[MemorySearchResult]:
        """Rank the user's past messages by keyword overlap with ``query``.

        Ties go to the more recent message; messages sharing no keyword are
        never returned.
        """
        terms = keywords(query)
        if not terms or k <= 0:
            return []
        scored = []
        for conversation in self._conversations.values():
            if conversation.user_id != user_id:
                continue
            for message in conversation.messages:
                overlap = terms & keywords(message.content)
                if not overlap:
                    continue
                similarity = len(overlap) / len(terms)
                scored.append((similarity, message.timestamp, conversation, message))
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [
            MemorySearchResult(
                message=message,
                conversation_id=conversation.id,
                conversation_title=conversation.title,
                similarity=similarity,
            )
            for similarity, _, conversation, message in scored[:k]
        ]

    def messages(self, conversation_id: str) -> List[Message]:
        conversation = self._conversations.get(conversation_id)
        return list(conversation.messages) if conversation else []
