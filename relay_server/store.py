"""
In-memory chat store: users, conversations and messages.

Users own conversations; deleting a conversation deletes its messages.
Message bodies are stored verbatim.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

ROLES = ("user", "assistant")


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: int
    username: str
    password_hash: str
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        if not self.username:
            raise ValueError("username is required")


@dataclass
class Conversation:
    id: int
    user_id: int
    title: str
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("title is required")


@dataclass
class Message:
    id: int
    conversation_id: int
    role: str
    content: str
    created_at: datetime = field(default_factory=_now)
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError("role must be 'user' or 'assistant'")


class ChatStore:
    """Holds all relay state. One instance per process."""

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._conversations: Dict[int, Conversation] = {}
        self._messages: Dict[int, List[Message]] = {}
        self._next_ids = {"user": 1, "conversation": 1, "message": 1}

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    # --- users ---

    def create_user(self, username: str, password_hash: str) -> User:
        if self.get_user_by_username(username) is not None:
            raise ValueError("username already exists")
        user = User(id=self._next_id("user"), username=username, password_hash=password_hash)
        self._users[user.id] = user
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    # --- conversations ---

    def create_conversation(self, user_id: int, title: str) -> Conversation:
        conversation = Conversation(id=self._next_id("conversation"), user_id=user_id, title=title.strip())
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        return conversation

    def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def list_user_conversations(self, user_id: int) -> List[Conversation]:
        """Newest activity first."""
        conversations = [c for c in self._conversations.values() if c.user_id == user_id]
        return sorted(conversations, key=lambda c: (c.updated_at, c.id), reverse=True)

    def touch_conversation(self, conversation_id: int) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation:
            conversation.updated_at = _now()

    def delete_conversation(self, conversation_id: int) -> bool:
        if self._conversations.pop(conversation_id, None) is None:
            return False
        self._messages.pop(conversation_id, None)
        return True

    # --- messages ---

    def create_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        if conversation_id not in self._conversations:
            raise KeyError(conversation_id)
        message = Message(
            id=self._next_id("message"),
            conversation_id=conversation_id,
            role=role,
            content=content,
            metadata=metadata,
        )
        self._messages[conversation_id].append(message)
        return message

    def list_messages(self, conversation_id: int) -> List[Message]:
        return list(self._messages.get(conversation_id, []))

    def clear(self) -> None:
        self._users.clear()
        self._conversations.clear()
        self._messages.clear()
        self._next_ids = {"user": 1, "conversation": 1, "message": 1}


# Global chat store
chat_store = ChatStore()
