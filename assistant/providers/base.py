from abc import ABC, abstractmethod
from typing import Any, Optional, TypedDict


class StoredMessage(TypedDict, total=False):
    id: int
    conversation_id: str
    sender: str                 # "user" | "assistant"
    text: str
    created_at: Any


class MemoryItem(TypedDict, total=False):
    type: str                   # important_info | preference | fact
    content: str
    importance: int


class SummaryRecord(TypedDict, total=False):
    id: int
    conversation_id: str
    summary_text: str
    key_points: list[str]
    important_info: dict[str, str]
    message_count: int
    first_message_id: Optional[int]
    last_message_id: Optional[int]
    summarized_message_ids: list[int]
    first_message_at: Any
    last_message_at: Any
    created_at: Any


class GenerativeServiceError(RuntimeError):
    """Network failure, non-2xx reply or timeout from the generative service."""


class SummaryOverlapError(ValueError):
    def __init__(self, conversation_id: str, overlap: set[int]):
        super().__init__(
            f"Summary for {conversation_id} overlaps already summarized ids: {sorted(overlap)[:5]}"
        )
        self.conversation_id = conversation_id
        self.overlap = overlap


class MessageStore(ABC):
    @abstractmethod
    def append_message(self, conversation_id: str, sender: str, text: str) -> int:
        ...

    @abstractmethod
    def list_messages(self, conversation_id: str) -> list[StoredMessage]:
        """All messages of the conversation, oldest first."""
        ...


class StateStore(ABC):
    @abstractmethod
    def load_state(self, conversation_id: str) -> dict:
        ...

    @abstractmethod
    def save_state(self, conversation_id: str, state: dict) -> None:
        ...


class MemoryStore(ABC):
    @abstractmethod
    def list_memories(self, user_id: str, conversation_id: Optional[str] = None) -> list[MemoryItem]:
        ...

    @abstractmethod
    def add_memory(
        self,
        user_id: str,
        conversation_id: Optional[str],
        memory_type: str,
        content: str,
        importance: int = 5,
    ) -> None:
        ...


class SummaryStore(ABC):
    @abstractmethod
    def list_summaries(self, conversation_id: str) -> list[SummaryRecord]:
        """Summaries of the conversation in creation order."""
        ...

    @abstractmethod
    def add_summary(self, summary: SummaryRecord) -> SummaryRecord:
        """Persist a summary. Raises SummaryOverlapError if any id is already covered."""
        ...


class BookingSink(ABC):
    @abstractmethod
    def submit(self, user_id: str, conversation_id: Optional[str], agent: str, data: dict) -> Any:
        ...


class GenerativeService(ABC):
    @abstractmethod
    def complete(self, prompt: str) -> str:
        """Raw model text for `prompt`. May raise GenerativeServiceError."""
        ...


class CredentialResolver(ABC):
    @abstractmethod
    def get_api_key(self) -> Optional[str]:
        ...
