from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .loaders.base import ParsedSession, Session

DEFAULT_MAX_MESSAGES_TO_INDEX = 15


@dataclass(frozen=True)
class SearchDocument:
    session_id: str
    text: str


class SearchIndex:
    """Lowercased substring index with one document per session.

    Only the first ``max_messages_to_index`` messages of a session are indexed
    so memory stays bounded for long transcripts.
    """

    def __init__(self, max_messages_to_index: int = DEFAULT_MAX_MESSAGES_TO_INDEX) -> None:
        self.max_messages_to_index = max_messages_to_index
        self._documents: list[SearchDocument] = []

    @classmethod
    def build(
        cls,
        parsed_sessions: Iterable[ParsedSession],
        max_messages_to_index: int = DEFAULT_MAX_MESSAGES_TO_INDEX,
    ) -> SearchIndex:
        index = cls(max_messages_to_index)
        for parsed in parsed_sessions:
            index.index_session(parsed.session, parsed.messages)
        return index

    @property
    def documents(self) -> list[SearchDocument]:
        return list(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def index_session(self, session: Session, messages: Iterable[str]) -> SearchDocument:
        parts = [session.display_name]
        if session.project_path:
            parts.append(session.project_path)
        if session.git_repo_name:
            parts.append(session.git_repo_name)
        if session.git_branch:
            parts.append(session.git_branch)
        for position, message in enumerate(messages):
            if position >= self.max_messages_to_index:
                break
            parts.append(message)

        document = SearchDocument(session_id=session.id, text=" ".join(parts).lower())
        self._documents.append(document)
        return document

    def search(self, query: str) -> set[str]:
        """Return ids of sessions whose document contains ``query``.

        An empty query matches nothing. Results are unordered.
        """
        if not query:
            return set()
        needle = query.lower()
        return {doc.session_id for doc in self._documents if needle in doc.text}
