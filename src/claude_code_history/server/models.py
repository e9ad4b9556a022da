# ABOUTME: Pydantic models for API responses.
# ABOUTME: Serializes sessions and messages with camelCase keys and epoch-second timestamps.

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..loaders.base import Session
from ..parsers import Message


def _epoch(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionResponse(CamelModel):
    """A session as exposed over HTTP."""

    id: str
    session_id: str
    display_name: str
    timestamp: float
    project_path: str
    message_count: int
    git_branch: str | None = None
    git_repo_name: str | None = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            session_id=session.session_id,
            display_name=session.display_name,
            timestamp=session.timestamp.timestamp(),
            project_path=session.project_path,
            message_count=session.message_count,
            git_branch=session.git_branch,
            git_repo_name=session.git_repo_name,
        )


class MessageResponse(CamelModel):
    """One message of a session's history."""

    role: str
    content: str
    timestamp: float | None = None

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(role=message.role, content=message.content, timestamp=_epoch(message.timestamp))


class InfoResponse(BaseModel):
    """Liveness and server details."""

    version: str
    hostname: str
    port: int
