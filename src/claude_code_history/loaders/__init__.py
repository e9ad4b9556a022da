from __future__ import annotations

from .base import ParsedSession, Session, SessionLoader, SortOption, TimeFilter
from .git import CachingGitProvider, GitInfo, GitMetadataProvider, NullGitProvider, SubprocessGitProvider
from .local import LocalSessionLoader, resolve_projects_dir

__all__ = [
    "CachingGitProvider",
    "GitInfo",
    "GitMetadataProvider",
    "LocalSessionLoader",
    "NullGitProvider",
    "ParsedSession",
    "Session",
    "SessionLoader",
    "SortOption",
    "SubprocessGitProvider",
    "TimeFilter",
    "enrich_sessions",
    "resolve_projects_dir",
    "sort_sessions",
]


def enrich_sessions(parsed: list[ParsedSession], git_provider: GitMetadataProvider) -> None:
    provider = CachingGitProvider(git_provider)
    for item in parsed:
        session = item.session
        if not session.project_path:
            continue
        info = provider.lookup(session.project_path)
        if info is None:
            continue
        session.git_repo_name = info.repo_name
        session.git_branch = info.branch


def sort_sessions(parsed: list[ParsedSession], sort: SortOption) -> list[ParsedSession]:
    if sort is SortOption.MOST_ACTIVE:
        return sorted(
            parsed,
            key=lambda item: (item.session.message_count, item.session.timestamp),
            reverse=True,
        )
    return sorted(parsed, key=lambda item: item.session.timestamp, reverse=True)
