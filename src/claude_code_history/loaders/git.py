# ABOUTME: Git metadata lookup for session project paths.
# ABOUTME: Runs git as argv subprocesses with a timeout; every step may fail independently.

from __future__ import annotations

import logging
import os
import re
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

SHELL_METACHARACTERS = frozenset("$`;\\&|()\n\r\t")
DETACHED_HEAD = "HEAD"
DEFAULT_GIT_TIMEOUT = 5.0


def has_shell_metacharacters(value: str) -> bool:
    return any(char in SHELL_METACHARACTERS for char in value)


def repo_name_from_remote(remote_url: str) -> str | None:
    """Return the last path segment of a remote URL without ``.git``.

    Handles both ``https://host/org/repo.git`` and scp-like
    ``git@host:org/repo.git`` forms.
    """
    segment = re.split(r"[/:]", remote_url.strip().rstrip("/"))[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]
    return segment or None


@dataclass(frozen=True)
class GitInfo:
    repo_name: str
    branch: str | None = None


class GitMetadataProvider(ABC):
    """Looks up repository name and branch for a project path."""

    @abstractmethod
    def lookup(self, path: str) -> GitInfo | None:
        ...


class NullGitProvider(GitMetadataProvider):
    def lookup(self, path: str) -> GitInfo | None:
        return None


class SubprocessGitProvider(GitMetadataProvider):
    """Asks the ``git`` executable, never through a shell."""

    def __init__(
        self,
        git_executable: str = "git",
        timeout: float = DEFAULT_GIT_TIMEOUT,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self.git_executable = git_executable
        self.timeout = timeout
        self._runner = runner

    def lookup(self, path: str) -> GitInfo | None:
        if not path or has_shell_metacharacters(path):
            logger.debug(f"Refusing git lookup for unsafe path {path!r}")
            return None
        if not os.path.isdir(path):
            return None
        if self._git(path, "rev-parse", "--is-inside-work-tree") != "true":
            return None

        remote_url = self._git(path, "remote", "get-url", "origin")
        repo_name = repo_name_from_remote(remote_url) if remote_url else None
        if repo_name is None:
            repo_name = os.path.basename(os.path.normpath(path))

        branch = self._git(path, "rev-parse", "--abbrev-ref", "HEAD")
        if branch == DETACHED_HEAD:
            branch = None
        return GitInfo(repo_name=repo_name, branch=branch or None)

    def _git(self, path: str, *args: str) -> str | None:
        """Run one git command, returning stripped stdout or None on any failure."""
        try:
            result = self._runner(
                [self.git_executable, "-C", path, *args],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"git {args[0]} timed out after {self.timeout}s in {path}")
            return None
        except OSError as exc:
            logger.debug(f"git unavailable: {exc}")
            return None
        if result.returncode != 0:
            return None
        output = (result.stdout or "").strip()
        return output or None


class CachingGitProvider(GitMetadataProvider):
    """Memoizes lookups per path for the lifetime of one refresh."""

    def __init__(self, provider: GitMetadataProvider) -> None:
        self._provider = provider
        self._cache: dict[str, GitInfo | None] = {}

    def lookup(self, path: str) -> GitInfo | None:
        if path not in self._cache:
            self._cache[path] = self._provider.lookup(path)
        return self._cache[path]
