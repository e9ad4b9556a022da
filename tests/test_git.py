# ABOUTME: Tests for git metadata enrichment.
# ABOUTME: Uses a fake subprocess runner, plus an end-to-end check against real git when available.

import asyncio
import shutil
import subprocess
from pathlib import Path

import pytest

from claude_code_history.loaders.git import (
    CachingGitProvider,
    GitInfo,
    SubprocessGitProvider,
    repo_name_from_remote,
)
from claude_code_history.refresh import RefreshPipeline


class FakeGit:
    """Stands in for subprocess.run, answering by git subcommand."""

    def __init__(self, responses: dict) -> None:
        self.responses = responses
        self.calls: list[list[str]] = []

    def __call__(self, args, **kwargs):
        self.calls.append(args)
        assert kwargs["timeout"] > 0
        assert "shell" not in kwargs
        key = " ".join(args[3:])
        response = self.responses.get(key, (1, ""))
        if isinstance(response, Exception):
            raise response
        returncode, stdout = response
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr="")


WORK_TREE = "rev-parse --is-inside-work-tree"
REMOTE = "remote get-url origin"
BRANCH = "rev-parse --abbrev-ref HEAD"


class TestRepoNameFromRemote:
    def test_scp_style(self) -> None:
        assert repo_name_from_remote("git@host:org/myrepo.git") == "myrepo"

    def test_https(self) -> None:
        assert repo_name_from_remote("https://github.com/org/project.git\n") == "project"

    def test_without_suffix_or_org(self) -> None:
        assert repo_name_from_remote("https://example.com/org/tool/") == "tool"
        assert repo_name_from_remote("git@host:solo.git") == "solo"


class TestSubprocessGitProvider:
    """Tests for the step-by-step git lookup."""

    def test_repo_with_remote_and_branch(self, tmp_path: Path) -> None:
        runner = FakeGit({WORK_TREE: (0, "true\n"), REMOTE: (0, "git@host:org/myrepo.git\n"), BRANCH: (0, "main\n")})
        provider = SubprocessGitProvider(runner=runner)

        info = provider.lookup(str(tmp_path))

        assert info == GitInfo(repo_name="myrepo", branch="main")
        assert all(call[:3] == ["git", "-C", str(tmp_path)] for call in runner.calls)

    def test_no_remote_uses_directory_name(self, tmp_path: Path) -> None:
        project = tmp_path / "my-project"
        project.mkdir()
        runner = FakeGit({WORK_TREE: (0, "true\n"), REMOTE: (2, ""), BRANCH: (0, "feature/x\n")})

        info = SubprocessGitProvider(runner=runner).lookup(str(project))

        assert info == GitInfo(repo_name="my-project", branch="feature/x")

    def test_detached_head_is_not_a_branch(self, tmp_path: Path) -> None:
        runner = FakeGit({WORK_TREE: (0, "true\n"), REMOTE: (0, "git@host:org/r.git"), BRANCH: (0, "HEAD\n")})

        info = SubprocessGitProvider(runner=runner).lookup(str(tmp_path))

        assert info == GitInfo(repo_name="r", branch=None)

    def test_not_a_work_tree(self, tmp_path: Path) -> None:
        runner = FakeGit({WORK_TREE: (128, "")})

        assert SubprocessGitProvider(runner=runner).lookup(str(tmp_path)) is None
        assert len(runner.calls) == 1

    def test_missing_directory_spawns_nothing(self, tmp_path: Path) -> None:
        runner = FakeGit({})

        assert SubprocessGitProvider(runner=runner).lookup(str(tmp_path / "gone")) is None
        assert runner.calls == []

    def test_shell_metacharacters_spawn_nothing(self) -> None:
        """Unsafe paths are refused before any process runs."""
        runner = FakeGit({})
        provider = SubprocessGitProvider(runner=runner)

        for path in ("/tmp/a;rm -rf /", "/tmp/$(whoami)", "/tmp/a|b", "/tmp/`id`", "/tmp/a\nb"):
            assert provider.lookup(path) is None
        assert runner.calls == []

    def test_timeout_is_absorbed(self, tmp_path: Path) -> None:
        runner = FakeGit(
            {
                WORK_TREE: (0, "true"),
                REMOTE: subprocess.TimeoutExpired(["git"], 5),
                BRANCH: subprocess.TimeoutExpired(["git"], 5),
            }
        )

        info = SubprocessGitProvider(runner=runner, timeout=0.1).lookup(str(tmp_path))

        assert info == GitInfo(repo_name=tmp_path.name, branch=None)

    def test_missing_git_executable(self, tmp_path: Path) -> None:
        runner = FakeGit({WORK_TREE: FileNotFoundError("git")})

        assert SubprocessGitProvider(runner=runner).lookup(str(tmp_path)) is None


class TestCachingGitProvider:
    def test_memoizes_per_path(self, tmp_path: Path) -> None:
        runner = FakeGit({WORK_TREE: (0, "true"), REMOTE: (0, "git@h:o/r.git"), BRANCH: (0, "main")})
        provider = CachingGitProvider(SubprocessGitProvider(runner=runner))

        provider.lookup(str(tmp_path))
        provider.lookup(str(tmp_path))

        assert len(runner.calls) == 3


def _git(*args: str, cwd: Path) -> None:
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestGitEndToEnd:
    """Refresh over real repositories."""

    def test_repo_and_plain_directory(self, tmp_path, monkeypatch, write_transcript, records, cache, projects_root) -> None:
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
        repo = tmp_path / "work" / "checkout"
        repo.mkdir(parents=True)
        _git("init", "-q", cwd=repo)
        _git("remote", "add", "origin", "git@host:org/myrepo.git", cwd=repo)
        plain = tmp_path / "work" / "plain"
        plain.mkdir()

        write_transcript(records(summary="In repo", cwd=str(repo)), project="-work-checkout", name="a")
        write_transcript(records(summary="No repo", cwd=str(plain)), project="-work-plain", name="b")

        pipeline = RefreshPipeline(cache, root_dir=projects_root)
        assert asyncio.run(pipeline.run())

        by_name = {s.display_name: s for s in cache.get_all_sessions()}
        assert by_name["In repo"].git_repo_name == "myrepo"
        assert by_name["No repo"].git_repo_name is None
        assert by_name["No repo"].git_branch is None
