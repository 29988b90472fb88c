from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol

from coursecraft.errors import PublishFailure
from coursecraft.models.configs import GitConfig

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Commits synced files and opens a review request for them."""

    def commit_and_push(self, branch: str, message: str) -> None:
        ...

    def create_pr(self, branch: str, title: str, body: str) -> Optional[str]:
        ...


class GitPublisher:
    """Publishes through the ``git`` and ``gh`` command line tools."""

    def __init__(
        self,
        repo_root: Path,
        remote: str = "origin",
        default_branch: str = "main",
        enabled: bool = True,
        timeout: float = 120.0,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.remote = remote
        self.default_branch = default_branch
        self.enabled = enabled
        self.timeout = timeout

    @classmethod
    def from_config(cls, repo_root: Path, config: GitConfig) -> "GitPublisher":
        return cls(
            repo_root,
            remote=config.remote,
            default_branch=config.default_branch,
            enabled=config.enabled,
        )

    def commit_and_push(self, branch: str, message: str) -> None:
        if not self.enabled:
            logger.info("Git operations disabled, skipping commit and push of %s", branch)
            return
        self._git("checkout", "-B", branch, self.default_branch)
        self._git("add", ".")
        if not self._git("status", "--porcelain"):
            logger.info("No changes to commit on %s", branch)
            return
        self._git("commit", "-m", message)
        self._git("push", "-f", self.remote, branch)
        logger.info("Pushed %s to %s", branch, self.remote)

    def create_pr(self, branch: str, title: str, body: str) -> Optional[str]:
        """Open a pull request for an already pushed branch; returns the URL ``gh`` prints."""

        if not self.enabled:
            logger.info("Git operations disabled, skipping pull request for %s", branch)
            return None
        url = self._run(
            [
                "gh",
                "pr",
                "create",
                "--title",
                title,
                "--body",
                body,
                "--base",
                self.default_branch,
                "--head",
                branch,
            ]
        )
        logger.info("Opened pull request for %s: %s", branch, url or "<no url>")
        return url or None

    def _git(self, *args: str) -> str:
        return self._run(["git", "-C", str(self.repo_root), *args])

    def _run(self, command: List[str]) -> str:
        logger.debug("Running %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise PublishFailure(command, -1, str(exc)) from exc
        if result.returncode != 0:
            raise PublishFailure(command, result.returncode, result.stderr)
        return result.stdout.strip()


__all__ = ["GitPublisher", "Publisher"]
