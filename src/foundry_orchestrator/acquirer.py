"""Remote repository acquisition into a disposable workspace.

A remote source is probed before anything is fetched.  A failed probe is
retried exactly once after a fixed backoff; a second failure is fatal
(``Unreachable``).  The workspace is handed to the caller's cleanup hook
as soon as it exists, so it is released on every exit path, including a
failed fetch.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import httpx

from src.foundry_orchestrator.config import AcquisitionConfig
from src.foundry_orchestrator.exceptions import UnreachableError
from src.foundry_orchestrator.workers import run_command

logger = logging.getLogger(__name__)

Probe = Callable[[str], Awaitable[bool]]
Fetcher = Callable[[str, Path], Awaitable[None]]


@dataclass
class TempWorkspace:
    """A temporary directory holding a fetched repository."""

    path: Path
    source_url: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    released: bool = False

    def release(self) -> None:
        """Delete the workspace.  Safe to call more than once."""
        if self.released:
            return
        shutil.rmtree(self.path, ignore_errors=True)
        self.released = True
        logger.info("Released temporary workspace %s", self.path)


async def http_probe(url: str, timeout: float = 10.0) -> bool:
    """HEAD the repository URL; any status below 400 counts as reachable."""
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            resp = await client.head(url)
            return resp.status_code < 400
    except httpx.HTTPError as exc:
        logger.debug("Probe of %s failed: %s", url, exc)
        return False


async def git_probe(url: str, timeout: float = 10.0) -> bool:
    """``git ls-remote`` for SSH-style URLs that cannot be probed over HTTP."""
    try:
        result = await run_command(["git", "ls-remote", "--heads", url], timeout_s=timeout)
    except OSError as exc:
        logger.debug("git ls-remote unavailable: %s", exc)
        return False
    return not result.timed_out and result.exit_code == 0


async def git_clone(url: str, dest: Path, timeout: float = 300) -> None:
    """Shallow-clone *url* into *dest*."""
    try:
        result = await run_command(
            ["git", "clone", "--depth", "1", "--quiet", url, str(dest)], timeout_s=timeout
        )
    except OSError as exc:
        raise UnreachableError(url, f"git unavailable: {exc}") from exc
    if result.timed_out:
        raise UnreachableError(url, f"Clone of {url} timed out after {timeout}s")
    if result.exit_code != 0:
        raise UnreachableError(
            url, f"Clone of {url} failed (exit {result.exit_code}): {result.stderr[:500]}"
        )


class ResourceAcquirer:
    """Probes and fetches a remote repository.

    Args:
        config: Acquisition settings (probe timeout, backoff, clone timeout).
        probe: Optional replacement reachability check.
        fetcher: Optional replacement fetch into a directory.
    """

    def __init__(
        self,
        config: AcquisitionConfig | None = None,
        probe: Probe | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self._config = config or AcquisitionConfig()
        self._probe = probe
        self._fetcher = fetcher

    async def probe(self, url: str) -> bool:
        if self._probe is not None:
            return await self._probe(url)
        if url.startswith(("http://", "https://")):
            return await http_probe(url, timeout=self._config.probe_timeout)
        return await git_probe(url, timeout=self._config.probe_timeout)

    async def fetch(self, url: str, dest: Path) -> None:
        if self._fetcher is not None:
            await self._fetcher(url, dest)
            return
        await git_clone(url, dest, timeout=self._config.clone_timeout)

    async def ensure_reachable(self, url: str) -> None:
        """Probe *url*, retrying once after the configured backoff."""
        if await self.probe(url):
            return
        logger.warning(
            "Remote %s unreachable; retrying once in %.1fs", url, self._config.retry_backoff
        )
        await asyncio.sleep(self._config.retry_backoff)
        if await self.probe(url):
            return
        raise UnreachableError(url, f"Remote source unreachable after retry: {url}")

    async def acquire(
        self,
        url: str,
        on_created: Callable[[TempWorkspace], None] | None = None,
    ) -> TempWorkspace:
        """Fetch *url* into a fresh temporary workspace.

        Args:
            url: Remote repository URL.
            on_created: Called with the workspace before the fetch starts,
                so the caller can register its release.

        Raises:
            UnreachableError: probe failed twice, or the fetch failed.
        """
        await self.ensure_reachable(url)

        root = self._config.workspace_root or None
        if root:
            Path(root).mkdir(parents=True, exist_ok=True)
        workspace = TempWorkspace(
            path=Path(tempfile.mkdtemp(prefix="foundry-repo-", dir=root)), source_url=url
        )
        if on_created is not None:
            on_created(workspace)

        try:
            await self.fetch(url, workspace.path)
        except BaseException:
            workspace.release()
            raise
        logger.info("Fetched %s into %s", url, workspace.path)
        return workspace
