"""Tests for remote repository acquisition."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.foundry_orchestrator.acquirer import ResourceAcquirer, TempWorkspace, http_probe
from src.foundry_orchestrator.config import AcquisitionConfig
from src.foundry_orchestrator.exceptions import UnreachableError

URL = "https://github.com/acme/payments"


@pytest.fixture
def acquisition_config(tmp_path: Path) -> AcquisitionConfig:
    return AcquisitionConfig(retry_backoff=0.0, workspace_root=str(tmp_path / "ws"))


async def _write_readme(url: str, dest: Path) -> None:
    (dest / "README.md").write_text("payments", encoding="utf-8")


class TestEnsureReachable:
    @pytest.mark.asyncio
    async def test_first_probe_succeeds(self, acquisition_config) -> None:
        probe = AsyncMock(return_value=True)
        await ResourceAcquirer(acquisition_config, probe=probe).ensure_reachable(URL)
        assert probe.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_exactly_once(self, acquisition_config) -> None:
        probe = AsyncMock(side_effect=[False, True])
        with patch("src.foundry_orchestrator.acquirer.asyncio.sleep", new=AsyncMock()) as sleep:
            await ResourceAcquirer(acquisition_config, probe=probe).ensure_reachable(URL)
        assert probe.await_count == 2
        sleep.assert_awaited_once_with(acquisition_config.retry_backoff)

    @pytest.mark.asyncio
    async def test_second_failure_is_fatal(self, acquisition_config) -> None:
        probe = AsyncMock(return_value=False)
        with pytest.raises(UnreachableError) as exc_info:
            await ResourceAcquirer(acquisition_config, probe=probe).ensure_reachable(URL)
        assert probe.await_count == 2
        assert exc_info.value.url == URL


class TestAcquire:
    @pytest.mark.asyncio
    async def test_fetches_into_workspace(self, acquisition_config) -> None:
        created: list[TempWorkspace] = []
        acquirer = ResourceAcquirer(
            acquisition_config, probe=AsyncMock(return_value=True), fetcher=_write_readme
        )
        ws = await acquirer.acquire(URL, on_created=created.append)
        assert created == [ws]
        assert (ws.path / "README.md").is_file()
        assert ws.path.parent == Path(acquisition_config.workspace_root)
        assert ws.source_url == URL
        ws.release()
        assert not ws.path.exists()

    @pytest.mark.asyncio
    async def test_unreachable_creates_nothing(self, acquisition_config) -> None:
        on_created = MagicMock()
        acquirer = ResourceAcquirer(acquisition_config, probe=AsyncMock(return_value=False))
        with pytest.raises(UnreachableError):
            await acquirer.acquire(URL, on_created=on_created)
        on_created.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_fetch_releases_workspace(self, acquisition_config) -> None:
        created: list[TempWorkspace] = []
        fetcher = AsyncMock(side_effect=UnreachableError(URL, "clone failed"))
        acquirer = ResourceAcquirer(
            acquisition_config, probe=AsyncMock(return_value=True), fetcher=fetcher
        )
        with pytest.raises(UnreachableError):
            await acquirer.acquire(URL, on_created=created.append)
        assert len(created) == 1
        assert created[0].released is True
        assert not created[0].path.exists()


class TestTempWorkspace:
    def test_release_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "ws"
        path.mkdir()
        ws = TempWorkspace(path=path, source_url=URL)
        ws.release()
        ws.release()
        assert ws.released is True
        assert not path.exists()


class TestHttpProbe:
    @pytest.mark.asyncio
    async def test_reachable(self) -> None:
        response = MagicMock(status_code=200)
        with patch.object(httpx.AsyncClient, "head", new=AsyncMock(return_value=response)):
            assert await http_probe(URL) is True

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        response = MagicMock(status_code=404)
        with patch.object(httpx.AsyncClient, "head", new=AsyncMock(return_value=response)):
            assert await http_probe(URL) is False

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        error = httpx.ConnectError("connection refused")
        with patch.object(httpx.AsyncClient, "head", new=AsyncMock(side_effect=error)):
            assert await http_probe(URL) is False
