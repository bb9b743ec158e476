"""Shared test fixtures for the foundry test suite."""
from __future__ import annotations

from pathlib import Path

import pytest

from src.foundry_orchestrator.config import FoundryConfig
from src.foundry_orchestrator.state import PipelineRun
from src.foundry_shared.models import RegistryEntry
from src.persistence.registry_store import JsonRegistryStore
from tests.fixtures.documents import FakeWorkers


@pytest.fixture
def foundry_config(tmp_path: Path) -> FoundryConfig:
    """Default configuration with every on-disk location under ``tmp_path``."""
    config = FoundryConfig(output_dir=str(tmp_path / "state"))
    config.registry.path = str(tmp_path / "state" / "registry.json")
    config.work_order.directory = str(tmp_path / "work-orders")
    config.deploy.runtime_dir = str(tmp_path / "agents")
    config.acquisition.retry_backoff = 0.0
    config.acquisition.workspace_root = str(tmp_path / "workspaces")
    return config


@pytest.fixture
def registry_store(foundry_config: FoundryConfig) -> JsonRegistryStore:
    return JsonRegistryStore(foundry_config.registry.path)


@pytest.fixture
def seeded_registry(registry_store: JsonRegistryStore) -> JsonRegistryStore:
    """Registry holding one Kubernetes troubleshooting entry."""
    registry_store.upsert(
        RegistryEntry(
            name="kubernetes-troubleshooting",
            keywords=["kubernetes", "troubleshooting", "pods", "cluster"],
            category="specialist",
        )
    )
    return registry_store


@pytest.fixture
def fake_workers(tmp_path: Path) -> FakeWorkers:
    return FakeWorkers(tmp_path / "worker-output")


@pytest.fixture
def pipeline_run(tmp_path: Path) -> PipelineRun:
    return PipelineRun(
        raw_request="Create an agent for kubernetes troubleshooting",
        target_name="kubernetes-troubleshooting",
        run_dir=str(tmp_path / "run"),
    )
