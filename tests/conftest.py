"""Shared test fixtures for keyring-bridge tests."""

from __future__ import annotations

import pathlib

import pytest

from keyring_bridge.backend.history import CommandHandler
from keyring_bridge.bridge import CommandBridge, LocalTransport
from keyring_bridge.config import BackendConfig

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture
def backend_config(tmp_path: pathlib.Path) -> BackendConfig:
    return BackendConfig(
        data_dir=str(tmp_path / "data"),
        default_store="memory",
        sample_file=str(tmp_path / "sample.enc"),
        master_password="test-master-password",
    )


@pytest.fixture
def handler(backend_config: BackendConfig) -> CommandHandler:
    return CommandHandler(backend_config)


@pytest.fixture
def local_bridge(handler: CommandHandler) -> CommandBridge:
    """A bridge wired straight to an in-process command handler."""
    return CommandBridge(LocalTransport(handler))
