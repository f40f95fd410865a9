"""Shared fixtures: fake backend, reconciler configs, isolated config dir."""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

import pytest

from classroom_auth.config import ReconcilerConfig
from classroom_auth.reconciler import SessionReconciler

from tests.fakes import FakeIdentityProvider, FakeProfileStore


@pytest.fixture
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def app_config() -> ReconcilerConfig:
    """Application-owned provisioning, sign in after sign-up."""
    return ReconcilerConfig()


@pytest.fixture
def trigger_config() -> ReconcilerConfig:
    """Trigger provisioning with settle times scaled down for tests.

    0.05s here stands in for the 1000ms settle interval.
    """
    return ReconcilerConfig(
        profile_provisioning="trigger",
        settle_interval_seconds=0.05,
        settle_timeout_seconds=0.5,
    )


@pytest.fixture
async def reconciler(
    provider: FakeIdentityProvider,
    profiles: FakeProfileStore,
    app_config: ReconcilerConfig,
) -> AsyncIterator[SessionReconciler]:
    """Started reconciler over the fakes (startup restore already ran)."""
    reconciler = SessionReconciler(provider, profiles, app_config)
    await reconciler.start()
    yield reconciler
    await reconciler.dispose()


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config path at a temp dir and clear env overrides."""
    monkeypatch.setattr("classroom_auth.config.get_app_dir", lambda: tmp_path)
    monkeypatch.delenv("CLASSROOM_SUPABASE_URL", raising=False)
    monkeypatch.delenv("CLASSROOM_SUPABASE_ANON_KEY", raising=False)
    return tmp_path
