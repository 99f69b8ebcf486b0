"""
Shared fixtures.
"""
import pytest

from src.shared.settings import Settings
from tests.fakes import FakeEmbedder


@pytest.fixture()
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture()
def settings(tmp_path):
    """Settings with all waits disabled and storage under tmp_path."""
    return Settings(
        data_root=tmp_path,
        jira_base_url="https://example.atlassian.net",
        harvest_initial_delay_seconds=0,
        harvest_interval_hours=1,
        embedding_delay_seconds=0,
        storage_init_backoff_seconds=0,
        harvest_enabled=False,
    )
