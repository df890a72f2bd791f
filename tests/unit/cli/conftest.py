"""CLI fixtures: a RagService on a temp store, wired in place of the real one."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from raggy.cli import context
from raggy.config import RaggyConfig
from raggy.service import RagService


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def svc(store, fake_embedder, monkeypatch) -> RagService:
    """Service every command gets from make_service()."""
    cfg = RaggyConfig()
    cfg.search.min_score = 0.0
    service = RagService(cfg, store=store, embedder=fake_embedder)
    monkeypatch.setattr(context, "make_service", lambda ctx: service)
    return service
