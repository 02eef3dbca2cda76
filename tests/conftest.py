"""Shared fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest
from fakes import FakeRunner

from git_convoy.targets import RepositoryTarget


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_target(tmp_path: Path) -> Callable[..., RepositoryTarget]:
    """Builds targets whose working copies are distinct directories under tmp_path."""

    def _make(target_id: str = "t1", **overrides: object) -> RepositoryTarget:
        values: dict[str, object] = {
            "id": target_id,
            "remote_link": f"github.com/example/{target_id}",
            "username": "octocat",
            "access_token": f"tok-{target_id}-secret",
            "local_path": str(tmp_path / target_id),
        }
        values.update(overrides)
        return RepositoryTarget(**values)  # type: ignore[arg-type]

    return _make
