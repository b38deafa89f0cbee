from __future__ import annotations

import pytest

from tests.fakes import FakeJobs, FakeProvider, FakeWatchProvider, RecordingT
from vmharness.config import HarnessConfig, Timeouts
from vmharness.context import Context, background


@pytest.fixture
def timeouts() -> Timeouts:
    return Timeouts(
        resource_wait=2.0,
        polling_interval=0.05,
        polling_timeout=1.0,
        k6_job_polling_interval=0.05,
        k6_job_max_duration=1.0,
        chaos_test_max_duration=1.0,
        diagnostics=2.0,
    )


@pytest.fixture
def config(timeouts: Timeouts, tmp_path) -> HarnessConfig:
    return HarnessConfig(
        timeouts=timeouts,
        crust_gather_dir=str(tmp_path / "crust-gather"),
        report_location=str(tmp_path / "reports"),
    )


@pytest.fixture
def ctx() -> Context:
    return background()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def watch_provider() -> FakeWatchProvider:
    return FakeWatchProvider()


@pytest.fixture
def jobs() -> FakeJobs:
    return FakeJobs()


@pytest.fixture
def t() -> RecordingT:
    return RecordingT()
