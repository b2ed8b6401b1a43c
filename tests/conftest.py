from __future__ import annotations

import pytest

from fakes import FakeHackEEG


@pytest.fixture
def fake_device() -> FakeHackEEG:
    return FakeHackEEG()


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr("hackeeg.device.client.time.sleep", lambda _seconds: None)
