"""Shared pytest fixtures; the fakes they build live in tests/helpers.py."""

from __future__ import annotations

import random

import pytest

from tests.helpers import FakeBuzzServer, SleepRecorder


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def server():
    return FakeBuzzServer()
