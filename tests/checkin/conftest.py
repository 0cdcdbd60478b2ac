from __future__ import annotations

import pytest

from checkin import monitoring

from .factories import blank_frame, make_landmarks, make_observation


@pytest.fixture
def observation_factory():
    return make_observation


@pytest.fixture
def landmark_factory():
    return make_landmarks


@pytest.fixture
def frame():
    return blank_frame()


@pytest.fixture(autouse=True)
def _reset_monitoring():
    monitoring.reset_for_tests()
    yield
    monitoring.reset_for_tests()
