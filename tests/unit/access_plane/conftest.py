"""Fixtures for access-plane unit tests."""

from __future__ import annotations

import pytest

from sharing_helpers import World, build_world


@pytest.fixture
def world() -> World:
    return build_world()
