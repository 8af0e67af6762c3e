"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from factories import NOW


@pytest.fixture
def now() -> datetime:
    return NOW
