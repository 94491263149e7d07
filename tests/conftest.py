from __future__ import annotations

import pytest

from rewardscan.domain.value_types import Category

from fakes import FakeRPC, MemoryCategoryStore


@pytest.fixture
def rpc() -> FakeRPC:
    return FakeRPC()


@pytest.fixture
def stores() -> dict[Category, MemoryCategoryStore]:
    return {cat: MemoryCategoryStore(cat) for cat in Category}
