import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fakes import FakeFetcher, FakeLedger


@pytest.fixture
def ledger():
    return FakeLedger(balance=200)


@pytest.fixture
def fetcher():
    return FakeFetcher()
