"""Fixtures shared by wsgw tests."""

from datetime import date

import pytest
from fakes import FakeDelegate, FakeTransport, default_responses

from core.auth import InMemorySessionCache
from wsgw.session import SessionStore


@pytest.fixture
def calls():
    """Ordered log of upstream endpoints and recognizer calls."""
    return []


@pytest.fixture
def responses():
    return default_responses()


@pytest.fixture
def fake_transport(responses, calls):
    return FakeTransport(responses, calls)


@pytest.fixture
def fake_delegate(calls):
    return FakeDelegate(calls)


@pytest.fixture
def cache():
    return InMemorySessionCache()


@pytest.fixture
def store(cache):
    return SessionStore(cache)


@pytest.fixture
def today():
    return date(2024, 3, 15)
