"""Shared pytest fixtures."""

import pytest

from helpers import FakeCapability
from resolver import PeerResolver
from session_manager import SessionManager
from session_store import FileSessionStore
from tools import TelegramTools


@pytest.fixture
def store(tmp_path):
    return FileSessionStore(tmp_path / "state" / "session.json")


@pytest.fixture
def capability():
    return FakeCapability()


@pytest.fixture
def sessions(capability, store):
    return SessionManager(capability, store)


@pytest.fixture
def resolver(sessions):
    return PeerResolver(sessions)


@pytest.fixture
def tools(sessions, resolver):
    return TelegramTools(sessions, resolver)
