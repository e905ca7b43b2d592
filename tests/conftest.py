"""Shared fixtures for resolver tests."""

from typing import Any

import pytest

from modresolve import State, descriptor_from_mapping


@pytest.fixture
def state():
    """Create an empty State for each test."""
    return State()


@pytest.fixture
def install(state):
    """Install a module described by keyword fields into ``state``.

    Fields follow the descriptor mapping format, e.g.
    ``install("A", "1.0.0", imports=[{"name": "p", "range": "[1.0,2.0)"}])``.
    """

    def _install(symbolic_name: str, version: str = "1.0.0", **fields: Any):
        data = {"symbolic_name": symbolic_name, "version": version}
        data.update(fields)
        return state.install(descriptor_from_mapping(data))

    return _install
