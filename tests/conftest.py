"""Shared test fixtures for klbrest.

Provides key material, ready-made configs and a helper for wiring a
:class:`~klbrest.client.context.RestContext` to an in-process
``httpx.MockTransport``. These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import base64
from typing import Callable

import httpx
import pytest

from klbrest.client.context import RestContext
from klbrest.models import RestConfig
from klbrest.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager's Rich console binds sys.stderr at creation time;
    pytest's capture swaps that stream per test, so a cached manager
    would write to a closed file.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


SEED = bytes(range(32))


def b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


@pytest.fixture
def seed_secret() -> str:
    """A 32-byte Ed25519 seed, unpadded base64url."""
    return b64url(SEED)


# ---------------------------------------------------------------------------
# Config and context fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> RestConfig:
    return RestConfig(scheme="https", host="api.example.com", token_grace=30)


Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def make_context(config: RestConfig) -> Callable[..., RestContext]:
    """Factory for a context whose requests go to *handler* instead of the network."""

    def factory(handler: Handler, cfg: RestConfig | None = None) -> RestContext:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return RestContext(cfg or config, http_client=client)

    return factory


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a verbose, colourless OutputManager for tests that check diagnostics."""
    output = OutputManager(no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()
