"""Concurrent callers sharing one token must trigger exactly one renewal."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

import httpx
import pytest

from klbrest.auth.token import Token
from klbrest.client.context import RestContext

THREADS = 8

GRANT = {
    "result": "success",
    "data": {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 3600},
}

EXPIRED = {
    "result": "error",
    "error": "Token has expired",
    "token": "invalid_request_token",
    "extra": "token_expired",
}


class _Server:
    """Mock endpoint that counts token exchanges and records bearer tokens."""

    def __init__(self, reject_old_token: bool) -> None:
        self.reject_old_token = reject_old_token
        self.token_calls = 0
        self.seen: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if "OAuth2" in request.url.path:
            with self._lock:
                self.token_calls += 1
            # widen the window in which other callers pile up
            time.sleep(0.05)
            return httpx.Response(200, json=GRANT)

        authorization = request.headers["Authorization"]
        with self._lock:
            self.seen.append(authorization)
        if self.reject_old_token and authorization == "Bearer access-1":
            return httpx.Response(200, json=EXPIRED)
        return httpx.Response(200, json={"result": "success", "data": {"who": authorization}})


def _run_concurrently(ctx: RestContext) -> tuple[list[Any], list[BaseException]]:
    barrier = threading.Barrier(THREADS)
    results: list[Any] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait(timeout=5)
        try:
            data = ctx.apply("User/Get", "GET", target=dict)
        except BaseException as exc:  # pragma: no cover - reported below
            with lock:
                errors.append(exc)
            return
        with lock:
            results.append(data)

    threads = [threading.Thread(target=worker) for _ in range(THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


class TestConcurrentRenewal:
    @pytest.mark.parametrize("reject_old_token", [False, True], ids=["expiring", "rejected"])
    def test_single_renewal(
        self, make_context: Callable[..., RestContext], reject_old_token: bool
    ) -> None:
        server = _Server(reject_old_token)
        # "expiring": inside the grace window so every caller wants to renew first.
        # "rejected": valid locally but refused by the server.
        expires_in = 3600 if reject_old_token else 5
        token = Token.create("access-1", "refresh-1", "client-1", expires_in=expires_in)

        with make_context(server) as ctx:
            results, errors = _run_concurrently(ctx.with_token(token))

        assert errors == []
        assert server.token_calls == 1
        assert len(results) == THREADS
        assert all(r == {"who": "Bearer access-2"} for r in results)
        assert token.access_token == "access-2"
        assert token.epoch == 1

    def test_no_renewal_when_valid(self, make_context: Callable[..., RestContext]) -> None:
        server = _Server(reject_old_token=False)
        token = Token.create("access-1", "refresh-1", "client-1", expires_in=3600)

        with make_context(server) as ctx:
            results, errors = _run_concurrently(ctx.with_token(token))

        assert errors == []
        assert server.token_calls == 0
        assert set(server.seen) == {"Bearer access-1"}
        assert len(results) == THREADS
