"""Authenticated request engine.

This module provides :class:`RestContext`, the blocking client every
klbrest call goes through. It wraps a pooled :class:`httpx.Client` and
layers on:

- **URL and parameter encoding** -- ``scheme://host/base_path/path``; read
  verbs carry their params as JSON in the ``_`` query parameter, write
  verbs as a JSON body.
- **Auth injection** -- a bearer header for :class:`~klbrest.auth.token.Token`
  auth, or ``_key``/``_time``/``_nonce``/``_sign`` query parameters for
  :class:`~klbrest.auth.apikey.ApiKey` auth.
- **Renew-then-retry** -- an expiring token is renewed before sending; an
  expired-token answer triggers exactly one renewal and one retry.
- **Error mapping** -- transport failures, timeouts, unexpected statuses and
  error/redirect envelopes become :mod:`klbrest.exceptions` errors.

A context is safe to share between threads. The token is its only mutable
state and it serialises its own renewals.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from klbrest.auth.apikey import ApiKey
from klbrest.auth.base import AuthKind, AuthMethod, AuthResult
from klbrest.auth.token import TOKEN_ENDPOINT, Token, TokenSnapshot
from klbrest.client.response import ResponseEnvelope, ResultKind
from klbrest.client.transport import create_http_client
from klbrest.exceptions import HttpError, NetworkError, ParseError, TimeoutError_, describe
from klbrest.models import HTTPMethod, RestConfig, TokenGrant
from klbrest.output import get_output
from klbrest.timestamp import Time
from klbrest.value import Value


class RestContext:
    """Blocking client for the framework's REST endpoints.

    Args:
        config: Connection settings. Defaults to :class:`~klbrest.models.RestConfig`.
        auth: The auth method. Defaults to no auth.
        http_client: Pooled client to use instead of creating one. A
            client passed in is not closed by :meth:`close`.

    Contexts derived with :meth:`with_token` / :meth:`with_api_key` share
    the connection pool of their parent; closing any of them closes it.

    Example::

        with RestContext().with_token(token) as ctx:
            user = ctx.apply("User/@", "GET", target=User)
    """

    def __init__(
        self,
        config: Optional[RestConfig] = None,
        auth: Optional[AuthMethod] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config or RestConfig()
        self._auth = auth or AuthMethod.none()
        if http_client is None:
            self._client = create_http_client(self._config)
            self._owns_client = True
        else:
            self._client = http_client
            self._owns_client = False

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> RestConfig:
        return self._config

    @property
    def auth(self) -> AuthMethod:
        return self._auth

    def with_token(self, token: Token) -> RestContext:
        """Return a context on the same pool that authenticates with *token*."""
        return self._derive(AuthMethod.from_token(token))

    def with_api_key(self, api_key: ApiKey) -> RestContext:
        """Return a context on the same pool that signs requests with *api_key*."""
        return self._derive(AuthMethod.from_api_key(api_key))

    def with_config(self, config: RestConfig) -> RestContext:
        """Return a context with *config* and the same auth, on a new pool."""
        return RestContext(config, self._auth)

    def _derive(self, auth: AuthMethod) -> RestContext:
        ctx = RestContext(self._config, auth, http_client=self._client)
        ctx._owns_client = self._owns_client
        return ctx

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> RestContext:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def apply(
        self,
        path: str,
        method: str = "GET",
        params: Any = None,
        target: Any = Any,
    ) -> Any:
        """Call *path* and decode the envelope's ``data`` into *target*.

        Args:
            path: Endpoint path relative to the config's ``base_path``.
            method: One of GET, HEAD, OPTIONS, DELETE, POST, PUT, PATCH.
            params: Request parameters: a mapping, pydantic model,
                :class:`~klbrest.value.Value` or other JSON-serialisable data.
            target: Type to decode ``data`` into (pydantic model, dataclass,
                builtin or generic alias). ``Any`` returns plain objects.

        Returns:
            The decoded ``data``.

        Raises:
            ApiError: The server reported an error.
            RedirectError: The server answered with a redirect.
            ParseError: The envelope or ``data`` did not have the expected shape.
            AuthError: The token could not be renewed.
            HttpError, NetworkError, TimeoutError_: Transport-level failures.
        """
        envelope = self.do_request(path, method, params)
        return envelope.decode_data(target)

    def do_request(self, path: str, method: str = "GET", params: Any = None) -> ResponseEnvelope:
        """Call *path* and return the parsed success envelope.

        Raises the same errors as :meth:`apply`, except that ``data`` is not
        decoded.
        """
        if not path or not path.strip("/"):
            raise ValueError("request path must not be empty")
        verb = HTTPMethod.parse(method)
        payload = _to_jsonable(params)
        return self._call(path.lstrip("/"), verb, payload, self._auth, renewed=False)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _call(
        self,
        path: str,
        verb: HTTPMethod,
        payload: Any,
        auth: AuthMethod,
        renewed: bool,
    ) -> ResponseEnvelope:
        """Send one request; on an expired-token answer renew and retry once."""
        snapshot: Optional[TokenSnapshot] = None
        if auth.kind is AuthKind.TOKEN:
            assert auth.token is not None
            if renewed:
                # the retry reuses the credentials the renewal just produced
                snapshot = auth.token.snapshot()
            else:
                snapshot, renewed = self._fresh_snapshot(auth.token)

        request = self._build_request(path, verb, payload, auth, snapshot)
        response = self._send(request, verb, path)
        envelope = self._read_envelope(response, verb)

        if snapshot is not None and self._is_expired(response, envelope):
            if not renewed:
                assert auth.token is not None
                self._log_debug(f"[rest] Token expired, attempting renewal ({verb.value} {path})")
                self._renew(auth.token, snapshot.epoch)
                return self._call(path, verb, payload, auth, renewed=True)
            self._log_debug(f"[rest] Token still rejected after renewal ({verb.value} {path})")

        if not response.is_success:
            if envelope is not None and not envelope.is_success:
                envelope.raise_for_result()
            raise HttpError(response.status_code, response.text, envelope=envelope)
        if envelope is None:
            # 2xx bodies are parsed strictly in _read_envelope
            raise ParseError("empty response envelope")
        return envelope.raise_for_result()

    def _fresh_snapshot(self, token: Token) -> tuple[TokenSnapshot, bool]:
        """Renew *token* first if it expires within the grace window.

        Returns the snapshot to send and whether a renewal was made.
        """
        snapshot = token.snapshot()
        if not snapshot.is_expiring(Time.now(), self._config.token_grace):
            return snapshot, False
        self._log_debug("[rest] Token expiring, renewing before request")
        self._renew(token, snapshot.epoch)
        return token.snapshot(), True

    def _renew(self, token: Token, observed_epoch: int) -> None:
        try:
            token.renew(self._exchange_token, observed_epoch=observed_epoch)
        except Exception as exc:
            get_output().debug(f"Token renewal failed: {describe(exc)}")
            raise
        get_output().debug(f"Token renewed (epoch {token.epoch})")

    def _exchange_token(self, params: dict[str, str]) -> TokenGrant:
        envelope = self._call(
            TOKEN_ENDPOINT, HTTPMethod.POST, params, AuthMethod.none(), renewed=False
        )
        return envelope.decode_data(TokenGrant)

    def _build_request(
        self,
        path: str,
        verb: HTTPMethod,
        payload: Any,
        auth: AuthMethod,
        snapshot: Optional[TokenSnapshot],
    ) -> httpx.Request:
        headers: dict[str, str] = {
            "Accept": "application/json",
            "Sec-Rest-Http": "false",
        }
        params: dict[str, str] = {}
        body = b""

        encoded = json.dumps(payload, separators=(",", ":"), default=_json_default)
        if verb.params_in_query:
            params["_"] = encoded
        else:
            body = encoded.encode("utf-8")
            headers["Content-Type"] = "application/json"

        auth_result = self._inject_auth(verb, path, params, body, auth, snapshot)
        merged_headers = {**auth_result.headers, **headers}
        merged_params = auth_result.params or params

        return self._client.build_request(
            verb.value,
            self._config.url_for(path),
            params=merged_params,
            headers=merged_headers,
            content=body or None,
            timeout=httpx.Timeout(self._config.timeout, connect=self._config.connect_timeout),
        )

    def _inject_auth(
        self,
        verb: HTTPMethod,
        path: str,
        params: dict[str, str],
        body: bytes,
        auth: AuthMethod,
        snapshot: Optional[TokenSnapshot],
    ) -> AuthResult:
        """Compute the credentials for one request from the auth method."""
        if auth.kind is AuthKind.TOKEN:
            assert snapshot is not None
            return AuthResult(headers={"Authorization": snapshot.authorization})
        if auth.kind is AuthKind.API_KEY:
            assert auth.api_key is not None
            return AuthResult(params=auth.api_key.signed_params(verb.value, path, params, body))
        return AuthResult()

    def _send(self, request: httpx.Request, verb: HTTPMethod, path: str) -> httpx.Response:
        start = time.monotonic()
        try:
            response = self._client.send(request)
        except httpx.TimeoutException as exc:
            raise TimeoutError_(
                f"{verb.value} {path} timed out after {self._config.timeout}s"
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{verb.value} {path} failed: {exc}") from exc

        if self._config.debug:
            elapsed = time.monotonic() - start
            get_output().trace(
                f"[rest] {verb.value} {path} => {elapsed:.3f}s (status: {response.status_code})"
            )
        return response

    def _read_envelope(
        self, response: httpx.Response, verb: HTTPMethod
    ) -> Optional[ResponseEnvelope]:
        """Parse the body; strict for 2xx, best effort otherwise.

        A successful HEAD has no body and stands for an empty success envelope.
        """
        request_id = response.headers.get("X-Request-Id")
        if verb is HTTPMethod.HEAD and response.is_success and not response.content:
            return ResponseEnvelope(
                result=ResultKind.SUCCESS,
                request_id=request_id,
                status_code=response.status_code,
            )
        try:
            return ResponseEnvelope.parse(
                response.content, request_id=request_id, status_code=response.status_code
            )
        except ParseError:
            if response.is_success:
                raise
            return None

    @staticmethod
    def _is_expired(response: httpx.Response, envelope: Optional[ResponseEnvelope]) -> bool:
        if response.status_code == 401:
            return True
        return envelope is not None and envelope.is_token_expired

    def _log_debug(self, message: str) -> None:
        if self._config.debug:
            get_output().trace(message)
        else:
            get_output().debug(message)


def _to_jsonable(params: Any) -> Any:
    if params is None:
        return {}
    if isinstance(params, Value):
        return params.to_python()
    if isinstance(params, BaseModel):
        return params.model_dump(mode="json")
    return params


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Time):
        return obj.to_json()
    if isinstance(obj, Value):
        return obj.to_python()
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


# ------------------------------------------------------------------ #
# Module-level convenience
# ------------------------------------------------------------------ #


def apply(path: str, method: str = "GET", params: Any = None, target: Any = Any) -> Any:
    """Run :meth:`RestContext.apply` on a fresh default context."""
    with RestContext() as ctx:
        return ctx.apply(path, method, params, target)


def do_request(path: str, method: str = "GET", params: Any = None) -> ResponseEnvelope:
    """Run :meth:`RestContext.do_request` on a fresh default context."""
    with RestContext() as ctx:
        return ctx.do_request(path, method, params)
