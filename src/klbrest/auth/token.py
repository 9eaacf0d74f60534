"""OAuth2 bearer token with single-flight renewal.

A :class:`Token` is the one piece of shared mutable state in klbrest: every
thread using a :class:`~klbrest.client.context.RestContext` reads it, and
any of them may find it expired. Renewal therefore follows two rules:

1. **Single flight.** Renewals serialise on one lock, and every completed
   attempt bumps :attr:`Token.epoch`. A caller passes the epoch it observed
   when it decided to renew; if another caller finished an attempt in the
   meantime, the waiter reuses that outcome instead of sending its own
   request. Refresh tokens may be single-use, so a duplicate refresh would
   invalidate the session.
2. **No partial overwrite.** New credentials are swapped in under the state
   lock in one step, and only after the exchange succeeded.

State machine::

    VALID --(now + grace >= expires_at)--> NEEDS_RENEWAL
    NEEDS_RENEWAL --renew()--> REFRESHING --ok--> VALID
                                          --rejected--> FAILED (terminal)
                                          --network, 5xx--> NEEDS_RENEWAL
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from klbrest.exceptions import ApiError, AuthError, HttpError, ParseError, RestError
from klbrest.models import TokenGrant
from klbrest.timestamp import Time

#: Endpoint that exchanges a refresh token for a new access token.
TOKEN_ENDPOINT = "OAuth2:token"

TokenExchange = Callable[[dict[str, str]], TokenGrant]


class TokenState(str, enum.Enum):
    VALID = "valid"
    NEEDS_RENEWAL = "needs_renewal"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass(frozen=True)
class TokenSnapshot:
    """Consistent view of the credentials used for one request."""

    access_token: str
    token_type: str
    expires_at: Time
    epoch: int

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"

    def is_expiring(self, now: Time, grace: float = 0.0) -> bool:
        return now.add_seconds(grace) >= self.expires_at


class Token:
    """OAuth2 credentials with expiry and rotating-refresh renewal.

    Args:
        access_token: Bearer token sent with every request.
        refresh_token: Token exchanged for a new access token on renewal.
        client_id: OAuth2 client the tokens were issued to.
        expires_at: Instant at which ``access_token`` stops being accepted.
        token_type: Authorization scheme, normally ``"Bearer"``.
    """

    def __init__(
        self,
        access_token: str,
        refresh_token: str,
        client_id: str,
        expires_at: Time,
        token_type: str = "Bearer",
    ) -> None:
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._expires_at = expires_at
        self._token_type = token_type or "Bearer"

        self._state_lock = threading.Lock()
        self._renew_lock = threading.Lock()
        self._epoch = 0
        self._refreshing = False
        self._failed = False
        self._last_error: Optional[AuthError] = None

    @classmethod
    def create(
        cls,
        access_token: str,
        refresh_token: str,
        client_id: str,
        expires_in: float,
        now: Optional[Time] = None,
    ) -> Token:
        """Build a token that expires *expires_in* seconds after *now*."""
        issued = now if now is not None else Time.now()
        return cls(access_token, refresh_token, client_id, issued.add_seconds(expires_in))

    # ------------------------------------------------------------------ #
    # Read access
    # ------------------------------------------------------------------ #

    @property
    def access_token(self) -> str:
        with self._state_lock:
            return self._access_token

    @property
    def refresh_token(self) -> str:
        with self._state_lock:
            return self._refresh_token

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def token_type(self) -> str:
        with self._state_lock:
            return self._token_type

    @property
    def expires_at(self) -> Time:
        with self._state_lock:
            return self._expires_at

    @property
    def epoch(self) -> int:
        """Number of completed renewal attempts."""
        with self._state_lock:
            return self._epoch

    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def has_client_id(self) -> bool:
        return bool(self._client_id)

    def snapshot(self) -> TokenSnapshot:
        with self._state_lock:
            return TokenSnapshot(
                self._access_token, self._token_type, self._expires_at, self._epoch
            )

    def is_expiring(self, now: Time, grace: float = 0.0) -> bool:
        """Return True iff ``now + grace >= expires_at``."""
        return now.add_seconds(grace) >= self.expires_at

    def state(self, now: Optional[Time] = None, grace: float = 0.0) -> TokenState:
        with self._state_lock:
            if self._failed:
                return TokenState.FAILED
            if self._refreshing:
                return TokenState.REFRESHING
            expires_at = self._expires_at
        current = now if now is not None else Time.now()
        if current.add_seconds(grace) >= expires_at:
            return TokenState.NEEDS_RENEWAL
        return TokenState.VALID

    # ------------------------------------------------------------------ #
    # Renewal
    # ------------------------------------------------------------------ #

    def renewal_params(self) -> dict[str, str]:
        """Form fields posted to :data:`TOKEN_ENDPOINT`."""
        with self._state_lock:
            refresh_token = self._refresh_token
        return {
            "grant_type": "refresh_token",
            "client_id": self._client_id,
            "refresh_token": refresh_token,
            "noraw": "true",
        }

    def renew(
        self,
        exchange: TokenExchange,
        observed_epoch: Optional[int] = None,
        now: Optional[Time] = None,
    ) -> None:
        """Renew the access token, collapsing concurrent attempts into one.

        Args:
            exchange: Posts :meth:`renewal_params` to the token endpoint and
                returns the decoded :class:`~klbrest.models.TokenGrant`.
            observed_epoch: The :attr:`epoch` the caller saw when it decided
                renewal was needed. When it is stale, another caller already
                completed an attempt and its outcome is reused.
            now: Issue time for computing the new expiry (defaults to now).

        Raises:
            AuthError: If the token cannot be renewed. Prior credentials are
                left untouched.
        """
        with self._renew_lock:
            with self._state_lock:
                if observed_epoch is not None and observed_epoch != self._epoch:
                    if self._last_error is not None:
                        raise AuthError(self._last_error.message) from self._last_error.__cause__
                    return
                if self._failed:
                    raise AuthError("token renewal previously rejected; a new login is required")
                if not self._client_id:
                    raise AuthError("no client_id provided for token renewal")
                if not self._refresh_token:
                    raise AuthError("no refresh token available and access token has expired")
                self._refreshing = True

            try:
                grant = exchange(self.renewal_params())
            except RestError as exc:
                if _is_rejection(exc):
                    error = AuthError(f"token renewal rejected: {exc}")
                    self._record_failure(error, failed=True)
                else:
                    error = AuthError(f"token renewal failed: {exc}")
                    self._record_failure(error, failed=False)
                raise error from exc
            except BaseException:
                with self._state_lock:
                    self._refreshing = False
                raise

            issued = now if now is not None else Time.now()
            with self._state_lock:
                self._access_token = grant.access_token
                if grant.refresh_token:
                    self._refresh_token = grant.refresh_token
                self._token_type = grant.token_type or self._token_type
                self._expires_at = issued.add_seconds(grant.expires_in)
                self._refreshing = False
                self._last_error = None
                self._epoch += 1

    def _record_failure(self, error: AuthError, failed: bool) -> None:
        with self._state_lock:
            self._refreshing = False
            self._failed = self._failed or failed
            self._last_error = error
            self._epoch += 1

    def __repr__(self) -> str:
        return (
            f"Token(client_id={self._client_id!r}, expires_at={self.expires_at!r}, "
            f"access_token=<redacted>)"
        )


def _is_rejection(exc: RestError) -> bool:
    """True when the token endpoint refused the refresh token itself.

    4xx answers, error envelopes and unusable grants are rejections. 5xx
    answers, network failures and timeouts are not, so the refresh token
    stays usable for a later attempt.
    """
    if isinstance(exc, HttpError):
        return 400 <= exc.status < 500
    if isinstance(exc, ApiError):
        status = exc.envelope.status_code if exc.envelope is not None else None
        return status is None or status < 500
    return isinstance(exc, ParseError)
