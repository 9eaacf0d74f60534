"""Tests for klbrest.exceptions -- the error taxonomy."""

from __future__ import annotations

import pytest

from klbrest.exceptions import (
    ApiError,
    AuthError,
    HttpError,
    InvalidKeyError,
    LoginRequiredError,
    NetworkError,
    ParseError,
    RedirectError,
    RestError,
    TimeoutError_,
    describe,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            NetworkError("down"),
            HttpError(500, "boom"),
            TimeoutError_("slow"),
            ApiError("bad"),
            RedirectError("https://x/y"),
            LoginRequiredError("https://x/login"),
            AuthError("no"),
            InvalidKeyError("short"),
            ParseError("shape"),
        ],
    )
    def test_all_are_rest_errors(self, exc: RestError) -> None:
        assert isinstance(exc, RestError)
        assert isinstance(exc, Exception)
        assert exc.message

    def test_login_required_is_a_redirect(self) -> None:
        assert issubclass(LoginRequiredError, RedirectError)

    def test_timeout_does_not_shadow_builtin(self) -> None:
        assert not issubclass(TimeoutError_, TimeoutError)


class TestHttpError:
    def test_message_includes_status_and_body(self) -> None:
        exc = HttpError(502, "bad gateway")
        assert exc.status == 502
        assert exc.body == "bad gateway"
        assert str(exc) == "HTTP error 502: bad gateway"

    def test_body_is_truncated_in_message(self) -> None:
        exc = HttpError(500, "x" * 500)
        assert len(str(exc)) < 250
        assert len(exc.body) == 500

    def test_empty_body(self) -> None:
        assert str(HttpError(503, "")) == "HTTP error 503"


class TestApiError:
    def test_fields_keep_order(self) -> None:
        exc = ApiError("invalid", fields={"zeta": "bad", "alpha": "missing"})
        assert list(exc.fields) == ["zeta", "alpha"]

    def test_message(self) -> None:
        exc = ApiError("not found", code=404)
        assert exc.message == "not found"
        assert str(exc) == "REST API error: not found"

    def test_status_helpers(self) -> None:
        assert ApiError("x", code=404).is_not_found()
        assert ApiError("x", code=403).is_permission_denied()
        assert not ApiError("x").is_not_found()
        assert ApiError("x", code=403).status_code == 403

    def test_fields_default_empty(self) -> None:
        assert ApiError("x").fields == {}


class TestRedirectError:
    def test_location(self) -> None:
        exc = RedirectError("https://x/y", code=302)
        assert exc.location == "https://x/y"
        assert exc.code == 302
        assert str(exc) == "redirect to https://x/y"

    def test_login_required_message(self) -> None:
        exc = LoginRequiredError("https://x/login")
        assert exc.location == "https://x/login"
        assert str(exc) == "login required (redirect to https://x/login)"


class TestParseError:
    def test_path_in_message(self) -> None:
        exc = ParseError("expected string", ("data", "items", 3))
        assert exc.reason == "expected string"
        assert exc.path == ("data", "items", 3)
        assert str(exc) == "parse error at 'data/items/3': expected string"

    def test_without_path(self) -> None:
        exc = ParseError("not JSON")
        assert exc.path == ()
        assert str(exc) == "parse error: not JSON"


class TestDescribe:
    def test_single(self) -> None:
        assert describe(AuthError("nope")) == "nope"

    def test_chain(self) -> None:
        try:
            try:
                raise ConnectionError("refused")
            except ConnectionError as inner:
                raise NetworkError("GET x failed") from inner
        except NetworkError as outer:
            assert describe(outer) == "GET x failed <- refused"

    def test_empty_message_uses_type_name(self) -> None:
        exc = AuthError("renewal failed")
        exc.__cause__ = ValueError()
        assert describe(exc) == "renewal failed <- ValueError"
