"""Configuration helpers.

The request engine only ever receives a ready :class:`~klbrest.models.RestConfig`;
nothing in the core reads the environment. These helpers are for callers
that want to build that config from a URL, or load API-key material from a
source descriptor the way deployment tooling usually provides it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from klbrest.exceptions import InvalidKeyError
from klbrest.models import RestConfig


def config_from_url(url: str, **overrides: Any) -> RestConfig:
    """Build a :class:`~klbrest.models.RestConfig` from an absolute URL.

    The URL's path, when present, becomes ``base_path``. Keyword
    arguments override any field.

    Example::

        config_from_url("http://localhost:8080/_special/rest", debug=True)

    Raises:
        ValueError: If *url* has no scheme or host, or fails validation.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"not an absolute URL: {url!r}")
    fields: dict[str, Any] = {"scheme": parts.scheme, "host": parts.netloc}
    if parts.path.strip("/"):
        fields["base_path"] = parts.path
    fields.update(overrides)
    return RestConfig(**fields)


def resolve_key_secret(source: str) -> str:
    """Resolve API-key secret material from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - anything else -- taken literally as the encoded secret

    Args:
        source: The source descriptor string.

    Returns:
        The encoded secret.

    Raises:
        InvalidKeyError: If the source can't be resolved or is empty.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise InvalidKeyError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        secret = value.strip()
    elif source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise InvalidKeyError(f"Key file not found: {path} (source: {source})")
        try:
            secret = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise InvalidKeyError(f"Cannot read key file {path}: {exc}") from exc
    else:
        secret = source.strip()

    if not secret:
        raise InvalidKeyError("API key secret is empty")
    return secret
