"""Authentication helpers for gRPC services deployed behind Kong.

The Kong consumer ID is read from incoming metadata, the consumer secret is
resolved from Redis or an SQL table, and that secret is handed to an
application-defined authenticator.
"""

from __future__ import annotations

import abc
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any

from .status import Code, StatusError


@dataclass
class _Config:
    redis_auth_prefix: str | None = None
    users_table: str | None = None
    secret_column: str | None = None
    cache_expiration: timedelta | None = None
    kong_auth_disabled: bool = False


_lock = threading.Lock()
_config = _Config()


def _to_timedelta(dur) -> timedelta:
    return dur if isinstance(dur, timedelta) else timedelta(seconds=dur)


def _set_once(name: str, value) -> None:
    with _lock:
        if getattr(_config, name) is None:
            setattr(_config, name, value)


def set_redis_auth_prefix(prefix) -> None:
    """Set the Redis key prefix; only the first call takes effect."""
    _set_once("redis_auth_prefix", prefix)


def set_users_table(table_name) -> None:
    """Set the users table; only the first call takes effect."""
    _set_once("users_table", table_name)


def set_table_secret_column(column) -> None:
    """Set the secret column; only the first call takes effect."""
    _set_once("secret_column", column)


def set_cache_expiration(dur) -> None:
    """Set the Redis cache lifetime (timedelta or seconds); only the first call takes effect."""
    _set_once("cache_expiration", _to_timedelta(dur))


def set_kong_auth_disabled(disabled) -> None:
    """Switch Kong authentication off, so the default authenticator is always used."""
    with _lock:
        _config.kong_auth_disabled = bool(disabled)


def reset_config() -> None:
    """Forget every configured value, allowing the setters to be used again."""
    global _config
    with _lock:
        _config = _Config()


class Context:
    """Request context carrying incoming metadata, values and cancellation."""

    def __init__(self, metadata=None, values=None, deadline=None):
        self.metadata = None
        if metadata is not None:
            self.metadata = {}
            for key, vals in metadata.items():
                if isinstance(vals, (str, bytes)):
                    vals = (vals,)
                self.metadata[key.lower()] = self.metadata.get(key.lower(), ()) + tuple(vals)
        self._values = dict(values or {})
        self.deadline = deadline
        self._done = threading.Event()

    def with_value(self, key, value) -> "Context":
        """Return a derived context holding one more value; cancellation is shared."""
        child = Context(values={**self._values, key: value}, deadline=self.deadline)
        child.metadata = self.metadata
        child._done = self._done
        return child

    def value(self, key):
        """Return the value stored under key, or None."""
        return self._values.get(key)

    def cancel(self) -> None:
        """Cancel this context and every context derived from it."""
        self._done.set()

    def cancelled(self) -> bool:
        """Whether the context was cancelled or its deadline has passed."""
        if self._done.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline


class AuthAPI(abc.ABC):
    """Contract for the application's authentication."""

    @abc.abstractmethod
    def authenticator(self, ctx):
        """Authenticate with the default mechanism, returning a context."""

    @abc.abstractmethod
    def authenticator_with_key(self, ctx, signing_key):
        """Authenticate using the consumer's signing key, returning a context."""


@dataclass
class AuthOptions:
    """Collaborators needed for Kong authentication.

    ``sql_db`` is a DB-API connection using the qmark parameter style;
    ``redis_db`` is a client with ``get(key)`` returning None on a miss and
    ``set(key, value, ex=...)``.
    """

    auth_api: Any = None
    sql_db: Any = None
    redis_db: Any = None
    logger: logging.Logger | None = field(default=None)


def _validate_auth_options(opt) -> None:
    if opt is None:
        raise StatusError(Code.INVALID_ARGUMENT, "missing message field: auth options")
    for attr, label in (
        ("auth_api", "auth api"),
        ("sql_db", "sql db"),
        ("redis_db", "redis"),
        ("logger", "logger"),
    ):
        if getattr(opt, attr) is None:
            raise StatusError(Code.INVALID_ARGUMENT, f"missing message field: {label}")


def _validate_package_config(cfg: _Config) -> None:
    for attr, label in (
        ("redis_auth_prefix", "redis auth prefix"),
        ("users_table", "users table"),
        ("secret_column", "secret column"),
    ):
        if not getattr(cfg, attr):
            raise StatusError(Code.INVALID_ARGUMENT, f"missing kongauth config: {label}")
    if cfg.cache_expiration is None:
        raise StatusError(Code.INVALID_ARGUMENT, "missing kongauth config: cache expiration")
    if cfg.cache_expiration < timedelta(0):
        raise StatusError(
            Code.INVALID_ARGUMENT,
            "invalid kongauth config: cache expiration must be non-negative",
        )


def _load_secret(conn, table: str, column: str, user_id: str):
    cursor = conn.cursor()
    try:
        cursor.execute(f"SELECT {column} FROM {table} WHERE id=?", (user_id,))
        row = cursor.fetchone()
    finally:
        cursor.close()
    if row is None:
        raise LookupError("no rows in result set")
    if row[0] is None:
        raise ValueError("converting NULL to string is unsupported")
    return row[0]


def _as_bytes(secret) -> bytes:
    if isinstance(secret, (bytes, bytearray, memoryview)):
        return bytes(secret)
    return str(secret).encode("utf-8")


def custom_id_header() -> str:
    """Name of the header Kong uses to forward the consumer's custom ID."""
    return "X-Consumer-Custom-ID"


def redis_user_key(client_key, prefix) -> str:
    """Redis key under which a consumer's secret is cached."""
    return f"{prefix}:{client_key}"


def authenticator(ctx, opt):
    """Authenticate a request forwarded by Kong, returning the authenticated context."""
    _validate_auth_options(opt)
    with _lock:
        cfg = replace(_config)
    _validate_package_config(cfg)

    if cfg.kong_auth_disabled or ctx.metadata is None:
        return opt.auth_api.authenticator(ctx)

    custom_ids = ctx.metadata.get(custom_id_header().lower(), ())
    if not custom_ids:
        # The request bypassed Kong.
        return opt.auth_api.authenticator(ctx)

    user_id = custom_ids[0]
    key = redis_user_key(user_id, cfg.redis_auth_prefix)

    try:
        secret = opt.redis_db.get(key)
    except Exception as err:
        opt.logger.error("KongAuth Redis error: %s", err)
        raise StatusError(Code.INTERNAL, "request could not be completed") from err

    if secret is None:
        try:
            secret = _load_secret(opt.sql_db, cfg.users_table, cfg.secret_column, user_id)
        except Exception as err:
            opt.logger.error("KongAuth Failed to get user from DB: %s", err)
            raise StatusError(Code.UNAUTHENTICATED, "authentication required") from err
        try:
            opt.redis_db.set(key, secret, ex=cfg.cache_expiration or None)
        except Exception as err:
            opt.logger.error("KongAuth Failed to cache user in Redis: %s", err)

    return opt.auth_api.authenticator_with_key(ctx, _as_bytes(secret))


def _authenticate_in(ctx: Context, opt):
    try:
        return authenticator(ctx, opt)
    except Exception as err:
        ctx.cancel()
        if isinstance(err, StatusError):
            raise StatusError(err.code, f"authorization failed: {err.message}") from err
        raise StatusError(Code.UNKNOWN, f"authorization failed: {err}") from err


def api_context(md, opt):
    """Build an incoming context from metadata and authenticate it."""
    _validate_auth_options(opt)
    return _authenticate_in(Context(metadata=md), opt)


def api_context_with_timeout(md, dur, opt):
    """Like api_context, with a deadline dur (timedelta or seconds) from now."""
    _validate_auth_options(opt)
    deadline = time.monotonic() + _to_timedelta(dur).total_seconds()
    return _authenticate_in(Context(metadata=md, deadline=deadline), opt)