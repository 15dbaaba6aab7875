# kongauth

Authentication helpers for services that sit behind the Kong API gateway.

Kong forwards the authenticated consumer's identifier in the
`X-Consumer-Custom-ID` request header. `kongauth` reads that header from the
incoming request metadata and looks up the consumer's signing secret in Redis.
If Redis has no entry, it reads the secret from an SQL users table and writes it
back to Redis. The secret is then passed, as bytes, to your own authenticator.

Your default authenticator is used instead in three cases:

- the header is absent, meaning the request did not come through Kong;
- the context carries no metadata at all;
- Kong authentication has been switched off.

The package has two modules:

- `kongauth.auth` holds the configuration, `Context`, `AuthAPI`, `AuthOptions`
  and the authentication functions.
- `kongauth.status` holds `Code`, `StatusError` and `status_code`.

## Installation

```
pip install kongauth
```

The package has no runtime dependencies. You supply the Redis client, the SQL
connection and the logger yourself.

## Configuration

These settings are module-wide. For the first four, only the first call takes
effect and later calls are ignored.

```python
from kongauth.auth import (
    set_cache_expiration,
    set_redis_auth_prefix,
    set_table_secret_column,
    set_users_table,
)

set_redis_auth_prefix("kongauth")   # Redis keys look like "kongauth:<consumer id>"
set_users_table("users")            # table holding the consumers
set_table_secret_column("secret")   # column holding each consumer's signing secret
set_cache_expiration(60)            # seconds, or a datetime.timedelta
```

Each request is checked against this configuration before it is authenticated.
Authentication raises `StatusError` with `Code.INVALID_ARGUMENT` when:

- the prefix, table or column is missing or empty;
- no cache expiration was set;
- the cache expiration is negative.

An expiration of zero stores secrets in Redis without an expiry.

`set_kong_auth_disabled(True)` sends every request to the default
authenticator. Unlike the other setters, it can be changed at any time.

`reset_config()` clears every setting, so the setters can be used again. This is
useful between tests.

`redis_user_key(client_key, prefix)` returns the Redis key used for a consumer,
for example `"kongauth:user-1"`. `custom_id_header()` returns the header name.

## Context

A `Context` carries three things: incoming metadata, a set of values, and a
cancellation state.

```python
from kongauth.auth import Context

ctx = Context(metadata={"X-Consumer-Custom-ID": "user-1"})
```

Metadata keys are stored in lower case. Each value is kept as a tuple, so a
single string becomes a one-item tuple. A `Context` created without metadata
has `metadata` set to `None`.

The other methods are:

- `ctx.with_value(key, value)` returns a derived context holding one more value.
  It shares the metadata, deadline and cancellation of the original.
- `ctx.value(key)` reads a value, returning `None` when the key is absent.
- `ctx.cancel()` cancels the context and every context derived from it.
- `ctx.cancelled()` returns true once the context is cancelled or its deadline,
  measured with `time.monotonic()`, has passed.

## Supplying an authenticator

Subclass `AuthAPI` and implement both methods. Each method receives a `Context`
and returns the context the rest of the request should see.

```python
from kongauth.auth import AuthAPI


class MyAuth(AuthAPI):
    def authenticator(self, ctx):
        # Requests that did not pass through Kong.
        return ctx.with_value("auth", "default")

    def authenticator_with_key(self, ctx, signing_key):
        # Requests from a Kong consumer; signing_key is that consumer's secret as bytes.
        return ctx.with_value("auth", "kong")
```

## Options and authentication

`AuthOptions` has four fields, and all of them must be set:

- `auth_api` is your `AuthAPI` implementation.
- `sql_db` is a DB-API connection that uses the `?` parameter style, such as
  `sqlite3`. The secret is read with
  `SELECT <column> FROM <table> WHERE id=?`.
- `redis_db` is a client with `get(key)`, which returns `None` on a miss, and
  `set(key, value, ex=...)`.
- `logger` is a `logging.Logger`.

```python
import logging
import sqlite3

from kongauth.auth import AuthOptions, authenticator

options = AuthOptions(
    auth_api=MyAuth(),
    sql_db=sqlite3.connect("users.db"),
    redis_db=redis_client,
    logger=logging.getLogger("kongauth"),
)

ctx = authenticator(ctx, options)
```

For calls made from your own code, two helpers build a fresh `Context` from a
metadata mapping and authenticate it:

- `api_context(md, options)` builds and authenticates the context.
- `api_context_with_timeout(md, dur, options)` does the same and also sets a
  deadline `dur` from now. `dur` is given in seconds or as a `timedelta`.

Both return the authenticated context. If authentication fails, the context is
cancelled and a `StatusError` is raised. Its message is prefixed with
`authorization failed:` and the original code is kept. Errors that carry no
status are reported with `Code.UNKNOWN`.

## Errors

Failures are raised as `kongauth.status.StatusError`. Each one has a `code`,
which is a `Code`, and a `message`.

| Situation                                               | Code               |
|---------------------------------------------------------|--------------------|
| Missing options or missing/invalid configuration        | `INVALID_ARGUMENT` |
| Consumer not in the users table, or its secret is NULL  | `UNAUTHENTICATED`  |
| Redis lookup raised an exception                        | `INTERNAL`         |

`status_code(err)` returns the code of an error:

- `Code.OK` for `None`;
- the error's own code for a `StatusError`;
- `Code.UNKNOWN` for any other exception.

A Redis write can fail after the secret was read from SQL. That failure is
logged, and the request is still authenticated with the secret.

## What this package does not do

`kongauth` does not verify tokens. That is left to your `AuthAPI`
implementation.

It also provides no server, interceptor or middleware, and includes no Redis
client or database driver. You wire `authenticator` into your own request
handling and supply the clients yourself.

## Running the tests

```
pip install -e ".[test]"
pytest
```