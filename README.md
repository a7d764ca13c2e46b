# hatchsql

Building blocks for a SQL query server. The package has structured errors, an
in-memory result cache, a thread-safe statistics counter, server configuration
with validation and defaults, and request interceptors for logging, metrics
and error recovery.

## Installation

```
pip install hatchsql
```

Install the test extra to run the test suite:

```
pip install "hatchsql[test]"
pytest
```

## Errors: `hatchsql.errors`

`FlightError` is an exception that carries a code, a message, optional
details and an optional cause. `ErrorCode` lists the codes (`NOT_FOUND`,
`INVALID_REQUEST`, `INTERNAL`, and more).

```python
from hatchsql import errors

err = errors.new(errors.ErrorCode.NOT_FOUND, "table not found")
err.with_detail("table", "orders")
str(err)                       # 'NOT_FOUND: table not found'

errors.is_not_found(err)       # True
errors.get_code(ValueError())  # 'INTERNAL_ERROR'
errors.get_message(ValueError("boom"))  # 'boom'
```

`wrap(err, code, message)` and `wrapf(err, code, fmt, *args)` make a new
error whose cause is `err`. They return `None` when `err` is `None`.
`FlightError.matches(other)` is true when `other` is a `FlightError` with
the same code. `is_not_found`, `is_invalid_request`, `is_internal`,
`get_code` and `get_message` look for a `FlightError` by following the chain
of `__cause__`.

The module also defines ready-made errors such as `ERR_TABLE_NOT_FOUND`,
`ERR_INVALID_QUERY` and `ERR_QUERY_TIMEOUT`.

## Result cache: `hatchsql.cache`

A record is a mapping from a column name to that column's values.
`record_size(record)` estimates how much memory a record holds.

`MemoryCache(max_size)` keeps records up to `max_size` estimated bytes. When a
new record does not fit, the cache evicts entries, least recently used first.
A record larger than the whole cache is not stored at all. The cache is safe to
use from several threads and works as a context manager.

```python
from hatchsql.cache import MemoryCache, DefaultCacheKeyGenerator, render_value

record = {"id": [1, 2, 3], "name": ["a", "b", "c"]}

with MemoryCache(max_size=1024 * 1024) as cache:
    key = DefaultCacheKeyGenerator().generate_key("SELECT * FROM t", None)
    cache.put(key, record)
    cache.get(key)        # the record, or None on a miss
    len(cache)            # number of entries
    cache.current_size    # total estimated size in bytes

render_value({"b": 2, "a": [1, "x,y"]})  # '{a:[1,x\\,y],b:2}'
```

`DefaultCacheKeyGenerator.generate_key` returns the query text itself. The
parameters do not go into the key.

`render_value` turns a value into a canonical string:

- `None` becomes `null`.
- Numbers and booleans are written out.
- Datetimes are written in UTC, RFC 3339 format.
- Bytes become `0x…` hex.
- Lists are written in their own order. Mappings are written with their keys sorted.
- Strings are passed through `escape`.

`escape` puts a backslash before each of these characters: `\ | = , { } [ ]`.

## Cache statistics: `hatchsql.cache_stats`

`StatsCollector` counts hits, misses and evictions, keeps the current size,
and is safe to use from several threads.

- `get_stats()` returns a frozen `Stats` snapshot with `hits`, `misses`, `evictions`, `size` and `last_updated`.
- `hit_rate()` returns hits divided by lookups, or `0.0` when there were no lookups.

## Server configuration: `hatchsql.config`

`default_config()` returns a fully populated `Config`, including:

- address `0.0.0.0:8815`
- an in-memory database
- connection pool, transaction, metrics, health and cache settings

`Config.validate()` fills in defaults for unset values. It raises
`ConfigError` when:

- the address is missing
- TLS is enabled without certificate and key files
- the authentication type is `basic`, `bearer`, `jwt` or `oauth2` and its settings are incomplete
- the authentication type is unknown

`load_from_file(path)` reads a YAML file, or a JSON file when the suffix is
`.json`, and lays it over the defaults. Durations may be written as strings
such as `30s`, `1h30m` or `250ms`, or as numbers of seconds. The result is
not validated; call `validate()` yourself.

```python
from hatchsql.config import load_from_file

cfg = load_from_file("server.yaml")
cfg.validate()
```

## Middleware: `hatchsql.middleware`

`LoggingMiddleware(logger)`, `MetricsMiddleware(collector)` and
`RecoveryMiddleware(logger)` each offer `unary_interceptor()` and
`stream_interceptor()`.

The two kinds of interceptor have these signatures:

- A unary interceptor is called as `intercept(request, info, handler)`, where `handler(request)` produces the response.
- A stream interceptor is called as `intercept(server, stream, info, handler)`, where `handler(server, stream)` runs the call. The stream has `send_msg` and `recv_msg`.

In both, `info` is a `CallInfo` holding `full_method` and `user`.

What each middleware does:

- **Logging.** Writes one record per call through the standard `logging` module, with `extra={"fields": {...}}`. The fields hold the method, user, duration in milliseconds and status code. Stream calls also get message counts. A failed call is logged at ERROR level, unless its status is `CANCELLED`.
- **Metrics.** Works with any collector that has `increment_counter`, `record_histogram`, `record_gauge` and `start_timer`; the timer's `stop()` returns a duration. It counts requests and responses by status code, and times calls and individual stream messages.
- **Recovery.** Lets `RpcError` and `FlightError` through. Any other exception is logged with its traceback and written to stderr. It is then replaced by `RpcError(StatusCode.INTERNAL, "internal server error")`.

`RpcError(code, message)` carries a `StatusCode`. `status_code(err)` returns:

- `OK` for `None`
- the error's own code for an `RpcError`
- `UNKNOWN` for any other exception

## What this package does not do

This package does not run a server. It also has none of the following:

- a command-line program
- SQL execution or database storage
- a network transport
- a metrics collector or exporter of its own

The cache holds plain Python mappings and knows nothing of any query engine.
Entries are not expired by age.