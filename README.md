# relaykv

Building blocks for the access control of an event relay, plus a few
benchmark helpers. It uses only the standard library.

- `relaykv.permission`: IP and pubkey whitelists and blacklists, checked
  by `verify_permission`.
- `relaykv.auth`: the settings of client authentication (`AuthSetting`) and
  the per-session state (`AuthState`). The state holds either a pending
  challenge or an authenticated pubkey.
- `relaykv.ratelimit`: per-IP event quotas that can be restricted to kind
  ranges, enforced by GCRA keyed limiters.
- `relaykv.bench`: random data generators and throughput formatting.

## Install

```
pip install relaykv
```

## Permissions

```python
from relaykv.permission import Permission, PermissionDenied, verify_permission

permission = Permission.from_dict({"ip_whitelist": ["127.0.0.1"]})
try:
    verify_permission(permission, None, None, None, "127.0.0.2")
except PermissionDenied as err:
    print(err.reason)  # ip not in whitelist
```

`verify_permission(permission, pubkey, event_pubkey, event_tags, ip)` returns
`None` when the request is allowed. If it is refused, it raises
`PermissionDenied`. The rules are checked in this order:

1. the IP lists;
2. the event author lists (only when `event_pubkey` is given);
3. the authenticated-pubkey lists.

A pubkey list demands authentication. If `pubkey` is `None`, the check fails
with `"NIP-42 auth required"`. When `allow_mentioning_whitelisted_pubkeys` is
set, an event passes the author whitelist if it mentions a whitelisted key
in a `["p", <key>]` tag.

## Authentication settings and state

```python
from relaykv.auth import AuthSetting, AuthState

setting = AuthSetting.from_dict({
    "enabled": True,
    "req": {"pubkey_whitelist": ["<hex pubkey>"]},
})

state = AuthState.challenge()           # fresh random challenge
print(state.challenge_text, state.pubkey)  # "<uuid>", None
state = AuthState.authenticated("<hex pubkey>")
print(state.authed, state.pubkey)       # True, "<hex pubkey>"
```

`setting.req` guards reading commands and `setting.event` guards writes.
Both are `Permission` objects or `None`.

## Rate limits

```python
from relaykv.ratelimit import Ratelimiter

limiter = Ratelimiter()
limiter.configure({
    "enabled": True,
    "event": [{"period": 1, "limit": 2, "kinds": [1, 2, [100, 200]]}],
})
print(limiter.check_event("event-id", 1, "127.0.0.1"))  # None: allowed
```

`check_event` returns `None` when the event may pass. When it is refused, it
returns `["OK", event_id, False, "rate-limited: <description>"]`, and
`limiter.exceeded` counts the refusals per quota name.

Each quota needs a `period` in seconds and a `limit`. It may also have:

- `name` and `description`;
- `kinds`: single kinds, or `[start, end)` pairs, parsed by `parse_ranges`;
- `ip_whitelist`: IPs the quota never applies to.

`clear_interval` (default 60 seconds) sets how often stale per-IP state is
dropped. `KeyedRateLimiter` and `Ratelimiter` accept a `clock` callable that
returns nanoseconds, so tests can control time.

## Benchmark helpers

```python
from relaykv.bench import fmt_per_sec, gen_pairs

pairs = gen_pairs(8, 8, 1000)   # random key bytes, alphanumeric values
print(fmt_per_sec(1100, 1.0))   # 1.1K/s
```

## What this package does not do

There is no storage layer: no key-value store, index or query engine. There
is no network server either. Nothing here accepts websocket connections,
parses client messages or verifies event signatures. The caller supplies
IPs, pubkeys, event kinds and tags, and sends the replies these modules
return.

## Tests

```
pip install -e .[test]
pytest
```