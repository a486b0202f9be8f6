"""
DocStore Redis Backend — Atomic item operations via server-side Lua scripts.

Key layout (prefix defaults to "docstore:"):
    {prefix}{table}:{storage_key}   — item, JSON string (bytes base64-tagged)
    {prefix}{table}:__keys__        — sorted set of storage keys (score 0),
                                      used for ordered, resumable scans

Every mutation is a Lua script, so the condition check, the read of the old
value and the write happen in one atomic step on the server. That is what
makes update_item usable as the pointer-advance primitive.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

import redis
from redis.exceptions import RedisError

from docstore.backends.base import (
    Copy,
    Increment,
    KeyValueBackend,
    ScanPage,
    decode_item,
    encode_item,
    encode_key,
)
from docstore.engine.errors import BackendUnavailableError, ConditionFailedError

logger = logging.getLogger("docstore.backends.redis")

_INDEX_SUFFIX = "__keys__"
_CONDITION_FAILED = "CONDITION_FAILED"

# KEYS[1]=item key, KEYS[2]=index key; ARGV[1]=item json, ARGV[2]=if_not_exists, ARGV[3]=storage key
PUT_SCRIPT = """
if ARGV[2] == '1' and redis.call('EXISTS', KEYS[1]) == 1 then
  return 0
end
redis.call('SET', KEYS[1], ARGV[1])
redis.call('ZADD', KEYS[2], 0, ARGV[3])
return 1
"""

# KEYS[1]=item key, KEYS[2]=index key; ARGV[1]=update spec json, ARGV[2]=storage key
UPDATE_SCRIPT = """
local spec = cjson.decode(ARGV[1])
local raw = redis.call('GET', KEYS[1])
local old = {}
if raw then old = cjson.decode(raw) end

for _, c in ipairs(spec['condition']) do
  local actual = old[c['attr']]
  if actual == cjson.null then actual = nil end
  if c['absent'] then
    if actual ~= nil then return {'CONDITION_FAILED', c['attr']} end
  elseif actual ~= c['value'] then
    return {'CONDITION_FAILED', c['attr']}
  end
end

local new = {}
for k, v in pairs(old) do new[k] = v end
for k, v in pairs(spec['key']) do new[k] = v end
for k, v in pairs(spec['set']) do new[k] = v end
for _, k in ipairs(spec['unset']) do new[k] = nil end
for dst, src in pairs(spec['copy']) do
  local v = old[src]
  if v == cjson.null then v = nil end
  new[dst] = v
end
for k, n in pairs(spec['incr']) do
  local cur = old[k]
  if cur == nil or cur == cjson.null then cur = 0 end
  new[k] = cur + n
end

redis.call('SET', KEYS[1], cjson.encode(new))
redis.call('ZADD', KEYS[2], 0, ARGV[2])
if raw then return {'OK', raw} end
return {'OK', ''}
"""


class RedisBackend(KeyValueBackend):
    """
    Redis backend with a circuit breaker.

    Unlike a cache, a store cannot fall back to "miss" on failure: every
    Redis error is raised as BackendUnavailableError. While the circuit is
    open calls fail fast without touching the network.
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "docstore:",
        socket_timeout: int = 5,
        client: Optional[Any] = None,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._socket_timeout = socket_timeout
        self._client = client
        self._put_script = None
        self._update_script = None

        # Circuit breaker state
        self._failure_count = 0
        self._failure_threshold = 5
        self._failure_window = 30  # seconds
        self._first_failure_time = 0.0
        self._circuit_open = False

        if client is not None:
            self._register_scripts()

    def connect(self) -> None:
        """Create the Redis client and register the Lua scripts."""
        try:
            self._client = redis.Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
            self._client.ping()
        except RedisError as e:
            self._client = None
            raise BackendUnavailableError(
                f"Redis connection failed: {e}", backend=self.name, operation="connect"
            ) from e
        self._register_scripts()
        self._circuit_open = False
        self._failure_count = 0
        logger.info(f"Redis connected: {self._redis_url} ({self._prefix})")

    def _register_scripts(self) -> None:
        self._put_script = self._client.register_script(PUT_SCRIPT)
        self._update_script = self._client.register_script(UPDATE_SCRIPT)

    # ── Circuit breaker ──

    def _check_circuit(self, operation: str, table: str) -> None:
        if self._circuit_open:
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
            else:
                raise BackendUnavailableError(
                    "Redis circuit breaker open",
                    backend=self.name,
                    operation=operation,
                    table=table,
                )
        if self._client is None:
            self.connect()

    def _record_failure(self) -> None:
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now
        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error(
                    f"Redis circuit breaker OPEN: {self._failure_count} failures in {elapsed:.1f}s"
                )
            else:
                self._failure_count = 1
                self._first_failure_time = now

    def _unavailable(self, e: Exception, operation: str, table: str) -> BackendUnavailableError:
        self._record_failure()
        logger.warning(f"Redis {operation} on '{table}' failed: {e}")
        return BackendUnavailableError(
            f"Redis {operation} failed: {e}",
            backend=self.name,
            operation=operation,
            table=table,
        )

    # ── Keys ──

    def _item_key(self, table: str, storage_key: str) -> str:
        return f"{self._prefix}{table}:{storage_key}"

    def _index_key(self, table: str) -> str:
        return f"{self._prefix}{table}:{_INDEX_SUFFIX}"

    # ── Primitives ──

    def get_item(self, table: str, key: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        self._check_circuit("get_item", table)
        try:
            raw = self._client.get(self._item_key(table, encode_key(key)))
        except RedisError as e:
            raise self._unavailable(e, "get_item", table) from e
        if raw is None:
            return None
        return decode_item(json.loads(raw))

    def put_item(
        self,
        table: str,
        key: Mapping[str, Any],
        attributes: Mapping[str, Any],
        if_not_exists: bool = False,
    ) -> None:
        self._check_circuit("put_item", table)
        storage_key = encode_key(key)
        payload = json.dumps(encode_item({**attributes, **key}), separators=(",", ":"))
        try:
            written = self._put_script(
                keys=[self._item_key(table, storage_key), self._index_key(table)],
                args=[payload, "1" if if_not_exists else "0", storage_key],
            )
        except RedisError as e:
            raise self._unavailable(e, "put_item", table) from e
        if not written:
            raise ConditionFailedError(
                f"Item {table}/{storage_key} already exists",
                table=table,
                key=dict(key),
            )

    def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        changes: Mapping[str, Any],
        condition: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        self._check_circuit("update_item", table)
        storage_key = encode_key(key)
        spec = json.dumps(_build_update_spec(key, changes, condition), separators=(",", ":"))
        try:
            result = self._update_script(
                keys=[self._item_key(table, storage_key), self._index_key(table)],
                args=[spec, storage_key],
            )
        except RedisError as e:
            raise self._unavailable(e, "update_item", table) from e

        status, detail = result[0], result[1]
        if status == _CONDITION_FAILED:
            raise ConditionFailedError(
                f"Condition on '{detail}' failed for {table}/{storage_key}",
                table=table,
                key=dict(key),
                attribute=detail,
            )
        return decode_item(json.loads(detail)) if detail else {}

    def scan(
        self,
        table: str,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
        prefix: Optional[str] = None,
    ) -> ScanPage:
        self._check_circuit("scan", table)
        low, high = _lex_range(start_after, prefix)
        try:
            if limit is None:
                keys: List[str] = self._client.zrangebylex(self._index_key(table), low, high)
            else:
                keys = self._client.zrangebylex(
                    self._index_key(table), low, high, start=0, num=limit + 1
                )
            more = limit is not None and len(keys) > limit
            keys = keys[:limit] if limit is not None else keys
            raw_items = (
                self._client.mget([self._item_key(table, k) for k in keys]) if keys else []
            )
        except RedisError as e:
            raise self._unavailable(e, "scan", table) from e

        items = [decode_item(json.loads(raw)) for raw in raw_items if raw is not None]
        return ScanPage(items=items, last_key=keys[-1] if keys else None, more=more)

    # ── Health & Management ──

    def ping(self) -> bool:
        if not self._client:
            return False
        try:
            return bool(self._client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        """Close the Redis connection and release resources."""
        if self._client is not None:
            try:
                self._client.close()
            except RedisError as e:
                logger.debug(f"Redis close failed: {e}")
            self._client = None
        self._circuit_open = False
        self._failure_count = 0

    @property
    def is_circuit_open(self) -> bool:
        return self._circuit_open


def _build_update_spec(
    key: Mapping[str, Any],
    changes: Mapping[str, Any],
    condition: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Translate update_item arguments into the JSON document UPDATE_SCRIPT reads."""
    spec: Dict[str, Any] = {
        "key": dict(key),
        "set": {},
        "unset": [],
        "copy": {},
        "incr": {},
        "condition": [],
    }
    for attr, change in changes.items():
        if isinstance(change, Copy):
            spec["copy"][attr] = change.source
        elif isinstance(change, Increment):
            spec["incr"][attr] = change.amount
        elif change is None:
            spec["unset"].append(attr)
        else:
            spec["set"].update(encode_item({attr: change}))
    for attr, expected in (condition or {}).items():
        if expected is None:
            spec["condition"].append({"attr": attr, "absent": True})
        else:
            spec["condition"].append({"attr": attr, "absent": False, "value": expected})
    return spec


def _lex_range(start_after: Optional[str], prefix: Optional[str]):
    """ZRANGEBYLEX bounds for keys after ``start_after`` that share ``prefix``."""
    if start_after is not None and (not prefix or start_after >= prefix):
        low = f"({start_after}"
    elif prefix:
        low = f"[{prefix}"
    else:
        low = "-"
    high = f"[{prefix}\xff" if prefix else "+"
    return low, high
