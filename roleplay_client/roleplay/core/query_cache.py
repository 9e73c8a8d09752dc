"""
查询缓存模块

实体访问层的读穿透缓存，键为规范化元组，例如:
- ("server", server_id)
- ("posts", server_id, room_id)
- ("characters", owner, scope)

特性：
- 本地缓存：OrderedDict 实现的 LRU + TTL，线程安全
- 分布式缓存：Redis（JSON 序列化，SETEX 写入，SCAN 前缀失效）
- 失效而非合并：成功变更后显式失效对应键
- Redis 不可用时降级到本地缓存
"""

import json
import logging
import threading
import time
from collections import Counter, OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

CacheKey = Tuple[Any, ...]

_MISSING = object()
_NONE_TOKEN = "~"


def normalize_key(*parts: Any) -> CacheKey:
    """将键的各部分规范化为字符串元组，None 使用占位符表示"""
    return tuple(_NONE_TOKEN if part is None else str(part) for part in parts)


def serialize_key(key: CacheKey, prefix: str = "") -> str:
    text = ":".join(key)
    return f"{prefix}:{text}" if prefix else text


def _is_prefix(prefix: CacheKey, key: CacheKey) -> bool:
    return key[: len(prefix)] == prefix


class LocalCacheBackend:
    """进程内LRU缓存"""

    def __init__(self, maxsize: int = 2000, ttl: int = 300):
        self.maxsize = maxsize
        self.ttl = ttl
        self.lock = threading.RLock()
        self._entries: "OrderedDict[CacheKey, Tuple[float, Any]]" = OrderedDict()

    def get(self, key: CacheKey) -> Any:
        with self.lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISSING
            expires_at, value = entry
            if expires_at < time.time():
                del self._entries[key]
                return _MISSING
            self._entries.move_to_end(key)
            return value

    def set(self, key: CacheKey, value: Any):
        with self.lock:
            self._entries[key] = (time.time() + self.ttl, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def delete(self, key: CacheKey) -> int:
        with self.lock:
            return 1 if self._entries.pop(key, None) is not None else 0

    def delete_prefix(self, prefix: CacheKey) -> int:
        with self.lock:
            matched = [key for key in self._entries if _is_prefix(prefix, key)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    def clear(self):
        with self.lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)


class RedisCacheBackend:
    """Redis分布式缓存，值以JSON保存"""

    def __init__(self, redis_client, ttl: int = 300, namespace: str = "rp"):
        self.redis_client = redis_client
        self.ttl = ttl
        self.namespace = namespace

    def _redis_key(self, key: CacheKey) -> str:
        return serialize_key(key, self.namespace)

    def get(self, key: CacheKey) -> Any:
        data = self.redis_client.get(self._redis_key(key))
        if data is None:
            return _MISSING
        return json.loads(data)

    def set(self, key: CacheKey, value: Any):
        self.redis_client.setex(self._redis_key(key), self.ttl, json.dumps(value))

    def delete(self, key: CacheKey) -> int:
        return int(self.redis_client.delete(self._redis_key(key)) or 0)

    def delete_prefix(self, prefix: CacheKey) -> int:
        base = self._redis_key(prefix)
        keys = [base] + list(self.redis_client.scan_iter(match=f"{base}:*"))
        return int(self.redis_client.delete(*keys) or 0)

    def clear(self):
        keys = list(self.redis_client.scan_iter(match=f"{self.namespace}:*"))
        if keys:
            self.redis_client.delete(*keys)


def create_redis_client(config: Dict[str, Any]) -> Optional[redis.Redis]:
    """
    创建Redis单节点客户端

    参数:
        config (Dict[str, Any]): Flask 配置

    返回:
        Optional[redis.Redis]: Redis客户端实例，连接失败时返回None
    """
    redis_config = config.get(
        "REDIS_SINGLE_NODE_CONFIG",
        {"host": "localhost", "port": 6379, "db": 0, "decode_responses": True},
    )
    try:
        redis_client = redis.Redis(**redis_config)
        redis_client.ping()  # 测试连接
        logger.info("使用Redis单节点作为查询缓存")
        return redis_client
    except redis.RedisError as e:
        logger.error(f"Redis客户端创建失败: {e}")
        return None


class QueryCache:
    """读穿透查询缓存，支持 init_app 模式"""

    def __init__(self, backend=None, app=None):
        self.backend = backend or LocalCacheBackend()
        self.stats = Counter({"hits": 0, "misses": 0, "invalidations": 0})
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """从 app.config 读取配置并选择缓存后端"""
        ttl = app.config.get("QUERY_CACHE_TTL", 300)
        backend_name = app.config.get("QUERY_CACHE_BACKEND", "local")

        if backend_name == "redis":
            redis_client = app.extensions.get("redis_client") or create_redis_client(
                app.config
            )
            if redis_client is not None:
                app.extensions["redis_client"] = redis_client
                self.backend = RedisCacheBackend(
                    redis_client,
                    ttl=ttl,
                    namespace=app.config.get("QUERY_CACHE_PREFIX", "rp"),
                )
            else:
                logger.warning("Redis不可用，查询缓存降级为本地缓存")
                self.backend = LocalCacheBackend(
                    maxsize=app.config.get("QUERY_CACHE_MAXSIZE", 2000), ttl=ttl
                )
        else:
            self.backend = LocalCacheBackend(
                maxsize=app.config.get("QUERY_CACHE_MAXSIZE", 2000), ttl=ttl
            )

        app.extensions["query_cache"] = self

    def get_or_load(self, key: CacheKey, loader: Callable[[], Any]) -> Any:
        """
        读穿透获取

        参数:
            key (CacheKey): 规范化的缓存键
            loader (Callable): 缓存未命中时的加载函数，异常直接向上传播且不写入缓存

        返回:
            Any: 缓存值或加载结果
        """
        value = self.backend.get(key)
        if value is not _MISSING:
            self.stats["hits"] += 1
            logger.debug(f"查询缓存命中: {key}")
            return value

        self.stats["misses"] += 1
        value = loader()
        self.backend.set(key, value)
        return value

    def invalidate(self, *keys: CacheKey) -> int:
        removed = 0
        for key in keys:
            removed += self.backend.delete(key)
            self.stats["invalidations"] += 1
            logger.debug(f"失效查询缓存: {key}")
        return removed

    def invalidate_prefix(self, prefix: CacheKey) -> int:
        removed = self.backend.delete_prefix(prefix)
        self.stats["invalidations"] += 1
        logger.debug(f"按前缀失效查询缓存: {prefix}, 共 {removed} 个")
        return removed

    def clear(self):
        self.backend.clear()

    def get_stats(self) -> Dict[str, int]:
        return dict(self.stats)
