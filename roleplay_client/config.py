import os


def _split_env_list(value):
    return [item.strip() for item in (value or "").split(",") if item.strip()]


class Config:
    # 本地权威服务（LocalAuthority）使用的数据库
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///roleplay_hub.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 实体访问层传输方式: local（进程内权威服务）或 http（远程权威服务）
    ENTITY_TRANSPORT = os.getenv("ENTITY_TRANSPORT", "local")
    AUTHORITY_BASE_URL = os.getenv("AUTHORITY_BASE_URL", "http://127.0.0.1:8000/rpc")
    AUTHORITY_TIMEOUT = float(os.getenv("AUTHORITY_TIMEOUT", 10))

    # 全局管理员身份（逗号分隔），仅本地权威服务使用
    AUTHORITY_ADMIN_PRINCIPALS = _split_env_list(
        os.getenv("AUTHORITY_ADMIN_PRINCIPALS")
    )

    # 查询缓存配置
    QUERY_CACHE_BACKEND = os.getenv("QUERY_CACHE_BACKEND", "local")
    QUERY_CACHE_TTL = int(os.getenv("QUERY_CACHE_TTL", 300))
    QUERY_CACHE_MAXSIZE = int(os.getenv("QUERY_CACHE_MAXSIZE", 2000))
    QUERY_CACHE_PREFIX = os.getenv("QUERY_CACHE_PREFIX", "rp")

    # Redis配置
    REDIS_HOST = os.getenv("REDIS_HOST", "127.0.0.1")  # 使用IP地址避免DNS问题
    REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB = int(os.getenv("REDIS_DB", 0))
    REDIS_SINGLE_NODE_CONFIG = {
        "host": REDIS_HOST,
        "port": REDIS_PORT,
        "db": REDIS_DB,
        "decode_responses": True,
        "socket_connect_timeout": 1,
        "socket_timeout": 1,
    }

    # 开发环境下用于替代外部身份提供方的令牌签发接口
    DEV_TOKEN_ENABLED = False


class DevelopmentConfig(Config):
    DEBUG = True
    SECRET_KEY = "dev-secret-key-change-in-production"
    JWT_SECRET_KEY = "dev-jwt-secret-key-change-in-production"
    JWT_ACCESS_TOKEN_EXPIRES = False  # 开发环境下token永不过期
    DEV_TOKEN_ENABLED = True


class ProductionConfig(Config):
    DEBUG = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    ENTITY_TRANSPORT = os.getenv("ENTITY_TRANSPORT", "http")
    QUERY_CACHE_BACKEND = os.getenv("QUERY_CACHE_BACKEND", "redis")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    JWT_ACCESS_TOKEN_EXPIRES = False  # 测试环境下token永不过期
    ENTITY_TRANSPORT = "local"
    QUERY_CACHE_BACKEND = "local"
    AUTHORITY_ADMIN_PRINCIPALS = ["root-admin"]
    DEV_TOKEN_ENABLED = True
