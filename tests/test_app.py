"""
应用工厂与路由注册测试
"""

from unittest.mock import patch

import pytest
from roleplay import create_app
from roleplay.core.entity_access import EntityAccess
from roleplay.core.errors import NotFound
from roleplay.core.local_authority import LocalAuthority
from roleplay.core.query_cache import LocalCacheBackend
from roleplay.core.transport import HttpTransport


def test_testing_config():
    app = create_app("testing")
    assert app.config["TESTING"] is True
    assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite:///:memory:"
    client = app.extensions["entity_access"]
    assert isinstance(client.transport, LocalAuthority)
    assert client.transport.admin_principals == {"root-admin"}
    assert isinstance(client.cache.backend, LocalCacheBackend)
    assert app.extensions["query_cache"] is client.cache


def test_blueprints_registered():
    app = create_app("testing")
    for name in ("auth", "profiles", "servers", "rooms", "characters"):
        assert name in app.blueprints

    rules = {rule.rule for rule in app.url_map.iter_rules()}
    assert "/api/servers/<server_id>/members/me" in rules
    assert "/api/servers/<server_id>/rooms/<room_id>/posts/<int:post_id>" in rules
    assert "/api/characters/<character_id>" in rules


def test_http_transport_wiring():
    app = create_app("testing")
    app.config.update(
        ENTITY_TRANSPORT="http",
        AUTHORITY_BASE_URL="http://authority/rpc",
        AUTHORITY_TIMEOUT=2.5,
    )
    client = EntityAccess(app).client
    assert isinstance(client.transport, HttpTransport)
    assert client.transport.base_url == "http://authority/rpc"
    assert client.transport.timeout == 2.5


def test_unknown_transport():
    app = create_app("testing")
    app.config["ENTITY_TRANSPORT"] = "carrier-pigeon"
    with pytest.raises(RuntimeError):
        EntityAccess(app)


def test_error_response_shape():
    app = create_app("testing")

    @app.route("/boom")
    def boom():
        raise NotFound("星球不存在")

    resp = app.test_client().get("/boom")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "星球不存在", "kind": "not_found"}


def test_production_redis_degrades_to_local():
    with patch("roleplay.core.query_cache.create_redis_client", return_value=None):
        app = create_app("production")
    client = app.extensions["entity_access"]
    assert isinstance(client.transport, HttpTransport)
    assert isinstance(client.cache.backend, LocalCacheBackend)
