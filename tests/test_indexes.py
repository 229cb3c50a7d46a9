import httpx
import pytest

from esmigrate.errors import ResolutionError
from esmigrate.indexes import fetch_settings, filter_index_names, resolve


def test_filter_excludes_internal_and_dot_names_by_default():
    names = ["logs", "_kibana", ".marvel-2024"]
    assert filter_index_names(names) == ["logs"]


def test_filter_include_all_keeps_dot_names_but_not_underscore():
    names = ["logs", "_kibana", ".marvel-2024"]
    assert filter_index_names(names, include_all=True) == ["logs", ".marvel-2024"]


def test_resolve_all_pins_pattern_to_surviving_names(source):
    source.on("GET", "/_all/_mapping", httpx.Response(200, json={
        "users": {"mappings": {"user": {"properties": {}}}},
        "events": {"mappings": {"event": {}}},
        "_river": {"mappings": {}},
        ".kibana": {"mappings": {}},
    }))

    resolved = resolve(source.client())

    assert resolved.names == ["events", "users"]
    assert resolved.pattern == "events,users"
    assert resolved.definitions[1].mappings == {"user": {"properties": {}}}


def test_resolve_explicit_pattern_is_kept(source):
    source.on("GET", "/logs-1,logs-2/_mapping", httpx.Response(200, json={
        "logs-1": {"mappings": {}},
        "logs-2": {"mappings": {}},
    }))
    resolved = resolve(source.client(), "logs-1,logs-2")
    assert resolved.pattern == "logs-1,logs-2"
    assert resolved.names == ["logs-1", "logs-2"]


def test_resolve_wraps_legacy_mappings(source):
    source.on("GET", "/_all/_mapping", httpx.Response(200, json={
        "old": {"tweet": {"properties": {"msg": {"type": "string"}}}},
    }))
    resolved = resolve(source.client())
    definition = resolved.definitions[0]
    assert definition.mappings == {"tweet": {"properties": {"msg": {"type": "string"}}}}
    assert definition.body() == {"mappings": {"tweet": {"properties": {"msg": {"type": "string"}}}}}


def test_resolve_with_include_all(source):
    source.on("GET", "/_all/_mapping", httpx.Response(200, json={
        ".marvel-2024": {"mappings": {}},
        "_kibana": {"mappings": {}},
    }))
    assert resolve(source.client(), include_all=True).names == [".marvel-2024"]


def test_resolve_fails_on_error_status(source):
    source.on("GET", "/_all/_mapping", httpx.Response(500, text="boom"))
    with pytest.raises(ResolutionError, match="boom"):
        resolve(source.client())


def test_resolve_fails_on_undecodable_body(source):
    source.on("GET", "/_all/_mapping", httpx.Response(200, text="<html>"))
    with pytest.raises(ResolutionError):
        resolve(source.client())


def test_resolve_fails_on_connection_error(source):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    source.on("GET", "/_all/_mapping", refuse)
    with pytest.raises(ResolutionError, match="connection refused"):
        resolve(source.client())


def test_fetch_settings(source):
    payload = {"a": {"settings": {"index.number_of_shards": "1"}}}
    source.on("GET", "/_all/_settings", httpx.Response(200, json=payload))
    assert fetch_settings(source.client()) == payload
