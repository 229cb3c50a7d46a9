import json

import httpx
import pytest

from esmigrate.config import MigrateConfig
from esmigrate.errors import MissingSettingsError, ProvisioningError, ResolutionError
from esmigrate.pipeline import run_migration
from tests.conftest import hit, page

GREEN = httpx.Response(200, json={"cluster_name": "es", "status": "green"})


def _bulk_ok(request):
    lines = request.content.decode().splitlines()
    return httpx.Response(200, json={"errors": False, "items": [{"create": {}} for _ in lines[::2]]})


@pytest.fixture
def populated(source, dest):
    source.on("GET", "/_all/_mapping", httpx.Response(200, json={
        "users": {"mappings": {"user": {}}},
        ".hidden": {"mappings": {}},
    }))
    source.on("GET", "/_all/_settings", httpx.Response(200, json={
        "users": {"settings": {"index": {"number_of_shards": "5", "number_of_replicas": "2"}}},
        ".hidden": {"settings": {"index.number_of_shards": "1"}},
    }))
    source.on("GET", "/_cluster/health", GREEN)
    source.on("GET", "/users/_search", page("c1", [], total=3))
    source.on(
        "POST", "/_search/scroll",
        page("c2", [hit("users", "1"), hit("users", "2")]),
        page("c3", [hit("users", "3")]),
        httpx.Response(404),
    )
    dest.on("GET", "/_cluster/health", GREEN)
    dest.on("POST", "/users", httpx.Response(200, json={"acknowledged": True}))
    dest.on("DELETE", "/users", httpx.Response(404))
    dest.on("PUT", "/users/_settings", httpx.Response(200, json={"acknowledged": True}))
    dest.on("POST", "/_bulk", _bulk_ok)
    return source, dest


def _config(**overrides):
    config = MigrateConfig(source="http://source:9200", dest="http://dest:9200", workers=2)
    return config.merge(overrides)


def _run(config, source, dest):
    return run_migration(config, source=source.client(), dest=dest.client(), sleep=lambda _: None)


def test_full_migration(populated):
    source, dest = populated

    result = _run(_config(), source, dest)

    assert result.indexes == ["users"]
    assert result.documents_read == 3
    assert result.documents_written == 3
    assert result.error_count == 0
    assert result.aborted is False

    created = json.loads(dest.calls("POST", "/users")[0].content)
    assert created == {
        "mappings": {"user": {}},
        "settings": {"index": {"number_of_shards": "5", "number_of_replicas": "0"}},
    }
    assert dest.calls("DELETE", "/users") == []
    assert dest.calls("PUT", "/users/_settings") == []
    assert dest.calls("POST", "/.hidden") == []


def test_force_and_replicate(populated):
    source, dest = populated

    _run(_config(force=True, replicate=True, shards=2), source, dest)

    assert len(dest.calls("DELETE", "/users")) == 1
    created = json.loads(dest.calls("POST", "/users")[0].content)
    assert created["settings"]["index"] == {"number_of_shards": "2", "number_of_replicas": "0"}
    restored = json.loads(dest.calls("PUT", "/users/_settings")[0].content)
    assert restored == {"index": {"number_of_replicas": "2"}}


def test_without_settings_copy(populated):
    source, dest = populated

    _run(_config(copy_settings=False), source, dest)

    assert source.calls("GET", "/_all/_settings") == []
    created = json.loads(dest.calls("POST", "/users")[0].content)
    assert created["settings"] == {"index": {"number_of_replicas": "0"}}


def test_docs_only_skips_provisioning(populated):
    source, dest = populated

    result = _run(_config(docs_only=True), source, dest)

    assert dest.calls("POST", "/users") == []
    assert result.documents_written == 3


def test_index_only_skips_documents(populated):
    source, dest = populated

    result = _run(_config(index_only=True), source, dest)

    assert len(dest.calls("POST", "/users")) == 1
    assert source.calls("GET", "/users/_search") == []
    assert dest.calls("POST", "/_bulk") == []
    assert result.documents_written == 0


def test_include_all_scrolls_pinned_names(populated):
    source, dest = populated
    source.on("GET", "/.hidden,users/_search", page("c1", [], total=0))
    dest.on("POST", "/.hidden", httpx.Response(200, json={"acknowledged": True}))

    result = _run(_config(include_all=True), source, dest)

    assert result.indexes == [".hidden", "users"]
    assert len(source.calls("GET", "/.hidden,users/_search")) == 1


def test_resolution_failure_aborts_before_writes(source, dest):
    source.on("GET", "/_all/_mapping", httpx.Response(503, text="unavailable"))

    with pytest.raises(ResolutionError):
        _run(_config(), source, dest)
    assert dest.requests == []


def test_missing_settings_abort_before_writes(populated):
    source, dest = populated
    source.on("GET", "/_all/_settings", httpx.Response(200, json={}))

    with pytest.raises(MissingSettingsError):
        _run(_config(), source, dest)
    assert dest.requests == []


def test_provisioning_failure_aborts_before_documents(populated):
    source, dest = populated
    dest.on("POST", "/users", httpx.Response(400, text="resource_already_exists_exception"))

    with pytest.raises(ProvisioningError):
        _run(_config(), source, dest)
    assert source.calls("GET", "/users/_search") == []
    assert dest.calls("POST", "/_bulk") == []


def test_no_matching_indexes(source, dest):
    source.on("GET", "/_all/_mapping", httpx.Response(200, json={"_river": {}}))

    result = _run(_config(), source, dest)

    assert result.indexes == []
    assert dest.requests == []


def test_abort_policy_marks_result(populated):
    source, dest = populated
    dest.on("POST", "/_bulk", httpx.Response(500, text="down"))

    result = _run(_config(bulk_failure="abort", workers=1, flush_bytes=1), source, dest)

    assert result.aborted is True
    assert result.documents_written == 0
    assert result.error_count >= 1


def test_drop_policy_keeps_going(populated):
    source, dest = populated
    dest.on("POST", "/_bulk", httpx.Response(500, text="down"), _bulk_ok)

    result = _run(_config(workers=1, flush_bytes=1), source, dest)

    assert result.aborted is False
    assert result.documents_written == 2
    assert result.error_count == 1
