import json

import httpx
import pytest

from jewelerp.services.cloud_store import CloudStoreError, SupabaseCloudStore, cloud_store_from_config


class Recorder:
    """Captures requests and answers with a canned response."""

    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else []
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def store(recorder):
    store = SupabaseCloudStore("https://demo.supabase.co/", "anon-key", transport=httpx.MockTransport(recorder))
    yield store
    store.close()


def test_select_builds_postgrest_filters(store, recorder):
    recorder.body = [{"id": 1, "name": "Rings"}]

    rows = store.select("categories", [("updated_at", "gt", "2026-10-18T10:00:00Z"), ("branch_id", "neq", 1)])

    assert rows == [{"id": 1, "name": "Rings"}]
    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/categories"
    assert request.url.params.get("select") == "*"
    assert request.url.params.get("updated_at") == "gt.2026-10-18T10:00:00Z"
    assert request.url.params.get("branch_id") == "neq.1"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"


def test_insert_merges_duplicates(store, recorder):
    store.insert("customers", {"id": 5, "first_name": "Ravi"})

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.headers["Prefer"] == "resolution=merge-duplicates,return=minimal"
    assert json.loads(request.content) == {"id": 5, "first_name": "Ravi"}


def test_update_and_delete_match_on_id(store, recorder):
    store.update("products", {"id": 9, "current_stock": 0}, {"id": 9})
    store.delete("products", {"id": 9})

    patch, delete = recorder.requests
    assert patch.method == "PATCH"
    assert patch.url.params.get("id") == "eq.9"
    assert delete.method == "DELETE"
    assert delete.url.params.get("id") == "eq.9"


def test_boolean_filter_values(store, recorder):
    store.select("users", [("is_active", "eq", True)])
    assert recorder.requests[0].url.params.get("is_active") == "eq.true"


def test_write_without_match_refused(store, recorder):
    with pytest.raises(CloudStoreError, match="match condition"):
        store.delete("products", {})
    assert recorder.requests == []


def test_unsupported_filter_refused(store):
    with pytest.raises(CloudStoreError, match="Unsupported filter"):
        store.select("products", [("id", "lt", 3)])


def test_error_status_raises_with_details(store, recorder):
    recorder.status = 409
    recorder.body = {"code": "23505", "message": "duplicate key value violates unique constraint"}

    with pytest.raises(CloudStoreError) as exc:
        store.insert("customers", {"id": 1})

    assert exc.value.status_code == 409
    assert exc.value.details["code"] == "23505"
    assert "duplicate key" in str(exc.value)


def test_transport_failure_raises():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = SupabaseCloudStore("https://demo.supabase.co", "k", transport=httpx.MockTransport(boom))
    with pytest.raises(CloudStoreError, match="failed"):
        store.select("products")


def test_connection_check(store, recorder):
    assert store.test_connection()["success"] is True
    assert recorder.requests[0].url.path == "/rest/v1/sync_status"

    recorder.status = 401
    recorder.body = {"message": "Invalid API key"}
    result = store.test_connection()
    assert result["success"] is False
    assert "Invalid API key" in result["message"]


def test_from_config_local_only():
    assert cloud_store_from_config({"SUPABASE_URL": None, "SUPABASE_KEY": "k"}) is None
    assert cloud_store_from_config({"SUPABASE_URL": "https://x.supabase.co", "SUPABASE_KEY": ""}) is None

    store = cloud_store_from_config({"SUPABASE_URL": "https://x.supabase.co", "SUPABASE_KEY": "k"})
    assert isinstance(store, SupabaseCloudStore)
    store.close()
