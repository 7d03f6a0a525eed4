import asyncio

import httpx
import pytest

from portfolio.modules.sync.api_client import TrackerAPIClient
from portfolio.modules.sync.offline_db import CONFLICT, PENDING, SYNCED, OfflineDatabase, now_ms
from portfolio.modules.sync.sync_manager import TASK_GROUP, SyncManager
from tests.conftest import group_payload


class Network:
    """Routes client traffic into the app under test and can be unplugged."""

    def __init__(self, app_client):
        self.app_client = app_client
        self.up = True
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if not self.up:
            raise httpx.ConnectError("network unreachable", request=request)
        self.requests.append((request.method, request.url.path))
        response = self.app_client.request(
            request.method,
            str(request.url),
            content=request.content,
            headers={"content-type": request.headers.get("content-type", "application/json")},
        )
        return httpx.Response(
            response.status_code,
            content=response.content,
            headers={"content-type": response.headers.get("content-type", "application/json")},
        )

    def sent(self, method, path="/api/task-groups"):
        return sum(1 for m, p in self.requests if m == method and p == path)


@pytest.fixture
def network(client):
    return Network(client)


@pytest.fixture
def manager(network, tmp_path):
    http = httpx.Client(base_url="http://testserver", transport=httpx.MockTransport(network.handler))
    db = OfflineDatabase(str(tmp_path / "offline.db"))
    sync_manager = SyncManager(db, TrackerAPIClient(http=http), max_retries=3, sync_interval=0)
    yield sync_manager
    db.close()


def go_offline(network, manager):
    network.up = False
    manager.set_offline()


def go_online(network, manager):
    network.up = True
    return manager.set_online()


def test_create_while_online_syncs_immediately(manager, client):
    entry = manager.create_task_group(group_payload())

    assert entry.sync.sync_status == SYNCED
    assert entry.sync.server_id
    assert entry.data["tasks"][0]["id"]
    assert manager.pending_operations() == []
    assert [g["id"] for g in client.get("/api/task-groups").json()] == [entry.sync.server_id]


def test_offline_operation_sent_exactly_once_after_reconnect(manager, network, client):
    go_offline(network, manager)
    entry = manager.create_task_group(group_payload())

    assert entry.sync.sync_status == PENDING
    assert len(manager.pending_operations()) == 1
    assert network.requests == []

    assert go_online(network, manager) == 1
    manager.flush()

    assert network.sent("POST") == 1
    assert manager.pending_operations() == []
    assert manager.db.get_entry(entry.id).sync.sync_status == SYNCED
    assert len(client.get("/api/task-groups").json()) == 1


def test_offline_create_then_update_applied_in_order(manager, network, client):
    go_offline(network, manager)
    entry = manager.create_task_group(group_payload())
    manager.update_task_group(entry.id, {"name": "Renamed", "tasks": [{"text": "Only task"}]})

    go_online(network, manager)

    groups = client.get("/api/task-groups").json()
    assert len(groups) == 1
    assert groups[0]["name"] == "Renamed"
    assert [t["text"] for t in groups[0]["tasks"]] == ["Only task"]
    assert manager.db.get_entry(entry.id).sync.sync_status == SYNCED


def test_deleting_unsynced_group_never_reaches_server(manager, network):
    go_offline(network, manager)
    entry = manager.create_task_group(group_payload())
    manager.delete_task_group(entry.id)

    assert manager.pending_operations() == []
    go_online(network, manager)
    assert network.requests == []
    assert manager.get_task_groups() == []


def test_delete_synced_group(manager, client):
    entry = manager.create_task_group(group_payload())
    manager.delete_task_group(entry.id)

    assert client.get("/api/task-groups").json() == []
    assert manager.db.get_entry(entry.id) is None


def test_network_failures_give_up_after_max_retries(manager, network):
    statuses = []
    manager.on_sync_status_change(statuses.append)
    network.up = False  # link is down but the client still believes it is online

    entry = manager.create_task_group(group_payload())
    assert manager.pending_operations()[0].retry_count == 1
    assert manager.get_sync_status() == "error"

    manager.flush()
    manager.flush()

    assert manager.pending_operations() == []
    assert manager.db.get_entry(entry.id).sync.sync_status == CONFLICT
    assert statuses.count("syncing") == 3
    assert statuses[-1] == "error"


def test_client_error_is_conflict_without_retry(manager, network):
    entry = manager.create_task_group(group_payload(duration=0))

    assert network.sent("POST") == 1
    assert manager.pending_operations() == []
    assert manager.db.get_conflicts()[0].id == entry.id


def test_resolve_conflict_pushes_local_copy(manager, network, client):
    network.up = False
    entry = manager.create_task_group(group_payload())
    manager.flush()
    manager.flush()
    assert manager.db.get_entry(entry.id).sync.sync_status == CONFLICT

    network.up = True
    resolved = manager.resolve_conflict(entry.id, use_local=True)

    assert resolved.sync.sync_status == SYNCED
    assert [g["id"] for g in client.get("/api/task-groups").json()] == [resolved.sync.server_id]


def test_resolve_conflict_adopts_server_copy(manager, client):
    entry = manager.create_task_group(group_payload())
    client.put("/api/task-groups", json=group_payload(id=entry.sync.server_id, name="From server"))
    manager.db.set_sync_status(entry.id, CONFLICT)

    resolved = manager.resolve_conflict(entry.id, use_local=False)

    assert resolved.data["name"] == "From server"
    assert manager.db.get_entry(entry.id).sync.sync_status == SYNCED


def test_pull_mirrors_server_groups(manager, client):
    created = client.post("/api/task-groups", json=group_payload(name="Made elsewhere")).json()

    assert manager.pull() == 1
    local = manager.db.find_by_server_id(TASK_GROUP, created["id"])
    assert local.data["name"] == "Made elsewhere"
    assert local.sync.sync_status == SYNCED

    client.put("/api/task-groups", json=group_payload(id=created["id"], name="Edited elsewhere"))
    manager.pull()
    assert manager.db.get_entry(local.id).data["name"] == "Edited elsewhere"

    client.delete("/api/task-groups", params={"id": created["id"]})
    manager.pull()
    assert manager.get_task_groups() == []


def test_reconcile_keeps_newer_local_edit(manager, network):
    entry = manager.create_task_group(group_payload())
    server_copy = dict(entry.data)

    go_offline(network, manager)
    manager.update_task_group(entry.id, {"name": "Local edit"})
    pending = manager.db.get_entry(entry.id)
    pending.sync.last_modified = now_ms() + 60_000
    manager.db.save_entry(pending)

    assert manager.reconcile_with_server([server_copy]) == 0
    assert manager.db.get_entry(entry.id).data["name"] == "Local edit"
    assert len(manager.pending_operations()) == 1


def test_reconcile_prefers_newer_server_copy(manager, network):
    entry = manager.create_task_group(group_payload())
    server_copy = {**entry.data, "name": "Server edit", "updated_at": "2999-01-01T00:00:00+00:00"}

    go_offline(network, manager)
    manager.update_task_group(entry.id, {"name": "Local edit"})

    assert manager.reconcile_with_server([server_copy]) == 1
    reconciled = manager.db.get_entry(entry.id)
    assert reconciled.data["name"] == "Server edit"
    assert reconciled.sync.sync_status == SYNCED
    assert manager.pending_operations() == []


def test_task_completion_toggles_collapse_while_offline(manager, network, client):
    group = client.post("/api/task-groups", json=group_payload()).json()
    task_id = group["tasks"][0]["id"]

    go_offline(network, manager)
    manager.set_task_completion(task_id, True, "2025-03-02")
    manager.set_task_completion(task_id, False, "2025-03-02")
    assert len(manager.pending_operations()) == 1

    go_online(network, manager)

    completions = client.get("/api/task-completions", params={"date": "2025-03-02"}).json()
    assert len(completions) == 1
    assert completions[0]["completed"] is False
    assert network.sent("POST", "/api/task-completions") == 1


def test_status_listeners_can_unsubscribe(manager, network):
    statuses = []
    unsubscribe = manager.on_sync_status_change(statuses.append)
    go_offline(network, manager)
    unsubscribe()
    go_online(network, manager)

    assert statuses == ["offline"]
    assert manager.get_sync_status() == "online"


def test_periodic_sync_flushes_queue(manager, network):
    go_offline(network, manager)
    manager.create_task_group(group_payload())
    network.up = True
    manager.is_online = True

    asyncio.run(manager.run_periodic_sync(max_cycles=2))

    assert manager.pending_operations() == []
    assert network.sent("POST") == 1


def test_failed_conflict_resolution_keeps_queued_edit(manager, network, client):
    entry = manager.create_task_group(group_payload())
    go_offline(network, manager)
    manager.update_task_group(entry.id, {"name": "Local edit"})

    with pytest.raises(httpx.ConnectError):
        manager.resolve_conflict(entry.id, use_local=True)

    assert len(manager.pending_operations()) == 1
    assert manager.db.get_entry(entry.id).sync.sync_status == PENDING

    go_online(network, manager)
    assert [g["name"] for g in client.get("/api/task-groups").json()] == ["Local edit"]


def test_api_client_reachability(manager, network):
    assert manager.api.is_reachable()
    network.up = False
    assert not manager.api.is_reachable()
