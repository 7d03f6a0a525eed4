"""
Operation queue and reconciliation for the Daily Tracker offline client.

Local edits land in the offline mirror immediately and are queued as
create/update/delete operations. The queue is flushed serially, right
away when online and every ``sync_interval_seconds`` otherwise. Conflicts
resolve as last write wins with the server preferred on ties; entries the
manager cannot settle are marked ``conflict`` for ``resolve_conflict``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from portfolio.config import settings
from portfolio.modules.sync.api_client import TrackerAPIClient
from portfolio.modules.sync.offline_db import (
    CONFLICT, PENDING, SYNCED, OfflineDatabase, OfflineEntry, SyncMetadata, SyncOperation,
    new_local_id, now_ms,
)

logger = logging.getLogger(__name__)

TASK_GROUP = "task_group"
TASK_COMPLETION = "task_completion"

CREATE = "create"
UPDATE = "update"
DELETE = "delete"

StatusListener = Callable[[str], None]


class SyncConflict(Exception):
    """The operation can never succeed as queued; its entry needs manual resolution."""


def _server_timestamp_ms(value: Optional[str]) -> float:
    if not value:
        return 0.0
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000


class SyncManager:
    def __init__(
        self,
        db: OfflineDatabase,
        api: TrackerAPIClient,
        online: bool = True,
        max_retries: Optional[int] = None,
        sync_interval: Optional[float] = None,
    ):
        self.db = db
        self.api = api
        self.is_online = online
        self.max_retries = max_retries if max_retries is not None else settings.sync_max_retries
        self.sync_interval = sync_interval if sync_interval is not None else settings.sync_interval_seconds
        self.is_syncing = False
        self.last_error: Optional[str] = None
        self._listeners: List[StatusListener] = []
        self._periodic_task: Optional[asyncio.Task] = None
        self.db.init()

    # Status

    def on_sync_status_change(self, callback: StatusListener) -> Callable[[], None]:
        """Register a listener for syncing/synced/offline/error; returns an unsubscribe callable"""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _notify(self, status: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Sync status listener failed: {e}")

    def get_sync_status(self) -> str:
        if not self.is_online:
            return "offline"
        if self.is_syncing:
            return "syncing"
        if self.last_error:
            return "error"
        return "online"

    def set_online(self) -> int:
        """Connectivity came back; flush whatever queued up meanwhile"""
        self.is_online = True
        logger.info("Back online, flushing sync queue")
        return self.flush()

    def set_offline(self) -> None:
        self.is_online = False
        self._notify("offline")

    # Queue

    def queue_operation(
        self,
        operation: str,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> SyncOperation:
        sync_op = SyncOperation(
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            data=data,
            timestamp=now_ms(),
            retry_count=0,
            max_retries=self.max_retries,
        )
        self.db.enqueue(sync_op)
        logger.debug(f"Queued {operation} {entity_type} {entity_id}")

        if self.is_online:
            self.flush()
        return sync_op

    def pending_operations(self) -> List[SyncOperation]:
        return self.db.get_queue()

    def flush(self) -> int:
        """Send queued operations in order; returns how many the server accepted"""
        if not self.is_online:
            self._notify("offline")
            return 0
        if self.is_syncing:
            return 0

        self.is_syncing = True
        self.last_error = None
        self._notify("syncing")
        sent = 0
        try:
            for op in self.db.get_queue():
                try:
                    self._send(op)
                except SyncConflict as e:
                    self._drop_as_conflict(op, str(e))
                    continue
                except httpx.HTTPStatusError as e:
                    status = e.response.status_code
                    if 400 <= status < 500 and status not in (408, 429):
                        self._drop_as_conflict(op, f"server rejected {op.operation} with {status}")
                        continue
                    self._record_failure(op, f"server error {status}")
                    break
                except httpx.TransportError as e:
                    self._record_failure(op, f"network error: {e}")
                    break

                self.db.remove_operation(op.id)
                sent += 1
        finally:
            self.is_syncing = False

        self._notify("error" if self.last_error else "synced")
        if sent:
            logger.info(f"Synced {sent} queued operation(s)")
        return sent

    def _record_failure(self, op: SyncOperation, reason: str) -> None:
        """Count a failed attempt; later operations may depend on this one so the flush stops here"""
        self.last_error = reason
        self.db.increment_retry(op.id)
        if op.retry_count + 1 >= op.max_retries:
            self._drop_as_conflict(op, f"{reason} (gave up after {op.max_retries} attempts)")
            return
        logger.warning(f"Sync of {op.operation} {op.entity_type} {op.entity_id} failed: {reason}")

    def _drop_as_conflict(self, op: SyncOperation, reason: str) -> None:
        logger.error(f"Dropping {op.operation} {op.entity_type} {op.entity_id}: {reason}")
        self.last_error = reason
        self.db.remove_operation(op.id)
        if self.db.get_entry(op.entity_id) is not None:
            self.db.set_sync_status(op.entity_id, CONFLICT)

    def _settle(self, entry_id: str, server_data: Dict[str, Any]) -> None:
        """Adopt the server's copy; stay pending while later operations are still queued"""
        entry = self.db.get_entry(entry_id)
        if entry is None:
            return
        entry.data = server_data
        entry.sync.server_id = server_data.get("id", entry.sync.server_id)
        entry.sync.last_modified = now_ms()
        still_queued = any(o.entity_id == entry_id for o in self.db.get_queue())
        entry.sync.sync_status = PENDING if still_queued else SYNCED
        self.db.save_entry(entry)

    def _send(self, op: SyncOperation) -> None:
        if op.entity_type == TASK_GROUP:
            if op.operation == DELETE:
                self.api.delete_task_group(op.data["server_id"])
                return
            entry = self.db.get_entry(op.entity_id)
            if entry is None:
                # deleted locally before it ever reached the server
                return
            if op.operation == CREATE:
                result = self.api.create_task_group(op.data)
            else:
                if not entry.sync.server_id:
                    raise SyncConflict("update queued for a group the server never created")
                result = self.api.update_task_group(entry.sync.server_id, op.data)
            self.db.remove_operation(op.id)
            self._settle(op.entity_id, result)
            return

        if op.entity_type == TASK_COMPLETION:
            result = self.api.set_task_completion(op.data)
            self.db.remove_operation(op.id)
            self._settle(op.entity_id, {**op.data, **result})
            return

        raise SyncConflict(f"unknown entity type {op.entity_type}")

    # Local edits

    def create_task_group(self, data: Dict[str, Any]) -> OfflineEntry:
        timestamp = now_ms()
        local_id = new_local_id()
        entry = OfflineEntry(
            id=local_id,
            entity_type=TASK_GROUP,
            data=dict(data),
            created_at=timestamp,
            updated_at=timestamp,
            sync=SyncMetadata(last_modified=timestamp, sync_status=PENDING, local_id=local_id),
        )
        self.db.save_entry(entry)
        self.queue_operation(CREATE, TASK_GROUP, entry.id, dict(data))
        return self.db.get_entry(entry.id)

    def update_task_group(self, entry_id: str, data: Dict[str, Any]) -> OfflineEntry:
        entry = self.db.get_entry(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        timestamp = now_ms()
        entry.data = {**entry.data, **data}
        entry.data.pop("id", None)
        entry.updated_at = timestamp
        entry.sync.last_modified = timestamp
        entry.sync.sync_status = PENDING
        self.db.save_entry(entry)

        payload = {k: entry.data[k] for k in ("name", "color", "duration", "start_date", "tasks") if k in entry.data}
        self.queue_operation(UPDATE, TASK_GROUP, entry.id, payload)
        return self.db.get_entry(entry.id)

    def delete_task_group(self, entry_id: str) -> None:
        entry = self.db.get_entry(entry_id)
        if entry is None:
            return
        self.db.delete_entry(entry_id)
        if not entry.sync.server_id:
            # never reached the server: forget the queued create instead of sending it
            dropped = self.db.remove_operations_for(entry_id)
            logger.debug(f"Dropped {dropped} queued operation(s) for unsynced group {entry_id}")
            return
        self.db.remove_operations_for(entry_id)
        self.queue_operation(DELETE, TASK_GROUP, entry_id, {"server_id": entry.sync.server_id})

    def set_task_completion(self, task_id: str, completed: bool, date: str) -> OfflineEntry:
        """One mirror entry per (task, day), matching the server's upsert"""
        entry_id = f"completion:{task_id}:{date}"
        timestamp = now_ms()
        entry = self.db.get_entry(entry_id)
        data = {"task_id": task_id, "completed": completed, "date": date}
        if entry is None:
            entry = OfflineEntry(
                id=entry_id,
                entity_type=TASK_COMPLETION,
                data=data,
                created_at=timestamp,
                updated_at=timestamp,
                sync=SyncMetadata(last_modified=timestamp, sync_status=PENDING, local_id=entry_id),
            )
        else:
            entry.data = {**entry.data, **data}
            entry.updated_at = timestamp
            entry.sync.last_modified = timestamp
            entry.sync.sync_status = PENDING
        self.db.save_entry(entry)
        # an older queued toggle for the same day is superseded
        self.db.remove_operations_for(entry_id)
        self.queue_operation(CREATE, TASK_COMPLETION, entry_id, data)
        return self.db.get_entry(entry_id)

    def get_task_groups(self) -> List[OfflineEntry]:
        return self.db.get_entries(TASK_GROUP)

    # Reconciliation

    def pull(self) -> int:
        """Fetch server task groups and fold them into the mirror"""
        if not self.is_online:
            return 0
        try:
            server_groups = self.api.list_task_groups()
        except (httpx.TransportError, httpx.HTTPStatusError) as e:
            logger.warning(f"Could not fetch task groups: {e}")
            self.last_error = str(e)
            self._notify("error")
            return 0
        return self.reconcile_with_server(server_groups)

    def reconcile_with_server(self, server_groups: List[Dict[str, Any]]) -> int:
        """Merge server state into the mirror; returns the number of local entries changed"""
        changed = 0
        seen_server_ids = set()
        for server_group in server_groups:
            server_id = server_group["id"]
            seen_server_ids.add(server_id)
            server_modified = _server_timestamp_ms(server_group.get("updated_at") or server_group.get("created_at"))
            local = self.db.find_by_server_id(TASK_GROUP, server_id)

            if local is None:
                timestamp = now_ms()
                local_id = new_local_id()
                self.db.save_entry(OfflineEntry(
                    id=local_id,
                    entity_type=TASK_GROUP,
                    data=server_group,
                    created_at=_server_timestamp_ms(server_group.get("created_at")) or timestamp,
                    updated_at=server_modified or timestamp,
                    sync=SyncMetadata(
                        last_modified=timestamp, sync_status=SYNCED, server_id=server_id, local_id=local_id
                    ),
                ))
                changed += 1
                continue

            if local.sync.sync_status == CONFLICT:
                continue
            if local.sync.sync_status == PENDING and local.sync.last_modified > server_modified:
                # local edit is newer, its queued update will win
                continue

            if local.sync.sync_status == PENDING:
                self.db.remove_operations_for(local.id)
                logger.info(f"Server copy of group {server_id} is newer, discarding local edit")
            local.data = server_group
            local.updated_at = server_modified or local.updated_at
            local.sync.sync_status = SYNCED
            local.sync.last_modified = now_ms()
            self.db.save_entry(local)
            changed += 1

        for local in self.db.get_entries(TASK_GROUP):
            if local.sync.sync_status == SYNCED and local.sync.server_id and local.sync.server_id not in seen_server_ids:
                self.db.delete_entry(local.id)
                changed += 1
        return changed

    def resolve_conflict(self, entry_id: str, use_local: bool) -> OfflineEntry:
        """Manual override: push the local copy, or adopt the server's, then mark synced"""
        entry = self.db.get_entry(entry_id)
        if entry is None:
            raise KeyError(entry_id)

        # queued operations stay until the server has answered
        if entry.entity_type == TASK_COMPLETION:
            if use_local:
                result = self.api.set_task_completion(entry.data)
                entry.data = {**entry.data, **result}
            else:
                for completion in self.api.list_task_completions(entry.data["date"]):
                    if completion["task_id"] == entry.data["task_id"]:
                        entry.data = {**entry.data, **completion}
                        break
        elif use_local:
            if entry.sync.server_id:
                result = self.api.update_task_group(entry.sync.server_id, entry.data)
            else:
                result = self.api.create_task_group(entry.data)
            entry.data = result
            entry.sync.server_id = result["id"]
        else:
            server_copy = next(
                (g for g in self.api.list_task_groups() if g["id"] == entry.sync.server_id), None
            )
            if server_copy is None:
                logger.info(f"Group {entry_id} no longer exists on the server, removing local copy")
                self.db.remove_operations_for(entry_id)
                self.db.delete_entry(entry_id)
                entry.sync.sync_status = SYNCED
                return entry
            entry.data = server_copy

        self.db.remove_operations_for(entry_id)
        entry.sync.sync_status = SYNCED
        entry.sync.last_modified = now_ms()
        self.db.save_entry(entry)
        return entry

    # Periodic sync

    async def run_periodic_sync(self, max_cycles: Optional[int] = None) -> None:
        """Flush every sync_interval seconds while online"""
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            try:
                if self.is_online:
                    self.flush()
            except Exception as e:
                logger.error(f"Error in periodic sync: {e}")
            cycles += 1
            await asyncio.sleep(self.sync_interval)

    def start_periodic_sync(self) -> asyncio.Task:
        if self._periodic_task is None or self._periodic_task.done():
            self._periodic_task = asyncio.create_task(self.run_periodic_sync())
        return self._periodic_task

    def stop_periodic_sync(self) -> None:
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
