import asyncio
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple, Union

from . import api
from .client import ApiClient
from .errors import AuthFailure, MediaDashError
from .models import FileRecord, ListingQuery, SortKey, TypeFilter
from .tasks import TaskRunner
from .utils import get_logger

SESSION_EXPIRED = "Your session has expired. Please sign in again."


def _merge_front(front: Sequence[FileRecord], rest: Sequence[FileRecord]) -> List[FileRecord]:
    ids = {record.id for record in front}
    return list(front) + [record for record in rest if record.id not in ids]


class ListingController:
    def __init__(self, client: ApiClient, debounce: float = 0.5, runner: Optional[TaskRunner] = None) -> None:
        self.client = client
        self.debounce = debounce
        self.query = ListingQuery()
        self.records: List[FileRecord] = []
        self.loading = False
        self.error: Optional[str] = None
        self.logger = get_logger("mediadash.listing")
        self._runner = runner or TaskRunner("mediadash.listing")
        self._listeners: List[Callable[["ListingController"], None]] = []
        self._seq = 0
        self._issued: Optional[Tuple[int, ListingQuery, asyncio.Task]] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        # Mutations made while a fetch is in flight, replayed over its result.
        self._journal: List[Tuple[int, str, Union[str, List[FileRecord]]]] = []

    def subscribe(self, callback: Callable[["ListingController"], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback(self)

    @property
    def fingerprint(self) -> Optional[int]:
        return self._issued[0] if self._issued else None

    # -- query inputs ---------------------------------------------------------

    def set_search_text(self, text: str) -> None:
        self.query = replace(self.query, search_text=text)
        self._notify()
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.debounce, self._debounce_elapsed)

    def _debounce_elapsed(self) -> None:
        self._debounce_handle = None
        self._issue()

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    @property
    def search_pending(self) -> bool:
        return self._debounce_handle is not None

    def set_sort(self, sort_key: Union[SortKey, str]) -> asyncio.Task:
        self.query = replace(self.query, sort_key=SortKey(sort_key))
        return self._fetch_now()

    def set_type_filter(self, type_filter: Union[TypeFilter, str, None]) -> asyncio.Task:
        if type_filter == "all":
            type_filter = TypeFilter.ALL
        self.query = replace(self.query, type_filter=TypeFilter(type_filter or ""))
        return self._fetch_now()

    def clear_filters(self) -> asyncio.Task:
        self.query = ListingQuery()
        return self._fetch_now(force=True)

    def refresh(self) -> asyncio.Task:
        return self._fetch_now()

    def apply_query(self, query: ListingQuery) -> asyncio.Task:
        self.query = query
        return self._fetch_now()

    def _fetch_now(self, force: bool = False) -> asyncio.Task:
        self._cancel_debounce()
        return self._issue(force)

    # -- fetch cycle ----------------------------------------------------------

    def _issue(self, force: bool = False) -> asyncio.Task:
        query = self.query
        if self._issued is not None and not force:
            _, issued_query, task = self._issued
            if issued_query == query and not task.done():
                self._notify()
                return task
        self._seq += 1
        fingerprint = self._seq
        self.loading = True
        self.error = None
        task = self._runner.run(
            api.list_files(self.client, query),
            on_result=lambda records: self._apply(fingerprint, records),
            on_error=lambda exc: self._fetch_failed(fingerprint, exc),
            on_finished=lambda: self._settle(fingerprint),
        )
        self._issued = (fingerprint, query, task)
        self.logger.debug("Listing #%d issued %s", fingerprint, query.to_params())
        self._notify()
        return task

    def _is_current(self, fingerprint: int) -> bool:
        return self._issued is not None and self._issued[0] == fingerprint

    def _apply(self, fingerprint: int, records: List[FileRecord]) -> None:
        if not self._is_current(fingerprint):
            self.logger.debug("Discarding stale listing #%d", fingerprint)
            return
        self.records = self._replay(fingerprint, records)
        self.logger.debug("Listing #%d applied (%d file(s))", fingerprint, len(records))

    def _fetch_failed(self, fingerprint: int, exc: Exception) -> None:
        if not isinstance(exc, MediaDashError):
            raise exc
        if not self._is_current(fingerprint):
            self.logger.debug("Listing #%d failed after being superseded: %s", fingerprint, exc.message)
            return
        self._fail("Failed to load files.", exc)

    def _settle(self, fingerprint: int) -> None:
        if self._is_current(fingerprint):
            self.loading = False
            self._notify()

    def _replay(self, fingerprint: int, records: List[FileRecord]) -> List[FileRecord]:
        result = list(records)
        for seq, op, payload in self._journal:
            if seq < fingerprint:
                continue
            if op == "delete":
                result = [record for record in result if record.id != payload]
            elif op == "prepend":
                result = _merge_front(payload, result)
        self._journal = [entry for entry in self._journal if entry[0] >= fingerprint]
        return result

    def _fail(self, message: str, exc: MediaDashError) -> None:
        self.error = SESSION_EXPIRED if isinstance(exc, AuthFailure) else message
        self.logger.warning("%s %s", message, exc.message)
        self._notify()

    # -- incremental mutations ------------------------------------------------

    def _journal_entry(self, op: str, payload: Union[str, List[FileRecord]]) -> None:
        if self.loading:
            self._journal.append((self._seq, op, payload))

    def find(self, file_id: str) -> Optional[FileRecord]:
        return next((record for record in self.records if record.id == file_id), None)

    async def delete_record(self, file_id: str) -> bool:
        try:
            await api.delete_file(self.client, file_id)
        except MediaDashError as exc:
            self._fail("Failed to delete file.", exc)
            return False
        self.records = [record for record in self.records if record.id != file_id]
        self._journal_entry("delete", file_id)
        self.error = None
        self._notify()
        return True

    async def bump_view_count(self, file_id: str) -> bool:
        try:
            await api.bump_view_count(self.client, file_id)
        except MediaDashError as exc:
            self._fail("Failed to update view count.", exc)
            return False
        self.records = [
            replace(record, view_count=record.view_count + 1) if record.id == file_id else record
            for record in self.records
        ]
        self._notify()
        return True

    def prepend(self, records: Sequence[FileRecord]) -> None:
        fresh = list(records)
        if not fresh:
            return
        self.records = _merge_front(fresh, self.records)
        self._journal_entry("prepend", fresh)
        self._notify()

    def reset(self) -> None:
        self._cancel_debounce()
        self._issued = None
        self._journal = []
        self.query = ListingQuery()
        self.records = []
        self.loading = False
        self.error = None
        self._notify()

    async def wait_idle(self) -> None:
        await self._runner.drain()
