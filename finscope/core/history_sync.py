"""Incremental playback-history synchronization from Jellyfin into the local store.

Each upstream account is paged newest-first. A per-account watermark (the
newest ``date_played`` already stored) lets a pass stop as soon as it reaches
an item it has already seen. Items without a reported ``DatePlayed`` get the
sync time as their timestamp; because that value says nothing about where the
item sits relative to the watermark, such items are only stored while the
account has no watermark timestamp yet.
"""

from __future__ import annotations

import threading
from contextlib import closing
from typing import Any, Callable, Iterable, List, Optional, Tuple

import requests

from finscope.core.history_db import HistoryDB
from finscope.core.logger import setup_logger
from finscope.core.models import AccountRef, PageOutcome, PlaybackRecord, ServerConfig, SyncResult
from finscope.core.utils import now_timestamp, timestamp_is_after
from finscope.jellyfin.api import JellyfinClient

logger = setup_logger(__name__)

DEFAULT_PAGE_SIZE = 500

# Page/account-list failures that only abort the current account.
UPSTREAM_ERRORS = (requests.exceptions.RequestException, ValueError)

ClientFactory = Callable[[ServerConfig], JellyfinClient]


def resolve_accounts(client: Any, config: ServerConfig) -> List[AccountRef]:
    """List upstream accounts, falling back to the configured account on failure."""
    try:
        users = client.list_users()
    except UPSTREAM_ERRORS as exc:
        logger.warning(f"Could not list Jellyfin users for {config.server_url}: {exc}")
        users = []

    accounts: List[AccountRef] = []
    seen: set[str] = set()
    for user in users:
        account_id = str(user.get("Id") or "").strip()
        if not account_id or account_id in seen:
            continue
        seen.add(account_id)
        accounts.append(AccountRef(id=account_id, display_name=str(user.get("Name") or account_id)))

    if accounts:
        return accounts

    fallback_id = (config.jellyfin_user_id or "").strip()
    if not fallback_id:
        logger.warning(f"No Jellyfin accounts available to sync for {config.server_url}")
        return []
    logger.info(f"Falling back to configured Jellyfin user {fallback_id} for {config.server_url}")
    return [AccountRef(id=fallback_id, display_name="Admin")]


class _AccountPass:
    """Mutable state of one account's pass: inserted count and newest timestamp seen."""

    def __init__(self, last_synced: Optional[str]):
        self.last_synced = last_synced
        self.inserted = 0
        self.max_date_played: Optional[str] = None

    def observe(self, date_played: str) -> None:
        if self.max_date_played is None or timestamp_is_after(date_played, self.max_date_played):
            self.max_date_played = date_played


class HistorySyncService:
    """Synchronizes Jellyfin played items into ``HistoryDB``.

    Calls for the same server are serialized; different servers run
    independently.
    """

    def __init__(
        self,
        history_db: HistoryDB,
        client_factory: ClientFactory,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be a positive integer")
        self._history_db = history_db
        self._client_factory = client_factory
        self._page_size = page_size
        self._locks_guard = threading.Lock()
        self._server_locks: dict[str, threading.Lock] = {}

    def _server_lock(self, server_url: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._server_locks.get(server_url)
            if lock is None:
                lock = threading.Lock()
                self._server_locks[server_url] = lock
            return lock

    def synchronize(self, config: ServerConfig, force_full: bool = False) -> SyncResult:
        """Pull new playback history for every account on the configured server."""
        server_url = config.server_url
        with self._server_lock(server_url):
            if force_full:
                removed = self._history_db.delete_watermarks(server_url)
                logger.info(f"Forced full history sync for {server_url}: cleared {removed} watermark(s)")

            result = SyncResult()
            with closing(self._client_factory(config)) as client:
                accounts = resolve_accounts(client, config)
                for account in accounts:
                    inserted, completed = self._sync_account(client, server_url, account)
                    result.new_entries += inserted
                    if completed:
                        result.accounts_synced += 1

            result.total_entries = self._history_db.count_records(server_url)
            logger.info(
                f"History sync for {server_url}: {result.new_entries} new, "
                f"{result.total_entries} total, {result.accounts_synced}/{len(accounts)} account(s)"
            )
            return result

    def _sync_account(self, client: Any, server_url: str, account: AccountRef) -> Tuple[int, bool]:
        """Page one account's history. Returns (rows inserted, completed without fetch error)."""
        watermark = self._history_db.get_watermark(server_url, account.id)
        state = _AccountPass(watermark.last_sync if watermark else None)
        completed = True
        start_index = 0

        while True:
            try:
                page = client.get_played_items(
                    account.id,
                    start_index=start_index,
                    limit=self._page_size,
                )
            except UPSTREAM_ERRORS as exc:
                logger.error(f"History sync for user {account.display_name} stopped at offset {start_index}: {exc}")
                completed = False
                break

            items = page.get("Items") or []
            if start_index == 0:
                total = page.get("TotalRecordCount")
                logger.info(
                    f"User {account.display_name}: {total if total is not None else len(items)} played items found"
                )
            if not items:
                break

            outcome = self._process_page(server_url, account, items, state)
            if outcome is PageOutcome.STOP or len(items) < self._page_size:
                break
            start_index += self._page_size

        if completed and state.max_date_played is not None:
            self._history_db.upsert_watermark(
                server_url,
                account.id,
                state.max_date_played,
                state.inserted,
            )
        elif state.inserted:
            # Older pages were never read; the next pass must walk back to them.
            self._history_db.upsert_watermark(server_url, account.id, None, state.inserted)

        logger.info(f"User {account.display_name}: {state.inserted} new entries synced")
        return state.inserted, completed

    def _process_page(
        self,
        server_url: str,
        account: AccountRef,
        items: Iterable[Any],
        state: _AccountPass,
    ) -> PageOutcome:
        """Store the new items of one page in a single transaction."""
        outcome = PageOutcome.CONTINUE
        batch: List[PlaybackRecord] = []

        for item in items:
            if not isinstance(item, dict):
                continue
            item_id = str(item.get("Id") or "").strip()
            if not item_id:
                continue

            reported = item.get("DatePlayed")
            has_real_timestamp = isinstance(reported, str) and bool(reported.strip())
            date_played = reported.strip() if has_real_timestamp else now_timestamp()

            if state.last_synced:
                if not has_real_timestamp:
                    continue
                if not timestamp_is_after(date_played, state.last_synced):
                    # Newest-first ordering: everything after this is already stored.
                    outcome = PageOutcome.STOP
                    break

            batch.append(
                PlaybackRecord(
                    server_url=server_url,
                    user_id=account.id,
                    item_id=item_id,
                    date_played=date_played,
                    item_name=item.get("Name"),
                    item_type=item.get("Type"),
                )
            )
            state.observe(date_played)

        state.inserted += self._history_db.insert_playback_records(batch)
        return outcome


def run_sync_with_empty_retry(
    sync_service: HistorySyncService,
    config: ServerConfig,
    *,
    force_full: bool = False,
) -> SyncResult:
    """Run a sync; if the store is still empty afterwards, retry once as a forced resync."""
    result = sync_service.synchronize(config, force_full=force_full)
    if not force_full and result.total_entries == 0:
        logger.info(f"History for {config.server_url} is empty after sync, retrying with full resync")
        retry = sync_service.synchronize(config, force_full=True)
        retry.new_entries += result.new_entries
        return retry
    return result
