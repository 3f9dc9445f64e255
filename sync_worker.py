#!/usr/bin/env python3
"""
Ledger sync status poller

Refreshes the Zoho sync snapshot on an interval and logs the counts plus any
sales that need an operator retry. It never retries on its own.

Env vars:
  POS_API_BASE_URL   Backend base URL (default: http://localhost:3000)
  POS_API_TOKEN      Bearer token for the backend
  SYNC_INTERVAL      seconds between polls (default: 30)
  POS_SYNC_STATUS_LIMIT  sales per snapshot (default: 20)

Run:
  python sync_worker.py
"""
import logging
import threading
from typing import Optional

import pos_config as cfg
from sync_service import SyncReconciliationService

logger = logging.getLogger('sync_worker')


def poll_once(service: SyncReconciliationService) -> Optional[dict]:
    snapshot = service.fetch_sync_status(no_cache=True)
    if snapshot is None:
        return None
    summary = snapshot['summary']
    logger.info(
        'total=%s synced=%s failed=%s no_zoho_id=%s',
        summary['total'], summary['synced'], summary['failed'], summary['no_zoho_id'],
    )
    pending = [row['sale_id'] for row in snapshot['sales'] if row['can_retry']]
    if pending:
        logger.warning('%d sale(s) awaiting retry: %s', len(pending), ', '.join(f'#{sid}' for sid in pending))
    return snapshot


def poll_forever(service: SyncReconciliationService, interval: float, stop: threading.Event) -> None:
    logger.info('polling sync status every %ss (limit=%s)', interval, service.limit)
    while not stop.is_set():
        poll_once(service)
        stop.wait(interval)


def main():
    logging.basicConfig(level=cfg.log_level(), format='[sync] %(asctime)s %(levelname)s %(message)s')
    service = SyncReconciliationService()
    stop = threading.Event()
    try:
        poll_forever(service, cfg.SYNC_INTERVAL, stop)
    except KeyboardInterrupt:
        logger.info('exiting on Ctrl+C')
    finally:
        service.close()
        service.channel.clear()


if __name__ == '__main__':
    main()
