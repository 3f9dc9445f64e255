import logging
import os
import threading

import pos_config as cfg
from pos_server import app, SYNC
from sync_worker import poll_forever


def start_sync_poller(debug: bool):
    if os.getenv('SYNC_POLLER_AUTO_START', '1') != '1':
        return None
    # With the reloader on, only the child process serves requests.
    if debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return None
    stop = threading.Event()
    thread = threading.Thread(
        target=poll_forever,
        args=(SYNC, cfg.SYNC_INTERVAL, stop),
        daemon=True,
        name='sync-poller',
    )
    thread.start()
    return stop


if __name__ == '__main__':
    logging.basicConfig(level=cfg.log_level(), format='%(asctime)s %(levelname)s %(name)s %(message)s')
    debug = os.getenv('FLASK_DEBUG', '0') == '1'
    port = int(os.getenv('PORT', '5000'))
    host = os.getenv('HOST', '0.0.0.0')
    poller = start_sync_poller(debug)
    try:
        app.run(host=host, port=port, debug=debug)
    finally:
        if poller:
            poller.set()
        SYNC.close()
