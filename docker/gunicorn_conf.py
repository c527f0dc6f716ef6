# Gunicorn configuration for SiteVault
# Run: gunicorn -c docker/gunicorn_conf.py "sitevault:create_app()"
# Only one worker may own the auto-backup scheduler

import os
import logging

logger = logging.getLogger('gunicorn.error')

bind = os.environ.get('BIND', '0.0.0.0:5000')
workers = int(os.environ.get('WEB_CONCURRENCY', 2))
# Backups and restores run inside the request
timeout = int(os.environ.get('GUNICORN_TIMEOUT', 900))


def post_fork(server, worker):
    """
    Called in each worker right after fork, before the app is loaded.

    Designates the first worker (worker.age == 1) as the scheduler owner so
    the auto-backup job never runs twice.

    Args:
        server: Gunicorn arbiter
        worker: Gunicorn worker instance (age counts spawned workers: 1, 2, 3, ...)
    """
    if worker.age == 1:
        os.environ['SCHEDULER_WORKER'] = 'true'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): Designated as SCHEDULER OWNER")
    else:
        os.environ['SCHEDULER_WORKER'] = 'false'
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): Standard HTTP worker (scheduler disabled)")
