"""
Periodic hiring maintenance: drains the identity-sync outbox and expires
overdue job requests. Runs in one daemon thread per process.
"""

import atexit
import logging
import schedule
import time
import threading

logger = logging.getLogger(__name__)

POLL_SECONDS = 5
BACKOFF_SECONDS = 60


class MaintenanceScheduler:
    """Owns a private `schedule.Scheduler` so jobs never leak into the module default"""

    def __init__(self):
        self.app = None
        self.jobs = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self, app):
        if self.running:
            logger.warning("Maintenance scheduler is already running")
            return

        self.app = app
        drain_minutes = int(app.config.get('OUTBOX_DRAIN_INTERVAL_MINUTES', 1))
        sweep_minutes = int(app.config.get('EXPIRY_SWEEP_INTERVAL_MINUTES', 15))
        self.jobs.every(drain_minutes).minutes.do(self.drain_outbox)
        self.jobs.every(sweep_minutes).minutes.do(self.expire_job_requests)

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='hiring-maintenance', daemon=True)
        self._thread.start()
        logger.info(f"Maintenance scheduler started: outbox every {drain_minutes}m, "
                    f"expiry sweep every {sweep_minutes}m")

    def stop(self):
        if not self.running:
            return
        self._stop.set()
        self.jobs.clear()
        self._thread.join(timeout=30)
        self._thread = None
        logger.info("Maintenance scheduler stopped")

    def _loop(self):
        while not self._stop.is_set():
            try:
                self.jobs.run_pending()
                self._stop.wait(POLL_SECONDS)
            except Exception as e:
                logger.error(f"Maintenance loop error: {e}", exc_info=True)
                self._stop.wait(BACKOFF_SECONDS)

    def _run_job(self, name, job):
        from services import get_services
        from models import db

        started = time.monotonic()
        with self.app.app_context():
            try:
                result = job(get_services(self.app))
                logger.debug(f"{name} finished in {time.monotonic() - started:.2f}s: {result}")
                return result
            except Exception as e:
                logger.error(f"{name} failed: {e}", exc_info=True)
            finally:
                db.session.remove()

    def drain_outbox(self):
        stats = self._run_job('Identity outbox drain', lambda services: services.identity_sync.drain_pending())
        if stats and stats['failed']:
            logger.error(f"Identity outbox parked {stats['failed']} updates")
        return stats

    def expire_job_requests(self):
        return self._run_job('Job request expiry sweep', lambda services: services.job_requests.expire_overdue())


maintenance = MaintenanceScheduler()


def init_background_tasks(app):
    """Start maintenance jobs for this process and stop them at interpreter exit"""
    try:
        maintenance.start(app)
    except Exception as e:
        logger.error(f"Could not start maintenance scheduler: {e}")
        return
    atexit.register(maintenance.stop)
