"""
Background scheduler for automated tasks.

Handles:
- Expiry sweep of stale pending redemption requests (interval)

The sweep is bookkeeping only: reads already treat a request past its window
as expired.
"""
import atexit
import os
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Flask app reference for job context


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER=true.
    Under gunicorn the app is preloaded, so it starts once in the master
    process; SCHEDULER_RUNNING keeps later app instances from starting another.
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        logger.debug('Scheduler disabled in testing mode')
        return None

    if not (os.getenv('FLASK_ENV') == 'production' or app.config.get('ENABLE_SCHEDULER')):
        logger.info('Scheduler disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return None

    if os.getenv('SCHEDULER_RUNNING') == 'true':
        logger.info('Scheduler already running in another process')
        return None

    if _scheduler is not None and _scheduler.running:
        return _scheduler

    _scheduler = BackgroundScheduler(
        timezone='UTC',
        job_defaults={
            'coalesce': True,  # Combine missed runs
            'max_instances': 1,  # Prevent concurrent runs
            'misfire_grace_time': 60
        }
    )

    _scheduler.add_job(
        run_expiry_sweep,
        trigger=IntervalTrigger(seconds=app.config['EXPIRY_SWEEP_INTERVAL_SECONDS']),
        id='redemption_expiry_sweep',
        name='Expire stale pending redemption requests',
        replace_existing=True
    )

    _scheduler.start()
    os.environ['SCHEDULER_RUNNING'] = 'true'
    atexit.register(shutdown_scheduler)
    logger.info(f"Scheduler started with {len(_scheduler.get_jobs())} jobs")
    return _scheduler


def run_expiry_sweep():
    """Job: expire stale pending requests inside an app context."""
    if _flask_app is None:
        logger.error('Expiry sweep skipped: scheduler has no app')
        return

    from ..services import get_redemption_service

    with _flask_app.app_context():
        result = get_redemption_service().sweep_expired()
        if not result['success']:
            logger.error(f"Expiry sweep failed: {result['error']}")
        elif result['expired']:
            logger.info(f"Expiry sweep: {result['expired']} requests expired")


def shutdown_scheduler():
    """Stop the scheduler; registered with atexit when it starts."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('Scheduler shut down')
    _scheduler = None
    os.environ.pop('SCHEDULER_RUNNING', None)


def get_scheduler():
    return _scheduler
