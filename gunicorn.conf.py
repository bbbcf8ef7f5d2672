"""
Gunicorn configuration for the FitPoints service.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Worker configuration
# Threads share one worker's member locks; workers coordinate through the database
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
threads = int(os.getenv('GUNICORN_THREADS', '4'))
worker_class = 'gthread'
timeout = 30
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

# Process naming
proc_name = 'fitpoints'

# Preload app so the expiry sweep scheduler starts once, in the master
preload_app = True

# Graceful restart
graceful_timeout = 30


def on_starting(server):
    server.log.info("Starting FitPoints server...")


def on_exit(server):
    server.log.info("FitPoints server shutting down...")
