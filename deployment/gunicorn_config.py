"""
Gunicorn settings for PlazaFuel.

    gunicorn -c deployment/gunicorn_config.py "app:create_app('production')"

Paths and sizing come from PLAZAFUEL_* environment variables so the same file
works on every plaza server.
"""
import multiprocessing
import os

APP_DIR = os.environ.get('PLAZAFUEL_HOME', '/srv/plazafuel')
LOG_DIR = os.path.join(APP_DIR, 'logs')

bind = os.environ.get('PLAZAFUEL_BIND', '127.0.0.1:8000')

# Exports build whole PDF/XLSX files in memory, keep the worker count modest
workers = int(os.environ.get('PLAZAFUEL_WORKERS', min(multiprocessing.cpu_count() * 2 + 1, 5)))
worker_class = 'sync'
timeout = int(os.environ.get('PLAZAFUEL_TIMEOUT', 120))
max_requests = 500
max_requests_jitter = 50
keepalive = 5

accesslog = os.path.join(LOG_DIR, 'gunicorn_access.log')
errorlog = os.path.join(LOG_DIR, 'gunicorn_error.log')
loglevel = os.environ.get('PLAZAFUEL_LOG_LEVEL', 'info')
access_log_format = '%(h)s %(u)s %(t)s "%(r)s" %(s)s %(b)s %(D)s'

proc_name = 'plazafuel'
pidfile = os.path.join(APP_DIR, 'gunicorn.pid')
umask = 0o007

limit_request_line = 4094
limit_request_fields = 100


def on_starting(server):
    os.makedirs(LOG_DIR, exist_ok=True)


def when_ready(server):
    server.log.info("PlazaFuel listening on %s with %s workers", bind, workers)


def worker_abort(worker):
    worker.log.warning("PlazaFuel worker %s aborted (timeout after %ss)", worker.pid, timeout)
