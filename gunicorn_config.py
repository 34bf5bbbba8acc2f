"""
Gunicorn configuration for initializr-mirror production deployment

    gunicorn -c gunicorn_config.py initializr_mirror:app
"""
import multiprocessing
import os

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '8080')}"
backlog = 2048

# Worker processes
# Proxying is I/O-bound: gevent workers each serve many requests concurrently,
# one greenlet per request. The rewrite pipeline runs synchronously inside it.
workers = multiprocessing.cpu_count() + 1
worker_class = 'gevent'
worker_connections = 1000  # Max concurrent connections per worker
timeout = 90  # above the upstream read timeout
graceful_timeout = 30
keepalive = 5

# Logging
accesslog = '-'  # Log to stdout
errorlog = '-'   # Log to stderr
loglevel = os.environ.get('LOG_LEVEL', 'info').lower()
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = 'initializr-mirror'
