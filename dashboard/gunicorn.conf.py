"""
Gunicorn configuration for production deployment.

Usage:
    gunicorn -c dashboard/gunicorn.conf.py dashboard.api_server:app

One worker process with a thread pool: the consumed-challenge ledger, the
cached management token and the sidecar lock all live in process memory.
"""

import os

# Server socket
bind = os.getenv("GUNICORN_BIND", f"{os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '3000')}")
backlog = 2048

# Worker processes
workers = 1
worker_class = "gthread"
threads = int(os.getenv("GUNICORN_THREADS", "8"))
timeout = 30  # backend calls are bounded at 5s each
keepalive = 5

# Graceful restart
graceful_timeout = 30

# Logging
accesslog = "-"  # stdout
errorlog = "-"   # stderr
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "directory-gateway"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190
