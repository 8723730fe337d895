# Configurazione Gunicorn per il receiver
# Avvio: gunicorn -c gunicorn.conf.py 'timeseries_receiver.app:create_app()'
import multiprocessing

from timeseries_receiver.config import load_config

_config = load_config()

# Binding
bind = _config.endpoint

# Workers
workers = multiprocessing.cpu_count() * 2 + 1
worker_class = "sync"

# Timeout (RECEIVER_READ_TIMEOUT / RECEIVER_WRITE_TIMEOUT)
timeout = int(max(_config.read_timeout, _config.write_timeout))
graceful_timeout = int(_config.write_timeout)
keepalive = 2

# Logging
accesslog = "-"
errorlog = "-"
loglevel = _config.log_level.lower()

# Process naming
proc_name = "timeseries-binary-receiver"

# Preload app
preload_app = True

# Max requests per worker
max_requests = 1000
max_requests_jitter = 50

# Worker restart
worker_tmp_dir = "/dev/shm"

# Security
limit_request_line = 4094
limit_request_fields = 100
limit_request_field_size = 8190
