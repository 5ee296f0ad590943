import os
import sys

# Add src directory to Python path so 'precedent_finder' package can be found
sys.path.append(os.path.join(os.getcwd(), 'src'))

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Each request holds one sequential retrieval loop; threads keep slow upstream
# searches from starving the worker.
workers = int(os.environ.get('GUNICORN_WORKERS', '1'))
threads = int(os.environ.get('GUNICORN_THREADS', '4'))
worker_class = "gthread"
worker_tmp_dir = "/dev/shm"

# The scheduler wall-clock budget (SCHEDULER_MAX_ELAPSED_MS) must fit inside the worker timeout.
timeout = max(60, int(os.environ.get('SCHEDULER_MAX_ELAPSED_MS', '22000')) // 1000 + 30)
preload_app = False
accesslog = "-"
errorlog = "-"
loglevel = "info"
