"""Run the retry dispatcher inside the Flask app context.

Usage:
  source .venv/bin/activate
  python scripts/run_retry_worker.py

Jobs claimed from the Redis retry queue are handed to the processing
service; the loop polls every RETRY_WORKER_INTERVAL_SECONDS until interrupted.
"""

import sys
import os
import signal

from prometheus_client import start_http_server

# Ensure project root is on sys.path when running from scripts/ or other cwd
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
  sys.path.insert(0, ROOT)

from callnotes import create_app
from callnotes.jobs.retry_worker import RetryDispatcher


def main():
  app = create_app()
  if not app.config.get('RETRY_WORKER_ENABLED', True):
    print('RETRY_WORKER_ENABLED is off; exiting')
    return
  metrics_port = app.config.get('METRICS_PORT')
  if metrics_port:
    start_http_server(int(metrics_port))
    print('Serving metrics on port', metrics_port)
  dispatcher = RetryDispatcher(app)
  signal.signal(signal.SIGTERM, lambda *_: dispatcher.stop())
  print('Retry worker starting (pid', os.getpid(), ')')
  try:
    dispatcher.run_forever()
  except KeyboardInterrupt:
    dispatcher.stop()
  finally:
    print('Retry worker exiting (pid', os.getpid(), ')')


if __name__ == '__main__':
  main()
