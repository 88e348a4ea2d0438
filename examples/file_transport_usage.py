"""examples/file_transport_usage.py - Local file logging with rotation and gates.

Demonstrates a file-only setup (no remote endpoint) with:
    - max_bytes rotation of the log file to <path>.bak
    - the per-minute rate limit
    - message filters that drop noisy records

Run:
    python examples/file_transport_usage.py
    cat /tmp/errorlogger_demo/application.log
"""

import logging
import os

from errorlogger import ErrorLogger, LoggerConfig

# ---------------------------------------------------------------------------
# Setup: file transport only, small file so rotation is visible
# ---------------------------------------------------------------------------
LOG_FILE = "/tmp/errorlogger_demo/application.log"

logging.basicConfig(level=logging.INFO)

config = LoggerConfig.from_env(
    project_hash="demo-project",
    use_remote_logging=False,
    log_file_path=LOG_FILE,
    log_file_max_bytes=2 * 1024,  # rotate when file exceeds 2 KB
    min_log_level="info",
    rate_limit_per_minute=20,
    message_filters=["^healthcheck"],
)


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    with ErrorLogger(config) as error_logger:
        error_logger.info("healthcheck ok")  # filtered out

        emitted = 0
        for i in range(50):
            if error_logger.info("Processed batch", {"batch": i, "rows": i * 100}):
                emitted += 1
        print(f"Emitted {emitted} of 50 records (rate limit: {config.rate_limit_per_minute}/min)")

    for path in (LOG_FILE + ".bak", LOG_FILE):
        if os.path.exists(path):
            print(f"\n--- Contents of {path} ---")
            with open(path) as f:
                print(f.read())
