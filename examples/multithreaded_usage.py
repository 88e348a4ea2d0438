"""examples/multithreaded_usage.py - One ErrorLogger shared by worker threads.

Demonstrates that:
    - gate state (rate limit, circuit breaker) is shared across threads
    - all threads share the process-wide request id
    - async_processing hands delivery to a background thread; close() drains it
    - a crash in a thread is reported through the threading hook

Run:
    python examples/multithreaded_usage.py
"""

import logging
import threading

from errorlogger import ErrorLogger, LoggerConfig, install_hooks

logging.basicConfig(level=logging.INFO, format="%(threadName)s %(name)s: %(message)s")

error_logger = ErrorLogger(
    LoggerConfig.from_env(
        project_hash="demo-project",
        use_remote_logging=False,
        async_processing=True,
        circuit_breaker_threshold=5,
        circuit_breaker_cooldown=30,
    )
)


def worker(worker_id: int) -> None:
    for job in range(3):
        error_logger.error("Job failed", {"worker": worker_id, "job": job})
    if worker_id == 3:
        raise RuntimeError(f"worker {worker_id} crashed")


if __name__ == "__main__":
    hooks = install_hooks(error_logger, chain=False)

    threads = [threading.Thread(target=worker, args=(i,), name=f"worker-{i}") for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    print(f"Circuit open after burst: {error_logger.gates.circuit_open}")
    hooks.uninstall()
    error_logger.close()
