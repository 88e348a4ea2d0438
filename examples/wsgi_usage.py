"""examples/wsgi_usage.py - Per-request context for a WSGI application.

Wraps a small WSGI app in ErrorLoggerMiddleware and installs the interpreter
hooks. Every record logged during a request carries the request snapshot and
a request id; an unhandled exception is logged as CRITICAL and re-raised.

Run:
    python examples/wsgi_usage.py
    curl 'http://127.0.0.1:8000/orders?id=3&token=abc'
    curl 'http://127.0.0.1:8000/crash'
"""

import logging
from wsgiref.simple_server import make_server

from errorlogger import ErrorLogger, ErrorLoggerMiddleware, LoggerConfig, install_hooks

logging.basicConfig(level=logging.INFO)

error_logger = ErrorLogger(
    LoggerConfig.from_env(
        project_hash="demo-project",
        use_remote_logging=False,
        environment_name="development",
        min_log_level="info",
    )
)


def app(environ, start_response):
    path = environ.get("PATH_INFO", "/")
    if path == "/crash":
        raise RuntimeError("simulated handler failure")

    error_logger.info("Serving request", {"path": path})
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"ok\n"]


if __name__ == "__main__":
    hooks = install_hooks(error_logger)
    try:
        with make_server("127.0.0.1", 8000, ErrorLoggerMiddleware(app, error_logger)) as server:
            print("Serving on http://127.0.0.1:8000 (Ctrl-C to stop)")
            server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        hooks.uninstall()
        error_logger.close()
