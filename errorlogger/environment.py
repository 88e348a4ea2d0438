"""environment.py - Facts about the process and the current request.

These providers only collect data; nothing here decides what is logged. The
payload assembler combines their snapshots with the record:

    SystemProbe.snapshot()  memory, timing, OS, host and container facts
    environment_snapshot()  app environment name, interpreter, execution mode
    cli_snapshot()          argv, script, working directory, user
    web_snapshot()          request facts taken from a WSGI environ

Web snapshots are returned unsanitized; redaction of query parameters,
headers and body happens in the payload assembler.
"""

import getpass
import json
import os
import platform
import socket
import sys
import threading
import time
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import parse_qs
from wsgiref.util import request_uri

import psutil

from .gates import local_now

CLI = "cli"
WEB = "web"

_CGROUP_MARKERS = ("docker", "kubepods", "containerd", "lxc", "podman")


class SystemProbe:
    """Samples process-level facts with psutil.

    The probe remembers the highest RSS it has observed, which is reported as
    the memory peak.
    """

    def __init__(self) -> None:
        self._process = psutil.Process(os.getpid())
        self._peak = 0
        self._lock = threading.Lock()
        self._container: Optional[bool] = None

    def memory_usage(self) -> int:
        """Current resident set size in bytes."""
        rss = self._process.memory_info().rss
        with self._lock:
            self._peak = max(self._peak, rss)
        return rss

    def snapshot(self) -> Dict[str, Any]:
        usage = self.memory_usage()
        now = local_now()
        return {
            "memory_usage": usage,
            "memory_peak": self._peak,
            "memory_limit": psutil.virtual_memory().total,
            "execution_time": round(time.time() - self._process.create_time(), 4),
            "os": f"{platform.system()} {platform.release()}".strip(),
            "timezone": now.tzname(),
            "hostname": socket.gethostname(),
            "pid": os.getpid(),
            "container": self.in_container(),
        }

    def in_container(self) -> bool:
        if self._container is None:
            self._container = _detect_container()
        return self._container


def _detect_container() -> bool:
    if os.path.exists("/.dockerenv") or os.environ.get("KUBERNETES_SERVICE_HOST"):
        return True
    try:
        with open("/proc/1/cgroup", "r", encoding="utf-8") as f:
            cgroup = f.read()
    except OSError:
        return False
    return any(marker in cgroup for marker in _CGROUP_MARKERS)


def environment_snapshot(environment_name: str, mode: str) -> Dict[str, Any]:
    return {
        "name": environment_name,
        "python_version": platform.python_version(),
        "python_implementation": platform.python_implementation(),
        "mode": mode,
    }


def cli_snapshot() -> Dict[str, Any]:
    try:
        user: Optional[str] = getpass.getuser()
    except (KeyError, OSError):
        user = None
    return {
        "argv": list(sys.argv),
        "script": os.path.abspath(sys.argv[0]) if sys.argv and sys.argv[0] else None,
        "cwd": os.getcwd(),
        "user": user,
    }


# -------------------------------------------------------------------------- #
# Web requests
# -------------------------------------------------------------------------- #


def request_headers(environ: Mapping[str, Any]) -> Dict[str, str]:
    """Rebuild HTTP headers from the ``HTTP_*`` keys of a WSGI environ.

    ``HTTP_USER_AGENT`` becomes ``User-Agent``. ``CONTENT_TYPE`` and
    ``CONTENT_LENGTH`` are included when present.
    """
    headers = {}
    for name, value in environ.items():
        if name.startswith("HTTP_"):
            key = "-".join(part.capitalize() for part in name[5:].split("_"))
            headers[key] = value
    for name in ("CONTENT_TYPE", "CONTENT_LENGTH"):
        if environ.get(name):
            headers["-".join(part.capitalize() for part in name.split("_"))] = environ[name]
    return headers


def web_snapshot(
    environ: Mapping[str, Any],
    body: Union[Mapping[str, Any], str, bytes, None] = None,
    session: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Describe a WSGI request.

    Args:
        environ: The WSGI environ of the request.
        body: Request body if the application has read it. Bytes and strings
            are decoded as JSON or form data according to the content type.
        session: Session mapping when the application has an active session.
    """
    forwarded = environ.get("HTTP_X_FORWARDED_FOR", "")
    client_ip = forwarded.split(",")[0].strip() if forwarded else environ.get("REMOTE_ADDR")
    https = environ.get("wsgi.url_scheme") == "https" or environ.get("HTTPS", "").lower() in ("on", "1")
    query_string = environ.get("QUERY_STRING", "")
    port = environ.get("SERVER_PORT")

    return {
        "method": environ.get("REQUEST_METHOD"),
        "url": request_uri(dict(environ)) if "wsgi.url_scheme" in environ else environ.get("PATH_INFO"),
        "path": environ.get("PATH_INFO", "") or "/",
        "query_string": query_string,
        "ip": client_ip,
        "user_agent": environ.get("HTTP_USER_AGENT"),
        "referrer": environ.get("HTTP_REFERER"),
        "protocol": environ.get("SERVER_PROTOCOL"),
        "port": int(port) if port and str(port).isdigit() else port,
        "host": environ.get("HTTP_HOST") or environ.get("SERVER_NAME"),
        "https": https,
        "query_params": _flatten_query(parse_qs(query_string, keep_blank_values=True)),
        "headers": request_headers(environ),
        "body": _decode_body(body, environ.get("CONTENT_TYPE", "")),
        "session": _session_summary(session),
    }


def _flatten_query(params: Mapping[str, list]) -> Dict[str, Any]:
    return {key: values[0] if len(values) == 1 else values for key, values in params.items()}


def _decode_body(body: Union[Mapping[str, Any], str, bytes, None], content_type: str) -> Any:
    if body is None or isinstance(body, Mapping):
        return dict(body) if body is not None else None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not body:
        return None
    if "json" in content_type:
        try:
            return json.loads(body)
        except ValueError:
            return body
    if "x-www-form-urlencoded" in content_type:
        return _flatten_query(parse_qs(body, keep_blank_values=True))
    return body


def _session_summary(session: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if session is None:
        return None
    return {"active": True, "keys": sorted(str(key) for key in session)}
