from __future__ import annotations

import html
import logging
import signal
from socketserver import ThreadingMixIn
from threading import Thread
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

from .collector import SmartThingsCollector


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True
    allow_reuse_address = True


class QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        return


def build_registry(collector: SmartThingsCollector) -> CollectorRegistry:
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    registry.register(collector)
    return registry


def landing_page(telemetry_path: str) -> bytes:
    return (
        "<html>\n"
        "<head><title>SmartThings Exporter</title></head>\n"
        "<body>\n"
        "<h1>SmartThings Exporter</h1>\n"
        f"<p><a href='{html.escape(telemetry_path, quote=True)}'>Metrics</a></p>\n"
        "</body>\n"
        "</html>\n"
    ).encode("utf-8")


def make_app(registry: CollectorRegistry, telemetry_path: str, collector: SmartThingsCollector):
    page = landing_page(telemetry_path)

    def app(environ, start_response):
        path = environ.get("PATH_INFO", "")
        if path == telemetry_path:
            output = generate_latest(registry)
            start_response("200 OK", [("Content-Type", CONTENT_TYPE_LATEST)])
            return [output]
        if path == "/":
            start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
            return [page]
        if path in ("/-/healthy", "/healthz"):
            start_response("200 OK", [("Content-Type", "text/plain")])
            return [b"ok"]
        if path in ("/-/ready", "/readyz"):
            if collector.is_ready():
                start_response("200 OK", [("Content-Type", "text/plain")])
                return [b"ready"]
            start_response("503 Service Unavailable", [("Content-Type", "text/plain")])
            return [b"not_ready"]
        start_response("404 Not Found", [("Content-Type", "text/plain")])
        return [b"not found"]

    return app


def serve(host: str, port: int, telemetry_path: str, collector: SmartThingsCollector) -> None:
    registry = build_registry(collector)
    app = make_app(registry, telemetry_path, collector)

    httpd = make_server(
        host,
        port,
        app,
        server_class=ThreadingWSGIServer,
        handler_class=QuietHandler,
    )

    def _sig(*_):
        Thread(target=httpd.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, _sig)
    signal.signal(signal.SIGINT, _sig)

    logging.info("listening=%s:%s telemetry_path=%s", host if host else "0.0.0.0", port, telemetry_path)

    try:
        httpd.serve_forever()
    finally:
        httpd.server_close()
