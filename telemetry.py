import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator
from urllib.parse import urlparse, urlunparse

SERVICE_NAME = "workshop-tool"

_OTEL_READY = False
_OTEL_ENABLED = False


class _NoopSpan:
    def set_attribute(self, _key: str, _value: Any) -> None:
        return


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    trace = _load_trace_module()
    if trace is None:
        yield _NoopSpan()
        return

    tracer = trace.get_tracer(SERVICE_NAME)
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def init_telemetry(service_version: str = "") -> bool:
    global _OTEL_READY, _OTEL_ENABLED

    if _OTEL_READY:
        return _OTEL_ENABLED

    _OTEL_READY = True
    dsn = os.environ.get("UPTRACE_DSN", "").strip()
    if not dsn:
        logging.debug("UPTRACE_DSN is not set, OpenTelemetry is disabled")
        _OTEL_ENABLED = False
        return False

    try:
        import uptrace

        uptrace.configure_opentelemetry(
            dsn=dsn,
            service_name=os.environ.get("OTEL_SERVICE_NAME", SERVICE_NAME).strip(),
            service_version=os.environ.get("OTEL_SERVICE_VERSION", service_version).strip(),
            deployment_environment=os.environ.get("OTEL_DEPLOYMENT_ENVIRONMENT", "").strip(),
        )
        _instrument_http_clients()
        _OTEL_ENABLED = True
        logging.info("OpenTelemetry is enabled and exporting to Uptrace")
        return True
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError):
        logging.exception("Failed to initialize OpenTelemetry")
        _OTEL_ENABLED = False
        return False


def shutdown_telemetry() -> None:
    if not _OTEL_ENABLED:
        return

    try:
        import uptrace

        uptrace.shutdown()
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError):
        logging.exception("Failed to shutdown OpenTelemetry cleanly")


def _instrument_http_clients() -> None:
    try:
        from opentelemetry.instrumentation.requests import RequestsInstrumentor

        RequestsInstrumentor().instrument(request_hook=_requests_request_hook)
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError) as exc:
        logging.warning("Requests instrumentation is unavailable: %s", exc)

    try:
        from opentelemetry.instrumentation.aiohttp_client import (
            AioHttpClientInstrumentor,
        )

        AioHttpClientInstrumentor().instrument(request_hook=_aiohttp_request_hook)
    except (ImportError, RuntimeError, ValueError, TypeError, AttributeError) as exc:
        logging.warning("aiohttp instrumentation is unavailable: %s", exc)


def _load_trace_module():
    try:
        from opentelemetry import trace

        return trace
    except ImportError:
        return None


def _requests_request_hook(span: Any, request_obj: Any) -> None:
    _tag_steam_call(span, getattr(request_obj, "method", ""), getattr(request_obj, "url", ""))


def _aiohttp_request_hook(span: Any, params: Any) -> None:
    _tag_steam_call(span, getattr(params, "method", ""), getattr(params, "url", ""))


def _tag_steam_call(span: Any, method: str, url: Any) -> None:
    if span is None:
        return
    is_recording = getattr(span, "is_recording", None)
    if callable(is_recording) and not is_recording():
        return
    clean_url = strip_query(str(url or ""))
    _set_span_attribute(span, "http.url", clean_url)
    endpoint = steam_endpoint(clean_url)
    if not endpoint:
        return
    _set_span_attribute(span, "steam.endpoint", endpoint)
    try:
        span.update_name(f"{(method or 'HTTP').upper()} {endpoint}")
    except (AttributeError, RuntimeError, ValueError, TypeError):
        pass


def _set_span_attribute(span: Any, key: str, value: Any) -> None:
    if span is None:
        return
    try:
        span.set_attribute(key, value)
    except (AttributeError, RuntimeError, ValueError, TypeError):
        pass


def steam_endpoint(url: str) -> str:
    """``.../ISteamRemoteStorage/GetPublishedFileDetails/v1/`` -> ``ISteamRemoteStorage.GetPublishedFileDetails``."""
    try:
        parts = [part for part in urlparse(url or "").path.split("/") if part]
    except ValueError:
        return ""
    if len(parts) < 2 or not parts[0].startswith("I"):
        return ""
    return f"{parts[0]}.{parts[1]}"


def strip_query(url: str) -> str:
    """Drop the query string, which carries the publisher key on Steam calls."""
    try:
        parsed = urlparse(url or "")
    except ValueError:
        return str(url or "")
    if not parsed.query:
        return str(url or "")
    return urlunparse(parsed._replace(query=""))
