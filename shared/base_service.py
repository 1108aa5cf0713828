"""
FastAPI service skeleton shared by the AirCare services.

Subclasses add their routes, override ``_check_dependencies`` for the
health report and ``_error_body`` for their error payload shape.
"""

import os
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.datastructures import Headers, MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Message, Receive, Scope, Send

from shared.config import ServiceConfig, get_config
from shared.errors import AccessLayerException, MethodNotSupportedError
from shared.logging import bind_request, clear_context, configure_logging, get_logger, request_id_var
from shared.metrics import get_metrics_collector

SERVICE_VERSION = "1.0.0"


class RoutedPreflightCORSMiddleware(CORSMiddleware):
    """CORS middleware that lets the route's OPTIONS handler answer preflights.

    Starlette's middleware replies to a browser preflight with a plain-text
    "OK" before the request reaches the app. Here an allowed preflight is
    forwarded to the app and the preflight headers are merged into whatever
    the route returns. Disallowed origins still get the middleware's 400.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "OPTIONS":
            await super().__call__(scope, receive, send)
            return

        headers = Headers(scope=scope)
        if "origin" not in headers or "access-control-request-method" not in headers:
            await super().__call__(scope, receive, send)
            return

        preflight = self.preflight_response(request_headers=headers)
        if preflight.status_code != 200:
            await preflight(scope, receive, send)
            return

        # Paths without an OPTIONS route fall back to the plain preflight reply.
        routed = True

        async def send_with_cors(message: Message) -> None:
            nonlocal routed
            if message["type"] == "http.response.start":
                if message["status"] == 405:
                    routed = False
                    return
                response_headers = MutableHeaders(scope=message)
                for name, value in preflight.headers.items():
                    if name not in ("content-length", "content-type"):
                        response_headers[name] = value
            if routed:
                await send(message)

        await self.app(scope, receive, send_with_cors)
        if not routed:
            await preflight(scope, receive, send)


class BaseService:
    """CORS, request correlation, health, metrics and error rendering."""

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        title = f"{service_name.replace('_', ' ').title()} Service"
        self.app = FastAPI(
            title=title,
            description=f"AirCare Access Services - {title}",
            version=SERVICE_VERSION,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
        )
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    def _setup_middleware(self):
        """CORS plus per-request correlation, timing and access logging."""
        self.app.add_middleware(
            RoutedPreflightCORSMiddleware,
            allow_origins=self.config.cors_allow_origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = bind_request(request.headers.get("X-Request-ID"))
            started = time.perf_counter()
            try:
                response = await call_next(request)
                elapsed = time.perf_counter() - started

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=request.url.path,
                    status_code=response.status_code,
                    duration=elapsed
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(elapsed * 1000, 2)
                )
                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Health and Prometheus endpoints."""

        @self.app.get("/health")
        async def health_check():
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            status = "degraded" if "error" in dependencies.values() else "ok"
            self.metrics.record_health_check(status)
            return JSONResponse(
                status_code=200 if status == "ok" else 503,
                content={
                    "service": self.service_name,
                    "status": status,
                    "uptime_seconds": time.time() - self._start_time,
                    "dependencies": dependencies,
                    "version": SERVICE_VERSION,
                    "commit": os.getenv("GIT_COMMIT", "unknown")
                }
            )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            return Response(content=generate_latest(self.metrics.registry), media_type=CONTENT_TYPE_LATEST)

    def _setup_exception_handlers(self):
        """Render every failure through ``_error_body``."""

        @self.app.exception_handler(AccessLayerException)
        async def access_layer_exception_handler(request: Request, exc: AccessLayerException):
            log = self.logger.warning if exc.status_code < 500 else self.logger.error
            log("Request failed", code=exc.code, message=exc.message, details=exc.details, path=request.url.path)
            self.metrics.record_error(exc.code)
            return self._render(exc)

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            # Unknown routes and methods the router rejects itself
            if exc.status_code == 405:
                error = MethodNotSupportedError()
            else:
                error = AccessLayerException("HTTP_ERROR", str(exc.detail), status_code=exc.status_code)
            return self._render(error, headers=getattr(exc, "headers", None))

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), path=request.url.path, exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return self._render(AccessLayerException("INTERNAL_ERROR", "Internal server error"))

    def _render(self, exc: AccessLayerException, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=self._error_body(exc), headers=headers)

    def _error_body(self, exc: AccessLayerException) -> Dict[str, Any]:
        """Error payload for a failed request. Override for service-specific shapes."""
        return exc.to_response(request_id_var.get()).model_dump()

    async def _check_dependencies(self) -> Dict[str, str]:
        """Dependency name to "ok"/"error". Override in subclasses."""
        return {}

    def run(self):
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
