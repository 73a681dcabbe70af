"""FastAPI dashboard exposing the live session, subscriptions and metrics."""

from __future__ import annotations

from typing import Any, Dict, Protocol

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from src.infra.metrics import MetricsSink
from src.stream.session import SessionState
from src.stream.subscriptions import RegistrySnapshot


class StreamStatusSource(Protocol):
    """Read-only view the dashboard needs; every call must be thread-safe."""

    @property
    def state(self) -> Any:
        ...

    def session_snapshot(self) -> SessionState:
        ...

    def subscriptions_snapshot(self) -> RegistrySnapshot:
        ...


def create_dashboard_app(source: StreamStatusSource, metrics: MetricsSink) -> FastAPI:
    app = FastAPI(title="Gateway Stream Dashboard", version="0.1.0")

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        state = source.state
        return {"status": "ok", "connection": getattr(state, "value", state)}

    @app.get("/session")
    async def session() -> Dict[str, Any]:
        return source.session_snapshot().to_dict()

    @app.get("/subscriptions")
    async def subscriptions() -> Dict[str, Any]:
        return source.subscriptions_snapshot().to_dict()

    @app.get("/metrics")
    async def metrics_json() -> Dict[str, Any]:
        return metrics.export()

    @app.get("/metrics/prom", response_class=PlainTextResponse)
    async def metrics_prom() -> str:
        return metrics.render_prometheus()

    return app


async def run_dashboard(app: FastAPI, host: str, port: int) -> None:
    import uvicorn

    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="info"))
    await server.serve()


__all__ = ["create_dashboard_app", "run_dashboard", "StreamStatusSource"]
