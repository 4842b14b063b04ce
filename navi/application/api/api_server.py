from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import Annotated, Dict, Any, Optional
import time
import structlog

from navi.application.runtime import NaviRuntime
from navi.domain.models.sync_state import OmnisyncResult, SyncStatus
from navi.infrastructure.observability.logging import setup_logging, metrics

logger = structlog.get_logger(__name__)


def get_runtime(request: Request) -> NaviRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not initialized")
    return runtime


RuntimeDep = Annotated[NaviRuntime, Depends(get_runtime)]


def create_app(runtime: Optional[NaviRuntime] = None) -> FastAPI:
    """Build the HTTP surface over a NaviRuntime"""

    app = FastAPI(title="Navi Memory & Sync Server")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        """Construct the runtime if none was injected and start it"""
        if runtime is None:
            app.state.runtime = NaviRuntime()
        else:
            app.state.runtime = runtime
        config = app.state.runtime.config
        setup_logging(config.log_level, config.log_format, config.service_name)
        await app.state.runtime.start()
        logger.info("Navi server started")

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.runtime.shutdown()
        logger.info("Navi server stopped")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": time.time()}

    @app.get("/api/v1/sync/status", response_model=SyncStatus)
    async def sync_status(navi: RuntimeDep):
        return navi.sync_engine.status()

    @app.post("/api/v1/sync/force")
    async def force_sync(navi: RuntimeDep) -> Dict[str, Any]:
        pushed = await navi.sync_engine.force_sync()
        return {"pushed": pushed, "status": navi.sync_engine.status().model_dump()}

    @app.post("/api/v1/sync/reset")
    async def reset_backend(navi: RuntimeDep) -> Dict[str, Any]:
        navi.sync_engine.reset_backend_status()
        return navi.sync_engine.status().model_dump()

    @app.post("/api/v1/sync/load")
    async def load_from_backend(navi: RuntimeDep) -> Dict[str, Any]:
        patch = await navi.pull_from_backend()
        return {
            "loaded": patch is not None,
            "fields": patch.present_fields() if patch is not None else [],
        }

    @app.post("/api/v1/memory/compact")
    async def compact_memory(navi: RuntimeDep) -> Dict[str, Any]:
        start_time = time.time()
        store = await navi.compact_memory()
        metrics.record_outcome("memory_compaction", "success", (time.time() - start_time) * 1000)
        return store.to_wire()

    @app.get("/api/v1/memory/context")
    async def memory_context(navi: RuntimeDep, compact: bool = False) -> Dict[str, Any]:
        context = await navi.build_agent_context(compact=compact)
        return {"context": context, "compact": compact}

    @app.post("/api/v1/omnisync", response_model=OmnisyncResult)
    async def omnisync(navi: RuntimeDep):
        return await navi.omnisync()

    @app.get("/api/v1/metrics")
    async def metrics_summary() -> Dict[str, Any]:
        return metrics.get_metrics_summary()

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
