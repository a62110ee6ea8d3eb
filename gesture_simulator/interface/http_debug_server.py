"""
HTTP debug server for programmatic access to simulator state.

Exposes the simulated engine's stored gestures, signatures and request
counters over a small REST API.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uvicorn

from ..engine_model import SimulatedEngine
from ..virtual_engine_server import VirtualEngineServer
from .config_manager import ConfigurationManager


class LatencyPayload(BaseModel):
    latency_ms: float


class DebugHTTPServer:
    """
    HTTP server providing read access and a few controls over the simulator.
    """

    def __init__(
        self,
        engine_server: VirtualEngineServer,
        port: int = 8766,
        host: str = "127.0.0.1",
        config_manager: Optional[ConfigurationManager] = None,
    ):
        """
        Initialize HTTP debug server.

        Args:
            engine_server: Running VirtualEngineServer to expose
            port: Port to bind server to
            host: Host address to bind to
            config_manager: Optional configuration manager for profile listing
        """
        self.engine_server = engine_server
        self.config_manager = config_manager
        self.port = port
        self.host = host

        self.app = FastAPI(
            title="Gesture Simulator Debug API",
            description="Inspection API for the simulated gesture engine",
            version="1.0.0",
            docs_url="/docs",
            redoc_url="/redoc"
        )
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self._setup_routes()

    @property
    def engine(self) -> SimulatedEngine:
        return self.engine_server.engine

    def _setup_routes(self):
        """Setup API routes"""

        @self.app.get("/", summary="API information")
        async def root():
            return {
                "name": "Gesture Simulator Debug API",
                "version": "1.0.0",
                "endpoints": {
                    "/status": "Engine and server status",
                    "/gestures": "Stored custom gestures",
                    "/signatures": "Trained signatures and their progress",
                    "/signatures/{index}": "Delete a signature (DELETE)",
                    "/latency": "Set simulated latency (POST)",
                    "/profiles": "Saved configuration profiles",
                    "/health": "Health check",
                    "/docs": "Interactive API documentation"
                }
            }

        @self.app.get("/health", summary="Health check")
        async def health():
            return {"status": "ok", "clients": len(self.engine_server.clients)}

        @self.app.get("/status", summary="Engine and server status")
        async def get_status():
            status = self.engine.status()
            status["clients"] = len(self.engine_server.clients)
            status["latency_ms"] = self.engine_server.global_latency_ms
            return status

        @self.app.get("/gestures", summary="Stored custom gestures")
        async def get_gestures():
            return {
                str(label): len(exemplars)
                for label, exemplars in self.engine.custom_gestures.items()
            }

        @self.app.get("/signatures", summary="Trained signatures")
        async def get_signatures():
            return {
                str(index): {"progress": round(s.progress, 2), "complete": s.complete}
                for index, s in self.engine.signatures.items()
            }

        @self.app.delete("/signatures/{index}", summary="Delete a signature")
        async def delete_signature(index: int):
            if not self.engine.delete_label(index):
                raise HTTPException(status_code=404, detail=f"Signature {index} not found")
            return {"deleted": index}

        @self.app.post("/latency", summary="Set simulated latency")
        async def set_latency(payload: LatencyPayload):
            if payload.latency_ms < 0:
                raise HTTPException(status_code=400, detail="latency_ms must not be negative")
            self.engine_server.set_latency(payload.latency_ms)
            return {"latency_ms": self.engine_server.global_latency_ms}

        @self.app.get("/profiles", summary="Saved configuration profiles")
        async def list_profiles():
            if self.config_manager is None:
                raise HTTPException(status_code=404, detail="Configuration management not enabled")
            return {"profiles": self.config_manager.list_profiles()}

    async def start_server(self):
        """Start the HTTP server"""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False
        )
        server = uvicorn.Server(config)
        await server.serve()

    def get_server_info(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "base_url": f"http://{self.host}:{self.port}",
            "docs_url": f"http://{self.host}:{self.port}/docs",
            "status_url": f"http://{self.host}:{self.port}/status",
        }
