import os
import logging
from typing import Any, Dict, Optional
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import declarative_base

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(message)s",
)

Base = declarative_base()

def create_engine_and_sessions(database_url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Build an async engine and its session factory for the given URL.

    Nothing is created at import time; the app factory (or a test) owns the
    engine and hands the session factory to the stores.
    """
    engine = create_async_engine(database_url, echo=False, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    return engine, session_factory

async def create_tables(engine: AsyncEngine) -> None:
    """Create any missing tables for the registered models."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

class MCPResponse(JSONResponse):
    """
    Standard MCP protocol response for all API endpoints.
    """
    def __init__(self, data: Any = None, message: str = "success", status: str = "ok", **kwargs):
        content = {
            "status": status,
            "message": message,
            "data": data,
        }
        super().__init__(content=content, **kwargs)

class BaseMicroservice:
    """
    Base class for all microservices. Provides:
    - Error/event logging
    - MCP protocol response
    """
    def __init__(self, name: str = "microservice"):
        self.name = name
        self.logger = logging.getLogger(name)

    def mcp_response(self, data: Any = None, message: str = "success", status: str = "ok", status_code: int = 200):
        """
        Return a standard MCP protocol response.
        """
        return MCPResponse(data=data, message=message, status=status, status_code=status_code)

    def log_event(self, event: str, details: Optional[Dict[str, Any]] = None):
        self.logger.info(f"EVENT: {event} | Details: {details}")

    def log_error(self, error: Exception, context: str = ""):
        self.logger.error(f"ERROR: {str(error)} | Context: {context}")
