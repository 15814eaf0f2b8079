"""FastAPI entry-point exposing the MCP gateway, the A2A API and the chat channel."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI

from nutriagent.api.a2a import router as a2a_router
from nutriagent.api.chat import router as chat_router
from nutriagent.api.mcp import router as mcp_router
from nutriagent.config import config
from nutriagent.orchestration.orchestrator import Orchestrator
from nutriagent.runtime import close_clients, get_orchestrator


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    configure_logging(config.log_level)
    yield
    # Shutdown: stop conversation agents and close outbound clients
    orchestrator_provider = app.dependency_overrides.get(get_orchestrator, get_orchestrator)
    await orchestrator_provider().terminate_all()
    await close_clients()


app = FastAPI(title="NutriAgent", version="1.2.0", lifespan=lifespan)
app.include_router(mcp_router)
app.include_router(a2a_router)
app.include_router(chat_router)


@app.get("/health")
async def health(orchestrator: Orchestrator = Depends(get_orchestrator)) -> dict:
    return {
        "status": "ok",
        "agent": "NutriAgent",
        "model": config.llm.model,
        "conversations": [
            {
                "conversation": descriptor.conversation,
                "agentId": descriptor.agent_id,
                "state": descriptor.state.name.lower(),
                "messagesHandled": descriptor.task_count,
                "lastError": descriptor.last_error,
            }
            for descriptor in orchestrator.list_agents()
        ],
        "layers": {
            "mcp": "/mcp",
            "a2a": "/a2a",
            "agentCard": "/.well-known/agent-card.json",
            "chat": "/agents/nutri-agent/{name}",
        },
    }


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    uvicorn.run("nutriagent.main:app", host=config.host, port=config.port)
