"""Configuration management for the agent service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LLMConfig:
    """OpenAI-compatible chat-completions endpoint configuration."""

    api_key: str
    base_url: str = "https://api.z.ai/api/paas/v4"
    model: str = "GLM-4.7-Flash"
    max_concurrent: int = 50
    temperature: float = 0.4
    max_tokens: int = 2048


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    llm: LLMConfig
    mcp_api_key: Optional[str] = None
    a2a_api_key: Optional[str] = None
    public_base_url: str = "http://127.0.0.1:8000"
    mcp_url: Optional[str] = None
    max_tool_iterations: int = 8
    off_base_url: str = "https://world.openfoodfacts.org"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        llm_config = LLMConfig(
            api_key=os.getenv("GLM_API_KEY", ""),
            base_url=os.getenv("GLM_BASE_URL", "https://api.z.ai/api/paas/v4"),
            model=os.getenv("GLM_MODEL", "GLM-4.7-Flash"),
            max_concurrent=int(os.getenv("GLM_MAX_CONCURRENT", "50")),
        )

        public_base_url = os.getenv("PUBLIC_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
        # "local" keeps tool calls in process instead of going through /mcp.
        mcp_url: Optional[str] = os.getenv("MCP_URL", f"{public_base_url}/mcp")
        if mcp_url == "local":
            mcp_url = None

        return cls(
            llm=llm_config,
            mcp_api_key=os.getenv("MCP_API_KEY") or None,
            a2a_api_key=os.getenv("A2A_API_KEY") or None,
            public_base_url=public_base_url,
            mcp_url=mcp_url,
            max_tool_iterations=int(os.getenv("MAX_TOOL_ITERATIONS", "8")),
            off_base_url=os.getenv("OFF_BASE_URL", "https://world.openfoodfacts.org"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )


# Global config instance
config = Config.from_env()
