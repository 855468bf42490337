"""Configuration management loaded from environment and .env."""

import os
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
project_root = Path(__file__).parent.parent.parent
env_file = project_root / ".env"

# Existing environment variables take precedence
load_dotenv(dotenv_path=env_file, override=False)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


class Config:
    """Application configuration."""
    # Database (conversation store + tenant configuration)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./replyhub.db")
    
    # Model endpoint
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL: Optional[str] = os.getenv("OPENAI_BASE_URL")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    
    # Circuit breaker
    CIRCUIT_FAILURE_THRESHOLD: int = _int_env("CIRCUIT_FAILURE_THRESHOLD", 5)
    CIRCUIT_RECOVERY_TIMEOUT: float = _float_env("CIRCUIT_RECOVERY_TIMEOUT", 60.0)
    
    # Timeouts (seconds)
    LLM_CALL_TIMEOUT: float = _float_env("LLM_CALL_TIMEOUT", 30.0)
    TOOL_EXECUTION_TIMEOUT: float = _float_env("TOOL_EXECUTION_TIMEOUT", 10.0)
    REQUEST_TIMEOUT: float = _float_env("REQUEST_TIMEOUT", 90.0)
    
    # Orchestration bounds
    MEMORY_WINDOW_CAP: int = _int_env("MEMORY_WINDOW_CAP", 20)
    AGENT_MAX_ITERATIONS: int = _int_env("AGENT_MAX_ITERATIONS", 3)
    MAX_CONCURRENT_REQUESTS: int = _int_env("MAX_CONCURRENT_REQUESTS", 32)
    
    # Application
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"


config = Config()
