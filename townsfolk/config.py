"""
Townsfolk Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("0", "false", "no", "off")


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "anthropic")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "claude-sonnet-4-5")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Ollama endpoint, used when LLM_PROVIDER=ollama
    OLLAMA_BASE_URL: str | None = os.getenv("OLLAMA_BASE_URL")

    # Text generation limits. Every call shares one gate: at most
    # LLM_MAX_CONCURRENT in flight, starts spaced by LLM_MIN_INTERVAL_SECONDS.
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
    LLM_MAX_ATTEMPTS: int = int(os.getenv("LLM_MAX_ATTEMPTS", "2"))
    LLM_MAX_CONCURRENT: int = int(os.getenv("LLM_MAX_CONCURRENT", "3"))
    LLM_MIN_INTERVAL_SECONDS: float = float(os.getenv("LLM_MIN_INTERVAL_SECONDS", "0.2"))

    # Simulation Configuration
    MAX_AGENTS: int = int(os.getenv("MAX_AGENTS", "8"))
    ENABLE_REFLECTIONS: bool = _env_flag("ENABLE_REFLECTIONS", "true")
    SIM_SPEED: int = int(os.getenv("SIM_SPEED", "1"))
    TICK_INTERVAL_SECONDS: float = float(os.getenv("TICK_INTERVAL_SECONDS", "2"))
    DAY_START_MINUTE: int = int(os.getenv("DAY_START_MINUTE", "480"))

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SCENARIOS_DIR: Path = PROJECT_ROOT / "examples" / "scenarios"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        provider = cls.LLM_PROVIDER.lower()

        if provider == "ollama":
            # Local server; base URL falls back to the Ollama default.
            return

        if provider == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider. "
                "For a local model, set LLM_PROVIDER=ollama instead."
            )

        if provider == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For a local model, set LLM_PROVIDER=ollama instead."
            )

        if not 1 <= cls.SIM_SPEED <= 10:
            raise ValueError("SIM_SPEED must be between 1 and 10 minutes per tick")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Townsfolk Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  LLM Gate: {cls.LLM_MAX_CONCURRENT} concurrent, "
            f"{cls.LLM_MIN_INTERVAL_SECONDS}s spacing, {cls.LLM_TIMEOUT_SECONDS}s timeout",
            f"  Max Agents: {cls.MAX_AGENTS}",
            f"  Reflections: {'on' if cls.ENABLE_REFLECTIONS else 'off'}",
            f"  Speed: {cls.SIM_SPEED} min/tick every {cls.TICK_INTERVAL_SECONDS}s",
        ]
        return "\n".join(lines)
