"""Application settings and configuration schema."""

import os
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel


JudgeProvider = Literal["none", "mock", "ollama", "openai"]


class Paths(BaseModel):
    """File and directory paths configuration."""
    memory_dir: str = "data/memories"


class ClassifierCfg(BaseModel):
    """Configuration for the LLM save-decision judge."""
    provider: JudgeProvider = "none"
    model: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    timeout: float = 10.0
    temperature: float = 0.3
    use_llm: bool = True


class RetentionCfg(BaseModel):
    """Configuration for the cleanup policy."""
    retention_days: int = 30


class LoggingCfg(BaseModel):
    """Configuration for structured logging."""
    level: str = "INFO"
    json_format: bool = True


class Settings(BaseModel):
    """Main application settings."""
    paths: Paths = Paths()
    classifier: ClassifierCfg = ClassifierCfg()
    retention: RetentionCfg = RetentionCfg()
    logging: LoggingCfg = LoggingCfg()

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """
        Build settings from defaults overlaid with COACH_MEMORY_* variables.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            Validated Settings instance
        """
        env = os.environ if environ is None else environ
        data: Dict[str, Dict[str, Any]] = {
            "paths": {},
            "classifier": {},
            "retention": {},
            "logging": {},
        }

        env_map = {
            "COACH_MEMORY_DIR": ("paths", "memory_dir"),
            "COACH_MEMORY_LLM_PROVIDER": ("classifier", "provider"),
            "COACH_MEMORY_LLM_MODEL": ("classifier", "model"),
            "COACH_MEMORY_LLM_BASE_URL": ("classifier", "base_url"),
            "COACH_MEMORY_LLM_TIMEOUT": ("classifier", "timeout"),
            "COACH_MEMORY_RETENTION_DAYS": ("retention", "retention_days"),
            "COACH_MEMORY_LOG_LEVEL": ("logging", "level"),
        }
        for var, (section, key) in env_map.items():
            if var in env:
                data[section][key] = env[var]

        # Pydantic coerces the string values (timeout, retention_days)
        return cls.model_validate(data)
