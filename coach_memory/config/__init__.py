"""Configuration package."""

from .settings import Settings, Paths, ClassifierCfg, RetentionCfg, LoggingCfg

__all__ = ["Settings", "Paths", "ClassifierCfg", "RetentionCfg", "LoggingCfg"]
