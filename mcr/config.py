"""
MCR Configuration System

Manages configuration for MCR: the LLM provider, session defaults and
query evaluation limits. Supports both YAML and JSON formats.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional, Union, List
from dataclasses import dataclass, field, asdict

import yaml


@dataclass
class LLMProviderConfig:
    """LLM provider configuration"""
    provider: Optional[str] = None  # None means no model; symbolic operations only
    model: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None  # Env var containing API key
    temperature: float = 0.0
    max_tokens: int = 500
    base_url: Optional[str] = None
    timeout: int = 30

    def get_api_key(self) -> Optional[str]:
        """Get API key from config or environment"""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.getenv(self.api_key_env)
        # Try standard env vars
        if self.provider == "openai":
            return os.getenv("OPENAI_API_KEY")
        elif self.provider == "anthropic":
            return os.getenv("ANTHROPIC_API_KEY")
        return None

    def provider_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for `create_provider`"""
        kwargs = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "base_url": self.base_url,
            "timeout": self.timeout,
        }
        if self.provider != "ollama":
            kwargs["api_key"] = self.get_api_key()
        return kwargs


@dataclass
class SessionConfig:
    """Defaults applied to every new session"""
    max_translation_attempts: int = 2
    retry_delay: float = 0.5  # seconds
    max_reasoning_steps: int = 5
    sub_symbolic_confidence: float = 0.7
    translator: Optional[List[str]] = None  # None means ["direct", "json"]
    max_suggestions: int = 5


@dataclass
class QueryConfig:
    """Query evaluation configuration"""
    max_depth: int = 100


@dataclass
class MCRConfig:
    """Main MCR configuration"""
    provider: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    query: QueryConfig = field(default_factory=QueryConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "MCRConfig":
        """
        Load configuration from file.

        Args:
            path: Path to config file. If None, searches for:
                  1. ~/.mcr/config.yaml (or .yml)
                  2. ~/.mcr/config.json
                  3. ./mcr_config.yaml (or .yml)
                  4. ./mcr_config.json

        Returns:
            MCRConfig instance (defaults when no file is found)
        """
        if path:
            return cls._load_from_file(Path(path))

        search_paths = [
            Path.home() / ".mcr" / "config.yaml",
            Path.home() / ".mcr" / "config.yml",
            Path.home() / ".mcr" / "config.json",
            Path("mcr_config.yaml"),
            Path("mcr_config.yml"),
            Path("mcr_config.json"),
        ]

        for config_path in search_paths:
            if config_path.exists():
                return cls._load_from_file(config_path)

        return cls()

    @classmethod
    def _load_from_file(cls, path: Path) -> "MCRConfig":
        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCRConfig":
        """Create config from dictionary"""
        config = cls()

        if 'provider' in data:
            config.provider = LLMProviderConfig(**data['provider'])

        if 'session' in data:
            config.session = SessionConfig(**data['session'])

        if 'query' in data:
            config.query = QueryConfig(**data['query'])

        for key in ['log_level', 'log_file']:
            if key in data:
                setattr(config, key, data[key])

        return config

    def save(self, path: Union[str, Path]) -> None:
        """
        Save configuration to file.

        Args:
            path: Path to save config (extension determines format)
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.to_dict()

        with open(path, 'w') as f:
            if path.suffix in ['.yaml', '.yml']:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(data, f, indent=2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return {
            'provider': asdict(self.provider),
            'session': asdict(self.session),
            'query': asdict(self.query),
            'log_level': self.log_level,
            'log_file': self.log_file
        }


# Global config instance
_config: Optional[MCRConfig] = None


def get_config() -> MCRConfig:
    """Get the global config instance"""
    global _config
    if _config is None:
        _config = MCRConfig.load()
    return _config


def set_config(config: MCRConfig) -> None:
    """Set the global config instance"""
    global _config
    _config = config


def reset_config() -> None:
    """Reset to default config"""
    global _config
    _config = MCRConfig()
