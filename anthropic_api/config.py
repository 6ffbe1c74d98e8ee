"""Configuration objects."""
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from .exceptions import LLMConfigError

ANTHROPIC_API_URL = "https://api.anthropic.com"


class ProtocolVersion(str, Enum):
    """Value of the ``anthropic-version`` header."""

    LATEST = "2023-06-01"
    INITIAL = "2023-01-01"

    def __str__(self) -> str:
        return self.value


class ApiVersion(str, Enum):
    """Path prefix of the API surface."""

    V1 = "v1"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class AnthropicConfig:
    """Runtime configuration for the Anthropic API."""

    api_key: str
    base_url: str = ANTHROPIC_API_URL
    version: ProtocolVersion = ProtocolVersion.LATEST
    api_version: ApiVersion = ApiVersion.V1

    def __post_init__(self) -> None:
        if not self.api_key or not self.api_key.strip():
            raise LLMConfigError("api_key 不能为空")
        if not self.base_url or not self.base_url.strip():
            raise LLMConfigError("base_url 不能为空")
        try:
            object.__setattr__(self, "version", ProtocolVersion(self.version))
        except ValueError as e:
            raise LLMConfigError(f"不支持的协议版本: {self.version}") from e
        try:
            object.__setattr__(self, "api_version", ApiVersion(self.api_version))
        except ValueError as e:
            raise LLMConfigError(f"不支持的 API 版本: {self.api_version}") from e

    @classmethod
    def from_env(cls) -> "AnthropicConfig":
        def require(key: str) -> str:
            value = os.environ.get(key)
            if not value or not value.strip():
                raise LLMConfigError(f"缺少环境变量: {key}")
            return value.strip()

        base_url = (os.environ.get("ANTHROPIC_BASE_URL") or "").strip() or ANTHROPIC_API_URL

        version = ProtocolVersion.LATEST
        version_raw = (os.environ.get("ANTHROPIC_VERSION") or "").strip()
        if version_raw:
            try:
                version = ProtocolVersion(version_raw)
            except ValueError as e:
                raise LLMConfigError(f"不支持的 ANTHROPIC_VERSION: {version_raw}") from e

        return cls(
            api_key=require("ANTHROPIC_API_KEY"),
            base_url=base_url.rstrip("/"),
            version=version,
        )

    def with_version(self, version: ProtocolVersion) -> "AnthropicConfig":
        """Return a copy using another protocol version."""
        return dataclasses.replace(self, version=version)

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{self.api_version}/{path.lstrip('/')}"


def load_env_file(path: str | os.PathLike[str] = ".env") -> None:
    """Load a .env file into the environment if it exists."""
    env_path = Path(path)
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


__all__ = ["AnthropicConfig", "ProtocolVersion", "ApiVersion", "ANTHROPIC_API_URL", "load_env_file"]
