"""Typed client for the Anthropic Messages and Models API."""
import logging

from .client import AnthropicClient, AsyncAnthropicClient
from .config import ANTHROPIC_API_URL, AnthropicConfig, ApiVersion, ProtocolVersion, load_env_file
from .exceptions import (
    LLMAPIError,
    LLMConfigError,
    LLMError,
    LLMParseError,
    LLMTransportError,
    LLMValidationError,
)
from .models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    ContentBlock,
    ImageBlock,
    MediaType,
    Message,
    MessageContent,
    Model,
    ModelListParams,
    ModelListResult,
    RequestBody,
    ResponseBody,
    Role,
    Source,
    TextBlock,
    Usage,
    decode_content_block,
    decode_message_content,
    text_array_content,
    text_content,
)
from .parser import YAMLRequestParser

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

__all__ = [
    # 客户端
    "AnthropicClient",
    "AsyncAnthropicClient",
    # 配置
    "AnthropicConfig",
    "ProtocolVersion",
    "ApiVersion",
    "ANTHROPIC_API_URL",
    "load_env_file",
    # 异常
    "LLMError",
    "LLMConfigError",
    "LLMValidationError",
    "LLMTransportError",
    "LLMAPIError",
    "LLMParseError",
    # 数据模型
    "DEFAULT_MODEL",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "Role",
    "MediaType",
    "Source",
    "TextBlock",
    "ImageBlock",
    "ContentBlock",
    "MessageContent",
    "Message",
    "RequestBody",
    "Usage",
    "ResponseBody",
    "Model",
    "ModelListParams",
    "ModelListResult",
    "decode_content_block",
    "decode_message_content",
    "text_content",
    "text_array_content",
    # YAML
    "YAMLRequestParser",
]

__version__ = "0.1.0"
