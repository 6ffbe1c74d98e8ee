"""Data models for the Messages and Models endpoints.

Every model is an immutable value object with a ``to_payload`` method producing
the JSON shape the API expects and a ``from_payload`` classmethod decoding it.

``MessageContent`` and ``ContentBlock`` are untagged unions on the wire, so they
are decoded by trying each variant in order; the first structural match wins.
"""
from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from .exceptions import LLMParseError, LLMValidationError

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.1


def _expect_object(data: Any, where: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise LLMParseError(f"{where} 必须为 JSON 对象，实际为 {type(data).__name__}")
    return data


def _field(data: Dict[str, Any], key: str, kind: Any, where: str, *, optional: bool = False) -> Any:
    """Read ``key`` from ``data`` and check its JSON type."""
    if key not in data or data[key] is None:
        if optional:
            return None
        raise LLMParseError(f"{where} 缺少字段: {key}")
    value = data[key]
    # bool is a subclass of int but never a valid number here
    if isinstance(value, bool) and kind is not bool:
        raise LLMParseError(f"{where}.{key} 类型错误: bool")
    if not isinstance(value, kind):
        raise LLMParseError(f"{where}.{key} 类型错误: {type(value).__name__}")
    return value


def _check_tag(data: Dict[str, Any], expected: str, where: str, *, required: bool = False) -> None:
    tag = data.get("type")
    if tag is None and not required:
        return
    if tag != expected:
        raise LLMParseError(f"{where}.type 应为 {expected!r}，实际为 {tag!r}")


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Unknown roles fall back to ``USER``."""
        try:
            return cls(value)
        except ValueError:
            return cls.USER


class MediaType(str, Enum):
    JPEG = "image/jpeg"
    PNG = "image/png"
    GIF = "image/gif"
    WEBP = "image/webp"

    @classmethod
    def from_path(cls, path: str | Path) -> "MediaType":
        """Guess the media type from a file name."""
        suffix = Path(path).suffix.lower()
        mime = _SUFFIX_MEDIA_TYPES.get(suffix) or mimetypes.guess_type(str(path))[0]
        try:
            return cls(mime)
        except ValueError as e:
            raise LLMValidationError(f"不支持的图片类型: {path}") from e


_SUFFIX_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


@dataclass(frozen=True, slots=True)
class Source:
    """Base64 image payload."""

    data: str
    media_type: MediaType
    type: ClassVar[str] = "base64"

    def __post_init__(self) -> None:
        if not isinstance(self.media_type, MediaType):
            try:
                object.__setattr__(self, "media_type", MediaType(self.media_type))
            except ValueError as e:
                raise LLMValidationError(f"不支持的 media_type: {self.media_type}") from e

    @classmethod
    def from_bytes(cls, raw: bytes, media_type: MediaType) -> "Source":
        return cls(data=base64.b64encode(raw).decode("ascii"), media_type=media_type)

    @classmethod
    def from_file(cls, path: str | Path, media_type: Optional[MediaType] = None) -> "Source":
        """Read a local image and encode it; the media type is guessed when omitted."""
        path = Path(path)
        if media_type is None:
            media_type = MediaType.from_path(path)
        return cls.from_bytes(path.read_bytes(), media_type)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.data, "media_type": self.media_type.value}

    @classmethod
    def from_payload(cls, data: Any) -> "Source":
        obj = _expect_object(data, "source")
        _check_tag(obj, cls.type, "source")
        media_raw = _field(obj, "media_type", str, "source")
        try:
            media_type = MediaType(media_raw)
        except ValueError as e:
            raise LLMParseError(f"未知的 media_type: {media_raw}") from e
        return cls(data=_field(obj, "data", str, "source"), media_type=media_type)


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str
    type: ClassVar[str] = "text"

    @classmethod
    def new(cls, text: str) -> "TextBlock":
        return cls(text=text)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}

    @classmethod
    def from_payload(cls, data: Any) -> "TextBlock":
        obj = _expect_object(data, "text block")
        _check_tag(obj, cls.type, "text block")
        return cls(text=_field(obj, "text", str, "text block"))


@dataclass(frozen=True, slots=True)
class ImageBlock:
    source: Source
    type: ClassVar[str] = "image"

    @classmethod
    def new(cls, source: Source) -> "ImageBlock":
        return cls(source=source)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "source": self.source.to_payload()}

    @classmethod
    def from_payload(cls, data: Any) -> "ImageBlock":
        obj = _expect_object(data, "image block")
        _check_tag(obj, cls.type, "image block")
        if "source" not in obj:
            raise LLMParseError("image block 缺少字段: source")
        return cls(source=Source.from_payload(obj["source"]))


ContentBlock = Union[TextBlock, ImageBlock]
MessageContent = Union[str, Tuple[ContentBlock, ...]]

# 按顺序尝试，第一个结构匹配的变体胜出
_CONTENT_BLOCK_VARIANTS = (TextBlock, ImageBlock)


def _first_match(decoders: Sequence[Callable[[Any], Any]], data: Any, what: str) -> Any:
    errors: List[str] = []
    for decode in decoders:
        try:
            return decode(data)
        except LLMParseError as e:
            errors.append(str(e))
    raise LLMParseError(f"无法识别的{what}: {'; '.join(errors)}")


def decode_content_block(data: Any) -> ContentBlock:
    """Decode an untagged content block."""
    return _first_match([v.from_payload for v in _CONTENT_BLOCK_VARIANTS], data, "内容块")


def _decode_string_content(data: Any) -> str:
    if not isinstance(data, str):
        raise LLMParseError("content 不是字符串")
    return data


def _decode_block_array(data: Any) -> Tuple[ContentBlock, ...]:
    if not isinstance(data, list):
        raise LLMParseError("content 不是数组")
    return tuple(decode_content_block(item) for item in data)


def decode_message_content(data: Any) -> MessageContent:
    """Decode untagged message content: a plain string or an array of blocks."""
    return _first_match([_decode_string_content, _decode_block_array], data, "消息内容")


def encode_message_content(content: MessageContent) -> Union[str, List[Dict[str, Any]]]:
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        payload = []
        for block in content:
            if not isinstance(block, _CONTENT_BLOCK_VARIANTS):
                raise LLMValidationError(f"不支持的内容块: {type(block).__name__}")
            payload.append(block.to_payload())
        return payload
    raise LLMValidationError(f"消息内容必须为字符串或内容块列表: {type(content).__name__}")


def text_content(text: str) -> MessageContent:
    """Wrap a plain string as message content."""
    return text


def text_array_content(texts: Sequence[str]) -> MessageContent:
    """Wrap strings as an array of text blocks, keeping their order."""
    return tuple(TextBlock.new(text) for text in texts)


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: MessageContent = ""

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role.parse(self.role))
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text_content(text))

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=text_content(text))

    @classmethod
    def user_texts(cls, texts: Sequence[str]) -> "Message":
        return cls(role=Role.USER, content=text_array_content(texts))

    def to_payload(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": encode_message_content(self.content)}

    @classmethod
    def from_payload(cls, data: Any) -> "Message":
        obj = _expect_object(data, "message")
        role = Role.parse(_field(obj, "role", str, "message"))
        if "content" not in obj:
            raise LLMParseError("message 缺少字段: content")
        return cls(role=role, content=decode_message_content(obj["content"]))


@dataclass(frozen=True, slots=True)
class RequestBody:
    """Body of ``POST /v1/messages``."""

    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    messages: Tuple[Message, ...] = field(default_factory=tuple)
    temperature: Optional[float] = DEFAULT_TEMPERATURE
    system: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [m.to_payload() for m in self.messages],
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.system is not None:
            payload["system"] = self.system
        return payload

    @classmethod
    def from_payload(cls, data: Any) -> "RequestBody":
        obj = _expect_object(data, "request")
        temperature = _field(obj, "temperature", (int, float), "request", optional=True)
        return cls(
            model=_field(obj, "model", str, "request"),
            max_tokens=_field(obj, "max_tokens", int, "request"),
            messages=tuple(Message.from_payload(m) for m in _field(obj, "messages", list, "request")),
            temperature=float(temperature) if temperature is not None else None,
            system=_field(obj, "system", str, "request", optional=True),
        )


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int
    output_tokens: int

    def to_payload(self) -> Dict[str, Any]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}

    @classmethod
    def from_payload(cls, data: Any) -> "Usage":
        obj = _expect_object(data, "usage")
        return cls(
            input_tokens=_field(obj, "input_tokens", int, "usage"),
            output_tokens=_field(obj, "output_tokens", int, "usage"),
        )


@dataclass(frozen=True, slots=True)
class ResponseBody:
    """Body returned by ``POST /v1/messages``."""

    id: str
    model: str
    role: Role
    stop_reason: str
    type: str
    usage: Usage
    content: Tuple[ContentBlock, ...] = field(default_factory=tuple)
    stop_sequence: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", tuple(self.content))

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "model": self.model,
            "role": self.role.value,
            "stop_reason": self.stop_reason,
            "stop_sequence": self.stop_sequence,
            "type": self.type,
            "usage": self.usage.to_payload(),
            "content": [block.to_payload() for block in self.content],
        }

    @classmethod
    def from_payload(cls, data: Any) -> "ResponseBody":
        obj = _expect_object(data, "response")
        if "usage" not in obj:
            raise LLMParseError("response 缺少字段: usage")
        return cls(
            id=_field(obj, "id", str, "response"),
            model=_field(obj, "model", str, "response"),
            role=Role.parse(_field(obj, "role", str, "response")),
            stop_reason=_field(obj, "stop_reason", str, "response"),
            stop_sequence=_field(obj, "stop_sequence", str, "response", optional=True),
            type=_field(obj, "type", str, "response"),
            usage=Usage.from_payload(obj["usage"]),
            content=tuple(decode_content_block(b) for b in _field(obj, "content", list, "response")),
        )


@dataclass(frozen=True, slots=True)
class Model:
    id: str
    display_name: str
    created_at: str
    type: ClassVar[str] = "model"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "type": self.type,
            "created_at": self.created_at,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "Model":
        obj = _expect_object(data, "model")
        _check_tag(obj, cls.type, "model", required=True)
        return cls(
            id=_field(obj, "id", str, "model"),
            display_name=_field(obj, "display_name", str, "model"),
            created_at=_field(obj, "created_at", str, "model"),
        )


@dataclass(frozen=True, slots=True)
class ModelListParams:
    """Pagination parameters of ``GET /v1/models``."""

    before_id: Optional[str] = None
    after_id: Optional[str] = None
    limit: Optional[int] = None

    def to_query(self) -> Dict[str, Any]:
        """Query parameters with absent values left out."""
        query = {"before_id": self.before_id, "after_id": self.after_id, "limit": self.limit}
        return {k: v for k, v in query.items() if v is not None}


@dataclass(frozen=True, slots=True)
class ModelListResult:
    has_more: bool
    data: Tuple[Model, ...] = field(default_factory=tuple)
    first_id: Optional[str] = None
    last_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", tuple(self.data))

    def to_payload(self) -> Dict[str, Any]:
        return {
            "first_id": self.first_id,
            "last_id": self.last_id,
            "has_more": self.has_more,
            "data": [m.to_payload() for m in self.data],
        }

    @classmethod
    def from_payload(cls, data: Any) -> "ModelListResult":
        obj = _expect_object(data, "model list")
        return cls(
            first_id=_field(obj, "first_id", str, "model list", optional=True),
            last_id=_field(obj, "last_id", str, "model list", optional=True),
            has_more=_field(obj, "has_more", bool, "model list"),
            data=tuple(Model.from_payload(m) for m in _field(obj, "data", list, "model list")),
        )


__all__ = [
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
    "decode_content_block",
    "decode_message_content",
    "encode_message_content",
    "text_content",
    "text_array_content",
    "Message",
    "RequestBody",
    "Usage",
    "ResponseBody",
    "Model",
    "ModelListParams",
    "ModelListResult",
]
