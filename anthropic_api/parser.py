"""YAML prompt parser producing ``RequestBody`` values."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests

from .exceptions import LLMValidationError
from .models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    ContentBlock,
    ImageBlock,
    MediaType,
    Message,
    RequestBody,
    Role,
    Source,
    TextBlock,
)

try:
    import yaml
except ImportError as exc:  # pragma: no cover - import guard
    raise ImportError("需要 PyYAML: pip install pyyaml") from exc

logger = logging.getLogger(__name__)


class YAMLRequestParser:
    """Parser converting YAML prompts into request bodies.

    Example::

        messages:
          - system: You are terse.
          - user: What is in this picture?
            images:
              - temp/photo.png
          - assistant: A cat.
          - user: What colour is it?
        generation:
          model: claude-3-5-sonnet-20241022
          max_tokens: 512
          temperature: 0.2
    """

    MESSAGE_ROLES = ("system", "user", "assistant")
    GENERATION_KEYS = {"model", "max_tokens", "temperature"}

    @staticmethod
    def parse(raw: str, *, base_dir: Optional[str | Path] = None) -> RequestBody:
        try:
            data = yaml.safe_load(raw) or {}
        except yaml.YAMLError as exc:
            raise LLMValidationError(f"YAML 解析失败: {exc}") from exc

        if not isinstance(data, dict) or "messages" not in data:
            raise LLMValidationError("YAML 顶层必须包含 'messages'")

        root = Path(base_dir) if base_dir is not None else None
        system, messages = YAMLRequestParser._parse_messages(data["messages"], root)
        if not any(m.role is Role.USER for m in messages):
            raise LLMValidationError("缺少必填字段: user")

        generation = YAMLRequestParser._parse_generation(data.get("generation"))
        return RequestBody(messages=messages, system=system, **generation)

    @staticmethod
    def _parse_generation(raw: Any) -> Dict[str, Any]:
        gen: Dict[str, Any] = {
            "model": DEFAULT_MODEL,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE,
        }
        if raw is None:
            return gen
        if not isinstance(raw, dict):
            raise LLMValidationError("generation 必须为字典")

        unknown = set(raw) - YAMLRequestParser.GENERATION_KEYS
        if unknown:
            raise LLMValidationError(f"generation 不支持的字段: {', '.join(sorted(unknown))}")

        if "model" in raw:
            if not isinstance(raw["model"], str) or not raw["model"].strip():
                raise LLMValidationError("generation.model 必须为非空字符串")
            gen["model"] = raw["model"].strip()
        if "max_tokens" in raw:
            max_tokens = raw["max_tokens"]
            if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
                raise LLMValidationError("generation.max_tokens 必须为正整数")
            gen["max_tokens"] = max_tokens
        if "temperature" in raw:
            temperature = raw["temperature"]
            if temperature is not None and (isinstance(temperature, bool) or not isinstance(temperature, (int, float))):
                raise LLMValidationError("generation.temperature 必须为数字")
            gen["temperature"] = float(temperature) if temperature is not None else None
        return gen

    @staticmethod
    def _parse_messages(raw_msgs: Any, root: Optional[Path]) -> Tuple[Optional[str], List[Message]]:
        if isinstance(raw_msgs, dict):
            raw_msgs = [{key: val} for key, vals in raw_msgs.items()
                        for val in (vals if isinstance(vals, list) else [vals])]
        if not isinstance(raw_msgs, list):
            raise LLMValidationError("messages 必须是列表或字典")

        system_parts: List[str] = []
        messages: List[Message] = []
        for item in raw_msgs:
            role, text, images = YAMLRequestParser._extract_role_content(item)
            if role == "system":
                if images:
                    raise LLMValidationError("system 消息不支持 images")
                if text:
                    system_parts.append(text)
                continue
            if images:
                blocks: List[ContentBlock] = [TextBlock.new(text)] if text else []
                blocks.extend(ImageBlock.new(YAMLRequestParser._load_image(p, root)) for p in images)
                messages.append(Message(role=Role(role), content=blocks))
            else:
                messages.append(Message(role=Role(role), content=text))

        system = "\n\n".join(system_parts) if system_parts else None
        return system, messages

    @staticmethod
    def _extract_role_content(item: Any) -> Tuple[str, str, List[str]]:
        if not isinstance(item, dict):
            raise LLMValidationError("messages 列表项必须为对象")

        images = item.get("images") or []
        if not isinstance(images, list) or not all(isinstance(x, str) for x in images):
            raise LLMValidationError("images 列表必须全是字符串路径")

        if "role" in item and "content" in item:
            role = YAMLRequestParser._normalize_role(item["role"])
            content = item["content"]
        else:
            keys = [k for k in item if k != "images"]
            if len(keys) != 1:
                raise LLMValidationError("messages 列表项需包含 role/content 或单键角色")
            role = YAMLRequestParser._normalize_role(keys[0])
            content = item[keys[0]]

        if content is None:
            content = ""
        if not isinstance(content, str):
            raise LLMValidationError("消息内容必须为字符串")
        stripped = content.strip()
        if role != "system" and not stripped and not images:
            raise LLMValidationError(f"{role} 必须为非空字符串")
        return role, stripped, images

    @staticmethod
    def _normalize_role(raw_role: Any) -> str:
        role = str(raw_role).strip().lower()
        if role not in YAMLRequestParser.MESSAGE_ROLES:
            raise LLMValidationError("messages 仅支持 system/user/assistant 角色")
        return role

    @staticmethod
    def _load_image(ref: str, root: Optional[Path]) -> Source:
        """Encode a local image file or download an http(s) image."""
        if ref.startswith(("http://", "https://")):
            try:
                response = requests.get(ref, timeout=30)
                response.raise_for_status()
            except requests.RequestException as exc:
                logger.error("下载在线图片失败 %s: %s", ref, exc)
                raise LLMValidationError(f"下载在线图片失败: {ref}, 错误: {exc}") from exc
            mime = response.headers.get("Content-Type", "").split(";")[0].strip()
            try:
                media_type = MediaType(mime)
            except ValueError:
                media_type = MediaType.from_path(ref.split("?", 1)[0])
            logger.info("在线图片已下载并编码为 base64: %s", ref)
            return Source.from_bytes(response.content, media_type)

        path = Path(ref)
        if root is not None and not path.is_absolute():
            path = root / path
        if not path.is_file():
            raise LLMValidationError(f"图片文件不存在: {path}")
        try:
            source = Source.from_file(path)
        except OSError as exc:
            logger.error("读取本地图片失败 %s: %s", path, exc)
            raise LLMValidationError(f"读取本地图片失败: {path}, 错误: {exc}") from exc
        logger.info("本地图片已编码为 base64: %s (%d 字符)", path, len(source.data))
        return source


__all__ = ["YAMLRequestParser"]
