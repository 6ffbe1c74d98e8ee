"""Anthropic API 客户端。"""
from __future__ import annotations
import asyncio
import json
import logging
import time
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, TypeVar
from urllib.parse import quote

import httpx
import requests

from .config import AnthropicConfig
from .exceptions import LLMAPIError, LLMConfigError, LLMParseError, LLMTransportError, LLMValidationError
from .models import Model, ModelListParams, ModelListResult, RequestBody, ResponseBody
from .parser import YAMLRequestParser

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANTHROPIC_VERSION = "anthropic-version"
X_API_KEY = "x-api-key"
CONTENT_TYPE = "content-type"


class _BaseAnthropicClient:
    """客户端基类（请求头、URL 与响应解析）。"""
    # 异常类作为类属性，方便外部通过 AnthropicClient.APIError 访问
    ConfigError = LLMConfigError
    ValidationError = LLMValidationError
    TransportError = LLMTransportError
    APIError = LLMAPIError
    ParseError = LLMParseError

    def __init__(self, config: AnthropicConfig):
        self._config = config
        headers = {
            ANTHROPIC_VERSION: str(config.version),
            X_API_KEY: config.api_key,
        }
        self._headers: Mapping[str, str] = MappingProxyType(headers)
        self._json_headers: Mapping[str, str] = MappingProxyType({**headers, CONTENT_TYPE: "application/json"})

    @property
    def config(self) -> AnthropicConfig:
        return self._config

    def _prepare(self, path: str, body: Optional[Dict[str, Any]]):
        url = self._config.url(path)
        if body is None:
            return url, dict(self._headers), None
        try:
            data = json.dumps(body, ensure_ascii=False, allow_nan=False).encode("utf-8")
        except ValueError as e:
            # NaN 与 Infinity 不是合法 JSON
            raise LLMValidationError(f"请求体无法序列化为 JSON: {e}") from e
        return url, dict(self._json_headers), data

    @staticmethod
    def _log_payload(params: Optional[Dict[str, Any]], body: Optional[Dict[str, Any]], data: Optional[bytes]) -> None:
        if body is None:
            logger.debug("请求参数 params=%s", params)
            return
        logger.debug(
            "请求体 model=%s messages=%d 大小=%d 字节",
            body.get("model"), len(body.get("messages", [])), len(data or b""),
        )

    @staticmethod
    def _model_path(model_id: str) -> str:
        if not model_id:
            raise LLMValidationError("model_id 不能为空")
        return f"models/{quote(model_id, safe='')}"

    @staticmethod
    def _handle_response(status_code: int, text: str, decoder: Callable[[Any], T], method: str, path: str) -> T:
        if status_code != 200:
            logger.error("API 错误 %s %s status=%d: %s", method, path, status_code, text)
            raise LLMAPIError(f"API 返回 {status_code}: {text}", status_code=status_code, body=text)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("响应不是合法 JSON %s %s", method, path)
            raise LLMParseError(f"响应不是合法 JSON: {e}") from e
        return decoder(data)


class AnthropicClient(_BaseAnthropicClient):
    """同步客户端（requests）。"""
    def __init__(self, config: AnthropicConfig, session: Optional[requests.Session] = None):
        super().__init__(config)
        self._session = session or requests.Session()

    @classmethod
    def from_env(cls, session: Optional[requests.Session] = None):
        return cls(AnthropicConfig.from_env(), session)

    def complete_message(self, request: RequestBody) -> ResponseBody:
        """发送对话请求并返回完整响应。"""
        return self._request("POST", "messages", ResponseBody.from_payload, body=request.to_payload())

    def complete_yaml(self, yaml_prompt: str) -> ResponseBody:
        return self.complete_message(YAMLRequestParser.parse(yaml_prompt))

    def list_models(self) -> ModelListResult:
        return self._request("GET", "models", ModelListResult.from_payload)

    def list_models_filtered(self, params: Optional[ModelListParams] = None) -> ModelListResult:
        params = params or ModelListParams()
        return self._request("GET", "models", ModelListResult.from_payload, params=params.to_query())

    def get_model(self, model_id: str) -> Model:
        return self._request("GET", self._model_path(model_id), Model.from_payload)

    def _request(
        self,
        method: str,
        path: str,
        decoder: Callable[[Any], T],
        *,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> T:
        start = time.time()
        url, headers, data = self._prepare(path, body)
        logger.info("请求 %s %s", method, path)
        self._log_payload(params, body, data)
        try:
            response = self._session.request(method, url, headers=headers, data=data, params=params or None)
        except requests.RequestException as e:
            error_msg = f"{e.__class__.__name__}: {str(e)}"
            logger.error("传输错误 %s %s: %s", method, path, error_msg)
            raise LLMTransportError(error_msg) from e
        result = self._handle_response(response.status_code, response.text, decoder, method, path)
        logger.info("完成 %s %s 耗时=%.2fs", method, path, time.time() - start)
        return result

    def close(self) -> None:
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class AsyncAnthropicClient(_BaseAnthropicClient):
    """异步客户端（httpx）。"""
    def __init__(self, config: AnthropicConfig, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self._http = http_client or httpx.AsyncClient()

    @classmethod
    def from_env(cls, http_client: Optional[httpx.AsyncClient] = None):
        return cls(AnthropicConfig.from_env(), http_client)

    async def complete_message(self, request: RequestBody) -> ResponseBody:
        """发送对话请求并返回完整响应。"""
        return await self._request("POST", "messages", ResponseBody.from_payload, body=request.to_payload())

    async def complete_yaml(self, yaml_prompt: str) -> ResponseBody:
        # 解析可能读取本地文件或下载图片，放到线程中执行
        request = await asyncio.to_thread(YAMLRequestParser.parse, yaml_prompt)
        return await self.complete_message(request)

    async def list_models(self) -> ModelListResult:
        return await self._request("GET", "models", ModelListResult.from_payload)

    async def list_models_filtered(self, params: Optional[ModelListParams] = None) -> ModelListResult:
        params = params or ModelListParams()
        return await self._request("GET", "models", ModelListResult.from_payload, params=params.to_query())

    async def get_model(self, model_id: str) -> Model:
        return await self._request("GET", self._model_path(model_id), Model.from_payload)

    async def _request(
        self,
        method: str,
        path: str,
        decoder: Callable[[Any], T],
        *,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> T:
        start = time.time()
        url, headers, data = self._prepare(path, body)
        logger.info("异步请求 %s %s", method, path)
        self._log_payload(params, body, data)
        try:
            response = await self._http.request(method, url, headers=headers, content=data, params=params or None)
        except httpx.HTTPError as e:
            error_msg = f"{e.__class__.__name__}: {str(e)}"
            logger.error("传输错误 %s %s: %s", method, path, error_msg)
            raise LLMTransportError(error_msg) from e
        result = self._handle_response(response.status_code, response.text, decoder, method, path)
        logger.info("异步完成 %s %s 耗时=%.2fs", method, path, time.time() - start)
        return result

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()


__all__ = ["AnthropicClient", "AsyncAnthropicClient"]
