"""HTTP Request node - makes one HTTP call with optional auth and bounded retry."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from ..core.config import settings
from ..core.exceptions import ValidationError
from .base import BaseNode

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, NodeDefinition, NodeOutput

logger = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT", "PATCH")


class HttpRequestNode(BaseNode):
    """
    HTTP Request node.

    Config:
        url, method, headers (mapping or list of {name, value}), queryParameters,
        body (defaults to the node input for POST/PUT/PATCH), authentication
        (none, basicAuth, bearerToken, apiKey, oauth2), timeout (ms),
        responseType (json, text), retryOnFail, retryCount.

    Output data is the response body; metadata carries statusCode, headers
    and the 1-based attempt that succeeded.
    """

    required_parameters = ("url",)

    @property
    def type(self) -> str:
        return "httpRequest"

    async def execute(
        self,
        context: ExecutionContext,
        node_definition: NodeDefinition,
        input_data: Any,
    ) -> NodeOutput:
        url = self.get_parameter(node_definition, "url")
        method = str(self.get_parameter(node_definition, "method", "GET")).upper()
        response_type = self.get_parameter(node_definition, "responseType", "json")
        timeout_ms = self.get_parameter(node_definition, "timeout", settings.http_timeout_ms)

        headers = self._build_headers(self.get_parameter(node_definition, "headers", {}))
        params = dict(self.get_parameter(node_definition, "queryParameters", {}) or {})
        auth = self._apply_auth(node_definition, headers, params)

        body = node_definition.config.get("body")
        if body in (None, "") and method in BODY_METHODS:
            body = input_data
        request_kwargs = self._body_kwargs(body) if method in BODY_METHODS else {}

        retry_on_fail = bool(self.get_parameter(node_definition, "retryOnFail", False))
        retry_count = int(self.get_parameter(node_definition, "retryCount", 3)) if retry_on_fail else 0
        max_attempts = 1 + max(retry_count, 0)

        async def send(client: httpx.AsyncClient) -> httpx.Response:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params or None,
                auth=auth,
                timeout=float(timeout_ms) / 1000,
                **request_kwargs,
            )
            response.raise_for_status()
            return response

        for attempt in range(1, max_attempts + 1):
            try:
                if context.http_client is not None:
                    response = await send(context.http_client)
                else:
                    async with httpx.AsyncClient(follow_redirects=True) as client:
                        response = await send(client)
            except httpx.HTTPError as e:
                if attempt >= max_attempts:
                    raise
                logger.info(
                    "HTTP %s %s failed on attempt %d/%d: %s", method, url, attempt, max_attempts, e
                )
                await asyncio.sleep(attempt * settings.http_retry_backoff_ms / 1000)
                continue

            return self.output(
                self._parse_body(response, response_type),
                statusCode=response.status_code,
                headers=dict(response.headers),
                attempt=attempt,
            )

    def _build_headers(self, headers_param: Any) -> dict[str, str]:
        headers: dict[str, str] = {}
        if isinstance(headers_param, list):
            for h in headers_param:
                if isinstance(h, dict) and h.get("name"):
                    headers[h["name"]] = "" if h.get("value") is None else str(h["value"])
        elif isinstance(headers_param, dict):
            for name, value in headers_param.items():
                headers[name] = "" if value is None else str(value)
        return headers

    def _apply_auth(
        self,
        node_definition: NodeDefinition,
        headers: dict[str, str],
        params: dict[str, Any],
    ) -> httpx.BasicAuth | None:
        """Add credentials to headers/params. Returns an httpx auth for basic auth."""
        config = node_definition.config
        authentication = config.get("authentication") or "none"

        if authentication == "none":
            return None
        if authentication == "basicAuth":
            username = config.get("username")
            if not username:
                raise ValidationError("basicAuth requires a username", field="username")
            return httpx.BasicAuth(username, config.get("password") or "")
        if authentication in ("bearerToken", "oauth2"):
            token = config.get("token") or config.get("accessToken")
            if not token:
                raise ValidationError(f"{authentication} requires a token", field="token")
            headers["Authorization"] = f"Bearer {token}"
            return None
        if authentication == "apiKey":
            key_value = config.get("apiKeyValue") or config.get("apiKey")
            if not key_value:
                raise ValidationError("apiKey authentication requires apiKeyValue", field="apiKeyValue")
            key_name = config.get("apiKeyName") or "X-API-Key"
            if config.get("apiKeyIn") == "query":
                params[key_name] = key_value
            else:
                headers[key_name] = str(key_value)
            return None

        raise ValidationError(f"Unsupported authentication: {authentication}", field="authentication")

    def _body_kwargs(self, body: Any) -> dict[str, Any]:
        if body is None:
            return {}
        if isinstance(body, str):
            try:
                return {"json": json.loads(body)}
            except json.JSONDecodeError:
                return {"content": body}
        return {"json": body}

    def _parse_body(self, response: httpx.Response, response_type: str) -> Any:
        if response_type == "text":
            return response.text
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text
