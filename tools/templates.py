"""
Template Executor
-----------------
A fixed set of code-free tool behaviors, configured entirely through data.

Template kinds:
- api_call: fill {field} placeholders in config.endpoint from args,
  issue an HTTP request, return the parsed JSON response
- transformation: apply a fixed string operation to one input field

Rules:
- No source-code evaluation on this path
- Unknown template types fail closed (UnknownTemplate)
- Unknown transformation operations are a no-op, so configs saved by
  newer versions still load
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote
import json
import re

import httpx

from core.errors import TemplateExecutionError, UnknownTemplate
from infra.logging import get_logger

TemplateFunction = Callable[[Dict[str, Any]], Awaitable[Any]]

PLACEHOLDER = re.compile(r"\{([^}]+)\}")
DEFAULT_HEADERS = {"Content-Type": "application/json"}


class TemplateKind(str, Enum):
    """Enumerated template kinds."""
    API_CALL = "api_call"
    TRANSFORMATION = "transformation"


class TransformOperation(str, Enum):
    """String operations available to the transformation template."""
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TRIM = "trim"
    PARSE_JSON = "parse_json"


class TemplateExecutor:
    """
    Builds async tool functions from (template_type, config).

    Pass an httpx.AsyncClient to share connections (and to mock
    transport in tests); otherwise each api_call opens a short-lived one.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ):
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds
        self._logger = get_logger("tools.templates")
        self._builders: Dict[str, Callable[[Mapping[str, Any], str], TemplateFunction]] = {
            TemplateKind.API_CALL.value: self._build_api_call,
            TemplateKind.TRANSFORMATION.value: self._build_transformation,
        }

    def kinds(self) -> List[str]:
        return list(self._builders)

    def supports(self, template_type: str) -> bool:
        return template_type in self._builders

    def build(
        self,
        template_type: str,
        config: Optional[Mapping[str, Any]] = None,
        tool_name: Optional[str] = None,
    ) -> TemplateFunction:
        """Look up a template kind and bind it to its config."""
        builder = self._builders.get(template_type)
        if builder is None:
            raise UnknownTemplate(
                tool_name or template_type,
                f"unknown template type '{template_type}' (known: {', '.join(self.kinds())})",
            )
        return builder(dict(config or {}), tool_name or template_type)

    async def execute(
        self,
        template_type: str,
        config: Optional[Mapping[str, Any]],
        args: Dict[str, Any],
    ) -> Any:
        return await self.build(template_type, config)(args)

    # api_call

    def _build_api_call(self, config: Mapping[str, Any], tool_name: str) -> TemplateFunction:
        endpoint = config.get("endpoint")
        if not isinstance(endpoint, str) or not endpoint:
            raise TemplateExecutionError(tool_name, "api_call requires a string 'endpoint'")

        method = str(config.get("method") or "GET").upper()
        headers = dict(config.get("headers") or DEFAULT_HEADERS)

        async def run(args: Dict[str, Any]) -> Any:
            url = self._fill_endpoint(endpoint, args, tool_name)
            kwargs: Dict[str, Any] = {}
            if method != "GET" and args.get("body") is not None:
                kwargs["json"] = args["body"]

            try:
                if self._http_client is not None:
                    response = await self._http_client.request(method, url, headers=headers, **kwargs)
                else:
                    async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                        response = await client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise TemplateExecutionError(
                    tool_name,
                    f"api_call {method} {endpoint} returned {e.response.status_code}",
                ) from e
            except httpx.HTTPError as e:
                raise TemplateExecutionError(
                    tool_name, f"api_call {method} {endpoint} failed: {e}"
                ) from e

            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise TemplateExecutionError(
                    tool_name, f"api_call {method} {endpoint} returned non-JSON body"
                ) from e

        return run

    @staticmethod
    def _fill_endpoint(endpoint: str, args: Mapping[str, Any], tool_name: str) -> str:
        def substitute(match: "re.Match") -> str:
            field = match.group(1)
            if field not in args:
                raise TemplateExecutionError(
                    tool_name, f"api_call {endpoint} missing argument '{field}'"
                )
            return quote(str(args[field]), safe="")

        return PLACEHOLDER.sub(substitute, endpoint)

    # transformation

    def _build_transformation(self, config: Mapping[str, Any], tool_name: str) -> TemplateFunction:
        operation = config.get("operation")
        input_field = config.get("inputField")

        async def run(args: Dict[str, Any]) -> Any:
            field = input_field or next(iter(args), None)
            value = args.get(field) if field is not None else None
            return self._transform(operation, value, tool_name)

        return run

    def _transform(self, operation: Optional[str], value: Any, tool_name: str) -> Any:
        if operation == TransformOperation.PARSE_JSON.value:
            if not isinstance(value, str):
                return value
            try:
                return json.loads(value)
            except ValueError as e:
                raise TemplateExecutionError(tool_name, f"parse_json failed: {e}") from e

        if not isinstance(value, str):
            return value
        if operation == TransformOperation.UPPERCASE.value:
            return value.upper()
        if operation == TransformOperation.LOWERCASE.value:
            return value.lower()
        if operation == TransformOperation.TRIM.value:
            return value.strip()

        self._logger.debug(f"Unknown transformation '{operation}' in {tool_name}; returning input")
        return value
