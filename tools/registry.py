"""
Tool Registry
-------------
Persists tool descriptors to the object store and rebuilds runnable,
schema-validated tools from them.

Descriptor key: tools/<name>, JSON as UTF-8, last write wins.

Two variants gate the lower-trust path at the type level:
- ToolRegistry: template-only. No store_tool(); function-body
  descriptors fail to load with FunctionToolsDisabled.
- TrustedToolRegistry: adds store_tool() and builds function tools.

The registry never schedules a refresh; the orchestrating layer does.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
import yaml

from core.errors import (
    FunctionToolsDisabled, InvalidArguments, InvalidToolDescriptor,
    RegistryNotInitialized, SecurityViolation, ToolNotFound, VaultError,
)
from infra.config import DeploymentProfile
from infra.logging import OperationContext, get_logger
from storage.client import StorageClient
from .function_executor import FunctionExecutor
from .schema_codec import (
    ParameterDescriptor, ParameterValidator, decode_schema, encode_schema,
    to_json_schema, validate_args,
)
from .templates import TemplateExecutor

TOOLS_PREFIX = "tools/"


class ToolKind(str, Enum):
    """How a runtime tool executes."""
    TEMPLATE = "template"
    FUNCTION = "function"


class ToolDescriptor(BaseModel):
    """
    Persisted, data-only form of a dynamic tool.

    Exactly one of functionBody / templateType is meaningful; when both
    are present the template wins.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    function_body: str = Field(default="", alias="functionBody")
    parameters: Dict[str, ParameterDescriptor] = Field(default_factory=dict, alias="schema")
    template_type: Optional[str] = Field(default=None, alias="templateType")
    config: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_executable(self) -> "ToolDescriptor":
        if not self.template_type and not self.function_body.strip():
            raise ValueError("descriptor needs a non-empty functionBody or a templateType")
        return self

    @property
    def kind(self) -> ToolKind:
        return ToolKind.TEMPLATE if self.template_type else ToolKind.FUNCTION

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2).encode("utf-8")

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "ToolDescriptor":
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise InvalidToolDescriptor(
                name, f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}"
            ) from e
        except ValueError as e:
            raise InvalidToolDescriptor(name, f"undecodable descriptor: {e}") from e


@dataclass
class RuntimeTool:
    """
    In-memory, invocable reconstruction of a descriptor.

    invoke() validates arguments against the decoded schema first.
    """
    name: str
    parameters: Dict[str, ParameterValidator]
    kind: ToolKind
    implementation: Callable[[Dict[str, Any]], Awaitable[Any]]
    template_type: Optional[str] = None

    def validate_args(self, args: Mapping[str, Any]) -> Tuple[bool, Optional[str]]:
        return validate_args(self.parameters, args)

    async def invoke(self, args: Optional[Mapping[str, Any]] = None) -> Any:
        args = dict(args or {})
        valid, error = self.validate_args(args)
        if not valid:
            raise InvalidArguments(self.name, error)
        return await self.implementation(args)

    def json_schema(self) -> Dict[str, Any]:
        return to_json_schema(self.parameters)

    def __repr__(self) -> str:
        return f"RuntimeTool(name={self.name}, kind={self.kind.value})"


@dataclass
class RefreshReport:
    """Outcome of a catalog refresh."""
    loaded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class ToolRegistry:
    """
    Template-only tool registry.

    All storage goes through an injected StorageClient whose bucket
    must be resolved before use.
    """

    allows_function_tools = False

    def __init__(self, client: StorageClient, templates: Optional[TemplateExecutor] = None):
        self._client = client
        self._templates = templates or TemplateExecutor()
        self._catalog: Dict[str, RuntimeTool] = {}
        self._logger = get_logger("tools.registry")

    @staticmethod
    def key_for(name: str) -> str:
        return f"{TOOLS_PREFIX}{name}"

    def _require_initialized(self, identifier: str) -> None:
        if not self._client.is_initialized:
            raise RegistryNotInitialized(identifier)

    async def _persist(self, descriptor: ToolDescriptor) -> None:
        self._require_initialized(descriptor.name)
        # Serialized fully in memory, then one write
        data = descriptor.to_bytes()
        await self._client.put_object(
            self.key_for(descriptor.name), data, overwrite=True,
            metadata={"kind": descriptor.kind.value},
        )
        self._logger.info(f"Stored {descriptor.kind.value} tool: {descriptor.name}")

    @staticmethod
    def _describe(
        name: str,
        schema: Optional[Mapping[str, ParameterValidator]],
        **fields: Any,
    ) -> ToolDescriptor:
        try:
            return ToolDescriptor(name=name, parameters=encode_schema(schema or {}), **fields)
        except ValidationError as e:
            raise InvalidToolDescriptor(name or "<unnamed>", e.errors()[0]["msg"]) from e

    async def store_templated_tool(
        self,
        name: str,
        schema: Optional[Mapping[str, ParameterValidator]],
        template_type: str,
        config: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Persist a template-based tool.

        template_type is not checked against the known kinds here;
        readers validate it at load time.
        """
        descriptor = self._describe(
            name, schema,
            function_body="",
            template_type=template_type,
            config=dict(config or {}),
        )
        await self._persist(descriptor)
        return f"Templated tool {name} stored successfully"

    async def fetch_descriptor(self, name: str) -> ToolDescriptor:
        """Fetch and decode a stored descriptor."""
        self._require_initialized(name)
        data = await self._client.get_object(self.key_for(name))
        if data is None:
            raise ToolNotFound(name)
        return ToolDescriptor.from_bytes(name, data)

    def build_tool(self, descriptor: ToolDescriptor) -> RuntimeTool:
        """Decode the schema and pick an executor."""
        parameters = decode_schema(descriptor.parameters)

        if descriptor.template_type:
            implementation = self._templates.build(
                descriptor.template_type, descriptor.config, tool_name=descriptor.name,
            )
        else:
            implementation = self._build_function(descriptor)

        return RuntimeTool(
            name=descriptor.name,
            parameters=parameters,
            kind=descriptor.kind,
            implementation=implementation,
            template_type=descriptor.template_type,
        )

    def _build_function(self, descriptor: ToolDescriptor) -> Callable[[Dict[str, Any]], Awaitable[Any]]:
        raise FunctionToolsDisabled(descriptor.name)

    async def load_tool(self, name: str) -> RuntimeTool:
        """
        Fetch, decode and build one tool.

        Raises ToolNotFound, InvalidToolDescriptor, UnknownTemplate,
        InvalidFunctionBody or FunctionToolsDisabled, each naming the tool.
        """
        descriptor = await self.fetch_descriptor(name)
        if descriptor.name != name:
            self._logger.warning(f"Descriptor at {self.key_for(name)} names '{descriptor.name}'")
        tool = self.build_tool(descriptor)
        tool.name = name
        return tool

    async def list_tools(self) -> List[str]:
        """Names under the tools/ namespace. Cheap: no descriptor bodies."""
        self._require_initialized("catalog")
        objects = await self._client.list_objects()
        return [
            obj.key[len(TOOLS_PREFIX):]
            for obj in objects
            if obj.key.startswith(TOOLS_PREFIX) and len(obj.key) > len(TOOLS_PREFIX)
        ]

    async def refresh_catalog(self, tolerant: bool = True) -> RefreshReport:
        """
        Rebuild the in-memory catalog from storage.

        tolerant=True: a failing tool is logged and skipped; the catalog
        is replaced and each loaded tool is added as it loads.
        tolerant=False: any failure propagates and the previous catalog
        stays in place; the new one is swapped in only when complete.

        An uninitialized registry is a hard failure either way.
        """
        self._require_initialized("catalog")
        report = RefreshReport()

        with OperationContext("refresh") as op_id:
            names = await self.list_tools()
            self._logger.info(f"Refreshing catalog: {len(names)} tool(s) [{op_id}]")

            if not tolerant:
                fresh: Dict[str, RuntimeTool] = {}
                for name in names:
                    fresh[name] = await self.load_tool(name)
                self._catalog = fresh
                report.loaded = list(fresh)
                return report

            self._catalog = {}
            for name in names:
                try:
                    tool = await self.load_tool(name)
                except SecurityViolation:
                    raise
                except Exception as e:
                    report.failed[name] = str(e)
                    self._logger.error(
                        f"Failed to load tool {name}: {e}", extra={"tool_name": name}
                    )
                    continue
                self._catalog[name] = tool
                report.loaded.append(name)

            if report.failed:
                self._logger.warning(
                    f"Catalog refreshed with {len(report.failed)} failure(s): "
                    f"{', '.join(report.failed)}"
                )
        return report

    @property
    def catalog(self) -> Dict[str, RuntimeTool]:
        return dict(self._catalog)

    def get(self, name: str) -> Optional[RuntimeTool]:
        return self._catalog.get(name)

    async def load_from_yaml(self, path: str) -> int:
        """
        Store tool definitions from a YAML file.
        Returns number of tools stored.

        Format:
            tools:
              - name: get_price
                parameters:
                  - {name: coin, type: string, description: ..., required: true}
                template: api_call
                config: {endpoint: "https://.../{coin}", method: GET}
              - name: echo
                parameters: [{name: x, type: unknown}]
                function_body: "def echo(x): return x"
        """
        with open(Path(path), "r") as f:
            data = yaml.safe_load(f) or {}

        count = 0
        for tool_data in data.get("tools", []):
            try:
                await self._store_definition(tool_data)
                count += 1
            except SecurityViolation:
                raise
            except (VaultError, KeyError, TypeError, ValueError) as e:
                self._logger.error(f"Failed to store tool {tool_data.get('name', '?')}: {e}")

        return count

    async def _store_definition(self, data: Dict[str, Any]) -> None:
        params = data.get("parameters") or []
        if isinstance(params, Mapping):
            params = [{"name": k, **(v or {})} for k, v in params.items()]
        schema = decode_schema({
            p["name"]: ParameterDescriptor(
                type=p.get("type", "string"),
                description=p.get("description"),
                required=p.get("required", True),
            )
            for p in params
        })

        if data.get("template"):
            await self.store_templated_tool(
                data["name"], schema, data["template"], data.get("config") or {},
            )
        elif data.get("function_body"):
            await self._store_function_definition(data["name"], schema, data["function_body"])
        else:
            raise InvalidToolDescriptor(data["name"], "definition needs template or function_body")

    async def _store_function_definition(self, name: str, schema, body: str) -> None:
        raise FunctionToolsDisabled(name)

    def __len__(self) -> int:
        return len(self._catalog)

    def __contains__(self, name: str) -> bool:
        return name in self._catalog


class TrustedToolRegistry(ToolRegistry):
    """
    Registry for admin-trusted, single-tenant deployments.

    Adds stored function bodies on top of templates.
    """

    allows_function_tools = True

    def __init__(
        self,
        client: StorageClient,
        templates: Optional[TemplateExecutor] = None,
        functions: Optional[FunctionExecutor] = None,
    ):
        super().__init__(client, templates)
        self._functions = functions or FunctionExecutor()

    async def store_tool(
        self,
        name: str,
        schema: Optional[Mapping[str, ParameterValidator]],
        function_body: Union[str, Callable[..., Any]],
    ) -> str:
        """Persist a function-body tool. Live functions are stored as their source."""
        if callable(function_body):
            function_body = FunctionExecutor.source_of(function_body, name)
        descriptor = self._describe(name, schema, function_body=function_body)
        await self._persist(descriptor)
        return f"Tool {name} stored successfully"

    def _build_function(self, descriptor: ToolDescriptor) -> Callable[[Dict[str, Any]], Awaitable[Any]]:
        return self._functions.build(descriptor.function_body, descriptor.name)

    async def _store_function_definition(self, name: str, schema, body: str) -> None:
        await self.store_tool(name, schema, body)


def create_tool_registry(
    client: StorageClient,
    profile: DeploymentProfile = DeploymentProfile.TEMPLATE_ONLY,
    templates: Optional[TemplateExecutor] = None,
) -> ToolRegistry:
    """Pick the registry variant for a deployment profile."""
    if profile == DeploymentProfile.TRUSTED:
        return TrustedToolRegistry(client, templates)
    return ToolRegistry(client, templates)
