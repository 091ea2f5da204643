"""
Tool Registry Tests
-------------------
Store, load, list and refresh against an in-memory object store.
"""

import json
import logging

import httpx
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import (
    FunctionToolsDisabled, InvalidArguments, InvalidFunctionBody, InvalidToolDescriptor,
    RegistryNotInitialized, ToolNotFound, UnknownTemplate,
)
from infra.config import DeploymentProfile
from tools import schema_codec as s
from tools.registry import (
    ToolDescriptor, ToolKind, ToolRegistry, TrustedToolRegistry, create_tool_registry,
)
from tools.templates import TemplateExecutor


async def put_raw(client, name: str, payload) -> None:
    data = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    await client.put_object(f"tools/{name}", data, overwrite=True)


class TestDescriptor:
    """Persisted descriptor shape."""

    def test_aliases_on_the_wire(self):
        descriptor = ToolDescriptor(
            name="u",
            parameters=s.encode_schema({"text": s.string()}),
            template_type="transformation",
            config={"operation": "uppercase"},
        )
        wire = json.loads(descriptor.to_bytes())

        assert wire == {
            "name": "u",
            "functionBody": "",
            "schema": {"text": {"type": "string", "required": True}},
            "templateType": "transformation",
            "config": {"operation": "uppercase"},
        }

    def test_needs_body_or_template(self):
        with pytest.raises(InvalidToolDescriptor):
            ToolDescriptor.from_bytes("empty", b'{"name": "empty", "functionBody": "  "}')

    def test_rejects_non_json(self):
        with pytest.raises(InvalidToolDescriptor) as exc_info:
            ToolDescriptor.from_bytes("bad", b"\xff not json")
        assert exc_info.value.identifier == "bad"

    def test_kind(self):
        assert ToolDescriptor(name="f", function_body="lambda: 1").kind == ToolKind.FUNCTION
        assert ToolDescriptor(name="t", template_type="api_call").kind == ToolKind.TEMPLATE


class TestStoreAndLoad:
    """Round trips through storage."""

    @pytest.mark.asyncio
    async def test_templated_tool_round_trip(self, registry):
        message = await registry.store_templated_tool(
            "u", {"text": s.string()}, "transformation", {"operation": "uppercase"},
        )
        assert message == "Templated tool u stored successfully"

        tool = await registry.load_tool("u")

        assert tool.kind == ToolKind.TEMPLATE
        assert tool.template_type == "transformation"
        assert await tool.invoke({"text": "ab"}) == "AB"

    @pytest.mark.asyncio
    async def test_templated_tool_with_empty_schema(self, registry):
        await registry.store_templated_tool("u", {}, "transformation", {"operation": "uppercase"})
        tool = await registry.load_tool("u")
        assert await tool.invoke({"text": "ab"}) == "AB"

    @pytest.mark.asyncio
    async def test_function_tool_round_trip(self, trusted_registry):
        message = await trusted_registry.store_tool(
            "echo", {"x": s.any_()}, "def echo(x):\n    return x\n",
        )
        assert message == "Tool echo stored successfully"

        tool = await trusted_registry.load_tool("echo")
        assert tool.kind == ToolKind.FUNCTION
        assert await tool.invoke({"x": {"nested": [1]}}) == {"nested": [1]}

    @pytest.mark.asyncio
    async def test_store_live_function(self, trusted_registry):
        def add(a, b):
            return a + b

        await trusted_registry.store_tool("add", {"a": s.number(), "b": s.number()}, add)
        tool = await trusted_registry.load_tool("add")
        assert await tool.invoke({"a": 2, "b": 3}) == 5

    @pytest.mark.asyncio
    async def test_last_write_wins(self, registry):
        await registry.store_templated_tool("t", {}, "transformation", {"operation": "uppercase"})
        await registry.store_templated_tool("t", {}, "transformation", {"operation": "lowercase"})

        tool = await registry.load_tool("t")
        assert await tool.invoke({"text": "Ab"}) == "ab"

    @pytest.mark.asyncio
    async def test_template_wins_over_function_body(self, trusted_registry, ready_client):
        await put_raw(ready_client, "both", {
            "name": "both",
            "functionBody": "lambda text: 'function'",
            "schema": {},
            "templateType": "transformation",
            "config": {"operation": "uppercase"},
        })
        tool = await trusted_registry.load_tool("both")
        assert await tool.invoke({"text": "ab"}) == "AB"

    @pytest.mark.asyncio
    async def test_writes_are_signed(self, registry, ready_client, object_store):
        await registry.store_templated_tool("t", {}, "transformation", {"operation": "trim"})

        [info] = await object_store.list(ready_client.bucket)
        data = await object_store.get(ready_client.bucket, "tools/t")
        assert ready_client.verify_object("tools/t", data, info.metadata)
        assert info.metadata["kind"] == "template"

    @pytest.mark.asyncio
    async def test_invalid_name_not_persisted(self, registry, ready_client):
        with pytest.raises(InvalidToolDescriptor):
            await registry.store_templated_tool("", {}, "transformation", {})
        assert await ready_client.list_objects() == []


class TestLoadErrors:
    """Every load failure names the tool."""

    @pytest.mark.asyncio
    async def test_not_found(self, registry):
        with pytest.raises(ToolNotFound) as exc_info:
            await registry.load_tool("ghost")
        assert exc_info.value.identifier == "ghost"

    @pytest.mark.asyncio
    async def test_malformed_descriptor(self, registry, ready_client):
        await put_raw(ready_client, "junk", b"{not json")
        with pytest.raises(InvalidToolDescriptor):
            await registry.load_tool("junk")

    @pytest.mark.asyncio
    async def test_unknown_template(self, registry, ready_client):
        await put_raw(ready_client, "odd", {"name": "odd", "templateType": "shell", "config": {}})
        with pytest.raises(UnknownTemplate) as exc_info:
            await registry.load_tool("odd")
        assert exc_info.value.identifier == "odd"

    @pytest.mark.asyncio
    async def test_broken_function_body(self, trusted_registry, ready_client):
        await put_raw(ready_client, "broken", {"name": "broken", "functionBody": "def (:"})
        with pytest.raises(InvalidFunctionBody) as exc_info:
            await trusted_registry.load_tool("broken")
        assert exc_info.value.identifier == "broken"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, registry):
        await registry.store_templated_tool(
            "u", {"text": s.string()}, "transformation", {"operation": "uppercase"},
        )
        tool = await registry.load_tool("u")

        with pytest.raises(InvalidArguments) as exc_info:
            await tool.invoke({"text": 5})
        assert "text" in str(exc_info.value)

        with pytest.raises(InvalidArguments):
            await tool.invoke({})


class TestTemplateOnlyProfile:
    """The base registry never builds function tools."""

    @pytest.mark.asyncio
    async def test_no_store_tool(self, registry):
        assert not hasattr(registry, "store_tool")
        assert registry.allows_function_tools is False

    @pytest.mark.asyncio
    async def test_function_descriptor_rejected(self, registry, trusted_registry):
        await trusted_registry.store_tool("echo", {"x": s.any_()}, "lambda x: x")

        with pytest.raises(FunctionToolsDisabled) as exc_info:
            await registry.load_tool("echo")
        assert exc_info.value.identifier == "echo"

    @pytest.mark.asyncio
    async def test_factory(self, ready_client):
        assert type(create_tool_registry(ready_client)) is ToolRegistry
        assert type(create_tool_registry(ready_client, DeploymentProfile.TEMPLATE_ONLY)) is ToolRegistry
        assert isinstance(
            create_tool_registry(ready_client, DeploymentProfile.TRUSTED), TrustedToolRegistry
        )


class TestListAndRefresh:
    """Catalog listing and rebuild."""

    @pytest.mark.asyncio
    async def test_list_strips_prefix_and_ignores_other_keys(self, registry, ready_client):
        await registry.store_templated_tool("a", {}, "transformation", {})
        await ready_client.put_object("other/thing", b"{}")

        assert await registry.list_tools() == ["a"]

    @pytest.mark.asyncio
    async def test_tolerant_refresh_skips_broken(self, trusted_registry, ready_client, caplog):
        await trusted_registry.store_tool("echo", {"x": s.any_()}, "def echo(x):\n    return x\n")
        await put_raw(ready_client, "broken", {"name": "broken", "functionBody": "def (:"})

        report = await trusted_registry.refresh_catalog()

        assert set(trusted_registry.catalog) == {"echo"}
        assert report.loaded == ["echo"]
        assert set(report.failed) == {"broken"}
        assert not report.ok
        assert await trusted_registry.get("echo").invoke({"x": 7}) == 7
        assert any("broken" in r.getMessage() for r in caplog.records if r.levelname == "ERROR")

    @pytest.mark.asyncio
    async def test_invalid_json_between_refreshes(self, trusted_registry, ready_client, caplog):
        await trusted_registry.store_tool("echo", {"x": s.any_()}, "def echo(x):\n    return x\n")
        await trusted_registry.refresh_catalog()
        assert await trusted_registry.get("echo").invoke({"x": 42}) == 42

        await put_raw(ready_client, "broken", b"{not json")
        report = await trusted_registry.refresh_catalog()

        assert await trusted_registry.get("echo").invoke({"x": 42}) == 42
        assert "broken" not in trusted_registry
        assert "broken" in report.failed
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert any("broken" in r.getMessage() for r in errors)

    @pytest.mark.asyncio
    async def test_refresh_replaces_catalog(self, registry, ready_client):
        await registry.store_templated_tool("a", {}, "transformation", {})
        await registry.refresh_catalog()
        assert "a" in registry

        await put_raw(ready_client, "a", b"corrupted")
        await registry.refresh_catalog()

        assert "a" not in registry
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_strict_refresh_keeps_previous_catalog(self, registry, ready_client):
        await registry.store_templated_tool("a", {}, "transformation", {})
        await registry.refresh_catalog(tolerant=False)
        before = registry.catalog

        await put_raw(ready_client, "b", {"name": "b", "templateType": "shell"})
        with pytest.raises(UnknownTemplate):
            await registry.refresh_catalog(tolerant=False)

        assert registry.catalog == before

    @pytest.mark.asyncio
    async def test_catalog_is_a_copy(self, registry):
        await registry.store_templated_tool("a", {}, "transformation", {})
        await registry.refresh_catalog()

        registry.catalog.clear()
        assert "a" in registry


class TestUninitialized:
    """A registry over a client without a bucket."""

    @pytest.mark.asyncio
    async def test_refresh_fails_hard(self, client):
        with pytest.raises(RegistryNotInitialized):
            await ToolRegistry(client).refresh_catalog()

    @pytest.mark.asyncio
    async def test_store_fails_hard(self, client):
        with pytest.raises(RegistryNotInitialized):
            await ToolRegistry(client).store_templated_tool("a", {}, "transformation", {})

    @pytest.mark.asyncio
    async def test_load_fails_hard(self, client):
        with pytest.raises(RegistryNotInitialized):
            await ToolRegistry(client).load_tool("a")


class TestApiCallTool:
    """A stored api_call tool end to end."""

    @pytest.mark.asyncio
    async def test_invoke(self, ready_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": request.url.path.rsplit("/", 1)[-1]})

        templates = TemplateExecutor(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        registry = ToolRegistry(ready_client, templates)
        await registry.store_templated_tool(
            "get_todo", {"id": s.string("todo id")}, "api_call",
            {"endpoint": "https://h/todos/{id}", "method": "GET"},
        )

        tool = await registry.load_tool("get_todo")
        assert await tool.invoke({"id": "7"}) == {"id": "7"}
        assert tool.json_schema()["required"] == ["id"]
        assert tool.json_schema()["additionalProperties"] is True
        assert await tool.invoke({"id": "8", "verbose": True}) == {"id": "8"}


class TestYamlImport:
    """Bulk definitions from YAML."""

    YAML = """
tools:
  - name: shout
    parameters:
      - {name: text, type: string}
    template: transformation
    config: {operation: uppercase}
  - name: add
    parameters:
      - {name: a, type: number}
      - {name: b, type: number}
    function_body: |
      def add(a, b):
          return a + b
  - name: nothing
"""

    @pytest.mark.asyncio
    async def test_template_only_skips_functions(self, registry, tmp_path):
        path = tmp_path / "tools.yaml"
        path.write_text(self.YAML)

        assert await registry.load_from_yaml(str(path)) == 1
        assert await registry.list_tools() == ["shout"]

    @pytest.mark.asyncio
    async def test_trusted_stores_both(self, trusted_registry, tmp_path):
        path = tmp_path / "tools.yaml"
        path.write_text(self.YAML)

        assert await trusted_registry.load_from_yaml(str(path)) == 2
        report = await trusted_registry.refresh_catalog()
        assert sorted(report.loaded) == ["add", "shout"]
        assert await trusted_registry.get("add").invoke({"a": 1, "b": 2}) == 3
