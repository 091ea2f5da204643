#!/usr/bin/env python3
"""
Vault Toolkit - Secret lifecycle and dynamic tool registry
==========================================================

Admin entry point over the tool registry.

Usage:
    python main.py list                    # Stored tool names
    python main.py refresh                 # Rebuild the catalog, report failures
    python main.py invoke NAME '{"x": 1}'  # Load one tool and run it
    python main.py import-yaml tools.yaml  # Store definitions from YAML

The credential is read from the environment variable named in
config.yaml (credential.env_var), or from a .env file.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Tuple

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.table import Table

from core import ErrorHandler, SecurityViolation, VaultError, with_timeout
from infra import ConfigManager, VaultConfig, configure_logging, get_logger
from security.secret_store import SecretStore
from storage import DirectoryObjectStore, StorageClient
from tools import TemplateExecutor, ToolRegistry, create_tool_registry


console = Console()


async def build_registry(vault: VaultConfig) -> Tuple[StorageClient, ToolRegistry]:
    """Consume the credential, resolve the bucket and pick the registry variant."""
    secrets = SecretStore(
        env_var=vault.credential_env_var,
        env_file=vault.credential_env_file,
        expected_sha256=vault.credential_sha256,
    )
    client = StorageClient.from_secret_store(
        secrets, DirectoryObjectStore(vault.storage_dir), network=vault.network,
    )
    await with_timeout(
        client.get_or_create_bucket(vault.bucket_alias),
        vault.http_timeout_seconds,
        "get_or_create_bucket",
    )
    templates = TemplateExecutor(timeout_seconds=vault.http_timeout_seconds)
    return client, create_tool_registry(client, vault.profile, templates)


async def cmd_list(registry: ToolRegistry, args: argparse.Namespace) -> int:
    names = await registry.list_tools()
    if not names:
        console.print("[dim]No tools stored[/dim]")
        return 0
    for name in sorted(names):
        console.print(f"  {name}")
    return 0


async def cmd_refresh(registry: ToolRegistry, args: argparse.Namespace) -> int:
    report = await registry.refresh_catalog(tolerant=not args.strict)

    table = Table(title="Tool catalog")
    table.add_column("Tool", style="cyan")
    table.add_column("Kind")
    table.add_column("Status")
    for name, tool in sorted(registry.catalog.items()):
        table.add_row(name, tool.kind.value, "[green]loaded[/green]")
    for name, error in sorted(report.failed.items()):
        table.add_row(name, "-", f"[red]{error}[/red]")
    console.print(table)

    return 0 if report.ok else 1


async def cmd_invoke(registry: ToolRegistry, args: argparse.Namespace) -> int:
    try:
        tool_args = json.loads(args.arguments)
    except ValueError as e:
        console.print(f"[red]Arguments must be a JSON object: {e}[/red]")
        return 2
    if not isinstance(tool_args, dict):
        console.print("[red]Arguments must be a JSON object[/red]")
        return 2

    tool = await registry.load_tool(args.name)
    result = await with_timeout(tool.invoke(tool_args), args.timeout, f"invoke:{args.name}")
    console.print(f"[bold green]Result:[/bold green] {json.dumps(result, default=str)}")
    return 0


async def cmd_import_yaml(registry: ToolRegistry, args: argparse.Namespace) -> int:
    count = await registry.load_from_yaml(args.path)
    console.print(f"[green]Stored {count} tool(s) from {args.path}[/green]")
    return 0


COMMANDS = {
    "list": cmd_list,
    "refresh": cmd_refresh,
    "invoke": cmd_invoke,
    "import-yaml": cmd_import_yaml,
}


async def run(args: argparse.Namespace) -> int:
    vault = ConfigManager(args.config).vault_config()
    client, registry = await build_registry(vault)
    try:
        return await COMMANDS[args.command](registry, args)
    finally:
        client.close()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Vault Toolkit - secret lifecycle and dynamic tool registry"
    )
    parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--log-level", "-l",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="List stored tool names")

    refresh = subparsers.add_parser("refresh", help="Rebuild the tool catalog")
    refresh.add_argument(
        "--strict",
        action="store_true",
        help="Fail on the first broken tool instead of skipping it"
    )

    invoke = subparsers.add_parser("invoke", help="Load and run one tool")
    invoke.add_argument("name", help="Tool name")
    invoke.add_argument("arguments", nargs="?", default="{}", help="JSON object of arguments")
    invoke.add_argument("--timeout", type=float, default=30.0, help="Seconds before giving up")

    import_yaml = subparsers.add_parser("import-yaml", help="Store tools defined in a YAML file")
    import_yaml.add_argument("path", help="YAML file with a top-level 'tools' list")

    args = parser.parse_args()

    configure_logging(level=getattr(logging, args.log_level))
    logger = get_logger("main")
    errors = ErrorHandler()

    try:
        return asyncio.run(run(args))
    except SecurityViolation as e:
        logger.critical(str(e))
        console.print(f"[bold red]{e.user_message()}[/bold red]")
        return 3
    except VaultError as e:
        console.print(f"[red]{errors.handle(e)}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
