# Tools module - dynamic tool registry and executors
# Descriptors are data; templates run without code evaluation,
# function bodies only under the trusted profile

from .registry import (
    ToolRegistry, TrustedToolRegistry, create_tool_registry,
    ToolDescriptor, RuntimeTool, RefreshReport, ToolKind,
)
from .schema_codec import ParameterValidator, ParameterDescriptor, ParameterKind
from .templates import TemplateExecutor, TemplateKind
from .function_executor import FunctionExecutor

__all__ = [
    "ToolRegistry",
    "TrustedToolRegistry",
    "create_tool_registry",
    "ToolDescriptor",
    "RuntimeTool",
    "RefreshReport",
    "ToolKind",
    "ParameterValidator",
    "ParameterDescriptor",
    "ParameterKind",
    "TemplateExecutor",
    "TemplateKind",
    "FunctionExecutor",
]
