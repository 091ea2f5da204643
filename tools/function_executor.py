"""
Function Executor
-----------------
Reconstructs a callable from stored Python source text.

This is the lower-safety path: for admin-trusted, single-tenant
deployments only. The registry refuses to reach it under the
template-only profile.

Accepted bodies:
- a lambda expression:          lambda x: x
- one or more definitions:      def run(x): return x

The callable is picked as: run, a function named after the tool, main,
then the last public callable defined.

Evaluation uses a fresh namespace and a builtins table without open,
exec, eval, compile, input and breakpoint. That is isolation, NOT a
sandbox: trusted code can still import modules.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional
import builtins
import inspect
import textwrap

from core.errors import InvalidFunctionBody
from infra.logging import get_logger

BLOCKED_BUILTINS = frozenset({"open", "exec", "eval", "compile", "input", "breakpoint"})
PREFERRED_NAMES = ("run",)
MAPPING_PARAMETER_NAMES = ("args", "params")


def _restricted_builtins() -> Dict[str, Any]:
    return {k: v for k, v in vars(builtins).items() if k not in BLOCKED_BUILTINS}


@dataclass
class BuiltFunction:
    """A reconstructed callable and how to call it."""
    name: str
    func: Callable[..., Any]
    mapping_param: Optional[str] = None

    async def __call__(self, args: Mapping[str, Any]) -> Any:
        """Call with arguments as keywords (or as one mapping), awaiting coroutines."""
        if self.mapping_param and set(args) != {self.mapping_param}:
            result = self.func(dict(args))
        else:
            result = self.func(**args)
        if inspect.isawaitable(result):
            result = await result
        return result


class FunctionExecutor:
    """Compiles stored source into invocable functions."""

    def __init__(self):
        self._logger = get_logger("tools.functions")

    def build(self, source: str, tool_name: str) -> BuiltFunction:
        """
        Compile source into a BuiltFunction.

        Raises InvalidFunctionBody naming the tool for syntax errors,
        errors raised while evaluating the body, or a body that defines
        no callable.
        """
        source = textwrap.dedent(source or "").strip()
        if not source:
            raise InvalidFunctionBody(tool_name, "empty function body")

        namespace: Dict[str, Any] = {
            "__builtins__": _restricted_builtins(),
            "__name__": f"vault_tool_{tool_name}",
        }
        filename = f"<tool:{tool_name}>"

        try:
            code = compile(source, filename, "eval")
        except SyntaxError:
            code = None

        try:
            if code is not None:
                func = eval(code, namespace)
            else:
                exec(compile(source, filename, "exec"), namespace)
                func = self._pick_callable(namespace, tool_name)
        except SyntaxError as e:
            raise InvalidFunctionBody(
                tool_name, f"syntax error at line {e.lineno}: {e.msg}"
            ) from e
        except InvalidFunctionBody:
            raise
        except Exception as e:
            raise InvalidFunctionBody(
                tool_name, f"evaluating body raised {type(e).__name__}: {e}"
            ) from e

        if not callable(func):
            raise InvalidFunctionBody(tool_name, "body does not evaluate to a callable")

        self._logger.debug(f"Built function tool {tool_name}")
        return BuiltFunction(name=tool_name, func=func, mapping_param=self._mapping_param(func))

    @staticmethod
    def _pick_callable(namespace: Dict[str, Any], tool_name: str) -> Callable[..., Any]:
        for name in (*PREFERRED_NAMES, tool_name, "main"):
            candidate = namespace.get(name)
            if callable(candidate):
                return candidate

        chosen: Optional[Callable[..., Any]] = None
        for name, obj in namespace.items():
            if name.startswith("_") or isinstance(obj, type) or inspect.ismodule(obj):
                continue
            if callable(obj):
                chosen = obj
        if chosen is None:
            raise InvalidFunctionBody(tool_name, "body defines no callable")
        return chosen

    @staticmethod
    def _mapping_param(func: Callable[..., Any]) -> Optional[str]:
        """Name of the sole args/params parameter, for functions that take the whole mapping."""
        try:
            params = list(inspect.signature(func).parameters.values())
        except (TypeError, ValueError):
            return None
        if (
            len(params) == 1
            and params[0].name in MAPPING_PARAMETER_NAMES
            and params[0].kind in (
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
            )
        ):
            return params[0].name
        return None

    @staticmethod
    def source_of(func: Callable[..., Any], tool_name: str) -> str:
        """Recover storable source text from a live function."""
        try:
            return textwrap.dedent(inspect.getsource(func)).strip()
        except (OSError, TypeError) as e:
            raise InvalidFunctionBody(tool_name, f"cannot read source: {e}") from e
