"""
Lifecycle hooks around repository primitives.

Hooks may be plain functions or coroutines. A ``before_*`` hook receives a
HookContext and may return a mapping that is shallow-merged over the data
about to be written; an ``after_*`` hook receives the primitive's result and
its return value is ignored. Exceptions raised by hooks propagate unchanged.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from repokit.core.exceptions import ValidationFailure


HookFn = Callable[..., Any]


class Hooks(BaseModel):
    """
    The six hooks a repository can run.

    Create hooks wrap create/insert_many. Update hooks wrap update_by_id,
    update_many, upsert and restore. Delete hooks wrap delete_by_id,
    delete_many and their soft-delete variants.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    before_create: Optional[HookFn] = None
    after_create: Optional[HookFn] = None
    before_update: Optional[HookFn] = None
    after_update: Optional[HookFn] = None
    before_delete: Optional[HookFn] = None
    after_delete: Optional[HookFn] = None


@dataclass
class HookContext:
    """Argument passed to ``before_*`` hooks."""

    data: Dict[str, Any]
    repository: Any


async def _call(hook: HookFn, argument: Any) -> Any:
    result = hook(argument)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookPipeline:
    """Runs a repository's hooks for one operation kind at a time."""

    def __init__(self, hooks: Hooks, repository: Any):
        self.hooks = hooks
        self.repository = repository

    async def before(self, kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run ``before_<kind>`` and return the data the primitive should use.

        Raises:
            ValidationFailure: If the hook returns something other than a
                mapping or None
        """
        hook = getattr(self.hooks, f"before_{kind}")
        if hook is None:
            return data

        replacement = await _call(hook, HookContext(data=data, repository=self.repository))
        if replacement is None:
            return data
        if not isinstance(replacement, Mapping):
            raise ValidationFailure(
                f"before_{kind} hook must return a mapping or None, "
                f"got {type(replacement).__name__}"
            )
        return {**data, **replacement}

    async def after(self, kind: str, result: Any) -> None:
        hook = getattr(self.hooks, f"after_{kind}")
        if hook is not None:
            await _call(hook, result)
