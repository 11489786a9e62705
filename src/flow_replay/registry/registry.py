"""
Action Registry - handler records for registry-based dispatch.

Handler classes register themselves with the ``register_action`` decorator.
An ActionRegistry instance holds one handler per type and runs actions
through validation, timeout and retry policy.

Example:
    >>> from flow_replay.registry import register_action, create_replay_action_registry
    >>>
    >>> @register_action(ActionType.CLICK)
    >>> class ClickHandler(BaseActionHandler):
    ...     pass
    >>>
    >>> registry = create_replay_action_registry()
    >>> result = await registry.execute(ctx, action)
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Type, Union

from flow_replay.exceptions import ActionError, ErrorCode, UnsupportedActionError
from flow_replay.interfaces.action import ActionExecutionContext, ActionHandler, ActionType
from flow_replay.models.flow import Action
from flow_replay.models.results import ExecutionResult
from flow_replay.policies.retry import RetryConfig, retry_async
from flow_replay.policies.timeout import bound_by_budget, clamp_timeout, with_timeout

logger = logging.getLogger(__name__)

_HANDLER_CLASSES: Dict[str, Type[ActionHandler]] = {}


def _type_key(action_type: Union[str, ActionType]) -> str:
    return action_type.value if isinstance(action_type, ActionType) else str(action_type)


def register_action(action_type: Union[str, ActionType]) -> Callable[[Type[ActionHandler]], Type[ActionHandler]]:
    """
    Decorator to register a handler class for an action type.

    Raises:
        ValueError: If the type already has a handler class
    """
    key = _type_key(action_type)

    def decorator(handler_class: Type[ActionHandler]) -> Type[ActionHandler]:
        existing = _HANDLER_CLASSES.get(key)
        if existing is not None and existing is not handler_class:
            raise ValueError(f"Action '{key}' is already registered")
        _HANDLER_CLASSES[key] = handler_class
        return handler_class
    return decorator


def registered_action_types() -> List[str]:
    return sorted(_HANDLER_CLASSES)


class ActionRegistry:
    """
    Instance registry mapping action types to handler objects.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, handler: ActionHandler, replace: bool = False) -> None:
        key = _type_key(handler.action_type)
        if key in self._handlers and not replace:
            raise ValueError(f"Action '{key}' is already registered")
        self._handlers[key] = handler

    def unregister(self, action_type: Union[str, ActionType]) -> None:
        self._handlers.pop(_type_key(action_type), None)

    def has(self, action_type: Union[str, ActionType]) -> bool:
        return _type_key(action_type) in self._handlers

    def get(self, action_type: Union[str, ActionType]) -> ActionHandler:
        """
        Raises:
            UnsupportedActionError: If no handler is registered
        """
        key = _type_key(action_type)
        handler = self._handlers.get(key)
        if handler is None:
            raise UnsupportedActionError(key)
        return handler

    def list_types(self) -> List[str]:
        return sorted(self._handlers)

    async def execute(self, ctx: ActionExecutionContext, action: Action) -> ExecutionResult:
        """
        Validate and run an action under its timeout and retry policy.

        Raises:
            UnsupportedActionError: If the type has no handler
        """
        handler = self.get(action.type)

        validation = handler.validate(action)
        if not validation.ok:
            return ExecutionResult.failed(ErrorCode.VALIDATION_ERROR, "; ".join(validation.errors), retryable=False)

        policy = action.policy
        timeout_ms = None
        scope = "attempt"
        if policy is not None and policy.timeout is not None:
            timeout_ms = clamp_timeout(policy.timeout.ms, ctx.settings.min_timeout_ms, ctx.settings.max_timeout_ms)
            scope = policy.timeout.scope
        retry_config = RetryConfig.from_policy(policy.retry if policy is not None else None)
        if timeout_ms is not None:
            ctx.timeout_ms = timeout_ms

        start_time = time.perf_counter()

        async def attempt(number: int) -> ExecutionResult:
            run = handler.run(ctx, action)
            if scope == "attempt":
                bound = bound_by_budget(timeout_ms, ctx.remaining_budget_ms())
                result = await with_timeout(run, bound, f"{action.type} attempt timed out", action.type)
            else:
                result = await run
            if not result.success and result.error is not None:
                raise ActionError(result.error.message, result.error.code, action.type, result.error.retryable)
            return result

        async def on_retry(number: int, error: Exception, delay_ms: float) -> None:
            ctx.emit(f"retrying ({number}/{retry_config.max_attempts - 1}): {error}", "warning")

        async def attempts() -> ExecutionResult:
            return await retry_async(attempt, retry_config, on_retry, ctx.remaining_budget_ms)

        try:
            if scope == "action" and timeout_ms is not None:
                bound = bound_by_budget(timeout_ms, ctx.remaining_budget_ms())
                result = await with_timeout(attempts(), bound, f"{action.type} timed out", action.type)
            else:
                result = await attempts()
        except ActionError as e:
            result = ExecutionResult.failed(e.code, e.message, e.retryable)
        result.duration_ms = (time.perf_counter() - start_time) * 1000
        return result


def create_replay_action_registry(extra: Optional[List[ActionHandler]] = None) -> ActionRegistry:
    """Build a registry with every built-in handler, plus optional extras."""
    import flow_replay.actions  # noqa: F401  registers the built-in handlers

    registry = ActionRegistry()
    for handler_class in _HANDLER_CLASSES.values():
        registry.register(handler_class())
    for handler in extra or []:
        registry.register(handler, replace=True)
    return registry
