"""
Step/Action Adapter - converts between the legacy step schema and the
action schema.

Shared fields map both ways without loss:

* ``timeoutMs`` <-> ``policy.timeout.ms`` (``timeoutScope`` <-> ``policy.timeout.scope``)
* ``retry.count`` <-> ``policy.retry.retries`` (interval, backoff, cap, jitter, retryOn as-is)
* ``screenshotOnFail`` <-> ``policy.artifacts.screenshot`` (onFailure / never)
* ``onError`` <-> ``policy.onError``
* target candidates ``{type, value}`` <-> ``{type, selector|xpath|text|role/name}``,
  ``tag`` <-> ``hint.tagName``

Everything else in a step is carried in ``params`` verbatim.
"""

import copy
from typing import Any, Dict, List, Mapping, Optional

from flow_replay.engine.execution_mode import LEGACY_ONLY_TYPES
from flow_replay.engine.target_resolver import parse_aria
from flow_replay.interfaces.action import ActionType
from flow_replay.models.flow import (
    Action,
    ActionPolicy,
    OnErrorPolicy,
    RetryPolicy,
    TimeoutPolicy,
)
from flow_replay.models.step import Step, StepRetry

TARGET_KEYS = ("target", "start", "end")

STEP_TYPE_TO_ACTION_TYPE: Dict[str, str] = {
    t.value: t.value for t in ActionType if t.value not in LEGACY_ONLY_TYPES
}

_VALUE_FIELD = {"css": "selector", "attr": "selector", "xpath": "xpath", "text": "text"}


# Candidates and targets

def candidate_to_action(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """``{type, value}`` -> action candidate. Unknown types keep ``value``."""
    if "value" not in candidate:
        return dict(candidate)
    kind = candidate.get("type", "css")
    result = {k: v for k, v in candidate.items() if k != "value"}
    value = candidate["value"]
    if kind in _VALUE_FIELD:
        result[_VALUE_FIELD[kind]] = value
    elif kind == "aria":
        role, name = parse_aria(str(value))
        if role:
            result["role"] = role
        if name:
            result["name"] = name
        # The written form is not recoverable from role/name alone
        result["value"] = value
    else:
        result["value"] = value
    return result


def candidate_to_step(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """Action candidate -> ``{type, value}``."""
    kind = candidate.get("type", "css")
    result = dict(candidate)
    if kind in _VALUE_FIELD:
        field_name = _VALUE_FIELD[kind]
        if field_name in result:
            result["value"] = result.pop(field_name)
    elif kind == "aria":
        role = result.pop("role", None)
        name = result.pop("name", None)
        if "value" not in result:
            result["value"] = f"{role}[name={name}]" if role else f"aria-label={name}"
    return result


def is_legacy_target(target: Any) -> bool:
    """A step-form target has candidates carrying ``value`` or a top-level ``tag``."""
    if not isinstance(target, Mapping):
        return False
    if "tag" in target:
        return True
    candidates = target.get("candidates") or []
    return any(
        isinstance(c, Mapping) and "value" in c and not any(k in c for k in ("selector", "xpath", "text", "role", "name"))
        for c in candidates
    )


def target_to_action(target: Mapping[str, Any]) -> Dict[str, Any]:
    result = {k: v for k, v in target.items() if k not in ("candidates", "tag")}
    if "candidates" in target:
        result["candidates"] = [candidate_to_action(c) for c in target["candidates"]]
    if "tag" in target:
        result["hint"] = {**(target.get("hint") or {}), "tagName": target["tag"]}
    return result


def target_to_step(target: Mapping[str, Any]) -> Dict[str, Any]:
    result = {k: v for k, v in target.items() if k not in ("candidates", "hint")}
    if "candidates" in target:
        result["candidates"] = [candidate_to_step(c) for c in target["candidates"]]
    hint = dict(target.get("hint") or {})
    if "tagName" in hint:
        result["tag"] = hint.pop("tagName")
    if hint:
        result["hint"] = hint
    return result


# Steps and actions

def convert_step_to_action(step: Step) -> Action:
    """Convert any step to action form, whatever its type."""
    params = copy.deepcopy(step.params)
    for key in TARGET_KEYS:
        if is_legacy_target(params.get(key)):
            params[key] = target_to_action(params[key])

    policy = ActionPolicy()
    if step.timeout_ms is not None or step.timeout_scope is not None:
        timeout: Dict[str, Any] = {"ms": step.timeout_ms}
        # An unset scope stays unset so the reverse trip does not invent one
        if step.timeout_scope is not None:
            timeout["scope"] = step.timeout_scope
        policy.timeout = TimeoutPolicy(**timeout)
    if step.retry is not None:
        policy.retry = RetryPolicy(
            retries=step.retry.count,
            interval_ms=step.retry.interval_ms,
            backoff=step.retry.backoff,
            max_interval_ms=step.retry.max_interval_ms,
            jitter=step.retry.jitter,
            retry_on=step.retry.retry_on,
        )
    if step.on_error is not None:
        policy.on_error = OnErrorPolicy.model_validate(step.on_error)
    artifacts = dict(step.artifacts or {})
    if step.screenshot_on_fail is not None and "screenshot" not in artifacts:
        artifacts["screenshot"] = "onFailure" if step.screenshot_on_fail else "never"
    if artifacts:
        policy.artifacts = artifacts

    has_policy = any(v is not None for v in (policy.timeout, policy.retry, policy.on_error, policy.artifacts))
    return Action(
        id=step.id,
        type=step.type,
        name=step.name,
        disabled=step.disabled,
        params=params,
        policy=policy if has_policy else None,
    )


def step_to_action(step: Step) -> Optional[Action]:
    """Convert a step for the registry, or None when the type has no registry form."""
    if step.type not in STEP_TYPE_TO_ACTION_TYPE:
        return None
    return convert_step_to_action(step)


def action_to_step(action: Action) -> Step:
    """Convert an action-form node back into a legacy step."""
    params = copy.deepcopy(action.params)
    for key in TARGET_KEYS:
        target = params.get(key)
        if isinstance(target, Mapping) and not is_legacy_target(target):
            params[key] = target_to_step(target)

    step = Step(id=action.id, type=action.type, params=params, name=action.name, disabled=action.disabled)
    policy = action.policy
    if policy is None:
        return step

    if policy.timeout is not None:
        step.timeout_ms = policy.timeout.ms
        if "scope" in policy.timeout.model_fields_set:
            step.timeout_scope = policy.timeout.scope
    if policy.retry is not None:
        step.retry = StepRetry(
            count=policy.retry.retries,
            interval_ms=policy.retry.interval_ms,
            backoff=policy.retry.backoff,
            max_interval_ms=policy.retry.max_interval_ms,
            jitter=policy.retry.jitter,
            retry_on=policy.retry.retry_on,
        )
    if policy.on_error is not None:
        step.on_error = policy.on_error.to_dict()
    if policy.artifacts is not None:
        artifacts = dict(policy.artifacts)
        if artifacts.get("screenshot") in ("onFailure", "never"):
            step.screenshot_on_fail = artifacts.pop("screenshot") == "onFailure"
        step.artifacts = artifacts or None
    return step


def node_to_step(node: Action) -> Step:
    """Map a graph node (legacy ``config`` form or action form) to a step."""
    if node.config is not None:
        step = Step.from_dict({**node.config, "id": node.id, "type": node.type})
        step.name = node.name
        step.disabled = step.disabled or node.disabled
        return step
    return action_to_step(node)
