"""
Flow graph model.

Flows arrive as JSON/YAML documents produced by a recorder. Field names in
documents are camelCase; the models accept both the document alias and the
Python attribute name.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_LABEL = "default"
TRUE_LABEL = "true"
FALSE_LABEL = "false"
ON_ERROR_LABEL = "onError"


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the document shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class TimeoutPolicy(_Model):
    ms: Optional[int] = None
    scope: Literal["attempt", "action"] = "attempt"


class RetryPolicy(_Model):
    retries: int = 0
    interval_ms: int = Field(default=0, alias="intervalMs")
    backoff: Literal["none", "linear", "exp"] = "none"
    max_interval_ms: Optional[int] = Field(default=None, alias="maxIntervalMs")
    jitter: Optional[Literal["none", "full"]] = None
    retry_on: Optional[List[str]] = Field(default=None, alias="retryOn")


class OnErrorPolicy(_Model):
    kind: Literal["stop", "continue", "goto"] = "stop"
    level: Optional[Literal["info", "warning", "error"]] = None
    label: Optional[str] = None


class ActionPolicy(_Model):
    timeout: Optional[TimeoutPolicy] = None
    retry: Optional[RetryPolicy] = None
    on_error: Optional[OnErrorPolicy] = Field(default=None, alias="onError")
    artifacts: Optional[Dict[str, Any]] = None


class Action(_Model):
    """
    One typed automation operation, the unit stored as a graph node.

    Nodes come in two shapes. Action-form nodes carry ``params`` and
    ``policy``. Legacy nodes carry a flat ``config`` mapping in step form,
    including ``timeoutMs`` and ``retry``.
    """
    id: str
    type: str
    name: Optional[str] = None
    disabled: bool = False
    tags: Optional[List[str]] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    policy: Optional[ActionPolicy] = None
    config: Optional[Dict[str, Any]] = None
    ui: Optional[Dict[str, Any]] = None

    @property
    def is_legacy(self) -> bool:
        return self.config is not None


class Edge(_Model):
    id: str
    from_: str = Field(alias="from")
    to: str
    label: Optional[str] = None

    @property
    def effective_label(self) -> str:
        return self.label or DEFAULT_LABEL


class Subflow(_Model):
    nodes: List[Action] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)


class FlowBinding(_Model):
    type: Literal["domain", "path", "url"]
    value: str


class ExposedOutput(_Model):
    node_id: Optional[str] = Field(default=None, alias="nodeId")
    key: str
    as_: Optional[str] = Field(default=None, alias="as")


class FlowMeta(_Model):
    created_at: Optional[Any] = Field(default=None, alias="createdAt")
    updated_at: Optional[Any] = Field(default=None, alias="updatedAt")
    domain: Optional[str] = None
    bindings: List[FlowBinding] = Field(default_factory=list)
    exposed_outputs: List[ExposedOutput] = Field(default_factory=list, alias="exposedOutputs")
    tags: Optional[List[str]] = None


class VariableDefinition(_Model):
    name: str = Field(validation_alias=AliasChoices("name", "key"))
    label: Optional[str] = None
    description: Optional[str] = None
    type: str = "string"
    default: Optional[Any] = None
    sensitive: bool = False
    required: bool = False
    rules: Optional[Dict[str, Any]] = None
    options: Optional[List[Any]] = None

    @property
    def is_required(self) -> bool:
        return self.required or bool((self.rules or {}).get("required"))


class Flow(_Model):
    id: str
    name: str = ""
    version: int = 1
    description: Optional[str] = None
    meta: FlowMeta = Field(default_factory=FlowMeta)
    variables: List[VariableDefinition] = Field(default_factory=list)
    nodes: List[Action] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    subflows: Dict[str, Subflow] = Field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Flow":
        return cls.model_validate(data)

    def get_node(self, node_id: str) -> Optional[Action]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def sensitive_variables(self) -> set:
        return {v.name for v in self.variables if v.sensitive}
