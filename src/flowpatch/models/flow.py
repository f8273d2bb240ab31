"""Pydantic models for the flow resource and its sub-entities.

The flow resource is the root document being edited: graph nodes and edges
plus the domain entities that back process nodes (agents, data-store nodes,
if-nodes) and the flow-level data-store schema.

Prompt messages are a tagged variant discriminated on ``type``:
- plain: a role plus an ordered list of prompt blocks
- history: a window over chat history rendered through user/assistant blocks
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field

from flowpatch.models.base import WireModel, new_id, new_schema_field_id, utc_now_iso

LogicOperator = Literal["AND", "OR"]
HistoryType = Literal["split", "single"]


class NodeType(StrEnum):
    """Graph node kinds."""

    AGENT = "agent"
    DATA_STORE = "dataStore"
    IF = "if"
    START = "start"
    END = "end"


# Node types that have no backing domain entity and may not be copied or deleted.
STRUCTURAL_NODE_TYPES = frozenset({NodeType.START, NodeType.END})

# Resource key holding the backing entities of each process node type.
ENTITY_MAP_KEYS = {
    NodeType.AGENT: "agents",
    NodeType.DATA_STORE: "dataStoreNodes",
    NodeType.IF: "ifNodes",
}

# Service attribute of each process node type, also the prefix of its action names.
SERVICE_NAMES = {
    NodeType.AGENT: "agents",
    NodeType.DATA_STORE: "data_store_nodes",
    NodeType.IF: "if_nodes",
}


class Position(WireModel):
    """Canvas coordinates of a node."""

    x: float = 0.0
    y: float = 0.0


class FlowNode(WireModel):
    """A node on the flow canvas."""

    id: str = Field(min_length=1)
    type: NodeType
    position: Position = Field(default_factory=Position)


class FlowEdge(WireModel):
    """A directed connection between two nodes."""

    id: str = Field(default_factory=new_id)
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    source_handle: str | None = None
    label: str | None = None


# -- Agents -------------------------------------------------------------------


class PromptBlock(WireModel):
    """A single templated block of prompt text."""

    id: str = Field(default_factory=new_id)
    name: str = "Unnamed Block"
    type: str = "plain"
    template: str = ""
    is_delete_unnecessary_characters: bool = False


class PlainPromptMessage(WireModel):
    """Prompt message with a fixed role."""

    id: str = Field(default_factory=new_id)
    type: Literal["plain"] = "plain"
    enabled: bool = True
    created_at: str = Field(default_factory=utc_now_iso)
    role: str = "system"
    prompt_blocks: list[PromptBlock] = Field(default_factory=list)


class HistoryPromptMessage(WireModel):
    """Prompt message that renders a slice of chat history."""

    id: str = Field(default_factory=new_id)
    type: Literal["history"] = "history"
    enabled: bool = True
    created_at: str = Field(default_factory=utc_now_iso)
    history_type: HistoryType = "split"
    start: int = 0
    end: int = 12
    count_from_end: bool = True
    user_prompt_blocks: list[PromptBlock] = Field(default_factory=list)
    assistant_prompt_blocks: list[PromptBlock] = Field(default_factory=list)
    user_message_role: str = "user"
    char_message_role: str = "assistant"
    sub_char_message_role: str = "user"


PromptMessage = Annotated[
    PlainPromptMessage | HistoryPromptMessage,
    Field(discriminator="type"),
]


class NestedMessage(WireModel):
    """A message nested inside a prompt message (``promptMessages[n].messages[m]``)."""

    id: str = Field(default_factory=new_id)
    role: str = "user"
    blocks: list[PromptBlock] = Field(default_factory=list)


class AgentSchemaField(WireModel):
    """Structured-output field declared by an agent."""

    id: str = Field(default_factory=new_id)
    name: str = "newField"
    type: str = "string"
    description: str = ""
    required: bool = False
    default_value: Any = None


class Agent(WireModel):
    """Agent entity backing an ``agent`` node."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    color: str | None = None
    prompt_messages: list[PromptMessage] = Field(default_factory=list)
    schema_fields: list[AgentSchemaField] = Field(default_factory=list)


# -- Data store ---------------------------------------------------------------


class DataStoreSchemaField(WireModel):
    """Flow-level data-store variable declaration."""

    id: str = Field(default_factory=new_schema_field_id)
    name: str = "new_field"
    type: str = "string"
    initial_value: str = ""
    description: str = ""


class DataStoreSchema(WireModel):
    """The flow's data-store schema."""

    fields: list[DataStoreSchemaField] = Field(default_factory=list)


class DataStoreField(WireModel):
    """A mutation applied by a data-store node to one schema field."""

    id: str = Field(default_factory=new_id)
    schema_field_id: str = ""
    logic: str = ""


class DataStoreNode(WireModel):
    """Entity backing a ``dataStore`` node."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    color: str | None = None
    data_store_fields: list[DataStoreField] = Field(default_factory=list)


# -- If nodes -----------------------------------------------------------------


class IfCondition(WireModel):
    """One comparison of an if-node.

    An incomplete condition has ``data_type`` and ``operator`` set to None.
    """

    id: str = Field(default_factory=new_id)
    data_type: str | None = None
    value1: str = ""
    operator: str | None = None
    value2: str = ""

    @property
    def is_complete(self) -> bool:
        return self.data_type is not None and self.operator is not None


class IfNode(WireModel):
    """Entity backing an ``if`` node."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    color: str | None = None
    logic_operator: LogicOperator = "AND"
    conditions: list[IfCondition] = Field(default_factory=list)


# -- Resource -----------------------------------------------------------------


class FlowResource(WireModel):
    """Root flow document.

    Processors operate on the plain-dict form of this document; the model
    is used to validate whole resources at the edges (CLI input, fixtures).
    """

    id: str | None = None
    name: str = ""
    response_template: str = Field(default="", alias="response_template")
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    agents: dict[str, Agent] = Field(default_factory=dict)
    data_store_nodes: dict[str, DataStoreNode] = Field(default_factory=dict)
    if_nodes: dict[str, IfNode] = Field(default_factory=dict)
    data_store_schema: DataStoreSchema = Field(
        default_factory=DataStoreSchema, alias="data_store_schema"
    )
