"""Anchored path patterns, grouped per entity family.

Hierarchy (most generic first; the registry evaluates them in reverse)::

    flow.<field>
      flow.data_store_schema
        flow.data_store_schema.fields            (append)
        flow.data_store_schema.fields[i]         (indexed)
        flow.data_store_schema.fields[i].<prop>  (field property)
      flow.nodes / flow.nodes[i]
      flow.edges / flow.edges[i]
    agents.<id>
      agents.<id>.<field>
      agents.<id>.promptMessages / [n] / [n].<field>
        agents.<id>.promptMessages[n].messages / [m] / [m].<field>
          agents.<id>.promptMessages[n].messages[m].blocks / [k]
      agents.<id>.schemaFields / [i] / [i].<field>
    dataStoreNodes.<id>
      dataStoreNodes.<id>.<field>
      dataStoreNodes.<id>.dataStoreFields / [i]
    ifNodes.<id>
      ifNodes.<id>.<field>
      ifNodes.<id>.conditions / [i]
"""

from __future__ import annotations

import re

_ID = r"([^.\[\]]+)"
_FIELD = r"([^.\[\]]+)"
_IDX = r"\[(\d+)\]"

# -- Flow ---------------------------------------------------------------------

FLOW_NAME = re.compile(r"^flow\.name$")
FLOW_RESPONSE_TEMPLATE = re.compile(r"^flow\.response_template$")
FLOW_SCHEMA_BASE = re.compile(r"^flow\.data_store_schema$")
FLOW_SCHEMA_FIELDS_APPEND = re.compile(r"^flow\.data_store_schema\.fields$")
FLOW_SCHEMA_FIELDS_INDEXED = re.compile(rf"^flow\.data_store_schema\.fields{_IDX}$")
FLOW_SCHEMA_FIELD_PROPERTY = re.compile(rf"^flow\.data_store_schema\.fields{_IDX}\.{_FIELD}$")
FLOW_NODES_APPEND = re.compile(r"^flow\.nodes$")
FLOW_NODES_INDEXED = re.compile(rf"^flow\.nodes{_IDX}$")
FLOW_EDGES_APPEND = re.compile(r"^flow\.edges$")
FLOW_EDGES_INDEXED = re.compile(rf"^flow\.edges{_IDX}$")

# -- Agents -------------------------------------------------------------------

AGENT_BASE = re.compile(rf"^agents\.{_ID}$")
AGENT_FIELD = re.compile(rf"^agents\.{_ID}\.{_FIELD}$")

_PM = rf"^agents\.{_ID}\.promptMessages"
AGENT_PROMPT_MESSAGES_APPEND = re.compile(rf"{_PM}$")
AGENT_PROMPT_MESSAGES_INDEXED = re.compile(rf"{_PM}{_IDX}$")
AGENT_PROMPT_MESSAGE_FIELD = re.compile(rf"{_PM}{_IDX}\.{_FIELD}$")

_MSG = rf"{_PM}{_IDX}\.messages"
AGENT_MESSAGES_APPEND = re.compile(rf"{_MSG}$")
AGENT_MESSAGES_INDEXED = re.compile(rf"{_MSG}{_IDX}$")
AGENT_MESSAGE_FIELD = re.compile(rf"{_MSG}{_IDX}\.{_FIELD}$")
AGENT_MESSAGE_BLOCKS_APPEND = re.compile(rf"{_MSG}{_IDX}\.blocks$")
AGENT_MESSAGE_BLOCKS_INDEXED = re.compile(rf"{_MSG}{_IDX}\.blocks{_IDX}$")

_SF = rf"^agents\.{_ID}\.schemaFields"
AGENT_SCHEMA_FIELDS_APPEND = re.compile(rf"{_SF}$")
AGENT_SCHEMA_FIELDS_INDEXED = re.compile(rf"{_SF}{_IDX}$")
AGENT_SCHEMA_FIELD_PROPERTY = re.compile(rf"{_SF}{_IDX}\.{_FIELD}$")

# -- Data store nodes -----------------------------------------------------------

DATA_STORE_BASE = re.compile(rf"^dataStoreNodes\.{_ID}$")
DATA_STORE_FIELD = re.compile(rf"^dataStoreNodes\.{_ID}\.{_FIELD}$")
DATA_STORE_FIELDS_APPEND = re.compile(rf"^dataStoreNodes\.{_ID}\.dataStoreFields$")
DATA_STORE_FIELDS_INDEXED = re.compile(rf"^dataStoreNodes\.{_ID}\.dataStoreFields{_IDX}$")

# -- If nodes -----------------------------------------------------------------

IF_NODE_BASE = re.compile(rf"^ifNodes\.{_ID}$")
IF_NODE_FIELD = re.compile(rf"^ifNodes\.{_ID}\.{_FIELD}$")
IF_CONDITIONS_APPEND = re.compile(rf"^ifNodes\.{_ID}\.conditions$")
IF_CONDITIONS_INDEXED = re.compile(rf"^ifNodes\.{_ID}\.conditions{_IDX}$")

PATTERNS: dict[str, dict[str, re.Pattern[str]]] = {
    "flow": {
        "name": FLOW_NAME,
        "response_template": FLOW_RESPONSE_TEMPLATE,
        "schema_base": FLOW_SCHEMA_BASE,
        "schema_fields_append": FLOW_SCHEMA_FIELDS_APPEND,
        "schema_fields_indexed": FLOW_SCHEMA_FIELDS_INDEXED,
        "schema_field_property": FLOW_SCHEMA_FIELD_PROPERTY,
        "nodes_append": FLOW_NODES_APPEND,
        "nodes_indexed": FLOW_NODES_INDEXED,
        "edges_append": FLOW_EDGES_APPEND,
        "edges_indexed": FLOW_EDGES_INDEXED,
    },
    "agents": {
        "base": AGENT_BASE,
        "field": AGENT_FIELD,
        "prompt_messages_append": AGENT_PROMPT_MESSAGES_APPEND,
        "prompt_messages_indexed": AGENT_PROMPT_MESSAGES_INDEXED,
        "prompt_message_field": AGENT_PROMPT_MESSAGE_FIELD,
        "messages_append": AGENT_MESSAGES_APPEND,
        "messages_indexed": AGENT_MESSAGES_INDEXED,
        "message_field": AGENT_MESSAGE_FIELD,
        "blocks_append": AGENT_MESSAGE_BLOCKS_APPEND,
        "blocks_indexed": AGENT_MESSAGE_BLOCKS_INDEXED,
        "schema_fields_append": AGENT_SCHEMA_FIELDS_APPEND,
        "schema_fields_indexed": AGENT_SCHEMA_FIELDS_INDEXED,
        "schema_field_property": AGENT_SCHEMA_FIELD_PROPERTY,
    },
    "dataStoreNodes": {
        "base": DATA_STORE_BASE,
        "field": DATA_STORE_FIELD,
        "fields_append": DATA_STORE_FIELDS_APPEND,
        "fields_indexed": DATA_STORE_FIELDS_INDEXED,
    },
    "ifNodes": {
        "base": IF_NODE_BASE,
        "field": IF_NODE_FIELD,
        "conditions_append": IF_CONDITIONS_APPEND,
        "conditions_indexed": IF_CONDITIONS_INDEXED,
    },
}
