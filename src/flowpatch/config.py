"""Engine configuration loading.

Resolution order for each setting:
1. Environment variable (e.g. ``FLOWPATCH_VIEWPORT_DEBOUNCE_MS``)
2. ``flowpatch.yaml``
3. Built-in default
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

CONFIG_FILENAME = "flowpatch.yaml"

# Palette shared by agents, data-store nodes and if-nodes within one flow.
DEFAULT_COLOR_PALETTE = [
    "#A5B4FC",  # indigo-300
    "#FDBA74",  # orange-300
    "#BEF264",  # lime-300
    "#FCA5A5",  # red-300
    "#93C5FD",  # blue-300
    "#FCD34D",  # amber-300
    "#67E8F9",  # cyan-300
    "#F0ABFC",  # fuchsia-300
    "#FDE047",  # yellow-300
    "#C4B5FD",  # violet-300
    "#86EFAC",  # green-300
    "#FDA4AF",  # rose-300
    "#7DD3FC",  # sky-300
    "#F9A8D4",  # pink-300
    "#6EE7B7",  # emerald-300
    "#D8B4FE",  # purple-300
    "#5EEAD4",  # teal-300
]
DEFAULT_VIEWPORT_DEBOUNCE_MS = 500

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(Exception):
    """Raised when configuration cannot be loaded."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load config at {path}: {reason}")


@dataclass
class FlowPatchConfig:
    """Settings for one editing session.

    Attributes:
        color_palette: Colors assigned to new process nodes, in preference order.
        viewport_debounce_ms: Coalescing window for viewport writes.
        notify_on_critical: Send a user notification on critical failures.
        intent_log_path: JSONL file for the node-creation intent log; None
            keeps the log in memory only.
        preview_node_creation: Node and edge additions only validate until
            approved.
    """

    color_palette: list[str] = field(default_factory=lambda: list(DEFAULT_COLOR_PALETTE))
    viewport_debounce_ms: int = DEFAULT_VIEWPORT_DEBOUNCE_MS
    notify_on_critical: bool = True
    intent_log_path: Path | None = None
    preview_node_creation: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlowPatchConfig:
        """Create config from a dictionary.

        Raises:
            ValueError: If a value has the wrong shape.
        """
        palette = data.get("color_palette", list(DEFAULT_COLOR_PALETTE))
        if not isinstance(palette, list) or not palette or not all(
            isinstance(c, str) for c in palette
        ):
            raise ValueError("color_palette must be a non-empty list of strings")

        debounce = int(data.get("viewport_debounce_ms", DEFAULT_VIEWPORT_DEBOUNCE_MS))
        if debounce < 0:
            raise ValueError("viewport_debounce_ms must be >= 0")

        intent_log = data.get("intent_log_path")
        return cls(
            color_palette=list(palette),
            viewport_debounce_ms=debounce,
            notify_on_critical=bool(data.get("notify_on_critical", True)),
            intent_log_path=Path(intent_log) if intent_log else None,
            preview_node_creation=bool(data.get("preview_node_creation", True)),
        )

    def apply_env(self) -> FlowPatchConfig:
        """Apply ``FLOWPATCH_*`` environment overrides in place.

        Raises:
            ValueError: If an override cannot be parsed.
        """
        debounce = os.getenv("FLOWPATCH_VIEWPORT_DEBOUNCE_MS")
        if debounce:
            self.viewport_debounce_ms = int(debounce)

        notify = os.getenv("FLOWPATCH_NOTIFY_ON_CRITICAL")
        if notify:
            self.notify_on_critical = _parse_bool(notify)

        intent_log = os.getenv("FLOWPATCH_INTENT_LOG")
        if intent_log:
            self.intent_log_path = Path(intent_log)
        return self


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"Expected a boolean, got {raw!r}")


def load_config(path: Path | None = None) -> FlowPatchConfig:
    """Load configuration from *path* (a file or a directory).

    A missing file yields defaults. Environment overrides always apply.

    Raises:
        ConfigError: If the file is malformed or holds invalid values.
    """
    config_path = None
    if path is not None:
        config_path = path / CONFIG_FILENAME if path.is_dir() else path

    data: dict[str, Any] = {}
    if config_path is not None and config_path.exists():
        yaml = YAML(typ="safe")
        try:
            with config_path.open("r", encoding="utf-8") as f:
                loaded = yaml.load(f)
        except Exception as e:
            raise ConfigError(config_path, str(e)) from e
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError(config_path, "Top level must be a mapping")
            data = dict(loaded)

    try:
        return FlowPatchConfig.from_dict(data).apply_env()
    except (TypeError, ValueError) as e:
        raise ConfigError(config_path or "<environment>", str(e)) from e
