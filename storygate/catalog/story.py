"""
Story script as exported by the editor, and the read-only content catalog built on it.

The script is JSON of the form {"startNodeId": "...", "nodes": {"<id>": {...}}}; node
fields keep the editor's camelCase names through aliases.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storygate.catalog.models import ContentMonetization, MonetizationType

logger = logging.getLogger(__name__)

FREE = ContentMonetization(type=MonetizationType.FREE)


class StoryOption(BaseModel):
    id: str
    label: str = ""
    target_id: str = Field("", alias="targetId")
    is_default: bool = Field(False, alias="isDefault")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class InteractiveSettings(BaseModel):
    decision_trigger_time: float = Field(5.0, alias="decisionTriggerTime")
    auto_transition: bool = Field(True, alias="autoTransition")
    duration: float = 0.0

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class StoryNode(BaseModel):
    id: str
    title: str = ""
    type: str = "scene"
    media_type: str = Field("none", alias="mediaType")
    options: list[StoryOption] = Field(default_factory=list)
    interactive_settings: InteractiveSettings | None = Field(None, alias="interactiveSettings")
    monetization: ContentMonetization | None = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @property
    def is_timed_media(self) -> bool:
        return self.media_type == "video"

    @property
    def decision_trigger_time(self) -> float:
        if self.interactive_settings and self.interactive_settings.decision_trigger_time > 0:
            return self.interactive_settings.decision_trigger_time
        return 5.0


class StoryGraph(BaseModel):
    start_node_id: str | None = Field(None, alias="startNodeId")
    nodes: dict[str, StoryNode] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoryGraph":
        nodes = data.get("nodes") or {}
        if isinstance(nodes, list):
            nodes = {n["id"]: n for n in nodes}
        for node_id, node in nodes.items():
            node.setdefault("id", node_id)
        return cls(startNodeId=data.get("startNodeId"), nodes=nodes)

    def get(self, node_id: str) -> StoryNode | None:
        return self.nodes.get(node_id)


class ContentCatalog:
    """
    Monetization lookup for story nodes. Trusted configuration, loaded once and cached.
    Nodes missing from the script or without monetization are free.
    """

    def __init__(self, graph: StoryGraph) -> None:
        self._graph = graph

    @classmethod
    def from_file(cls, path: str | Path) -> "ContentCatalog":
        p = Path(path)
        if not p.exists():
            logger.warning("story_data_missing", extra={"path": str(p)})
            return cls(StoryGraph())
        with p.open(encoding="utf-8") as f:
            data = json.load(f)
        graph = StoryGraph.from_dict(data)
        logger.info("story_data_loaded", extra={"path": str(p), "count": len(graph.nodes)})
        return cls(graph)

    @property
    def graph(self) -> StoryGraph:
        return self._graph

    def get_monetization(self, content_id: str) -> ContentMonetization:
        node = self._graph.get(content_id)
        if node is None or node.monetization is None:
            return FREE
        return node.monetization


_catalog: ContentCatalog | None = None
_catalog_lock = threading.Lock()


def get_content_catalog() -> ContentCatalog:
    """Process-wide catalog loaded from settings.story_data_path."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:
                from storygate.core.config import settings

                _catalog = ContentCatalog.from_file(settings.story_data_path)
    return _catalog
