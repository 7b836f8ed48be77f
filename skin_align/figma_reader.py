"""
Figma REST API 讀取

讀取 Figma 檔案節點，轉成 FigmaNodeMeta 樹供指紋擷取使用。
"""

from typing import Optional

import requests

from .errors import NotFoundError
from .models import FigmaNodeMeta, NodeType


class FigmaAPIClient:
    """Figma REST API 唯讀封裝."""

    BASE_URL = "https://api.figma.com/v1"

    def __init__(self, token: str, timeout: float = 30.0):
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "X-Figma-Token": token,
            "Content-Type": "application/json",
        })

    def get_file_nodes(self, file_key: str, node_ids: list) -> dict:
        url = f"{self.BASE_URL}/files/{file_key}/nodes"
        params = {"ids": ",".join(node_ids)}
        resp = self.session.get(url, params=params, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()


class FigmaToNodeMeta:
    """將 Figma API 節點樹轉成 FigmaNodeMeta；隱藏節點略過."""

    _TYPE_MAP = {
        "FRAME": NodeType.FRAME,
        "SECTION": NodeType.FRAME,
        "COMPONENT": NodeType.FRAME,
        "COMPONENT_SET": NodeType.FRAME,
        "INSTANCE": NodeType.INSTANCE,
        "TEXT": NodeType.TEXT,
        "RECTANGLE": NodeType.RECTANGLE,
        "ELLIPSE": NodeType.ELLIPSE,
        "VECTOR": NodeType.VECTOR,
        "BOOLEAN_OPERATION": NodeType.VECTOR,
        "LINE": NodeType.VECTOR,
        "STAR": NodeType.VECTOR,
        "POLYGON": NodeType.VECTOR,
        "REGULAR_POLYGON": NodeType.VECTOR,
        "GROUP": NodeType.GROUP,
    }

    def __init__(self, relative_bbox: bool = True):
        # True：bbox 以轉換起點節點的左上角為原點
        self.relative_bbox = relative_bbox

    def convert(self, figma_node: dict) -> FigmaNodeMeta:
        origin = (0, 0)
        if self.relative_bbox:
            box = figma_node.get("absoluteBoundingBox") or {}
            origin = (box.get("x", 0), box.get("y", 0))
        return self._convert(figma_node, origin)

    def _convert(self, figma_node: dict, origin: tuple) -> FigmaNodeMeta:
        children = None
        if "children" in figma_node:
            children = [
                self._convert(c, origin) for c in figma_node["children"]
                if c.get("visible", True)
            ]
        return FigmaNodeMeta(
            id=figma_node.get("id"),
            name=figma_node.get("name", "Unnamed"),
            type=self._normalize_type(figma_node),
            children=children,
            bbox=self._bbox(figma_node, origin),
        )

    def _normalize_type(self, node: dict) -> NodeType:
        node_type = self._TYPE_MAP.get(node.get("type", ""), NodeType.UNKNOWN)
        if node_type is NodeType.RECTANGLE and self._has_radius(node):
            return NodeType.ROUNDED_RECTANGLE
        return node_type

    def _has_radius(self, node: dict) -> bool:
        if (node.get("cornerRadius") or 0) > 0:
            return True
        return any((r or 0) > 0 for r in node.get("rectangleCornerRadii") or [])

    def _bbox(self, node: dict, origin: tuple) -> Optional[tuple]:
        box = node.get("absoluteBoundingBox")
        if not box:
            return None
        return (
            box.get("x", 0) - origin[0],
            box.get("y", 0) - origin[1],
            max(box.get("width", 0), 0),
            max(box.get("height", 0), 0),
        )


def fetch_frame(client: FigmaAPIClient, file_key: str, node_id: str) -> FigmaNodeMeta:
    """讀取單一 frame 節點並轉換；節點不存在時丟 NotFoundError."""
    data = client.get_file_nodes(file_key, [node_id])
    entry = (data.get("nodes") or {}).get(node_id)
    if not entry or not entry.get("document"):
        raise NotFoundError("figma node", node_id)
    return FigmaToNodeMeta().convert(entry["document"])
