"""
Section 指紋擷取

對一個 section 子樹做一次完整走訪，產出 SectionFingerprint：
  - depth：根到最深葉節點的邊數（單一節點為 0）
  - nodeCount / childCount / 各類型計數
  - text / instance / image-like / button-like 規則式旗標
  - 關鍵字與可檢索的摘要句

走訪為線性時間（前序展開一次 + 反向彙總一次），不使用遞迴，
極深的樹也不會碰到 recursion limit。
"""

from typing import Optional

from .errors import ValidationError
from .keyword_engine import KeywordEngine
from .models import FigmaNodeMeta, NodeType, SectionFingerprint, SkinFigmaIR, parse_bbox


IMAGE_LIKE_TYPES = frozenset({NodeType.ROUNDED_RECTANGLE, NodeType.RECTANGLE})


def _check_node(node) -> None:
    if not isinstance(node, FigmaNodeMeta):
        raise ValidationError("node", f"應為 FigmaNodeMeta，目前是 {type(node).__name__}")
    if not isinstance(node.name, str):
        raise ValidationError("name", "缺少必要欄位", node.id)
    if not isinstance(node.type, NodeType):
        raise ValidationError("type", f"缺少或無效的節點類型 {node.type!r}", node.name)
    if node.children is not None and not isinstance(node.children, list):
        raise ValidationError("children", "應為 list", node.name)
    parse_bbox(node.bbox, node.name)


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def render_summary(
    name: str,
    node_type: NodeType,
    *,
    child_count: int,
    node_count: int,
    depth: int,
    text_count: int,
    instance_count: int,
    image_like_count: int,
    button_like_count: int,
    keywords: tuple = (),
) -> str:
    """固定模板，無時間戳、無隨機，讓檢索索引可重現。"""
    features = []
    for count, singular, plural in (
        (text_count, "text", "texts"),
        (instance_count, "instance", "instances"),
        (image_like_count, "image-like", "image-like"),
        (button_like_count, "button-like", "button-like"),
    ):
        if count:
            features.append(_plural(count, singular, plural))
    feature_text = ", ".join(features) if features else "no text, instance, image-like or button-like nodes"

    summary = (
        f"section '{name}' ({node_type.value}): "
        f"{_plural(child_count, 'child', 'children')}, "
        f"{_plural(node_count, 'node', 'nodes')}, depth {depth}; {feature_text}."
    )
    if keywords:
        summary += f" Keywords: {', '.join(keywords)}."
    return summary


def compute_fingerprint(
    subtree_root: FigmaNodeMeta,
    keyword_engine: Optional[KeywordEngine] = None,
) -> SectionFingerprint:
    """計算 section 指紋；輸入相同（值相等）則輸出必定相同。"""
    engine = keyword_engine or KeywordEngine()

    # ─── Pass 1：前序展開（文件順序），同時驗證節點 ───
    order = []  # (node, parent_index)
    stack = [(subtree_root, -1)]
    while stack:
        node, parent = stack.pop()
        _check_node(node)
        index = len(order)
        order.append((node, parent))
        for child in reversed(node.child_list):
            stack.append((child, index))

    counts = {}
    for node, _ in order:
        counts[node.type] = counts.get(node.type, 0) + 1

    # ─── Pass 2：反向彙總（子節點必在父節點之後）───
    depth = [0] * len(order)
    text_below = [False] * len(order)
    button_like = 0
    for index in range(len(order) - 1, -1, -1):
        node, parent = order[index]
        # 「含有 text 後代的 frame」每個 frame 只算一次
        if node.type is NodeType.FRAME and text_below[index]:
            button_like += 1
        if parent >= 0:
            depth[parent] = max(depth[parent], depth[index] + 1)
            if text_below[index] or node.type is NodeType.TEXT:
                text_below[parent] = True

    text_count = counts.get(NodeType.TEXT, 0)
    instance_count = counts.get(NodeType.INSTANCE, 0)
    image_like_count = sum(counts.get(t, 0) for t in IMAGE_LIKE_TYPES)
    child_count = len(subtree_root.child_list)
    keywords = engine.extract(node.name for node, _ in order)

    summary = render_summary(
        subtree_root.name,
        subtree_root.type,
        child_count=child_count,
        node_count=len(order),
        depth=depth[0],
        text_count=text_count,
        instance_count=instance_count,
        image_like_count=image_like_count,
        button_like_count=button_like,
        keywords=keywords,
    )

    return SectionFingerprint(
        depth=depth[0],
        node_count=len(order),
        child_count=child_count,
        counts=counts,
        text_count=text_count,
        instance_count=instance_count,
        image_like_count=image_like_count,
        button_like_count=button_like,
        keywords=keywords,
        summary=summary,
        bbox=tuple(subtree_root.bbox) if subtree_root.bbox is not None else None,
    )


class FingerprintDiffer:
    """比對兩次擷取的 section 指紋，產出變更清單."""

    def diff(self, before: SkinFigmaIR, after: SkinFigmaIR) -> dict:
        """回傳 { sectionId: { field: { before, after } } } 或 _status added/removed."""
        before_map = {s.section_id: s for s in before.sections}
        after_map = {s.section_id: s for s in after.sections}
        changes = {}
        for section_id, after_section in after_map.items():
            before_section = before_map.get(section_id)
            if before_section is None:
                changes[section_id] = {"_status": "added"}
                continue
            section_changes = self.diff_fingerprints(
                before_section.fingerprint, after_section.fingerprint
            )
            if before_section.figma_name != after_section.figma_name:
                section_changes = section_changes or {}
                section_changes["figmaName"] = {
                    "before": before_section.figma_name,
                    "after": after_section.figma_name,
                }
            if section_changes:
                changes[section_id] = section_changes
        for section_id in before_map:
            if section_id not in after_map:
                changes[section_id] = {"_status": "removed"}
        return changes

    def diff_fingerprints(
        self, before: SectionFingerprint, after: SectionFingerprint
    ) -> Optional[dict]:
        b, a = before.to_dict(), after.to_dict()
        changes = {}
        for key in b:
            if key not in a:
                changes[key] = {"before": b[key], "after": None}
            elif b[key] != a[key]:
                changes[key] = {"before": b[key], "after": a[key]}
        for key in a:
            if key not in b:
                changes[key] = {"before": None, "after": a[key]}
        return changes if changes else None
