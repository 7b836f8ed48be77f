"""
節點模型與對齊資料結構

Figma 節點樹（FigmaNodeMeta）、本地組件樹（LocalComponentNode）、
section 指紋 / IR，以及人工確認的 section ↔ 組件映射樣本。

JSON 交換格式一律使用 camelCase key；Python 端為 snake_case。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from .errors import ValidationError


class NodeType(str, Enum):
    """設計節點類型（封閉列舉，未知類型一律歸為 UNKNOWN）."""

    FRAME = "frame"
    INSTANCE = "instance"
    TEXT = "text"
    ROUNDED_RECTANGLE = "rounded-rectangle"
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    VECTOR = "vector"
    GROUP = "group"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "NodeType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class TruthStrategy(str, Enum):
    """人工標註的處理策略：直接複用 / 微調 / 新建."""

    REUSE = "reuse"
    PATCH = "patch"
    NEW = "new"

    @classmethod
    def parse(cls, value, field_name: str = "truthStrategy") -> Optional["TruthStrategy"]:
        """None 代表「未決定」，不是第四種策略。"""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValidationError(field_name, f"'{value}' 不在已知值中（{valid}）")


# ════════════════════════════════════════════════════════════
# Design tree
# ════════════════════════════════════════════════════════════

def parse_bbox(raw, node_name: Optional[str]) -> Optional[tuple]:
    """驗證 [x, y, width, height]，寬高不可為負。"""
    if raw is None:
        return None
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        raise ValidationError("bbox", "應為 [x, y, width, height]", node_name)
    for v in raw:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValidationError("bbox", f"非數值 {v!r}", node_name)
    x, y, w, h = raw
    if w < 0 or h < 0:
        raise ValidationError("bbox", f"寬高不可為負（{w}, {h}）", node_name)
    return (x, y, w, h)


@dataclass
class FigmaNodeMeta:
    """設計稿節點；children 為 None 代表葉節點."""

    name: str
    type: NodeType
    id: Optional[str] = None
    children: Optional[list] = None
    bbox: Optional[tuple] = None

    @classmethod
    def from_dict(cls, raw: dict, validate: bool = True) -> "FigmaNodeMeta":
        """解析節點樹。

        validate=False 時 name / type / bbox 的欄位錯誤延後到
        compute_fingerprint 才檢查，讓單一壞掉的 section 不影響同一 frame
        的其他 section；結構錯誤（節點不是物件、children 不是陣列）仍立即丟出。
        """
        if not isinstance(raw, dict):
            raise ValidationError("node", f"應為 JSON 物件，目前是 {type(raw).__name__}")
        name = raw.get("name")
        label = str(name) if name is not None else raw.get("id")
        if validate:
            if name is None:
                raise ValidationError("name", "缺少必要欄位", raw.get("id"))
            if not raw.get("type"):
                raise ValidationError("type", "缺少必要欄位", label)

        children = None
        raw_children = raw.get("children")
        if raw_children is not None:
            if not isinstance(raw_children, list):
                raise ValidationError("children", "應為陣列", label)
            children = [cls.from_dict(c, validate) for c in raw_children]

        raw_bbox = raw.get("bbox")
        if validate:
            bbox = parse_bbox(raw_bbox, label)
        else:
            bbox = tuple(raw_bbox) if isinstance(raw_bbox, list) else raw_bbox

        node_id = raw.get("id")
        return cls(
            name=str(name) if name is not None else None,
            type=NodeType.parse(raw["type"]) if raw.get("type") else None,
            id=str(node_id) if node_id is not None else None,
            children=children,
            bbox=bbox,
        )

    def to_dict(self) -> dict:
        out = {}
        if self.id is not None:
            out["id"] = self.id
        if self.name is not None:
            out["name"] = self.name
        if isinstance(self.type, NodeType):
            out["type"] = self.type.value
        if self.bbox is not None:
            out["bbox"] = list(self.bbox)
        if self.children is not None:
            out["children"] = [c.to_dict() for c in self.children]
        return out

    @property
    def child_list(self) -> list:
        return self.children or []

    def walk(self) -> Iterator["FigmaNodeMeta"]:
        """前序走訪（文件順序），不使用遞迴。"""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.child_list))


def count_nodes(node: Optional[FigmaNodeMeta]) -> int:
    if node is None:
        return 0
    return sum(1 for _ in node.walk())


def count_section_nodes(frame: FigmaNodeMeta) -> int:
    """frame 底下所有 section 的節點總數（不含 frame 根節點本身）。"""
    return sum(count_nodes(child) for child in frame.child_list)


def find_node(root: FigmaNodeMeta, node_id: str) -> Optional[FigmaNodeMeta]:
    for node in root.walk():
        if node.id == node_id:
            return node
    return None


def find_node_name(root: FigmaNodeMeta, node_id: str) -> Optional[str]:
    """顯示用：依 id 找節點名稱，找不到回傳 None。"""
    node = find_node(root, node_id)
    return node.name if node else None


def section_id_for(node: FigmaNodeMeta, index: int) -> str:
    """sectionId 規則：節點自身 id 優先，否則用 frame 子節點位置 section-<index>。"""
    if node.id:
        return node.id
    return f"section-{index}"


# ════════════════════════════════════════════════════════════
# Local component tree
# ════════════════════════════════════════════════════════════

@dataclass
class LocalComponentNode:
    """本地組件樹節點；componentName 允許重複，componentId 在同一份設定內唯一."""

    component_name: str
    component_id: int
    position: Optional[str] = None
    slot: Optional[str] = None
    layout_type: Optional[str] = None
    props_keys: Optional[list] = None
    children: Optional[list] = None

    @classmethod
    def from_dict(cls, raw: dict) -> "LocalComponentNode":
        if not isinstance(raw, dict):
            raise ValidationError("localRoot", f"應為 JSON 物件，目前是 {type(raw).__name__}")
        name = raw.get("componentName")
        if not isinstance(name, str) or not name:
            raise ValidationError("componentName", "缺少必要欄位")
        comp_id = raw.get("componentId")
        if isinstance(comp_id, bool) or not isinstance(comp_id, int):
            raise ValidationError("componentId", f"應為整數，目前是 {comp_id!r}", name)
        props_keys = raw.get("propsKeys")
        if props_keys is not None and not isinstance(props_keys, list):
            raise ValidationError("propsKeys", "應為字串陣列", name)
        children = None
        if raw.get("children") is not None:
            if not isinstance(raw["children"], list):
                raise ValidationError("children", "應為陣列", name)
            children = [cls.from_dict(c) for c in raw["children"]]
        return cls(
            component_name=name,
            component_id=comp_id,
            position=raw.get("position"),
            slot=raw.get("slot"),
            layout_type=raw.get("layoutType"),
            props_keys=[str(k) for k in props_keys] if props_keys is not None else None,
            children=children,
        )

    def to_dict(self) -> dict:
        out = {"componentName": self.component_name, "componentId": self.component_id}
        for key, value in (
            ("position", self.position),
            ("slot", self.slot),
            ("layoutType", self.layout_type),
            ("propsKeys", self.props_keys),
        ):
            if value is not None:
                out[key] = value
        if self.children is not None:
            out["children"] = [c.to_dict() for c in self.children]
        return out

    def walk(self, parent_path: str = "") -> Iterator[tuple]:
        """前序走訪，產出 (path, node)，path 形如 /Root/Child。"""
        stack = [(parent_path, self)]
        while stack:
            prefix, node = stack.pop()
            path = f"{prefix}/{node.component_name}"
            yield path, node
            for child in reversed(node.children or []):
                stack.append((path, child))


def find_component(root: LocalComponentNode, key: str) -> Optional[LocalComponentNode]:
    """以組件名稱或完整路徑（/Root/Child）查找；名稱重複時回傳第一個。"""
    by_path = key.startswith("/")
    for path, node in root.walk():
        if (by_path and path == key) or (not by_path and node.component_name == key):
            return node
    return None


# ════════════════════════════════════════════════════════════
# Fingerprint / IR
# ════════════════════════════════════════════════════════════

def _count(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(field_name, f"應為非負整數，目前是 {value!r}")
    return value


_FINGERPRINT_KEYS = (
    "depth", "nodeCount", "childCount", "counts",
    "textCount", "instanceCount", "imageLikeCount", "buttonLikeCount",
    "keywords", "summary",
)


@dataclass(frozen=True)
class SectionFingerprint:
    """section 子樹的結構摘要；永遠由子樹重新計算，不做增量修補."""

    depth: int
    node_count: int
    child_count: int
    counts: dict
    text_count: int
    instance_count: int
    image_like_count: int
    button_like_count: int
    keywords: tuple
    summary: str
    bbox: Optional[tuple] = None

    @property
    def has_text(self) -> bool:
        return self.text_count > 0

    @property
    def has_instance(self) -> bool:
        return self.instance_count > 0

    @property
    def has_images_like(self) -> bool:
        return self.image_like_count > 0

    @property
    def has_button_like(self) -> bool:
        return self.button_like_count > 0

    @staticmethod
    def is_complete(raw) -> bool:
        return isinstance(raw, dict) and all(k in raw for k in _FINGERPRINT_KEYS)

    @classmethod
    def from_dict(cls, raw: dict) -> "SectionFingerprint":
        if not cls.is_complete(raw):
            missing = [k for k in _FINGERPRINT_KEYS if not isinstance(raw, dict) or k not in raw]
            raise ValidationError("fingerprint", f"缺少欄位 {', '.join(missing)}")
        counts = raw["counts"]
        if not isinstance(counts, dict):
            raise ValidationError("fingerprint.counts", f"應為 JSON 物件，目前是 {type(counts).__name__}")
        keywords = raw["keywords"]
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise ValidationError("fingerprint.keywords", "應為字串陣列")
        if not isinstance(raw["summary"], str):
            raise ValidationError("fingerprint.summary", "應為字串")
        return cls(
            depth=_count(raw["depth"], "fingerprint.depth"),
            node_count=_count(raw["nodeCount"], "fingerprint.nodeCount"),
            child_count=_count(raw["childCount"], "fingerprint.childCount"),
            counts={NodeType.parse(k): _count(v, f"fingerprint.counts.{k}") for k, v in counts.items()},
            text_count=_count(raw["textCount"], "fingerprint.textCount"),
            instance_count=_count(raw["instanceCount"], "fingerprint.instanceCount"),
            image_like_count=_count(raw["imageLikeCount"], "fingerprint.imageLikeCount"),
            button_like_count=_count(raw["buttonLikeCount"], "fingerprint.buttonLikeCount"),
            keywords=tuple(keywords),
            summary=raw["summary"],
            bbox=parse_bbox(raw.get("bbox"), None),
        )

    def to_dict(self) -> dict:
        out = {
            "depth": self.depth,
            "nodeCount": self.node_count,
            "childCount": self.child_count,
            "counts": {t.value: n for t, n in self.counts.items()},
            "hasText": self.has_text,
            "textCount": self.text_count,
            "hasInstance": self.has_instance,
            "instanceCount": self.instance_count,
            "hasImagesLike": self.has_images_like,
            "imageLikeCount": self.image_like_count,
            "hasButtonLike": self.has_button_like,
            "buttonLikeCount": self.button_like_count,
        }
        if self.bbox is not None:
            out["bbox"] = list(self.bbox)
        out["keywords"] = list(self.keywords)
        out["summary"] = self.summary
        return out


@dataclass
class SectionIR:
    section_id: str
    figma_node_id: Optional[str]
    figma_path: str
    figma_name: str
    figma_type: NodeType
    fingerprint: SectionFingerprint

    def to_dict(self) -> dict:
        out = {"sectionId": self.section_id}
        if self.figma_node_id is not None:
            out["figmaNodeId"] = self.figma_node_id
        out.update({
            "figmaPath": self.figma_path,
            "figmaName": self.figma_name,
            "figmaType": self.figma_type.value,
            "fingerprint": self.fingerprint.to_dict(),
        })
        return out

    @classmethod
    def from_dict(cls, raw: dict) -> "SectionIR":
        if not isinstance(raw, dict):
            raise ValidationError("sections", f"每個 section 應為 JSON 物件，目前是 {type(raw).__name__}")
        for key in ("sectionId", "figmaName", "figmaType"):
            if not raw.get(key):
                raise ValidationError(key, "缺少必要欄位")
        node_id = raw.get("figmaNodeId")
        return cls(
            section_id=str(raw["sectionId"]),
            figma_node_id=str(node_id) if node_id is not None else None,
            figma_path=str(raw.get("figmaPath") or raw["figmaName"]),
            figma_name=str(raw["figmaName"]),
            figma_type=NodeType.parse(raw["figmaType"]),
            fingerprint=SectionFingerprint.from_dict(raw.get("fingerprint")),
        )


@dataclass
class SkinFigmaIR:
    """單一設計 frame（skin）：完整節點樹 + 依文件順序排列的 section 清單."""

    skin_id: str
    frame_id: str
    frame_name: str
    root: FigmaNodeMeta
    sections: list = field(default_factory=list)

    def section(self, section_id: str) -> Optional[SectionIR]:
        for s in self.sections:
            if s.section_id == section_id:
                return s
        return None

    def section_ids(self) -> list:
        return [s.section_id for s in self.sections]

    def section_node(self, section_id: str) -> Optional[FigmaNodeMeta]:
        """依 sectionId 找回 root 底下對應的直接子節點（弱引用解析）。

        有 figmaNodeId 時以它比對直接子節點，否則套用 sectionId 規則。
        """
        section = self.section(section_id)
        if section is not None and section.figma_node_id is not None:
            for child in self.root.child_list:
                if child.id == section.figma_node_id:
                    return child
            return None
        for index, child in enumerate(self.root.child_list):
            if section_id_for(child, index) == section_id:
                return child
        return None

    def check_invariants(self) -> None:
        """sectionId 唯一，且每個 section 唯一對應 root 的一個直接子節點。"""
        seen = set()
        for s in self.sections:
            if s.section_id in seen:
                raise ValidationError("sectionId", f"重複的 sectionId '{s.section_id}'")
            seen.add(s.section_id)
            if s.figma_node_id is not None:
                matches = [c for c in self.root.child_list if c.id == s.figma_node_id]
                if len(matches) != 1:
                    raise ValidationError(
                        "figmaNodeId",
                        f"section '{s.section_id}' 的 '{s.figma_node_id}' "
                        f"對應到 {len(matches)} 個直接子節點",
                    )
            elif self.section_node(s.section_id) is None:
                raise ValidationError(
                    "sectionId", f"section '{s.section_id}' 不是 root 的直接子節點"
                )

    def to_dict(self) -> dict:
        return {
            "skinId": self.skin_id,
            "frameId": self.frame_id,
            "frameName": self.frame_name,
            "root": self.root.to_dict(),
            "sections": [s.to_dict() for s in self.sections],
        }


# ════════════════════════════════════════════════════════════
# Mapping labels / samples
# ════════════════════════════════════════════════════════════

@dataclass
class SectionMappingLabel:
    """一筆人工確認的 section → 本地組件綁定；truth_strategy 為 None 代表未決定."""

    section_id: str
    local_component_name: str
    variant_key: Optional[str] = None
    truth_strategy: Optional[TruthStrategy] = None
    notes: Optional[str] = None

    @property
    def is_decided(self) -> bool:
        return self.truth_strategy is not None

    @classmethod
    def from_dict(cls, raw: dict) -> "SectionMappingLabel":
        if not isinstance(raw, dict):
            raise ValidationError("mappings", "每筆映射應為 JSON 物件")
        if not raw.get("sectionId"):
            raise ValidationError("sectionId", "缺少必要欄位")
        if not raw.get("localComponentName"):
            raise ValidationError("localComponentName", "缺少必要欄位")
        return cls(
            section_id=str(raw["sectionId"]),
            local_component_name=str(raw["localComponentName"]),
            variant_key=raw.get("variantKey"),
            truth_strategy=TruthStrategy.parse(raw.get("truthStrategy")),
            notes=raw.get("notes"),
        )

    def to_dict(self) -> dict:
        out = {"sectionId": self.section_id, "localComponentName": self.local_component_name}
        if self.variant_key is not None:
            out["variantKey"] = self.variant_key
        if self.truth_strategy is not None:
            out["truthStrategy"] = self.truth_strategy.value
        if self.notes is not None:
            out["notes"] = self.notes
        return out


@dataclass
class SkinAlignmentSample:
    """對齊樣本：skin 的 sections + 本地組件樹 + 已確認映射."""

    skin_id: str
    figma_frame_name: str
    figma_frame_id: str
    sections: list
    local_root: LocalComponentNode
    mappings: list = field(default_factory=list)
    annotated_by: Optional[str] = None
    annotated_at: Optional[str] = None

    @classmethod
    def from_ir(
        cls,
        ir: SkinFigmaIR,
        local_root: LocalComponentNode,
        annotated_by: Optional[str] = None,
    ) -> "SkinAlignmentSample":
        return cls(
            skin_id=ir.skin_id,
            figma_frame_name=ir.frame_name,
            figma_frame_id=ir.frame_id,
            sections=list(ir.sections),
            local_root=local_root,
            mappings=[],
            annotated_by=annotated_by,
        )

    def section(self, section_id: str) -> Optional[SectionIR]:
        for s in self.sections:
            if s.section_id == section_id:
                return s
        return None

    def to_dict(self) -> dict:
        out = {
            "skinId": self.skin_id,
            "figmaFrameName": self.figma_frame_name,
            "figmaFrameId": self.figma_frame_id,
            "sections": [s.to_dict() for s in self.sections],
            "localRoot": self.local_root.to_dict(),
            "mappings": [m.to_dict() for m in self.mappings],
        }
        if self.annotated_by is not None:
            out["annotatedBy"] = self.annotated_by
        if self.annotated_at is not None:
            out["annotatedAt"] = self.annotated_at
        return out
