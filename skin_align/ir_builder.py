"""
ir_builder.py — Design frame → SkinFigmaIR

Each direct child of the frame root becomes one section:
  sectionId   = child id, or section-<index> when the child has no id
  figmaPath   = "<frame name>/<section name>"
  fingerprint = compute_fingerprint(child), computed once at build time

Loading a stored IR recomputes fingerprints from `root` by default, so a stale
precomputed value never leaks into retrieval or training data.
"""

import json
import logging
import os
from typing import Optional

from .errors import ValidationError
from .fingerprint import FingerprintDiffer, compute_fingerprint
from .keyword_engine import KeywordConfig, KeywordEngine
from .models import (
    FigmaNodeMeta,
    NodeType,
    SectionFingerprint,
    SectionIR,
    SkinFigmaIR,
    section_id_for,
)

logger = logging.getLogger(__name__)


class SkinIRBuilder:

    def __init__(
        self,
        keyword_engine: Optional[KeywordEngine] = None,
        strict: bool = True,
        path_separator: str = "/",
    ):
        self.keywords = keyword_engine or KeywordEngine()
        self.strict = strict
        self.separator = path_separator
        # Errors of skipped sections from the last non-strict build
        self.errors: list = []

    def build(
        self,
        frame: FigmaNodeMeta,
        skin_id: str,
        frame_id: Optional[str] = None,
        frame_name: Optional[str] = None,
    ) -> SkinFigmaIR:
        self.errors = []
        if not isinstance(frame, FigmaNodeMeta):
            raise ValidationError("root", f"應為 FigmaNodeMeta，目前是 {type(frame).__name__}")
        if not isinstance(frame.name, str) and not frame_name:
            raise ValidationError("name", "frame 缺少名稱", frame.id)
        if not isinstance(frame.type, NodeType):
            raise ValidationError("type", f"frame 缺少或無效的節點類型 {frame.type!r}", frame.name)
        frame_name = frame_name or frame.name
        if not frame.child_list:
            raise ValidationError("children", "frame 至少需要一個 section 才能對齊", frame_name)

        sections = []
        seen: dict[str, int] = {}
        for index, child in enumerate(frame.child_list):
            try:
                section = self._build_section(child, index, frame_name, seen)
            except ValidationError as e:
                if self.strict:
                    raise
                logger.warning("skin %s: skipping section #%d: %s", skin_id, index, e)
                self.errors.append(e)
                continue
            sections.append(section)

        if not sections:
            raise ValidationError("sections", "所有 section 皆擷取失敗", frame_name)

        return SkinFigmaIR(
            skin_id=str(skin_id),
            frame_id=str(frame_id or frame.id or ""),
            frame_name=frame_name,
            root=frame,
            sections=sections,
        )

    # ════════════════════════════════════════════════════════════
    # Sections
    # ════════════════════════════════════════════════════════════

    def _build_section(
        self, child: FigmaNodeMeta, index: int, frame_name: str, seen: dict
    ) -> SectionIR:
        section_id = section_id_for(child, index)
        if section_id in seen:
            raise ValidationError(
                "sectionId",
                f"重複的 sectionId '{section_id}'（位置 {seen[section_id]} 與 {index}）",
                child.name,
            )
        fingerprint = compute_fingerprint(child, self.keywords)
        seen[section_id] = index
        return SectionIR(
            section_id=section_id,
            figma_node_id=child.id,
            figma_path=self.path_for(frame_name, child.name),
            figma_name=child.name,
            figma_type=child.type,
            fingerprint=fingerprint,
        )

    def path_for(self, *names: str) -> str:
        return self.separator.join(n for n in names if n)


def build_skin_ir(
    frame: FigmaNodeMeta,
    skin_id: str,
    frame_id: Optional[str] = None,
    frame_name: Optional[str] = None,
    keyword_engine: Optional[KeywordEngine] = None,
) -> SkinFigmaIR:
    return SkinIRBuilder(keyword_engine=keyword_engine).build(
        frame, skin_id, frame_id, frame_name
    )


# ════════════════════════════════════════════════════════════
# Load / save
# ════════════════════════════════════════════════════════════

def skin_ir_from_dict(
    raw: dict,
    recompute: bool = True,
    builder: Optional[SkinIRBuilder] = None,
) -> SkinFigmaIR:
    """解析 {skinId, frameId, frameName, root, sections}。

    recompute=True：忽略輸入中的指紋，由 root 重新計算（並記錄過期的指紋）。
    recompute=False：沿用完整的預先計算指紋，不完整者才重新計算。
    builder 非 strict 時，單一 section 的節點欄位錯誤只會讓該 section 被略過。
    """
    if not isinstance(raw, dict):
        raise ValidationError("skin", "應為 JSON 物件")
    if raw.get("skinId") in (None, ""):
        raise ValidationError("skinId", "缺少必要欄位")
    if "root" not in raw:
        raise ValidationError("root", "缺少必要欄位")
    given = raw.get("sections")
    if given is None:
        given = []
    if not isinstance(given, list):
        raise ValidationError("sections", f"應為陣列，目前是 {type(given).__name__}")

    builder = builder or SkinIRBuilder()
    root = FigmaNodeMeta.from_dict(raw["root"], validate=builder.strict)
    skin_id = str(raw["skinId"])
    frame_id = raw.get("frameId") or root.id or ""
    frame_name = raw.get("frameName") or root.name

    if recompute:
        ir = builder.build(root, skin_id, frame_id, frame_name)
        _report_stale(given, ir)
        return ir

    if not given:
        return builder.build(root, skin_id, frame_id, frame_name)
    builder.errors = []
    ir = SkinFigmaIR(skin_id=skin_id, frame_id=str(frame_id), frame_name=frame_name, root=root)
    for index, entry in enumerate(given):
        try:
            if not isinstance(entry, dict):
                raise ValidationError(
                    "sections", f"第 {index} 個 section 應為 JSON 物件，目前是 {type(entry).__name__}"
                )
            if SectionFingerprint.is_complete(entry.get("fingerprint")):
                section = SectionIR.from_dict(entry)
            else:
                section = _recompute_entry(ir, entry, builder)
        except ValidationError as e:
            if builder.strict:
                raise
            logger.warning("skin %s: skipping section #%d: %s", skin_id, index, e)
            builder.errors.append(e)
            continue
        ir.sections.append(section)
    if not ir.sections:
        raise ValidationError("sections", "所有 section 皆載入失敗", frame_name)
    ir.check_invariants()
    return ir


def _recompute_entry(ir: SkinFigmaIR, entry: dict, builder: SkinIRBuilder) -> SectionIR:
    section_id = entry.get("sectionId")
    if not section_id:
        raise ValidationError("sectionId", "缺少必要欄位")
    node_id = entry.get("figmaNodeId")
    node = None
    if node_id is not None:
        node = next((c for c in ir.root.child_list if c.id == str(node_id)), None)
    else:
        node = next(
            (c for i, c in enumerate(ir.root.child_list) if section_id_for(c, i) == section_id),
            None,
        )
    if node is None:
        raise ValidationError("figmaNodeId", f"section '{section_id}' 找不到對應的直接子節點")
    return SectionIR(
        section_id=str(section_id),
        figma_node_id=node.id,
        figma_path=entry.get("figmaPath") or builder.path_for(ir.frame_name, node.name),
        figma_name=entry.get("figmaName") or node.name,
        figma_type=node.type,
        fingerprint=compute_fingerprint(node, builder.keywords),
    )


def _report_stale(given: list, ir: SkinFigmaIR) -> None:
    differ = FingerprintDiffer()
    for entry in given:
        if not isinstance(entry, dict):
            continue
        section_id = entry.get("sectionId")
        section = ir.section(str(section_id)) if section_id else None
        if section is None:
            logger.warning("skin %s: input section '%s' not found after recompute", ir.skin_id, section_id)
            continue
        raw_fp = entry.get("fingerprint")
        if not SectionFingerprint.is_complete(raw_fp):
            continue
        try:
            stored = SectionFingerprint.from_dict(raw_fp)
        except ValidationError as e:
            logger.warning("skin %s: unreadable fingerprint for section '%s': %s", ir.skin_id, section_id, e)
            continue
        changes = differ.diff_fingerprints(stored, section.fingerprint)
        if changes:
            logger.warning(
                "skin %s: stale fingerprint for section '%s' (%s), recomputed",
                ir.skin_id, section_id, ", ".join(sorted(changes)),
            )


def load_skin_ir(
    path: str,
    recompute: bool = True,
    config: Optional[dict] = None,
) -> SkinFigmaIR:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    builder = SkinIRBuilder(keyword_engine=KeywordEngine(KeywordConfig.from_config(config)))
    return skin_ir_from_dict(raw, recompute=recompute, builder=builder)


def ir_filename(skin_id: str) -> str:
    return f"skin_{skin_id}_figma_ir.json"


def save_ir(ir: SkinFigmaIR, output_dir: str = ".skin-align") -> str:
    os.makedirs(output_dir, exist_ok=True)
    ir_path = os.path.join(output_dir, ir_filename(ir.skin_id))
    with open(ir_path, "w", encoding="utf-8") as f:
        json.dump(ir.to_dict(), f, indent=2, ensure_ascii=False)
    return ir_path
