"""
對齊樣本狀態 — 左側 section ↔ 右側本地組件的綁定

  SelectionSession：操作者目前的選取（section / 組件），明確傳入 store
  AlignmentStore：  一次只持有一個作用中的 SkinAlignmentSample

mappings 以 sectionId 為唯一鍵：重新綁定時原位覆寫，不會追加第二筆。
bind / unbind / load_mappings 皆先驗證、後變更，失敗時狀態不變。
"""

import json
import os
from datetime import datetime, timezone
from typing import Iterator, Optional, Union

from .errors import NotFoundError, PreconditionError, ValidationError
from .models import (
    LocalComponentNode,
    SectionMappingLabel,
    SkinAlignmentSample,
    SkinFigmaIR,
    TruthStrategy,
    find_component,
    find_node_name,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SelectionSession:
    """操作者的暫存選取；新選取直接覆蓋，不排隊."""

    def __init__(self, skin_id: Optional[str] = None):
        self.skin_id = skin_id
        self.section_id: Optional[str] = None
        self.component_name: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.section_id is not None and self.component_name is not None

    def select_section(self, section_id: str) -> None:
        self.section_id = section_id

    def select_component(self, component_name: str) -> None:
        self.component_name = component_name

    def clear_section(self) -> None:
        self.section_id = None

    def clear_component(self) -> None:
        self.component_name = None

    def reset(self, skin_id: Optional[str] = None) -> None:
        """切換 skin：丟棄兩側選取。"""
        self.skin_id = skin_id
        self.section_id = None
        self.component_name = None


class AlignmentStore:
    """單一作用中 skin 的映射狀態."""

    def __init__(self):
        self._sample: Optional[SkinAlignmentSample] = None
        self._ir: Optional[SkinFigmaIR] = None

    @property
    def active(self) -> Optional[SkinAlignmentSample]:
        return self._sample

    @property
    def skin_id(self) -> Optional[str]:
        return self._sample.skin_id if self._sample else None

    def activate(
        self,
        ir: SkinFigmaIR,
        local_root: LocalComponentNode,
        session: Optional[SelectionSession] = None,
        annotated_by: Optional[str] = None,
    ) -> SkinAlignmentSample:
        """載入 frame + 本地設定，建立空的樣本。

        舊樣本未匯出的 mappings 會被丟棄；是否先匯出由呼叫端決定。
        """
        self._ir = ir
        self._sample = SkinAlignmentSample.from_ir(ir, local_root, annotated_by=annotated_by)
        if session is not None:
            session.reset(ir.skin_id)
        return self._sample

    def _require_active(self) -> SkinAlignmentSample:
        if self._sample is None:
            raise PreconditionError("尚未載入任何 skin")
        return self._sample

    # ════════════════════════════════════════════════════════════
    # Mutations
    # ════════════════════════════════════════════════════════════

    def bind(
        self,
        session: SelectionSession,
        strategy: Union[TruthStrategy, str, None] = None,
        variant_key: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> SectionMappingLabel:
        """以目前選取建立（或原位覆寫）一筆映射，成功後清空兩側選取。

        strategy 省略時為「未決定」，不會預設成 reuse。
        """
        sample = self._require_active()
        if not session.ready:
            raise PreconditionError("需要同時選取 section 與本地組件")
        if session.skin_id is not None and session.skin_id != sample.skin_id:
            raise PreconditionError(
                f"選取屬於 skin '{session.skin_id}'，目前作用中的是 '{sample.skin_id}'"
            )
        if sample.section(session.section_id) is None:
            raise NotFoundError("section", session.section_id)

        label = SectionMappingLabel(
            section_id=session.section_id,
            local_component_name=session.component_name,
            variant_key=variant_key,
            truth_strategy=TruthStrategy.parse(strategy),
            notes=notes,
        )

        index = self._index_of(label.section_id)
        if index is None:
            sample.mappings.append(label)
        else:
            sample.mappings[index] = label
        sample.annotated_at = _now_iso()

        session.clear_section()
        session.clear_component()
        return label

    def unbind(self, section_id: str) -> bool:
        """移除映射；不存在時為 no-op，回傳是否真的移除。"""
        sample = self._require_active()
        index = self._index_of(section_id)
        if index is None:
            return False
        del sample.mappings[index]
        return True

    def clear_all(self) -> None:
        """清空所有映射（不可復原，確認步驟屬於介面層）。"""
        self._require_active().mappings = []

    def load_mappings(self, labels: list) -> None:
        """以一份先前匯出的映射整批取代目前 mappings。"""
        sample = self._require_active()
        seen = set()
        for label in labels:
            if label.section_id in seen:
                raise ValidationError("sectionId", f"重複的 sectionId '{label.section_id}'")
            seen.add(label.section_id)
            if sample.section(label.section_id) is None:
                raise NotFoundError("section", label.section_id)
        sample.mappings = list(labels)

    def _index_of(self, section_id: str) -> Optional[int]:
        for i, m in enumerate(self._require_active().mappings):
            if m.section_id == section_id:
                return i
        return None

    # ════════════════════════════════════════════════════════════
    # Queries
    # ════════════════════════════════════════════════════════════

    def export(self) -> dict:
        """純快照，不改變狀態。"""
        sample = self._require_active()
        return {
            "skinId": sample.skin_id,
            "mappings": [m.to_dict() for m in sample.mappings],
            "exportedAt": _now_iso(),
        }

    def label_for(self, section_id: str) -> Optional[SectionMappingLabel]:
        index = self._index_of(section_id)
        return self._require_active().mappings[index] if index is not None else None

    def mapped_section_ids(self) -> set:
        return {m.section_id for m in self._require_active().mappings}

    def progress(self) -> tuple:
        """(已綁定 section 數, section 總數)."""
        sample = self._require_active()
        return len(sample.mappings), len(sample.sections)

    def unresolved_mappings(self) -> list:
        """組件名稱在本地樹中找不到的映射（僅回報，不阻擋）。"""
        sample = self._require_active()
        return [
            m for m in sample.mappings
            if find_component(sample.local_root, m.local_component_name) is None
        ]

    def section_display_name(self, section_id: str) -> Optional[str]:
        """顯示用名稱；找不到回傳 None。"""
        sample = self._require_active()
        section = sample.section(section_id)
        if section is not None:
            return section.figma_name
        if self._ir is not None:
            return find_node_name(self._ir.root, section_id)
        return None


# ════════════════════════════════════════════════════════════
# Export file / training records
# ════════════════════════════════════════════════════════════

def export_filename(skin_id: str) -> str:
    return f"skin_{skin_id}_mappings.json"


def save_export(payload: dict, output_dir: str = ".skin-align") -> str:
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, export_filename(payload["skinId"]))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    return path


def parse_export(raw: dict) -> tuple:
    """解析匯出內容，回傳 (skinId, [SectionMappingLabel], exportedAt)."""
    if not isinstance(raw, dict):
        raise ValidationError("export", "應為 JSON 物件")
    if raw.get("skinId") in (None, ""):
        raise ValidationError("skinId", "缺少必要欄位")
    entries = raw.get("mappings")
    if not isinstance(entries, list):
        raise ValidationError("mappings", "應為陣列")
    labels = [SectionMappingLabel.from_dict(e) for e in entries]
    seen = set()
    for label in labels:
        if label.section_id in seen:
            raise ValidationError("sectionId", f"重複的 sectionId '{label.section_id}'")
        seen.add(label.section_id)
    return str(raw["skinId"]), labels, raw.get("exportedAt")


def load_export(path: str) -> tuple:
    with open(path, "r", encoding="utf-8") as f:
        return parse_export(json.load(f))


def iter_training_records(sample: SkinAlignmentSample) -> Iterator[dict]:
    """每筆已標註 section 產出一筆訓練資料；truthStrategy 為 None 即未決定。"""
    for label in sample.mappings:
        section = sample.section(label.section_id)
        if section is None:
            continue
        fp = section.fingerprint
        yield {
            "skinId": sample.skin_id,
            "sectionId": section.section_id,
            "figmaName": section.figma_name,
            "figmaType": section.figma_type.value,
            "figmaPath": section.figma_path,
            "summary": fp.summary,
            "keywords": list(fp.keywords),
            "counts": {t.value: n for t, n in fp.counts.items()},
            "depth": fp.depth,
            "nodeCount": fp.node_count,
            "localComponentName": label.local_component_name,
            "variantKey": label.variant_key,
            "truthStrategy": label.truth_strategy.value if label.truth_strategy else None,
            "decided": label.is_decided,
        }
