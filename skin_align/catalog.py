"""
Skin 目錄 — 資料夾中的設計 IR 與本地組件設定

  skin_<id>_figma_ir.json   設計 frame（root + sections）
  theme_<id>_local.json     本地組件設定 {"localRoot": {...}}
  skins.json                可選，顯示名稱 [{"id": "36", "name": "..."}]
"""

import json
import os
import re
from dataclasses import dataclass
from typing import Optional

from .alignment_store import AlignmentStore, SelectionSession
from .config import config_section
from .errors import NotFoundError, ValidationError
from .ir_builder import ir_filename, load_skin_ir
from .models import LocalComponentNode, SkinAlignmentSample, SkinFigmaIR

_IR_FILE_RE = re.compile(r"^skin_(.+)_figma_ir\.json$")


@dataclass
class SkinInfo:
    id: str
    name: str
    has_local_config: bool = False


def _sort_key(skin_id: str) -> tuple:
    return (0, int(skin_id), "") if skin_id.isdigit() else (1, 0, skin_id)


def local_config_filename(skin_id: str) -> str:
    return f"theme_{skin_id}_local.json"


class SkinCatalog:
    """以資料夾為單位的 skin 索引."""

    def __init__(self, data_dir: str, config: Optional[dict] = None):
        self.data_dir = data_dir
        self.config = config or {}

    def list_skins(self) -> list:
        if not os.path.isdir(self.data_dir):
            return []
        names = self._display_names()
        skins = []
        for filename in os.listdir(self.data_dir):
            match = _IR_FILE_RE.match(filename)
            if not match:
                continue
            skin_id = match.group(1)
            skins.append(SkinInfo(
                id=skin_id,
                name=names.get(skin_id, skin_id),
                has_local_config=self.has_local_config(skin_id),
            ))
        skins.sort(key=lambda s: _sort_key(s.id))
        return skins

    def get_skin_ir(self, skin_id: str, recompute: bool = True) -> SkinFigmaIR:
        path = os.path.join(self.data_dir, ir_filename(skin_id))
        if not os.path.exists(path):
            raise NotFoundError("skin", skin_id)
        return load_skin_ir(path, recompute=recompute, config=self.config)

    def get_local_config(self, skin_id: str) -> Optional[LocalComponentNode]:
        """沒有本地設定時回傳 None."""
        path = os.path.join(self.data_dir, local_config_filename(skin_id))
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict) or "localRoot" not in raw:
            raise ValidationError("localRoot", f"'{path}' 缺少 localRoot")
        return LocalComponentNode.from_dict(raw["localRoot"])

    def has_local_config(self, skin_id: str) -> bool:
        return os.path.exists(os.path.join(self.data_dir, local_config_filename(skin_id)))

    def open_sample(
        self,
        skin_id: str,
        store: AlignmentStore,
        session: Optional[SelectionSession] = None,
    ) -> SkinAlignmentSample:
        """載入 skin + 本地設定並設為 store 的作用中樣本."""
        local_root = self.get_local_config(skin_id)
        if local_root is None:
            raise NotFoundError("local config", skin_id)
        ir = self.get_skin_ir(skin_id)
        annotated_by = config_section(self.config, "annotation").get("annotatedBy")
        return store.activate(ir, local_root, session=session, annotated_by=annotated_by)

    def _display_names(self) -> dict:
        path = os.path.join(self.data_dir, "skins.json")
        if not os.path.exists(path):
            return {}
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        entries = raw.get("skins", []) if isinstance(raw, dict) else raw
        names = {}
        for entry in entries or []:
            if isinstance(entry, dict) and entry.get("id") is not None:
                names[str(entry["id"])] = str(entry.get("name") or entry["id"])
        return names
