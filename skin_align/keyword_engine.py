"""
關鍵字引擎 — 從設計節點名稱抽出檢索用 token

規則式斷詞：非英數邊界 → camelCase / snake_case 邊界 → 小寫 →
去掉過短、純數字、設計工具自動產生的樣板字（Frame / Group …）。
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .config import config_section
from .models import FigmaNodeMeta

DEFAULT_MAX_KEYWORDS = 20

# 非文字字元切段；底線也視為分隔
_CHUNK_RE = re.compile(r"[\W_]+")
# camelCase / PascalCase / 縮寫 / 數字 / 非 ASCII 字母（中日韓名稱整段保留）
_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+|[^\W\d_A-Za-z]+")


@dataclass
class KeywordConfig:
    """關鍵字引擎設定."""
    max_keywords: int = DEFAULT_MAX_KEYWORDS
    min_token_length: int = 2
    stopwords: set = field(default_factory=lambda: {
        # 節點類型名稱
        "frame", "group", "instance", "text", "rectangle", "rounded", "rect",
        "ellipse", "vector", "unknown",
        # Figma 自動命名
        "layer", "copy", "component", "auto", "layout", "boolean", "union",
        "subtract", "intersect", "exclude", "mask", "line", "polygon", "star",
        "slice", "section", "variant", "property", "default",
    })

    @classmethod
    def from_config(cls, cfg: Optional[dict]) -> "KeywordConfig":
        section = config_section(cfg, "fingerprint")
        kc = cls()
        if isinstance(section.get("maxKeywords"), int):
            kc.max_keywords = section["maxKeywords"]
        if isinstance(section.get("minTokenLength"), int):
            kc.min_token_length = section["minTokenLength"]
        if isinstance(section.get("stopwords"), list):
            kc.stopwords = {str(w).lower() for w in section["stopwords"]}
        return kc


class KeywordEngine:
    """將節點名稱轉成去重、保序、有上限的小寫關鍵字序列."""

    def __init__(self, config: Optional[KeywordConfig] = None):
        self.config = config or KeywordConfig()

    def tokenize(self, name: str) -> list:
        """單一名稱斷詞（不去重、不截斷）。"""
        tokens = []
        for chunk in _CHUNK_RE.split(name or ""):
            if not chunk:
                continue
            for word in _WORD_RE.findall(chunk):
                token = word.lower()
                if self._keep(token):
                    tokens.append(token)
        return tokens

    def extract(self, names: Iterable[str]) -> tuple:
        """依首次出現順序去重，最多 max_keywords 個。"""
        seen = {}
        if self.config.max_keywords <= 0:
            return ()
        for name in names:
            for token in self.tokenize(name):
                if token not in seen:
                    seen[token] = None
                    if len(seen) >= self.config.max_keywords:
                        return tuple(seen)
        return tuple(seen)

    def _keep(self, token: str) -> bool:
        if len(token) < self.config.min_token_length:
            return False
        if token.isdigit():
            return False
        return token not in self.config.stopwords


def preview_section_tree(node: FigmaNodeMeta, indent: int = 0) -> str:
    """除錯用：印出設計節點樹."""
    lines = []
    prefix = "  " * indent
    label = f"{prefix}├─ {node.name}  [{node.type.value}]"
    if node.id:
        label += f"  #{node.id}"
    lines.append(label)
    for child in node.child_list:
        lines.append(preview_section_tree(child, indent + 1))
    return "\n".join(lines)
