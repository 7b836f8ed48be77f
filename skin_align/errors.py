"""錯誤分類：驗證錯誤 / 前置條件錯誤 / 查無資料."""

from typing import Optional


class SkinAlignError(Exception):
    """所有 skin_align 錯誤的基底類別."""


class ValidationError(SkinAlignError):
    """輸入樹或交換資料格式錯誤（缺欄位、負尺寸、frame 無子節點…）。"""

    def __init__(self, field: str, message: str, node_name: Optional[str] = None):
        self.field = field
        self.node_name = node_name
        where = f" (node '{node_name}')" if node_name else ""
        super().__init__(f"{field}: {message}{where}")


class PreconditionError(SkinAlignError):
    """操作所需的選取狀態不存在，狀態不變。"""


class NotFoundError(SkinAlignError):
    """引用了不存在的 skinId / sectionId。"""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")
