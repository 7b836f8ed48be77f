"""設定檔載入與基本驗證."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "skin-align.config.json"

# 已知有效的頂層欄位
_KNOWN_TOP_KEYS = {"data", "fingerprint", "export", "figma", "annotation"}

# 各區塊已知欄位（用於拼字提示）
_KNOWN_SECTION_KEYS = {
    "data": {"dir"},
    "fingerprint": {"maxKeywords", "minTokenLength", "stopwords"},
    "export": {"outputDir"},
    "figma": {"personalAccessToken", "fileKey"},
    "annotation": {"annotatedBy"},
}


def _warn(msg: str) -> None:
    logger.warning("[config] %s", msg)


def validate_config(cfg: dict) -> None:
    """對 config 做基本欄位驗證，記錄警告但不拋例外。"""
    if not cfg:
        return

    # 頂層未知欄位
    for key in cfg:
        if key not in _KNOWN_TOP_KEYS:
            known = ", ".join(sorted(_KNOWN_TOP_KEYS))
            _warn(f"未知頂層欄位 '{key}'（已知欄位：{known}）")

    # 各區塊欄位
    for section, known_keys in _KNOWN_SECTION_KEYS.items():
        section_cfg = cfg.get(section, {})
        if not isinstance(section_cfg, dict):
            _warn(f"'{section}' 應為 JSON 物件")
            continue
        for key in section_cfg:
            if key not in known_keys:
                known = ", ".join(sorted(known_keys))
                _warn(f"[{section}] 未知欄位 '{key}'（已知欄位：{known}）")

    fp = cfg.get("fingerprint", {})
    if isinstance(fp, dict):
        for key in ("maxKeywords", "minTokenLength"):
            val = fp.get(key)
            if val is not None and (isinstance(val, bool) or not isinstance(val, int) or val < 0):
                _warn(f"fingerprint.{key} 應為非負整數，目前是 {val!r}")
        stopwords = fp.get("stopwords")
        if stopwords is not None and not isinstance(stopwords, list):
            _warn(f"fingerprint.stopwords 應為字串陣列，目前是 {type(stopwords).__name__}")

    # data.dir 存在性提示
    data_dir = (cfg.get("data") or {}).get("dir") if isinstance(cfg.get("data"), dict) else None
    if data_dir and not Path(data_dir).is_dir():
        _warn(f"data.dir '{data_dir}' 目錄不存在")


def config_section(cfg: Optional[dict], name: str) -> dict:
    """取出設定區塊；不存在或不是物件時回傳空 dict（validate_config 已警告過）。"""
    section = (cfg or {}).get(name)
    return section if isinstance(section, dict) else {}


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """載入 JSON 設定檔，不存在則回傳空 dict；存在則做基本驗證。"""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        cfg: Any = json.load(f)
    if not isinstance(cfg, dict):
        _warn(f"'{config_path}' 格式錯誤，應為 JSON 物件，回傳空設定。")
        return {}
    validate_config(cfg)
    return cfg
