#!/usr/bin/env python3
"""
skin-align CLI — Figma section ↔ 本地組件對齊資料工具

  python -m skin_align.cli build-ir frame.json --skin-id 36   # frame → IR
  python -m skin_align.cli fingerprint skin_36_figma_ir.json  # 印出 section 指紋
  python -m skin_align.cli pull --file-key KEY --node-id 1:2 --skin-id 36
  python -m skin_align.cli progress 36 --mappings skin_36_mappings.json
"""

import argparse
import json
import logging
import os
import sys
import time

import requests
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import __version__
from .alignment_store import AlignmentStore, iter_training_records, load_export
from .catalog import SkinCatalog
from .config import DEFAULT_CONFIG_PATH, config_section, load_config
from .decision import format_decision, load_decisions
from .errors import SkinAlignError
from .figma_reader import FigmaAPIClient, fetch_frame
from .fingerprint import FingerprintDiffer
from .ir_builder import SkinIRBuilder, load_skin_ir, save_ir, skin_ir_from_dict
from .keyword_engine import KeywordConfig, KeywordEngine, preview_section_tree
from .models import FigmaNodeMeta, count_section_nodes


def _output_dir(args, config: dict) -> str:
    return args.output or config_section(config, "export").get("outputDir", ".skin-align")


def _data_dir(args, config: dict) -> str:
    return getattr(args, "data_dir", None) or config_section(config, "data").get("dir", ".")


def _builder(config: dict, strict: bool = True) -> SkinIRBuilder:
    return SkinIRBuilder(
        keyword_engine=KeywordEngine(KeywordConfig.from_config(config)),
        strict=strict,
    )


def cmd_build_ir(args, config: dict) -> int:
    """Build IR：frame JSON（或既有 skin IR）→ 重新計算指紋 → 寫出."""
    print(f"🧩 Building IR from: {args.input}")
    with open(args.input, "r", encoding="utf-8") as f:
        raw = json.load(f)

    builder = _builder(config, strict=not args.lenient)
    if isinstance(raw, dict) and "root" in raw:
        if args.skin_id:
            raw = dict(raw, skinId=args.skin_id)
        ir = skin_ir_from_dict(raw, recompute=True, builder=builder)
    else:
        if not args.skin_id:
            print("❌ 原始 frame 需要 --skin-id。")
            return 2
        frame = FigmaNodeMeta.from_dict(raw, validate=not args.lenient)
        ir = builder.build(frame, args.skin_id, args.frame_id, args.frame_name)

    for err in builder.errors:
        print(f"   ⚠️  Skipped section: {err}")
    print(f"   ✅ {len(ir.sections)} sections, {count_section_nodes(ir.root)} section nodes")
    path = save_ir(ir, _output_dir(args, config))
    print(f"   ✅ Saved to {path}")
    return 0


def cmd_fingerprint(args, config: dict) -> int:
    ir = load_skin_ir(args.input, config=config)
    if args.json:
        print(json.dumps(
            {s.section_id: s.fingerprint.to_dict() for s in ir.sections},
            indent=2, ensure_ascii=False,
        ))
        return 0
    print(f"🔎 {ir.frame_name}  (skin {ir.skin_id}, {len(ir.sections)} sections)")
    for s in ir.sections:
        print(f"   [{s.section_id}] {s.fingerprint.summary}")
    return 0


def cmd_preview(args, config: dict) -> int:
    """預覽設計節點樹."""
    ir = load_skin_ir(args.input, config=config)
    print(preview_section_tree(ir.root))
    print(f"\nSection nodes: {count_section_nodes(ir.root)} (frame root excluded)")
    return 0


def cmd_pull(args, config: dict) -> int:
    """Pull：從 Figma 讀取 frame → 建 IR."""
    figma_cfg = config_section(config, "figma")
    token = figma_cfg.get("personalAccessToken") or os.environ.get("FIGMA_TOKEN")
    file_key = args.file_key or figma_cfg.get("fileKey")

    if not token:
        print("❌ 請設定 FIGMA_TOKEN 環境變數，或在 skin-align.config.json 的 figma.personalAccessToken 設定。")
        return 2
    if not file_key:
        print("❌ 請使用 --file-key 或在 config 的 figma.fileKey 設定 Figma 檔案 key。")
        return 2

    print(f"📥 Pulling frame {args.node_id} from Figma: {file_key}")
    client = FigmaAPIClient(token)
    try:
        frame = fetch_frame(client, file_key, args.node_id)
    except requests.RequestException as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        if status == 403:
            print("❌ Figma API 403：Token 無效或已過期，請重新產生 FIGMA_TOKEN。")
        elif status == 404:
            print(f"❌ Figma API 404：找不到檔案 '{file_key}'，請確認 file key 是否正確。")
        else:
            print(f"❌ Figma API 錯誤：{e}")
        return 1

    ir = _builder(config).build(frame, args.skin_id, frame.id, frame.name)
    print(f"   ✅ {len(ir.sections)} sections")
    path = save_ir(ir, _output_dir(args, config))
    print(f"   ✅ Saved to {path}")
    return 0


_WATCHED_SUFFIX = "_figma_ir.json"


class ChangeHandler(FileSystemEventHandler):
    """檔案變更事件處理器，帶 debounce 防抖。"""

    def __init__(self, callback, debounce: float = 1.0):
        self.callback = callback
        self.last_trigger = 0.0
        self.debounce_seconds = debounce

    def on_modified(self, event):
        if event.is_directory:
            return
        if not event.src_path.endswith(_WATCHED_SUFFIX):
            return
        current_time = time.time()
        if current_time - self.last_trigger < self.debounce_seconds:
            return
        self.last_trigger = current_time
        print(f"\n🔄 File changed: {event.src_path}")
        self.callback(event.src_path)

    on_created = on_modified


class IRRefresher:
    """重新載入變更的 IR 檔，與上一版比對指紋並寫出重新計算的結果."""

    def __init__(self, config: dict, output_dir: str):
        self.config = config
        self.output_dir = output_dir
        self.differ = FingerprintDiffer()
        self.snapshots: dict = {}

    def __call__(self, path: str) -> None:
        try:
            ir = load_skin_ir(path, config=self.config)
        except (SkinAlignError, ValueError, OSError) as e:
            print(f"   ❌ {path}: {e}")
            return
        before = self.snapshots.get(path)
        self.snapshots[path] = ir
        if before is not None:
            changes = self.differ.diff(before, ir)
            if not changes:
                print("   ✅ No fingerprint changes.")
            for section_id, diff in changes.items():
                status = diff.get("_status")
                detail = status or ", ".join(sorted(diff))
                print(f"   📝 {section_id}: {detail}")
        out = save_ir(ir, self.output_dir)
        print(f"   ✅ Saved to {out}")


def cmd_watch(args, config: dict) -> int:
    """Watch：監聽 IR 檔變更並重新計算指紋."""
    watch_dir = args.dir
    output_dir = _output_dir(args, config)
    if os.path.abspath(output_dir) == os.path.abspath(watch_dir):
        print("❌ --output 不可與監聽目錄相同。")
        return 2
    print(f"👀 Watching for changes in '{watch_dir}'...")
    print("   Press Ctrl+C to stop.")

    refresher = IRRefresher(config, output_dir)
    for name in sorted(os.listdir(watch_dir)):
        if name.endswith(_WATCHED_SUFFIX):
            refresher(os.path.join(watch_dir, name))

    observer = Observer()
    observer.schedule(ChangeHandler(refresher, debounce=args.debounce), path=watch_dir, recursive=False)
    observer.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n👋 Stopping watch...")
        observer.stop()
    finally:
        observer.join()
    return 0


def cmd_check_decisions(args, config: dict) -> int:
    decisions = load_decisions(args.input)
    print(f"📋 {len(decisions)} decision records")
    for d in decisions:
        print(format_decision(d))
    return 0


def cmd_skins(args, config: dict) -> int:
    catalog = SkinCatalog(_data_dir(args, config), config)
    skins = catalog.list_skins()
    if not skins:
        print("   ℹ️  沒有找到任何 skin_<id>_figma_ir.json。")
    for skin in skins:
        mark = "✅" if skin.has_local_config else "—"
        print(f"   {mark} {skin.id:>6}  {skin.name}")
    return 0


def cmd_progress(args, config: dict) -> int:
    """Progress：載入 skin + 匯出的映射，回報綁定進度並可輸出訓練資料."""
    catalog = SkinCatalog(_data_dir(args, config), config)
    store = AlignmentStore()
    sample = catalog.open_sample(args.skin_id, store)

    if args.mappings:
        skin_id, labels, exported_at = load_export(args.mappings)
        if skin_id != sample.skin_id:
            print(f"❌ 映射檔屬於 skin '{skin_id}'，不是 '{sample.skin_id}'。")
            return 1
        store.load_mappings(labels)
        print(f"   ✅ Loaded {len(labels)} mappings (exported {exported_at or '?'})")

    bound, total = store.progress()
    print(f"📊 {sample.figma_frame_name}: {bound}/{total} sections bound")
    undecided = [m for m in sample.mappings if not m.is_decided]
    if undecided:
        print(f"   ℹ️  {len(undecided)} mappings without truthStrategy (undecided)")
    for m in store.unresolved_mappings():
        print(f"   ⚠️  {m.section_id} → '{m.local_component_name}' not found in local tree")

    if args.training_out:
        with open(args.training_out, "w", encoding="utf-8") as f:
            count = 0
            for record in iter_training_records(sample):
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
                count += 1
        print(f"   📄 {count} training records written to {args.training_out}")
    return 0


_COMMANDS = {
    "build-ir": cmd_build_ir,
    "fingerprint": cmd_fingerprint,
    "preview": cmd_preview,
    "pull": cmd_pull,
    "watch": cmd_watch,
    "check-decisions": cmd_check_decisions,
    "skins": cmd_skins,
    "progress": cmd_progress,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="skin-align: Figma section ↔ local component alignment data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_PATH, help="Config path")
    parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    build_p = sub.add_parser("build-ir", help="Frame JSON → skin IR with fingerprints")
    build_p.add_argument("input", help="Frame node JSON or skin IR JSON")
    build_p.add_argument("--skin-id", help="Skin id (required for a bare frame)")
    build_p.add_argument("--frame-id", help="Frame id (defaults to root id)")
    build_p.add_argument("--frame-name", help="Frame name (defaults to root name)")
    build_p.add_argument("--output", help="Output directory")
    build_p.add_argument("--lenient", action="store_true", help="Skip malformed sections instead of failing")

    fp_p = sub.add_parser("fingerprint", help="Print section fingerprints")
    fp_p.add_argument("input", help="Skin IR JSON")
    fp_p.add_argument("--json", action="store_true", help="Emit JSON")

    preview_p = sub.add_parser("preview", help="Preview design node tree")
    preview_p.add_argument("input", help="Skin IR JSON")

    pull_p = sub.add_parser("pull", help="Figma frame → skin IR",
        epilog="Examples:\n  skin-align pull --file-key ABC123 --node-id 12:34 --skin-id 36",
        formatter_class=argparse.RawDescriptionHelpFormatter)
    pull_p.add_argument("--file-key", help="Figma file key")
    pull_p.add_argument("--node-id", required=True, help="Frame node id")
    pull_p.add_argument("--skin-id", required=True, help="Skin id")
    pull_p.add_argument("--output", help="Output directory")

    watch_p = sub.add_parser("watch", help="Recompute fingerprints when IR files change")
    watch_p.add_argument("dir", help="Directory with skin_<id>_figma_ir.json files")
    watch_p.add_argument("--output", help="Output directory (must differ from dir)")
    watch_p.add_argument("--debounce", type=float, default=1.0, help="Debounce seconds")

    dec_p = sub.add_parser("check-decisions", help="Validate and show matcher decision records")
    dec_p.add_argument("input", help="Decision JSON (object or list)")

    skins_p = sub.add_parser("skins", help="List skins in the data directory")
    skins_p.add_argument("--data-dir", help="Data directory (default: config data.dir)")

    prog_p = sub.add_parser("progress", help="Binding progress for one skin")
    prog_p.add_argument("skin_id", help="Skin id")
    prog_p.add_argument("--data-dir", help="Data directory (default: config data.dir)")
    prog_p.add_argument("--mappings", help="Exported skin_<id>_mappings.json")
    prog_p.add_argument("--training-out", help="Write training records (JSON lines)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="   %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    try:
        return handler(args, config)
    except SkinAlignError as e:
        print(f"❌ {e}")
        return 1
    except (OSError, ValueError) as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
