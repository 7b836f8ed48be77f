"""
compute_fingerprint 單元測試
深度 / 節點數 / 類型計數 / 規則旗標 / 關鍵字 / 摘要 / 驗證錯誤
"""
import json

import pytest

from skin_align.errors import ValidationError
from skin_align.fingerprint import FingerprintDiffer, compute_fingerprint
from skin_align.keyword_engine import KeywordConfig, KeywordEngine
from skin_align.models import FigmaNodeMeta, NodeType


def node(name, type_, children=None, id=None, bbox=None):
    return FigmaNodeMeta(name=name, type=NodeType(type_), id=id, children=children, bbox=bbox)


def chain(length: int) -> FigmaNodeMeta:
    """線性鏈：length 個 frame 節點，一個接一個。"""
    root = node("n0", "frame")
    cur = root
    for i in range(1, length):
        nxt = node(f"n{i}", "frame")
        cur.children = [nxt]
        cur = nxt
    return root


def three_level_tree() -> FigmaNodeMeta:
    return node("Home", "frame", [
        node("Card", "frame", [
            node("Title", "text"),
            node("Cover", "rectangle"),
        ]),
        node("Wrapper", "group", [
            node("Cta", "frame", [node("Go", "text")]),
        ]),
        node("Avatar", "instance"),
    ])


# ─── Depth ───────────────────────────────────────────────────────────────────

def test_lone_node_depth_zero():
    fp = compute_fingerprint(node("Solo", "rectangle"))
    assert fp.depth == 0
    assert fp.node_count == 1
    assert fp.child_count == 0


def test_linear_chain_of_five_has_depth_four():
    fp = compute_fingerprint(chain(5))
    assert fp.depth == 4
    assert fp.node_count == 5


def test_depth_uses_longest_branch():
    fp = compute_fingerprint(three_level_tree())
    # Home → Wrapper → Cta → Go
    assert fp.depth == 3


def test_very_deep_tree_does_not_recurse():
    fp = compute_fingerprint(chain(5000))
    assert fp.depth == 4999
    assert fp.node_count == 5000


# ─── Node count ──────────────────────────────────────────────────────────────

def test_node_count_is_one_plus_children():
    tree = three_level_tree()
    fp = compute_fingerprint(tree)
    assert fp.node_count == 8
    child_total = sum(compute_fingerprint(c).node_count for c in tree.children)
    assert fp.node_count == 1 + child_total


def test_child_count_only_immediate_children():
    fp = compute_fingerprint(three_level_tree())
    assert fp.child_count == 3


# ─── Counts / flags ──────────────────────────────────────────────────────────

def test_counts_are_partial_map():
    fp = compute_fingerprint(three_level_tree())
    assert fp.counts == {
        NodeType.FRAME: 3,
        NodeType.TEXT: 2,
        NodeType.RECTANGLE: 1,
        NodeType.GROUP: 1,
        NodeType.INSTANCE: 1,
    }
    assert NodeType.ELLIPSE not in fp.counts
    assert "ellipse" not in fp.to_dict()["counts"]


def test_button_like_section():
    section = node("Button", "frame", [
        node("Label", "text"),
        node("Bg", "rounded-rectangle"),
    ])
    fp = compute_fingerprint(section)
    assert fp.has_button_like is True
    assert fp.button_like_count == 1
    assert fp.has_text is True
    assert fp.text_count == 1
    assert fp.child_count == 2
    assert fp.node_count == 3
    assert fp.depth == 1
    assert fp.has_images_like is True
    assert fp.image_like_count == 1
    assert fp.has_instance is False


def test_button_like_counts_each_frame_once():
    # 一個 frame 底下兩個 text → 只算一次
    fp = compute_fingerprint(node("Row", "frame", [node("A", "text"), node("B", "text")]))
    assert fp.button_like_count == 1


def test_button_like_uses_any_descendant():
    # Outer、Inner 都有 text 後代 → 兩個
    tree = node("Outer", "frame", [
        node("Inner", "frame", [node("Deep", "group", [node("Label", "text")])]),
    ])
    fp = compute_fingerprint(tree)
    assert fp.button_like_count == 2


def test_group_with_text_is_not_button_like():
    fp = compute_fingerprint(node("G", "group", [node("T", "text")]))
    assert fp.has_button_like is False
    assert fp.button_like_count == 0


def test_frame_without_text_is_not_button_like():
    fp = compute_fingerprint(node("F", "frame", [node("R", "rectangle")]))
    assert fp.button_like_count == 0


def test_image_like_counts_both_rectangle_kinds():
    fp = compute_fingerprint(node("Gallery", "frame", [
        node("A", "rectangle"), node("B", "rounded-rectangle"), node("C", "ellipse"),
    ]))
    assert fp.image_like_count == 2


def test_flags_in_dict_form():
    d = compute_fingerprint(node("Avatar", "instance")).to_dict()
    assert d["hasInstance"] is True
    assert d["instanceCount"] == 1
    assert d["hasText"] is False
    assert d["textCount"] == 0
    assert d["hasImagesLike"] is False
    assert d["hasButtonLike"] is False


def test_bbox_passthrough():
    fp = compute_fingerprint(node("Header", "frame", bbox=(0, 0, 375, 88)))
    assert fp.bbox == (0, 0, 375, 88)
    assert fp.to_dict()["bbox"] == [0, 0, 375, 88]


def test_bbox_absent_is_omitted():
    assert "bbox" not in compute_fingerprint(node("X", "frame")).to_dict()


# ─── Keywords / summary ──────────────────────────────────────────────────────

def test_keywords_in_first_seen_order():
    tree = node("HeaderBar", "frame", [
        node("Frame 12", "frame"),
        node("btn_primary", "instance"),
        node("Title", "text"),
        node("header-bar", "frame"),
    ])
    fp = compute_fingerprint(tree)
    assert fp.keywords == ("header", "bar", "btn", "primary", "title")


def test_keywords_capped():
    children = [node(f"item{chr(97 + i)}word{chr(97 + i)}x", "frame") for i in range(26)]
    engine = KeywordEngine(KeywordConfig(max_keywords=5))
    fp = compute_fingerprint(node("List", "frame", children), engine)
    assert len(fp.keywords) == 5
    assert fp.keywords[0] == "list"


def test_default_keyword_ceiling_is_twenty():
    children = [node(f"Alpha{chr(65 + i)}beta", "frame") for i in range(26)]
    fp = compute_fingerprint(node("Root", "frame", children))
    assert len(fp.keywords) <= 20


def test_summary_template():
    section = node("Button", "frame", [
        node("Label", "text"),
        node("Bg", "rounded-rectangle"),
    ])
    fp = compute_fingerprint(section)
    assert fp.summary == (
        "section 'Button' (frame): 2 children, 3 nodes, depth 1; "
        "1 text, 1 image-like, 1 button-like. Keywords: button, label, bg."
    )


def test_summary_without_features():
    fp = compute_fingerprint(node("Frame 3", "vector"))
    assert fp.summary == (
        "section 'Frame 3' (vector): 0 children, 1 node, depth 0; "
        "no text, instance, image-like or button-like nodes."
    )


# ─── Determinism ─────────────────────────────────────────────────────────────

def test_fingerprint_is_deterministic():
    a = json.dumps(compute_fingerprint(three_level_tree()).to_dict())
    b = json.dumps(compute_fingerprint(three_level_tree()).to_dict())
    assert a == b


def test_equal_subtrees_give_equal_fingerprints():
    assert compute_fingerprint(three_level_tree()) == compute_fingerprint(three_level_tree())


# ─── Validation ──────────────────────────────────────────────────────────────

def test_negative_bbox_rejected():
    bad = FigmaNodeMeta(name="Bad", type=NodeType.FRAME, bbox=(0, 0, -1, 10))
    with pytest.raises(ValidationError) as exc:
        compute_fingerprint(node("Section", "frame", [bad]))
    assert exc.value.field == "bbox"


def test_missing_type_rejected():
    bad = FigmaNodeMeta(name="NoType", type=None)
    with pytest.raises(ValidationError) as exc:
        compute_fingerprint(bad)
    assert exc.value.field == "type"


def test_from_dict_missing_type():
    with pytest.raises(ValidationError) as exc:
        FigmaNodeMeta.from_dict({"name": "X"})
    assert exc.value.field == "type"


def test_from_dict_negative_bbox():
    with pytest.raises(ValidationError) as exc:
        FigmaNodeMeta.from_dict({"name": "X", "type": "frame", "bbox": [0, 0, 10, -2]})
    assert exc.value.field == "bbox"


def test_unknown_type_maps_to_unknown():
    n = FigmaNodeMeta.from_dict({"name": "Slice", "type": "slice"})
    assert n.type is NodeType.UNKNOWN
    assert compute_fingerprint(n).counts == {NodeType.UNKNOWN: 1}


# ─── FingerprintDiffer ───────────────────────────────────────────────────────

def test_diff_fingerprints_reports_changed_fields():
    before = compute_fingerprint(node("Card", "frame", [node("T", "text")]))
    after = compute_fingerprint(node("Card", "frame", [node("T", "text"), node("I", "instance")]))
    changes = FingerprintDiffer().diff_fingerprints(before, after)
    assert changes["nodeCount"] == {"before": 2, "after": 3}
    assert "instanceCount" in changes
    assert "depth" not in changes


def test_diff_fingerprints_identical_is_none():
    fp = compute_fingerprint(three_level_tree())
    assert FingerprintDiffer().diff_fingerprints(fp, fp) is None
