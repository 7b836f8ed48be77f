"""
AlignmentStore / SelectionSession 測試
綁定、原位覆寫、解除綁定冪等、清空、匯出往返、訓練資料
"""
import json
from datetime import datetime

import pytest

from skin_align.alignment_store import (
    AlignmentStore,
    SelectionSession,
    export_filename,
    iter_training_records,
    load_export,
    parse_export,
    save_export,
)
from skin_align.errors import NotFoundError, PreconditionError, ValidationError
from skin_align.ir_builder import build_skin_ir
from skin_align.models import (
    FigmaNodeMeta,
    LocalComponentNode,
    SectionMappingLabel,
    TruthStrategy,
)


def make_ir(skin_id="36"):
    frame = FigmaNodeMeta.from_dict({
        "id": "root",
        "name": "Home",
        "type": "frame",
        "children": [
            {"id": "s1", "name": "Header", "type": "frame",
             "children": [{"id": "t1", "name": "Title", "type": "text"}]},
            {"id": "s2", "name": "Banner", "type": "rounded-rectangle"},
            {"id": "s3", "name": "Footer", "type": "group"},
        ],
    })
    return build_skin_ir(frame, skin_id)


def make_local():
    return LocalComponentNode.from_dict({
        "componentName": "Root",
        "componentId": 1,
        "children": [
            {"componentName": "HeaderBar", "componentId": 2, "slot": "top"},
            {"componentName": "Footer", "componentId": 3, "propsKeys": ["links"]},
        ],
    })


@pytest.fixture
def session():
    return SelectionSession()


@pytest.fixture
def store(session):
    s = AlignmentStore()
    s.activate(make_ir(), make_local(), session=session)
    return s


def bind(store, session, section_id, component, strategy=None):
    session.select_section(section_id)
    session.select_component(component)
    return store.bind(session, strategy)


# ─── Basic bind ──────────────────────────────────────────────────────────────

def test_basic_bind(store, session):
    bind(store, session, "s1", "HeaderBar", "reuse")
    assert [m.to_dict() for m in store.active.mappings] == [
        {"sectionId": "s1", "localComponentName": "HeaderBar", "truthStrategy": "reuse"}
    ]
    assert session.section_id is None
    assert session.component_name is None


def test_bind_without_strategy_is_undecided(store, session):
    label = bind(store, session, "s1", "HeaderBar")
    assert label.truth_strategy is None
    assert label.is_decided is False
    assert "truthStrategy" not in label.to_dict()


def test_bind_accepts_enum_strategy(store, session):
    label = bind(store, session, "s2", "HeaderBar", TruthStrategy.PATCH)
    assert label.truth_strategy is TruthStrategy.PATCH


def test_bind_sets_annotated_at(store, session):
    assert store.active.annotated_at is None
    bind(store, session, "s1", "HeaderBar")
    datetime.fromisoformat(store.active.annotated_at)


# ─── Overwrite / uniqueness ──────────────────────────────────────────────────

def test_rebind_overwrites_in_place(store, session):
    bind(store, session, "s1", "A")
    bind(store, session, "s2", "X")
    bind(store, session, "s1", "B")
    mappings = store.active.mappings
    assert [m.section_id for m in mappings] == ["s1", "s2"]
    assert mappings[0].local_component_name == "B"


def test_repeated_binds_keep_one_entry_per_section(store, session):
    for component, strategy in [("A", "reuse"), ("B", None), ("C", "new"), ("D", "patch")]:
        bind(store, session, "s3", component, strategy)
    bind(store, session, "s1", "HeaderBar", "reuse")
    bind(store, session, "s3", "E", "new")
    mappings = store.active.mappings
    assert len(mappings) == 2
    assert [m.section_id for m in mappings] == ["s3", "s1"]
    assert mappings[0].local_component_name == "E"
    assert mappings[0].truth_strategy is TruthStrategy.NEW


def test_rebind_without_strategy_drops_previous_strategy(store, session):
    bind(store, session, "s1", "HeaderBar", "reuse")
    bind(store, session, "s1", "HeaderBar")
    assert store.label_for("s1").truth_strategy is None


# ─── Preconditions ───────────────────────────────────────────────────────────

def test_bind_requires_both_selections(store, session):
    session.select_section("s1")
    with pytest.raises(PreconditionError):
        store.bind(session, "reuse")
    assert store.active.mappings == []
    assert session.section_id == "s1"


def test_bind_requires_active_sample():
    s = SelectionSession()
    s.select_section("s1")
    s.select_component("A")
    with pytest.raises(PreconditionError):
        AlignmentStore().bind(s)


def test_bind_unknown_section(store, session):
    with pytest.raises(NotFoundError):
        bind(store, session, "nope", "A")
    assert store.active.mappings == []


def test_bind_invalid_strategy_leaves_state(store, session):
    with pytest.raises(ValidationError):
        bind(store, session, "s1", "A", "maybe")
    assert store.active.mappings == []
    assert session.section_id == "s1"


def test_bind_with_selection_from_other_skin(store):
    stale = SelectionSession(skin_id="31")
    stale.select_section("s1")
    stale.select_component("A")
    with pytest.raises(PreconditionError):
        store.bind(stale)


def test_selection_overwrites(session):
    session.select_section("s1")
    session.select_section("s2")
    session.select_component("A")
    session.clear_component()
    assert session.section_id == "s2"
    assert session.component_name is None
    assert session.ready is False


def test_activate_resets_session(store, session):
    session.select_section("s1")
    session.select_component("A")
    store.activate(make_ir("37"), make_local(), session=session)
    assert session.skin_id == "37"
    assert session.section_id is None
    assert store.active.mappings == []


# ─── Unbind / clear ──────────────────────────────────────────────────────────

def test_unbind_is_idempotent(store, session):
    bind(store, session, "s1", "A")
    bind(store, session, "s2", "B")
    assert store.unbind("s1") is True
    after_first = [m.to_dict() for m in store.active.mappings]
    assert store.unbind("s1") is False
    assert [m.to_dict() for m in store.active.mappings] == after_first == [
        {"sectionId": "s2", "localComponentName": "B"}
    ]


def test_unbind_absent_is_noop(store):
    assert store.unbind("s3") is False


def test_clear_all(store, session):
    bind(store, session, "s1", "A")
    bind(store, session, "s2", "B")
    store.clear_all()
    assert store.active.mappings == []
    assert store.progress() == (0, 3)


# ─── Export ──────────────────────────────────────────────────────────────────

def test_export_round_trip(store, session):
    bind(store, session, "s2", "HeaderBar", "patch")
    bind(store, session, "s1", "Footer")
    before = list(store.active.mappings)
    payload = store.export()
    assert set(payload) == {"skinId", "mappings", "exportedAt"}
    skin_id, labels, exported_at = parse_export(json.loads(json.dumps(payload)))
    assert skin_id == "36"
    assert labels == before
    datetime.fromisoformat(exported_at)


def test_export_does_not_mutate(store, session):
    bind(store, session, "s1", "A")
    store.export()
    assert len(store.active.mappings) == 1


def test_save_and_load_export(store, session, tmp_path):
    bind(store, session, "s1", "HeaderBar", "reuse")
    path = save_export(store.export(), str(tmp_path))
    assert path.endswith(export_filename("36"))
    assert path.endswith("skin_36_mappings.json")
    _, labels, _ = load_export(path)
    assert labels == store.active.mappings


def test_parse_export_rejects_duplicate_sections():
    raw = {"skinId": "36", "mappings": [
        {"sectionId": "s1", "localComponentName": "A"},
        {"sectionId": "s1", "localComponentName": "B"},
    ]}
    with pytest.raises(ValidationError):
        parse_export(raw)


def test_load_mappings_replaces_whole_list(store, session):
    bind(store, session, "s1", "A")
    store.load_mappings([SectionMappingLabel("s3", "Footer", truth_strategy=TruthStrategy.NEW)])
    assert [m.section_id for m in store.active.mappings] == ["s3"]


def test_load_mappings_unknown_section_keeps_state(store, session):
    bind(store, session, "s1", "A")
    with pytest.raises(NotFoundError):
        store.load_mappings([SectionMappingLabel("zz", "A")])
    assert [m.section_id for m in store.active.mappings] == ["s1"]


# ─── Queries ─────────────────────────────────────────────────────────────────

def test_progress_and_mapped_ids(store, session):
    bind(store, session, "s1", "HeaderBar")
    assert store.progress() == (1, 3)
    assert store.mapped_section_ids() == {"s1"}


def test_unresolved_mappings(store, session):
    bind(store, session, "s1", "HeaderBar")
    bind(store, session, "s2", "/Root/Footer")
    bind(store, session, "s3", "Ghost")
    assert [m.section_id for m in store.unresolved_mappings()] == ["s3"]


def test_section_display_name(store):
    assert store.section_display_name("s2") == "Banner"
    assert store.section_display_name("t1") == "Title"
    assert store.section_display_name("missing") is None


def test_training_records(store, session):
    bind(store, session, "s1", "HeaderBar", "reuse")
    bind(store, session, "s2", "HeaderBar")
    records = list(iter_training_records(store.active))
    assert [r["sectionId"] for r in records] == ["s1", "s2"]
    assert records[0]["truthStrategy"] == "reuse"
    assert records[0]["decided"] is True
    assert records[1]["truthStrategy"] is None
    assert records[1]["decided"] is False
    assert records[0]["counts"] == {"frame": 1, "text": 1}
    assert records[0]["summary"].startswith("section 'Header'")
