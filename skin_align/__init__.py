"""
skin-align — Figma section ↔ 本地組件對齊資料

section 結構指紋、skin IR、人工綁定樣本與 matcher 決策紀錄格式。
"""

__version__ = "0.1.0"

from .errors import SkinAlignError, ValidationError, PreconditionError, NotFoundError
from .models import (
    NodeType,
    TruthStrategy,
    FigmaNodeMeta,
    LocalComponentNode,
    SectionFingerprint,
    SectionIR,
    SkinFigmaIR,
    SectionMappingLabel,
    SkinAlignmentSample,
    count_nodes,
    count_section_nodes,
    find_node,
    find_node_name,
    find_component,
    section_id_for,
)
from .keyword_engine import KeywordConfig, KeywordEngine, preview_section_tree
from .fingerprint import compute_fingerprint, FingerprintDiffer
from .ir_builder import SkinIRBuilder, build_skin_ir, skin_ir_from_dict, load_skin_ir, save_ir
from .alignment_store import (
    SelectionSession,
    AlignmentStore,
    save_export,
    parse_export,
    load_export,
    iter_training_records,
)
from .decision import (
    CandidateScore,
    DecisionEvidence,
    PatchHint,
    SectionDecision,
    parse_decision,
    parse_decisions,
    load_decisions,
    format_decision,
)
from .catalog import SkinCatalog, SkinInfo
from .figma_reader import FigmaAPIClient, FigmaToNodeMeta, fetch_frame
from .config import config_section, load_config, validate_config

__all__ = [
    "__version__",
    "SkinAlignError",
    "ValidationError",
    "PreconditionError",
    "NotFoundError",
    "NodeType",
    "TruthStrategy",
    "FigmaNodeMeta",
    "LocalComponentNode",
    "SectionFingerprint",
    "SectionIR",
    "SkinFigmaIR",
    "SectionMappingLabel",
    "SkinAlignmentSample",
    "count_nodes",
    "count_section_nodes",
    "find_node",
    "find_node_name",
    "find_component",
    "section_id_for",
    "KeywordConfig",
    "KeywordEngine",
    "preview_section_tree",
    "compute_fingerprint",
    "FingerprintDiffer",
    "SkinIRBuilder",
    "build_skin_ir",
    "skin_ir_from_dict",
    "load_skin_ir",
    "save_ir",
    "SelectionSession",
    "AlignmentStore",
    "save_export",
    "parse_export",
    "load_export",
    "iter_training_records",
    "CandidateScore",
    "DecisionEvidence",
    "PatchHint",
    "SectionDecision",
    "parse_decision",
    "parse_decisions",
    "load_decisions",
    "format_decision",
    "SkinCatalog",
    "SkinInfo",
    "FigmaAPIClient",
    "FigmaToNodeMeta",
    "fetch_frame",
    "config_section",
    "load_config",
    "validate_config",
]
