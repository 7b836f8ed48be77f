"""Decision record interchange for an external section → component matcher.

This package never computes decisions. It only parses, validates and renders
what a matcher sends back, so both sides agree on one shape.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from .errors import ValidationError
from .models import TruthStrategy

logger = logging.getLogger(__name__)


@dataclass
class CandidateScore:
    component_name: str
    score: float
    variant_key: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"componentName": self.component_name, "score": self.score}
        if self.variant_key is not None:
            out["variantKey"] = self.variant_key
        return out


@dataclass
class DecisionEvidence:
    matched_skins: list = field(default_factory=list)
    matched_section_ids: list = field(default_factory=list)
    reasons: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "matchedSkins": list(self.matched_skins),
            "matchedSectionIds": list(self.matched_section_ids),
            "reasons": list(self.reasons),
        }


@dataclass
class PatchHint:
    missing_capabilities: list = field(default_factory=list)
    likely_variant_change: Optional[bool] = None

    def to_dict(self) -> dict:
        out = {"missingCapabilities": list(self.missing_capabilities)}
        if self.likely_variant_change is not None:
            out["likelyVariantChange"] = self.likely_variant_change
        return out


@dataclass
class SectionDecision:
    section_id: str
    candidates: list
    decision: TruthStrategy
    confidence: float
    evidence: DecisionEvidence
    patch_hint: Optional[PatchHint] = None

    @property
    def top_candidate(self) -> Optional[CandidateScore]:
        return self.candidates[0] if self.candidates else None

    def candidates_sorted(self) -> bool:
        """分數是否非遞增（同分允許，保留先出現順序）。"""
        scores = [c.score for c in self.candidates]
        return all(a >= b for a, b in zip(scores, scores[1:]))

    def to_dict(self) -> dict:
        out = {
            "sectionId": self.section_id,
            "candidates": [c.to_dict() for c in self.candidates],
            "decision": self.decision.value,
            "confidence": self.confidence,
            "evidence": self.evidence.to_dict(),
        }
        if self.patch_hint is not None:
            out["patchHint"] = self.patch_hint.to_dict()
        return out


def _number(value, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field_name, f"應為數字，目前是 {value!r}")
    return float(value)


def _str_list(value, field_name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(field_name, "應為陣列")
    return [str(v) for v in value]


def parse_decision(raw: dict) -> SectionDecision:
    """Validate and parse one decision record.

    Rejects: unknown decision, confidence outside [0, 1], malformed candidates.
    Candidates not sorted by descending score are accepted with a warning;
    they are kept in the order the matcher sent.
    """
    if not isinstance(raw, dict):
        raise ValidationError("decision", "應為 JSON 物件")
    section_id = raw.get("sectionId")
    if not section_id:
        raise ValidationError("sectionId", "缺少必要欄位")

    decision = TruthStrategy.parse(raw.get("decision"), field_name="decision")
    if decision is None:
        raise ValidationError("decision", "缺少必要欄位")

    confidence = _number(raw.get("confidence"), "confidence")
    if not 0.0 <= confidence <= 1.0:
        raise ValidationError("confidence", f"應介於 0 與 1 之間，目前是 {confidence}")

    raw_candidates = raw.get("candidates", [])
    if not isinstance(raw_candidates, list):
        raise ValidationError("candidates", "應為陣列")
    candidates = []
    for i, c in enumerate(raw_candidates):
        if not isinstance(c, dict) or not c.get("componentName"):
            raise ValidationError(f"candidates[{i}].componentName", "缺少必要欄位")
        candidates.append(CandidateScore(
            component_name=str(c["componentName"]),
            score=_number(c.get("score"), f"candidates[{i}].score"),
            variant_key=c.get("variantKey"),
        ))

    raw_evidence = raw.get("evidence") or {}
    if not isinstance(raw_evidence, dict):
        raise ValidationError("evidence", "應為 JSON 物件")
    evidence = DecisionEvidence(
        matched_skins=_str_list(raw_evidence.get("matchedSkins"), "evidence.matchedSkins"),
        matched_section_ids=_str_list(raw_evidence.get("matchedSectionIds"), "evidence.matchedSectionIds"),
        reasons=_str_list(raw_evidence.get("reasons"), "evidence.reasons"),
    )

    patch_hint = None
    raw_hint = raw.get("patchHint")
    if raw_hint is not None:
        if not isinstance(raw_hint, dict):
            raise ValidationError("patchHint", "應為 JSON 物件")
        likely = raw_hint.get("likelyVariantChange")
        if likely is not None and not isinstance(likely, bool):
            raise ValidationError("patchHint.likelyVariantChange", "應為布林值")
        patch_hint = PatchHint(
            missing_capabilities=_str_list(
                raw_hint.get("missingCapabilities"), "patchHint.missingCapabilities"
            ),
            likely_variant_change=likely,
        )

    result = SectionDecision(
        section_id=str(section_id),
        candidates=candidates,
        decision=decision,
        confidence=confidence,
        evidence=evidence,
        patch_hint=patch_hint,
    )
    if not result.candidates_sorted():
        logger.warning(
            "decision for section '%s': candidates not sorted by descending score, kept as received",
            result.section_id,
        )
    return result


def parse_decisions(raw) -> list:
    """接受單筆物件或陣列."""
    if isinstance(raw, dict):
        return [parse_decision(raw)]
    if not isinstance(raw, list):
        raise ValidationError("decisions", "應為 JSON 物件或陣列")
    return [parse_decision(r) for r in raw]


def load_decisions(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        return parse_decisions(json.load(f))


def format_decision(decision: SectionDecision, max_candidates: int = 3) -> str:
    """顯示用：多行文字."""
    lines = [
        f"{decision.section_id}  →  {decision.decision.value}  "
        f"(confidence {decision.confidence:.2f})"
    ]
    for c in decision.candidates[:max_candidates]:
        variant = f" [{c.variant_key}]" if c.variant_key else ""
        lines.append(f"   • {c.component_name}{variant}  {c.score:.3f}")
    hidden = len(decision.candidates) - max_candidates
    if hidden > 0:
        lines.append(f"   … {hidden} more")
    for reason in decision.evidence.reasons:
        lines.append(f"   - {reason}")
    if decision.evidence.matched_skins:
        lines.append(f"   skins: {', '.join(decision.evidence.matched_skins)}")
    if decision.patch_hint is not None:
        hint = decision.patch_hint
        if hint.missing_capabilities:
            lines.append(f"   missing: {', '.join(hint.missing_capabilities)}")
        if hint.likely_variant_change:
            lines.append("   likely variant change")
    return "\n".join(lines)
