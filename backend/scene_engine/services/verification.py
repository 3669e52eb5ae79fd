import logging
import re
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from scene_engine import models
from scene_engine.services.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

PASS_SCORE = 80
DEFAULT_SCORE = 75

ISSUE_KINDS = ("label", "orientation", "material", "proportion", "color", "other")
SEVERITIES = ("critical", "major", "minor")

_SCORE_RE = re.compile(r"OVERALL SCORE:\s*(\d+)", re.IGNORECASE)
_ISSUE_RE = re.compile(
    r"^\s*ISSUE:\s*(.+?)\s*\|\s*(label|orientation|material|proportion|color|other)\s*\|"
    r"\s*(critical|major|minor)\s*\|\s*(.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_SUGGESTIONS_RE = re.compile(
    r"CORRECTION SUGGESTIONS:(.*?)(?=\n\s*\n|\Z)", re.IGNORECASE | re.DOTALL
)
_BULLET_RE = re.compile(r"^(?:[-*•]|\d+[.)])\s*")


@dataclass
class VerificationIssue:
    issue_type: str
    severity: str
    description: str
    material_name: Optional[str] = None
    material_id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class VerificationResult:
    passed: bool
    score: int
    issues: List[VerificationIssue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def critical_issues(self) -> List[VerificationIssue]:
        return [i for i in self.issues if i.severity == "critical"]

    def issues_as_dicts(self) -> List[dict]:
        return [i.to_dict() for i in self.issues]


def neutral_result() -> VerificationResult:
    """Returned when the analysis capability fails; verification never blocks a run."""
    return VerificationResult(
        passed=True,
        score=DEFAULT_SCORE,
        issues=[
            VerificationIssue(
                issue_type="other",
                severity="minor",
                description="Verification service temporarily unavailable",
            )
        ],
        suggestions=[],
    )


def _match_material(name: str, materials: Sequence) -> Optional[int]:
    needle = name.lower()
    for m in materials:
        known = (m.name or "").lower()
        if known and (known in needle or needle in known):
            return m.id
    return None


def parse_report(text: str, materials: Sequence = ()) -> VerificationResult:
    """
    Best-effort parse of the analysis report. A missing score means 75,
    unparseable issue lines are ignored.
    """
    text = text or ""

    score_match = _SCORE_RE.search(text)
    score = int(score_match.group(1)) if score_match else DEFAULT_SCORE
    score = max(0, min(100, score))

    issues = []
    for match in _ISSUE_RE.finditer(text):
        material_name = match.group(1).strip().strip("[]")
        issues.append(
            VerificationIssue(
                issue_type=match.group(2).lower(),
                severity=match.group(3).lower(),
                description=match.group(4).strip(),
                material_name=material_name,
                material_id=_match_material(material_name, materials),
            )
        )

    suggestions = []
    section = _SUGGESTIONS_RE.search(text)
    if section:
        for line in section.group(1).splitlines():
            line = _BULLET_RE.sub("", line.strip()).strip()
            if len(line) > 10:
                suggestions.append(line)

    passed = score >= PASS_SCORE and not any(i.severity == "critical" for i in issues)

    logger.info(
        "Parsed verification: score=%d, issues=%d, suggestions=%d, passed=%s",
        score, len(issues), len(suggestions), passed,
    )
    return VerificationResult(passed=passed, score=score, issues=issues, suggestions=suggestions)


class ConsistencyVerifier:

    def __init__(self, provider):
        self.provider = provider

    def verify(self, image, materials: Sequence, scene_description: Optional[str]) -> VerificationResult:
        """Check a rendered image against the materials' ground truth."""
        logger.info("Starting material consistency check for %d materials", len(materials))
        try:
            prompt = PromptBuilder.build_verification_prompt(materials)
            report = self.provider.analyze_consistency(image, prompt, scene_description)
        except Exception as e:
            logger.error("Material consistency check failed, using neutral result: %s", e)
            return neutral_result()
        return parse_report(report, materials)


def record_verification(
    db: Session,
    scene,
    result: VerificationResult,
    verification_type: str = "image",
) -> models.VerificationLog:
    """Store the result on the scene and append a log row."""
    scene.verification_score = result.score
    scene.verification_issues = result.issues_as_dicts()

    log = models.VerificationLog(
        scene_id=scene.id,
        verification_type=verification_type,
        score=result.score,
        passed=result.passed,
        issues=result.issues_as_dicts(),
    )
    db.add(log)
    db.commit()
    return log
