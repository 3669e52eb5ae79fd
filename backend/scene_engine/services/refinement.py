from scene_engine.models.scene import MAX_VERIFICATION_ATTEMPTS
from scene_engine.services.verification import VerificationResult

RETRY_SCORE_THRESHOLD = 70

APPLY_ONLY_DIRECTIVE = (
    "**IMPORTANT**: Apply ONLY the corrections listed above. Preserve all other aspects "
    "of the image (composition, lighting, camera angle, background)."
)


def should_retry(result: VerificationResult, attempts: int) -> bool:
    """Retry only a failed result that is bad enough, and never past the attempt cap."""
    if result.passed or attempts >= MAX_VERIFICATION_ATTEMPTS:
        return False
    return result.score < RETRY_SCORE_THRESHOLD or bool(result.critical_issues)


def _issue_lines(issues) -> str:
    return "".join(
        f"{i}. {issue.material_name or 'Material'} - {issue.issue_type.upper()}: {issue.description}\n"
        for i, issue in enumerate(issues, start=1)
    )


def build_correction(result: VerificationResult) -> str:
    """Corrective instruction: critical issues, major issues, suggestions, then the directive."""
    text = "REFINEMENT REQUIRED - MATERIAL CONSISTENCY ISSUES DETECTED:\n\n"

    critical = [i for i in result.issues if i.severity == "critical"]
    major = [i for i in result.issues if i.severity == "major"]

    if critical:
        text += "**CRITICAL ISSUES (MUST FIX):**\n" + _issue_lines(critical) + "\n"
    if major:
        text += "**MAJOR ISSUES (SHOULD FIX):**\n" + _issue_lines(major) + "\n"
    if result.suggestions:
        text += "**CORRECTION INSTRUCTIONS:**\n"
        text += "".join(f"{i}. {s}\n" for i, s in enumerate(result.suggestions, start=1))
        text += "\n"

    return text + APPLY_ONLY_DIRECTIVE
