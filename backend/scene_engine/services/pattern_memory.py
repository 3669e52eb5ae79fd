import logging
from typing import Iterable, List

from sqlalchemy.orm import Session

from scene_engine import models

logger = logging.getLogger(__name__)

MIN_PATTERN_SCORE = 90
SNIPPET_LENGTH = 500


def save_successful_pattern(db: Session, category: str, enriched_prompt: str, score: int) -> None:
    """Remember the prompt of a high-scoring render for its material category."""
    if score < MIN_PATTERN_SCORE or not enriched_prompt:
        return

    snippet = enriched_prompt[:SNIPPET_LENGTH]
    existing = (
        db.query(models.SuccessfulPattern)
        .filter_by(material_category=category, prompt_snippet=snippet)
        .first()
    )
    if existing:
        existing.usage_count += 1
        logger.info("Pattern %s reused (usage %d)", existing.id, existing.usage_count)
    else:
        db.add(
            models.SuccessfulPattern(
                material_category=category,
                prompt_snippet=snippet,
                verification_score=score,
                usage_count=1,
            )
        )
        logger.info("Saved successful pattern for category %s (score %d)", category, score)
    db.commit()


def save_patterns_for_categories(db: Session, categories: Iterable[str], enriched_prompt: str, score: int) -> None:
    for category in sorted(set(categories)):
        save_successful_pattern(db, category, enriched_prompt, score)


def best_patterns(db: Session, category: str, limit: int = 1) -> List[models.SuccessfulPattern]:
    return (
        db.query(models.SuccessfulPattern)
        .filter_by(material_category=category)
        .order_by(
            models.SuccessfulPattern.verification_score.desc(),
            models.SuccessfulPattern.usage_count.desc(),
        )
        .limit(limit)
        .all()
    )


def inject_patterns(db: Session, categories: Iterable[str], prompt: str) -> str:
    """Append the best stored pattern of each category to an enriched prompt."""
    patterns = []
    seen = set()
    for category in categories:
        if category in seen:
            continue
        seen.add(category)
        patterns.extend(best_patterns(db, category))

    if not patterns:
        return prompt

    lines = [
        "",
        "",
        "**LEARNED SUCCESSFUL PATTERNS:**",
        "These approaches scored highly in earlier renders:",
        "",
    ]
    for i, p in enumerate(patterns, start=1):
        lines.append(
            f"{i}. [{p.material_category}] (Score: {p.verification_score}/100, Used: {p.usage_count}x):"
        )
        lines.append(f"   {p.prompt_snippet[:200]}...")
    lines.append("")
    lines.append("Apply similar strategies and phrasing where applicable.")

    logger.info("Injected %d successful patterns into prompt", len(patterns))
    return prompt + "\n".join(lines)
