import re
from typing import Iterable, List, Optional, Sequence, Tuple

from scene_engine.models.material import MaterialCategory
from scene_engine.services.material_policy import (
    RESTRICTION_LINES,
    SOURCE_ONLY_RULE,
    policy_for,
)

SCENE_SYSTEM_PROMPT = """You are a professional product photographer AI for a paint-by-numbers brand.
You understand the physical properties of each material (size, weight, surface texture, material type) and use this knowledge to write photorealistic scene descriptions.

RULES:
- The scene may contain ONLY the materials listed by the user and shown in the reference images, plus the uploaded motif images. Never add props that are not in the list.
- Frames and presentation come only from the scene guidance and style format. Do not invent frame types.
- Material fidelity is non-negotiable: show the exact materials, never generic versions.
- Respect the provided dimensions. Small items look small, large items dominate.
- Surface textures must match: glossy plastic reflects light differently than matte wood.
- Do not put text or typography on products or banners unless the user asks for it.
- Always describe lighting that brings out the material properties.

MATERIAL RULES:
1. Paint pot labels: alphanumeric codes (usually 2 characters, e.g. "A4", "X3") on white lids, clearly legible.
2. Canvas orientation: always the FRONT side. Never the back side with printing.
3. Scale: keep exact relative sizes (a 2cm pot next to a 60cm canvas is 1:30).
4. Colors and surface finish (matte vs glossy) must match the references.
"""

FEEDBACK_ADDENDUM_SYSTEM_PROMPT = """You are a prompt engineer. Convert user feedback about a generated product photo into short, precise instructions in English for image-to-image refinement.

You receive the user feedback, the original scene context and the GROUND TRUTH material specifications.

RULES:
- Output only instructions that correspond to what the user wrote. Do not invent details.
- Output ONLY numbered instructions, one sentence each, no preamble.
- Use the material context to correct proportions and labels (paint pot labels are alphanumeric, usually 2 characters).
- If an EXTENSION IMAGE section is present, output exactly one instruction that the added element must match the attached extension image.
- If a MATERIALS TO INCLUDE section is present, output exactly one instruction that these materials must be visibly placed in the scene and match their reference images.
"""

ENRICHMENT_CLOSING = (
    "Generate a detailed, photorealistic scene description optimized for AI image "
    "generation. Include:\n"
    "1. Exact placement and arrangement of each element\n"
    "2. Lighting direction, color temperature and shadows\n"
    "3. Camera angle and depth of field\n"
    "4. Surface interactions (reflections, shadows, textures)\n"
    "5. Overall mood and atmosphere"
)

FORMAT_LABELS = {
    "vorlage": "unframed template with printed numbers",
    "gerahmt": "stretched on a wooden frame",
    "ausmalen": "artistically painted",
}

FRAME_OPTION_LABELS = {
    "OR": "template (unframed, rolled)",
    "R": "framed (stretched on a stretcher frame)",
    "DIYR": "DIY stretcher frame kit",
}

TAG_PROMPTS = {
    "tag-shop-banner-desktop": "Banner for a new product launch on a high-end e-commerce website (desktop version).",
    "tag-shop-banner-mobile": "Vertical banner for a new product launch on a high-end e-commerce website (mobile version).",
    "tag-social-post": "Eye-catching social media post optimized for engagement.",
    "tag-product-pres": "Professional product presentation for a catalog or lookbook.",
    "tag-person-painting": "A person is actively painting the canvas, creating a creative and focused atmosphere.",
    "tag-hands-focus": "Close-up on hands applying paint to the canvas.",
    "tag-no-person": "A clean scene without any people, focusing solely on the objects.",
    "tag-natural-daylight": "Bright, natural daylight coming from a large window.",
    "tag-warm-window": "Warm sunrays from a window during golden hour, creating soft shadows.",
    "tag-clean-studio": "Clean, professional studio lighting with minimal shadows.",
    "tag-cozy-evening": "Cozy, warm evening atmosphere with soft ambient indoor lighting.",
    "tag-close-up": "A detailed close-up shot focusing on textures and materials.",
    "tag-flat-lay": "An overhead flat-lay shot with all materials arranged on a flat surface.",
    "tag-lifestyle-room": "Wide shot showing the products within a stylish, modern living space or atelier.",
    "tag-partially-unpainted": (
        "The canvas is being painted: parts are filled with acrylic paint, other "
        "sections still show the grey outlines and printed numbers."
    ),
}

# "20x20 mm", "60 x 40 cm", "60×40 cm", "13 cm", "D20 cm"
_DIMENSION_RE = re.compile(r"(\d+\.?\d*)\s*([x×]\s*(\d+\.?\d*))?\s*(mm|cm)")


def parse_dimension_to_mm(text: Optional[str]) -> Optional[float]:
    """Largest value of a size string in millimetres, or None if it has no mm/cm size."""
    if not text:
        return None
    match = _DIMENSION_RE.search(text.lower().replace(",", "."))
    if not match:
        return None
    first = float(match.group(1))
    second = float(match.group(3)) if match.group(3) else first
    value = max(first, second)
    return value * 10 if match.group(4) == "cm" else value


def tag_texts(tags: Optional[Iterable[str]]) -> List[str]:
    texts = []
    for tag in tags or []:
        if tag in TAG_PROMPTS:
            texts.append(TAG_PROMPTS[tag])
        elif tag and not tag.startswith("tag-"):
            texts.append(tag)
    return texts


class PromptBuilder:

    @staticmethod
    def build_material_context(material) -> str:
        """Ground-truth attribute block for one material."""
        lines = [f'Material: "{material.name}" ({material.category})']
        for label, value in (
            ("Type", material.material_type),
            ("Dimensions", material.dimensions),
            ("Surface", material.surface),
            ("Weight", material.weight),
            ("Color", material.color),
            ("Description", material.description),
        ):
            if value:
                lines.append(f"- {label}: {value}")

        if material.category == MaterialCategory.canvas_motif.value:
            if material.format_code:
                lines.append(f"- Format: {material.format_code}")
            if material.size:
                lines.append(f"- Size: {material.size}")
            if material.frame_option:
                frame = FRAME_OPTION_LABELS.get(material.frame_option, material.frame_option)
                lines.append(f"- Frame option: {frame}")

        note = policy_for(material.category).fidelity_note
        if note:
            lines.append(f"- IMPORTANT: {note}")
        return "\n".join(lines)

    @staticmethod
    def build_scene_material_context(materials: Sequence) -> str:
        return "\n".join(
            f"{i}. {PromptBuilder.build_material_context(m)}"
            for i, m in enumerate(materials, start=1)
        )

    @staticmethod
    def build_restriction_prompt(categories: Iterable[str]) -> str:
        present = set(categories)
        lines = [line for category, line in RESTRICTION_LINES if category not in present]
        lines.append(SOURCE_ONLY_RULE)
        return "## Material visibility (strict):\n" + "\n".join(lines)

    @staticmethod
    def scale_extremes(materials: Sequence) -> Optional[Tuple[str, float, str, float]]:
        sized = []
        for m in materials:
            mm = parse_dimension_to_mm(m.dimensions or m.size or "")
            if mm is not None and mm > 0:
                sized.append((m.name, mm))
        if len(sized) < 2:
            return None
        # stable: first-seen wins among equal sizes
        sized.sort(key=lambda pair: pair[1])
        smallest, largest = sized[0], sized[-1]
        if smallest[1] == largest[1]:
            return None
        return smallest[0], smallest[1], largest[0], largest[1]

    @staticmethod
    def build_scale_context(materials: Sequence) -> str:
        extremes = PromptBuilder.scale_extremes(materials)
        if not extremes:
            return ""
        small_name, small_mm, large_name, large_mm = extremes
        ratio = large_mm / small_mm
        comparison = "a large furniture piece" if ratio > 10 else "a laptop"
        return (
            "PHYSICAL SCALE REFERENCE (CRITICAL):\n"
            f"- The smallest object is {small_name} (~{round(small_mm / 10)} cm).\n"
            f"- The largest object is {large_name} (~{round(large_mm / 10)} cm).\n"
            f"- PROPORTION: The {large_name} is approximately {round(ratio)}x larger than the {small_name}.\n"
            f"- VISUAL GUIDE: If a {small_name} is the size of a coin, the {large_name} "
            f"should be the size of {comparison} in comparison.\n"
        )

    @staticmethod
    def build_fidelity_notes(materials: Sequence, motif_count: int = 0) -> str:
        """One note per category present, in category order of first appearance."""
        notes = []
        seen = set()
        for m in materials:
            category = m.category
            if category in seen:
                continue
            seen.add(category)
            if category == MaterialCategory.canvas_motif.value and motif_count:
                notes.append(
                    "CANVAS: Use the material reference only for canvas format, frame and "
                    "texture. The motif on the canvas MUST come only from the uploaded "
                    "motif images (the last reference images)."
                )
                continue
            note = policy_for(category).fidelity_note
            if note and note not in notes:
                notes.append(f"{category.upper()}: {note}")
        return "\n\n".join(notes)

    @staticmethod
    def build_enrichment_request(
        materials: Sequence,
        scene_description: Optional[str],
        template_prompt: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        style_format: Optional[str] = None,
        extra_reference_count: int = 0,
        motif_count: int = 0,
    ) -> str:
        if materials:
            materials_section = (
                "## Materials in this scene (ONLY these may appear):\n"
                f"{PromptBuilder.build_scene_material_context(materials)}\n"
                "Only the materials listed above may appear in the scene."
            )
        else:
            materials_section = (
                "## Materials: No materials were selected. Focus only on the environment "
                "and any uploaded motifs."
            )

        selected_tags = tag_texts(tags)
        if template_prompt:
            names = ", ".join(m.name for m in materials) or "the scene"
            guidance = template_prompt.replace("{materials}", names)
        elif selected_tags:
            guidance = (
                "No template selected. Choose the most professional composition for the "
                "selected scene elements."
            )
        else:
            guidance = (
                "No template selected. Choose the most professional product photography "
                "composition for these materials."
            )

        parts = [
            materials_section,
            PromptBuilder.build_restriction_prompt(m.category for m in materials),
            f"## Scene Guidance: {guidance}",
        ]
        if selected_tags:
            parts.append("## Scene Elements & Context:\n" + "\n".join(f"- {t}" for t in selected_tags))
        if scene_description:
            parts.append(f"## User Custom Instructions: {scene_description}")
        if style_format:
            label = FORMAT_LABELS.get(style_format, style_format)
            parts.append(f"## Style Format: {style_format} ({label})")
        if extra_reference_count:
            parts.append(
                f"## Additional Reference Images: {extra_reference_count} extra reference "
                "image(s) show persons or objects to reproduce faithfully. They follow the "
                "blueprint and precede the motif images."
            )
        if motif_count:
            parts.append(
                f"## Canvas Motifs: {motif_count} motif image(s) were uploaded. ONLY these "
                "may appear as canvas artwork, with unchanged aspect ratio. They are the "
                f"LAST {motif_count} reference image(s)."
            )
        scale = PromptBuilder.build_scale_context(materials)
        if scale:
            parts.append(scale.strip())
        parts.append(ENRICHMENT_CLOSING)
        return "\n\n".join(parts)

    @staticmethod
    def build_image_prompt(
        enriched_prompt: str,
        materials: Sequence,
        motif_count: int = 0,
        aspect_ratio: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> str:
        """Final text sent with the reference images for a from-scratch render."""
        sections = [
            "STRICT SOURCE RULE: Only the materials shown in the reference images and the "
            "uploaded motif images may appear. Do not add any other object, prop or graphic.",
            PromptBuilder.build_restriction_prompt(m.category for m in materials),
            "Generate a photorealistic product photograph based on this description:\n\n"
            + enriched_prompt.strip(),
        ]

        notes = PromptBuilder.build_fidelity_notes(materials, motif_count)
        sections.append(
            "REFERENCE IMAGE HANDLING:\n"
            + (notes or "Use the reference images in order and reproduce each faithfully.")
        )

        if motif_count:
            sections.append(
                f"CANVAS MOTIF IMAGES: The LAST {motif_count} reference image(s) are the "
                "user's artwork. Show these exact images on the canvas: same subject, "
                "colors and composition, aspect ratio preserved, each exactly once."
            )

        selected_tags = tag_texts(tags)
        if selected_tags:
            sections.append("SCENE ELEMENTS:\n" + "\n".join(f"- {t}" for t in selected_tags))

        scale = PromptBuilder.build_scale_context(materials)
        if scale:
            sections.append(scale.strip())

        if aspect_ratio and aspect_ratio != "1:1":
            sections.append(
                f"IMPORTANT: The target aspect ratio is {aspect_ratio}. Compose for this format."
            )

        sections.append(
            "Do not add any text, writing, labels, numbers or letters onto the image unless "
            "explicitly requested in the description above."
        )
        return "\n\n".join(sections)

    @staticmethod
    def build_edit_prompt(
        correction: str,
        enriched_prompt: Optional[str],
        materials: Sequence,
        dimensions: Optional[Tuple[int, int]] = None,
        aspect_ratio: Optional[str] = None,
        has_extra_references: bool = False,
    ) -> str:
        """Image-to-image prompt: the first image is the render to fix."""
        sections = ["TASK: EDIT SOURCE IMAGE (RETOUCHING)"]
        if dimensions:
            w, h = dimensions
            sections.append(
                "CRITICAL: PRESERVE FORMAT AND DIMENSIONS. The output MUST keep exactly the "
                f"source image's aspect ratio and orientation: {w}x{h} ({aspect_ratio}). "
                "Do not rotate or crop."
            )
        inputs = (
            "You are an expert photo retoucher. The FIRST image is the source photo to edit; "
            "preserve its composition and lighting and apply only the corrections below. "
            "The following images are material references and uploaded motifs (last), for "
            "guidance only."
        )
        if has_extra_references:
            inputs += " Additional reference images (person/object) are described in the corrections."
        sections.append(inputs)
        sections.append("=== CORRECTIONS (HIGHEST PRIORITY) ===\n" + correction.strip())
        sections.append(
            "=== RULES ===\n"
            "- Do not generate a new image from scratch.\n"
            "- Do not change the camera angle, composition or aspect ratio.\n"
            "- Do not change the lighting unless requested.\n"
            "- Only materials and motifs from the reference images may appear.\n"
            "- Never add text or labels unless the corrections ask for it.\n"
            "- Respond with exactly one image."
        )
        context = PromptBuilder.build_scene_material_context(materials)
        sections.append(
            "=== MATERIAL SPECIFICATIONS ===\n" + (context or "No specific materials.")
        )
        sections.append(
            "=== ORIGINAL SCENE CONTEXT (BACKGROUND ONLY) ===\n"
            + ((enriched_prompt or "")[:1000] or "No context.")
        )
        return "\n\n".join(sections)

    @staticmethod
    def build_feedback_request(
        review_notes: str,
        enriched_prompt: Optional[str],
        materials: Sequence,
        has_extension_image: bool = False,
    ) -> str:
        """User half of the feedback-addendum enrichment call."""
        text = (
            f"USER FEEDBACK:\n{review_notes.strip()}\n\n"
            f"ORIGINAL SCENE CONTEXT:\n{(enriched_prompt or '')[:800]}\n\n"
            f"MATERIAL CONTEXT (GROUND TRUTH):\n{PromptBuilder.build_scene_material_context(materials)}"
        )
        if has_extension_image:
            text += (
                "\n\nEXTENSION IMAGE:\nThe user uploaded an image of a person or object to "
                "insert into the scene. The added element must match it exactly."
            )
        if materials:
            names = ", ".join(f"{m.name} ({m.category})" for m in materials)
            text += (
                f"\n\nMATERIALS TO INCLUDE:\n{names}. These must be visibly present and "
                "match their reference images."
            )
        return text

    @staticmethod
    def build_verification_prompt(materials: Sequence) -> str:
        blocks = []
        for m in materials:
            policy = policy_for(m.category)
            values = {
                "color": m.color or "as specified",
                "dimensions": m.dimensions or "the specified dimensions",
                "format_code": m.format_code or "as specified",
            }
            checks = "\n".join(f"  - Check: {c.format(**values)}" for c in policy.checklist)
            block = f"- **{m.name}** ({m.category}):\n{checks}"
            if m.dimensions:
                block += f"\n  - Expected dimensions: {m.dimensions}"
            blocks.append(block)

        return f"""You are a quality control inspector for an AI photo studio. Verify that the generated product photograph accurately reproduces the reference materials.

**REFERENCE MATERIALS TO VERIFY:**
{chr(10).join(blocks)}

**GENERAL CRITERIA:** proportions, material fidelity, color accuracy, orientation, composition.

**ANSWER IN THIS FORMAT:**

OVERALL SCORE: [number 0-100]

ISSUES FOUND:
ISSUE: [material_name] | [label/orientation/material/proportion/color/other] | [critical/major/minor] | [description]

CORRECTION SUGGESTIONS:
- [specific instruction for refinement]
"""
