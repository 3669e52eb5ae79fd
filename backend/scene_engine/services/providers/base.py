from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"
    cost_estimate: Optional[float] = None


class BaseImageProvider(ABC):

    name = "base"

    @abstractmethod
    def enrich(self, system_instruction: str, user_instruction: str) -> str:
        """
        Returns: expanded text, possibly empty
        """
        pass

    @abstractmethod
    def generate_image(
        self,
        prompt: str,
        reference_images: Sequence,
        aspect_ratio: str,
        image_size: str = "2K",
        source_image=None,
        motif_count: int = 0,
    ) -> GeneratedImage:
        """
        reference_images / source_image: objects with `data` and `mime_type`.
        When source_image is given the call edits it instead of generating from scratch.
        """
        pass

    @abstractmethod
    def analyze_consistency(self, image, material_ground_truth: str, scene_description: Optional[str]) -> str:
        """
        Returns: free-text verification report
        """
        pass
