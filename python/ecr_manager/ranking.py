"""Size and recency orderings of an image inventory"""

from typing import List, Sequence

from ecr_manager.image_inventory import ImageRecord


def apply_limit(images: List[ImageRecord], limit: int = 0) -> List[ImageRecord]:
    """Keep the first ``limit`` items when 0 < limit < len(images), else everything"""
    if 0 < limit < len(images):
        return images[:limit]
    return images


def sort_by_last_pull(images: Sequence[ImageRecord], limit: int = 0) -> List[ImageRecord]:
    """Most recently pulled first. Ties keep their input order."""
    ranked = sorted(images, key=lambda image: image.last_pull, reverse=True)
    return apply_limit(ranked, limit)


def sort_by_size(images: Sequence[ImageRecord], limit: int = 0) -> List[ImageRecord]:
    """Largest first. Ties keep their input order."""
    ranked = sorted(images, key=lambda image: image.size, reverse=True)
    return apply_limit(ranked, limit)
