"""
Image inventory for a single ECR repository.

Every image is normalized into an ImageRecord whose ``last_pull`` is always
set: ECR's lastRecordedPullTime when present, otherwise the push time. This is
the same fallback ECR lifecycle policies apply, so an image that was never
pulled ages from the moment it was pushed.
https://docs.aws.amazon.com/AmazonECR/latest/userguide/LifecyclePolicies.html
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ecr_manager.error_utils import ImageFetchError
from ecr_manager.logging_utils import get_logger
from ecr_manager.pagination import iter_pages

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImageRecord:
    repository: str
    digest: str
    size: int
    pushed_at: datetime
    last_pull: datetime
    tag: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape served by the API"""
        return {
            "repositoryName": self.repository,
            "imageTag": self.tag or "",
            "imageDigest": self.digest,
            "imageSize": self.size,
            "imagePushedAt": self.pushed_at.isoformat(),
            # ECR reports no per-image pull counts
            "imagePullCount": 0,
            "lastPullDate": self.last_pull.isoformat(),
        }


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_image(repository: str, detail: Dict[str, Any]) -> ImageRecord:
    """Build an ImageRecord from one DescribeImages imageDetails entry"""
    pushed_at = _as_utc(detail["imagePushedAt"])
    last_pull = detail.get("lastRecordedPullTime")
    tags = detail.get("imageTags") or []
    return ImageRecord(
        repository=repository,
        digest=detail["imageDigest"],
        size=int(detail.get("imageSizeInBytes") or 0),
        pushed_at=pushed_at,
        last_pull=_as_utc(last_pull) if last_pull is not None else pushed_at,
        tag=tags[0] if tags else None,
    )


def fetch_images(client, repository: str) -> List[ImageRecord]:
    """Fetch and normalize every image of ``repository``.

    Args:
        client: Registry client exposing ``list_images(repository, cursor)``
        repository: ECR repository name

    Raises:
        ImageFetchError: any page failed to load or an entry could not be normalized
    """
    images: List[ImageRecord] = []
    page_count = 0
    try:
        for page in iter_pages(lambda cursor: client.list_images(repository, cursor)):
            page_count += 1
            images.extend(normalize_image(repository, detail) for detail in page)
    except Exception as e:
        raise ImageFetchError(repository, e) from e

    logger.debug(f"Fetched {len(images)} images for {repository} in {page_count} page(s)")
    return images
