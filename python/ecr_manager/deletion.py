"""
Bulk image deletion with ECR's 100-images-per-call limit.

The work is split into three independent steps:

- partition():        candidate digests -> ordered batches
- delete_batch():     one BatchDeleteImage call -> BatchResult
- reduce_outcomes():  BatchResults -> DeletionOutcome

A failed batch call does not stop the remaining batches. It is recorded as one
error covering the batch's range; items ECR refuses individually are recorded
one error each and are not counted as deleted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence

from ecr_manager.config_manager import ECR_MAX_BATCH_SIZE
from ecr_manager.error_utils import InvalidInputError
from ecr_manager.image_inventory import ImageRecord, fetch_images
from ecr_manager.logging_utils import get_logger

logger = get_logger(__name__)

NO_MATCHES_MESSAGE = "No images found matching criteria"


@dataclass(frozen=True)
class BatchResult:
    start: int
    end: int
    deleted: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeletionOutcome:
    deleted: int
    errors: List[str] = field(default_factory=list)
    message: str = "Images deleted successfully"

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict:
        payload = {"message": self.message, "deleted": self.deleted}
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


def partition(digests: Sequence[str], size: int = ECR_MAX_BATCH_SIZE) -> List[List[str]]:
    """Split digests into consecutive batches of at most ``size``, keeping their order"""
    if size < 1:
        raise ValueError(f"batch size must be positive, got {size}")
    return [list(digests[i:i + size]) for i in range(0, len(digests), size)]


def delete_batch(client, repository: str, batch: List[str], start: int) -> BatchResult:
    """Issue one delete call for ``batch``; ``start`` is its 0-based offset in the full candidate list"""
    end = start + len(batch)
    try:
        confirmed, failures = client.delete_images(repository, batch)
    except Exception as e:
        error_msg = f"Failed to delete batch {start + 1}-{end}: {e}"
        logger.error(f"Error: {error_msg}")
        return BatchResult(start=start, end=end, errors=[error_msg])

    errors = []
    failed_digests = set()
    for failure in failures:
        failed_digests.add(failure["digest"])
        error_msg = f"Failed to delete image {failure['digest']}: {failure['reason']}"
        logger.warning(error_msg)
        errors.append(error_msg)

    # A digest is counted once, and never when it is also reported as failed
    deleted = len({digest for digest in confirmed if digest not in failed_digests})

    logger.info(
        f"Deleted batch {start + 1}-{end}: {deleted} succeeded, {len(failures)} failed "
        f"(out of {len(batch)} total)"
    )
    return BatchResult(start=start, end=end, deleted=deleted, errors=errors)


def reduce_outcomes(results: Iterable[BatchResult]) -> DeletionOutcome:
    deleted = 0
    errors: List[str] = []
    for result in results:
        deleted += result.deleted
        errors.extend(result.errors)

    if errors:
        return DeletionOutcome(
            deleted=deleted,
            errors=errors,
            message=f"Partially completed: {deleted} images deleted, but encountered {len(errors)} errors",
        )
    return DeletionOutcome(deleted=deleted)


def delete_digests(client, repository: str, digests: Sequence[str],
                   batch_size: int = ECR_MAX_BATCH_SIZE) -> DeletionOutcome:
    """Delete ``digests`` from ``repository`` in batches.

    An empty candidate list returns a zero-deletion success without calling the registry.
    """
    if batch_size > ECR_MAX_BATCH_SIZE:
        raise ValueError(f"batch size {batch_size} exceeds the registry limit of {ECR_MAX_BATCH_SIZE}")
    if not digests:
        return DeletionOutcome(deleted=0, message=NO_MATCHES_MESSAGE)

    batches = partition(digests, batch_size)
    logger.info(f"Deleting {len(digests)} images from {repository} in {len(batches)} batch(es)")
    return reduce_outcomes(
        delete_batch(client, repository, batch, index * batch_size)
        for index, batch in enumerate(batches)
    )


def select_stale_digests(images: Iterable[ImageRecord], days_old: int,
                         now: Optional[datetime] = None) -> List[str]:
    """Digests of images whose last pull (push time if never pulled) is before now - days_old"""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=days_old)
    return [image.digest for image in images if image.last_pull < cutoff]


def _require_repository(repository: Optional[str]) -> str:
    if not repository or not repository.strip():
        raise InvalidInputError("repositoryName is required", field="repositoryName")
    return repository


def delete_images(client, repository: str, digests: Optional[Sequence[str]],
                  batch_size: int = ECR_MAX_BATCH_SIZE) -> DeletionOutcome:
    """Delete an explicit, non-empty list of digests"""
    if not repository or not digests:
        raise InvalidInputError("repositoryName and imageDigests are required")
    return delete_digests(client, repository, list(digests), batch_size)


def delete_by_age(client, repository: str, days_old: Optional[int] = None,
                  digests: Optional[Sequence[str]] = None, batch_size: int = ECR_MAX_BATCH_SIZE,
                  now: Optional[datetime] = None) -> DeletionOutcome:
    """Delete explicit digests when given, otherwise every image not pulled in ``days_old`` days.

    The age rule matches ECR lifecycle policies: images are judged on
    lastRecordedPullTime, falling back to the push time for images never pulled.

    Raises:
        InvalidInputError: missing repository, or no digests and days_old is not positive
        ImageFetchError: the inventory needed for date selection could not be loaded
    """
    _require_repository(repository)

    if digests:
        candidates = list(digests)
        logger.info(f"Deleting {len(candidates)} specific images provided in request")
    else:
        if days_old is None or days_old <= 0:
            raise InvalidInputError(
                "daysOld (> 0) is required when imageDigests is not provided", field="daysOld"
            )
        images = fetch_images(client, repository)
        candidates = select_stale_digests(images, days_old, now)
        logger.info(f"Filtered {len(candidates)} images by date criteria (older than {days_old} days)")

    return delete_digests(client, repository, candidates, batch_size)
