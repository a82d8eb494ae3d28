"""
Registry-wide statistics.

aggregate_global_stats() walks every repository in the registry and totals
image counts and sizes. A repository whose images cannot be listed is logged
and left out of the per-repository summary, but it still counts towards
``total_repositories``. The result is cached by GlobalStatsCache because a full
scan costs one DescribeImages call per page per repository.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from ecr_manager.cache_utils import TimedCache
from ecr_manager.error_utils import ImageFetchError
from ecr_manager.image_inventory import ImageRecord, fetch_images
from ecr_manager.logging_utils import get_logger
from ecr_manager.pagination import collect_all
from ecr_manager.report_utils import sizeof_fmt

logger = get_logger(__name__)

DEFAULT_STATS_TTL_SECONDS = 12 * 60 * 60


@dataclass(frozen=True)
class RepositorySummary:
    name: str
    size: int
    image_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "imageCount": self.image_count}


@dataclass(frozen=True)
class GlobalStats:
    total_repositories: int
    total_images: int
    total_size: int
    repositories: Tuple[RepositorySummary, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRepositories": self.total_repositories,
            "totalImages": self.total_images,
            "totalSize": self.total_size,
            "topRepositoriesBySize": [summary.to_dict() for summary in self.repositories],
        }


def list_repository_names(client) -> List[str]:
    """Every repository name in the registry"""
    return collect_all(client.list_repositories)


def summarize_repository(name: str, images: List[ImageRecord]) -> RepositorySummary:
    return RepositorySummary(name=name, size=sum(image.size for image in images), image_count=len(images))


def _fetch_summary(client, name: str) -> Union[RepositorySummary, ImageFetchError]:
    try:
        return summarize_repository(name, fetch_images(client, name))
    except ImageFetchError as e:
        return e


def _iter_outcomes(client, names: List[str], max_workers: int) -> Iterator[Union[RepositorySummary, ImageFetchError]]:
    if max_workers > 1 and len(names) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            # map() yields in submission order, so folding stays deterministic
            yield from executor.map(lambda name: _fetch_summary(client, name), names)
    else:
        for name in names:
            yield _fetch_summary(client, name)


def aggregate_global_stats(client, max_workers: int = 1, progress_interval: int = 50) -> GlobalStats:
    """Scan every repository and total their images.

    Args:
        client: Registry client exposing ``list_repositories`` and ``list_images``
        max_workers: Repositories fetched concurrently (1 = sequential)
        progress_interval: Log a progress line every N successfully processed repositories

    Raises:
        RegistryError: the repository listing itself failed
    """
    names = list_repository_names(client)
    total_images = 0
    total_size = 0
    failed = 0
    summaries: List[RepositorySummary] = []

    for outcome in _iter_outcomes(client, names, max_workers):
        if isinstance(outcome, ImageFetchError):
            logger.warning(f"Failed to fetch images for repository {outcome.repository}: {outcome.cause}")
            failed += 1
            continue
        summaries.append(outcome)
        total_images += outcome.image_count
        total_size += outcome.size
        if progress_interval > 0 and len(summaries) % progress_interval == 0:
            logger.info(f"Processed {len(summaries)}/{len(names)} repositories, {total_images} images so far...")

    summaries.sort(key=lambda summary: summary.size, reverse=True)

    logger.info(
        f"Global stats calculation complete: {len(summaries)} repos processed, {failed} repos with errors, "
        f"{total_images} total images, {sizeof_fmt(total_size)} total size"
    )
    return GlobalStats(
        total_repositories=len(names),
        total_images=total_images,
        total_size=total_size,
        repositories=tuple(summaries),
    )


class GlobalStatsCache(TimedCache[GlobalStats]):
    """Global stats served from memory for ``ttl_seconds`` after each full scan"""

    def __init__(self, client, ttl_seconds: int = DEFAULT_STATS_TTL_SECONDS, max_workers: int = 1,
                 progress_interval: int = 50, clock: Optional[Callable[[], datetime]] = None):
        self.client = client
        super().__init__(
            lambda: aggregate_global_stats(client, max_workers=max_workers, progress_interval=progress_interval),
            ttl_seconds=ttl_seconds,
            clock=clock,
            name="global stats",
        )
