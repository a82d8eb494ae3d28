"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides an in-memory registry that speaks the same three operations as
EcrRegistryClient.
"""
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

# The global config_manager is built at import time
os.environ.setdefault("SKIP_CONFIG_VALIDATION", "true")

from ecr_manager.error_utils import RegistryError  # noqa: E402

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_detail(digest: str, size: int = 100, pushed_at: datetime = BASE_TIME,
                last_pull: Optional[datetime] = None, tags: Optional[List[str]] = None) -> Dict:
    """An imageDetails entry as returned by DescribeImages"""
    detail = {"imageDigest": digest, "imageSizeInBytes": size, "imagePushedAt": pushed_at}
    if last_pull is not None:
        detail["lastRecordedPullTime"] = last_pull
    if tags is not None:
        detail["imageTags"] = tags
    return detail


class FakeRegistry:
    """In-memory registry with cursor pagination and scriptable failures"""

    def __init__(self, repositories: Optional[Dict[str, List[Dict]]] = None, page_size: int = 2):
        self.repositories = dict(repositories or {})
        self.page_size = page_size
        self.failing_repositories = set()
        self.fail_listing = False
        # 1-based delete call numbers that raise
        self.failing_delete_calls = set()
        # digest -> reason reported as a per-item failure
        self.item_failures: Dict[str, str] = {}
        self.list_repository_calls = 0
        self.list_image_calls: List[str] = []
        self.delete_calls: List[List[str]] = []

    def _page(self, items, cursor):
        start = int(cursor or 0)
        end = start + self.page_size
        next_cursor = str(end) if end < len(items) else None
        return list(items[start:end]), next_cursor

    def list_repositories(self, cursor=None):
        self.list_repository_calls += 1
        if self.fail_listing:
            raise RegistryError("ECR describe_repositories failed: boom", operation="describe_repositories")
        return self._page(list(self.repositories), cursor)

    def list_images(self, repository, cursor=None):
        self.list_image_calls.append(repository)
        if repository in self.failing_repositories:
            raise RegistryError("ECR describe_images failed: boom", operation="describe_images")
        return self._page(self.repositories.get(repository, []), cursor)

    def delete_images(self, repository, digests):
        self.delete_calls.append(list(digests))
        if len(self.delete_calls) in self.failing_delete_calls:
            raise RegistryError("ECR batch_delete_image failed: throttled", operation="batch_delete_image")
        confirmed = [d for d in digests if d not in self.item_failures]
        failures = [{"digest": d, "reason": self.item_failures[d]} for d in digests if d in self.item_failures]
        return confirmed, failures


@pytest.fixture
def fake_registry():
    return FakeRegistry
