"""
Utility functions for rendering inventory data as text tables.

Used by the command-line entry point; the HTTP API serves the same data as JSON.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Sequence

from tabulate import tabulate

if TYPE_CHECKING:
	from ecr_manager.deletion import DeletionOutcome
	from ecr_manager.global_stats import GlobalStats
	from ecr_manager.image_inventory import ImageRecord


def sizeof_fmt(num: float, suffix: str = "B") -> str:
	"""Format bytes into human-readable size.

	Args:
	    num: Number of bytes
	    suffix: Suffix to append (default: "B")

	Returns:
	    Formatted string like "1.5GiB", "500.0MiB", etc.
	"""
	for unit in ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei", "Zi"):
		if abs(num) < 1024.0:
			return f"{num:3.1f}{unit}{suffix}"
		num /= 1024.0
	return f"{num:.1f}Yi{suffix}"


def _fmt_time(value: datetime) -> str:
	return value.strftime("%Y-%m-%d %H:%M:%S")


def format_images_table(images: Sequence["ImageRecord"]) -> str:
	"""Grid table of images in the order given"""
	headers = ["Tag", "Digest", "Size", "Pushed", "Last Pull"]
	rows = [
		[image.tag or "<untagged>", image.digest[:19], sizeof_fmt(image.size), _fmt_time(image.pushed_at), _fmt_time(image.last_pull)]
		for image in images
	]
	return tabulate(rows, headers=headers, tablefmt="grid")


def format_global_stats(stats: "GlobalStats", limit: int = 0) -> str:
	"""Totals line followed by a grid table of the largest repositories"""
	summaries = stats.repositories[:limit] if 0 < limit < len(stats.repositories) else stats.repositories
	lines: List[str] = [
		f"Repositories: {stats.total_repositories}",
		f"Images: {stats.total_images}",
		f"Total size: {sizeof_fmt(stats.total_size)}",
		"",
		tabulate(
			[[summary.name, summary.image_count, sizeof_fmt(summary.size)] for summary in summaries],
			headers=["Repository", "Images", "Size"],
			tablefmt="grid",
		),
	]
	return "\n".join(lines)


def format_deletion_outcome(outcome: "DeletionOutcome") -> str:
	lines = [outcome.message]
	for error in outcome.errors:
		lines.append(f"  - {error}")
	return "\n".join(lines)
