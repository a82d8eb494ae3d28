import argparse
import logging
import sys
from typing import List, Optional

from ecr_manager import deletion, ranking
from ecr_manager.config_manager import config_manager
from ecr_manager.ecr_client import EcrRegistryClient
from ecr_manager.error_utils import ActionableError
from ecr_manager.global_stats import aggregate_global_stats, list_repository_names
from ecr_manager.image_inventory import fetch_images
from ecr_manager.logging_utils import setup_logging
from ecr_manager.report_utils import format_deletion_outcome, format_global_stats, format_images_table


def read_digests_from_file(file_path: str) -> List[str]:
    """Read image digests from a file, one per line (comments starting with # are ignored)."""
    digests = []
    with open(file_path, 'r') as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            if not line.startswith('sha256:'):
                logging.warning(f"Skipping '{line}' on line {line_num}: not a sha256 digest")
                continue
            digests.append(line)
    return digests


def cmd_repositories(client, args) -> int:
    for name in list_repository_names(client):
        print(name)
    return 0


def cmd_stats(client, args) -> int:
    stats = aggregate_global_stats(
        client,
        max_workers=config_manager.get_max_workers(),
        progress_interval=config_manager.get_progress_log_interval(),
    )
    print(format_global_stats(stats, limit=args.limit))
    return 0


def cmd_images(client, args) -> int:
    print(format_images_table(fetch_images(client, args.repository)))
    return 0


def cmd_largest(client, args) -> int:
    images = fetch_images(client, args.repository)
    print(format_images_table(ranking.sort_by_size(images, args.limit)))
    return 0


def cmd_recent(client, args) -> int:
    images = fetch_images(client, args.repository)
    print(format_images_table(ranking.sort_by_last_pull(images, args.limit)))
    return 0


def cmd_delete(client, args) -> int:
    digests = list(args.digests)
    if args.file:
        digests.extend(read_digests_from_file(args.file))
    if not args.apply:
        logging.info(f"DRY RUN: would delete {len(digests)} images from {args.repository} (use --apply to delete)")
        for digest in digests:
            print(digest)
        return 0
    outcome = deletion.delete_images(client, args.repository, digests, config_manager.get_delete_batch_size())
    print(format_deletion_outcome(outcome))
    return 2 if outcome.partial else 0


def cmd_delete_by_date(client, args) -> int:
    if not args.apply:
        if args.days_old <= 0:
            logging.error("--days-old must be greater than 0")
            return 1
        images = fetch_images(client, args.repository)
        stale_digests = set(deletion.select_stale_digests(images, args.days_old))
        stale = ranking.sort_by_last_pull([image for image in images if image.digest in stale_digests])
        logging.info(f"DRY RUN: {len(stale)} images not pulled in {args.days_old} days (use --apply to delete)")
        print(format_images_table(stale))
        return 0
    outcome = deletion.delete_by_age(
        client, args.repository, days_old=args.days_old, batch_size=config_manager.get_delete_batch_size()
    )
    print(format_deletion_outcome(outcome))
    return 2 if outcome.partial else 0


def cmd_serve(client, args) -> int:
    import uvicorn

    from api import app

    uvicorn.run(app, host=config_manager.get_server_host(), port=config_manager.get_server_port())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Inventory, rank and prune images stored in Amazon ECR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration:
  The tool uses config.yaml for default settings (CONFIG_FILE to override the path).
  Environment variables take precedence:
  - AWS_REGION: region of the registry (default us-east-1)
  - PORT: HTTP port for 'serve' (default 8081)
  - BACKEND_API_KEY: X-API-Key required by the HTTP API
  - CORS_ALLOWED_ORIGINS: comma separated list of allowed browser origins
  - LOG_LEVEL: logging level (default INFO)

Examples:
  python main.py stats --limit 20
  python main.py largest my-repo --limit 5
  python main.py delete-by-date my-repo --days-old 90            # dry run
  python main.py delete-by-date my-repo --days-old 90 --apply
  python main.py serve
""",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("repositories", help="List all repository names").set_defaults(func=cmd_repositories)

    stats = subparsers.add_parser("stats", help="Registry-wide totals and largest repositories")
    stats.add_argument("--limit", type=int, default=10, help="Repositories to show (0 = all)")
    stats.set_defaults(func=cmd_stats)

    images = subparsers.add_parser("images", help="All images in a repository")
    images.add_argument("repository")
    images.set_defaults(func=cmd_images)

    for name, func, help_text in (
        ("largest", cmd_largest, "Largest images in a repository"),
        ("recent", cmd_recent, "Most recently pulled images in a repository"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("repository")
        sub.add_argument("--limit", type=int, default=config_manager.get_default_limit())
        sub.set_defaults(func=func)

    delete = subparsers.add_parser("delete", help="Delete images by digest (default: dry-run)")
    delete.add_argument("repository")
    delete.add_argument("digests", nargs="*", help="Image digests (sha256:...)")
    delete.add_argument("--file", help="File with one digest per line")
    delete.add_argument("--apply", action="store_true", help="Actually delete images")
    delete.set_defaults(func=cmd_delete)

    by_date = subparsers.add_parser("delete-by-date", help="Delete images not pulled in N days (default: dry-run)")
    by_date.add_argument("repository")
    by_date.add_argument("--days-old", type=int, required=True)
    by_date.add_argument("--apply", action="store_true", help="Actually delete images")
    by_date.set_defaults(func=cmd_delete_by_date)

    subparsers.add_parser("serve", help="Run the HTTP API").set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    client = None if args.command == "serve" else EcrRegistryClient.from_config(config_manager)
    try:
        return args.func(client, args)
    except ActionableError as e:
        print(e.format_message(), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
