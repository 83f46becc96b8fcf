"""Command line import, export and migration of vocabulary data."""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from wordreview.exceptions import WordReviewError
from wordreview.logging_config import setup_logging
from wordreview.models.base import SessionLocal, init_db
from wordreview.monitoring import start_monitoring
from wordreview.services.review_service import ReviewService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wordreview", description=__doc__)
    parser.add_argument(
        "--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import vocabularies from a JSON file")
    import_parser.add_argument("path", type=Path)
    import_parser.add_argument("--owner-id", type=int, default=None)

    export_parser = subparsers.add_parser("export", help="Export vocabularies to a JSON file")
    export_parser.add_argument("path", type=Path)
    export_parser.add_argument("--owner-id", type=int, default=None)

    migrate_parser = subparsers.add_parser(
        "migrate", help="Move the shared anonymous data to a user"
    )
    migrate_parser.add_argument("--owner-id", type=int, required=True)
    return parser


def import_file(service: ReviewService, path: Path, owner_id: Optional[int]) -> int:
    try:
        vocabularies = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise WordReviewError(f"Import failed: {e}") from e
    result = service.import_vocabularies(vocabularies, owner_id)
    logger.info("Successfully imported %d vocabularies", result["count"])
    return result["count"]


def export_file(service: ReviewService, path: Path, owner_id: Optional[int]) -> int:
    vocabularies = service.export_vocabularies(owner_id)
    try:
        path.write_text(json.dumps(vocabularies, ensure_ascii=False, indent=2), encoding="utf-8")
    except OSError as e:
        raise WordReviewError(f"Export failed: {e}") from e
    logger.info("Successfully exported %d vocabularies", len(vocabularies))
    return len(vocabularies)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(f"Running wordreview {args.command} ...")
    if args.metrics_port is not None:
        start_monitoring(args.metrics_port)
    init_db()

    db = SessionLocal()
    try:
        service = ReviewService(db)
        if args.command == "import":
            import_file(service, args.path, args.owner_id)
        elif args.command == "export":
            export_file(service, args.path, args.owner_id)
        else:
            result = service.claim_legacy_data(args.owner_id)
            logger.info("Migrated legacy data to user %d: %s", args.owner_id, result)
    except WordReviewError as e:
        logger.error("Operation failed: %s", e.message)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
