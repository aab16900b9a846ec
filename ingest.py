"""
Command-line ingestion into the file archive.

Transfers files into the archive directory and records them against an
item in the archive database.

Usage:
    python ingest.py --item 12 ./scans/a.jpg ./scans/b.jpg
    python ingest.py --adapter Url --item 12 https://example.com/a.jpg
    python ingest.py --item 12 --ignore-invalid --meta Title="Front cover" ./scans/*.jpg
"""

from __future__ import annotations

import argparse
import sys
from typing import Dict, List, Optional

from archive_core.config import get_config
from archive_core.ingest.errors import IngestError
from archive_core.ingest.orchestrator import ingest_files
from archive_core.ingest.registry import available_adapters
from archive_core.records.store import SQLiteRecordStore
from ops import log_report, setup_logging
from shared.schema import TargetEntity


def _parse_meta(pairs: List[str]) -> Dict[str, List[str]]:
    """Turn ``FIELD=VALUE`` pairs into a metadata mapping."""
    metadata: Dict[str, List[str]] = {}
    for pair in pairs:
        field, sep, value = pair.partition("=")
        if not sep or not field.strip():
            raise argparse.ArgumentTypeError(f"Expected FIELD=VALUE, got '{pair}'")
        metadata.setdefault(field.strip(), []).append(value)
    return metadata


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest files into the archive."
    )
    parser.add_argument(
        "sources",
        nargs="*",
        help="Paths or URLs to ingest, depending on the adapter",
    )
    parser.add_argument(
        "--adapter",
        type=str,
        default="Filesystem",
        help=f"Ingest adapter (default: Filesystem; available: {', '.join(available_adapters())})",
    )
    parser.add_argument("--item", required=True, help="Id of the item the files belong to")
    parser.add_argument(
        "--ignore-invalid",
        action="store_true",
        default=None,
        help="Skip invalid files instead of aborting (default: IGNORE_INVALID_FILES)",
    )
    parser.add_argument(
        "--meta",
        action="append",
        default=[],
        metavar="FIELD=VALUE",
        help="Metadata applied to every ingested file (repeatable)",
    )
    parser.add_argument("--archive-dir", help="Override ARCHIVE_DIR")
    parser.add_argument("--database", help="Override DATABASE_PATH")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    overrides = {}
    if args.archive_dir:
        overrides["archive_dir"] = args.archive_dir
    if args.database:
        overrides["database_path"] = args.database
    if overrides:
        config = config.model_copy(update=overrides)
    setup_logging(config.log_level)

    try:
        metadata = _parse_meta(args.meta)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    ignore = config.ignore_invalid_files if args.ignore_invalid is None else args.ignore_invalid
    raw_input = [{"source": s, "metadata": metadata} for s in args.sources]
    target = TargetEntity(id=args.item)

    print("=" * 60)
    print("Archive Ingestion")
    print("=" * 60)

    store = SQLiteRecordStore(config.database_path)
    try:
        report = ingest_files(
            args.adapter,
            target,
            raw_input,
            store,
            options={"ignore_invalid_files": ignore},
            config=config,
        )
    except IngestError as exc:
        print(f"Ingestion failed [{exc.kind}]: {exc}", file=sys.stderr)
        return 1
    finally:
        store.close()

    log_report(report)

    print()
    print("=" * 60)
    print("Ingestion Summary")
    print("=" * 60)
    print(f"  Files given     : {len(args.sources)}")
    print(f"  Files ingested  : {len(report.records)}")
    print(f"  Files skipped   : {len(report.skipped)}")
    for record in report.records:
        print(f"    + {record.original_filename} -> {record.archive_filename} ({record.size} bytes)")
    for item in report.skipped:
        print(f"    - {item.source}: {item.reason}")
    print("=" * 60)
    print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
