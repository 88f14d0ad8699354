"""Knowledge Ingestion Command

Builds the corpus the interpreter personas retrieve from: raw source
excerpts are cleaned, classified by content type and persona, embedded,
and written to the output directory.

Usage:
    python -m src.run_ingestion --input data/raw_fragments.json --output-dir output
    python -m src.run_ingestion --skip-embeddings --limit 50
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict

from src.dream_pipeline.pipeline import run_ingestion

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE = Path("logs") / "ingestion.log"


def configure_logging() -> None:
    """Route INFO to the console and everything down to DEBUG into logs/ingestion.log."""
    LOG_FILE.parent.mkdir(exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # SDK request logs are noise at INFO
    for noisy in ("httpx", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    logfile = logging.FileHandler(LOG_FILE, encoding="utf-8")
    logfile.setLevel(logging.DEBUG)
    logfile.setFormatter(formatter)

    # repeated main() calls must not stack handlers
    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(logfile)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run_ingestion",
        description="Classify and embed source excerpts into the dream knowledge corpus",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=Path("data/raw_fragments.json"),
        help="JSON file of raw excerpts (a list, or wrapped under 'fragments'/'results')",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Where corpus.json, corpus_embedded.json and run_metadata.json go",
    )
    parser.add_argument("--limit", type=int, default=None, help="Only read the first N excerpts")
    parser.add_argument("--dry-run", action="store_true", help="Classify only; leave the output directory untouched")
    parser.add_argument(
        "--skip-embeddings",
        action="store_true",
        help="Write the classified corpus without calling the embeddings API",
    )
    parser.add_argument(
        "--no-history",
        action="store_true",
        help="Replace previous corpus files rather than keeping timestamped copies",
    )
    parser.add_argument("--batch-size", type=int, default=100, help="Texts per embeddings request (default: 100)")
    return parser


def _log_summary(
    logger: logging.Logger,
    args: argparse.Namespace,
    total_raw: int,
    processed: int,
    outputs: Dict[str, Path],
    elapsed: float,
) -> None:
    logger.info("-" * 60)
    logger.info("Ingestion completed successfully in %.2fs", elapsed)
    logger.info(
        "Kept %d of %d excerpts from %s; embeddings %s",
        processed, total_raw, args.input, "skipped" if args.skip_embeddings else "written",
    )
    if not outputs:
        logger.info("No files written")
    for kind, path in sorted(outputs.items()):
        logger.info("  %s -> %s", kind, path)
    logger.info("-" * 60)


def main(argv=None) -> int:
    """
    Run ingestion from the command line.

    Returns:
        0 when the corpus was built, 1 on any unhandled error
    """
    configure_logging()
    logger = logging.getLogger(__name__)
    args = build_parser().parse_args(argv)

    logger.info("=== Starting knowledge ingestion ===")
    logger.info(
        "input=%s output_dir=%s limit=%s dry_run=%s skip_embeddings=%s keep_history=%s batch_size=%d",
        args.input, args.output_dir, args.limit or "all", args.dry_run,
        args.skip_embeddings, not args.no_history, args.batch_size,
    )

    started = time.perf_counter()
    try:
        total_raw, processed, outputs = run_ingestion(
            input_path=args.input,
            output_dir=args.output_dir,
            limit=args.limit,
            dry_run=args.dry_run,
            skip_embeddings=args.skip_embeddings,
            keep_history=not args.no_history,
            batch_size=args.batch_size,
        )
    except Exception:
        logger.exception("Ingestion of %s aborted", args.input)
        return 1

    _log_summary(logger, args, total_raw, processed, outputs, time.perf_counter() - started)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
