from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="document-worker",
        description="Inbox ingestion and search-index reconciliation without the HTTP host",
    )
    p.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle of each selected loop and exit (no startup delay)",
    )
    p.add_argument(
        "--only",
        choices=("inbox", "index"),
        default=None,
        help="Run only the inbox loop or only the reconciliation loop",
    )
    p.add_argument("--log-level", default="INFO", help="Python logging level (INFO, DEBUG, ...)")
    return p
