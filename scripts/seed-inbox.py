"""Upload sample files into the inbox bucket for local runs.

Usage:
    python scripts/seed-inbox.py [--tenant 3]

Requires:
    - GCS credentials (gcloud auth application-default login) or an emulator
      via STORAGE_EMULATOR_HOST
    - DOC_INBOX_CONTAINER pointing at an existing bucket (default: inbox)
"""

from __future__ import annotations

import argparse
import os
import sys

from google.cloud import storage

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


SAMPLE_FILES = [
    {
        "name": "api-guidelines.txt",
        "title": "API Design Guidelines",
        "content": (
            "REST API Design Best Practices\n\n"
            "1. Use nouns for resource URLs, not verbs.\n"
            "2. Return appropriate HTTP status codes.\n"
            "3. Version your API using the URL path (e.g., /v1/users).\n"
            "4. Use pagination for list endpoints."
        ),
    },
    {
        "name": "migration-runbook.txt",
        "title": "Database Migration Runbook",
        "content": (
            "Database Migration Procedures\n\n"
            "Take a full database backup, run alembic upgrade head, "
            "verify the schema and monitor application logs for errors.\n"
            "Rollback: alembic downgrade -1 and restore from backup if needed."
        ),
    },
    {
        "name": "travel-policy.md",
        "title": "Travel Policy",
        "content": (
            "# Travel Policy\n\n"
            "Economy class for flights under six hours. Submit receipts within "
            "thirty days. Hotel bookings go through the corporate portal."
        ),
    },
]


def main() -> None:
    from document_service.config import InboxConfig

    parser = argparse.ArgumentParser(description="Seed the inbox bucket with sample files")
    parser.add_argument("--tenant", type=int, default=None, help="Upload under tenant-{id}/")
    args = parser.parse_args()

    cfg = InboxConfig.from_env()
    client = storage.Client(project=os.getenv("GOOGLE_CLOUD_PROJECT") or None)
    bucket = client.bucket(cfg.inbox_container)
    prefix = f"tenant-{args.tenant}/" if args.tenant is not None else ""

    print(f"Seeding {len(SAMPLE_FILES)} files into gs://{cfg.inbox_container}/{prefix}...")

    for sample in SAMPLE_FILES:
        blob = bucket.blob(prefix + sample["name"])
        blob.metadata = {"Title": sample["title"]}
        if args.tenant is not None:
            blob.metadata["TenantId"] = str(args.tenant)
        content_type = "text/markdown" if sample["name"].endswith(".md") else "text/plain"
        blob.upload_from_string(sample["content"].encode("utf-8"), content_type=content_type)
        print(f"  {blob.name}")

    print("Done!")


if __name__ == "__main__":
    main()
