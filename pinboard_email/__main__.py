"""Entry point for the mail crawler package.

Usage::

    python -m pinboard_email crawl     # poll the mailbox until SIGTERM / SIGINT
    python -m pinboard_email records   # list the records stored in STORAGE_DATA_DIR
"""

from __future__ import annotations

import asyncio
import sys


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in ("crawl", "records"):
        print("Usage: python -m pinboard_email <crawl|records>", file=sys.stderr)
        sys.exit(1)

    mode = sys.argv[1]

    if mode == "crawl":
        from pinboard_connector import CrawlerRunner

        from .config import MailCrawlerConfig
        from .crawler import MailCrawler

        config = MailCrawlerConfig(name="mail")
        runner = CrawlerRunner(config, MailCrawler(config))
        asyncio.run(runner.run())

    elif mode == "records":
        from pinboard_connector import RecordStore, StorageConfig

        store = RecordStore(StorageConfig().data_dir)
        for record in store.load_all():
            print(
                f"{record.filename()}\t{record.timestamp.isoformat()}\t"
                f"{record.sender_name}\t{record.short_text}\t{len(record.image_names)} image(s)"
            )


if __name__ == "__main__":
    main()
