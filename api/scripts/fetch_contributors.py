#!/usr/bin/env python3
"""Fetch a repository's contributor roster from the command line.

Usage:
  python scripts/fetch_contributors.py OWNER/REPO [--enhanced] [--fetch-all] [--max-pages N]
      [--force-complete] [--sort-by contributions|name|recent_activity] [--sort-order asc|desc]
      [--min-contributions N] [--location TEXT] [--company TEXT] [-v]

Notes:
- Needs GITHUB_TOKEN (or GH_TOKEN); reads api/.env when python-dotenv is installed
- Prints the same JSON envelope GET /api/contributors returns
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

_api_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _api_dir)

try:
    from dotenv import load_dotenv
    load_dotenv(os.path.join(_api_dir, ".env"))
except ImportError:
    pass

from app.models.github_contributor import FetchOptions, FilterCriteria, SortKey, SortOrder
from app.services.contributor_fetch_service import fetch_contributors
from app.services.fetch_config import github_token, load_fetch_settings
from app.services.github_client import GitHubClient
from app.services.repository_ref import parse_github_url

log = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Fetch a GitHub repository's contributor roster")
    ap.add_argument("repository", help="owner/repo or any GitHub repository URL")
    ap.add_argument("--enhanced", action="store_true", help="Fetch profiles + commit statistics")
    ap.add_argument("--fetch-all", action="store_true", help="Walk every upstream page")
    ap.add_argument("--max-pages", type=int, default=0, help="0 = unlimited (up to the safety ceiling)")
    ap.add_argument("--force-complete", action="store_true", help="Wait out quota exhaustion")
    ap.add_argument("--page", type=int, default=1)
    ap.add_argument("--per-page", type=int, default=50)
    ap.add_argument("--min-contributions", type=int, default=None)
    ap.add_argument("--max-contributions", type=int, default=None)
    ap.add_argument("--location", default=None)
    ap.add_argument("--company", default=None)
    ap.add_argument("--sort-by", choices=[k.value for k in SortKey], default=SortKey.CONTRIBUTIONS.value)
    ap.add_argument("--sort-order", choices=[o.value for o in SortOrder], default=SortOrder.DESC.value)
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    ref = parse_github_url(args.repository)
    if ref is None:
        log.error("Not a GitHub repository: %s", args.repository)
        return 2
    token = github_token()
    if not token:
        log.error("GITHUB_TOKEN is not set")
        return 2

    owner, repo = ref
    settings = load_fetch_settings()
    options = FetchOptions(
        page=max(1, args.page),
        per_page=max(1, min(args.per_page, 100)),
        enhanced=args.enhanced,
        fetch_all=args.fetch_all,
        max_pages=max(0, args.max_pages),
        force_complete=args.force_complete,
    )
    criteria = FilterCriteria(
        min_contributions=args.min_contributions,
        max_contributions=args.max_contributions,
        location=args.location,
        company=args.company,
        sort_by=SortKey(args.sort_by),
        sort_order=SortOrder(args.sort_order),
    )
    async with GitHubClient(token=token, base_url=settings.base_url, timeout=settings.timeout_seconds) as client:
        outcome = await fetch_contributors(client, owner, repo, options, criteria, settings=settings)
        log.info("GitHub requests issued: %s", client.request_count)

    print(json.dumps(outcome.response.to_payload(), indent=2))
    return 0 if outcome.status_code == 200 else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
