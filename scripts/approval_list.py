#!/usr/bin/env python3
"""List approval sp_no values created within a recent time window.

Walks the cursor-paginated getapprovalinfo endpoint until the service stops
returning items, the cursor stops moving, or the round cap is reached.

Usage:
    python scripts/approval_list.py                 # last 30 days
    python scripts/approval_list.py --days 7 --size 50
"""

import argparse
import sys

from wecom_api import TokenCache, errcode_of, fetch_approval_page, get_access_token
from wecom_lib import (
    ApiError,
    ListingPageError,
    WecomError,
    dump_json,
    load_config,
    now_ts,
    require_config,
)

DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_ROUNDS = 10
MAX_PAGE_SIZE = 100


def list_all(
    fetch_page,
    query: dict,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> list[str]:
    """Accumulate sp_no values across cursor pages.

    ``fetch_page(query)`` returns one raw getapprovalinfo response. A page
    error ends the walk early and keeps what was already collected.
    """
    cursor = 0
    items = []
    for _ in range(max_rounds):
        page_query = dict(query, cursor=cursor, size=page_size)
        try:
            resp = fetch_page(page_query)
            if errcode_of(resp) != 0:
                raise ListingPageError("getapprovalinfo", errcode_of(resp),
                                       (resp or {}).get("errmsg") or "unknown")
        except ApiError as e:
            print(f"  Warning: listing stopped early ({e}); keeping {len(items)} item(s)",
                  file=sys.stderr)
            break

        page = resp.get("sp_no_list") or []
        items.extend(page)
        if not page:
            break

        try:
            next_cursor = int(resp.get("next_cursor") or 0)
        except (TypeError, ValueError):
            next_cursor = 0
        if not next_cursor or next_cursor == cursor:
            break
        cursor = next_cursor
    return items


def list_recent_sp_nos(access_token: str, days: int, page_size: int = DEFAULT_PAGE_SIZE,
                       max_rounds: int = DEFAULT_MAX_ROUNDS) -> list[str]:
    end = now_ts()
    start = end - days * 24 * 3600
    return list_all(
        lambda q: fetch_approval_page(access_token, q),
        {"starttime": start, "endtime": end},
        page_size=page_size,
        max_rounds=max_rounds,
    )


def clamp_page_size(size: int) -> int:
    return min(MAX_PAGE_SIZE, max(1, size))


def main():
    parser = argparse.ArgumentParser(description="List recent WeCom approval sp_no values")
    parser.add_argument("--days", type=int, default=30, help="Look-back window in days (default 30)")
    parser.add_argument("--size", type=int, default=DEFAULT_PAGE_SIZE,
                        help="Page size, 1-100 (default 20)")
    args = parser.parse_args()

    config = load_config()
    require_config(config, ["corp_id", "secret"])

    try:
        token = get_access_token(config["corp_id"], config["secret"], TokenCache())
        sp_nos = list_recent_sp_nos(token, args.days, clamp_page_size(args.size))
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(dump_json({"count": len(sp_nos), "sp_no_list": sp_nos}))


if __name__ == "__main__":
    main()
