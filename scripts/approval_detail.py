#!/usr/bin/env python3
"""Show a submitted approval's controls in a readable, mapping-friendly form.

Useful for learning which control ids / option keys an existing approval
used before filling a template by hand.

Usage:
    python scripts/approval_detail.py --sp-no 202602120011
"""

import argparse
import sys

from wecom_api import TokenCache, fetch_approval_detail, get_access_token
from wecom_lib import WecomError, dump_json, load_config, read_text, require_config


def _collect(items, key: str) -> list:
    if not isinstance(items, list):
        return []
    return [x.get(key) for x in items if isinstance(x, dict) and x.get(key)]


def normalize_contents(contents: list[dict]) -> list[dict]:
    """One row per apply_data control with its text and any linked keys/ids."""
    rows = []
    for c in contents or []:
        value = c.get("value") or {}
        title = c.get("title")
        if isinstance(title, list):
            title = title[0].get("text", "") if title and isinstance(title[0], dict) else ""
        elif isinstance(title, dict):
            title = title.get("text", "")
        selector = value.get("selector") or {}
        rows.append({
            "id": c.get("id"),
            "control": c.get("control"),
            "title": title or "",
            "text_preview": read_text(value),
            "selector_keys": _collect(selector.get("options"), "key"),
            "related_sp_no": _collect(value.get("related_approval"), "sp_no"),
            "file_ids": _collect(value.get("files"), "file_id"),
        })
    return rows


def main():
    parser = argparse.ArgumentParser(description="Show a WeCom approval's controls")
    parser.add_argument("--sp-no", required=True, help="Approval number")
    args = parser.parse_args()

    config = load_config()
    require_config(config, ["corp_id", "secret"])

    try:
        token = get_access_token(config["corp_id"], config["secret"], TokenCache())
        info = fetch_approval_detail(token, args.sp_no)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    contents = (info.get("apply_data") or {}).get("contents") or []
    print(dump_json({"sp_no": args.sp_no, "controls": normalize_contents(contents)}))


if __name__ == "__main__":
    main()
