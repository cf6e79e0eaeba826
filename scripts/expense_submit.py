#!/usr/bin/env python3
"""Generate (and optionally submit) a WeCom expense claim.

Binds project / category selectors, date, amount, purpose, remark, a linked
approval and an attachment onto the expense template's controls.

Usage:
    python scripts/expense_submit.py --purpose "周六加班餐补" --amount 150 --date 2026-02-14
    python scripts/expense_submit.py --purpose "..." --related-sp-no 202602120011 --submit
    python scripts/expense_submit.py --purpose "..." --category-type inland-trip
    python scripts/expense_submit.py --inspect      # list controls and selector options
"""

import argparse
import sys

from field_binding import build_expense_payload, print_missing_required
from template_controls import inspect_rows
from wecom_api import TokenCache, fetch_template_controls, get_access_token, submit_apply_event
from wecom_lib import (
    CATEGORY_ALIAS_ENV,
    MissingRequiredInput,
    WecomError,
    dump_json,
    is_weekend,
    load_config,
    require_config,
    to_ts,
    today_str,
)

DEFAULT_AMOUNT = "150"

CATEGORY_KEYWORD_WEEKDAY = "晚上加班"
CATEGORY_KEYWORD_WEEKEND = "周末加班"
CATEGORY_KEYWORD_INLAND_TRIP = "出差补贴-省内出差补贴"

CATEGORY_TYPES = sorted(CATEGORY_ALIAS_ENV)


def default_category_keyword(date_ts: int, category_type: str = "") -> str:
    """Inland trips use the trip allowance; otherwise weekend vs weekday overtime."""
    if category_type == "inland-trip":
        return CATEGORY_KEYWORD_INLAND_TRIP
    return CATEGORY_KEYWORD_WEEKEND if is_weekend(date_ts) else CATEGORY_KEYWORD_WEEKDAY


def resolve_category(
    config: dict,
    date_ts: int,
    category_type: str = "",
    category_key: str = "",
    category_keyword: str = "",
) -> tuple[str, str]:
    """Return (option key, keyword) for the expense category selector.

    An explicit key wins, then the configured key for ``category_type``, then
    the configured weekend/weekday overtime key. An empty key means "match
    the keyword against the selector's options".
    """
    keys = config.get("category_keys") or {}
    if not category_key and category_type:
        category_key = keys.get(category_type, "")
    if not category_key and not category_type:
        alias = "overtime-weekend" if is_weekend(date_ts) else "overtime-night"
        category_key = keys.get(alias, "")
    keyword = category_keyword or default_category_keyword(date_ts, category_type)
    return category_key or "", keyword


def resolve_project(config: dict, project_key: str = "", project_name: str = "") -> tuple[str, str]:
    key = project_key or config.get("expense_project_key") or ""
    name = project_name or config.get("expense_project_name") or ""
    return str(key), str(name)


def run(args, config: dict) -> None:
    date_ts = to_ts(args.date or today_str())
    if not args.inspect and not (args.purpose or "").strip():
        raise MissingRequiredInput("missing args: --purpose is required for submit/dry-run generation")

    category_key, category_keyword = resolve_category(
        config, date_ts, args.category_type or "", args.category_key or "", args.category or "",
    )
    project_key, project_name = resolve_project(config, args.project_key or "", args.project or "")

    token = get_access_token(config["corp_id"], config["secret"], TokenCache())
    controls = fetch_template_controls(token, config["template_expense"])

    if args.inspect:
        print(dump_json(inspect_rows(controls)))
        return

    payload = build_expense_payload(
        controls,
        user_id=config["default_user_id"],
        template_id=config["template_expense"],
        purpose=args.purpose,
        amount=args.amount,
        date_ts=date_ts,
        remark=args.remark or args.purpose,
        related_sp_no=args.related_sp_no or "",
        project_key=project_key,
        project_keyword=project_name,
        category_key=category_key,
        category_keyword=category_keyword,
        file_id=args.file_id or "",
    )
    print_missing_required(controls, payload)
    print(dump_json(payload))

    if not args.submit:
        print("\nDry-run only. Add --submit to actually create approval.")
        return

    sp_no = submit_apply_event(token, payload)
    print(f"\nSUCCESS: submitted sp_no={sp_no or 'unknown'}")


def main():
    parser = argparse.ArgumentParser(description="Create a WeCom expense claim")
    parser.add_argument("--purpose", help="Expense purpose (required unless --inspect)")
    parser.add_argument("--amount", default=DEFAULT_AMOUNT, help="Amount (default 150)")
    parser.add_argument("--date", help="Expense date YYYY-MM-DD (default today)")
    parser.add_argument("--remark", help="Remark (defaults to purpose)")
    parser.add_argument("--related-sp-no", help="Link an existing approval by sp_no")
    parser.add_argument("--project", help="Project name to match in the project selector")
    parser.add_argument("--project-key", help="Explicit project option key")
    parser.add_argument("--category", help="Category keyword to match in the category selector")
    parser.add_argument("--category-key", help="Explicit category option key")
    parser.add_argument("--category-type", choices=CATEGORY_TYPES,
                        help="Category alias resolved through configured option keys")
    parser.add_argument("--file-id", help="media_id of an uploaded attachment")
    parser.add_argument("--submit", action="store_true",
                        help="Actually submit (default is dry-run)")
    parser.add_argument("--inspect", action="store_true",
                        help="Print the template controls and selector options, then exit")
    args = parser.parse_args()

    config = load_config()
    require_config(config, ["corp_id", "secret", "default_user_id", "template_expense"])

    try:
        run(args, config)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
