#!/usr/bin/env python3
"""One-shot workflow: overtime approval, then an expense claim linked to it.

1) submit the overtime approval and read back its sp_no
2) submit the expense claim with that sp_no in its related-approval control

The two submissions are not atomic. If the expense claim fails, the overtime
approval already exists in WeCom and is left in place; the script prints the
command to finish the expense claim by hand.

Without --start/--end a random overtime window is picked on --date (or today).

Usage:
    python scripts/overtime_expense_submit.py --reason "版本发布" --date 2026-02-14
    python scripts/overtime_expense_submit.py --reason "..." --start "2026-02-12 19:00" --end "2026-02-12 22:30"
    python scripts/overtime_expense_submit.py --reason "..." --submit
"""

import argparse
import sys

from expense_submit import DEFAULT_AMOUNT, resolve_category, resolve_project
from field_binding import build_expense_payload, build_overtime_payload, print_missing_required
from wecom_api import TokenCache, fetch_template_controls, get_access_token, submit_apply_event
from wecom_lib import (
    SubmissionRejected,
    WecomError,
    calc_hours,
    dump_json,
    format_cn,
    format_date,
    load_config,
    now_ts,
    pick_random_overtime_window,
    require_config,
    to_ts,
)

PLACEHOLDER_SP_NO = "TO_BE_FILLED_AFTER_OVERTIME_SUBMIT"


def submit_chain(primary_payload: dict, build_secondary, submit, dry_run: bool = False) -> dict:
    """Submit ``primary_payload``, then ``build_secondary(primary_sp_no)``.

    A rejected primary raises (nothing was created). A failed secondary is
    returned in ``secondary_error``; the primary is not rolled back.
    In dry-run mode nothing is submitted and the secondary is built with a
    placeholder sp_no.
    """
    result = {
        "primary_sp_no": None,
        "secondary_sp_no": None,
        "primary_payload": primary_payload,
        "secondary_payload": None,
        "secondary_error": None,
    }
    if dry_run:
        result["secondary_payload"] = build_secondary(PLACEHOLDER_SP_NO)
        return result

    primary_sp_no = submit(primary_payload)
    if not primary_sp_no:
        # the secondary would be created without its link
        raise SubmissionRejected("applyevent", 0, "primary submission returned no sp_no")
    result["primary_sp_no"] = primary_sp_no

    try:
        result["secondary_payload"] = build_secondary(primary_sp_no)
        result["secondary_sp_no"] = submit(result["secondary_payload"])
    except WecomError as e:
        result["secondary_error"] = e
    return result


def resolve_window(start: str | None, end: str | None, date: str | None) -> tuple[int, int, int]:
    """(start_ts, end_ts, date_ts); random window when start/end are absent."""
    if start and end:
        start_ts = to_ts(start)
        end_ts = to_ts(end)
        date_ts = to_ts(date) if date else to_ts(format_date(start_ts))
    else:
        date_ts = to_ts(date) if date else now_ts()
        start_ts, end_ts = pick_random_overtime_window(date_ts)
    calc_hours(start_ts, end_ts)
    return start_ts, end_ts, date_ts


def run(args, config: dict) -> bool:
    start_ts, end_ts, date_ts = resolve_window(args.start, args.end, args.date)
    if not (args.start and args.end):
        print(f"Auto time window selected: {format_cn(start_ts)} ~ {format_cn(end_ts)}")

    purpose = args.purpose or args.reason
    remark = args.remark or purpose
    category_key, category_keyword = resolve_category(config, date_ts)
    project_key, project_name = resolve_project(config)
    user_id = config["default_user_id"]

    token = get_access_token(config["corp_id"], config["secret"], TokenCache())
    overtime_controls = fetch_template_controls(token, config["template_overtime"])
    expense_controls = fetch_template_controls(token, config["template_expense"])

    overtime_payload = build_overtime_payload(
        overtime_controls,
        user_id=user_id,
        template_id=config["template_overtime"],
        reason=args.reason,
        start_ts=start_ts,
        end_ts=end_ts,
    )
    print_missing_required(overtime_controls, overtime_payload)

    def build_expense(related_sp_no: str) -> dict:
        return build_expense_payload(
            expense_controls,
            user_id=user_id,
            template_id=config["template_expense"],
            purpose=purpose,
            amount=args.amount,
            date_ts=date_ts,
            remark=remark,
            related_sp_no=related_sp_no,
            project_key=project_key,
            project_keyword=project_name,
            category_key=category_key,
            category_keyword=category_keyword,
        )

    if args.submit:
        # surface expense input problems before anything is created
        build_expense(PLACEHOLDER_SP_NO)

    result = submit_chain(
        overtime_payload,
        build_expense,
        lambda payload: submit_apply_event(token, payload),
        dry_run=not args.submit,
    )
    if result["secondary_payload"] is not None:
        print_missing_required(expense_controls, result["secondary_payload"])

    if not args.submit:
        print("--- overtime payload (dry-run) ---")
        print(dump_json(result["primary_payload"]))
        print("\n--- expense payload (dry-run, related sp_no placeholder) ---")
        print(dump_json(result["secondary_payload"]))
        print("\nDry-run only. Add --submit to execute both submissions.")
        return True

    print(f"SUCCESS: overtime submitted: sp_no={result['primary_sp_no']}")
    if result["secondary_error"] is not None:
        sp_no = result["primary_sp_no"]
        print(f"Error: expense submission failed: {result['secondary_error']}", file=sys.stderr)
        print(f"  Overtime approval {sp_no} was already created and is NOT rolled back.",
              file=sys.stderr)
        print(f"  Resubmit the expense manually:\n"
              f"    python scripts/expense_submit.py --purpose \"{purpose}\" --amount {args.amount}"
              f" --date {format_date(date_ts)} --related-sp-no {sp_no} --submit",
              file=sys.stderr)
        return False

    print(f"SUCCESS: expense submitted: sp_no={result['secondary_sp_no']}")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Submit an overtime approval and a linked expense claim"
    )
    parser.add_argument("--reason", required=True, help="Overtime reason")
    parser.add_argument("--purpose", help="Expense purpose (defaults to reason)")
    parser.add_argument("--remark", help="Expense remark (defaults to purpose)")
    parser.add_argument("--date", help="Overtime/expense date YYYY-MM-DD")
    parser.add_argument("--start", help='Overtime start, e.g. "2026-02-12 19:00"')
    parser.add_argument("--end", help='Overtime end, e.g. "2026-02-12 22:30"')
    parser.add_argument("--amount", default=DEFAULT_AMOUNT, help="Expense amount (default 150)")
    parser.add_argument("--submit", action="store_true",
                        help="Actually submit both approvals (default is dry-run)")
    args = parser.parse_args()

    if bool(args.start) != bool(args.end):
        parser.error("--start and --end must be given together")

    config = load_config()
    require_config(config, [
        "corp_id", "secret", "default_user_id", "template_overtime", "template_expense",
    ])

    try:
        ok = run(args, config)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
