#!/usr/bin/env python3
"""Generate (and optionally submit) a WeCom overtime approval.

Fetches the overtime template, binds reason / time window / duration onto its
controls and prints the applyevent payload. Nothing is sent without --submit.

Usage:
    python scripts/overtime_submit.py --reason "修复线上问题" --start "2026-02-12 19:00" --end "2026-02-12 22:30"
    python scripts/overtime_submit.py --reason "..." --start "..." --end "..." --submit
    python scripts/overtime_submit.py --inspect      # list template controls
"""

import argparse
import sys

from field_binding import build_overtime_payload, print_missing_required
from template_controls import inspect_rows
from wecom_api import TokenCache, fetch_template_controls, get_access_token, submit_apply_event
from wecom_lib import WecomError, calc_hours, dump_json, load_config, require_config, to_ts


def run(args, config: dict) -> None:
    start_ts = end_ts = 0
    if not args.inspect:
        start_ts = to_ts(args.start)
        end_ts = to_ts(args.end)
        # fail on a bad window before talking to WeCom
        calc_hours(start_ts, end_ts)

    token = get_access_token(config["corp_id"], config["secret"], TokenCache())
    controls = fetch_template_controls(token, config["template_overtime"])

    if args.inspect:
        print(dump_json(inspect_rows(controls)))
        return

    payload = build_overtime_payload(
        controls,
        user_id=config["default_user_id"],
        template_id=config["template_overtime"],
        reason=args.reason,
        start_ts=start_ts,
        end_ts=end_ts,
    )
    print_missing_required(controls, payload)
    print(dump_json(payload))

    if not args.submit:
        print("\nDry-run only. Add --submit to actually create approval.")
        return

    sp_no = submit_apply_event(token, payload)
    print(f"\nSUCCESS: submitted sp_no={sp_no or 'unknown'}")


def main():
    parser = argparse.ArgumentParser(description="Create a WeCom overtime approval")
    parser.add_argument("--reason", help="Overtime reason")
    parser.add_argument("--start", help='Start time, e.g. "2026-02-12 19:00"')
    parser.add_argument("--end", help='End time, e.g. "2026-02-12 22:30"')
    parser.add_argument("--submit", action="store_true",
                        help="Actually submit (default is dry-run)")
    parser.add_argument("--inspect", action="store_true",
                        help="Print the template controls and exit")
    args = parser.parse_args()

    if not args.inspect and not (args.reason and args.start and args.end):
        parser.error("Specify --reason, --start and --end (or --inspect)")

    config = load_config()
    require_config(config, ["corp_id", "secret", "default_user_id", "template_overtime"])

    try:
        run(args, config)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
