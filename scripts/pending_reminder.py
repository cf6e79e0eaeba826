#!/usr/bin/env python3
"""Remind approvers of approvals waiting on them.

Lists recent approvals, keeps the ones still pending (sp_status == 1), counts
the pending steps per approver and sends each approver one text message.
Only approvers with something pending are messaged. Default is a dry run that
prints the messages.

Usage:
    python scripts/pending_reminder.py               # preview messages
    python scripts/pending_reminder.py --days 7
    python scripts/pending_reminder.py --send
"""

import argparse
import sys
from datetime import datetime

from approval_list import list_recent_sp_nos
from wecom_api import (
    TokenCache,
    errcode_of,
    fetch_approval_detail,
    get_access_token,
    send_text_message,
)
from wecom_lib import (
    TZ,
    ApiError,
    WecomError,
    config_int,
    dump_json,
    load_config,
    require_config,
)

SP_STATUS_PENDING = 1

LIST_PAGE_SIZE = 100
LIST_MAX_ROUNDS = 8
# Only the most recent approvals are inspected.
RECENT_LIMIT = 300

MAX_SAMPLES = 10
MAX_MESSAGE_CHARS = 1800
DEFAULT_LOOKBACK_DAYS = 3


def collect_pending(details: list[tuple[str, dict]]) -> dict[str, dict]:
    """Per-approver pending counts from (sp_no, detail info) pairs.

    Returns {userid: {"total", "by_type": {sp_name: n}, "samples": [{sp_no, sp_name}]}}.
    """
    per_user = {}
    for sp_no, info in details:
        if int(info.get("sp_status") or 0) != SP_STATUS_PENDING:
            continue
        sp_name = str(info.get("sp_name") or "审批")
        for node in info.get("sp_record") or []:
            for detail in node.get("details") or []:
                uid = (detail.get("approver") or {}).get("userid")
                if not uid or int(detail.get("sp_status", -1)) != SP_STATUS_PENDING:
                    continue
                entry = per_user.setdefault(uid, {"total": 0, "by_type": {}, "samples": []})
                entry["total"] += 1
                entry["by_type"][sp_name] = entry["by_type"].get(sp_name, 0) + 1
                if len(entry["samples"]) < MAX_SAMPLES:
                    entry["samples"].append({"sp_no": sp_no, "sp_name": sp_name})
    return per_user


def build_message(data: dict, now: datetime | None = None) -> str:
    now = now or datetime.now(TZ)
    lines = ["【待审批提醒】", f"你当前待处理：{data['total']} 条"]
    for name, count in sorted(data["by_type"].items(), key=lambda kv: -kv[1]):
        lines.append(f"- {name}: {count}")
    if data["samples"]:
        lines.append("")
        lines.append("示例审批单号:")
        for s in data["samples"][:8]:
            lines.append(f"- {s['sp_no']}（{s['sp_name']}）")
    lines.append("")
    lines.append("请在：工作台 → 审批 → 待处理中处理。")
    lines.append(f"时间：{now:%Y/%m/%d %H:%M:%S}")
    return "\n".join(lines)[:MAX_MESSAGE_CHARS]


def fetch_details(access_token: str, sp_nos: list[str]) -> list[tuple[str, dict]]:
    """Detail for each sp_no; unreadable approvals are skipped with a warning."""
    details = []
    for sp_no in sp_nos:
        try:
            details.append((sp_no, fetch_approval_detail(access_token, sp_no)))
        except ApiError as e:
            print(f"  Warning: skipping {sp_no}: {e}", file=sys.stderr)
    return details


def send_reminders(access_token: str, agent_id: str, per_user: dict) -> dict:
    sent = 0
    failed_users = []
    for uid, data in per_user.items():
        if not data["total"]:
            continue
        try:
            resp = send_text_message(access_token, agent_id, uid, build_message(data))
            code = errcode_of(resp)
            errmsg = resp.get("errmsg") or ""
        except ApiError as e:
            code, errmsg = -1, e.errmsg
        if code == 0:
            sent += 1
        else:
            failed_users.append({"uid": uid, "errcode": code, "errmsg": str(errmsg)})
    return {
        "usersWithPending": len(per_user),
        "sent": sent,
        "failed": len(failed_users),
        "failedUsers": failed_users[:20],
    }


def main():
    parser = argparse.ArgumentParser(description="Remind approvers of pending WeCom approvals")
    parser.add_argument("--days", type=int, help="Look-back window in days (default 3)")
    parser.add_argument("--send", action="store_true",
                        help="Actually send messages (default is preview)")
    args = parser.parse_args()

    config = load_config()
    required = ["corp_id", "secret"] + (["agent_id"] if args.send else [])
    require_config(config, required)
    days = args.days or config_int(config, "remind_lookback_days", DEFAULT_LOOKBACK_DAYS)
    if args.send:
        config_int(config, "agent_id")

    try:
        token = get_access_token(config["corp_id"], config["secret"], TokenCache())
        sp_nos = list_recent_sp_nos(token, days, LIST_PAGE_SIZE, LIST_MAX_ROUNDS)[-RECENT_LIMIT:]
        per_user = collect_pending(fetch_details(token, sp_nos))

        if not args.send:
            for uid, data in per_user.items():
                print(f"--- {uid} ---")
                print(build_message(data))
                print()
            print(f"Preview only: {len(per_user)} approver(s) with pending items. "
                  f"Add --send to message them.")
            return

        report = send_reminders(token, config["agent_id"], per_user)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(dump_json(report))


if __name__ == "__main__":
    main()
