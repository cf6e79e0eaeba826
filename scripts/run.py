#!/usr/bin/env python3
"""Single-word command dispatcher for the WeCom approval scripts.

Maps command words to script invocations. Anything after the command word
is passed through to the script unchanged, so dry-run stays the default
unless --submit / --send is given.

Usage:
    python scripts/run.py health
    python scripts/run.py workflow --reason "版本发布" --date 2026-02-14
    python scripts/run.py detail 202602120011
    python scripts/run.py --help
"""

import subprocess
import sys
from pathlib import Path

SCRIPTS_DIR = Path(__file__).resolve().parent

# --- Commands (word + passthrough flags) ---
COMMANDS = {
    "health":   ("health_check.py", [],             "Check token, default user and templates"),
    "list":     ("approval_list.py", [],            "List recent approval numbers (--days, --size)"),
    "reminder": ("pending_reminder.py", [],         "Preview/send pending-approval reminders (--send)"),
    "overtime": ("overtime_submit.py", [],          "Build/submit an overtime approval"),
    "expense":  ("expense_submit.py", [],           "Build/submit an expense claim"),
    "workflow": ("overtime_expense_submit.py", [],  "Overtime approval + linked expense claim"),
    "invoice":  ("invoice_submit.py", [],           "Submit an e-invoice approval from a PDF"),
}

# --- Parameterized commands (word + target) ---
PARAM_COMMANDS = {
    "detail":   ("approval_detail.py", ["--sp-no"], "Show a submitted approval's controls"),
    "upload":   ("upload_file.py", ["--file"],      "Upload a file and print its media_id"),
}


def show_help():
    """Print all available commands."""
    print("WeCom Approvals: Single-Word Commands")
    print("=" * 55)
    print()
    print("COMMANDS (extra flags are passed through):")
    for cmd, (script, _, desc) in sorted(COMMANDS.items()):
        print(f"  {cmd:<14s} {desc}")
    print()
    print("PARAMETERIZED COMMANDS (word + target):")
    for cmd, (script, _, desc) in sorted(PARAM_COMMANDS.items()):
        print(f"  {cmd:<14s} {desc}")
    print()
    print("SESSION SEQUENCES:")
    print("  Setup:    health → list → detail <sp_no>")
    print("  Overtime: workflow --reason ... → workflow --reason ... --submit")
    print("  Receipts: upload <file> → expense --file-id <media_id> ...")
    print()
    print("Usage: python scripts/run.py <command> [target] [flags...]")


def build_argv(cmd: str, rest: list[str]) -> list[str]:
    """Script argv for ``cmd``; exits on unknown commands or a missing target."""
    if cmd in COMMANDS:
        script, args, _ = COMMANDS[cmd]
        return [sys.executable, str(SCRIPTS_DIR / script)] + args + rest
    if cmd in PARAM_COMMANDS:
        script, args, _ = PARAM_COMMANDS[cmd]
        if not rest:
            print(f"Error: '{cmd}' requires a target.", file=sys.stderr)
            print(f"Usage: python scripts/run.py {cmd} <target>", file=sys.stderr)
            sys.exit(1)
        return [sys.executable, str(SCRIPTS_DIR / script)] + args + rest
    print(f"Unknown command: '{cmd}'", file=sys.stderr)
    print("Run 'python scripts/run.py --help' for available commands.", file=sys.stderr)
    sys.exit(1)


def main():
    if len(sys.argv) < 2 or sys.argv[1] in ("--help", "-h", "help"):
        show_help()
        sys.exit(0)

    full_args = build_argv(sys.argv[1].lower(), sys.argv[2:])
    result = subprocess.run(full_args)
    sys.exit(result.returncode)


if __name__ == "__main__":
    main()
