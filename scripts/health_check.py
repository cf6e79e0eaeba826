#!/usr/bin/env python3
"""Check WeCom credentials and template access before a submission run.

Verifies: access token, the default user, the overtime template and the
expense template. Secrets and ids are masked in the output.

Usage:
    python scripts/health_check.py
"""

import sys

from wecom_api import TokenCache, fetch_template, get_access_token, get_user
from wecom_lib import WecomError, dump_json, load_config, require_config


def mask(value, keep: int = 4) -> str:
    """Keep the first and last ``keep`` characters; short values are fully hidden."""
    text = str(value or "")
    if not text:
        return ""
    if len(text) <= keep * 2:
        return "*" * len(text)
    return f"{text[:keep]}***{text[-keep:]}"


def run_checks(config: dict) -> list[dict]:
    """Run each check in order; a failed token check stops the rest."""
    checks = []
    try:
        token = get_access_token(config["corp_id"], config["secret"], TokenCache())
    except WecomError as e:
        checks.append({"name": "access_token", "ok": False, "detail": str(e)})
        return checks
    checks.append({"name": "access_token", "ok": True, "detail": f"token={mask(token, 6)}"})

    try:
        user = get_user(token, config["default_user_id"])
        checks.append({
            "name": "default_user",
            "ok": True,
            "detail": f"userid={mask(config['default_user_id'], 2)} name={user.get('name', '')}",
        })
    except WecomError as e:
        checks.append({"name": "default_user", "ok": False, "detail": str(e)})

    for name in ("template_overtime", "template_expense"):
        template_id = config[name]
        try:
            data = fetch_template(token, template_id)
            title = ""
            names = data.get("template_names")
            if isinstance(names, list) and names and isinstance(names[0], dict):
                title = names[0].get("text", "")
            checks.append({
                "name": name,
                "ok": True,
                "detail": f"template_id={mask(template_id, 6)} title={title}",
            })
        except WecomError as e:
            checks.append({"name": name, "ok": False, "detail": str(e)})
    return checks


def main():
    config = load_config()
    require_config(config, [
        "corp_id", "secret", "default_user_id", "template_overtime", "template_expense",
    ])

    print("WeCom health check")
    print(f"  corp_id: {mask(config['corp_id'])}")
    print(f"  secret:  {mask(config['secret'])}")
    print()

    checks = run_checks(config)
    for check in checks:
        mark = "OK  " if check["ok"] else "FAIL"
        print(f"  [{mark}] {check['name']}: {check['detail']}")

    failed = [c for c in checks if not c["ok"]]
    print()
    print(dump_json({"ok": not failed, "failed": [c["name"] for c in failed]}))
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
