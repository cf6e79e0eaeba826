"""Bind business values onto template controls and encode WeCom wire values.

Each template's controls are matched against an ordered rule table. A rule
fires when the control title matches its pattern and the control kind is one
it accepts (or the control id is one it claims). The first rule that fires
owns the control; its encoder produces the ``value`` for apply_data.contents,
or None to leave the control unfilled.
"""

import re
import sys
from collections import namedtuple

from template_controls import audit_required, choose_option, format_missing, resolve_options
from wecom_lib import (
    MissingRequiredInput,
    SelectorOptionNotFound,
    calc_hours,
    format_cn,
    trim20,
)

TEXT_KINDS = ("Text", "Textarea")

# WeCom attendance subtype for overtime.
ATTENDANCE_TYPE_OVERTIME = 5

# Built-in overtime control id in the stock overtime template.
SMART_TIME_IDS = ("smart-time",)

FieldRule = namedtuple("FieldRule", ["field", "pattern", "kinds", "encoder", "control_ids"],
                       defaults=[()])


def rule_matches(rule: FieldRule, control: dict) -> bool:
    if control["id"] in rule.control_ids:
        return True
    if rule.kinds and control["control"] not in rule.kinds:
        return False
    if rule.pattern is not None and not rule.pattern.search(control["title"]):
        return False
    return True


# ---------------------------------------------------------------------------
# Encoders: (control, values) -> wire value or None
# ---------------------------------------------------------------------------


def encode_members(control, values):
    return {"members": [{"userid": values["user_id"]}]}


def encode_text(name):
    def encoder(control, values):
        return {"text": values[name]}
    return encoder


def encode_date(name, date_type):
    def encoder(control, values):
        return {"date": {"type": date_type, "s_timestamp": str(values[name])}}
    return encoder


def _date_range(values) -> dict:
    return {
        "type": "hour",
        "new_begin": values["start_ts"],
        "new_end": values["end_ts"],
        "new_duration": values["end_ts"] - values["start_ts"],
    }


def encode_attendance(control, values):
    return {"attendance": {"date_range": _date_range(values), "type": ATTENDANCE_TYPE_OVERTIME}}


def encode_date_range(control, values):
    return {"date_range": _date_range(values)}


def encode_duration(control, values):
    if control["control"] == "Number":
        return {"new_number": values["hours"]}
    return {"text": values["hours"]}


def encode_amount(control, values):
    if control["control"] == "Money":
        return {"new_money": str(values["amount"])}
    return {"new_number": str(values["amount"])}


def encode_related_approval(control, values):
    sp_no = values.get("related_sp_no")
    if not sp_no:
        return None
    return {"related_approval": [{"sp_no": sp_no}]}


def encode_files(control, values):
    file_id = values.get("file_id")
    if not file_id:
        # left for the required-field audit to report
        return None
    return {"files": [{"file_id": file_id}]}


def encode_selector(field, key_name, keyword_name):
    """Selector encoder: explicit key, else keyword match, else first option."""
    def encoder(control, values):
        key = values.get(key_name)
        if not key:
            options = resolve_options(control)
            hit = choose_option(options, values.get(keyword_name)) or (options[0] if options else None)
            if hit is None:
                raise SelectorOptionNotFound(
                    f"{field} selector '{control['title']}' has no options; "
                    f"pass an explicit option key"
                )
            key = hit["key"]
        return {"selector": {"type": "single", "options": [{"key": key}]}}
    return encoder


# ---------------------------------------------------------------------------
# Rule tables (priority order)
# ---------------------------------------------------------------------------

OVERTIME_RULES = [
    FieldRule("reason", re.compile(r"事由|原因|说明|备注"), TEXT_KINDS, encode_text("reason")),
    FieldRule("start", re.compile(r"开始"), ("Date",), encode_date("start_ts", "hour")),
    FieldRule("end", re.compile(r"结束"), ("Date",), encode_date("end_ts", "hour")),
    FieldRule("duration", re.compile(r"时长|小时"), TEXT_KINDS + ("Number",), encode_duration),
    FieldRule("applicant", re.compile(r"申请人|加班人|人员"), ("Contact",), encode_members),
    FieldRule("attendance", None, ("Attendance",), encode_attendance, SMART_TIME_IDS),
    FieldRule("date_range", None, ("DateRange",), encode_date_range),
]

EXPENSE_RULES = [
    FieldRule("applicant", re.compile(r"申请人"), ("Contact",), encode_members),
    FieldRule("project", re.compile(r"关联项目"), ("Selector",),
              encode_selector("project", "project_key", "project_keyword")),
    FieldRule("date", re.compile(r"产生日期|日期"), ("Date",), encode_date("date_ts", "day")),
    FieldRule("related_approval", re.compile(r"关联审批单"), ("RelatedApproval",),
              encode_related_approval),
    FieldRule("category", re.compile(r"类别"), ("Selector",),
              encode_selector("category", "category_key", "category_keyword")),
    FieldRule("purpose", re.compile(r"用途说明|用途"), TEXT_KINDS, encode_text("purpose")),
    FieldRule("amount", re.compile(r"报销金额|金额"), ("Money", "Number"), encode_amount),
    FieldRule("remark", re.compile(r"备注"), TEXT_KINDS, encode_text("remark")),
    FieldRule("attachment", re.compile(r"报销证明|证明图片|附件"), ("File",), encode_files),
]


def match_rule(control: dict, rules: list[FieldRule]) -> FieldRule | None:
    for rule in rules:
        if rule_matches(rule, control):
            return rule
    return None


def bind_controls(controls: list[dict], rules: list[FieldRule], values: dict) -> list[dict]:
    """Build apply_data.contents for every control a rule fills, in control order."""
    contents = []
    for control in controls:
        rule = match_rule(control, rules)
        if rule is None:
            continue
        value = rule.encoder(control, values)
        if value is not None:
            contents.append({"control": control["control"], "id": control["id"], "value": value})
    return contents


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


def build_summary_list(lines: list[str]) -> list[dict]:
    return [{"summary_info": [{"text": trim20(line), "lang": "zh_CN"}]} for line in lines]


def build_payload(creator_userid: str, template_id: str, contents: list[dict],
                  summary_lines: list[str]) -> dict:
    return {
        "creator_userid": creator_userid,
        "template_id": template_id,
        "use_template_approver": 1,
        "apply_data": {"contents": contents},
        "summary_list": build_summary_list(summary_lines),
    }


def filled_ids(payload: dict) -> set[str]:
    return {c["id"] for c in payload["apply_data"]["contents"]}


def missing_required(controls: list[dict], payload: dict) -> list[dict]:
    return audit_required(controls, filled_ids(payload))


def build_overtime_payload(
    controls: list[dict],
    user_id: str,
    template_id: str,
    reason: str,
    start_ts: int,
    end_ts: int,
) -> dict:
    """Overtime application: reason, time window, duration and applicant."""
    if not (reason or "").strip():
        raise MissingRequiredInput("missing overtime reason (--reason)")
    values = {
        "user_id": user_id,
        "reason": reason,
        "start_ts": start_ts,
        "end_ts": end_ts,
        "hours": calc_hours(start_ts, end_ts),
    }
    contents = bind_controls(controls, OVERTIME_RULES, values)
    return build_payload(user_id, template_id, contents, [
        f"加班事由:{reason}",
        f"开始:{format_cn(start_ts)}",
        f"结束:{format_cn(end_ts)}",
    ])


def build_expense_payload(
    controls: list[dict],
    user_id: str,
    template_id: str,
    purpose: str,
    amount: str,
    date_ts: int,
    remark: str = "",
    related_sp_no: str = "",
    project_key: str = "",
    project_keyword: str = "",
    category_key: str = "",
    category_keyword: str = "",
    file_id: str = "",
) -> dict:
    """Expense claim: project/category selectors, date, amount, texts, links."""
    if not (purpose or "").strip():
        raise MissingRequiredInput("missing expense purpose (--purpose)")
    if not str(amount or "").strip():
        raise MissingRequiredInput("missing expense amount (--amount)")
    values = {
        "user_id": user_id,
        "purpose": purpose,
        "remark": remark or purpose,
        "amount": str(amount),
        "date_ts": date_ts,
        "related_sp_no": related_sp_no,
        "project_key": project_key,
        "project_keyword": project_keyword,
        "category_key": category_key,
        "category_keyword": category_keyword,
        "file_id": file_id,
    }
    contents = bind_controls(controls, EXPENSE_RULES, values)
    return build_payload(user_id, template_id, contents, [
        f"类别:{category_keyword}",
        f"用途:{purpose}",
        f"日期:{format_cn(date_ts, with_time=False)} 金额:{amount}",
    ])


def print_missing_required(controls: list[dict], payload: dict) -> None:
    """Warn (stderr) about required controls the payload leaves empty."""
    missing = missing_required(controls, payload)
    if missing:
        print("Warning: required controls not auto-filled:", file=sys.stderr)
        for line in format_missing(missing):
            print(line, file=sys.stderr)
