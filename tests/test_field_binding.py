"""Tests for scripts/field_binding.py rule matching and payload building."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from field_binding import (
    ATTENDANCE_TYPE_OVERTIME,
    EXPENSE_RULES,
    OVERTIME_RULES,
    bind_controls,
    build_expense_payload,
    build_overtime_payload,
    build_summary_list,
    match_rule,
    missing_required,
    print_missing_required,
)
from wecom_lib import MissingRequiredInput, SelectorOptionNotFound, to_ts


def _control(cid, control, title, raw=None):
    return {"id": cid, "control": control, "title": title, "raw": raw or {}}


def _selector(cid, title, options, require=1):
    return _control(cid, "Selector", title, raw={
        "property": {"require": require, "options": [
            {"key": key, "value": [{"text": text}]} for key, text in options
        ]},
    })


def _by_id(payload):
    return {c["id"]: c for c in payload["apply_data"]["contents"]}


EXPENSE_CONTROLS = [
    _control("Contact-1", "Contact", "申请人"),
    _selector("Selector-project", "关联项目", [("p1", "日常运营"), ("p2", "平台研发")]),
    _control("Date-1", "Date", "费用产生日期"),
    _control("RelatedApproval-1", "RelatedApproval", "关联审批单"),
    _selector("Selector-category", "报销类别", [("c1", "晚上加班"), ("c2", "周末加班")]),
    _control("Textarea-1", "Textarea", "用途说明"),
    _control("Money-1", "Money", "报销金额"),
    _control("Text-remark", "Text", "备注"),
    _control("File-1", "File", "报销证明", raw={"property": {"require": 1}}),
]

OVERTIME_CONTROLS = [
    _control("Contact-1", "Contact", "加班人"),
    _control("Textarea-1", "Textarea", "加班事由"),
    _control("Date-start", "Date", "开始时间"),
    _control("Date-end", "Date", "结束时间"),
    _control("Number-1", "Number", "加班时长(小时)"),
    _control("smart-time", "Attendance", "加班"),
]

START = to_ts("2026-02-14 09:00")
END = to_ts("2026-02-14 17:30")


def _expense(**overrides):
    kwargs = dict(
        user_id="zhangsan",
        template_id="tpl-expense",
        purpose="周六加班餐补",
        amount="150",
        date_ts=to_ts("2026-02-14"),
        project_keyword="平台",
        category_keyword="周末加班",
    )
    kwargs.update(overrides)
    return build_expense_payload(EXPENSE_CONTROLS, **kwargs)


# ---------------------------------------------------------------------------
# Expense binding
# ---------------------------------------------------------------------------


def test_expense_payload_envelope():
    """build_expense_payload fills the applyevent envelope."""
    payload = _expense()
    assert payload["creator_userid"] == "zhangsan"
    assert payload["template_id"] == "tpl-expense"
    assert payload["use_template_approver"] == 1
    assert len(payload["summary_list"]) == 3


def test_expense_payload_values():
    """build_expense_payload encodes each bound control."""
    contents = _by_id(_expense(related_sp_no="SP100"))
    assert contents["Contact-1"]["value"] == {"members": [{"userid": "zhangsan"}]}
    assert contents["Selector-project"]["value"] == {
        "selector": {"type": "single", "options": [{"key": "p2"}]},
    }
    assert contents["Date-1"]["value"] == {
        "date": {"type": "day", "s_timestamp": str(to_ts("2026-02-14"))},
    }
    assert contents["RelatedApproval-1"]["value"] == {"related_approval": [{"sp_no": "SP100"}]}
    assert contents["Selector-category"]["value"]["selector"]["options"] == [{"key": "c2"}]
    assert contents["Textarea-1"]["value"] == {"text": "周六加班餐补"}
    assert contents["Money-1"]["value"] == {"new_money": "150"}
    assert contents["Text-remark"]["value"] == {"text": "周六加班餐补"}


def test_expense_contents_follow_control_order():
    """Contents keep the template's control order."""
    ids = [c["id"] for c in _expense(related_sp_no="SP1", file_id="m1")["apply_data"]["contents"]]
    assert ids == [c["id"] for c in EXPENSE_CONTROLS]


def test_expense_related_approval_omitted_without_sp_no():
    """No related sp_no means no related_approval entry at all."""
    assert "RelatedApproval-1" not in _by_id(_expense())


def test_expense_attachment_left_for_audit():
    """A File control without a file id is left unfilled and reported missing."""
    payload = _expense()
    assert "File-1" not in _by_id(payload)
    missing = missing_required(EXPENSE_CONTROLS, payload)
    assert "File-1" in [c["id"] for c in missing]


def test_expense_attachment_with_file_id():
    """A file id fills the File control."""
    contents = _by_id(_expense(file_id="media-1"))
    assert contents["File-1"]["value"] == {"files": [{"file_id": "media-1"}]}


def test_expense_explicit_selector_key_wins():
    """An explicit option key bypasses keyword matching."""
    contents = _by_id(_expense(category_key="custom-key", project_key="proj-key"))
    assert contents["Selector-category"]["value"]["selector"]["options"] == [{"key": "custom-key"}]
    assert contents["Selector-project"]["value"]["selector"]["options"] == [{"key": "proj-key"}]


def test_expense_selector_falls_back_to_first_option():
    """An unmatched keyword falls back to the first option."""
    contents = _by_id(_expense(category_keyword="出差"))
    assert contents["Selector-category"]["value"]["selector"]["options"] == [{"key": "c1"}]


def test_expense_selector_without_options_raises():
    """A selector with no options and no key raises SelectorOptionNotFound."""
    controls = [_selector("Selector-category", "报销类别", [])]
    with pytest.raises(SelectorOptionNotFound):
        build_expense_payload(controls, "u", "t", "purpose", "10", 0, category_keyword="餐补")


def test_expense_amount_on_number_control():
    """An amount bound to a Number control uses new_number."""
    controls = [_control("Number-1", "Number", "金额")]
    contents = _by_id(build_expense_payload(controls, "u", "t", "p", "88.5", 0))
    assert contents["Number-1"]["value"] == {"new_number": "88.5"}


def test_expense_kind_mismatch_left_unfilled():
    """A title match on the wrong control kind fills nothing."""
    controls = [_control("Text-amount", "Text", "报销金额"), _control("Text-date", "Text", "日期")]
    assert build_expense_payload(controls, "u", "t", "p", "1", 0)["apply_data"]["contents"] == []


def test_expense_requires_purpose_and_amount():
    """Blank purpose or amount raises MissingRequiredInput."""
    with pytest.raises(MissingRequiredInput):
        _expense(purpose="  ")
    with pytest.raises(MissingRequiredInput):
        _expense(amount="")


def test_expense_summary_lines():
    """Expense summaries carry category, purpose, date and amount."""
    texts = [s["summary_info"][0]["text"] for s in _expense()["summary_list"]]
    assert texts == ["类别:周末加班", "用途:周六加班餐补", "日期:2026/2/14 金额:150"]


# ---------------------------------------------------------------------------
# Priority order
# ---------------------------------------------------------------------------


def test_priority_purpose_before_remark():
    """The first matching rule owns the control."""
    control = _control("Text-1", "Textarea", "用途说明备注")
    assert match_rule(control, EXPENSE_RULES).field == "purpose"


def test_priority_falls_through_on_kind_mismatch():
    """A keyword hit with the wrong kind lets later rules match."""
    # 申请人日期 hits the applicant keyword but is a Date control
    control = _control("Date-1", "Date", "申请人日期")
    assert match_rule(control, EXPENSE_RULES).field == "date"


def test_smart_time_claimed_by_id():
    """The stock smart-time control is bound to attendance whatever its kind."""
    control = _control("smart-time", "Text", "")
    assert match_rule(control, OVERTIME_RULES).field == "attendance"


def test_unmatched_control_is_skipped():
    """Controls no rule claims are not part of contents."""
    controls = [_control("Text-x", "Text", "部门")]
    assert bind_controls(controls, EXPENSE_RULES, {}) == []


# ---------------------------------------------------------------------------
# Overtime binding
# ---------------------------------------------------------------------------


def test_overtime_payload_values():
    """build_overtime_payload fills reason, times, duration and attendance."""
    payload = build_overtime_payload(OVERTIME_CONTROLS, "zhangsan", "tpl-ot", "版本发布", START, END)
    contents = _by_id(payload)
    assert contents["Contact-1"]["value"] == {"members": [{"userid": "zhangsan"}]}
    assert contents["Textarea-1"]["value"] == {"text": "版本发布"}
    assert contents["Date-start"]["value"] == {"date": {"type": "hour", "s_timestamp": str(START)}}
    assert contents["Date-end"]["value"] == {"date": {"type": "hour", "s_timestamp": str(END)}}
    assert contents["Number-1"]["value"] == {"new_number": "8.5"}
    assert contents["smart-time"]["value"] == {
        "attendance": {
            "date_range": {
                "type": "hour",
                "new_begin": START,
                "new_end": END,
                "new_duration": END - START,
            },
            "type": ATTENDANCE_TYPE_OVERTIME,
        },
    }


def test_overtime_duration_as_text():
    """A text duration control gets the hour count as text."""
    controls = [_control("Text-1", "Text", "时长")]
    contents = _by_id(build_overtime_payload(controls, "u", "t", "r", START, END))
    assert contents["Text-1"]["value"] == {"text": "8.5"}


def test_overtime_date_range_control():
    """A DateRange control gets the window as date_range."""
    controls = [_control("DateRange-1", "DateRange", "加班时间")]
    contents = _by_id(build_overtime_payload(controls, "u", "t", "r", START, END))
    assert contents["DateRange-1"]["value"]["date_range"]["new_duration"] == END - START


def test_overtime_requires_reason():
    """A blank reason raises MissingRequiredInput."""
    with pytest.raises(MissingRequiredInput):
        build_overtime_payload(OVERTIME_CONTROLS, "u", "t", "", START, END)


def test_overtime_summary_lines():
    """Overtime summaries carry reason, start and end."""
    payload = build_overtime_payload([], "u", "t", "版本发布", START, END)
    texts = [s["summary_info"][0]["text"] for s in payload["summary_list"]]
    assert texts == ["加班事由:版本发布", "开始:2026/2/14 09:00", "结束:2026/2/14 17:30"]


# ---------------------------------------------------------------------------
# Summaries and audit output
# ---------------------------------------------------------------------------


def test_summary_lines_truncated_to_20():
    """build_summary_list truncates each line to 20 characters."""
    line = "加班事由:" + "很长的说明" * 10
    summary = build_summary_list([line])
    assert summary == [{"summary_info": [{"text": line[:20], "lang": "zh_CN"}]}]


def test_print_missing_required(capsys):
    """print_missing_required warns on stderr only when something is missing."""
    payload = _expense()
    print_missing_required(EXPENSE_CONTROLS, payload)
    err = capsys.readouterr().err
    assert "required controls not auto-filled" in err
    assert "报销证明" in err

    print_missing_required(EXPENSE_CONTROLS, _expense(file_id="m"))
    assert capsys.readouterr().err == ""
