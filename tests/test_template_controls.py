"""Tests for scripts/template_controls.py flattening, options and audit."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from template_controls import (
    audit_required,
    choose_option,
    control_title,
    flatten_controls,
    format_missing,
    inspect_rows,
    is_required,
    resolve_options,
)


def _control(cid, control="Text", title="", raw=None):
    return {"id": cid, "control": control, "title": title, "raw": raw or {}}


TEMPLATE = {
    "template_names": [{"text": "加班申请", "lang": "zh_CN"}],
    "template_content": {
        "controls": [
            {
                "property": {
                    "control": "Text",
                    "id": "Text-1",
                    "title": [{"text": "加班事由", "lang": "zh_CN"}],
                    "require": 1,
                },
                "config": {},
            },
            {
                "property": {
                    "control": "Table",
                    "id": "Table-1",
                    "title": [{"text": "明细"}],
                },
                "config": {
                    "table": {
                        "children": [
                            {"property": {"control": "Money", "id": "Money-1",
                                          "title": [{"text": "金额"}]}},
                        ],
                    },
                },
            },
        ],
    },
}


# ---------------------------------------------------------------------------
# flatten_controls
# ---------------------------------------------------------------------------


def test_flatten_finds_nested_controls_in_pre_order():
    """flatten_controls visits parents before children, at any depth."""
    controls = flatten_controls(TEMPLATE["template_content"])
    assert [c["id"] for c in controls] == ["Text-1", "Table-1", "Money-1"]
    assert [c["title"] for c in controls] == ["加班事由", "明细", "金额"]


def test_flatten_keeps_raw_node():
    """flatten_controls keeps the original node as raw, untouched."""
    controls = flatten_controls(TEMPLATE)
    assert controls[0]["raw"] is TEMPLATE["template_content"]["controls"][0]["property"]


def test_flatten_requires_id_and_control():
    """flatten_controls skips nodes with an empty id or control."""
    tree = [
        {"id": "", "control": "Text"},
        {"id": "A", "control": ""},
        {"id": "B"},
        {"wrap": {"deeper": [{"id": "C", "control": "Date", "name": "日期"}]}},
        "ignored",
        7,
        None,
    ]
    controls = flatten_controls(tree)
    assert [(c["id"], c["control"], c["title"]) for c in controls] == [("C", "Date", "日期")]


def test_flatten_is_stable():
    """flatten_controls returns the same list on repeated calls."""
    first = flatten_controls(TEMPLATE)
    second = flatten_controls(TEMPLATE)
    assert [c["id"] for c in first] == [c["id"] for c in second]


def test_flatten_unique_ids_each_once():
    """Every qualifying node appears exactly once."""
    tree = {"a": {"id": "X", "control": "Text", "b": [{"id": "Y", "control": "Text"}]}}
    ids = [c["id"] for c in flatten_controls(tree)]
    assert sorted(ids) == ["X", "Y"]


def test_control_title_sources():
    """control_title prefers property.title, then title, then name."""
    assert control_title({"property": {"title": {"text": "P"}}, "title": [{"text": "T"}]}) == "P"
    assert control_title({"title": [{"text": "T"}], "name": "N"}) == "T"
    assert control_title({"title": "plain", "name": "N"}) == "N"
    assert control_title({}) == ""


# ---------------------------------------------------------------------------
# Selector options
# ---------------------------------------------------------------------------


def test_resolve_options_dedup_first_wins():
    """resolve_options keeps the first occurrence of a duplicate key."""
    raw = {"property": {"options": [
        {"key": "a", "value": [{"text": "X"}]},
        {"key": "a", "value": [{"text": "Y"}]},
        {"key": "b", "value": [{"text": "Z"}]},
    ]}}
    options = resolve_options(_control("S", "Selector", raw=raw))
    assert options == [{"key": "a", "text": "X"}, {"key": "b", "text": "Z"}]


def test_resolve_options_falls_back_to_raw():
    """resolve_options walks the whole raw node when property.options is absent."""
    raw = {"config": {"selector": {"options": [
        {"key": "k1", "label": "Label"},
        {"key": "k2", "name": "Name"},
        {"key": "k3"},
        {"key": 4, "text": "not a string key"},
    ]}}}
    options = resolve_options(_control("S", "Selector", raw=raw))
    assert options == [
        {"key": "k1", "text": "Label"},
        {"key": "k2", "text": "Name"},
        {"key": "k3", "text": "k3"},
    ]


def test_choose_option_text_match():
    """choose_option matches on option text first."""
    options = [{"key": "o1", "text": "周末加班"}, {"key": "o2", "text": "晚上加班"}]
    assert choose_option(options, "周末")["key"] == "o1"
    assert choose_option(options, "晚上")["key"] == "o2"


def test_choose_option_text_beats_key():
    """A text hit wins over an earlier key hit."""
    options = [{"key": "trip-1", "text": "其他"}, {"key": "o2", "text": "trip allowance"}]
    assert choose_option(options, "trip")["key"] == "o2"


def test_choose_option_key_match():
    """choose_option falls back to a key substring."""
    options = [{"key": "cat-lodging", "text": "住宿费"}]
    assert choose_option(options, "lodging")["key"] == "cat-lodging"


def test_choose_option_case_insensitive():
    """choose_option falls back to case-insensitive matching."""
    assert choose_option([{"key": "night-shift", "text": "X"}], "Night")["key"] == "night-shift"
    assert choose_option([{"key": "o1", "text": "Taxi"}], "TAXI")["key"] == "o1"


def test_choose_option_blank_or_missing():
    """choose_option returns None for a blank keyword or no match."""
    options = [{"key": "o1", "text": "周末加班"}]
    assert choose_option(options, "") is None
    assert choose_option(options, "   ") is None
    assert choose_option(options, None) is None
    assert choose_option(options, "出差") is None


# ---------------------------------------------------------------------------
# Required-field audit
# ---------------------------------------------------------------------------


def test_audit_required_reports_unfilled():
    """audit_required returns required controls missing from filled ids."""
    controls = [
        _control("A", raw={"property": {"require": True}}),
        _control("B", raw={"property": {"require": False}}),
    ]
    assert [c["id"] for c in audit_required(controls, {"B"})] == ["A"]
    assert audit_required(controls, {"A", "B"}) == []


def test_is_required_flag_forms():
    """is_required accepts True or 1 from property.require or require."""
    assert is_required(_control("A", raw={"property": {"require": 1}}))
    assert is_required(_control("A", raw={"require": True}))
    assert not is_required(_control("A", raw={"property": {"require": 0}}))
    assert not is_required(_control("A", raw={"require": "1"}))
    assert not is_required(_control("A"))


def test_format_missing():
    """format_missing renders one line per control."""
    lines = format_missing([_control("File-1", "File", "报销证明"), _control("X", "Text")])
    assert lines == [
        "- 报销证明 [id=File-1, control=File]",
        "- (no-title) [id=X, control=Text]",
    ]


def test_inspect_rows_lists_selector_options():
    """inspect_rows adds options for Selector controls only."""
    selector = _control("S", "Selector", "类别", raw={
        "property": {"require": 1, "options": [{"key": "o1", "value": [{"text": "餐补"}]}]},
    })
    text = _control("T", "Text", "备注", raw={"property": {}})
    rows = inspect_rows([selector, text])
    assert rows[0] == {"id": "S", "control": "Selector", "title": "类别", "require": 1,
                       "options": [{"key": "o1", "text": "餐补"}]}
    assert rows[1] == {"id": "T", "control": "Text", "title": "备注", "require": False}
