"""Template control tree helpers: flattening, selector options, required audit.

A WeCom template is an arbitrarily nested JSON tree. flatten_controls() turns
it into a flat list of control dicts:

    {"id": "Text-1735096223119", "control": "Text", "title": "用途说明", "raw": {...}}

where ``raw`` is the original node, left untouched.
"""

from wecom_lib import read_text


def _first_text(value) -> str:
    """Text of ``[{text}, ...]`` (first element) or ``{text}``."""
    if isinstance(value, list):
        if value and isinstance(value[0], dict):
            return value[0].get("text") or ""
        return ""
    if isinstance(value, dict):
        return value.get("text") or ""
    return ""


def control_title(node: dict) -> str:
    prop = node.get("property")
    if not isinstance(prop, dict):
        prop = {}
    title = (
        _first_text(prop.get("title"))
        or _first_text(node.get("title"))
        or node.get("name")
        or ""
    )
    return str(title)


def flatten_controls(node, out: list[dict] | None = None) -> list[dict]:
    """Depth-first, pre-order list of every dict carrying both ``id`` and ``control``.

    All dict values are walked, not just known keys, so controls nested inside
    tables or unrelated wrappers are still found.
    """
    if out is None:
        out = []
    if isinstance(node, list):
        for item in node:
            flatten_controls(item, out)
        return out
    if not isinstance(node, dict):
        return out

    node_id = node.get("id")
    control = node.get("control")
    if node_id and control:
        out.append({
            "id": str(node_id),
            "control": str(control),
            "title": control_title(node),
            "raw": node,
        })

    for value in node.values():
        flatten_controls(value, out)
    return out


# ---------------------------------------------------------------------------
# Selector options
# ---------------------------------------------------------------------------


def resolve_options(control: dict) -> list[dict]:
    """Selectable ``{key, text}`` options of a Selector control, deduped by key."""
    raw = control.get("raw") or {}
    prop = raw.get("property") if isinstance(raw.get("property"), dict) else {}
    root = prop.get("options")
    if root is None:
        root = raw

    found = []

    def walk(node):
        if isinstance(node, list):
            for item in node:
                walk(item)
            return
        if not isinstance(node, dict):
            return
        key = node.get("key")
        if isinstance(key, str):
            text = read_text(node) or node.get("label") or node.get("name") or ""
            found.append({"key": key, "text": str(text or key)})
        for value in node.values():
            walk(value)

    walk(root)

    options = []
    seen = set()
    for opt in found:
        if opt["key"] in seen:
            continue
        seen.add(opt["key"])
        options.append(opt)
    return options


def choose_option(options: list[dict], keyword: str | None) -> dict | None:
    """Pick the option best matching ``keyword``.

    Text substring first, then key substring, then case-insensitive text,
    then case-insensitive key.
    """
    k = (keyword or "").strip()
    if not k:
        return None
    for opt in options:
        if k in opt["text"]:
            return opt
    for opt in options:
        if k in opt["key"]:
            return opt
    k_lower = k.lower()
    for opt in options:
        if k_lower in opt["text"].lower():
            return opt
    for opt in options:
        if k_lower in opt["key"].lower():
            return opt
    return None


# ---------------------------------------------------------------------------
# Required-field audit
# ---------------------------------------------------------------------------


def _require_flag(raw: dict):
    prop = raw.get("property")
    if isinstance(prop, dict) and prop.get("require") is not None:
        return prop["require"]
    if raw.get("require") is not None:
        return raw["require"]
    return False


def is_required(control: dict) -> bool:
    raw = control.get("raw") or {}
    prop = raw.get("property") if isinstance(raw.get("property"), dict) else {}
    for flag in (prop.get("require"), raw.get("require")):
        if flag is True or (type(flag) is int and flag == 1):
            return True
    return False


def audit_required(controls: list[dict], filled_ids) -> list[dict]:
    """Required controls whose id is not among ``filled_ids`` (advisory only)."""
    filled = set(filled_ids)
    return [c for c in controls if is_required(c) and c["id"] not in filled]


def format_missing(missing: list[dict]) -> list[str]:
    return [
        f"- {c['title'] or '(no-title)'} [id={c['id']}, control={c['control']}]"
        for c in missing
    ]


def inspect_rows(controls: list[dict]) -> list[dict]:
    """Summaries of each control for --inspect output."""
    rows = []
    for c in controls:
        row = {
            "id": c["id"],
            "control": c["control"],
            "title": c["title"],
            "require": _require_flag(c["raw"]),
        }
        if c["control"] == "Selector":
            row["options"] = resolve_options(c)
        rows.append(row)
    return rows
