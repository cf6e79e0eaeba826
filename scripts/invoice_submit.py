#!/usr/bin/env python3
"""Submit an e-invoice approval: invoice number, PDF attachment and amount.

The invoice number comes from --invoice-no or, best effort, from the PDF text
(first 3 pages). If neither yields a number the run stops before uploading.

Usage:
    python scripts/invoice_submit.py --pdf ./invoice.pdf --amount 98
    python scripts/invoice_submit.py --pdf ./invoice.pdf --amount 98 --invoice-no 24332000000123456789 --submit
"""

import argparse
import re
import sys
from io import BytesIO
from pathlib import Path

from pypdf import PdfReader

from field_binding import build_payload
from wecom_api import TokenCache, get_access_token, submit_apply_event, upload_media
from wecom_lib import (
    AttachmentExtractionFailed,
    MissingRequiredInput,
    WecomError,
    dump_json,
    load_config,
    require_config,
)

PDF_PAGES_SCANNED = 3

INVOICE_NO_PATTERNS = [
    re.compile(r"发票号码[:：]?\s*([0-9]{8,20})"),
    re.compile(r"Invoice\s*No\.?\s*[:：]?\s*([0-9]{8,20})", re.I),
]
LONG_NUMBER_RE = re.compile(r"(?<![0-9])[0-9]{8,20}(?![0-9])")

# Control ids of the stock invoice template (override with invoice_control_ids).
DEFAULT_INVOICE_CONTROL_IDS = {
    "table": "Table-1571833544573",
    "invoice_no": "Text-1571833555317",
    "file": "File-1735031559504",
    "amount": "Money-1571833750552",
}


def pdf_text(pdf_bytes: bytes, max_pages: int = PDF_PAGES_SCANNED) -> str:
    """Text of the first ``max_pages`` pages (raises AttachmentExtractionFailed)."""
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        parts = []
        for page in reader.pages[:max_pages]:
            parts.append(page.extract_text() or "")
    except Exception as e:  # pypdf raises assorted error types on damaged files
        raise AttachmentExtractionFailed(f"could not read PDF text: {e}")
    return "\n".join(parts)


def find_invoice_number(text: str) -> str | None:
    """Labelled invoice number, else the longest 8-20 digit run."""
    for pattern in INVOICE_NO_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    nums = LONG_NUMBER_RE.findall(text)
    if nums:
        return max(nums, key=len)
    return None


def extract_invoice_number(pdf_bytes: bytes, read_text=pdf_text) -> str | None:
    """Best-effort invoice number from a PDF; None when it cannot be determined."""
    try:
        number = find_invoice_number(read_text(pdf_bytes))
        if not number:
            raise AttachmentExtractionFailed("no invoice number found in PDF text")
    except AttachmentExtractionFailed as e:
        print(f"  Warning: {e}", file=sys.stderr)
        return None
    return number


def build_invoice_payload(
    user_id: str,
    template_id: str,
    invoice_no: str,
    media_id: str,
    amount: str,
    control_ids: dict | None = None,
) -> dict:
    ids = dict(DEFAULT_INVOICE_CONTROL_IDS, **(control_ids or {}))
    row = [
        {"control": "Text", "id": ids["invoice_no"], "value": {"text": invoice_no}},
        {"control": "File", "id": ids["file"], "value": {"files": [{"file_id": media_id}]}},
        {"control": "Money", "id": ids["amount"], "value": {"new_money": str(amount)}},
    ]
    contents = [{
        "control": "Table",
        "id": ids["table"],
        "value": {"children": [{"list": row}]},
    }]
    return build_payload(user_id, template_id, contents, [
        f"发票号:{invoice_no}",
        f"金额:{amount}",
        "电子发票提交",
    ])


def run(args, config: dict) -> None:
    pdf_path = Path(args.pdf).resolve()
    if not pdf_path.is_file():
        raise MissingRequiredInput(f"PDF not found: {pdf_path}")
    pdf_bytes = pdf_path.read_bytes()

    invoice_no = args.invoice_no or extract_invoice_number(pdf_bytes)
    if not invoice_no:
        raise MissingRequiredInput(
            "failed to extract invoice number from PDF; please pass --invoice-no manually"
        )

    print(dump_json({
        "invoice_no": invoice_no,
        "amount": args.amount,
        "template_id": config["template_invoice"],
    }))
    if not args.submit:
        print("\nDry-run only. Add --submit to upload the PDF and submit.")
        return

    token = get_access_token(config["corp_id"], config["secret"], TokenCache())
    media_id = upload_media(token, pdf_path.name, pdf_bytes)
    payload = build_invoice_payload(
        config["default_user_id"],
        config["template_invoice"],
        invoice_no,
        media_id,
        args.amount,
        config.get("invoice_control_ids"),
    )
    sp_no = submit_apply_event(token, payload)
    print(f"SUCCESS: submitted sp_no={sp_no or 'unknown'}")


def main():
    parser = argparse.ArgumentParser(description="Submit a WeCom e-invoice approval")
    parser.add_argument("--pdf", required=True, help="Invoice PDF path")
    parser.add_argument("--amount", required=True, help="Invoice amount")
    parser.add_argument("--invoice-no", help="Invoice number (skips PDF extraction)")
    parser.add_argument("--submit", action="store_true",
                        help="Upload and submit (default is dry-run)")
    args = parser.parse_args()

    config = load_config()
    require_config(config, ["corp_id", "secret", "default_user_id", "template_invoice"])

    try:
        run(args, config)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
