#!/usr/bin/env python3
"""Upload a receipt/attachment to WeCom temporary media and print its media_id.

The media_id can be passed to expense_submit.py --file-id.

Usage:
    python scripts/upload_file.py --file ./receipt.jpg
"""

import argparse
import sys
from pathlib import Path

from wecom_api import TokenCache, get_access_token, upload_media
from wecom_lib import WecomError, load_config, require_config


def upload_path(access_token: str, path: Path) -> str:
    return upload_media(access_token, path.name, path.read_bytes())


def main():
    parser = argparse.ArgumentParser(description="Upload a file to WeCom temporary media")
    parser.add_argument("--file", required=True, help="Path of the file to upload")
    args = parser.parse_args()

    path = Path(args.file).resolve()
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)

    config = load_config()
    require_config(config, ["corp_id", "secret"])

    try:
        token = get_access_token(config["corp_id"], config["secret"], TokenCache())
        media_id = upload_path(token, path)
    except WecomError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"media_id={media_id}")


if __name__ == "__main__":
    main()
