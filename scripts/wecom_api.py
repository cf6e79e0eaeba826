"""Thin WeCom OA API client used by the approval scripts.

Every call goes through get_json() and ok_or_raise(); nothing here retries.
Access tokens are cached in an explicit TokenCache the caller owns.
"""

import http.client
import json
import time
import uuid
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from template_controls import flatten_controls
from wecom_lib import (
    WECOM_API_BASE,
    ApiError,
    SubmissionRejected,
)

# Request timeouts in seconds
HTTP_TIMEOUT = 15
SUBMIT_TIMEOUT = 30

# Refresh tokens this many seconds before WeCom says they expire.
TOKEN_SAFETY_WINDOW = 60


def wecom_url(path: str, access_token: str | None = None) -> str:
    """Absolute API URL, with access_token appended when given."""
    if not access_token:
        return f"{WECOM_API_BASE}{path}"
    sep = "&" if "?" in path else "?"
    return f"{WECOM_API_BASE}{path}{sep}access_token={quote(access_token, safe='')}"


def get_json(url: str, payload: dict | None = None, timeout: int = HTTP_TIMEOUT,
             scene: str = "request") -> dict:
    """GET (or POST JSON when ``payload`` is given) and return the parsed body."""
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    data = None
    method = "GET"
    if payload is not None:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        method = "POST"
    return send_request(Request(url, data=data, headers=headers, method=method), timeout, scene)


def send_request(req: Request, timeout: int, scene: str) -> dict:
    """Open ``req`` and decode a JSON object body; any transport failure is an ApiError."""
    try:
        with urlopen(req, timeout=timeout) as resp:
            body = json.loads(resp.read().decode("utf-8"))
    except HTTPError as e:
        raise ApiError(scene, errmsg=f"HTTP {e.code} {e.reason}")
    except URLError as e:
        raise ApiError(scene, errmsg=f"connection error: {e.reason}")
    except json.JSONDecodeError as e:
        raise ApiError(scene, errmsg=f"invalid JSON response: {e}")
    except UnicodeDecodeError as e:
        raise ApiError(scene, errmsg=f"undecodable response body: {e}")
    except (OSError, http.client.HTTPException) as e:
        # read timeouts and dropped connections surface here, not as URLError
        raise ApiError(scene, errmsg=f"connection error: {e}")
    if not isinstance(body, dict):
        raise ApiError(scene, errmsg="unexpected response body")
    return body


def errcode_of(data: dict | None) -> int:
    try:
        return int((data or {}).get("errcode", -1))
    except (TypeError, ValueError):
        return -1


def ok_or_raise(data: dict | None, scene: str, error_cls=ApiError) -> dict:
    """Raise ``error_cls`` unless the response carries errcode 0."""
    code = errcode_of(data)
    if code != 0:
        raise error_cls(scene, code, (data or {}).get("errmsg") or "unknown")
    return data


class TokenCache:
    """In-memory access token cache keyed by (corp_id, secret)."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._entries = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if not entry:
            return None
        token, expires_at = entry
        if self._clock() >= expires_at - TOKEN_SAFETY_WINDOW:
            del self._entries[key]
            return None
        return token

    def put(self, key: str, token: str, expires_in: int) -> None:
        self._entries[key] = (token, self._clock() + int(expires_in or 0))


def get_access_token(corp_id: str, secret: str, cache: TokenCache | None = None) -> str:
    """Fetch (or reuse a cached) corp access token."""
    cache_key = f"{corp_id}:{secret}"
    if cache is not None:
        cached = cache.get(cache_key)
        if cached:
            return cached

    url = wecom_url(f"/cgi-bin/gettoken?corpid={quote(corp_id, safe='')}"
                    f"&corpsecret={quote(secret, safe='')}")
    data = ok_or_raise(get_json(url, scene="gettoken"), "gettoken")
    token = str(data.get("access_token") or "")
    if not token:
        raise ApiError("gettoken", 0, "empty access_token")
    if cache is not None:
        cache.put(cache_key, token, data.get("expires_in", 0))
    return token


def fetch_template(access_token: str, template_id: str) -> dict:
    """POST /cgi-bin/oa/gettemplatedetail and return the raw response."""
    data = get_json(
        wecom_url("/cgi-bin/oa/gettemplatedetail", access_token),
        {"template_id": template_id},
        scene="gettemplatedetail",
    )
    return ok_or_raise(data, "gettemplatedetail")


def fetch_template_controls(access_token: str, template_id: str) -> list[dict]:
    """Fetch a template definition and flatten it into addressable controls."""
    data = fetch_template(access_token, template_id)
    return flatten_controls(data.get("template_content"))


def submit_apply_event(access_token: str, payload: dict) -> str:
    """POST /cgi-bin/oa/applyevent. Returns the new sp_no.

    Raises SubmissionRejected when WeCom answers with a non-zero errcode or
    without an sp_no.
    """
    data = get_json(
        wecom_url("/cgi-bin/oa/applyevent", access_token),
        payload,
        timeout=SUBMIT_TIMEOUT,
        scene="applyevent",
    )
    ok_or_raise(data, "applyevent", SubmissionRejected)
    sp_no = str(data.get("sp_no") or "")
    if not sp_no:
        raise SubmissionRejected("applyevent", 0, "no sp_no returned")
    return sp_no


def fetch_approval_page(access_token: str, query: dict) -> dict:
    """POST /cgi-bin/oa/getapprovalinfo for one cursor page (raw response)."""
    return get_json(
        wecom_url("/cgi-bin/oa/getapprovalinfo", access_token),
        query,
        scene="getapprovalinfo",
    )


def fetch_approval_detail(access_token: str, sp_no: str) -> dict:
    """POST /cgi-bin/oa/getapprovaldetail and return the ``info`` block."""
    data = get_json(
        wecom_url("/cgi-bin/oa/getapprovaldetail", access_token),
        {"sp_no": sp_no},
        scene="getapprovaldetail",
    )
    ok_or_raise(data, "getapprovaldetail")
    return data.get("info") or {}


def get_user(access_token: str, userid: str) -> dict:
    url = wecom_url(f"/cgi-bin/user/get?userid={quote(userid, safe='')}", access_token)
    return ok_or_raise(get_json(url, scene="user/get"), "user/get")


def send_text_message(access_token: str, agent_id: str, userid: str, content: str) -> dict:
    """Send an app text message; returns the raw response (caller checks errcode)."""
    return get_json(
        wecom_url("/cgi-bin/message/send", access_token),
        {
            "touser": userid,
            "msgtype": "text",
            "agentid": int(agent_id),
            "text": {"content": content},
            "safe": 0,
        },
        scene="message/send",
    )


def upload_media(access_token: str, filename: str, data: bytes) -> str:
    """Upload a temporary file (multipart ``media`` part). Returns media_id."""
    url = wecom_url("/cgi-bin/media/upload?type=file", access_token)

    boundary = uuid.uuid4().hex
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="media"; filename="{filename}"\r\n'
        f"Content-Type: application/octet-stream\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    headers = {"Content-Type": f"multipart/form-data; boundary={boundary}"}

    req = Request(url, data=head + data + tail, headers=headers, method="POST")
    body = ok_or_raise(send_request(req, SUBMIT_TIMEOUT, "upload"), "upload")
    media_id = body.get("media_id")
    if not media_id:
        raise ApiError("upload", 0, "no media_id returned")
    return str(media_id)
