"""
Divar API Client

Single responsibility: turn a watch's query descriptor into a post-list
search request and project the response to ListingItems.

The descriptor is what users copy from the browser ("Copy as cURL" on the
/v8/postlist/w/search request). It is parsed, never executed: only the URL,
headers and JSON body are kept, and the host must be allow-listed.
"""

import json
import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import requests

from .. import config, messages
from ..errors import SourceError, ValidationError
from ..models import ListingItem

logger = logging.getLogger(__name__)

# curl options whose value is the next token
_HEADER_FLAGS = {"-H", "--header"}
_DATA_FLAGS = {"-d", "--data", "--data-raw", "--data-binary", "--data-ascii"}
_COOKIE_FLAGS = {"-b", "--cookie"}
_USER_AGENT_FLAGS = {"-A", "--user-agent"}
_VALUE_FLAGS = {"-X", "--request", "-e", "--referer", "-o", "--output", "-u", "--user"}

# Headers requests computes itself, or that would ask for encodings it cannot decode
_DROPPED_HEADERS = {"content-length", "host", "accept-encoding", "connection"}

_YEAR_PREFIX = re.compile(r"^\d{4}-")


@dataclass
class SearchRequest:
    """A validated post-list search request."""
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None


def _validate_url(url: str, allowed_hosts: List[str]) -> str:
    parts = urlsplit(url)
    if parts.scheme != "https":
        raise ValidationError(messages.INVALID_LINK)
    if (parts.hostname or "").lower() not in allowed_hosts:
        raise ValidationError(messages.INVALID_LINK)
    if parts.path.rstrip("/") != config.DIVAR_SEARCH_PATH:
        raise ValidationError(messages.INVALID_LINK)
    return url


def parse_search_request(descriptor: str, allowed_hosts: Optional[List[str]] = None) -> SearchRequest:
    """
    Parse a "Copy as cURL" command (or a bare URL) into a SearchRequest.

    Args:
        descriptor: Text the user sent for the link step
        allowed_hosts: Hosts the request may target (default from config)

    Returns:
        SearchRequest with URL, headers and decoded JSON body

    Raises:
        ValidationError: Not a search request on an allowed host, or the
            body is not a JSON object
    """
    allowed = [h.lower() for h in (allowed_hosts or config.DIVAR_ALLOWED_HOSTS)]
    text = (descriptor or "").strip().replace("\\\r\n", " ").replace("\\\n", " ")
    if not text:
        raise ValidationError(messages.INVALID_LINK)

    try:
        tokens = shlex.split(text)
    except ValueError:
        raise ValidationError(messages.INVALID_LINK)

    if tokens and tokens[0] == "curl":
        tokens = tokens[1:]

    url = None
    headers: Dict[str, str] = {}
    raw_body = None

    i = 0
    while i < len(tokens):
        token = tokens[i]
        value = tokens[i + 1] if i + 1 < len(tokens) else None

        if token in _HEADER_FLAGS and value is not None:
            name, sep, header_value = value.partition(":")
            if sep and name.strip().lower() not in _DROPPED_HEADERS:
                headers[name.strip()] = header_value.strip()
            i += 2
        elif token in _DATA_FLAGS and value is not None:
            raw_body = value
            i += 2
        elif token in _COOKIE_FLAGS and value is not None:
            headers["Cookie"] = value
            i += 2
        elif token in _USER_AGENT_FLAGS and value is not None:
            headers["User-Agent"] = value
            i += 2
        elif token in _VALUE_FLAGS:
            i += 2
        elif token == "--url" and value is not None:
            url = value
            i += 2
        elif token.startswith("-"):
            # Switches like --compressed, -s, -L
            i += 1
        else:
            if url is None:
                url = token
            i += 1

    if url is None:
        raise ValidationError(messages.INVALID_LINK)
    _validate_url(url, allowed)

    body = None
    if raw_body is not None:
        try:
            body = json.loads(raw_body)
        except ValueError:
            raise ValidationError(messages.INVALID_LINK)
        if not isinstance(body, dict):
            raise ValidationError(messages.INVALID_LINK)

    return SearchRequest(url=url, headers=headers, body=body)


def with_far_future_dates(body: Any, year: int = config.DIVAR_FAR_FUTURE_YEAR) -> Any:
    """
    Copy of `body` with every `last_post_date` moved to `year`.

    The search API only returns posts up to last_post_date (the browser
    pins it to the moment the page was opened), so a stored request would
    otherwise never see anything newer.
    """
    if isinstance(body, dict):
        result = {}
        for key, value in body.items():
            if key == "last_post_date" and isinstance(value, str) and _YEAR_PREFIX.match(value):
                result[key] = f"{year}{value[4:]}"
            else:
                result[key] = with_far_future_dates(value, year)
        return result
    if isinstance(body, list):
        return [with_far_future_dates(v, year) for v in body]
    return body


def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_search_response(payload: Any) -> List[ListingItem]:
    """
    Project a search response to ListingItems, newest first as returned.

    Widgets without a post token (banners, suggestions) are skipped and
    unknown fields are ignored.
    """
    widgets = _dig(payload, "list_widgets")
    if not isinstance(widgets, list):
        return []

    items = []
    for widget in widgets:
        data = _dig(widget, "data")
        if not isinstance(data, dict):
            continue

        token = _text(data.get("token")) or _text(_dig(data, "action", "payload", "token"))
        if not token:
            continue

        sort_date = _dig(widget, "action_log", "server_side_info", "info", "sort_date")
        items.append(ListingItem(
            token=token,
            title=_text(data.get("title")),
            top_description=_text(data.get("top_description_text")),
            middle_description=_text(data.get("middle_description_text")),
            bottom_description=_text(data.get("bottom_description_text")),
            image_url=_text(data.get("image_url")) or None,
            sort_date=sort_date if isinstance(sort_date, str) else None,
        ))

    return items


class DivarClient:
    """
    Listing source backed by Divar's post-list search API.

    Handles:
    - Descriptor parsing and host allow-listing
    - last_post_date rewriting
    - Timeouts and structured errors (SourceError)
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        allowed_hosts: Optional[List[str]] = None,
    ):
        self.timeout = timeout or config.DIVAR_REQUEST_TIMEOUT
        self.allowed_hosts = allowed_hosts or config.DIVAR_ALLOWED_HOSTS

    def fetch(self, query: str) -> List[ListingItem]:
        """
        Run the stored search.

        Args:
            query: Watch query descriptor (cURL text)

        Returns:
            ListingItems, newest first

        Raises:
            SourceError: Bad descriptor, transport error, non-200 status or
                unparseable body
        """
        try:
            request = parse_search_request(query, self.allowed_hosts)
        except ValidationError as e:
            raise SourceError("Stored query is not an allowed Divar search request") from e

        kwargs = {"headers": request.headers, "timeout": self.timeout}
        if request.body is not None:
            kwargs["json"] = with_far_future_dates(request.body)

        try:
            response = requests.post(request.url, **kwargs)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise SourceError(f"Divar request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            raise SourceError(f"Divar HTTP error: {status_code}") from e
        except requests.exceptions.ConnectionError as e:
            raise SourceError("Divar connection error - network issue") from e
        except requests.exceptions.RequestException as e:
            raise SourceError(f"Divar request failed: {e.__class__.__name__}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceError("Divar returned a non-JSON body") from e

        if not isinstance(payload, dict):
            raise SourceError("Divar returned an unexpected payload")

        # Error and captcha replies come back as 200 without a widget list
        if not isinstance(payload.get("list_widgets"), list):
            raise SourceError(f"Divar response has no post list (keys: {sorted(payload)[:5]})")

        items = parse_search_response(payload)
        logger.debug(f"Divar search returned {len(items)} posts")
        return items
