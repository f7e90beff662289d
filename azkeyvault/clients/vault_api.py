import logging
from typing import Any, Dict, Iterable, List, Optional, Union
from urllib.parse import quote, urlsplit

import requests

from azkeyvault.core.config import DEFAULT_API_VERSION, DEFAULT_POLL_INTERVAL
from azkeyvault.core.errors import InvalidBackup, ServiceError
from azkeyvault.utils.confirm import ConfirmCallback
from azkeyvault.utils.token_manager import TokenManager

logger = logging.getLogger(__name__)

PathLike = Union[str, Iterable[Optional[str]], None]


def construct_path(*parts: Optional[str]) -> str:
    """Join path segments, dropping empty ones and quoting each."""
    return "/".join(quote(str(p).strip("/"), safe="") for p in parts if p not in (None, ""))


def _segments(op: PathLike) -> List[Optional[str]]:
    if op is None:
        return []
    if isinstance(op, str):
        return [op]
    return list(op)


def basename(object_id: str) -> str:
    """Trailing path segment of an object id URL."""
    return urlsplit(object_id).path.rstrip("/").rsplit("/", 1)[-1]


def object_name(object_id: str) -> str:
    """Name part of an object id such as `https://v.vault.azure.net/secrets/name/version`."""
    parts = [p for p in urlsplit(object_id).path.split("/") if p]
    return parts[1] if len(parts) > 1 else basename(object_id)


def normalize_vault_url(url: str) -> str:
    """Expand a bare vault name into its https URL."""
    if "://" not in url:
        if "." not in url:
            url = f"{url}.vault.azure.net"
        url = f"https://{url}"
    return url.rstrip("/")


class VaultEndpoint:
    """
    One vault plus the credentials and settings used to talk to it.

    Every collection manager and stored object is built from an endpoint, so
    the API version, token provider and confirmation callback travel with it
    instead of living in globals.
    """

    def __init__(self, url: str, token: Union[TokenManager, str, Any, None] = None,
                 api_version: str = DEFAULT_API_VERSION, session: Optional[requests.Session] = None,
                 confirm_callback: Optional[ConfirmCallback] = None,
                 poll_interval: float = DEFAULT_POLL_INTERVAL, timeout: int = 30):
        self.url = normalize_vault_url(url)
        self.token = token if isinstance(token, TokenManager) else TokenManager(token)
        self.api_version = api_version
        self.session = session or requests.Session()
        self.confirm_callback = confirm_callback
        self.poll_interval = poll_interval
        self.timeout = timeout

    def __repr__(self):
        return f"<key vault endpoint '{self.url}'>"

    def do_operation(self, op: PathLike = None, body: Optional[Dict[str, Any]] = None,
                     options: Optional[Dict[str, Any]] = None, http_verb: str = "GET") -> Dict[str, Any]:
        """Call the vault at a path built from `op` segments."""
        path = construct_path(*_segments(op))
        params = {"api-version": self.api_version}
        params.update(options or {})
        return self.call_vault_url(f"{self.url}/{path}", body=body, params=params, http_verb=http_verb)

    def call_vault_url(self, url: str, body: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, Any]] = None, http_verb: str = "GET") -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.token.get_access_token()}"}
        if body is not None:
            headers["Content-Type"] = "application/json"
        logger.debug(f"{http_verb} {url}")
        resp = self.session.request(
            http_verb, url,
            headers=headers,
            params=params,
            json=body,
            timeout=self.timeout,
        )
        return process_response(resp, url, http_verb)


def process_response(resp: requests.Response, url: str, http_verb: str) -> Dict[str, Any]:
    if not 200 <= resp.status_code < 300:
        err = _service_error(resp, url)
        logger.warning(f"{http_verb} {url} failed: {err}")
        raise err
    if not resp.content:
        return {}
    return resp.json()


def _service_error(resp: requests.Response, url: str) -> ServiceError:
    code, message, inner = None, resp.text or resp.reason or "", None
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        error = data["error"]
        code = error.get("code")
        message = error.get("message", message)
        inner = error.get("innererror")
    cls = ServiceError
    if urlsplit(url).path.rstrip("/").endswith("/restore") and resp.status_code == 400:
        cls = InvalidBackup
    return cls(resp.status_code, code, message, inner, url)


def get_vault_paged_list(first_page: Dict[str, Any], endpoint: VaultEndpoint) -> List[Dict[str, Any]]:
    """
    Collect every item of a listing, following `nextLink` continuations.
    """
    items = list(first_page.get("value") or [])
    next_link = first_page.get("nextLink")
    while next_link:
        # nextLink already carries api-version and the skip token
        page = endpoint.call_vault_url(next_link)
        items.extend(page.get("value") or [])
        next_link = page.get("nextLink")
    return items
