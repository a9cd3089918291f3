import json
from typing import Any, Callable, Dict, Optional

try:
    import httpx
except ModuleNotFoundError as exc:  # pragma: no cover - user environment dependency
    raise ModuleNotFoundError(
        "Missing dependency 'httpx'. Install with: pip install httpx"
    ) from exc

from endpoints import BASE_URL
from .errors import AuthFailure, NetworkFailure, NotFoundOrForbidden
from .utils import append_log_line, get_logger, redact_payload, redacted_headers, truncate_text


def _bearer(resp: httpx.Response) -> Optional[str]:
    value = resp.request.headers.get("Authorization", "")
    return value[len("Bearer "):] if value.startswith("Bearer ") else None


class ApiClient:
    def __init__(
        self,
        base_url: str = BASE_URL,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_log_path: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.token_provider = token_provider
        # Called with the rejected token (None when there was none to send).
        self.on_unauthorized: Optional[Callable[[Optional[str]], None]] = None
        self.timeout = timeout
        self.logger = get_logger('mediadash.http')
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)
        self.http_log_path = http_log_path

    def _default_headers(self, auth: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if not auth:
            return headers
        token = self.token_provider() if self.token_provider else None
        if not token:
            self._unauthorized(None)
            raise AuthFailure("Not signed in")
        headers["Authorization"] = f"Bearer {token}"
        return headers

    def _unauthorized(self, token: Optional[str]) -> None:
        if self.on_unauthorized:
            self.on_unauthorized(token)

    def url_for(self, path: str) -> str:
        return path if path.startswith('http') else f"{self.base_url}{path}"

    async def request(self, method: str, path: str, auth: bool = True, **kwargs: Any) -> httpx.Response:
        url = self.url_for(path)
        headers = self._default_headers(auth)
        headers.update(kwargs.get('headers', {}) or {})
        kwargs['headers'] = headers
        redacted = redacted_headers(headers)
        payload = None
        if "json" in kwargs:
            payload = redact_payload(kwargs.get("json"))
        elif "data" in kwargs:
            payload = redact_payload(kwargs.get("data"))
        self.logger.debug('HTTP %s %s headers=%s', method, url, redacted)
        if payload is not None:
            append_log_line(self.http_log_path, f"{method} {url} headers={redacted} payload={payload}")
        else:
            append_log_line(self.http_log_path, f"{method} {url} headers={redacted}")

        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            append_log_line(self.http_log_path, f"{method} {url} error={exc!r}")
            raise NetworkFailure(f"{method} {path} failed: {exc}") from exc

        response_body: Any = None
        try:
            response_body = redact_payload(resp.json())
        except ValueError:
            response_body = truncate_text(resp.text or "")
        append_log_line(
            self.http_log_path,
            f"{method} {url} status={resp.status_code} response={json.dumps(response_body, ensure_ascii=True)}",
        )
        self._raise_for_status(resp, path, auth)
        return resp

    def _raise_for_status(self, resp: httpx.Response, path: str, auth: bool) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status == 401:
            if auth:
                self._unauthorized(_bearer(resp))
            raise AuthFailure("Unauthorized", status_code=status)
        if status in (403, 404):
            raise NotFoundOrForbidden(f"{path} is not available", status_code=status)
        raise NetworkFailure(f"{path} answered HTTP {status}", status_code=status)

    def stream(self, url: str):
        return self._client.stream("GET", self.url_for(url))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
