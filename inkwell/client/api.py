"""
Async HTTP client for the blog API.

Every failure surfaces as ``ApiError`` carrying the server's normalized
message, so callers never see transport exceptions or raw response bodies.
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import httpx

DEFAULT_TIMEOUT = 30.0
TIMEOUT_MESSAGE = "Unable to load"
NETWORK_ERROR_MESSAGE = "Network error"

# (filename, content, content_type)
ImageUpload = Tuple[str, bytes, str]


class ApiError(Exception):
    def __init__(self, status_code: Optional[int], message: str, detail: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.message = message
        self.detail = detail
        super().__init__(message)

    def __repr__(self) -> str:
        return f"ApiError(status_code={self.status_code!r}, message={self.message!r})"


def _error_from_response(response: httpx.Response) -> ApiError:
    message = response.reason_phrase or "Request failed"
    detail = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = str(body.get("error") or body.get("message") or message)
        detail = body.get("detail") if isinstance(body.get("detail"), dict) else None
    return ApiError(response.status_code, message, detail)


def _form_fields(fields: Mapping[str, Any]) -> Dict[str, str]:
    data = {}
    for key, value in fields.items():
        if value is None:
            continue
        if key == "tags" and not isinstance(value, str):
            value = ",".join(str(tag) for tag in value)
        data[key] = str(value)
    return data


class BlogApiClient:
    """
    Thin wrapper over ``httpx.AsyncClient``.

    Usage:
        async with BlogApiClient("http://localhost:8000") as api:
            await api.login("me@example.com", "secret-password")
            page = await api.list_posts(page=1)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "BlogApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException:
            raise ApiError(None, TIMEOUT_MESSAGE)
        except httpx.TransportError:
            raise ApiError(None, NETWORK_ERROR_MESSAGE)

        if response.is_error:
            raise _error_from_response(response)
        if not response.content:
            return None
        return response.json()

    # ----- auth -----

    async def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/api/auth/register", json={"username": username, "email": email, "password": password}
        )

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in and keep the returned token for later calls."""
        data = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data["token"]
        return data

    def logout(self) -> None:
        self.token = None

    # ----- posts -----

    async def list_posts(
        self,
        page: int = 1,
        limit: int = 6,
        search: Optional[str] = None,
        category: Optional[Union[int, str]] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        if category is not None:
            params["category"] = category
        return await self._request("GET", "/api/posts", params=params)

    async def get_post(self, post_id: Union[int, str]) -> Dict[str, Any]:
        return await self._request("GET", f"/api/posts/{post_id}")

    async def create_post(
        self,
        title: str,
        content: str,
        category: Union[int, str],
        tags: Optional[Iterable[str]] = None,
        image: Optional[ImageUpload] = None,
    ) -> Dict[str, Any]:
        data = _form_fields({"title": title, "content": content, "category": category, "tags": tags})
        files = {"featuredImage": image} if image else None
        return await self._request("POST", "/api/posts", data=data, files=files)

    async def update_post(
        self,
        post_id: Union[int, str],
        fields: Mapping[str, Any],
        image: Optional[ImageUpload] = None,
        version: Optional[int] = None,
    ) -> Dict[str, Any]:
        data = _form_fields(fields)
        if version is not None:
            data["version"] = str(version)
        files = {"featuredImage": image} if image else None
        return await self._request("PUT", f"/api/posts/{post_id}", data=data, files=files)

    async def delete_post(self, post_id: Union[int, str]) -> Dict[str, Any]:
        return await self._request("DELETE", f"/api/posts/{post_id}")

    # ----- categories -----

    async def list_categories(self) -> Any:
        return await self._request("GET", "/api/categories")

    async def create_category(self, name: str, description: str = "") -> Dict[str, Any]:
        return await self._request("POST", "/api/categories", json={"name": name, "description": description})

    # ----- logs -----

    async def send_logs(self, logs: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
        return await self._request("POST", "/api/logs", json={"logs": list(logs)})
