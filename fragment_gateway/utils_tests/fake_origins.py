import asyncio
from typing import AsyncIterator, Dict, List, Optional, Tuple, Union

import httpx


class OnceByteStream(httpx.AsyncByteStream):
    """A response body that is still unread, like one coming off the network."""

    def __init__(self, content: bytes):
        self._content = content

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._content:
            yield self._content


class FakeOrigins:
    """
    In-memory fragment origins for ``httpx.MockTransport``.

    Routes are keyed by ``(host, path)``; unknown routes answer 404. Every
    request is recorded in ``calls`` so tests can assert what went upstream.
    Bodies are served as unread streams so callers can stream them.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Tuple[int, Dict[str, str], bytes]] = {}
        self.delays: Dict[Tuple[str, str], float] = {}
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[httpx.Request] = []

    def add(
        self,
        url: str,
        status_code: int = 200,
        content: Union[str, bytes] = b"",
        content_type: Optional[str] = "text/html",
        delay: float = 0.0,
    ) -> None:
        key = self._key(httpx.URL(url))
        headers = {"content-type": content_type} if content_type else {}
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.routes[key] = (status_code, headers, content)
        if delay:
            self.delays[key] = delay

    def fail(self, url: str, exception: Exception) -> None:
        self.failures[self._key(httpx.URL(url))] = exception

    @staticmethod
    def _key(url: httpx.URL) -> Tuple[str, str]:
        return (url.host, url.path)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = self._key(request.url)
        if key in self.failures:
            raise self.failures[key]
        if key in self.delays:
            await asyncio.sleep(self.delays[key])
        status_code, headers, content = self.routes.get(
            key, (404, {"content-type": "text/html"}, b"missing")
        )
        return httpx.Response(
            status_code,
            headers={**headers, "content-length": str(len(content))},
            stream=OnceByteStream(content),
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, follow_redirects=True)

    def urls(self) -> List[str]:
        return [str(call.url) for call in self.calls]
