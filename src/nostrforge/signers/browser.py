"""Signing through a NIP-07 browser extension via a local web page.

[BrowserProxySigner][nostrforge.signers.browser.BrowserProxySigner] serves
a small page on ``127.0.0.1``. The user opens it in a browser with a NIP-07
extension; the page polls for requests, hands them to ``window.nostr`` and
posts the answers back:

| Endpoint              | Purpose                                         |
|-----------------------|-------------------------------------------------|
| ``GET /``             | The page driving ``window.nostr``                |
| ``GET /api/pending``  | Requests not yet delivered, each delivered once |
| ``POST /api/response``| ``{"id", "result", "error"}`` for one request    |
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from aiohttp import web

from nostrforge.core.config import DEFAULT_BROWSER_PROXY
from nostrforge.core.exceptions import SignerUnavailable, SigningDenied
from nostrforge.models.event import Event
from nostrforge.nips.nip46 import Method, Request, Response
from nostrforge.utils.http import read_bounded_json

from .base import DEFAULT_SIGN_TIMEOUT, PendingRequests, Signer


if TYPE_CHECKING:
    from nostrforge.models.event import UnsignedEvent


MAX_RESPONSE_SIZE = 256 * 1024

PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>nostrforge signer</title></head>
<body>
<h1>nostrforge signer</h1>
<p id="status">Waiting for a NIP-07 extension...</p>
<script>
const status = document.getElementById("status");
async function answer(id, result, error) {
  await fetch("/api/response", {
    method: "POST",
    headers: {"Content-Type": "application/json"},
    body: JSON.stringify({id: id, result: result, error: error}),
  });
}
async function handle(request) {
  try {
    if (!window.nostr) { throw new Error("no NIP-07 extension found"); }
    if (request.method === "get_public_key") {
      await answer(request.id, await window.nostr.getPublicKey(), null);
    } else if (request.method === "sign_event") {
      const signed = await window.nostr.signEvent(JSON.parse(request.params[0]));
      await answer(request.id, JSON.stringify(signed), null);
    } else {
      await answer(request.id, null, "unsupported method " + request.method);
    }
    status.textContent = "Answered " + request.method;
  } catch (e) {
    await answer(request.id, null, String(e && e.message || e));
    status.textContent = "Refused " + request.method;
  }
}
async function poll() {
  try {
    const response = await fetch("/api/pending");
    for (const request of await response.json()) { await handle(request); }
  } catch (e) {
    status.textContent = "Signer stopped";
    return;
  }
  setTimeout(poll, 500);
}
poll();
</script>
</body>
</html>
"""


def _split_address(address: str) -> tuple[str, int]:
    host, _, port = address.rpartition(":")
    return host, int(port)


class BrowserProxySigner(Signer):
    """Sign with the browser extension of whoever opens the proxy page.

    Args:
        address: ``host:port`` to listen on, loopback by default.
        timeout: Seconds to wait for the page to answer a request.
    """

    BACKEND = "browser"

    def __init__(
        self,
        address: str = DEFAULT_BROWSER_PROXY,
        *,
        timeout: float = DEFAULT_SIGN_TIMEOUT,
    ) -> None:
        super().__init__(timeout=timeout)
        self._host, self._port = _split_address(address)
        self._pending: PendingRequests[Response] = PendingRequests()
        self._undelivered: list[Request] = []
        self._runner: web.AppRunner | None = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/"

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._handle_page)
        app.router.add_get("/api/pending", self._handle_pending)
        app.router.add_post("/api/response", self._handle_response)
        return app

    async def _handle_page(self, _request: web.Request) -> web.Response:
        return web.Response(text=PAGE, content_type="text/html")

    async def _handle_pending(self, _request: web.Request) -> web.Response:
        batch, self._undelivered = self._undelivered, []
        payload: list[dict[str, Any]] = [
            {"id": r.id, "method": r.method.value, "params": list(r.params)} for r in batch
        ]
        return web.json_response(payload)

    async def _handle_response(self, request: web.Request) -> web.Response:
        try:
            data = await read_bounded_json(request, MAX_RESPONSE_SIZE)
        except ValueError as e:
            raise web.HTTPBadRequest(text=str(e)) from e
        if not isinstance(data, dict) or not isinstance(data.get("id"), str):
            raise web.HTTPBadRequest(text="Response must be an object with a string id")

        result = data.get("result")
        error = data.get("error")
        response = Response(
            id=data["id"],
            result=result if isinstance(result, str) and result else None,
            error=error if isinstance(error, str) and error else None,
        )
        if not self._pending.resolve(response.id, response):
            self._logger.debug("browser_response_unknown", request_id=response.id)
            return web.json_response({"accepted": False})
        return web.json_response({"accepted": True})

    async def _request(self, method: Method, *params: str) -> str:
        request = Request.create(method, *params)
        self._pending.create(request.id)
        self._undelivered.append(request)
        try:
            response = await self._pending.wait(request.id, self._timeout)
        finally:
            self._undelivered = [r for r in self._undelivered if r.id != request.id]
        if response.error is not None or response.result is None:
            raise SigningDenied(f"Browser refused {method.value}: {response.error or 'no result'}")
        return response.result

    async def _open(self) -> str:
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise SignerUnavailable(f"Cannot listen on {self._host}:{self._port}: {e}") from e
        self._runner = runner
        self._logger.info("browser_proxy_listening", url=self.url)

        try:
            pubkey = (await self._request(Method.GET_PUBLIC_KEY)).lower()
        except BaseException:
            await self._close()
            raise
        if len(pubkey) != 64 or any(c not in "0123456789abcdef" for c in pubkey):  # noqa: PLR2004
            await self._close()
            raise SigningDenied(f"Browser returned an invalid public key: {pubkey!r}")
        return pubkey

    async def _sign(self, unsigned: UnsignedEvent) -> Event:
        result = await self._request(Method.SIGN_EVENT, unsigned.as_json())
        try:
            return Event.from_json(result)
        except (TypeError, ValueError) as e:
            raise SigningDenied(f"Browser returned a malformed event: {e}") from e

    async def _close(self) -> None:
        self._pending.fail_all(SignerUnavailable("Browser signer closed"))
        self._undelivered.clear()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
