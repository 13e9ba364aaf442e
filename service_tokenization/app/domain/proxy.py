"""
Context-enriching reverse proxy to the registry.

Each route family maps an inbound path to a registry path. The outbound
query is the inbound one plus the route's static filters plus the home org,
read from the identity store when the request arrives. Responses are
relayed as-is apart from the identity header.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple
from urllib.parse import urlencode

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders

from shared.logging import get_logger
from service_tokenization.app.identity import IdentityConfiguration, IdentityStore

ORG_UID_HEADER = "organization-uid"
EXPOSE_HEADERS = "Access-Control-Expose-Headers"
UPSTREAM_UNAVAILABLE_MESSAGE = "Upstream service unavailable"
PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

# Never relayed in either direction
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
})


@dataclass(frozen=True)
class ProxyRoute:
    """One proxied route family."""

    name: str
    path_prefix: str
    upstream_path: str
    static_query_params: Tuple[Tuple[str, str], ...] = ()
    injects_org_uid: bool = True


DEFAULT_PROXY_ROUTES: Tuple[ProxyRoute, ...] = (
    ProxyRoute(
        name="tokenized_units",
        path_prefix="/units/tokenized",
        upstream_path="/v1/units",
        static_query_params=(("hasMarketplaceIdentifier", "true"),),
    ),
    ProxyRoute(
        name="untokenized_units",
        path_prefix="/units/untokenized",
        upstream_path="/v1/units",
        static_query_params=(("hasMarketplaceIdentifier", "false"),),
    ),
    ProxyRoute(
        name="projects",
        path_prefix="/projects",
        upstream_path="/v1/projects",
    ),
)


def build_upstream_query(route: ProxyRoute, identity: IdentityConfiguration,
                         inbound: Iterable[Tuple[str, str]] = ()) -> List[Tuple[str, str]]:
    """Merge inbound params, static filters and the home org, later ones winning."""
    overrides = dict(route.static_query_params)
    if route.injects_org_uid and identity.home_org:
        overrides["orgUid"] = identity.home_org

    query = [(key, value) for key, value in inbound if key not in overrides]
    query.extend(overrides.items())
    return query


def build_upstream_url(route: ProxyRoute, identity: IdentityConfiguration,
                       inbound: Iterable[Tuple[str, str]] = (), subpath: str = "") -> str:
    """Registry URL for the route, with any path below the prefix carried over."""
    path = route.upstream_path
    if subpath:
        path = path.rstrip("/") + "/" + subpath.lstrip("/")
    url = f"{identity.registry_host}{path}"
    query = build_upstream_query(route, identity, inbound)
    return f"{url}?{urlencode(query)}" if query else url


def expose_identity_header(headers: MutableHeaders, home_org: str) -> None:
    """Set the organization header and make it readable cross-origin."""
    headers[ORG_UID_HEADER] = home_org

    exposed = [value.strip() for value in headers.get(EXPOSE_HEADERS, "").split(",") if value.strip()]
    if ORG_UID_HEADER not in (value.lower() for value in exposed):
        exposed.append(ORG_UID_HEADER)
    headers[EXPOSE_HEADERS] = ", ".join(exposed)


class ContextEnrichingProxy:
    """Forwards route families to the registry with the current identity."""

    def __init__(self, identity_store: IdentityStore, routes: Sequence[ProxyRoute] = DEFAULT_PROXY_ROUTES,
                 timeout: float = 30.0, metrics=None):
        self.identity_store = identity_store
        self.routes = tuple(routes)
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("tokenization.proxy")

    def register(self, app: FastAPI) -> None:
        """Mount each route family on its prefix and on every path below it."""
        for route in self.routes:
            endpoint = self._endpoint(route)
            app.add_api_route(
                route.path_prefix,
                endpoint,
                methods=PROXY_METHODS,
                include_in_schema=False,
                name=f"proxy_{route.name}",
            )
            app.add_api_route(
                f"{route.path_prefix}/{{subpath:path}}",
                endpoint,
                methods=PROXY_METHODS,
                include_in_schema=False,
                name=f"proxy_{route.name}_subpath",
            )

    def _endpoint(self, route: ProxyRoute):
        async def proxy_endpoint(request: Request) -> Response:
            return await self.forward(request, route)
        return proxy_endpoint

    async def forward(self, request: Request, route: ProxyRoute) -> Response:
        identity = self.identity_store.get()
        url = build_upstream_url(
            route,
            identity,
            request.query_params.multi_items(),
            subpath=request.path_params.get("subpath", "")
        )
        headers = [
            (key, value) for key, value in request.headers.items()
            if key.lower() not in HOP_BY_HOP_HEADERS
        ]
        body = await request.body()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                upstream = await client.request(request.method, url, headers=headers, content=body)
        except httpx.HTTPError as e:
            self.logger.error("Proxy upstream unreachable", route=route.name, url=url, error=str(e))
            self._record(route, 502)
            response = JSONResponse(
                status_code=502,
                content={"message": UPSTREAM_UNAVAILABLE_MESSAGE, "error": str(e) or e.__class__.__name__}
            )
            self._decorate(response, identity)
            return response

        response = Response(content=upstream.content, status_code=upstream.status_code)
        for key, value in upstream.headers.multi_items():
            if key.lower() not in HOP_BY_HOP_HEADERS:
                response.headers.append(key, value)
        self._decorate(response, identity)

        self.logger.debug(
            "Proxied request",
            route=route.name,
            method=request.method,
            url=url,
            status_code=upstream.status_code
        )
        self._record(route, upstream.status_code)
        return response

    @staticmethod
    def _decorate(response: Response, identity: IdentityConfiguration) -> None:
        if identity.has_home_org:
            expose_identity_header(response.headers, identity.home_org)

    def _record(self, route: ProxyRoute, status_code: int) -> None:
        if self.metrics is not None:
            self.metrics.record_proxy_request(route.name, status_code)

