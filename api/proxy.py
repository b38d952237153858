"""/api/proxy/* - authenticated passthrough to the deal backend."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from api.base import error_response, ErrorCodes
from auth.session import SessionCodec
from clients.backend_client import (
    BackendProxyClient,
    BackendResponseError,
    BackendUnavailableError,
    InvalidProxyBodyError,
)

logger = logging.getLogger(__name__)


def create_proxy_router(proxy_client: BackendProxyClient, codec: SessionCodec) -> APIRouter:
    """Create proxy router.

    The proxy never rejects anonymous callers; without a valid session the
    identity field is simply left off and the backend decides.
    """
    router = APIRouter(tags=["proxy"])

    @router.api_route("/proxy/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
    async def proxy(path: str, request: Request):
        session = codec.read_session(request)
        body = await request.body() if request.method in ("POST", "PUT") else None

        try:
            result = await run_in_threadpool(
                proxy_client.forward,
                request.method,
                path,
                list(request.query_params.multi_items()),
                body,
                request.headers,
                session.email if session else None,
            )
        except InvalidProxyBodyError as e:
            return JSONResponse(
                status_code=400,
                content=error_response(ErrorCodes.INVALID_REQUEST, str(e)),
            )
        except (BackendUnavailableError, BackendResponseError) as e:
            return JSONResponse(
                status_code=502,
                content=error_response(ErrorCodes.PROXY_ERROR, "Proxy request failed", str(e)),
            )

        if result.payload is None:
            return Response(status_code=result.status_code)

        return JSONResponse(content=result.payload, status_code=result.status_code)

    return router
