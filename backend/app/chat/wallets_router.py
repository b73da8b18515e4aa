"""Administrative read endpoint for the wallet log.

Endpoints:
    GET /wallets            - Full username -> external identifier mapping
    GET /{prefix}/wallets   - Same, for clients that prefix the room path

Any other method on these paths answers 404, like every unknown path.
"""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from .room import Room

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])


def _not_found() -> JSONResponse:
    return JSONResponse({"detail": "Not Found"}, status_code=404)


@router.get("/wallets")
@router.get("/{prefix:path}/wallets")
async def get_wallet_log(request: Request) -> JSONResponse:
    """Return every external identifier ever seen on join, keyed by username."""
    room: Room = request.app.state.room
    wallets = room.wallet_log()
    logger.info(f"Wallet log requested ({len(wallets)} entries)")
    return JSONResponse(wallets)


_OTHER_METHODS = ["POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


@router.api_route("/wallets", methods=_OTHER_METHODS, include_in_schema=False)
@router.api_route(
    "/{prefix:path}/wallets",
    methods=_OTHER_METHODS,
    include_in_schema=False,
)
async def wallet_log_other_methods() -> JSONResponse:
    return _not_found()
