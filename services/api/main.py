from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any, Awaitable, Callable, TypeVar

from aiohttp import web
from redis.asyncio import Redis

from vaultswap.amounts import format_amount, parse_units
from vaultswap.db import create_engine, create_session_factory
from vaultswap.errors import (
    AccountMismatch,
    AlreadyInUse,
    DerivationError,
    EscrowError,
    InsufficientFunds,
    InvalidAmount,
    InvalidTransition,
    NotFound,
    Unauthorized,
)
from vaultswap.escrow import cancel_escrow, get_escrow, open_escrow, settle_escrow
from vaultswap.ledger import Ledger, SqlLedger
from vaultswap.request_security import verify_command, verify_nonce, verify_timestamp
from vaultswap.security import SignedCommand
from services.api.settings import ApiSettings, load_settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_RESPONSES: dict[type[EscrowError], type[web.HTTPException]] = {
    InvalidAmount: web.HTTPBadRequest,
    DerivationError: web.HTTPBadRequest,
    Unauthorized: web.HTTPForbidden,
    NotFound: web.HTTPNotFound,
    AccountMismatch: web.HTTPConflict,
    AlreadyInUse: web.HTTPConflict,
    InvalidTransition: web.HTTPConflict,
    InsufficientFunds: web.HTTPPaymentRequired,
}


def error_response(exc: EscrowError) -> web.HTTPException:
    response_cls = ERROR_RESPONSES.get(type(exc), web.HTTPBadRequest)
    body = json.dumps({"error": exc.code, "message": str(exc)})
    return response_cls(text=body, content_type="application/json")


async def authenticate(request: web.Request, command: str) -> tuple[SignedCommand, dict[str, Any]]:
    app = request.app
    settings: ApiSettings = app["settings"]
    try:
        payload = await request.json()
    except json.JSONDecodeError as exc:
        raise web.HTTPBadRequest(text="Body must be JSON") from exc
    if not isinstance(payload, dict):
        raise web.HTTPBadRequest(text="Body must be a JSON object")
    try:
        signed = SignedCommand.from_payload(command, payload)
        verify_timestamp(signed.timestamp, settings.request_max_age_seconds)
        verify_command(signed)
        await verify_nonce(app["redis"], signed.nonce, settings.nonce_ttl_seconds)
    except ValueError as exc:
        logger.warning("rejected %s request: %s", command, exc)
        raise web.HTTPUnauthorized(text=str(exc)) from exc
    return signed, payload


async def run_command(app: web.Application, operation: Callable[[Ledger], Awaitable[T]]) -> T:
    async with app["session_factory"]() as session:
        async with session.begin():
            ledger = SqlLedger(session, app["settings"])
            try:
                return await operation(ledger)
            except EscrowError as exc:
                logger.warning("command failed: %s %s", exc.code, exc)
                raise error_response(exc) from exc


def require_path_escrow(request: web.Request, signed: SignedCommand) -> str:
    escrow = request.match_info["address"]
    if str(signed.fields["escrow"]) != escrow:
        raise web.HTTPBadRequest(text="Signed escrow does not match path")
    return escrow


async def handle_open(request: web.Request) -> web.Response:
    signed, payload = await authenticate(request, "open")
    try:
        seed = parse_units(signed.fields["seed"])
        receive = parse_units(signed.fields["receive"])
        deposit = parse_units(signed.fields["deposit"])
    except ValueError as exc:
        raise web.HTTPBadRequest(text=str(exc)) from exc

    opened = await run_command(
        request.app,
        lambda ledger: open_escrow(
            ledger,
            maker=signed.signer,
            seed=seed,
            receive=receive,
            deposit=deposit,
            mint_a=str(signed.fields["mint_a"]),
            mint_b=str(signed.fields["mint_b"]),
            vault=payload.get("vault"),
        ),
    )
    return web.json_response(asdict(opened), status=201)


async def handle_settle(request: web.Request) -> web.Response:
    signed, payload = await authenticate(request, "settle")
    escrow = require_path_escrow(request, signed)
    closed = await run_command(
        request.app,
        lambda ledger: settle_escrow(
            ledger,
            taker=signed.signer,
            escrow=escrow,
            mint_a=payload.get("mint_a"),
            mint_b=payload.get("mint_b"),
            vault=payload.get("vault"),
        ),
    )
    return web.json_response({**asdict(closed), "status": closed.status.value})


async def handle_cancel(request: web.Request) -> web.Response:
    signed, payload = await authenticate(request, "cancel")
    escrow = require_path_escrow(request, signed)
    closed = await run_command(
        request.app,
        lambda ledger: cancel_escrow(
            ledger,
            caller=signed.signer,
            escrow=escrow,
            mint_a=payload.get("mint_a"),
            vault=payload.get("vault"),
        ),
    )
    return web.json_response({**asdict(closed), "status": closed.status.value})


async def handle_get_escrow(request: web.Request) -> web.Response:
    address = request.match_info["address"]
    view = await run_command(request.app, lambda ledger: get_escrow(ledger, address))
    return web.json_response({**asdict(view), "status": view.status.value})


async def handle_get_account(request: web.Request) -> web.Response:
    address = request.match_info["address"]

    async def lookup(ledger: SqlLedger) -> dict[str, Any]:
        account = await ledger.get_account(address)
        asset = await ledger.get_asset(account.asset)
        return {**asdict(account), "ui_amount": format_amount(account.amount, asset.decimals)}

    return web.json_response(await run_command(request.app, lookup))


def create_app(
    settings: ApiSettings | None = None,
    session_factory=None,
    redis=None,
) -> web.Application:
    settings = settings or load_settings()
    app = web.Application()
    app["settings"] = settings
    app["redis"] = redis or Redis.from_url(settings.redis_url, decode_responses=True)
    app["session_factory"] = session_factory or create_session_factory(create_engine(settings.database_url))

    app.router.add_post("/escrows", handle_open)
    app.router.add_get("/escrows/{address}", handle_get_escrow)
    app.router.add_post("/escrows/{address}/settle", handle_settle)
    app.router.add_post("/escrows/{address}/cancel", handle_cancel)
    app.router.add_get("/accounts/{address}", handle_get_account)
    return app


if __name__ == "__main__":
    api_settings = load_settings()
    web.run_app(create_app(api_settings), host=api_settings.api_host, port=api_settings.api_port)
