import logging
from contextlib import asynccontextmanager
from typing import Optional

import jwt
from fastapi import FastAPI, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from common.circuit_breaker import run_blocking
from common.error_handling import add_error_handlers
from common.schemas import AccountTransferRequest, UpiTransferRequest, FraudReportRequest
from common.security import ADMIN_AUDIENCE, mint_user_jwt, verify_token
from common.settings import Settings, settings as default_settings
from common.tracing import Tracer, tracing_middleware
from ledger_service.demo import build_seed_entries
from ledger_service.errors import AccountNotFound, DependencyUnavailable, Unauthorized
from ledger_service.models import ACTIVE, FROZEN
from ledger_service.money import from_minor, to_minor
from ledger_service.services import LedgerServices, build_services

logger = logging.getLogger(__name__)

def create_app(services: Optional[LedgerServices] = None, cfg: Settings = default_settings) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is None:
            logging.basicConfig(level=cfg.log_level)
            app.state.services = build_services(cfg)
        logger.info("🚀 Ledger service started")
        yield
        await app.state.services.close()
        logger.info("👋 Ledger service stopped")

    app = FastAPI(title="Ledger Service", lifespan=lifespan)
    if services is not None:
        app.state.services = services
    add_error_handlers(app)
    tracer = Tracer("ledger-service")

    @app.middleware("http")
    async def trace_requests(request: Request, call_next):
        return await tracing_middleware(request, call_next, tracer)

    def get_services(request: Request) -> LedgerServices:
        return request.app.state.services

    def bearer(authorization: Optional[str]) -> str:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(401, "missing bearer token")
        return authorization.split(" ", 1)[1]

    # User auth: the token subject is the caller's account number
    async def user_auth(request: Request, authorization: Optional[str] = Header(None)) -> str:
        token = bearer(authorization)
        try:
            claims = verify_token(token, cfg=get_services(request).settings)
        except jwt.PyJWTError as e:
            raise HTTPException(401, f"invalid token: {e}")
        return claims["sub"]

    async def admin_auth(request: Request, authorization: Optional[str] = Header(None)):
        token = bearer(authorization)
        try:
            verify_token(token, audience=ADMIN_AUDIENCE, cfg=get_services(request).settings)
        except jwt.PyJWTError as e:
            raise HTTPException(401, f"invalid internal token: {e}")

    async def demo_only(request: Request):
        if not get_services(request).settings.enable_demo_endpoints:
            raise HTTPException(404, "Not found")

    async def caller_account(svc: LedgerServices, account_id: str):
        account = await run_blocking(svc.repository.get_account, account_id)
        if account is None:
            raise Unauthorized("Account not found for this session")
        return account

    # Transfers
    @app.post("/transactions/send")
    async def send(payload: AccountTransferRequest, account_id: str = Depends(user_auth),
                   svc: LedgerServices = Depends(get_services)):
        outcome = await svc.orchestrator.transfer_to_account(account_id, payload)
        return outcome.to_response()

    @app.post("/transactions/upi/send")
    async def upi_send(payload: UpiTransferRequest, account_id: str = Depends(user_auth),
                       svc: LedgerServices = Depends(get_services)):
        outcome = await svc.orchestrator.transfer_to_upi(account_id, payload)
        return outcome.to_response()

    @app.post("/transactions/send-otp")
    async def send_otp(account_id: str = Depends(user_auth), svc: LedgerServices = Depends(get_services)):
        account = await caller_account(svc, account_id)
        try:
            code = await svc.authorizer.issue(account)
        except Exception as e:
            raise DependencyUnavailable("otp", original_error=e)

        templates = svc.notifier.templates
        svc.notifier.notify("OTP", account.phone_number, templates.otp(code, svc.settings.otp_ttl_seconds))
        body = {"message": "OTP sent successfully"}
        if svc.settings.enable_demo_endpoints:
            body["otp"] = code
        return body

    # Queries
    @app.get("/transactions/history")
    async def history(account_id: str = Depends(user_auth), svc: LedgerServices = Depends(get_services)):
        records = await run_blocking(svc.repository.history, account_id, svc.settings.history_limit)
        return [r.to_dict() for r in records]

    @app.get("/transactions/alerts")
    async def alerts(account_id: str = Depends(user_auth), svc: LedgerServices = Depends(get_services)):
        records = await run_blocking(svc.repository.history, account_id, svc.settings.history_limit,
                                     fraud_only=True)
        return [r.to_dict() for r in records]

    @app.get("/transactions/balance")
    async def balance(account_id: str = Depends(user_auth), svc: LedgerServices = Depends(get_services)):
        account = await caller_account(svc, account_id)
        recent = await run_blocking(svc.repository.history, account_id, 5)
        return {
            **account.to_dict(),
            "recent": [
                {"txn_id": r.txn_id, "amount": from_minor(r.amount), "type": r.direction,
                 "created_at": r.created_at.isoformat()}
                for r in recent
            ],
        }

    @app.post("/transactions/seed-fraud", dependencies=[Depends(demo_only)])
    async def seed_fraud(account_id: str = Depends(user_auth), svc: LedgerServices = Depends(get_services)):
        account = await caller_account(svc, account_id)
        entries = build_seed_entries(account)
        await run_blocking(svc.repository.add_entries, entries)
        return {"message": f"Seeded {len(entries)} suspicious transactions",
                "currentBalance": from_minor(account.balance)}

    # Fraud registry
    @app.post("/fraud/report")
    async def report(payload: FraudReportRequest, account_id: str = Depends(user_auth),
                     svc: LedgerServices = Depends(get_services)):
        _, created = await run_blocking(svc.registry.report, payload.account_number,
                                        payload.bank_code, payload.reason, account_id)
        if not created:
            return {"message": "Account already reported"}
        return {"message": "Fraudulent account reported successfully"}

    @app.get("/fraud/accounts", dependencies=[Depends(admin_auth)])
    async def fraud_accounts(svc: LedgerServices = Depends(get_services)):
        entries = await run_blocking(svc.registry.list_entries)
        return [e.to_dict() for e in entries]

    # Admin
    async def set_status(svc: LedgerServices, account_id: str, status: str) -> dict:
        account = await run_blocking(svc.repository.set_status, account_id, status)
        if account is None:
            raise AccountNotFound(account_id)
        logger.info(f"🧊 Account {account_id} status set to {status}")
        return account.to_dict()

    @app.post("/admin/accounts/{account_id}/freeze", dependencies=[Depends(admin_auth)])
    async def freeze(account_id: str, svc: LedgerServices = Depends(get_services)):
        return {"message": "User frozen successfully", "account": await set_status(svc, account_id, FROZEN)}

    @app.post("/admin/accounts/{account_id}/unfreeze", dependencies=[Depends(admin_auth)])
    async def unfreeze(account_id: str, svc: LedgerServices = Depends(get_services)):
        return {"message": "User unfrozen successfully", "account": await set_status(svc, account_id, ACTIVE)}

    # For demo, create accounts and tokens quickly
    @app.post("/accounts/{account_id}/seed/{balance}", dependencies=[Depends(demo_only)])
    async def seed_account(account_id: str, balance: float, name: str = "", upi_id: Optional[str] = None,
                           phone: Optional[str] = None, svc: LedgerServices = Depends(get_services)):
        if balance < 0:
            raise HTTPException(400, "balance cannot be negative")
        account = await run_blocking(svc.repository.save_account, account_id, to_minor(balance),
                                     name, upi_id, phone)
        return {"ok": True, "account": account.to_dict()}

    @app.post("/demo/token/{account_id}", dependencies=[Depends(demo_only)])
    async def demo_token(account_id: str, svc: LedgerServices = Depends(get_services)):
        return {"access_token": mint_user_jwt(account_id, claims={"scope": "user"}, cfg=svc.settings),
                "token_type": "bearer"}

    @app.get("/health")
    async def health(svc: LedgerServices = Depends(get_services)):
        if svc.redis is None:
            return {"ok": True, "service": "ledger"}
        redis_up = await run_blocking(svc.redis.ping)
        body = {"ok": redis_up, "service": "ledger", "redis": "up" if redis_up else "down"}
        return JSONResponse(body, status_code=200 if redis_up else 503)

    return app

app = create_app()
