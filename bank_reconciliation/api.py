"""
FastAPI application for the bank reconciliation service.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import Settings, get_settings
from .errors import LedgerFeedError, NotFoundError, StateConflictError
from .ledger import parse_ledger_record
from .logging_setup import setup_logging
from .models import MatchMethod, TransactionStatus
from .reconciliation import ReconciliationOrchestrator
from .utils.config_utils import update_env_file

logger = structlog.get_logger()


# Request/Response models
class ImportRowsRequest(BaseModel):
    rows: List[Dict[str, Any]]


class LedgerLoadRequest(BaseModel):
    records: List[Dict[str, Any]]


class ConfirmRequest(BaseModel):
    ledger_id: str
    actor: Optional[str] = None
    score: Optional[float] = None


class IgnoreRequest(BaseModel):
    reason: Optional[str] = None


class AutoReconcileRequest(BaseModel):
    threshold: Optional[float] = None


class SettingsUpdateRequest(BaseModel):
    amount_tolerance: Optional[float] = None
    amount_epsilon_cents: Optional[int] = None
    date_window_days: Optional[int] = None
    close_date_days: Optional[int] = None
    weight_amount: Optional[float] = None
    weight_client_name: Optional[float] = None
    weight_date: Optional[float] = None
    weight_reference: Optional[float] = None
    auto_reconcile_threshold: Optional[float] = None
    ledger_feed_url: Optional[str] = None


class StatsResponse(BaseModel):
    total: int
    reconciled_count: int
    pending_count: int
    ignored_count: int
    pending_amount: float
    reconciled_amount: float
    reconciliation_rate: float


async def _conflict_response(request: Request, exc: StateConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "code": exc.code.value, "details": exc.details},
    )


async def _not_found_response(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def create_app(
    orchestrator: Optional[ReconciliationOrchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        orchestrator: Service to expose, built from settings when omitted
        settings: Settings override, mostly for tests
    """
    settings = settings or get_settings()
    service = orchestrator or ReconciliationOrchestrator(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting bank reconciliation API", env=settings.app_env)
        if settings.ledger_feed_url:
            try:
                await service.refresh_ledger()
            except LedgerFeedError as e:
                logger.warning("Initial ledger fetch failed", error=str(e), status_code=e.status_code)
        yield
        logger.info("Shutting down bank reconciliation API")

    app = FastAPI(
        title="Bank Reconciliation",
        description="Rapprochement bancaire des factures et bons de livraison",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StateConflictError, _conflict_response)
    app.add_exception_handler(NotFoundError, _not_found_response)

    # API Endpoints
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}

    # Ledger

    @app.get("/api/ledger")
    async def list_ledger():
        records = await asyncio.to_thread(service.ledger_records)
        return {"records": [r.to_dict() for r in records]}

    @app.put("/api/ledger")
    async def load_ledger(request: LedgerLoadRequest):
        """Replace the ledger snapshot with the posted records."""
        records = []
        for position, entry in enumerate(request.records, start=1):
            try:
                records.append(parse_ledger_record(entry, settings.vat_rate))
            except (ValueError, TypeError) as e:
                raise HTTPException(422, f"Ledger record {position}: {e}")
        count = service.load_ledger(records)
        return {"loaded": count}

    @app.post("/api/ledger/refresh")
    async def refresh_ledger():
        """Fetch the configured ledger feed."""
        try:
            count = await service.refresh_ledger()
        except LedgerFeedError as e:
            logger.error("Ledger refresh failed", error=str(e), status_code=e.status_code)
            raise HTTPException(502, str(e))
        return {"loaded": count}

    # Transactions

    @app.post("/api/transactions/import")
    async def import_transactions(request: ImportRowsRequest):
        summary = await asyncio.to_thread(service.import_rows, request.rows)
        return summary.to_dict()

    @app.post("/api/transactions/import-csv")
    async def import_transactions_csv(request: Request):
        """Import a bank CSV export posted as the raw request body."""
        body = await request.body()
        try:
            text = body.decode("utf-8-sig")
        except UnicodeDecodeError:
            # Older bank exports are Windows-1252
            text = body.decode("cp1252", errors="replace")
        summary = await asyncio.to_thread(service.import_csv, text)
        return summary.to_dict()

    @app.get("/api/transactions")
    async def list_transactions(status: Optional[TransactionStatus] = None, search: Optional[str] = None):
        transactions = await asyncio.to_thread(service.list_transactions, status, search)
        return {"transactions": [t.to_dict() for t in transactions]}

    @app.get("/api/transactions/stats", response_model=StatsResponse)
    async def transaction_stats():
        stats = await asyncio.to_thread(service.stats)
        return StatsResponse(**stats.to_dict())

    @app.get("/api/transactions/{transaction_id}")
    async def get_transaction(transaction_id: str):
        transaction = await asyncio.to_thread(service.get_transaction, transaction_id)
        return transaction.to_dict()

    @app.get("/api/transactions/{transaction_id}/suggestions")
    async def get_suggestions(transaction_id: str, limit: Optional[int] = None):
        suggestions = await asyncio.to_thread(service.suggestions, transaction_id, limit)
        return {"transaction_id": transaction_id, "suggestions": [s.to_dict() for s in suggestions]}

    @app.post("/api/transactions/{transaction_id}/confirm")
    async def confirm_match(transaction_id: str, request: ConfirmRequest):
        try:
            record = await asyncio.to_thread(
                service.confirm, transaction_id, request.ledger_id, request.actor, request.score
            )
        except ValueError as e:
            raise HTTPException(422, str(e))
        return record.to_dict()

    @app.post("/api/transactions/{transaction_id}/ignore")
    async def ignore_transaction(transaction_id: str, request: Optional[IgnoreRequest] = None):
        reason = request.reason if request else None
        transaction = await asyncio.to_thread(service.ignore, transaction_id, reason)
        return transaction.to_dict()

    # Reconciliation

    @app.post("/api/reconciliation/auto")
    async def auto_reconcile(request: Optional[AutoReconcileRequest] = None):
        threshold = request.threshold if request else None
        try:
            report = await asyncio.to_thread(service.auto_reconcile, threshold)
        except ValueError as e:
            raise HTTPException(422, str(e))
        return report.to_dict()

    @app.get("/api/audit")
    async def audit_log(method: Optional[MatchMethod] = None, transaction_id: Optional[str] = None):
        entries = service.audit_logger.get_entries(method_filter=method, transaction_id=transaction_id)
        return {
            "summary": service.audit_logger.summary(),
            "entries": [e.to_dict() for e in entries],
        }

    # Settings

    @app.get("/settings", response_model=SettingsUpdateRequest)
    async def get_settings_endpoint():
        """Get current matching settings."""
        s = service.settings
        return SettingsUpdateRequest(
            amount_tolerance=s.amount_tolerance,
            amount_epsilon_cents=s.amount_epsilon_cents,
            date_window_days=s.date_window_days,
            close_date_days=s.close_date_days,
            weight_amount=s.weight_amount,
            weight_client_name=s.weight_client_name,
            weight_date=s.weight_date,
            weight_reference=s.weight_reference,
            auto_reconcile_threshold=s.auto_reconcile_threshold,
            ledger_feed_url=s.ledger_feed_url,
        )

    @app.post("/settings")
    async def update_settings(request: SettingsUpdateRequest):
        """Validate and persist settings to the .env file."""
        updates = request.model_dump(exclude_none=True)
        if not updates:
            return {"status": "unchanged", "message": "No settings provided."}

        # Check the merged configuration before writing anything
        merged = service.settings.model_dump()
        merged.update(updates)
        try:
            Settings(**merged)
        except ValidationError as e:
            raise HTTPException(422, str(e))

        success = update_env_file({key.upper(): value for key, value in updates.items()})
        if not success:
            raise HTTPException(status_code=500, detail="Failed to write to .env file")

        logger.info("Settings updated", keys=sorted(updates))
        return {"status": "success", "message": "Settings updated. Restart required."}

    return app


def build_app() -> FastAPI:
    """uvicorn factory: configures logging, then builds the app from settings."""
    setup_logging()
    return create_app()
