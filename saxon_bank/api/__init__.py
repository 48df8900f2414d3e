"""
Saxon Bank API Application Factory
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..errors import (
    AlreadyProcessed, AuthenticationError, BankingError, DuplicateRequest,
    NotFound, PermissionDenied, RecipientNotFound
)
from ..logging_config import get_logger, log_action, setup_logging
from ..system import BankingSystem
from .. import __version__

from .auth import router as auth_router
from .accounts import router as accounts_router
from .transactions import router as transactions_router
from .billers import router as billers_router
from .loans import router as loans_router
from .cards import router as cards_router
from .kyc import router as kyc_router
from .referrals import router as referrals_router
from .notifications import router as notifications_router
from .admin import router as admin_router


logger = get_logger("saxon.api")

# Checked in order; anything else is a 400
ERROR_STATUS = (
    (AuthenticationError, 401),
    (PermissionDenied, 403),
    (NotFound, 404),
    (RecipientNotFound, 404),
    (AlreadyProcessed, 409),
    (DuplicateRequest, 409),
)


def status_for(error: BankingError) -> int:
    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code
    return 400


async def banking_error_handler(request: Request, exc: BankingError) -> JSONResponse:
    status_code = status_for(exc)
    log_action(logger, "warning" if status_code != 401 else "info",
               f"Request failed: {exc.message}",
               action=request.url.path, resource=exc.code,
               correlation_id=request.headers.get("X-Correlation-ID"))
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.code}
    )


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    system = system or BankingSystem()
    setup_logging(system.config.log_level, log_format=system.config.log_format)

    app = FastAPI(
        title="Saxon Bank API",
        description="Ledger and approval workflows for Saxon Bank",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BankingError, banking_error_handler)

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(billers_router, prefix="/billers", tags=["Billers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(cards_router, prefix="/cards", tags=["Cards"])
    app.include_router(kyc_router, prefix="/kyc", tags=["KYC"])
    app.include_router(referrals_router, prefix="/referrals", tags=["Referrals"])
    app.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "saxon_bank_api",
            "version": __version__
        }

    return app
