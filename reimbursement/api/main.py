import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from reimbursement import __version__
from reimbursement.core.config import get_settings
from reimbursement.core.logger import configure_logging
from reimbursement.core.approval import ApprovalError
from reimbursement.api.routers import approvals, reimbursements, health

settings = get_settings()
configure_logging(level=settings.log_level, log_dir=settings.log_dir)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Expense reimbursement approval workflow",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApprovalError)
async def approval_error_handler(request: Request, exc: ApprovalError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Server error"})


app.include_router(reimbursements.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
