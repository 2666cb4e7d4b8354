import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.core.config import CORS_ORIGINS, LOG_LEVEL
from app.core.exceptions import StorageError, UnresolvedCounterpartyError, ValidationError
from app.database import create_db_and_tables
from app.api import auth, balances, debts, realtime, settlements, transactions
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    yield

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "La transacción no es válida.", "errors": exc.errors},
    )

# Sin "input": un Infinity o NaN rechazado no es serializable en JSON
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": errors})

@app.exception_handler(UnresolvedCounterpartyError)
async def unresolved_counterparty_handler(request: Request, exc: UnresolvedCounterpartyError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})

app.include_router(auth.router)
app.include_router(transactions.router)
app.include_router(settlements.router)
app.include_router(debts.router)
app.include_router(balances.router)
app.include_router(realtime.router)

@app.get("/")
def root():
    return {"message": "Servidor de gastos compartidos"}
