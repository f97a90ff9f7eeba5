# --- Imports ---
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

# Internal imports from sibling modules
from .config import settings
from .database import Base, engine, get_db
from .errors import EquipmentServiceError, ValidationError
from .schemas import EquipmentCreate, EquipmentUpdate, StatusPatch, serialize_equipment
from .stats import StatisticsAggregator
from .store import EquipmentStore

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


# --- Database Initialization ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables defined in models.py if they don't exist
    Base.metadata.create_all(bind=engine)
    logger.info("Starting %s (env=%s, prefix=%s)", settings.PROJECT_NAME, settings.ENVIRONMENT, settings.API_PREFIX)
    yield


# --- App Instance ---
app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and timing."""
    start_time = time.time()
    response = await call_next(request)
    elapsed_ms = (time.time() - start_time) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# --- Error Handlers ---
@app.exception_handler(EquipmentServiceError)
async def service_error_handler(request: Request, exc: EquipmentServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are client errors like any other rule violation.
    error = ValidationError(
        "invalid_payload",
        "Request payload does not match the equipment schema",
        # The offending input is left out; it may not be JSON-encodable (e.g. inf).
        details=jsonable_encoder(
            [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]
        ),
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# --- Dependencies ---
def get_store(db: Session = Depends(get_db)) -> EquipmentStore:
    return EquipmentStore(db)


def get_aggregator(db: Session = Depends(get_db)) -> StatisticsAggregator:
    return StatisticsAggregator(db)


# --- Endpoints ---
@app.get("/")
def root():
    """Health check endpoint to confirm the equipment service is operational."""
    return {"message": "Equipment service is running"}


router = APIRouter(prefix=settings.API_PREFIX)


@router.get("/health")
def health(db: Session = Depends(get_db)):
    """Reports the environment and whether the database answers."""
    try:
        db.execute(text("SELECT 1"))
        db_state = "up"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        db_state = "down"
    return {"status": "OK", "env": settings.ENVIRONMENT, "db": db_state}


@router.get("/equipment")
def list_equipment(
    category: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    store: EquipmentStore = Depends(get_store),
):
    """Lists equipment, optionally filtered by category, status bucket and free text."""
    items = store.list(category=category, status=status, search=search)
    return [serialize_equipment(item) for item in items]


@router.post("/equipment", status_code=201)
def create_equipment(payload: EquipmentCreate, store: EquipmentStore = Depends(get_store)):
    return serialize_equipment(store.create(payload))


@router.get("/equipment/{equipment_id}")
def get_equipment(equipment_id: str, store: EquipmentStore = Depends(get_store)):
    return serialize_equipment(store.get(equipment_id))


@router.put("/equipment/{equipment_id}")
def update_equipment(
    equipment_id: str, payload: EquipmentUpdate, store: EquipmentStore = Depends(get_store)
):
    """
    Updates a record. Omitted fields keep their stored values; the merged
    record must still satisfy every create-time rule.
    """
    return serialize_equipment(store.update(equipment_id, payload))


@router.patch("/equipment/{equipment_id}/status")
def patch_equipment_status(
    equipment_id: str, payload: StatusPatch, store: EquipmentStore = Depends(get_store)
):
    """
    Shifts units between status buckets.
    - `change` units move into `status`, out of `source`.
    - Without `source`: in_use/maintenance draw from available, available draws from in_use.
    - Quantity is unchanged; a move that would drive any bucket below zero is a 400.
    """
    item = store.patch_status(equipment_id, payload.status, payload.change, payload.source)
    return serialize_equipment(item)


@router.delete("/equipment/{equipment_id}", status_code=204)
def delete_equipment(equipment_id: str, store: EquipmentStore = Depends(get_store)):
    """Deletes a record; a second delete of the same id is a 404."""
    store.delete(equipment_id)
    return Response(status_code=204)


@router.get("/stats/summary")
def stats_summary(aggregator: StatisticsAggregator = Depends(get_aggregator)):
    return aggregator.summary()


@router.get("/stats/category/{name}")
def stats_category(name: str, aggregator: StatisticsAggregator = Depends(get_aggregator)):
    return aggregator.category_detail(name)


app.include_router(router)
