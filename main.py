# main.py (lifespan-based)
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from tortoise import Tortoise

from api_utils import validation_error_response
from routers import auth, substations, billing_meters, technical_meters, reports
from services import config
from services.errors import (
    NotFound,
    PropagationIncomplete,
    SubstationNameTaken,
    ValidationError,
)
from services.seeder import seed_admin, seed_substations_if_empty

logger = logging.getLogger("uvicorn")
logger.setLevel(config.LOG_LEVEL)


# ----- lifespan -----
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1) DB init
    await Tortoise.init(config=config.tortoise_config())
    await Tortoise.generate_schemas(safe=True)

    # 2) Seeds
    await seed_admin(logger=logger.info)
    await seed_substations_if_empty(logger=logger.info)

    try:
        yield
    finally:
        await Tortoise.close_connections()


# ----- app & routers -----
app = FastAPI(lifespan=lifespan, title="Substation Meters API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "X-Total-Count"],
)


# ----- domain errors -> HTTP -----
@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return validation_error_response(exc)


@app.exception_handler(NotFound)
async def _not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(SubstationNameTaken)
async def _name_taken(request: Request, exc: SubstationNameTaken):
    return JSONResponse(status_code=409, content={"detail": str(exc), "field": "name"})


@app.exception_handler(PropagationIncomplete)
async def _propagation_incomplete(request: Request, exc: PropagationIncomplete):
    # transaction is already rolled back; the details stay in the server log
    logger.error(f"[accumulation] {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Failed to save meter data, nothing was changed."})


app.include_router(auth.router)
app.include_router(substations.router)
app.include_router(billing_meters.router)
app.include_router(technical_meters.router)
app.include_router(reports.router)

for route in app.routes:
    if isinstance(route, APIRoute):
        logger.debug(f"{list(route.methods)} -> {route.path}")
