"""
HTTP API for rate card imports and chargeable weight.

Run with: uvicorn ratecard.api:app --reload
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ratecard.config import AppConfig, load_app_config
from ratecard.data_loader import read_workbook
from ratecard.errors import RuleSetError, WorkbookReadError
from ratecard.models import ChannelLimits, CalculationError
from ratecard.parsers.channel_rules import parse_channel_rules
from ratecard.serialize import to_jsonable
from ratecard.service import HistoryLookup, RateImportService
from ratecard.structure import BaselineStore
from ratecard.weight import evaluate, rule_set_from_config


class LimitsPayload(BaseModel):
    max_length: float | None = None
    max_width: float | None = None
    max_height: float | None = None
    max_weight: float | None = None
    max_single_side: float | None = None
    notes: str | None = None


class ChargeableWeightRequest(BaseModel):
    # Loosely typed so bad values reach the evaluator and come back as structured errors.
    length: float | str | None = None
    width: float | str | None = None
    height: float | str | None = None
    actual_weight: float | str | None = None
    volume_weight_divisor: float | None = None
    conditional_rules: dict[str, Any] | None = None
    limits: LimitsPayload | None = None


def create_app(
    config: AppConfig | None = None,
    history: HistoryLookup | None = None,
    baseline_store: BaselineStore | None = None,
) -> FastAPI:
    config = config or load_app_config()
    service = RateImportService(history=history, baseline_store=baseline_store, config=config)

    app = FastAPI(title="Rate Card API", version="0.1")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    router = APIRouter(prefix="/api/v1")

    @router.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @router.post("/chargeable-weight")
    def chargeable_weight(req: ChargeableWeightRequest) -> dict[str, Any]:
        try:
            rule_set = rule_set_from_config(
                req.volume_weight_divisor,
                req.conditional_rules,
                default_divisor=config.weight.default_divisor,
            )
        except RuleSetError as e:
            raise HTTPException(status_code=422, detail={"code": "invalid_rule_set", "message": str(e)}) from e

        limits = ChannelLimits(**req.limits.model_dump()) if req.limits else None
        result = evaluate(req.length, req.width, req.height, req.actual_weight, rule_set, limits)
        if isinstance(result, CalculationError):
            raise HTTPException(status_code=422, detail=to_jsonable(result))
        return to_jsonable(result)

    @router.post("/workbooks/parse")
    async def parse_workbook(
        file: UploadFile = File(...),
        history: list[str] | None = Query(default=None),
    ) -> dict[str, Any]:
        content = await file.read()
        try:
            workbook = read_workbook(content, name=file.filename or "<upload>")
        except WorkbookReadError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        if history is not None:
            # Per-request history overrides the app's lookup.
            known = set(history)
            request_service = RateImportService(
                history=lambda code: code in known,
                baseline_store=service.baseline_store,
                config=config,
            )
            results = await request_service.import_workbook(workbook)
        else:
            results = await service.import_workbook(workbook)
        return {"source": workbook.source, "sheets": to_jsonable(results)}

    @router.post("/channel-rules/parse")
    async def parse_rules(file: UploadFile = File(...)) -> dict[str, Any]:
        content = await file.read()
        try:
            workbook = read_workbook(content, name=file.filename or "<upload>")
        except WorkbookReadError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if not workbook.sheets:
            raise HTTPException(status_code=400, detail="Workbook has no sheets.")
        return to_jsonable(parse_channel_rules(workbook.sheets[0]))

    app.include_router(router)
    return app


app = create_app()
