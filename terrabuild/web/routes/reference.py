"""Benton County reference matrix routes (read-mostly).

Routes:
- GET  /api/reference/matrices                       - Matrices (year, matrixType)
- GET  /api/reference/matrices/{matrix_id}/{year}    - Matrix with its cells
- GET  /api/reference/matrices/{matrix_id}/{year}/cell?axis1=&axis2=
- GET  /api/reference/axes?year=                     - Axis definitions
- GET  /api/reference/improvements/matrices          - Matrices for an improvement
- GET  /api/reference/depreciation                   - One depreciation factor
- POST /api/reference/import                         - Bulk import (admin)
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.models import to_wire
from terrabuild.reference import benton, lookup
from terrabuild.web.dependencies import get_request_context, require_admin_context

router = APIRouter(prefix="/api/reference", tags=["reference"])


@router.get("/matrices")
async def list_matrices(
    year: int | None = Query(default=None),
    matrix_type: str | None = Query(default=None, alias="matrixType"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await benton.list_matrices(session, year=year, matrix_type=matrix_type)
        return [to_wire(row) for row in rows]


@router.get("/matrices/{matrix_id}/{year}")
async def get_matrix(
    matrix_id: int, year: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        matrix = await benton.get_matrix(session, matrix_id, year)
        cells = await benton.list_matrix_details(session, matrix_id, year)
        return {**to_wire(matrix), "details": [to_wire(cell) for cell in cells]}


@router.get("/matrices/{matrix_id}/{year}/cell")
async def lookup_cell(
    matrix_id: int,
    year: int,
    axis1: str = Query(),
    axis2: str = Query(),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        value = await lookup.lookup_cell(session, matrix_id, year, axis1, axis2)
        return {"matrixId": matrix_id, "year": year, "value": str(value)}


@router.get("/axes")
async def list_axes(
    year: int = Query(),
    matrix_type: str | None = Query(default=None, alias="matrixType"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return [to_wire(row) for row in await benton.list_axes(session, year, matrix_type)]


@router.get("/improvements/matrices")
async def matrices_for_improvement(
    meth_cd: str = Query(alias="methCd"),
    type_cd: str = Query(alias="typeCd"),
    class_cd: str = Query(alias="classCd"),
    sub_class_cd: str = Query(alias="subClassCd"),
    year: int = Query(),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        pairs = await benton.matrices_for_improvement(
            session, meth_cd, type_cd, class_cd, sub_class_cd, year
        )
        return [
            {**to_wire(matrix), "matrixOrder": assoc.matrix_order}
            for assoc, matrix in pairs
        ]


@router.get("/depreciation")
async def get_depreciation_factor(
    matrix_id: int = Query(alias="matrixId"),
    age: int = Query(ge=0),
    condition: str = Query(),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        row = await benton.get_depreciation_factor(session, matrix_id, age, condition)
        return {"depreciation": to_wire(row) if row is not None else None}


@router.post("/import", status_code=status.HTTP_201_CREATED)
async def import_rows(
    payload: dict[str, list[dict[str, Any]]] = Body(...),
    ctx: RequestContext = Depends(require_admin_context),
):
    """Import reference rows; keys are the section names in ``IMPORT_SECTIONS``."""
    sections = {name: payload.get(name, []) for name in benton.IMPORT_SECTIONS}
    async with get_session() as session:
        counts = await benton.import_benton_rows(session, ctx, **sections)
        return {"imported": counts}
