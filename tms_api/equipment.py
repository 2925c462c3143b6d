"""
Equipment catalog lookup (makes, models, dimensions, loading rates).

The catalog is imported from an external planner whose table names vary
between deployments, so reads are raw SQL over a list of candidate tables.
A missing table falls through to the next candidate; a catalog that is not
installed at all reads as empty.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from fastapi import APIRouter, HTTPException
from sqlalchemy import bindparam, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from tms_api.db import SessionLocal
from tms_api.schemas import EquipmentImagesIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/equipment", tags=["equipment"])

MAKE_TABLES = ("makes", "equipment_makes")
MODEL_TABLES = ("models", "equipment_models")


def is_missing_table(err: Optional[BaseException]) -> bool:
    if err is None:
        return False
    orig = getattr(err, "orig", None)
    if getattr(orig, "pgcode", None) == "42P01":
        return True
    msg = str(err)
    return "does not exist" in msg or "no such table" in msg


def _rows(s: Session, sql: str, *binds, **params) -> List[Dict[str, Any]]:
    stmt = text(sql).bindparams(*binds) if binds else text(sql)
    return [dict(r) for r in s.execute(stmt, params).mappings().all()]


def with_table_fallback(s: Session, tables: Sequence[str], run: Callable[[str], Any]) -> Any:
    """Call ``run(table)`` for each candidate until one does not fail with a missing table."""
    last: Optional[BaseException] = None
    for table in tables:
        try:
            return run(table)
        except DBAPIError as e:
            # a failed statement poisons the transaction on Postgres
            s.rollback()
            last = e
            if not is_missing_table(e):
                break
            logger.debug("equipment table %s missing, trying next", table)
    raise last


def _num(v) -> Optional[float]:
    return None if v is None else float(v)


def get_makes(s: Session) -> List[dict]:
    try:
        rows = with_table_fallback(s, MAKE_TABLES, lambda t: _rows(
            s, f"SELECT * FROM {t} ORDER BY popularity_rank IS NULL, popularity_rank ASC, name ASC"))
    except DBAPIError as e:
        if is_missing_table(e):
            return []
        logger.exception("equipment makes query failed")
        raise HTTPException(status_code=500, detail="Failed to load equipment makes")
    for r in rows:
        r["popularity_rank"] = int(r["popularity_rank"]) if r.get("popularity_rank") is not None else None
    return rows


def get_models(s: Session, make_id: int) -> List[dict]:
    try:
        return with_table_fallback(s, MODEL_TABLES, lambda t: _rows(
            s, f"SELECT * FROM {t} WHERE make_id = :make_id ORDER BY name ASC", make_id=make_id))
    except DBAPIError as e:
        if is_missing_table(e):
            return []
        logger.exception("equipment models query failed")
        raise HTTPException(status_code=500, detail="Failed to load equipment models")


def get_models_with_availability(s: Session, make_id: int, location: Optional[str] = None) -> List[dict]:
    """Models of a make flagged with whether dimensions and rates (optionally for ``location``) exist."""
    try:
        models = with_table_fallback(s, MODEL_TABLES, lambda t: _rows(
            s, f"SELECT id, name, make_id FROM {t} WHERE make_id = :make_id ORDER BY name ASC", make_id=make_id))
        if not models:
            return []
        ids = sorted(m["id"] for m in models)
        in_ids = bindparam("ids", expanding=True)
        dims = {r["model_id"] for r in _rows(
            s, "SELECT model_id FROM equipment_dimensions WHERE model_id IN :ids", in_ids, ids=ids)}
        if location:
            rated = {r["model_id"] for r in _rows(
                s, "SELECT model_id FROM rates WHERE model_id IN :ids AND location = :loc", in_ids,
                ids=ids, loc=location)}
        else:
            rated = {r["model_id"] for r in _rows(s, "SELECT model_id FROM rates WHERE model_id IN :ids", in_ids, ids=ids)}
    except DBAPIError as e:
        if is_missing_table(e):
            return []
        logger.exception("equipment availability query failed")
        raise HTTPException(status_code=500, detail="Failed to load equipment models availability")
    return [dict(m, has_dimensions=m["id"] in dims, has_rates=m["id"] in rated) for m in models]


def get_dimensions(s: Session, model_id: int) -> Optional[dict]:
    try:
        rows = _rows(s, """
            SELECT id, model_id,
                   length_inches AS length, width_inches AS width,
                   height_inches AS height, weight_lbs AS weight,
                   front_image_url, side_image_url
            FROM equipment_dimensions
            WHERE model_id = :model_id
            LIMIT 1
        """, model_id=model_id)
    except DBAPIError as e:
        if is_missing_table(e):
            return None
        logger.exception("equipment dimensions query failed")
        raise HTTPException(status_code=500, detail="Failed to load equipment dimensions")
    if not rows:
        return None
    row = rows[0]
    for k in ("length", "width", "height", "weight"):
        row[k] = _num(row[k])
    return row


def get_rate(s: Session, model_id: int, location: str) -> Optional[dict]:
    try:
        rows = _rows(s, "SELECT * FROM rates WHERE model_id = :model_id AND location = :loc LIMIT 1",
                     model_id=model_id, loc=location)
    except DBAPIError as e:
        if is_missing_table(e):
            return None
        logger.exception("equipment rate query failed")
        raise HTTPException(status_code=500, detail="Failed to load equipment rates")
    return rows[0] if rows else None


def get_all_rates(s: Session, model_id: int) -> List[dict]:
    try:
        return _rows(s, "SELECT * FROM rates WHERE model_id = :model_id", model_id=model_id)
    except DBAPIError as e:
        if is_missing_table(e):
            return []
        logger.exception("equipment rates query failed")
        raise HTTPException(status_code=500, detail="Failed to load equipment rates")


def search(s: Session, query: str) -> dict:
    like = f"%{query.lower()}%"
    last: Optional[BaseException] = None
    for make_table, model_table in zip(MAKE_TABLES, MODEL_TABLES):
        try:
            makes = _rows(s, f"SELECT id, name FROM {make_table} WHERE LOWER(name) LIKE :q LIMIT 5", q=like)
            models = _rows(s, f"""
                SELECT m.id, m.name, m.make_id, mk.name AS make_name
                FROM {model_table} m
                LEFT JOIN {make_table} mk ON mk.id = m.make_id
                WHERE LOWER(m.name) LIKE :q
                LIMIT 10
            """, q=like)
            return {"makes": makes, "models": models}
        except DBAPIError as e:
            s.rollback()
            last = e
            if not is_missing_table(e):
                break
    if is_missing_table(last):
        return {"makes": [], "models": []}
    logger.error("equipment search failed: %s", last)
    raise HTTPException(status_code=500, detail="Failed to search equipment")


def update_images(s: Session, model_id: int, payload: EquipmentImagesIn) -> dict:
    """Set only the image urls present in the request body."""
    fields = payload.model_dump(exclude_unset=True)
    sets = [f"{k} = :{k}" for k in ("front_image_url", "side_image_url") if k in fields]
    if not sets:
        return {"success": True}
    try:
        s.execute(text(f"UPDATE equipment_dimensions SET {', '.join(sets)} WHERE model_id = :model_id"),
                  dict(fields, model_id=model_id))
        s.commit()
    except DBAPIError:
        s.rollback()
        logger.exception("equipment image update failed")
        raise HTTPException(status_code=500, detail="Failed to update equipment images")
    return {"success": True}


@router.get("/makes")
def makes():
    with SessionLocal() as s:
        return get_makes(s)


@router.get("/makes/{make_id}/models")
def models(make_id: int):
    with SessionLocal() as s:
        return get_models(s, make_id)


@router.get("/makes/{make_id}/models/availability")
def models_availability(make_id: int, location: Optional[str] = None):
    with SessionLocal() as s:
        return get_models_with_availability(s, make_id, location)


@router.get("/models/{model_id}/dimensions")
def dimensions(model_id: int):
    with SessionLocal() as s:
        return get_dimensions(s, model_id)


@router.get("/models/{model_id}/rates")
def rates(model_id: int, location: Optional[str] = None):
    with SessionLocal() as s:
        if location:
            return get_rate(s, model_id, location)
        return get_all_rates(s, model_id)


@router.get("/search")
def search_(q: str = ""):
    with SessionLocal() as s:
        return search(s, q)


@router.patch("/models/{model_id}/images")
def images(model_id: int, payload: EquipmentImagesIn):
    with SessionLocal() as s:
        return update_images(s, model_id, payload)
