import logging
from typing import Dict, Union

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.services import settings_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])

SettingValue = Union[str, int, float, bool]


class SettingUpdate(BaseModel):
    value: SettingValue


def stored_value(value: SettingValue) -> str:
    """Settings are stored as text; booleans use the lower-case JSON spelling."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@router.get("", response_model=Dict[str, str])
async def list_settings():
    try:
        return settings_service.get_all_settings()
    except RuntimeError:
        logger.exception("Settings cache unavailable")
        raise HTTPException(status_code=500, detail="Failed to fetch settings")


@router.put("", response_model=Dict[str, str])
async def update_settings(values: Dict[str, SettingValue], db: Session = Depends(get_db)):
    """Upsert several settings at once."""
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No settings provided")
    try:
        settings_service.set_settings(db, {k: stored_value(v) for k, v in values.items()})
    except Exception:
        logger.exception("Error updating settings")
        raise HTTPException(status_code=500, detail="Failed to update settings")
    return settings_service.get_all_settings()


@router.get("/{key}")
async def read_setting(key: str, db: Session = Depends(get_db)):
    value = settings_service.get_setting(db, key)
    if value is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Setting not found")
    return {"key": key, "value": value}


@router.put("/{key}")
async def write_setting(key: str, update: SettingUpdate, db: Session = Depends(get_db)):
    try:
        settings_service.set_setting(db, key, stored_value(update.value))
    except Exception:
        logger.exception("Error updating setting %s", key)
        raise HTTPException(status_code=500, detail="Failed to update setting")
    return {"key": key, "value": stored_value(update.value)}


@router.delete("/{key}")
async def remove_setting(key: str, db: Session = Depends(get_db)):
    if not settings_service.delete_setting(db, key):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Setting not found")
    return {"message": "Setting deleted successfully"}
