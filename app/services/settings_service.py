import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.models.setting import Setting

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "systemPrompt": "You are a helpful AI assistant.",
    "model": "gpt-4o-mini",
    "temperature": "1.0",
    "maxTokens": "2048",
}

_cache: Optional[Dict[str, str]] = None


def initialize_settings(db: Session) -> None:
    """Insert the defaults on first run, then load the cache.

    Defaults are only written when the table is completely empty, so a
    deleted setting is not silently restored on restart.
    """
    if db.query(Setting).first() is None:
        logger.info("Settings table is empty, inserting defaults for first-time setup")
        for key, value in DEFAULT_SETTINGS.items():
            db.add(Setting(key=key, value=value))
        db.commit()
    else:
        logger.info("Database already contains settings, skipping defaults")

    load_settings_cache(db)


def load_settings_cache(db: Session) -> Dict[str, str]:
    global _cache
    _cache = {s.key: s.value for s in db.query(Setting).all()}
    logger.info("Settings cache loaded with %d settings", len(_cache))
    return dict(_cache)


def get_all_settings() -> Dict[str, str]:
    if _cache is None:
        raise RuntimeError("Settings cache not initialized. Call load_settings_cache() first.")
    return dict(_cache)


def get_setting(db: Session, key: str) -> Optional[str]:
    setting = db.query(Setting).filter(Setting.key == key).first()
    return setting.value if setting else None


def set_setting(db: Session, key: str, value: str) -> None:
    set_settings(db, {key: value})


def set_settings(db: Session, values: Dict[str, str]) -> None:
    """Upsert several settings in one commit and reload the cache."""
    for key, value in values.items():
        setting = db.query(Setting).filter(Setting.key == key).first()
        if setting:
            setting.value = str(value)
        else:
            db.add(Setting(key=key, value=str(value)))
    db.commit()
    load_settings_cache(db)


def delete_setting(db: Session, key: str) -> bool:
    deleted = db.query(Setting).filter(Setting.key == key).delete()
    db.commit()
    load_settings_cache(db)
    return bool(deleted)


def generation_options(
    settings: Dict[str, str],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> dict:
    """Merge per-request overrides over the stored settings.

    Unparseable stored numbers come back as None, which the generator rejects.
    """
    if temperature is None:
        try:
            temperature = float(settings["temperature"])
        except (KeyError, ValueError):
            temperature = None

    if max_tokens is None:
        try:
            max_tokens = int(float(settings["maxTokens"]))
        except (KeyError, ValueError):
            max_tokens = None

    return {
        "model": model or settings.get("model"),
        "temperature": temperature,
        "max_tokens": max_tokens,
        "system_prompt": settings.get("systemPrompt"),
    }
