from .common import (
    EPOCH,
    clean_text,
    clean_text_ws,
    contains_target_script,
    isoformat_utc,
    mask_secret,
    normalize_link,
    now_utc,
    parse_datetime_utc,
    smart_truncate,
)

__all__ = [
    "EPOCH",
    "clean_text",
    "clean_text_ws",
    "contains_target_script",
    "isoformat_utc",
    "mask_secret",
    "normalize_link",
    "now_utc",
    "parse_datetime_utc",
    "smart_truncate",
]
