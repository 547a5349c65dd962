import re
from enum import StrEnum


class AssetKind(StrEnum):
    TASE = "tase"
    CRYPTO = "crypto"
    US = "us"
    OTHER = "other"


def normalize_symbol(symbol: str) -> str:
    s = symbol.strip().upper()
    if re.fullmatch(r"\d{6,9}", s):
        return f"{s}.TA"
    return s


def detect_asset_type(symbol: str) -> AssetKind:
    s = normalize_symbol(symbol)
    if s.endswith(".TA"):
        return AssetKind.TASE
    if s.endswith("-USD") or s.endswith(".CC"):
        return AssetKind.CRYPTO
    if "." not in s:
        return AssetKind.US
    return AssetKind.OTHER
