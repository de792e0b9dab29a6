"""
Free-text (Japanese) query -> SearchCriteria.

Each probe is an independent first-match regex scan over the whole
NFKC-normalized input; a miss just leaves the field unset.
"""
import re
import unicodedata
from decimal import Decimal
from typing import Dict, Optional

from .schemas import DEFAULT_LIMIT, SearchCriteria

# Only these names resolve to a code; any other matched name stays unset.
PREFECTURE_CODES: Dict[str, str] = {
    "東京都": "13",
    "大阪府": "27",
    "愛知県": "23",
    "神奈川県": "14",
    "北海道": "01",
    "京都府": "26",
    "兵庫県": "28",
    "福岡県": "40",
}

_KANJI = r"\u4e00-\u9fff"
_KATAKANA = r"\u30a0-\u30ff"
_HIRAGANA = r"\u3041-\u309f"
# particles that end a place name (さいたま, いわき etc. are kept whole)
_PARTICLES = "のをでへ"
_NAME_CHARS = rf"{_KANJI}{_KATAKANA}{_HIRAGANA}々"

# a place name starts after a non-name char, a particle, or a count like 2023年
_PREF_START = rf"(?:(?<![{_KANJI}0-9])|(?<=[0-9][年件月日]))"
_NAME_START = rf"(?:(?<![{_NAME_CHARS}0-9])|(?<=[{_PARTICLES}])|(?<=[0-9][年件月日]))"
_NAME_RUN = rf"(?:(?![{_PARTICLES}])[{_NAME_CHARS}])+"

_SUFFIXED_PREF = rf"東京都|北海道|京都府|大阪府|{_PREF_START}[{_KANJI}]{{2,3}}県"

_PREFECTURE_RE = re.compile(rf"{_SUFFIXED_PREF}|[東西南北]?京|大阪|神奈川|愛知")
# a directly preceding prefecture is consumed but not captured
_MUNICIPALITY_RE = re.compile(
    rf"{_NAME_START}(?:{_SUFFIXED_PREF})?({_NAME_RUN}[市区町村])"
)
_NUMBER = r"([0-9]+(?:\.[0-9]+)?)"
_MIN_PRICE_RE = re.compile(_NUMBER + r"万円以上")
_MAX_PRICE_RE = re.compile(_NUMBER + r"万円以下")
_AREA_RE = re.compile(_NUMBER + r"平方メートル")
_YEAR_RE = re.compile(r"(20[0-9]{2})年")

_MAN_YEN = Decimal(10000)


def lookup_prefecture_code(name: str) -> Optional[str]:
    return PREFECTURE_CODES.get(name)


def man_yen_to_yen(amount: str) -> str:
    """'1000' (x10,000 yen) -> '10000000'; fractional results keep their decimals."""
    value = Decimal(amount) * _MAN_YEN
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def parse_natural_language_query(query: str) -> SearchCriteria:
    text = unicodedata.normalize("NFKC", query or "")
    fields: Dict[str, Optional[str]] = {}

    m = _PREFECTURE_RE.search(text)
    if m:
        fields["prefecture_code"] = lookup_prefecture_code(m.group(0))

    m = _MUNICIPALITY_RE.search(text)
    if m:
        fields["keywords"] = m.group(1)

    m = _MIN_PRICE_RE.search(text)
    if m:
        fields["min_trade_price"] = man_yen_to_yen(m.group(1))

    m = _MAX_PRICE_RE.search(text)
    if m:
        fields["max_trade_price"] = man_yen_to_yen(m.group(1))

    m = _AREA_RE.search(text)
    if m:
        fields["area"] = m.group(1)

    # any year means the whole year, even if a quarter is mentioned
    m = _YEAR_RE.search(text)
    if m:
        fields["from_"] = f"{m.group(1)}-1"
        fields["to"] = f"{m.group(1)}-4"

    return SearchCriteria(limit=DEFAULT_LIMIT, **fields)
