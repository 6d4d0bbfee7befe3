"""South African province name to courier zone code mapping.

The courier expects short zone codes (``GP``, ``WC``...). Free-text
province names coming from saved addresses are mapped through a fixed
table; anything unrecognised is passed through upper-cased and truncated
instead of being rejected.
"""

from types import MappingProxyType

PROVINCE_CODES = MappingProxyType({
    "eastern cape": "EC",
    "free state": "FS",
    "gauteng": "GP",
    "kwazulu-natal": "KZN",
    "kwazulu natal": "KZN",
    "limpopo": "LP",
    "mpumalanga": "MP",
    "northern cape": "NC",
    "north west": "NW",
    "western cape": "WC",
})


def to_province_code(province: str | None, max_len: int = 2) -> str:
    """Normalize a province name to its courier zone code.

    Args:
        province: Province name in any casing, or an existing code.
        max_len: Truncation length for unrecognised names longer than
            three characters.

    Returns:
        str: The mapped code, the upper-cased input when it already looks
        like a code (three characters or fewer), otherwise the upper-cased
        input truncated to ``max_len``. Empty input yields ``""``.
    """
    if not province:
        return ""
    key = province.strip().lower()
    if key in PROVINCE_CODES:
        return PROVINCE_CODES[key]
    raw = province.strip().upper()
    if len(raw) <= 3:
        return raw
    return raw[:max_len]
