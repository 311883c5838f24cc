"""Pure helpers converting free-form text fragments into canonical values."""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from ..config import get_brand_catalog, get_currency_catalog, get_site_catalog

COLOR_MAP = {
    "black": "Black",
    "negro": "Black",
    "noir": "Black",
    "schwarz": "Black",
    "white": "White",
    "blanco": "White",
    "blanc": "White",
    "weiss": "White",
    "weiß": "White",
    "red": "Red",
    "rojo": "Red",
    "rouge": "Red",
    "rot": "Red",
    "blue": "Blue",
    "azul": "Blue",
    "bleu": "Blue",
    "blau": "Blue",
    "green": "Green",
    "verde": "Green",
    "vert": "Green",
    "grün": "Green",
    "yellow": "Yellow",
    "amarillo": "Yellow",
    "jaune": "Yellow",
    "gelb": "Yellow",
    "pink": "Pink",
    "rosa": "Pink",
    "rose": "Pink",
    "brown": "Brown",
    "marrón": "Brown",
    "marron": "Brown",
    "braun": "Brown",
    "grey": "Grey",
    "gray": "Grey",
    "gris": "Grey",
    "grau": "Grey",
    "beige": "Beige",
    "navy": "Navy",
    "orange": "Orange",
    "purple": "Purple",
    "cream": "Cream",
    "tan": "Tan",
    "olive": "Olive",
    "burgundy": "Burgundy",
    "multicolor": "Multicolor",
    "multi": "Multicolor",
}

SIZE_MAP = {
    "EXTRA SMALL": "XS",
    "XSMALL": "XS",
    "X-SMALL": "XS",
    "SMALL": "S",
    "MEDIUM": "M",
    "MED": "M",
    "LARGE": "L",
    "EXTRA LARGE": "XL",
    "XLARGE": "XL",
    "X-LARGE": "XL",
    "EXTRA EXTRA LARGE": "XXL",
    "XXLARGE": "XXL",
    "XX-LARGE": "XXL",
}

GENDER_MAP = {
    "men": "men",
    "man": "men",
    "male": "men",
    "mens": "men",
    "men's": "men",
    "hombre": "men",
    "homme": "men",
    "herren": "men",
    "women": "women",
    "woman": "women",
    "female": "women",
    "womens": "women",
    "women's": "women",
    "mujer": "women",
    "femme": "women",
    "damen": "women",
    "unisex": "unisex",
    "kids": "kids",
    "children": "kids",
    "child": "kids",
    "niños": "kids",
    "enfants": "kids",
    "kinder": "kids",
}

# Digits with optional thousands groups ("1,299" / "1.299") and a 1-2 digit decimal part
AMOUNT_BODY = r"(?<!\d)(?:\d{1,3}(?:[.,]\d{3})+|\d+)(?:[.,]\d{1,2})?(?!\d)"
_AMOUNT = f"({AMOUNT_BODY})"

# Symbol or ISO code adjacent to the amount, on either side
PRICE_PATTERNS = [
    (re.compile(r"€\s*" + _AMOUNT), "EUR"),
    (re.compile(_AMOUNT + r"\s*€"), "EUR"),
    (re.compile(r"\$\s*" + _AMOUNT), "USD"),
    (re.compile(_AMOUNT + r"\s*\$"), "USD"),
    (re.compile(r"£\s*" + _AMOUNT), "GBP"),
    (re.compile(_AMOUNT + r"\s*£"), "GBP"),
    (re.compile(r"EUR\s*" + _AMOUNT, re.IGNORECASE), "EUR"),
    (re.compile(_AMOUNT + r"\s*EUR", re.IGNORECASE), "EUR"),
    (re.compile(r"USD\s*" + _AMOUNT, re.IGNORECASE), "USD"),
    (re.compile(_AMOUNT + r"\s*USD", re.IGNORECASE), "USD"),
    (re.compile(r"GBP\s*" + _AMOUNT, re.IGNORECASE), "GBP"),
    (re.compile(_AMOUNT + r"\s*GBP", re.IGNORECASE), "GBP"),
]

# Currency-marked numeric tokens inside a larger body of text
_CURRENCY_MARK = r"(?:€|EUR|USD|\$|£|GBP)"
CURRENCY_TOKEN_RE = re.compile(rf"{_CURRENCY_MARK}\s*{AMOUNT_BODY}|{AMOUNT_BODY}\s*{_CURRENCY_MARK}")

_BARE_NUMBER_RE = re.compile(_AMOUNT)


@dataclass(frozen=True)
class ParsedPrice:
    amount: float | None
    currency: str | None


def _title(text: str) -> str:
    return text[:1].upper() + text[1:].lower()


def normalize_brand(value: str | None) -> str | None:
    """Map a brand mention to its canonical name using the brand catalog."""
    if not value:
        return None

    normalized = value.lower().strip()
    for brand in get_brand_catalog().values():
        canonical = brand["canonical"]
        if canonical.lower() == normalized:
            return canonical
        if any(alias.lower() == normalized for alias in brand.get("aliases") or []):
            return canonical

    return _title(value.strip())


def normalize_color(value: str | None) -> str | None:
    if not value:
        return None
    normalized = value.lower().strip()
    return COLOR_MAP.get(normalized) or _title(value.strip())


def normalize_currency(value: str | None) -> str | None:
    """Resolve a currency code, symbol or name to an ISO code."""
    if not value:
        return None

    normalized = value.lower().strip()
    for code, currency in get_currency_catalog().items():
        if code.lower() == normalized:
            return code
        if currency.get("symbol") == value.strip():
            return code
        if any(alias.lower() == normalized for alias in currency.get("aliases") or []):
            return code

    if "€" in value:
        return "EUR"
    if "$" in value:
        return "USD"
    if "£" in value:
        return "GBP"

    return value.strip().upper()


def _detect_currency(text: str) -> str:
    upper = text.upper()
    if "$" in text or "USD" in upper:
        return "USD"
    if "£" in text or "GBP" in upper:
        return "GBP"
    return "EUR"


def parse_amount(raw: str) -> float:
    """Convert a matched amount to a float.

    The last separator is the decimal point when one or two digits follow it;
    every other separator groups thousands.
    """
    last = max(raw.rfind("."), raw.rfind(","))
    if last != -1 and len(raw) - last - 1 in (1, 2):
        whole, fraction = raw[:last], raw[last + 1 :]
    else:
        whole, fraction = raw, ""
    digits = whole.replace(".", "").replace(",", "")
    return float(f"{digits}.{fraction}" if fraction else digits)


def parse_price(text: str | None) -> ParsedPrice:
    """Extract an amount and ISO currency from a price fragment.

    A bare number yields an amount with no currency; text without digits yields no amount.
    """
    if not text:
        return ParsedPrice(None, None)

    cleaned = " ".join(text.split())

    for pattern, _code in PRICE_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            amount = parse_amount(match.group(1))
            return ParsedPrice(amount, _detect_currency(cleaned))

    match = _BARE_NUMBER_RE.search(cleaned)
    if match:
        return ParsedPrice(parse_amount(match.group(1)), None)

    return ParsedPrice(None, None)


def find_price_in_text(text: str | None) -> ParsedPrice:
    """Return the first currency-marked price found in a body of visible text."""
    if not text:
        return ParsedPrice(None, None)
    match = CURRENCY_TOKEN_RE.search(text)
    if not match:
        return ParsedPrice(None, None)
    return parse_price(match.group(0))


def normalize_size(value: str | None) -> str | None:
    if not value:
        return None
    normalized = value.upper().strip()
    return SIZE_MAP.get(normalized, normalized)


def normalize_gender(value: str | None) -> str | None:
    if not value:
        return None
    return GENDER_MAP.get(value.lower().strip(), value)


def extract_site_name(value: str | None) -> str | None:
    """Resolve a URL, domain or site name to a site catalog key when possible."""
    if not value:
        return None

    sites = get_site_catalog()
    candidate = value.strip()

    if "." in candidate or candidate.startswith("http"):
        parsed = urlparse(candidate if candidate.startswith("http") else f"https://{candidate}")
        hostname = (parsed.hostname or "").removeprefix("www.")
        if hostname:
            for key, site in sites.items():
                for domain in site.get("domains") or []:
                    if domain.removeprefix("www.") in hostname:
                        return key
            return hostname

    normalized = candidate.lower()
    for key, site in sites.items():
        if key == normalized or (site.get("name") or "").lower() == normalized:
            return key

    return normalized


def build_search_query(brand: str | None, model: str | None, category: str | None, color: str | None, gender: str | None) -> str:
    return " ".join(part for part in (brand, model, category, color, gender) if part)
