# pocketplan/logic/chat_parser.py
import re
from typing import NamedTuple, Optional

AMOUNT = r"\$?\s*(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"

# (kind, language, pattern); first match wins, in this order
PATTERNS = [
    ("expense", "es", re.compile(r"gast[eé]\s*" + AMOUNT + r"\s*(?:(?:en|de)\b)?\s*(.+)?", re.I)),
    ("expense", "en", re.compile(r"\bi\s+spent\s+" + AMOUNT + r"\s*(?:(?:on|for|at)\b)?\s*(.+)?", re.I)),
    ("income", "es", re.compile(r"recib[ií]\s*" + AMOUNT + r"\s*(?:(?:de|por|extra)\b)?\s*(.+)?", re.I)),
    ("income", "en", re.compile(r"\bi\s+(?:received|got|earned)\s+" + AMOUNT + r"\s*(?:(?:from|for|extra)\b)?\s*(.+)?", re.I)),
    ("debt_payment", "es", re.compile(r"pagu[eé]\s*" + AMOUNT + r"\s*(?:(?:de|al|a)\b)?\s*(.+)?", re.I)),
    ("debt_payment", "en", re.compile(r"\bi\s+paid\s+" + AMOUNT + r"\s*(?:(?:to|on|towards?|for)\b)?\s*(.+)?", re.I)),
]

PLAN_WORDS = re.compile(r"\b(plan|actualizar|recalcular|update|recalculate)\b", re.I)
SPANISH_HINT = re.compile(r"[áéíóúñ¿¡]|\b(mi|actualizar|recalcular|quiero|hola|por favor)\b", re.I)

CATEGORY_KEYWORDS = [
    ("food", ("comida", "food", "restaurante", "restaurant", "groceries", "super")),
    ("transport", ("gas", "combustible", "uber", "taxi", "bus")),
    ("housing", ("renta", "rent", "casa", "house")),
    ("entertainment", ("gym", "netflix", "entretenimiento", "cine", "movies")),
]


class Intent(NamedTuple):
    kind: str                     # expense | income | debt_payment | plan_update | help
    language: str                 # es | en
    amount: Optional[float] = None
    text: Optional[str] = None    # expense description, income source or creditor
    category: Optional[str] = None


def category_from_description(description: str) -> str:
    desc = (description or "").lower()
    for key, words in CATEGORY_KEYWORDS:
        if any(w in desc for w in words):
            return key
    return "other"


def _clean(s: Optional[str]) -> Optional[str]:
    s = (s or "").strip().strip(".!?,;:").strip()
    return s or None


def parse_message(message: str) -> Intent:
    """Classify a chat message and pull out amount and free text."""
    text = (message or "").strip()
    for kind, lang, pattern in PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        amount = float(m.group(1).replace(",", ""))
        rest = _clean(m.group(2))
        if kind == "expense":
            desc = rest or ("Gasto registrado" if lang == "es" else "Expense")
            return Intent(kind, lang, amount, desc, category_from_description(rest or ""))
        return Intent(kind, lang, amount, rest)

    lang = "es" if SPANISH_HINT.search(text) else "en"
    if PLAN_WORDS.search(text):
        return Intent("plan_update", lang)
    return Intent("help", lang)
