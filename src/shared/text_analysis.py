"""
Text analysis shared by both search indexes and the harvester: stop words,
query tokenization, system detection and keyword extraction.
"""
import re

# Bilingual (Spanish + English) stop words dropped from keyword queries
STOP_WORDS = frozenset({
    # Spanish
    "que", "es", "el", "la", "los", "las", "un", "una", "de", "del", "en", "por", "para",
    "como", "cual", "donde", "cuando", "quien", "qué", "cuál", "dónde", "cuándo", "quién",
    "me", "te", "se", "nos", "mi", "tu", "su", "este", "esta", "ese", "esa", "centro",
    "con", "sin", "sobre", "entre", "hasta", "pero", "más", "muy", "ya", "no", "si",
    "todo", "todos", "toda", "todas", "otro", "otra", "otros", "otras",
    # English
    "what", "is", "the", "a", "an", "of", "in", "for", "to", "how", "which", "where",
    "when", "who", "it", "its", "this", "that", "these", "those", "are", "was", "were",
    "be", "been", "being", "have", "has", "had", "do", "does", "did", "will", "would",
    "can", "could", "should", "may", "might", "must", "shall",
    "and", "or", "but", "not", "with", "from", "by", "at", "on", "about",
    # Low-value domain words
    "plant", "planta",
})

_TOKEN_SPLIT = re.compile(r"[\s?¿!¡,.:;\"'()]+")

# Checked in order: more specific systems first
SYSTEM_PATTERNS: list[tuple[str, tuple[str, ...]]] = [
    ("SAP", ("sap", "fiori", "t-code", "tcode", "transaccion", "transacción",
             "authorization", "autorización", "sapgui", "sap gui", "abap", "bapi", "idoc sap")),
    ("PLM", ("teamcenter", "plm", "catia", "siemens nx", "windchill",
             "cad", "bom", "bill of materials", "drawing", "design")),
    ("EDI", ("edi", "edifact", "as2", "seeburger", "b2b",
             "beone", "buyone", "web-edi", "supplier portal")),
    ("MES", ("mes", "blade", "scada", "plc", "opc",
             "produccion", "producción", "manufacturing", "shop floor")),
    ("Network", ("zscaler", "vpn", "remote access", "acceso remoto",
                 "conectividad", "connectivity", "firewall", "proxy")),
    ("Workplace", ("outlook", "teams", "office 365", "o365", "onedrive",
                   "sharepoint", "printer", "impresora", "laptop", "email", "correo")),
    ("Infrastructure", ("server", "servidor", "vmware", "azure", "backup",
                        "active directory", "dns", "dhcp", "hyper-v", "datacenter")),
    ("Cybersecurity", ("password", "contraseña", "mfa", "phishing", "malware",
                       "security", "seguridad", "encryption", "cifrado", "bitlocker")),
]

DEFAULT_SYSTEM = "General"

COMMON_KEYWORDS = (
    "sap", "bpc", "vpn", "zscaler", "sharepoint", "onedrive", "teams", "outlook",
    "password", "contraseña", "acceso", "permiso", "error", "problema",
    "usuario", "cuenta", "conexión", "red", "impresora", "instalación",
)

MAX_KEYWORDS = 10

_ACCENTS = str.maketrans("áéíóúñü", "aeiounu")


def extract_search_terms(query: str, min_length: int = 2) -> list[str]:
    """
    Split a query into lowercase search terms.

    Tokens shorter than min_length and stop words are dropped; duplicates are
    removed keeping first-seen order.
    """
    if not query:
        return []

    terms: list[str] = []
    for token in _TOKEN_SPLIT.split(query.lower()):
        if len(token) < min_length or token in STOP_WORDS:
            continue
        if token not in terms:
            terms.append(token)
    return terms


def normalize_for_search(text: str) -> str:
    """Lowercase and strip Spanish accents."""
    if not text or not text.strip():
        return ""
    return text.lower().translate(_ACCENTS)


def detect_system(text: str) -> str:
    """Detect the IT system a ticket or article relates to."""
    if not text or not text.strip():
        return DEFAULT_SYSTEM

    lower = text.lower()
    for system, patterns in SYSTEM_PATTERNS:
        if any(p in lower for p in patterns):
            return system
    return DEFAULT_SYSTEM


def extract_keywords(text: str) -> list[str]:
    """Pick known support keywords mentioned in text (at most MAX_KEYWORDS)."""
    lower = (text or "").lower()
    return [k for k in COMMON_KEYWORDS if k in lower][:MAX_KEYWORDS]
