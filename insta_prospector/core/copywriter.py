"""Rule-based outreach copy for Instagram leads.

Used when no generative oracle is configured and as the per-lead fallback
when the oracle call fails. Everything here is a pure function of its inputs.
"""

import re
from typing import Iterable, Optional

from insta_prospector.models import LeadType, Signals

BRAND_NAME = "Harbiz"
DEFAULT_SDR_NAME = f"Equipo {BRAND_NAME}"

ONLINE_WORDS = (
    "online", "en línea", "a distancia", "remoto", "zoom", "videollamada",
    "clases online", "coaching online", "programa online",
)
LOCAL_REGION_WORDS = (
    "méxico", "mexico", "cdmx", "ciudad de mexico", "mx", "edomex", "edo mex",
    "guadalajara", "monterrey", "puebla", "querétaro", "queretaro", "tijuana",
    "mérida", "merida", "cancún", "cancun", "roma", "condesa", "polanco",
    "del valle", "narvarte", "coyoacán", "coyoacan", "santa fe",
)
INDIVIDUAL_WORDS = (
    "coach", "entrenador", "trainer", "pt", "personal trainer",
    "nutri", "nutric", "diet", "fisio", "fisioter", "kine", "rehab",
    "asesorías", "asesorias", "programas", "clientes", "1:1", "uno a uno",
)
VENUE_WORDS = (
    "studio", "estudio", "box", "gym", "club", "centro",
    "clases", "horarios", "aforo", "equipo", "profes",
)
SCHEDULE_WORDS = ("clases", "horarios", "aforo", "equipo")

# First match wins.
SERVICE_HOOKS = (
    ("nutrición", ("nutri", "nutric", "diet")),
    ("fisioterapia", ("fisio", "fisioter", "kine", "rehab")),
    ("pilates reformer", ("reformer",)),
    ("pilates", ("pilates",)),
    ("entrenamiento funcional", ("funcional", "hiit", "cross")),
    ("fuerza", ("fuerza", "strength", "powerlifting")),
    ("entrenamiento", ("coach", "trainer", "entrenador", "pt", "personal trainer")),
)
GENERIC_SERVICE = "entrenamiento"

_EMAIL_TOKEN_SPLIT = re.compile(r"[._-]+")


def sdr_name_from_email(email: Optional[str]) -> str:
    """Display name for the sender: "ana.lopez@x.io" -> "Ana"."""
    local = (email or "").split("@")[0].strip().lower()
    if not local:
        return DEFAULT_SDR_NAME

    tokens = [token for token in _EMAIL_TOKEN_SPLIT.split(local) if token]
    first = tokens[0] if tokens else local
    return first[:1].upper() + first[1:]


def pick_first_name(display_name: Optional[str]) -> str:
    """First token of a display name when it looks like a person, else ""."""
    text = (display_name or "").strip()
    if not text:
        return ""
    first = text.split()[0]

    if first.startswith("@"):
        return ""
    if len(first) <= 2:
        return ""
    # All-caps tokens are usually brand names.
    if first.upper() == first:
        return ""
    return first


def _has_any(text: str, words: Iterable[str]) -> bool:
    return any(word in text for word in words)


def detect_signals(bio: Optional[str]) -> Signals:
    text = (bio or "").lower()

    is_online = _has_any(text, ONLINE_WORDS)
    is_local_region = _has_any(text, LOCAL_REGION_WORDS)
    looks_individual = _has_any(text, INDIVIDUAL_WORDS)
    looks_center = _has_any(text, VENUE_WORDS)

    if looks_center and not looks_individual:
        lead_type = LeadType.CENTER
    elif looks_individual and not looks_center:
        lead_type = LeadType.INDIVIDUAL
    elif _has_any(text, SCHEDULE_WORDS):
        lead_type = LeadType.CENTER
    else:
        lead_type = LeadType.INDIVIDUAL

    service_hook = None
    for label, words in SERVICE_HOOKS:
        if _has_any(text, words):
            service_hook = label
            break

    return Signals(
        lead_type=lead_type,
        is_online=is_online,
        is_local_region=is_local_region,
        service_hook=service_hook,
    )


def personalization_clause(signals: Signals) -> str:
    """Inline " y vi que ..." clause for the opening line; may be empty."""
    is_center = signals.lead_type is LeadType.CENTER
    if signals.is_online:
        return " y vi que también trabajáis online" if is_center else " y vi que trabajas online"
    if signals.service_hook:
        if is_center:
            return f" y vi que tenéis {signals.service_hook}"
        if signals.service_hook == GENERIC_SERVICE:
            return " y vi que trabajas como coach/entrenador"
        return f" y vi que trabajas {signals.service_hook}"
    return ""


def generate_copy(actor_contact: Optional[str], display_name: Optional[str] = None, bio: Optional[str] = None) -> str:
    sdr_name = sdr_name_from_email(actor_contact)
    name = pick_first_name(display_name)
    signals = detect_signals(bio)
    detail = personalization_clause(signals)

    if signals.lead_type is LeadType.INDIVIDUAL:
        online = " online" if signals.is_online else ""
        channel = "WhatsApp/Drive" if signals.is_online else "WhatsApp/Excel"
        greeting_name = f" {name}" if name else ""
        return "\n".join(
            [
                f"Hola{greeting_name}! Soy {sdr_name}.",
                "",
                f"Le eché un vistazo a tu perfil{detail}. En {BRAND_NAME} ayudamos a coaches{online} a ordenar "
                "planes, seguimiento y comunicación con clientes en una sola app, sin vivir entre WhatsApp, "
                "PDFs y Excel.",
                f"Hoy lo llevas más por {channel} o ya usas alguna app?",
            ]
        )

    payments = " y membresías/pagos" if signals.is_local_region else ""
    return "\n".join(
        [
            f"Hola! Soy {sdr_name}.",
            "",
            f"Le eché un vistazo a vuestro perfil{detail}. En {BRAND_NAME} ayudamos a studios a llevar "
            f"reservas/clases, clientes{payments} más ordenado en una sola plataforma, sin depender de "
            "WhatsApp y hojas sueltas.",
            "Las reservas las gestionáis por DM/WhatsApp o ya tenéis sistema?",
        ]
    )
