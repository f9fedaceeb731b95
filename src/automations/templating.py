"""Message template variables and WhatsApp template metadata."""

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

DEFAULT_CLIENT_NAME = "Cliente"
DEFAULT_BUSINESS_NAME = "nuestro negocio"

# Monday first, matching date.weekday().
WEEKDAYS = ("Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo")
MONTHS = (
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
)

VARIABLE_PATTERN = re.compile(r"\{([A-Za-z0-9_]+)\}")
META_VARIABLE_KEY = re.compile(r"^var_(\d+)$")


def format_date(value: Optional[date]) -> str:
    """Spanish long date, e.g. ``15 de noviembre de 2024``."""
    if value is None:
        return ""
    return f"{value.day} de {MONTHS[value.month - 1]} de {value.year}"


def _value(obj: Any, attr: str) -> str:
    if obj is None:
        return ""
    raw = getattr(obj, attr, None)
    return "" if raw is None else str(raw)


def build_variables(
    client: Any = None,
    business: Any = None,
    promotion: Any = None,
    order: Any = None,
    now: Optional[datetime] = None,
) -> dict[str, str]:
    """Collect every substitutable variable for one message.

    Any of the sources may be None; their variables are then empty (and left
    untouched in the rendered text), except the name defaults.

    Args:
        client: Client row (name, email, phone, instagram_username).
        business: Business row (name, description, location, menu_link).
        promotion: Promotion row (name, description, start_date, end_date).
        order: Order row (id, total_amount, status).
        now: Reference time for the date variables.

    Returns:
        Mapping of variable name to value.
    """
    now = now or datetime.now(timezone.utc)
    client_name = _value(client, "name").strip()
    business_name = _value(business, "name")

    variables: dict[str, str] = {
        # Short aliases used by the built-in trigger templates
        "name": client_name or DEFAULT_CLIENT_NAME,
        "first_name": client_name.split()[0] if client_name else DEFAULT_CLIENT_NAME,
        "nombre": client_name or DEFAULT_CLIENT_NAME,
        "negocio": business_name or DEFAULT_BUSINESS_NAME,
        # Client
        "email": _value(client, "email"),
        "telefono": _value(client, "phone"),
        "instagram_usuario": _value(client, "instagram_username"),
        # Business
        "nombre_negocio": business_name,
        "descripcion_negocio": _value(business, "description"),
        "ubicacion": _value(business, "location"),
        "enlace_menu": _value(business, "menu_link"),
        # Date
        "fecha_actual": format_date(now.date()),
        "hora_actual": now.strftime("%H:%M"),
        "dia_semana": WEEKDAYS[now.weekday()],
    }

    if promotion is not None:
        variables.update(
            {
                "promocion": _value(promotion, "name"),
                "nombre_promocion": _value(promotion, "name"),
                "descripcion_promocion": _value(promotion, "description"),
                "fecha_inicio": format_date(getattr(promotion, "start_date", None)),
                "fecha_fin": format_date(getattr(promotion, "end_date", None)),
            }
        )

    if order is not None:
        total = f"${_value(order, 'total_amount')}"
        variables.update(
            {
                "numero_pedido": _value(order, "id")[:8],
                "total": total,
                "total_pedido": total,
                "estado_pedido": _value(order, "status"),
            }
        )

    return variables


def render_template(template: Optional[str], variables: dict[str, str]) -> str:
    """Replace ``{variable}`` placeholders.

    Unknown variables, and variables whose value is empty, are left as-is.
    """
    if not template:
        return ""

    def _replace(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        return value if value else match.group(0)

    return VARIABLE_PATTERN.sub(_replace, template)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def resolve_template_params(
    template_variables: Optional[dict[str, Any]],
    variables: dict[str, str],
) -> list[str]:
    """Resolve Meta template ``{{N}}`` parameters from ``variable_mapping``.

    ``variable_mapping`` maps ``var_1``, ``var_2``... to variable names. Keys
    are ordered numerically (``var_10`` after ``var_9``); a name that is not
    a known variable is sent literally.
    """
    mapping = (template_variables or {}).get("variable_mapping") or {}
    keyed = []
    for key, name in mapping.items():
        match = META_VARIABLE_KEY.match(str(key))
        if match:
            keyed.append((int(match.group(1)), str(name)))
    keyed.sort()
    return [variables.get(name) or name for _, name in keyed]


def build_template_metadata(automation: Any, variables: dict[str, str]) -> dict[str, Any]:
    """Build ScheduledMessage metadata for an automation's message type.

    For approved WhatsApp templates this includes the template name and
    language plus the resolved parameters, both as the flat legacy
    ``template_params`` list and as ready-to-send ``template_components``.
    """
    is_template = _enum_value(getattr(automation, "message_type", None)) == "template"
    metadata: dict[str, Any] = {
        "is_meta_template": is_template,
        "template_name": getattr(automation, "meta_template_name", None),
        "template_language": getattr(automation, "meta_template_language", None),
    }
    if not is_template:
        return metadata

    params = resolve_template_params(getattr(automation, "template_variables", None), variables)
    if params:
        metadata["template_params"] = params
        metadata["template_components"] = [
            {
                "type": "body",
                "parameters": [{"type": "text", "text": param} for param in params],
            }
        ]
    return metadata
