"""
Message Renderer
Fills a mapping's template body with task values.

Rules:
- Only Placeholder names may appear in the body or the render context
- Body is length-checked and control characters are removed
- Substitution is a single pass, so values are never re-scanned
- Hebrew messages without a date placeholder get a date suffix
- Links must be absolute http(s) URLs
"""
import logging
import re
from datetime import date
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from task_messenger.shared.core.constants import MAX_LINK_LENGTH, MAX_TEMPLATE_LENGTH
from task_messenger.shared.utils.date_utils import DEFAULT_TIMEZONE, format_he, format_iso, today
from task_messenger.shared.utils.exceptions import SanitizationError, ValidationError
from task_messenger.modules.whatsapp_dispatch.constants import Language, Placeholder
from task_messenger.modules.whatsapp_dispatch.schemas import Primitive, RenderContext, RenderResult, TemplateMapping

logger = logging.getLogger("renderer")

# Matches {{name}} or {name}; exactly one group is set per match
PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}|\{(\w+)\}")

# C0 controls and DEL, except tab, newline and carriage return
CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

DATE_SUFFIX_HE = " (תאריך: {date_he})"


def sanitize_template_text(text: str) -> str:
    """Reject oversized bodies and strip control characters."""
    if not text:
        return text

    if len(text) > MAX_TEMPLATE_LENGTH:
        raise SanitizationError(f"Template too long ({len(text)} chars, max {MAX_TEMPLATE_LENGTH})")

    return CONTROL_CHARS_RE.sub("", text)


def sanitize_link(url: Optional[str]) -> Optional[str]:
    """
    Validate a link for inclusion in a message.

    Returns:
        The trimmed URL, or None for empty input

    Raises:
        ValidationError: too long, not absolute, or not http/https
    """
    if not url:
        return None

    trimmed = url.strip()
    if not trimmed:
        return None

    if len(trimmed) > MAX_LINK_LENGTH:
        raise ValidationError(f"Link too long ({len(trimmed)} chars, max {MAX_LINK_LENGTH})")

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        raise ValidationError(f"Invalid link format: {trimmed[:100]}")

    if parts.scheme.lower() not in ("http", "https"):
        raise ValidationError(
            f"Invalid link protocol: {parts.scheme or '(none)'}. Only HTTP/HTTPS allowed."
        )
    if not parts.netloc:
        raise ValidationError(f"Invalid link format: {trimmed[:100]}")

    return trimmed


def extract_placeholders(text: str) -> List[str]:
    """
    Distinct placeholder names in order of first appearance.

    Examples:
        >>> extract_placeholders("{{first_name}} and {{first_name}} again, {link}")
        ['first_name', 'link']
    """
    found: Dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(text):
        found[match.group(1) or match.group(2)] = None
    return list(found)


def _unknown_names(names) -> List[str]:
    allowed = Placeholder.names()
    return [name for name in names if name not in allowed]


def _stringify(value: Primitive) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_full_context(
    context: RenderContext,
    link: Optional[str],
    current_date: date
) -> Dict[str, str]:
    """Defaults for every Placeholder, then caller extras stringified as-is."""
    date_iso = _stringify(context.get(Placeholder.DATE_ISO.value)) or format_iso(current_date)
    date_he = _stringify(context.get(Placeholder.DATE_HE.value)) or format_he(current_date)

    full_context = {
        Placeholder.FIRST_NAME.value: _stringify(context.get(Placeholder.FIRST_NAME.value)),
        Placeholder.ACCOUNT_NAME.value: _stringify(context.get(Placeholder.ACCOUNT_NAME.value)),
        Placeholder.DEVICE_MODEL.value: _stringify(context.get(Placeholder.DEVICE_MODEL.value)),
        Placeholder.IMEI.value: _stringify(context.get(Placeholder.IMEI.value)),
        Placeholder.DATE_ISO.value: date_iso,
        Placeholder.DATE_HE.value: date_he,
        Placeholder.DATE.value: date_he,
        Placeholder.LINK.value: link or "",
    }

    for key, value in context.items():
        if key not in full_context:
            full_context[key] = _stringify(value)

    return full_context


def render_message(
    mapping: TemplateMapping,
    context: Optional[RenderContext] = None,
    default_language: str = Language.HE.value,
    tz_name: str = DEFAULT_TIMEZONE,
    current_date: Optional[date] = None
) -> RenderResult:
    """
    Render a mapping's body for one task.

    Args:
        mapping: Template row (body, optional link and provider template id)
        context: Caller values keyed by Placeholder name
        default_language: "he" appends the date suffix when the body has no date
        tz_name: Timezone used for today's date
        current_date: Overrides today's date (tests)

    Returns:
        RenderResult with the final text and the provider template id, if any

    Raises:
        SanitizationError: body exceeds the maximum length
        ValidationError: unknown placeholder or context name, or a bad link
    """
    context = context or {}

    if not mapping.body:
        logger.warning(f"Empty message body in mapping {mapping.key}")
        return RenderResult(text="")

    body = sanitize_template_text(mapping.body)
    placeholders = extract_placeholders(body)

    context_link = _stringify(context.get(Placeholder.LINK.value)).strip()
    link = sanitize_link(context_link or mapping.link)

    full_context = build_full_context(context, link, current_date or today(tz_name))

    unknown = _unknown_names(list(full_context) + [p for p in placeholders if p not in full_context])
    if unknown:
        raise ValidationError(
            f"Unknown placeholders: {', '.join(unknown)}",
            details=[
                f"Supported: {', '.join(sorted(Placeholder.names()))}",
                f"Found: {', '.join(unknown)}",
            ]
        )

    text = PLACEHOLDER_RE.sub(lambda m: full_context[m.group(1) or m.group(2)], body)

    if Language.is_local(default_language) and not Placeholder.date_names().intersection(placeholders):
        text += DATE_SUFFIX_HE.format(date_he=full_context[Placeholder.DATE_HE.value])

    if link and Placeholder.LINK.value not in placeholders:
        text += f"\n{link}"

    return RenderResult(text=text, provider_template_id=mapping.provider_template_id)
