"""Emergency alert construction: map link, fixed message template, fallbacks."""

from datetime import datetime, timezone
from typing import Optional

from severity.models import EmergencyAlert, EmergencyContact

# Used when the location collaborator returned nothing.
DEFAULT_COORDINATES = (12.9716, 77.5946)

DEFAULT_EMERGENCY_CONTACTS = (
    EmergencyContact(name="Amma", phone="+91 98765 43210"),
    EmergencyContact(name="Best Friend", phone="+91 98765 43211"),
)

DEFAULT_USER_NAME = "User"

ALERT_TEMPLATE = (
    "🚨 EMERGENCY ALERT from HearHer:\n"
    "{user_name} may be in danger.\n"
    "Last known location:\n"
    "Google Maps Link: {maps_link}\n"
    "Please contact immediately."
)


def build_maps_link(latitude: float, longitude: float) -> str:
    return f"https://maps.google.com/?q={latitude},{longitude}"


def generate_alert_message(user_name: str, latitude: float, longitude: float) -> str:
    return ALERT_TEMPLATE.format(user_name=user_name, maps_link=build_maps_link(latitude, longitude))


def build_emergency_alert(
    user_name: Optional[str],
    coordinates: Optional[tuple] = None,
    contacts: Optional[list] = None,
    now: Optional[datetime] = None,
) -> EmergencyAlert:
    """Build the immutable alert handed to the dispatcher. Missing coordinates/contacts use the defaults."""
    name = (user_name or "").strip() or DEFAULT_USER_NAME
    lat, lng = coordinates if coordinates is not None else DEFAULT_COORDINATES
    lat, lng = float(lat), float(lng)
    triggered = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
    return EmergencyAlert(
        user_name=name,
        latitude=lat,
        longitude=lng,
        maps_link=build_maps_link(lat, lng),
        message=generate_alert_message(name, lat, lng),
        contacts=tuple(contacts) if contacts else DEFAULT_EMERGENCY_CONTACTS,
        triggered_at=triggered,
    )


def format_alert_summary(alert: EmergencyAlert) -> str:
    """Alert echoed back to the user with one "notified" line per contact."""
    lines = "\n".join(f"• {c.name}: {c.phone}" for c in alert.contacts)
    return (
        "🚨 **EMERGENCY ALERT SENT**\n\n"
        f"{alert.message}\n\n"
        f"📞 Contacts notified:\n{lines}\n\n"
        "💜 Stay calm. Help is on the way. If you are in immediate physical danger, please call **112** right now."
    )
