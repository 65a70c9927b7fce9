"""Tests for alert building: map link, message template, fallbacks, immutability."""

import dataclasses
from datetime import datetime, timezone

import pytest

from escalation.alerts import (
    DEFAULT_COORDINATES,
    DEFAULT_EMERGENCY_CONTACTS,
    build_emergency_alert,
    build_maps_link,
    format_alert_summary,
    generate_alert_message,
)
from severity.models import EmergencyContact


class TestMapsLink:
    def test_link_from_coordinates(self):
        assert build_maps_link(51.5, -0.12) == "https://maps.google.com/?q=51.5,-0.12"

    def test_deterministic(self):
        assert build_maps_link(12.9716, 77.5946) == build_maps_link(12.9716, 77.5946)


class TestAlertMessage:
    def test_embeds_name_and_link(self):
        msg = generate_alert_message("Priya", 12.9716, 77.5946)
        assert "Priya may be in danger." in msg
        assert "https://maps.google.com/?q=12.9716,77.5946" in msg
        assert msg.startswith("🚨 EMERGENCY ALERT")
        assert len(msg.splitlines()) == 5


class TestBuildEmergencyAlert:
    def test_uses_given_values(self):
        contacts = [EmergencyContact(name="Sis", phone="+1 555 0100")]
        now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        alert = build_emergency_alert("Priya", (51.5, -0.12), contacts, now=now)
        assert alert.user_name == "Priya"
        assert alert.latitude == 51.5
        assert alert.longitude == -0.12
        assert alert.maps_link == "https://maps.google.com/?q=51.5,-0.12"
        assert alert.contacts == tuple(contacts)
        assert alert.triggered_at == "2025-01-01T12:00:00Z"

    def test_fallback_coordinates(self):
        alert = build_emergency_alert("Priya", None, None)
        assert (alert.latitude, alert.longitude) == DEFAULT_COORDINATES

    @pytest.mark.parametrize("contacts", [None, []])
    def test_fallback_contacts(self, contacts):
        alert = build_emergency_alert("Priya", (1.0, 2.0), contacts)
        assert alert.contacts == DEFAULT_EMERGENCY_CONTACTS
        assert [c.name for c in alert.contacts] == ["Amma", "Best Friend"]

    def test_fallback_user_name(self):
        assert build_emergency_alert(None).user_name == "User"

    def test_immutable(self):
        alert = build_emergency_alert("Priya")
        with pytest.raises(dataclasses.FrozenInstanceError):
            alert.message = "changed"

    def test_contact_order_preserved(self):
        contacts = [EmergencyContact(name=n, phone=str(i)) for i, n in enumerate(["C", "A", "B"])]
        alert = build_emergency_alert("Priya", (1.0, 2.0), contacts)
        assert [c.name for c in alert.contacts] == ["C", "A", "B"]


class TestAlertSummary:
    def test_lists_each_contact(self):
        summary = format_alert_summary(build_emergency_alert("Priya"))
        assert "EMERGENCY ALERT SENT" in summary
        assert "• Amma: +91 98765 43210" in summary
        assert "• Best Friend: +91 98765 43211" in summary
