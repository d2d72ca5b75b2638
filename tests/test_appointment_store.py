"""Tests for AppointmentStore: partial creates and newest-first listing."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from callagent.models.appointment import AppointmentCreate
from callagent.stores import AppointmentStore
from callagent.stores.appointments import default_call_summary

NOW = datetime(2026, 6, 10, 10, 0, tzinfo=timezone.utc)


class _TickingClock:
    def __init__(self):
        self.now = NOW

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class TestCreateDefaults:
    def test_empty_create_fills_fallbacks(self):
        store = AppointmentStore(clock=lambda: NOW)
        appt = store.create_appointment()
        assert appt.customer_name == ""
        assert appt.reason == ""
        assert appt.appointment_datetime is None
        assert appt.contact_number == "Unknown"
        assert appt.call_summary == "Conversation booked for client."
        assert appt.created_at == NOW
        assert len(appt.id) == 32

    def test_summary_uses_name(self):
        store = AppointmentStore()
        appt = store.create_appointment({"customerName": "Jane Doe"})
        assert appt.call_summary == "Conversation booked for Jane Doe."
        assert default_call_summary(None) == "Conversation booked for client."

    def test_given_fields_are_kept(self):
        store = AppointmentStore()
        appt = store.create_appointment(AppointmentCreate(
            customer_name="Jane",
            appointment_datetime=datetime(2026, 6, 16, 15, 0, tzinfo=timezone.utc),
            reason="checkup",
            contact_number="+15550001111",
            call_summary="Booked by phone.",
        ))
        assert appt.contact_number == "+15550001111"
        assert appt.call_summary == "Booked by phone."
        assert appt.appointment_datetime.hour == 15

    def test_blank_datetime_string_is_missing(self):
        store = AppointmentStore()
        appt = store.create_appointment({"appointmentDateTime": "  "})
        assert appt.appointment_datetime is None

    def test_iso_datetime_string_is_parsed(self):
        store = AppointmentStore()
        appt = store.create_appointment({"appointmentDateTime": "2026-06-16T15:00:00+00:00"})
        assert appt.appointment_datetime == datetime(2026, 6, 16, 15, 0, tzinfo=timezone.utc)

    def test_wrong_types_rejected(self):
        store = AppointmentStore()
        with pytest.raises(ValidationError):
            store.create_appointment({"customerName": ["Jane"]})
        with pytest.raises(ValidationError):
            store.create_appointment({"appointmentDateTime": "not a date"})
        assert len(store) == 0

    def test_ids_are_unique(self):
        store = AppointmentStore()
        ids = {store.create_appointment().id for _ in range(20)}
        assert len(ids) == 20


class TestListing:
    def test_newest_first(self):
        store = AppointmentStore(clock=_TickingClock())
        for name in ("first", "second", "third"):
            store.create_appointment({"customerName": name})
        listed = store.list_appointments()
        assert [a.customer_name for a in listed] == ["third", "second", "first"]
        assert listed[0].created_at > listed[-1].created_at

    def test_listing_is_a_snapshot(self):
        store = AppointmentStore()
        store.create_appointment()
        listed = store.list_appointments()
        listed.clear()
        assert len(store.list_appointments()) == 1

    def test_appointments_are_immutable(self):
        store = AppointmentStore()
        appt = store.create_appointment({"customerName": "Jane"})
        with pytest.raises(ValidationError):
            appt.customer_name = "Someone else"

    def test_json_uses_camel_case(self):
        store = AppointmentStore(clock=lambda: NOW)
        data = store.create_appointment({"customerName": "Jane"}).model_dump(
            mode="json", by_alias=True,
        )
        assert set(data) == {
            "id", "customerName", "appointmentDateTime", "reason",
            "contactNumber", "callSummary", "createdAt",
        }
        assert data["createdAt"] == "2026-06-10T10:00:00Z"
