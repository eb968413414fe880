"""
Closed value sets used across the domain.

Storage keeps these as plain strings; conversion happens at the storage edge
(`Enum(value)` on read, `.value` on write), so business logic only ever sees the
enum members.
"""

from __future__ import annotations

from enum import Enum


class ServiceCategory(str, Enum):
    OIL_CHANGE = "oil_change"
    BRAKE = "brake"
    TIRE = "tire"
    ENGINE = "engine"
    ELECTRICAL = "electrical"
    CHAIN = "chain"
    SUSPENSION = "suspension"
    TRANSMISSION = "transmission"
    COOLING = "cooling"
    EXHAUST = "exhaust"
    FUEL = "fuel"
    BODYWORK = "bodywork"
    INSPECTION = "inspection"
    CUSTOM = "custom"
    DIAGNOSTIC = "diagnostic"
    MAINTENANCE = "maintenance"

    @property
    def label(self) -> str:
        return _CATEGORY_INFO[self][0]

    @property
    def description(self) -> str:
        return _CATEGORY_INFO[self][1]


_CATEGORY_INFO: dict[ServiceCategory, tuple[str, str]] = {
    ServiceCategory.OIL_CHANGE: ("Oil Change", "Engine oil and filter replacement"),
    ServiceCategory.BRAKE: ("Brake Service", "Brake pad/rotor replacement, brake fluid service"),
    ServiceCategory.TIRE: ("Tire Service", "Tire replacement, repair, balancing, alignment"),
    ServiceCategory.ENGINE: ("Engine Repair", "Engine diagnostics, repair, rebuild"),
    ServiceCategory.ELECTRICAL: ("Electrical", "Wiring, battery, alternator, lights"),
    ServiceCategory.CHAIN: ("Chain & Sprocket", "Chain adjustment, lubrication, replacement"),
    ServiceCategory.SUSPENSION: ("Suspension", "Fork service, shock replacement, adjustment"),
    ServiceCategory.TRANSMISSION: ("Transmission", "Clutch, gearbox, transmission repair"),
    ServiceCategory.COOLING: ("Cooling System", "Radiator, coolant, hoses"),
    ServiceCategory.EXHAUST: ("Exhaust System", "Muffler, pipes, catalytic converter"),
    ServiceCategory.FUEL: ("Fuel System", "Carburetor, fuel injection, tank"),
    ServiceCategory.BODYWORK: ("Bodywork", "Fairings, panels, paint, dent repair"),
    ServiceCategory.INSPECTION: ("Inspection", "Safety inspection, pre-purchase inspection"),
    ServiceCategory.CUSTOM: ("Custom Work", "Modifications, custom builds, upgrades"),
    ServiceCategory.DIAGNOSTIC: ("Diagnostics", "Computer diagnostics, troubleshooting"),
    ServiceCategory.MAINTENANCE: ("General Maintenance", "Routine service, tune-ups"),
}


class UrgencyLevel(str, Enum):
    IMMEDIATE = "immediate"
    WITHIN_WEEK = "within_week"
    ROUTINE = "routine"

    @property
    def phrase(self) -> str:
        return _URGENCY_PHRASES[self]


_URGENCY_PHRASES: dict[UrgencyLevel, str] = {
    UrgencyLevel.IMMEDIATE: "URGENT - Immediate service needed",
    UrgencyLevel.WITHIN_WEEK: "Needed within this week",
    UrgencyLevel.ROUTINE: "Routine service request",
}


class ServiceRequestStatus(str, Enum):
    """Lifecycle of a fan-out service request.

    sent -> responded -> scheduled, with cancellation allowed before scheduling.
    """

    SENT = "sent"
    RESPONDED = "responded"
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _REQUEST_TRANSITIONS[self]

    def can_transition_to(self, target: "ServiceRequestStatus") -> bool:
        return target in _REQUEST_TRANSITIONS[self]


_REQUEST_TRANSITIONS: dict[ServiceRequestStatus, frozenset[ServiceRequestStatus]] = {
    ServiceRequestStatus.SENT: frozenset({ServiceRequestStatus.RESPONDED, ServiceRequestStatus.CANCELLED}),
    ServiceRequestStatus.RESPONDED: frozenset({ServiceRequestStatus.SCHEDULED, ServiceRequestStatus.CANCELLED}),
    ServiceRequestStatus.SCHEDULED: frozenset(),
    ServiceRequestStatus.CANCELLED: frozenset(),
}


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _APPOINTMENT_TRANSITIONS[self]

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return target in _APPOINTMENT_TRANSITIONS[self]


_APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


class OutreachChannel(str, Enum):
    EMAIL = "email"
    APPOINTMENT = "appointment"
