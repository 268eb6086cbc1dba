"""
Service wiring.
Builds the admission controller, promoter, verifier and event service around
one store and one ledger so they share the same locks and publisher.
"""

from dataclasses import dataclass
from typing import Optional

from eventdesk.core.config import Settings
from eventdesk.core.locks import KeyedLocks
from eventdesk.services.checkin_service import CheckInVerifier
from eventdesk.services.event_service import EventService
from eventdesk.services.interfaces.ledger import CapacityLedger
from eventdesk.services.notification_service import NotificationPublisher, log_signal
from eventdesk.services.registration_service import AdmissionController
from eventdesk.services.strategy_factory import build_ledger
from eventdesk.services.throttle import JoinThrottle, storage_uri_for
from eventdesk.services.ticket_service import TicketIssuer
from eventdesk.services.waitlist_service import WaitlistPromoter
from eventdesk.stores.interfaces import RegistrationStore


@dataclass
class Services:
    store: RegistrationStore
    ledger: CapacityLedger
    issuer: TicketIssuer
    publisher: NotificationPublisher
    throttle: JoinThrottle
    promoter: WaitlistPromoter
    admission: AdmissionController
    verifier: CheckInVerifier
    events: EventService


def build_services(
    settings: Settings,
    store: RegistrationStore,
    ledger: Optional[CapacityLedger] = None,
    publisher: Optional[NotificationPublisher] = None,
) -> Services:
    ledger = ledger if ledger is not None else build_ledger(settings)
    if publisher is None:
        publisher = NotificationPublisher()
        publisher.subscribe(log_signal)

    issuer = TicketIssuer(settings.SECRET_KEY, settings.TICKET_SIGNATURE_LENGTH)
    throttle = JoinThrottle(
        settings.JOIN_RATE_LIMIT,
        settings.JOIN_RATE_WINDOW_SECONDS,
        storage_uri_for(settings),
    )
    registration_locks = KeyedLocks()

    promoter = WaitlistPromoter(store, ledger, issuer, publisher)
    admission = AdmissionController(
        store,
        ledger,
        promoter,
        issuer,
        publisher,
        registration_locks,
        throttle=throttle,
    )
    verifier = CheckInVerifier(store, issuer, publisher, registration_locks)

    return Services(
        store=store,
        ledger=ledger,
        issuer=issuer,
        publisher=publisher,
        throttle=throttle,
        promoter=promoter,
        admission=admission,
        verifier=verifier,
        events=EventService(store, ledger),
    )
