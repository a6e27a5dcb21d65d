"""
Property-based tests for waitlist ordering.

Whatever sequence of joins, cancellations, promotions and moves happens, the
WAITING tickets of a service must hold positions exactly 1..N.
Uses Hypothesis for property-based testing.
"""

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth.user_context import AuthenticatedUser, UserRole
from core.database import Base, build_engine
from core.exceptions import InvalidStateError
from models import QueueTicket, QueueTicketStatus, Service
from services.queue_service import QueueService


ADMIN = AuthenticatedUser(id="admin", role=UserRole.ADMIN)

operation_strategy = st.one_of(
    st.tuples(st.just("join"), st.integers(min_value=0, max_value=3)),
    st.tuples(st.just("cancel"), st.integers(min_value=0, max_value=20)),
    st.tuples(st.just("complete"), st.integers(min_value=0, max_value=20)),
    st.tuples(st.just("promote"), st.just(0)),
    st.tuples(st.just("requeue"), st.integers(min_value=0, max_value=20)),
    st.tuples(st.just("move"), st.tuples(st.integers(min_value=0, max_value=20), st.integers(min_value=1, max_value=8))),
)


def _memory_session():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def _assert_dense(session, service_id):
    session.expire_all()
    positions = [
        t.position for t in session.query(QueueTicket).filter(
            QueueTicket.service_id == service_id,
            QueueTicket.status == QueueTicketStatus.WAITING,
        ).order_by(QueueTicket.position, QueueTicket.created_at).all()
    ]
    assert positions == list(range(1, len(positions) + 1))


def _pick(tickets, index):
    return tickets[index % len(tickets)] if tickets else None


@pytest.mark.slow
@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(operations=st.lists(operation_strategy, min_size=1, max_size=25))
def test_waiting_positions_stay_dense(operations):
    engine, session = _memory_session()
    try:
        service = Service(slug="property")
        session.add(service)
        session.commit()
        tickets = []

        for name, argument in operations:
            if name == "join":
                user = AuthenticatedUser(id=f"user-{argument}")
                tickets.append(QueueService.create_ticket(session, user, service.id))
            elif name == "promote":
                QueueService.promote_next(session, service.id)
            else:
                index = argument[0] if name == "move" else argument
                ticket = _pick(tickets, index)
                if ticket is None:
                    continue
                try:
                    if name == "cancel":
                        QueueService.update_status(session, ticket.id, ADMIN, QueueTicketStatus.CANCELLED)
                    elif name == "complete":
                        QueueService.update_status(session, ticket.id, ADMIN, QueueTicketStatus.COMPLETED)
                    elif name == "requeue":
                        QueueService.update_status(session, ticket.id, ADMIN, QueueTicketStatus.WAITING)
                    elif name == "move":
                        QueueService.move_ticket(session, ticket.id, ADMIN, argument[1])
                except InvalidStateError:
                    # Terminal tickets and non-waiting moves are rejected without side effects
                    pass

            _assert_dense(session, service.id)
    finally:
        session.close()
        engine.dispose()
