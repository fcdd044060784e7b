import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from sqlalchemy.engine import Engine
from sqlmodel import col, select

from .errors import InvalidInput, RequestNotPending
from .models import DECLINED, EXPIRED, PENDING, REQUEST_STATUSES, DispatchRequest
from .repo import store_session

logger = logging.getLogger(__name__)

# Fields a transition may touch; identity, location and chain links are fixed at creation
MUTABLE_FIELDS = {"status", "accepted_at", "declined_at", "expired_at", "eta_minutes", "chain_closed_at"}


class RequestStore:
    """Dispatch requests and their status transitions."""

    def __init__(self, bind: Engine = None):
        self.bind = bind

    def create(self, request: DispatchRequest) -> int:
        """
        Insert a new pending request. A request can have only one successor: creating a
        second one for the same previous_id raises RequestNotPending.
        """
        request.id = None
        request.status = PENDING
        with store_session(self.bind) as s:
            try:
                s.add(request)
                s.flush()
                if request.chain_id is None:
                    request.chain_id = request.id
                s.commit()
            except IntegrityError as exc:
                s.rollback()
                if request.previous_id is None:
                    raise
                raise RequestNotPending(f"request {request.previous_id} already has a successor") from exc
            s.refresh(request)
        return request.id

    def get(self, request_id: int) -> Optional[DispatchRequest]:
        with store_session(self.bind) as s:
            return s.get(DispatchRequest, request_id)

    def conditional_transition(self, request_id: int, expected_status: str, changes: Dict) -> bool:
        """
        Apply `changes` only if the stored status still equals `expected_status`.

        A single UPDATE ... WHERE id = ? AND status = ? so concurrent callers cannot both
        win. Returns False on conflict without touching the row; storage failures raise
        StoreUnavailable instead.
        """
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise InvalidInput(f"fields not mutable by a transition: {sorted(unknown)}")
        if "status" in changes and changes["status"] not in REQUEST_STATUSES:
            raise InvalidInput(f"unknown status {changes['status']!r}")

        stmt = (
            update(DispatchRequest)
            .where(col(DispatchRequest.id) == request_id, col(DispatchRequest.status) == expected_status)
            .values(**changes)
        )
        with store_session(self.bind) as s:
            result = s.exec(stmt)
            s.commit()
        won = result.rowcount == 1
        if not won:
            logger.debug(f"Transition on request {request_id} from {expected_status} lost")
        return won

    def find_active_for_responder(self, responder_phone: str, now: datetime) -> List[DispatchRequest]:
        with store_session(self.bind) as s:
            return s.exec(
                select(DispatchRequest)
                .where(
                    DispatchRequest.responder_phone == responder_phone,
                    DispatchRequest.status == PENDING,
                    DispatchRequest.expires_at > now,
                )
                .order_by(col(DispatchRequest.created_at).desc(), col(DispatchRequest.id).desc())
            ).all()

    def find_overdue(self, now: datetime) -> List[DispatchRequest]:
        with store_session(self.bind) as s:
            return s.exec(
                select(DispatchRequest)
                .where(DispatchRequest.status == PENDING, DispatchRequest.expires_at <= now)
                .order_by(col(DispatchRequest.expires_at))
            ).all()

    def chain(self, chain_id: int) -> List[DispatchRequest]:
        with store_session(self.bind) as s:
            return s.exec(
                select(DispatchRequest)
                .where(DispatchRequest.chain_id == chain_id)
                .order_by(col(DispatchRequest.hop), col(DispatchRequest.id))
            ).all()

    def successor_of(self, request_id: int) -> Optional[DispatchRequest]:
        with store_session(self.bind) as s:
            return s.exec(
                select(DispatchRequest).where(DispatchRequest.previous_id == request_id)
            ).first()

    def find_unreassigned(self) -> List[DispatchRequest]:
        """Declined or expired requests with neither a successor nor a closed chain."""
        successor = aliased(DispatchRequest)
        has_successor = select(successor.id).where(successor.previous_id == DispatchRequest.id).exists()
        with store_session(self.bind) as s:
            return s.exec(
                select(DispatchRequest)
                .where(
                    col(DispatchRequest.status).in_((DECLINED, EXPIRED)),
                    col(DispatchRequest.chain_closed_at).is_(None),
                    ~has_successor,
                )
                .order_by(col(DispatchRequest.id))
            ).all()
