import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session
from app.config import settings
from app.crud import documents, outbox
from app.crud.gamification import XPSource, trade_completion_amount
from app.errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError, ValidationError
from app.models.trade import (
    ChangeRequest, ChangeRequestStatus, ProposalStatus, Trade, TradeProposal, TradeStatus,
)
from app.security.rules import AuthContext
from app.services import trade_state
from app.utils.clock import utcnow
from app.utils.logger import get_logger

logger = get_logger(__name__)

S = TradeStatus

class TradesCRUD:
    """
    Trade lifecycle operations.

    Every method validates the transition against app.services.trade_state,
    runs the security rule for the write and commits once. Completion side
    effects (XP, portfolio items, notifications) are staged as outbox events
    in the same transaction and dispatched after the commit.
    """

    @staticmethod
    def get_trade(db: Session, trade_id: str) -> Trade:
        trade = db.query(Trade).filter(Trade.id == trade_id).first()
        if trade is None:
            raise NotFoundError("Trade not found", details={"trade_id": trade_id})
        return trade

    @staticmethod
    def list_trades(
        db: Session,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Trade], int]:
        query = db.query(Trade)
        if user_id:
            query = query.filter(or_(Trade.creator_id == user_id, Trade.participant_id == user_id))
        if status:
            query = query.filter(Trade.status == status)
        query = query.order_by(Trade.created_at.desc(), Trade.id)
        total = query.count()
        return query.offset((page - 1) * page_size).limit(page_size).all(), total

    @staticmethod
    def create_trade(
        db: Session,
        auth: AuthContext,
        creator_id: str,
        title: str,
        description: str = "",
        category: Optional[str] = None,
        skills_offered: Optional[List[Any]] = None,
        skills_wanted: Optional[List[Any]] = None,
    ) -> Trade:
        if not title or not title.strip():
            raise ValidationError("Trade title is required")
        trade = Trade(
            id=str(uuid.uuid4()),
            title=title.strip(),
            description=description or "",
            category=category,
            creator_id=creator_id,
            skills_offered=list(skills_offered or []),
            skills_wanted=list(skills_wanted or []),
            status=S.OPEN.value,
        )
        documents.authorize(db, auth, "create", trade.path, data=trade)
        db.add(trade)
        db.commit()
        logger.info(f"Trade {trade.id} created by {creator_id}")
        return trade

    @staticmethod
    def submit_proposal(
        db: Session,
        auth: AuthContext,
        trade_id: str,
        proposer_id: str,
        message: str = "",
        skills_offered: Optional[List[Any]] = None,
        skills_wanted: Optional[List[Any]] = None,
        evidence: Optional[List[Any]] = None,
    ) -> TradeProposal:
        trade = TradesCRUD.get_trade(db, trade_id)
        if proposer_id == trade.creator_id:
            raise ValidationError("Cannot propose on your own trade")
        trade_state.ensure_status(trade.status, (S.OPEN.value, S.PROPOSED.value), "propose on")

        pending = db.query(TradeProposal).filter(
            TradeProposal.trade_id == trade_id,
            TradeProposal.proposer_user_id == proposer_id,
            TradeProposal.status == ProposalStatus.PENDING.value
        ).first()
        if pending is not None:
            raise ConflictError("You already have a pending proposal on this trade",
                                details={"proposal_id": pending.id})

        proposal = TradeProposal(
            id=str(uuid.uuid4()),
            trade_id=trade_id,
            proposer_user_id=proposer_id,
            status=ProposalStatus.PENDING.value,
            message=message or "",
            skills_offered=list(skills_offered or []),
            skills_wanted=list(skills_wanted or []),
            evidence=list(evidence or []),
        )
        documents.authorize(db, auth, "create", proposal.path, data=proposal)
        try:
            db.add(proposal)
            if trade.status == S.OPEN.value:
                trade_state.ensure_transition(trade.status, S.PROPOSED.value)
                documents.set_fields(trade, status=S.PROPOSED.value)
            outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                "user_id": trade.creator_id,
                "type": "trade",
                "title": "New trade proposal",
                "content": f"New proposal on \"{trade.title}\"",
                "related_id": trade.id,
            })
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Proposal {proposal.id} submitted on trade {trade_id} by {proposer_id}")
        return proposal

    @staticmethod
    def list_proposals(db: Session, auth: AuthContext, trade_id: str) -> List[TradeProposal]:
        """All proposals for the trade creator; only their own for anyone else."""
        trade = TradesCRUD.get_trade(db, trade_id)
        query = db.query(TradeProposal).filter(TradeProposal.trade_id == trade_id)
        if not (auth.is_admin or auth.uid == trade.creator_id):
            query = query.filter(TradeProposal.proposer_user_id == auth.uid)
        return query.order_by(TradeProposal.created_at.asc()).all()

    @staticmethod
    def respond_to_proposal(db: Session, auth: AuthContext, trade_id: str, proposal_id: str, accept: bool) -> Trade:
        """
        Accept or reject a pending proposal. Only the trade creator may respond.

        Accepting makes the proposer the trade participant; other pending
        proposals are left as they are. Rejecting the last pending proposal
        returns the trade to ``open``.
        """
        trade = TradesCRUD.get_trade(db, trade_id)
        proposal = db.query(TradeProposal).filter(
            TradeProposal.id == proposal_id,
            TradeProposal.trade_id == trade_id
        ).first()
        if proposal is None:
            raise NotFoundError("Proposal not found", details={"proposal_id": proposal_id})

        if auth.uid != trade.creator_id and not auth.is_admin:
            raise PermissionDeniedError("Only the trade creator can respond to proposals")
        documents.authorize(db, auth, "update", proposal.path, resource=proposal)
        if proposal.status != ProposalStatus.PENDING.value:
            raise InvalidTransitionError(
                f"Proposal is already {proposal.status}",
                details={"proposal_id": proposal_id, "status": proposal.status},
            )

        try:
            if accept:
                trade_state.ensure_transition(trade.status, S.ACCEPTED.value)
                documents.authorize(db, auth, "update", trade.path, resource=trade)
                documents.set_fields(proposal, status=ProposalStatus.ACCEPTED.value)
                documents.set_fields(
                    trade,
                    status=S.ACCEPTED.value,
                    participant_id=proposal.proposer_user_id,
                    accepted_at=utcnow(),
                )
                title = "Proposal accepted"
            else:
                documents.set_fields(proposal, status=ProposalStatus.REJECTED.value)
                db.flush()
                remaining = db.query(TradeProposal).filter(
                    TradeProposal.trade_id == trade_id,
                    TradeProposal.status == ProposalStatus.PENDING.value
                ).count()
                if remaining == 0 and trade.status == S.PROPOSED.value:
                    trade_state.ensure_transition(trade.status, S.OPEN.value)
                    documents.set_fields(trade, status=S.OPEN.value)
                title = "Proposal declined"

            outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                "user_id": proposal.proposer_user_id,
                "type": "trade",
                "title": title,
                "content": trade.title,
                "related_id": trade.id,
            })
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Proposal {proposal_id} on trade {trade_id} {'accepted' if accept else 'rejected'}")
        return trade

    @staticmethod
    def _require_party(trade: Trade, auth: AuthContext) -> None:
        if auth.uid not in trade.parties() and not auth.is_admin:
            raise PermissionDeniedError("Only trade participants can do this",
                                        details={"trade_id": trade.id})

    @staticmethod
    def start_trade(db: Session, auth: AuthContext, trade_id: str) -> Trade:
        trade = TradesCRUD.get_trade(db, trade_id)
        TradesCRUD._require_party(trade, auth)
        trade_state.ensure_transition(trade.status, S.IN_PROGRESS.value)
        documents.authorize(db, auth, "update", trade.path, resource=trade)
        documents.set_fields(trade, status=S.IN_PROGRESS.value)
        db.commit()
        return trade

    @staticmethod
    def request_completion(
        db: Session,
        auth: AuthContext,
        trade_id: str,
        notes: Optional[str] = None,
        evidence: Optional[List[Any]] = None,
    ) -> Trade:
        """
        Submit the trade for the counterparty's confirmation.

        Allowed from in-progress and change-requested. When the trade is
        already pending-confirmation and the caller is the counterparty of
        the submitter, the request counts as confirmation.
        """
        trade = TradesCRUD.get_trade(db, trade_id)
        TradesCRUD._require_party(trade, auth)

        if (
            trade.status == S.PENDING_CONFIRMATION.value
            and trade.completion_requested_by
            and trade.completion_requested_by != auth.uid
        ):
            return TradesCRUD.confirm_completion(db, auth, trade_id)

        trade_state.ensure_status(
            trade.status, (S.IN_PROGRESS.value, S.CHANGE_REQUESTED.value), "request completion for"
        )
        trade_state.ensure_transition(trade.status, S.PENDING_CONFIRMATION.value)
        documents.authorize(db, auth, "update", trade.path, resource=trade)

        now = utcnow()
        try:
            for change in trade.change_requests:
                if change.status == ChangeRequestStatus.PENDING.value:
                    change.status = ChangeRequestStatus.ADDRESSED.value
                    change.resolved_at = now
            documents.set_fields(
                trade,
                status=S.PENDING_CONFIRMATION.value,
                completion_requested_by=auth.uid,
                completion_requested_at=now,
                completion_notes=notes,
                completion_evidence=list(evidence or []),
                reminders_sent=0,
                updated_at=now,
            )
            other = trade.counterparty_of(auth.uid)
            if other:
                outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                    "user_id": other,
                    "type": "trade_completion",
                    "title": "Trade completion requested",
                    "content": f"Please review and confirm \"{trade.title}\"",
                    "related_id": trade.id,
                })
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Completion requested on trade {trade_id} by {auth.uid}")
        return trade

    @staticmethod
    def request_changes(db: Session, auth: AuthContext, trade_id: str, reason: str) -> Trade:
        """Send a pending-confirmation trade back to the submitter with a reason."""
        if not reason or not reason.strip():
            raise ValidationError("A reason is required when requesting changes")

        trade = TradesCRUD.get_trade(db, trade_id)
        TradesCRUD._require_party(trade, auth)
        trade_state.ensure_status(trade.status, (S.PENDING_CONFIRMATION.value,), "request changes for")
        if auth.uid == trade.completion_requested_by:
            raise PermissionDeniedError("The submitter cannot request changes to their own completion request")
        documents.authorize(db, auth, "update", trade.path, resource=trade)

        now = utcnow()
        try:
            sequence = len(trade.change_requests) + 1
            trade.change_requests.append(ChangeRequest(
                trade_id=trade.id,
                sequence=sequence,
                reason=reason.strip(),
                requested_by=auth.uid,
                requested_at=now,
                status=ChangeRequestStatus.PENDING.value,
            ))
            documents.set_fields(trade, status=S.CHANGE_REQUESTED.value, updated_at=now)
            outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                "user_id": trade.completion_requested_by,
                "type": "trade",
                "title": "Changes requested",
                "content": reason.strip(),
                "related_id": trade.id,
            })
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Changes requested on trade {trade_id} by {auth.uid} (#{sequence})")
        return trade

    @staticmethod
    def _is_first_completed_trade(db: Session, trade: Trade, user_id: str) -> bool:
        return db.query(Trade.id).filter(
            Trade.id != trade.id,
            Trade.status == S.COMPLETED.value,
            or_(Trade.creator_id == user_id, Trade.participant_id == user_id)
        ).first() is None

    @staticmethod
    def enqueue_completion_effects(db: Session, trade: Trade) -> None:
        """Stage XP, portfolio and notification events for both parties of a completed trade."""
        quick = False
        if trade.completion_requested_at and trade.completion_confirmed_at:
            quick = (trade.completion_confirmed_at - trade.completion_requested_at) <= timedelta(
                hours=settings.QUICK_RESPONSE_HOURS
            )
        for user_id in trade.parties():
            amount, description = trade_completion_amount(
                is_quick_response=quick and not trade.auto_completed,
                is_first_trade=TradesCRUD._is_first_completed_trade(db, trade, user_id),
            )
            outbox.enqueue(db, outbox.XP_AWARD, {
                "user_id": user_id,
                "amount": amount,
                "source": XPSource.TRADE_COMPLETION,
                "source_id": trade.id,
                "description": description,
            })
            outbox.enqueue(db, outbox.PORTFOLIO_GENERATE, {
                "source_type": "trade",
                "source_id": trade.id,
                "user_id": user_id,
            })
            outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                "user_id": user_id,
                "type": "trade_completion",
                "title": "Trade auto-completed" if trade.auto_completed else "Trade completed",
                "content": trade.auto_completion_reason or f"\"{trade.title}\" is complete",
                "related_id": trade.id,
            })

    @staticmethod
    def confirm_completion(db: Session, auth: AuthContext, trade_id: str) -> Trade:
        """
        Confirm a pending-confirmation trade as its counterparty.

        The party who submitted the completion request cannot confirm it.
        """
        trade = TradesCRUD.get_trade(db, trade_id)
        TradesCRUD._require_party(trade, auth)
        trade_state.ensure_status(trade.status, (S.PENDING_CONFIRMATION.value,), "confirm")
        if auth.uid == trade.completion_requested_by:
            raise PermissionDeniedError(
                "You cannot confirm your own completion request",
                details={"trade_id": trade_id},
            )
        trade_state.ensure_transition(trade.status, S.COMPLETED.value)
        documents.authorize(db, auth, "update", trade.path, resource=trade)

        now = utcnow()
        try:
            documents.set_fields(
                trade,
                status=S.COMPLETED.value,
                completion_confirmed_at=now,
                updated_at=now,
            )
            db.flush()
            TradesCRUD.enqueue_completion_effects(db, trade)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Trade {trade_id} completed, confirmed by {auth.uid}")
        return trade

    @staticmethod
    def _close(db: Session, auth: AuthContext, trade_id: str, target: str, fields: Dict[str, Any]) -> Trade:
        trade = TradesCRUD.get_trade(db, trade_id)
        TradesCRUD._require_party(trade, auth)
        trade_state.ensure_transition(trade.status, target)
        documents.authorize(db, auth, "update", trade.path, resource=trade)
        try:
            documents.set_fields(trade, status=target, **fields)
            other = trade.counterparty_of(auth.uid)
            if other:
                outbox.enqueue(db, outbox.NOTIFICATION_CREATE, {
                    "user_id": other,
                    "type": "trade",
                    "title": f"Trade {target}",
                    "content": trade.title,
                    "related_id": trade.id,
                })
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"Trade {trade_id} {target} by {auth.uid}")
        return trade

    @staticmethod
    def cancel_trade(db: Session, auth: AuthContext, trade_id: str, reason: Optional[str] = None) -> Trade:
        return TradesCRUD._close(db, auth, trade_id, S.CANCELLED.value, {"cancel_reason": reason})

    @staticmethod
    def dispute_trade(
        db: Session, auth: AuthContext, trade_id: str, reason: str, details: Optional[str] = None
    ) -> Trade:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to dispute a trade")
        return TradesCRUD._close(
            db, auth, trade_id, S.DISPUTED.value,
            {"dispute_reason": reason.strip(), "dispute_details": details},
        )
