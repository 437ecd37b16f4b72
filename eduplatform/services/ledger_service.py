"""
Points ledger.

A user's balance is kept twice: as an append-only list of
``PointsTransaction`` rows and as the materialized ``User.points_balance``.
Each ledger event writes both inside one database transaction, so the
balance always equals the signed sum of the user's transactions.

Debits are applied with a conditional UPDATE that only matches while the
balance covers the amount. Two concurrent debits can therefore never both
pass the balance check.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlmodel import Session, col, select

from eduplatform.config import DEFAULT_PURCHASE_POINTS, REVENUE_PER_1000_POINTS
from eduplatform.errors import InsufficientBalance, InvalidTransfer, NotFound
from eduplatform.models import (
    NotificationType,
    PointsTransaction,
    TransactionType,
    User,
)
from eduplatform.services.notification_service import queue_notification
from eduplatform.utils import sanitize_text, utcnow, validate_amount

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTIONS = {
    TransactionType.EARNED: "Points earned",
    TransactionType.SPENT: "Points spent",
    TransactionType.PURCHASED: "Points purchase",
}


def _get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


def record_entry(
    session: Session,
    user_id: int,
    amount: int,
    tx_type: TransactionType,
    description: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> PointsTransaction:
    """Apply one ledger entry to the session without committing.

    The caller owns the transaction: it must commit to make the entry and
    the balance change durable together, or roll back to discard both.

    Raises:
        InvalidAmount: If amount is not a positive integer
        InsufficientBalance: If a debit exceeds the current balance
    """
    validate_amount(amount)
    now = utcnow()

    if tx_type.sign < 0:
        stmt = (
            update(User)
            .where(col(User.id) == user_id, col(User.points_balance) >= amount)
            .values(points_balance=User.points_balance - amount, updated_at=now)
        )
        if session.exec(stmt).rowcount == 0:
            raise InsufficientBalance(
                f"User {user_id} does not have {amount} points available"
            )
    else:
        stmt = (
            update(User)
            .where(col(User.id) == user_id)
            .values(points_balance=User.points_balance + amount, updated_at=now)
        )
        if session.exec(stmt).rowcount == 0:
            raise NotFound(f"User {user_id} not found")

    text = sanitize_text(description) if description else ""
    entry = PointsTransaction(
        user_id=user_id,
        amount=amount,
        type=tx_type,
        description=text or DEFAULT_DESCRIPTIONS.get(tx_type),
        reference_id=reference_id,
        created_at=now,
    )
    session.add(entry)
    return entry


def _commit_single(
    session: Session,
    user_id: int,
    amount: int,
    tx_type: TransactionType,
    description: Optional[str],
    reference_id: Optional[str],
) -> PointsTransaction:
    validate_amount(amount)
    _get_user(session, user_id)
    try:
        entry = record_entry(session, user_id, amount, tx_type, description, reference_id)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(entry)
    logger.info(f"Ledger {tx_type.value}: user={user_id} amount={amount} tx={entry.id}")
    return entry


def get_balance(session: Session, user_id: int) -> int:
    """Return the materialized balance; the log is not consulted."""
    return _get_user(session, user_id).points_balance


def list_transactions(session: Session, user_id: int) -> List[PointsTransaction]:
    """Transaction history for a user, most recent first."""
    _get_user(session, user_id)
    stmt = (
        select(PointsTransaction)
        .where(PointsTransaction.user_id == user_id)
        .order_by(
            col(PointsTransaction.created_at).desc(), col(PointsTransaction.id).desc()
        )
    )
    return session.exec(stmt).all()


def replay_balance(session: Session, user_id: int) -> int:
    """Recompute a balance from the transaction log (audit only)."""
    return sum(tx.amount * tx.type.sign for tx in list_transactions(session, user_id))


def earn(
    session: Session,
    user_id: int,
    amount: int,
    description: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> PointsTransaction:
    return _commit_single(
        session, user_id, amount, TransactionType.EARNED, description, reference_id
    )


def purchase(
    session: Session,
    user_id: int,
    amount: int = DEFAULT_PURCHASE_POINTS,
    description: Optional[str] = None,
) -> PointsTransaction:
    """Credit purchased points. Payment is assumed to have cleared already."""
    entry = _commit_single(
        session, user_id, amount, TransactionType.PURCHASED, description, None
    )
    queue_notification(
        session.get_bind(),
        user_id,
        "Points purchased",
        f"{amount} points were added to your wallet",
        NotificationType.POINTS,
    )
    return entry


def spend(
    session: Session,
    user_id: int,
    amount: int,
    description: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> PointsTransaction:
    try:
        return _commit_single(
            session, user_id, amount, TransactionType.SPENT, description, reference_id
        )
    except InsufficientBalance:
        logger.warning(f"Spend rejected: user={user_id} amount={amount}")
        raise


def transfer(
    session: Session,
    from_user_id: int,
    to_user_id: int,
    amount: int,
    description: Optional[str] = None,
) -> Tuple[PointsTransaction, PointsTransaction]:
    """Move points between two users.

    Both ledger entries and both balance updates commit in a single
    transaction; on any failure neither half is kept.

    Returns:
        The (transferred_out, transferred_in) transactions

    Raises:
        InvalidAmount: If amount is not a positive integer
        InvalidTransfer: If sender and receiver are the same user
        NotFound: If either user does not exist
        InsufficientBalance: If the sender's balance is below amount
    """
    validate_amount(amount)
    if from_user_id == to_user_id:
        raise InvalidTransfer("Cannot transfer points to yourself")
    _get_user(session, from_user_id)
    _get_user(session, to_user_id)

    try:
        legs = {
            from_user_id: (
                TransactionType.TRANSFERRED_OUT,
                description or f"Transfer to user {to_user_id}",
            ),
            to_user_id: (
                TransactionType.TRANSFERRED_IN,
                description or f"Transfer from user {from_user_id}",
            ),
        }
        # Rows are locked in ascending user id so opposite transfers cannot deadlock
        entries = {
            user_id: record_entry(session, user_id, amount, *legs[user_id])
            for user_id in sorted(legs)
        }
        debit, credit = entries[from_user_id], entries[to_user_id]
        session.commit()
    except InsufficientBalance:
        session.rollback()
        logger.warning(
            f"Transfer rejected: {from_user_id} -> {to_user_id} amount={amount}"
        )
        raise
    except Exception:
        session.rollback()
        raise

    session.refresh(debit)
    session.refresh(credit)
    logger.info(
        f"Ledger transfer: {from_user_id} -> {to_user_id} amount={amount} "
        f"tx=({debit.id}, {credit.id})"
    )

    bind = session.get_bind()
    queue_notification(
        bind,
        from_user_id,
        "Points transferred",
        f"{amount} points were transferred successfully",
        NotificationType.POINTS,
    )
    queue_notification(
        bind,
        to_user_id,
        "Points received",
        f"You received {amount} points from another user",
        NotificationType.POINTS,
    )
    return debit, credit


def wallet_summary(session: Session) -> dict:
    """Platform-wide wallet figures for the admin dashboard."""
    total_users = session.exec(select(func.count()).select_from(User)).one()
    purchased = session.exec(
        select(func.coalesce(func.sum(PointsTransaction.amount), 0)).where(
            PointsTransaction.type == TransactionType.PURCHASED
        )
    ).one()
    circulating = session.exec(
        select(func.coalesce(func.sum(User.points_balance), 0))
    ).one()

    return {
        "total_users": total_users,
        "total_points_purchased": purchased,
        "total_points_in_circulation": circulating,
        # 1000 points sell for REVENUE_PER_1000_POINTS currency units
        "total_revenue": (purchased * REVENUE_PER_1000_POINTS) // 1000,
    }
