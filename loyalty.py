"""
Loyalty points engine.

Handles:
  - Earning points on orders (1 point per 10 EGP, scaled by tier)
  - Tier placement from lifetime points
  - Redeeming points for an order discount (10 points = 1 EGP)
  - Reversing an order's points when it is cancelled
"""

import logging
import math

from sqlalchemy.orm import Session

from models import LoyaltyAccount, PointsTransaction, Order

logger = logging.getLogger(__name__)

EGP_PER_POINT_EARNED = 10
POINTS_PER_EGP_REDEEMED = 10
HISTORY_LIMIT = 10

# Ordered lowest to highest: (tier, lifetime points needed, earn multiplier)
TIERS = [
    ("bronze", 0, 1.0),
    ("silver", 1000, 1.25),
    ("gold", 5000, 1.5),
    ("platinum", 10000, 2.0),
]
TIER_MULTIPLIERS = {name: multiplier for name, _, multiplier in TIERS}

TRANSACTION_TYPES = ("earn", "redeem", "bonus", "expire")


def tier_for(lifetime_points: int) -> str:
    tier = TIERS[0][0]
    for name, threshold, _ in TIERS:
        if lifetime_points >= threshold:
            tier = name
    return tier


def next_tier(tier: str, lifetime_points: int) -> dict | None:
    """Describe the next tier up, or None at the top tier."""
    names = [name for name, _, _ in TIERS]
    if tier not in names:
        raise ValueError(f"Unknown tier: {tier}")
    index = names.index(tier)
    if index == len(TIERS) - 1:
        return None
    name, threshold, _ = TIERS[index + 1]
    return {
        "next": name,
        "points": max(0, threshold - lifetime_points),
        "threshold": threshold,
    }


def points_for_total(order_total: float, tier: str = "bronze") -> int:
    multiplier = TIER_MULTIPLIERS.get(tier, 1.0)
    # Tolerate float noise such as 1999.9999 before flooring.
    return max(0, math.floor(round(order_total / EGP_PER_POINT_EARNED * multiplier, 6)))


def max_redeemable_points(balance: int, max_discount: float) -> int:
    """Largest redeemable amount: capped by balance and by the discount
    ceiling, rounded down to whole EGP."""
    cap = min(balance, math.floor(max_discount * POINTS_PER_EGP_REDEEMED))
    cap = max(0, cap)
    return cap - cap % POINTS_PER_EGP_REDEEMED


def discount_for_points(points: int) -> float:
    return float(points // POINTS_PER_EGP_REDEEMED)


def check_redeemable(points: int):
    """Points are spent in whole EGP steps only."""
    if points < 0:
        raise ValueError("Points to redeem cannot be negative")
    if points % POINTS_PER_EGP_REDEEMED:
        raise ValueError(
            f"Points to redeem must be a multiple of {POINTS_PER_EGP_REDEEMED}, got {points}"
        )



# ── Account access ────────────────────────────────────────────────

def get_account(db: Session, email: str) -> LoyaltyAccount | None:
    return db.query(LoyaltyAccount).filter(LoyaltyAccount.email == email).first()


def get_or_create_account(db: Session, email: str) -> LoyaltyAccount:
    account = get_account(db, email)
    if account is None:
        account = LoyaltyAccount(email=email, points_balance=0, lifetime_points=0, tier="bronze")
        db.add(account)
        db.flush()
    return account


def _record(db: Session, account: LoyaltyAccount, points: int, kind: str,
            description: str, order_id: int | None = None) -> PointsTransaction:
    txn = PointsTransaction(
        loyalty_id=account.id,
        order_id=order_id,
        points=points,
        transaction_type=kind,
        description=description,
    )
    db.add(txn)
    return txn


def history(db: Session, account: LoyaltyAccount, limit: int = HISTORY_LIMIT) -> list[PointsTransaction]:
    return (
        db.query(PointsTransaction)
        .filter(PointsTransaction.loyalty_id == account.id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )


# ── Earning & redeeming ───────────────────────────────────────────

def award_points(db: Session, email: str, order_id: int | None, order_total: float) -> int:
    """Award points for an order.

    The multiplier is that of the tier held before the order; the tier
    is re-evaluated afterwards. Does not commit.

    Returns:
        The number of points awarded.
    """
    account = get_or_create_account(db, email)
    points = points_for_total(order_total, account.tier)
    if points == 0:
        return 0

    account.points_balance += points
    account.lifetime_points += points
    account.tier = tier_for(account.lifetime_points)
    _record(db, account, points, "earn", f"Earned on order #{order_id}", order_id)
    logger.info("Awarded %d points to %s for order %s", points, email, order_id)
    return points


def redeem_points(db: Session, email: str, points: int, order_id: int | None = None) -> bool:
    """Spend ``points`` from the balance. Does not commit.

    Returns:
        False when the account is missing, ``points`` is not positive or
        the balance is too low; True otherwise.
    """
    account = get_account(db, email)
    if account is None or points <= 0 or account.points_balance < points:
        return False

    account.points_balance -= points
    description = f"Redeemed on order #{order_id}" if order_id else "Redeemed"
    _record(db, account, -points, "redeem", description, order_id)
    logger.info("Redeemed %d points for %s", points, email)
    return True


def grant_bonus(db: Session, email: str, points: int, description: str | None = None) -> LoyaltyAccount:
    if points <= 0:
        raise ValueError("Bonus points must be positive")
    account = get_or_create_account(db, email)
    account.points_balance += points
    account.lifetime_points += points
    account.tier = tier_for(account.lifetime_points)
    _record(db, account, points, "bonus", description or "Bonus points")
    logger.info("Granted %d bonus points to %s", points, email)
    return account


def reverse_order(db: Session, order: Order):
    """Undo an order's loyalty effects: take back the points it earned
    and return the points it redeemed. Does not commit."""
    account = get_account(db, order.email)
    if account is None:
        return

    if order.points_earned:
        taken = min(order.points_earned, account.points_balance)
        account.points_balance -= taken
        account.lifetime_points = max(0, account.lifetime_points - order.points_earned)
        _record(db, account, -taken, "expire", f"Reversed for cancelled order #{order.id}", order.id)

    if order.points_redeemed:
        account.points_balance += order.points_redeemed
        _record(db, account, order.points_redeemed, "bonus",
                f"Returned from cancelled order #{order.id}", order.id)

    account.tier = tier_for(account.lifetime_points)
    logger.info("Reversed loyalty points of order %s for %s", order.id, order.email)
