import datetime
from collections import OrderedDict
from typing import Dict, Iterable, List

from models.payment import PAYMENT_DONE, Payment


def collected(payments: Iterable[Payment]) -> List[Payment]:
    """Payments that count as revenue (status 'done')."""
    return [p for p in payments if p.status == PAYMENT_DONE]


def total_revenue(payments: Iterable[Payment]) -> float:
    return sum(p.amount for p in collected(payments))


def average_payment(payments: Iterable[Payment]) -> float:
    """
    Revenue divided by the number of payments of any status.
    Returns 0 when there are no payments.
    """
    payments = list(payments)
    return total_revenue(payments) / (len(payments) or 1)


def monthly_revenue(payments: Iterable[Payment]) -> Dict[str, float]:
    """
    Collected revenue per calendar month, newest month first.

    Returns:
        Dict: 'YYYY-MM' -> total amount.
    """
    totals: Dict[str, float] = {}
    for p in collected(payments):
        if p.payment_date is None:
            continue
        key = p.payment_date.strftime("%Y-%m")
        totals[key] = totals.get(key, 0.0) + p.amount
    return OrderedDict(sorted(totals.items(), reverse=True))


def revenue_on(payments: Iterable[Payment], day: datetime.date) -> float:
    return sum(p.amount for p in collected(payments) if p.payment_date == day)
