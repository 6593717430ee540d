"""
Scoring Engine - confidence of a (bank transaction, ledger record) pair.

Composite score = weighted sum of four independent signals:
1. Amount (exact within epsilon, linear decay to the tolerance edge)
2. Client name (significant-token overlap with the bank label)
3. Date (linear decay to the window edge)
4. Reference (ledger reference code found in the label or bank reference)

Weights sum to 1.0, so the composite is in [0, 1].
"""

from typing import Iterable, List, Optional

import structlog

from ..config import Settings, get_settings
from ..models import (
    BankTransaction,
    LedgerRecord,
    MatchReason,
    MatchSuggestion,
    ScoreBreakdown,
)
from ..utils.text_similarity import TokenOverlapMatcher, contains_reference

logger = structlog.get_logger()

# Highest score a pair can get without every signal at full strength
_BELOW_PERFECT = 0.999999


class ScoringEngine:
    """
    Scores candidate pairs and ranks them into suggestions.

    Every contribution is deterministic: identical inputs give identical
    scores and orderings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        matcher: Optional[TokenOverlapMatcher] = None,
    ):
        self.settings = settings or get_settings()
        self.matcher = matcher or TokenOverlapMatcher(self.settings)

    def score(self, transaction: BankTransaction, record: LedgerRecord) -> ScoreBreakdown:
        s = self.settings
        breakdown = ScoreBreakdown()

        # Amount
        target = transaction.absolute_cents
        diff = abs(target - record.amount_cents)
        band = s.amount_band_cents(target)
        breakdown.amount_difference_cents = diff
        amount_full = diff <= s.amount_epsilon_cents
        if amount_full:
            breakdown.amount_score = s.weight_amount
            breakdown.reasons.append(MatchReason.EXACT_AMOUNT.value)
        elif diff <= band:
            # band > epsilon here, since epsilon < diff <= band
            fraction = (band - diff) / (band - s.amount_epsilon_cents)
            breakdown.amount_score = s.weight_amount * fraction
            breakdown.reasons.append(MatchReason.AMOUNT_WITHIN_TOLERANCE.value)

        # Date
        days_apart = abs((record.date - transaction.transaction_date).days)
        breakdown.days_apart = days_apart
        if days_apart < s.date_window_days:
            breakdown.date_score = s.weight_date * (1 - days_apart / s.date_window_days)
        if days_apart == 0:
            breakdown.reasons.append(MatchReason.SAME_DAY.value)
        elif days_apart <= s.close_date_days:
            breakdown.reasons.append(MatchReason.DATE_PROXIMITY.value)

        # Reference
        reference_hit = contains_reference(
            record.reference_code,
            transaction.label,
            transaction.bank_reference,
            min_length=s.min_reference_length,
        )
        if reference_hit:
            breakdown.reference_score = s.weight_reference
            breakdown.reasons.append(MatchReason.REFERENCE_MATCH.value)

        # Client name
        overlap = self.matcher.overlap(record.client_name, transaction.label)
        if overlap.matched_tokens:
            breakdown.client_name_score = s.weight_client_name * overlap.ratio
            breakdown.matched_name_tokens = overlap.matched_tokens
            breakdown.reasons.append(MatchReason.CLIENT_NAME_MATCH.value)

        total = (
            breakdown.amount_score
            + breakdown.date_score
            + breakdown.reference_score
            + breakdown.client_name_score
        )
        value = min(max(round(total, 6), 0.0), 1.0)

        perfect = (
            amount_full
            and days_apart == 0
            and reference_hit
            and overlap.ratio == 1.0
        )
        if value >= 1.0 and not perfect:
            value = _BELOW_PERFECT

        breakdown.value = value
        return breakdown

    def rank(
        self,
        transaction: BankTransaction,
        records: Iterable[LedgerRecord],
        limit: Optional[int] = None,
    ) -> List[MatchSuggestion]:
        """
        Score records against a transaction and sort them.

        Zero-score records are dropped. Order: score desc, nearer date,
        smaller ledger id.
        """
        suggestions = []
        for record in records:
            breakdown = self.score(transaction, record)
            if breakdown.value <= 0:
                continue
            suggestions.append(
                MatchSuggestion(
                    ledger_id=record.id,
                    kind=record.kind,
                    client_name=record.client_name,
                    amount_cents=record.amount_cents,
                    date=record.date,
                    score=breakdown.value,
                    reasons=breakdown.reasons,
                    days_apart=breakdown.days_apart,
                    amount_difference_cents=breakdown.amount_difference_cents,
                )
            )

        suggestions.sort(key=lambda m: (-m.score, m.days_apart, m.ledger_id))
        if limit is not None:
            suggestions = suggestions[:limit]
        return suggestions
