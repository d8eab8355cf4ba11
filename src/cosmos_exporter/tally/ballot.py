#!/usr/bin/env python3
"""
Exchange-rate ballot tally

Pure functions over validator-submitted oracle votes for one denom: total power,
cross-rate conversion, power-weighted median, spread around the median, and the
per-voter reward claims derived from one tally pass. No I/O.
"""

import math
from dataclasses import dataclass, field, replace
from decimal import Context, Decimal
from typing import Dict, Iterable, Iterator, List, Mapping


ZERO = Decimal(0)

# Working precision for the variance accumulation
VARIANCE_PRECISION = 50


class UnsortedBallotError(AssertionError):
    """Median requested on a ballot that is not sorted by exchange rate"""


@dataclass(frozen=True)
class VoteForTally:
    """One validator's exchange-rate submission (rate 0 and power 0 is an abstention)"""
    denom: str
    exchange_rate: Decimal
    voter: str
    power: int

    @property
    def is_abstain(self) -> bool:
        return self.exchange_rate <= ZERO


@dataclass
class Claim:
    """Reward eligibility of one voter, accumulated over tally passes"""
    power: int
    weight: int = 0
    win_count: int = 0
    did_vote: bool = False
    recipient: str = ""


@dataclass
class ExchangeRateBallot:
    """
    Ordered votes for one denom

    Ordering by ascending exchange rate is a precondition of the median; use
    sorted() or weighted_median() (which sorts a copy) when in doubt.
    """
    votes: List[VoteForTally] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.votes)

    def __iter__(self) -> Iterator[VoteForTally]:
        return iter(self.votes)

    def power(self) -> int:
        """Total voting power in the ballot"""
        return sum(vote.power for vote in self.votes)

    def to_map(self) -> Dict[str, Decimal]:
        """Voter -> exchange rate, for voters that did not abstain"""
        return {vote.voter: vote.exchange_rate for vote in self.votes if vote.exchange_rate > ZERO}

    def to_cross_rate(self, bases: Mapping[str, Decimal]) -> 'ExchangeRateBallot':
        """
        Express every vote against the voter's reference rate (base / rate)

        A voter without a reference rate, or with a non-positive rate, becomes
        an abstention (rate 0, power 0). The ballot length is preserved.
        """
        crossed = []
        for vote in self.votes:
            base = bases.get(vote.voter)
            if base is not None and vote.exchange_rate > ZERO:
                crossed.append(replace(vote, exchange_rate=base / vote.exchange_rate))
            else:
                crossed.append(replace(vote, exchange_rate=ZERO, power=0))
        return ExchangeRateBallot(crossed)

    def to_cross_rate_with_sort(self, bases: Mapping[str, Decimal]) -> 'ExchangeRateBallot':
        return self.to_cross_rate(bases).sorted()

    def sorted(self) -> 'ExchangeRateBallot':
        return ExchangeRateBallot(sorted(self.votes, key=lambda vote: vote.exchange_rate))

    def is_sorted(self) -> bool:
        return all(a.exchange_rate <= b.exchange_rate for a, b in zip(self.votes, self.votes[1:]))

    def weighted_median(self) -> Decimal:
        """Power-weighted median of a sorted copy of the ballot (0 when empty)"""
        return self.sorted()._pivot()

    def weighted_median_with_assertion(self) -> Decimal:
        """
        Power-weighted median of a ballot the caller promises is sorted

        Raises:
            UnsortedBallotError: the ballot is not sorted by exchange rate
        """
        if not self.is_sorted():
            raise UnsortedBallotError("ballot must be sorted")
        return self._pivot()

    def _pivot(self) -> Decimal:
        # Rate of the first vote at which cumulative power reaches half the total
        total = self.power()
        cumulative = 0
        for vote in self.votes:
            cumulative += vote.power
            if cumulative >= total // 2:
                return vote.exchange_rate
        return ZERO

    def standard_deviation(self, median: Decimal) -> Decimal:
        """
        Population standard deviation of (rate - median), unweighted

        Edge values that overflow or fail to convert yield 0.
        """
        if not self.votes:
            return ZERO

        context = Context(prec=VARIANCE_PRECISION, traps=[])
        total = ZERO
        for vote in self.votes:
            deviation = context.subtract(vote.exchange_rate, median)
            total = context.add(total, context.multiply(deviation, deviation))

        variance = context.divide(total, Decimal(len(self.votes)))
        if not variance.is_finite():
            return ZERO

        std = math.sqrt(float(variance))
        if not math.isfinite(std):
            return ZERO
        return Decimal(f"{std:f}")


def organize_ballots(votes: Iterable[VoteForTally]) -> Dict[str, ExchangeRateBallot]:
    """Group votes by denom, keeping submission order within each ballot"""
    ballots: Dict[str, ExchangeRateBallot] = {}
    for vote in votes:
        ballots.setdefault(vote.denom, ExchangeRateBallot()).votes.append(vote)
    return ballots


def new_claims(powers: Mapping[str, int]) -> Dict[str, Claim]:
    """Fresh claim per validator from its voting power"""
    return {voter: Claim(power=power, recipient=voter) for voter, power in powers.items()}


def tally(ballot: ExchangeRateBallot, reward_band: Decimal, claims: Dict[str, Claim]) -> Decimal:
    """
    Tally one ballot and update the claims of its voters

    Voters whose rate falls within the reward spread around the weighted median
    gain their power as weight and one win. The spread is half the reward band
    applied to the median, or the standard deviation when that is larger.

    Args:
        ballot: Votes for one denom
        reward_band: Relative width of the reward band
        claims: Voter -> claim, updated in place

    Returns:
        The weighted median
    """
    ordered = ballot.sorted()
    median = ordered.weighted_median_with_assertion()
    deviation = ordered.standard_deviation(median)

    spread = median * reward_band / 2
    if deviation > spread:
        spread = deviation

    for vote in ordered:
        claim = claims.get(vote.voter)
        if claim is None:
            continue

        if not vote.is_abstain:
            claim.did_vote = True

        if median - spread <= vote.exchange_rate <= median + spread:
            claim.weight += vote.power
            claim.win_count += 1

    return median
