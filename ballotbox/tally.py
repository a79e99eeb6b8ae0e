# ballotbox/tally.py
import logging
from collections import Counter
from typing import List

from ballotbox.schemas import (
    AuditReport,
    CandidateStatistic,
    CandidateStats,
    TallyDrift,
    VoterDrift,
    VoterStats,
    VotingStatistics,
)

logger = logging.getLogger(__name__)


def format_rate(part: int, whole: int) -> str:
    """part / whole as a percentage with two decimals, "0.00" when whole is 0."""
    if whole <= 0:
        return "0.00"
    return f"{part / whole * 100:.2f}"


class TallyService:
    """
    Read-only aggregates over the registry and the ledger.
    Every method reads inside one transaction so it sees a single snapshot.
    """

    def __init__(self, store):
        self.store = store

    def statistics(self) -> VotingStatistics:
        """
        Global and per-candidate figures.

        Per-candidate counts come from the ledger; the candidate's stored
        vote_count is only compared against it. Candidates are ordered by
        votes descending, then by id.
        """
        logger.info("Computing voting statistics")

        def _collect(tx):
            return tx.list_voters(), tx.list_candidates(), tx.list_votes()

        voters, candidates, votes = self.store.with_transaction(_collect)

        counted = Counter(vote.candidate_id for vote in votes)
        total_votes = len(votes)
        total_voters = len(voters)
        voters_who_voted = sum(1 for voter in voters if voter.has_voted)

        per_candidate = []
        for candidate in candidates:
            count = counted.get(candidate.id, 0)
            if count != candidate.vote_count:
                logger.warning(
                    f"Tally drift for candidate {candidate.id}: "
                    f"stored {candidate.vote_count}, ledger {count}"
                )
            per_candidate.append(
                CandidateStatistic(
                    candidate_id=candidate.id,
                    candidate_name=candidate.name,
                    party=candidate.party,
                    vote_count=count,
                    percentage=format_rate(count, total_votes),
                )
            )
        per_candidate.sort(key=lambda c: (-c.vote_count, c.candidate_id))

        statistics = VotingStatistics(
            total_votes=total_votes,
            total_voters=total_voters,
            voters_who_voted=voters_who_voted,
            participation_rate=format_rate(voters_who_voted, total_voters),
            per_candidate=per_candidate,
        )
        logger.info(
            f"Statistics computed: total_votes={total_votes} "
            f"participation_rate={statistics.participation_rate}"
        )
        return statistics

    def ranking(self, limit: int = 10) -> List[CandidateStatistic]:
        return self.statistics().per_candidate[:limit]

    def voter_stats(self) -> VoterStats:
        voters = self.store.with_transaction(lambda tx: tx.list_voters())
        total = len(voters)
        voted = sum(1 for voter in voters if voter.has_voted)
        return VoterStats(
            total=total,
            voted=voted,
            pending=total - voted,
            participation_rate=format_rate(voted, total),
        )

    def candidate_stats(self) -> CandidateStats:
        candidates = self.store.with_transaction(lambda tx: tx.list_candidates())
        total = len(candidates)
        with_votes = sum(1 for c in candidates if c.vote_count > 0)
        total_votes = sum(c.vote_count for c in candidates)
        average = f"{total_votes / total:.2f}" if total else "0.00"
        return CandidateStats(
            total=total,
            with_votes=with_votes,
            without_votes=total - with_votes,
            total_votes=total_votes,
            average_votes=average,
        )

    def audit(self) -> AuditReport:
        """
        Check the stored state against the three consistency rules:
        one vote per voter, tallies equal to ledger counts, has_voted
        equal to having a vote. Reports only, never repairs.
        """

        def _collect(tx):
            return tx.list_voters(), tx.list_candidates(), tx.list_votes()

        voters, candidates, votes = self.store.with_transaction(_collect)

        per_voter = Counter(vote.voter_id for vote in votes)
        duplicates = sorted(voter_id for voter_id, n in per_voter.items() if n > 1)

        counted = Counter(vote.candidate_id for vote in votes)
        tally_drift = [
            TallyDrift(candidate_id=c.id, recorded=c.vote_count, counted=counted.get(c.id, 0))
            for c in candidates
            if c.vote_count != counted.get(c.id, 0)
        ]

        voter_drift = [
            VoterDrift(voter_id=v.id, has_voted=v.has_voted, has_vote=v.id in per_voter)
            for v in voters
            if v.has_voted != (v.id in per_voter)
        ]

        voter_ids = {v.id for v in voters}
        candidate_ids = {c.id for c in candidates}
        orphans = sorted(
            vote.id for vote in votes
            if vote.voter_id not in voter_ids or vote.candidate_id not in candidate_ids
        )

        report = AuditReport(
            consistent=not (duplicates or tally_drift or voter_drift or orphans),
            total_votes=len(votes),
            duplicate_voter_ids=duplicates,
            tally_drift=tally_drift,
            voter_drift=voter_drift,
            orphan_vote_ids=orphans,
        )
        if report.consistent:
            logger.info(f"Audit passed over {len(votes)} votes")
        else:
            logger.error(
                f"Audit found inconsistencies: duplicates={len(duplicates)} "
                f"tally_drift={len(tally_drift)} voter_drift={len(voter_drift)} orphans={len(orphans)}"
            )
        return report
