#!/usr/bin/env python3
"""
Validator governance votes

For each (validator, active proposal) pair, looks up the vote cast by the
validator's operator account. A missing vote is reported as NOT_VOTED.
"""

from typing import Any, Dict, List

from cosmos_exporter.clients.addresses import AddressError, validator_to_account
from cosmos_exporter.clients.lcd_client import NotFoundError, QueryError
from cosmos_exporter.handlers.base import FetchHandler
from cosmos_exporter.monitor.scope import FetchScope


NOT_VOTED = "NOT_VOTED"


def vote_options(vote: Dict[str, Any]) -> List[str]:
    """
    Options of a vote, in order

    v1 and recent v1beta1 responses carry weighted `options`; older v1beta1
    responses carry a single `option`.

    Raises:
        ValueError: the vote has no options
    """
    options = [str(item['option']) for item in vote.get('options') or []]
    if not options and vote.get('option'):
        options = [str(vote['option'])]
    if not options:
        raise ValueError("vote has no options")
    return options


class VotesHandler(FetchHandler):
    """
    Votes of configured validators on proposals in their voting period

    Metrics:
    - cosmos_validator_proposal_vote{address,proposal_id,voted,vote_option}: always 1
    """

    def register(self):
        self.namespace.register(
            "cosmos_validator_proposal_vote",
            "Vote of the validator on an active proposal",
            ["address", "proposal_id", "voted", "vote_option"]
        )

    def launch(self, scope: FetchScope, valoper: str, proposal_ids: List[str]):
        """
        Spawn one vote lookup per active proposal

        Args:
            scope: Scope the vote tasks join
            valoper: Validated operator address
            proposal_ids: Ids resolved by the active proposals barrier
        """
        self.register()
        try:
            voter = validator_to_account(valoper, self.config.prefixes)
        except AddressError as e:
            self.log.error(f"Could not get account address for {valoper}: {e}")
            return

        for proposal_id in proposal_ids:
            scope.spawn(self.fetch_vote(valoper, voter, proposal_id), f"vote:{valoper}:{proposal_id}")

    async def fetch_vote(self, valoper: str, voter: str, proposal_id: str):
        what = f"vote of {voter} on proposal {proposal_id}"
        self.log.debug(f"Started querying {what}")

        try:
            response = await self.client.get_vote(self.config.prop_v1, proposal_id, voter)
        except NotFoundError:
            self._emit(valoper, proposal_id, "no", NOT_VOTED)
            return
        except QueryError as e:
            # Some gateways answer a missing vote with a generic error status
            if "not found" in str(e).lower():
                self._emit(valoper, proposal_id, "no", NOT_VOTED)
                return
            self.log.error(f"Could not get {what}: {e}")
            return

        self.log.debug(f"Finished querying {what}")

        with self.decoding(what):
            options = vote_options(response['vote'])
            self._emit(valoper, proposal_id, "yes", ",".join(options))

    def _emit(self, valoper: str, proposal_id: str, voted: str, vote_option: str):
        self.namespace.set(
            "cosmos_validator_proposal_vote", 1,
            address=valoper, proposal_id=proposal_id, voted=voted, vote_option=vote_option
        )
