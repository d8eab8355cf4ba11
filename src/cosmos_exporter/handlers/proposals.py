#!/usr/bin/env python3
"""
Governance proposal metrics

Lists proposals through the gov v1 or legacy v1beta1 API and exposes one sample
per proposal, labeled with its title, status and voting window, valued with the
proposal id.
"""

import base64
import json
from typing import Any, Dict, List, Tuple

from cosmos_exporter.handlers.base import DECODE_ERRORS, FetchHandler
from cosmos_exporter.monitor.scope import FetchScope


METADATA_URI_SCHEMES = ('ipfs://', 'https://', 'http://')

# Field number of `title` in cosmos.gov.v1beta1.TextProposal
TEXT_PROPOSAL_TITLE_FIELD = 1

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5


def _read_varint(raw: bytes, pos: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(raw):
            raise ValueError("truncated varint")
        byte = raw[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift > 63:
            raise ValueError("varint too long")


def _string_field(raw: bytes, wanted: int) -> str:
    """
    Read one string field of a serialized protobuf message

    Other fields, embedded messages included, are skipped by length without
    being decoded. A missing field reads as ''.
    """
    value = ''
    pos = 0
    while pos < len(raw):
        key, pos = _read_varint(raw, pos)
        field_number, wire_type = key >> 3, key & 0x7

        if wire_type == WIRE_VARINT:
            _, pos = _read_varint(raw, pos)
        elif wire_type == WIRE_FIXED64:
            pos += 8
        elif wire_type == WIRE_FIXED32:
            pos += 4
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = _read_varint(raw, pos)
            if pos + length > len(raw):
                raise ValueError("truncated field")
            if field_number == wanted:
                value = raw[pos:pos + length].decode('utf-8')
            pos += length
        else:
            raise ValueError(f"unsupported wire type {wire_type}")

    if pos > len(raw):
        raise ValueError("truncated message")
    return value


def decode_text_proposal_title(content: Any) -> str:
    """
    Extract the title from a legacy proposal's content

    The gateway renders content either as JSON ({"@type": ..., "title": ...}) or
    as a raw Any envelope ({"type_url": ..., "value": "<base64 protobuf>"}).

    Raises:
        ValueError: content is in neither form
    """
    if not isinstance(content, dict):
        raise ValueError(f"unexpected proposal content: {type(content).__name__}")

    if 'title' in content:
        return str(content['title'])

    if 'value' in content:
        raw = base64.b64decode(content['value'], validate=True)
        return _string_field(raw, TEXT_PROPOSAL_TITLE_FIELD)

    raise ValueError("proposal content has neither title nor value")


def proposal_title(proposal: Dict[str, Any]) -> Tuple[str, bool]:
    """
    Pick a display title for a gov v1 proposal

    Order: metadata JSON title, the proposal's own title, a metadata URI, then a
    placeholder.

    Returns:
        (title, metadata_parsed) where metadata_parsed is False when metadata
        was present but not JSON
    """
    proposal_id = proposal.get('id')
    metadata = proposal.get('metadata') or ''
    parsed = True

    if metadata:
        try:
            meta = json.loads(metadata)
            if isinstance(meta, dict) and meta.get('title'):
                return str(meta['title']), True
        except ValueError:
            parsed = False

    if proposal.get('title'):
        return str(proposal['title']), parsed

    if metadata.startswith(METADATA_URI_SCHEMES):
        return metadata, parsed

    if metadata:
        return f"Proposal {proposal_id} has unreadable metadata", parsed
    return f"Proposal {proposal_id} has no metadata", parsed


class ProposalsHandler(FetchHandler):
    """
    Governance proposals

    Metrics:
    - cosmos_proposals{title,status,voting_start_time,voting_end_time}: proposal id
    """

    def __init__(self, ctx, active_only: bool = False):
        super().__init__(ctx)
        self.active_only = active_only

    def register(self):
        self.namespace.register(
            "cosmos_proposals",
            "Proposals of Cosmos-based blockchain",
            ["title", "status", "voting_start_time", "voting_end_time"]
        )

    def launch(self, scope: FetchScope):
        self.register()
        if self.config.prop_v1:
            scope.spawn(self.fetch_proposals_v1(), "proposals:v1")
        else:
            scope.spawn(self.fetch_proposals_v1beta1(), "proposals:v1beta1")

    async def _list(self, version: str) -> List[Dict[str, Any]]:
        response = await self.query(
            f"{version} proposals",
            self.client.get_proposals(self.config.prop_v1, self.active_only)
        )
        if response is None:
            return []

        proposals = response.get('proposals') or []
        self.log.debug(f"Proposals info: proposalsLength={len(proposals)}")
        return proposals

    async def fetch_proposals_v1(self):
        for proposal in await self._list("v1"):
            with self.decoding(f"proposal {proposal.get('id')}"):
                title, parsed = proposal_title(proposal)
                if not parsed:
                    self.log.error(f"Could not parse proposal metadata field: proposal_id={proposal.get('id')}")
                self._emit(proposal['id'], title, proposal)

    async def fetch_proposals_v1beta1(self):
        for proposal in await self._list("v1beta1"):
            proposal_id = proposal.get('proposal_id')
            try:
                title = decode_text_proposal_title(proposal.get('content'))
            except DECODE_ERRORS as e:
                self.log.error(f"Could not parse proposal content: proposal_id={proposal_id}: {e!r}")
                title = ''

            with self.decoding(f"proposal {proposal_id}"):
                self._emit(proposal['proposal_id'], title, proposal)

    def _emit(self, proposal_id: Any, title: str, proposal: Dict[str, Any]):
        start = proposal.get('voting_start_time')
        end = proposal.get('voting_end_time')
        if not start or not end:
            start = end = "nil"

        self.namespace.set(
            "cosmos_proposals", float(proposal_id),
            title=title,
            status=proposal.get('status', ''),
            voting_start_time=start,
            voting_end_time=end
        )

    async def active_proposal_ids(self) -> List[str]:
        """
        Ids of proposals currently in their voting period

        Failures are logged and produce an empty list.
        """
        version = "v1" if self.config.prop_v1 else "v1beta1"
        response = await self.query(
            f"active proposals {version} (general)",
            self.client.get_proposals(self.config.prop_v1, active_only=True)
        )
        if response is None:
            return []

        id_field = 'id' if self.config.prop_v1 else 'proposal_id'
        ids = []
        for proposal in response.get('proposals') or []:
            with self.decoding("active proposal id"):
                ids.append(str(int(proposal[id_field])))
        return ids
