"""attendance_etl.matching

Link canonical registrations to the group-member roster, and flag
registrations whose phone appears in the historical-attendance roster.

Member matching walks the roster in order.  Per member:

  1. keys: normalized name, phone10 (mobile number), normalized email
  2. candidates: unclaimed registrations with the same normalized name
  3. score candidates (+3 phone10, +2 email); the first highest-scoring
     candidate is accepted if its score is > 0, or if it is the only
     candidate (name-only match).  Several candidates with score 0 is a
     name collision and nothing is claimed at this step; it is counted as
     an ambiguous match only if steps 4-5 find nothing either.
  4. else: first unclaimed registration with the same phone10
  5. else: first unclaimed registration with the same email
  6. a match claims both sides; neither can be claimed again

Claim order decides outcomes, so the claim state is an explicit object
(ClaimState) that callers can build, inspect, and pass in.

The returning check is independent: a registration is returning iff its
phone10 is a key of the historical lookup.  It never consumes anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from attendance_etl.models import (
    GroupMember,
    HistoricalParticipant,
    MatchLink,
    Registration,
)
from attendance_etl.normalize import (
    normalize_email,
    normalize_name,
    normalize_phone10,
)
from attendance_etl.pipeline_config import PipelineConfig
from attendance_etl.shared import RunCounters

log = logging.getLogger(__name__)

PHONE_WEIGHT = 3
EMAIL_WEIGHT = 2

METHOD_NAME_CONFIRMED = "name_confirmed"
METHOD_NAME_ONLY = "name_only"
METHOD_PHONE = "phone"
METHOD_EMAIL = "email"


# ---------------------------------------------------------------------------
# Identity keys
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IdentityKeys:
    name: str | None
    phone10: str | None
    email: str | None


def registration_keys(reg: Registration, country_code: str = "91") -> IdentityKeys:
    return IdentityKeys(
        name=normalize_name(reg.display_name),
        phone10=normalize_phone10(reg.contact.phone, country_code),
        email=normalize_email(reg.contact.email),
    )


def member_keys(member: GroupMember, country_code: str = "91") -> IdentityKeys:
    return IdentityKeys(
        name=normalize_name(member.full_name),
        phone10=normalize_phone10(member.mobile_number, country_code),
        email=normalize_email(member.email),
    )


def score_candidate(member: IdentityKeys, candidate: IdentityKeys) -> int:
    score = 0
    if member.phone10 and member.phone10 == candidate.phone10:
        score += PHONE_WEIGHT
    if member.email and member.email == candidate.email:
        score += EMAIL_WEIGHT
    return score


# ---------------------------------------------------------------------------
# Claim state
# ---------------------------------------------------------------------------

@dataclass
class ClaimState:
    """Which members and registrations have been claimed, and the links made."""

    claimed_members: set[int] = field(default_factory=set)
    claimed_registrations: set[int] = field(default_factory=set)
    links: list[MatchLink] = field(default_factory=list)

    def is_registration_claimed(self, reg_idx: int) -> bool:
        return reg_idx in self.claimed_registrations

    def is_member_claimed(self, member_idx: int) -> bool:
        return member_idx in self.claimed_members

    def claim(self, link: MatchLink) -> None:
        if link.member_index in self.claimed_members:
            raise ValueError(f"member {link.member_index} already claimed")
        if link.registration_index in self.claimed_registrations:
            raise ValueError(f"registration {link.registration_index} already claimed")
        self.claimed_members.add(link.member_index)
        self.claimed_registrations.add(link.registration_index)
        self.links.append(link)

    def link_by_registration(self) -> dict[int, MatchLink]:
        return {link.registration_index: link for link in self.links}

    def link_by_member(self) -> dict[int, MatchLink]:
        return {link.member_index: link for link in self.links}


# ---------------------------------------------------------------------------
# Member matching
# ---------------------------------------------------------------------------

def _first_unclaimed(
    keys: list[IdentityKeys],
    state: ClaimState,
    attr: str,
    value: str,
) -> int | None:
    for idx, k in enumerate(keys):
        if state.is_registration_claimed(idx):
            continue
        if getattr(k, attr) == value:
            return idx
    return None


def _match_by_name(
    mkeys: IdentityKeys,
    keys: list[IdentityKeys],
    state: ClaimState,
) -> tuple[int | None, int, str | None]:
    """Return (registration index, score, method) for step 2–3, or (None, 0, reason)."""
    if not mkeys.name:
        return None, 0, None
    candidates = [
        idx for idx, k in enumerate(keys)
        if not state.is_registration_claimed(idx) and k.name == mkeys.name
    ]
    if not candidates:
        return None, 0, None

    best_idx = candidates[0]
    best_score = score_candidate(mkeys, keys[best_idx])
    for idx in candidates[1:]:
        score = score_candidate(mkeys, keys[idx])
        if score > best_score:
            best_idx, best_score = idx, score

    if best_score > 0:
        return best_idx, best_score, METHOD_NAME_CONFIRMED
    if len(candidates) == 1:
        return best_idx, 0, METHOD_NAME_ONLY
    return None, 0, "ambiguous"


def match_group_members(
    registrations: list[Registration],
    members: list[GroupMember],
    config: PipelineConfig | None = None,
    counters: RunCounters | None = None,
    state: ClaimState | None = None,
) -> ClaimState:
    """Claim at most one registration per member, in roster order.

    Pass a pre-populated `state` to resume or to test claim-order effects;
    already-claimed members are skipped.
    """
    config = config or PipelineConfig()
    counters = counters if counters is not None else RunCounters()
    state = state if state is not None else ClaimState()
    keys = [registration_keys(r, config.country_code) for r in registrations]

    for member_idx, member in enumerate(members):
        counters.members_read += 1
        if state.is_member_claimed(member_idx):
            continue
        mkeys = member_keys(member, config.country_code)

        reg_idx, score, method = _match_by_name(mkeys, keys, state)
        ambiguous = method == "ambiguous"
        if ambiguous:
            log.debug("member %r: name collision without phone/email", member.full_name)
            method = None

        if reg_idx is None and mkeys.phone10:
            reg_idx = _first_unclaimed(keys, state, "phone10", mkeys.phone10)
            method = METHOD_PHONE if reg_idx is not None else None
            score = PHONE_WEIGHT if reg_idx is not None else 0

        if reg_idx is None and mkeys.email:
            reg_idx = _first_unclaimed(keys, state, "email", mkeys.email)
            method = METHOD_EMAIL if reg_idx is not None else None
            score = EMAIL_WEIGHT if reg_idx is not None else 0

        if reg_idx is None:
            counters.members_unmatched += 1
            if ambiguous:
                counters.ambiguous_matches += 1
                counters.warn(f"ambiguous name match for member {member.full_name!r}; left unmatched")
            continue

        state.claim(MatchLink(
            member_index=member_idx,
            registration_index=reg_idx,
            registration_id=registrations[reg_idx].registration_id,
            group=member.group,
            method=method,
            score=score,
        ))
        counters.members_matched += 1
        if method == METHOD_NAME_CONFIRMED:
            counters.name_confirmed_matches += 1
        elif method == METHOD_NAME_ONLY:
            counters.name_only_matches += 1
        elif method == METHOD_PHONE:
            counters.phone_fallback_matches += 1
        else:
            counters.email_fallback_matches += 1

    return state


# ---------------------------------------------------------------------------
# Returning participants
# ---------------------------------------------------------------------------

def build_historical_lookup(
    participants: list[HistoricalParticipant],
    config: PipelineConfig | None = None,
    counters: RunCounters | None = None,
) -> dict[str, HistoricalParticipant]:
    """Map phone10 → first historical participant with that phone.

    Participants with no attendance years are not returning anyone.
    """
    config = config or PipelineConfig()
    lookup: dict[str, HistoricalParticipant] = {}
    for participant in participants:
        if counters is not None:
            counters.historical_read += 1
        if not participant.years:
            if counters is not None:
                counters.historical_skipped_no_years += 1
            continue
        phone10 = normalize_phone10(participant.phone, config.country_code)
        if phone10:
            lookup.setdefault(phone10, participant)
    return lookup


def flag_returning(
    registrations: list[Registration],
    lookup: dict[str, HistoricalParticipant],
    config: PipelineConfig | None = None,
    counters: RunCounters | None = None,
) -> list[bool]:
    """One flag per registration: True iff its phone10 is in the lookup."""
    config = config or PipelineConfig()
    flags: list[bool] = []
    for reg in registrations:
        phone10 = normalize_phone10(reg.contact.phone, config.country_code)
        returning = phone10 is not None and phone10 in lookup
        flags.append(returning)
        if returning and counters is not None:
            counters.returning_flagged += 1
    return flags


# ---------------------------------------------------------------------------
# Combined
# ---------------------------------------------------------------------------

@dataclass
class MatchResult:
    state: ClaimState
    returning: list[bool]

    @property
    def links(self) -> list[MatchLink]:
        return self.state.links


def reconcile(
    registrations: list[Registration],
    members: list[GroupMember],
    historical: list[HistoricalParticipant],
    config: PipelineConfig | None = None,
    counters: RunCounters | None = None,
) -> MatchResult:
    """Member matching followed by the returning check."""
    config = config or PipelineConfig()
    counters = counters if counters is not None else RunCounters()
    state = match_group_members(registrations, members, config, counters)
    lookup = build_historical_lookup(historical, config, counters)
    returning = flag_returning(registrations, lookup, config, counters)
    return MatchResult(state=state, returning=returning)
