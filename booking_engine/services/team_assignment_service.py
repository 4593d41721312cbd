# booking_engine/services/team_assignment_service.py
from dataclasses import dataclass
from datetime import datetime
from typing import List, Mapping, Optional, Sequence, Tuple

from booking_engine.errors import NoTeamMemberAvailable, SlotNoLongerAvailable
from booking_engine.models.event_type import SchedulingType
from booking_engine.services.conflict_service import is_slot_available
from booking_engine.services.interval_service import BusyTime, TimeSlot


@dataclass(frozen=True)
class MemberCandidate:
    member_id: int
    user_id: int
    priority: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class AssignmentResult:
    # Round-robin only; None for collective / managed / solo
    selected_member_id: Optional[int]
    participant_member_ids: Tuple[int, ...] = ()


def order_members(members: Sequence[MemberCandidate]) -> List[MemberCandidate]:
    """Active members by priority; sorted() is stable so list order breaks ties."""
    return sorted((m for m in members if m.is_active), key=lambda m: m.priority)


def resolve_team_assignment(
    policy: SchedulingType,
    members: Sequence[MemberCandidate],
    per_member_busy: Mapping[int, Sequence[BusyTime]],
    slot: TimeSlot,
    last_assigned_member_id: Optional[int] = None,
    buffer_before: int = 0,
    buffer_after: int = 0,
    minimum_notice: int = 0,
    now: Optional[datetime] = None,
) -> AssignmentResult:
    """
    Decide who takes `slot` for a team event.

    `per_member_busy` maps member_id -> merged busy set (calendar + that
    member's bookings). This function never touches rotation state; the
    caller persists the returned selection.

    ROUND_ROBIN:
      start right after `last_assigned_member_id` (or at the first member
      if it is unknown), wrap around once, first free member wins.
    COLLECTIVE:
      every active member must be free.
    MANAGED / NONE:
      nothing to check, nobody selected.
    """
    policy = SchedulingType(policy)

    if policy in (SchedulingType.MANAGED, SchedulingType.NONE):
        return AssignmentResult(selected_member_id=None)

    ordered = order_members(members)
    if not ordered:
        raise NoTeamMemberAvailable("This event has no active team members.")

    def is_free(member: MemberCandidate) -> bool:
        return is_slot_available(
            slot,
            per_member_busy.get(member.member_id, ()),
            buffer_before,
            buffer_after,
            minimum_notice,
            now,
        )

    if policy == SchedulingType.COLLECTIVE:
        for member in ordered:
            if not is_free(member):
                raise SlotNoLongerAvailable(
                    "This time slot is no longer available for all team members.",
                    member_id=member.member_id,
                )
        return AssignmentResult(
            selected_member_id=None,
            participant_member_ids=tuple(m.member_id for m in ordered),
        )

    ids = [m.member_id for m in ordered]
    start_index = ids.index(last_assigned_member_id) + 1 if last_assigned_member_id in ids else 0

    for i in range(len(ordered)):
        member = ordered[(start_index + i) % len(ordered)]
        if is_free(member):
            return AssignmentResult(
                selected_member_id=member.member_id,
                participant_member_ids=(member.member_id,),
            )

    raise NoTeamMemberAvailable("No team members are available at this time.")
