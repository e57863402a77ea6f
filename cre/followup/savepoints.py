# cre/followup/savepoints.py
from __future__ import annotations

from typing import Iterable, List, Optional

from cre.followup.objectives import SLOTS_BY_OBJECTIVE_ID
from cre.followup.schema import ClinicalFollowupObjective, FollowupSavepoint
from cre.states import OBJECTIVE_DONE_STATUSES, SavepointStatus

SAVEPOINT_BLOCKS: tuple[tuple[str, str], ...] = (
    ("core_symptom_profile", "Kern-Symptomprofil"),
    ("medical_context", "Medizinischer Kontext"),
    ("supporting_context", "Ergänzender Kontext"),
    ("program_specific", "Programmspezifische Angaben"),
)


def _same_composition(a: FollowupSavepoint, b: FollowupSavepoint) -> bool:
    return (
        a.objective_ids == b.objective_ids
        and a.completed_objective_ids == b.completed_objective_ids
        and a.open_objective_ids == b.open_objective_ids
        and a.status == b.status
    )


def build_savepoints(
    objectives: Iterable[ClinicalFollowupObjective],
    previous: Iterable[FollowupSavepoint] = (),
    now_iso: Optional[str] = None,
) -> List[FollowupSavepoint]:
    """
    One savepoint per block, in fixed order. Members are the block's active
    objectives; an empty block counts as completed. `updated_at` is carried
    over from the previous snapshot unless the composition changed.
    """
    prior = {sp.block_id: sp for sp in previous}
    active = [o for o in objectives if o.active]

    savepoints: List[FollowupSavepoint] = []
    for block_id, label in SAVEPOINT_BLOCKS:
        members = [
            o for o in active if SLOTS_BY_OBJECTIVE_ID[o.id].block_id == block_id
        ]
        completed = [o.id for o in members if o.status in OBJECTIVE_DONE_STATUSES]
        open_ids = [o.id for o in members if o.status not in OBJECTIVE_DONE_STATUSES]
        savepoint = FollowupSavepoint(
            block_id=block_id,
            label=label,
            objective_ids=[o.id for o in members],
            completed_objective_ids=completed,
            open_objective_ids=open_ids,
            status=SavepointStatus.IN_PROGRESS if open_ids else SavepointStatus.COMPLETED,
        )
        before = prior.get(block_id)
        if before is not None and _same_composition(before, savepoint):
            updated_at = before.updated_at
        else:
            updated_at = now_iso
        savepoints.append(savepoint.model_copy(update={"updated_at": updated_at}))
    return savepoints


def active_block_id(savepoints: Iterable[FollowupSavepoint]) -> Optional[str]:
    for savepoint in savepoints:
        if savepoint.status == SavepointStatus.IN_PROGRESS:
            return savepoint.block_id
    return None


def all_blocks_completed(savepoints: Iterable[FollowupSavepoint]) -> bool:
    return all(sp.status == SavepointStatus.COMPLETED for sp in savepoints)
