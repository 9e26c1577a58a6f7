"""Partition, count and rank result slots. Every function here is pure."""

from typing import Iterable

from models import BatchCounts, QCStatus, ResultSlot, SlotState


_STATUS_RANK = {
    QCStatus.RECOMMENDED: 0,
    QCStatus.USABLE: 1,
    QCStatus.NOT_RECOMMENDED: 2,
}


def _not_recommended(slot: ResultSlot) -> bool:
    return slot.qc is not None and slot.qc.status == QCStatus.NOT_RECOMMENDED


def kept(slots: Iterable[ResultSlot]) -> list[ResultSlot]:
    """Succeeded slots whose image QC did not reject, in input order."""
    return [
        slot for slot in slots
        if slot.state == SlotState.SUCCEEDED and not _not_recommended(slot)
    ]


def rejected(slots: Iterable[ResultSlot]) -> list[ResultSlot]:
    """Failed slots plus succeeded slots rated NOT_RECOMMENDED, in input order."""
    return [
        slot for slot in slots
        if slot.state == SlotState.FAILED
        or (slot.state == SlotState.SUCCEEDED and _not_recommended(slot))
    ]


def pending(slots: Iterable[ResultSlot]) -> list[ResultSlot]:
    """Slots still in flight; neither kept nor rejected."""
    return [slot for slot in slots if not slot.is_terminal]


def counts(slots: Iterable[ResultSlot]) -> BatchCounts:
    """Total, valid (billable) and discarded counts."""
    slots = list(slots)
    return BatchCounts(
        total=len(slots),
        valid=len(kept(slots)),
        discarded=len(rejected(slots)),
    )


def _rank_key(slot: ResultSlot) -> tuple:
    if slot.qc is None:
        return (1, 0, 0)
    return (0, _STATUS_RANK[slot.qc.status], -slot.qc.score)


def ranked(slots: Iterable[ResultSlot]) -> list[ResultSlot]:
    """Kept slots, best first.

    Ordered by QC status then score descending. Unscored slots follow the
    scored ones in their original order.
    """
    return sorted(kept(slots), key=_rank_key)
