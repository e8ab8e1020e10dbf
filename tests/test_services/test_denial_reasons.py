from datetime import date

import pytest

from claimchaser.exceptions import ClaimNotFoundError, DenialReasonNotFoundError, ValidationError
from claimchaser.schemas.claim import (
    DenialReasonRecord,
    DenialReasonsAdd,
    DenialReasonStatus,
    DenialReasonUpdate,
)
from claimchaser.services import denial_reasons


def _record(**fields):
    return DenialReasonRecord(id="r1", claim_id="c1", denial_reason="Not covered", **fields)


@pytest.mark.parametrize(
    ("current", "update", "expected"),
    [
        ({}, {"date_accepted": "2024-03-01"}, DenialReasonStatus.ACCEPTED),
        ({}, {"date_reason_resubmitted": "2024-02-01"}, DenialReasonStatus.RESUBMITTED),
        (
            {"date_reason_resubmitted": date(2024, 2, 1)},
            {"date_accepted": "2024-03-01"},
            DenialReasonStatus.ACCEPTED,
        ),
        ({"date_accepted": date(2024, 3, 1)}, {"status": "Pending"}, DenialReasonStatus.ACCEPTED),
        ({}, {"status": "Resubmitted"}, DenialReasonStatus.RESUBMITTED),
        (
            {"date_reason_resubmitted": date(2024, 2, 1), "status": DenialReasonStatus.RESUBMITTED},
            {"date_reason_resubmitted": None},
            DenialReasonStatus.PENDING,
        ),
        ({}, {"denial_reason": "Edited"}, None),
    ],
)
def test_resolve_status(current, update, expected):
    result = denial_reasons.resolve_status(_record(**current), DenialReasonUpdate(**update))

    assert result == expected


def test_invalid_status_rejected_even_when_dates_force_one():
    with pytest.raises(ValidationError):
        denial_reasons.resolve_status(
            _record(), DenialReasonUpdate(status="Rejected", date_accepted="2024-03-01")
        )


async def test_update_writes_dates_and_forced_status(store):
    claim_id = store.add_claim()
    reason_id = store.add_denial_reason(claim_id, "Missing modifier")

    updated = await denial_reasons.update_denial_reason(
        store, reason_id, DenialReasonUpdate(date_reason_resubmitted="2024-02-01")
    )

    assert updated.status == DenialReasonStatus.RESUBMITTED
    assert store.denial_reasons[reason_id]["date_reason_resubmitted"] == "2024-02-01"
    assert store.denial_reasons[reason_id]["status"] == "Resubmitted"


async def test_update_text_leaves_status_alone(store):
    reason_id = store.add_denial_reason(store.add_claim(), "Old text", status="Resubmitted")

    updated = await denial_reasons.update_denial_reason(
        store, reason_id, DenialReasonUpdate(denial_reason="New text")
    )

    assert updated.denial_reason == "New text"
    assert updated.status == DenialReasonStatus.RESUBMITTED


async def test_update_empty_body(store):
    reason_id = store.add_denial_reason(store.add_claim(), "Old text")

    with pytest.raises(ValidationError):
        await denial_reasons.update_denial_reason(store, reason_id, DenialReasonUpdate())


async def test_update_unknown_reason(store):
    with pytest.raises(DenialReasonNotFoundError):
        await denial_reasons.update_denial_reason(store, "missing", DenialReasonUpdate(status="Pending"))


async def test_delete(store):
    reason_id = store.add_denial_reason(store.add_claim(), "Duplicate")

    await denial_reasons.delete_denial_reason(store, reason_id)

    assert reason_id not in store.denial_reasons
    with pytest.raises(DenialReasonNotFoundError):
        await denial_reasons.delete_denial_reason(store, reason_id)


async def test_list_for_claim(store):
    claim_id = store.add_claim()
    store.add_denial_reason(claim_id, "One")
    store.add_denial_reason(store.add_claim(), "Other claim")

    reasons = await denial_reasons.list_for_claim(store, claim_id)

    assert [r.denial_reason for r in reasons] == ["One"]
    with pytest.raises(ClaimNotFoundError):
        await denial_reasons.list_for_claim(store, "missing")


class TestAddReasons:
    async def test_lines_and_joined_reasons_become_rows(self, store):
        claim_id = store.add_claim(claim_status="Denied")

        result = await denial_reasons.add_reasons(
            store,
            claim_id,
            DenialReasonsAdd(denial_reason="Yeah, duplicate claim submission\nthe modifier was wrong, and no referral on file"),
        )

        assert [r.denial_reason for r in result.inserted] == [
            "duplicate claim submission",
            "the modifier was wrong",
            "no referral on file",
        ]
        assert all(r.status == DenialReasonStatus.PENDING for r in result.inserted)
        assert result.claim_status_changed is True
        assert store.claim(claim_id).claim_status == "Pending Resubmission"

    async def test_existing_reasons_are_skipped(self, store):
        claim_id = store.add_claim(claim_status="Pending")
        store.add_denial_reason(claim_id, "Duplicate claim submission")

        result = await denial_reasons.add_reasons(
            store,
            claim_id,
            DenialReasonsAdd(denial_reason="duplicate claim submission, and timely filing exceeded"),
        )

        assert [r.denial_reason for r in result.inserted] == ["timely filing exceeded"]
        assert result.claim_status_changed is False
        assert store.claim(claim_id).claim_status == "Pending"

    @pytest.mark.parametrize("text", ["", "   ", "Why was it denied?", "short"])
    async def test_unusable_text_rejected(self, store, text):
        claim_id = store.add_claim()

        with pytest.raises(ValidationError):
            await denial_reasons.add_reasons(store, claim_id, DenialReasonsAdd(denial_reason=text))

        assert store.reasons_for(claim_id) == []

    async def test_all_duplicates_rejected_without_touching_claim(self, store):
        claim_id = store.add_claim()
        store.add_denial_reason(claim_id, "Missing prior authorization")

        with pytest.raises(ValidationError, match="already exist"):
            await denial_reasons.add_reasons(
                store,
                claim_id,
                DenialReasonsAdd(denial_reason="Missing prior authorization", next_steps="Call back"),
            )

        assert store.claim_updates == []

    async def test_unknown_claim(self, store):
        with pytest.raises(ClaimNotFoundError):
            await denial_reasons.add_reasons(
                store, "missing", DenialReasonsAdd(denial_reason="Timely filing limit exceeded")
            )
