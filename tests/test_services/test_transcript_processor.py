from datetime import timedelta

import pytest
from httpx import Response

from claimchaser.exceptions import CallNotFoundError, TranscriptNotReadyError
from claimchaser.services.claim_resolver import ClaimResolver
from claimchaser.services.transcript_processor import TranscriptProcessor
from claimchaser.utils import utcnow
from fakes import conversation_payload

DENIAL_TURNS = [
    {"role": "agent", "message": "Why was the claim denied?"},
    {"role": "user", "message": "It was denied because the prior authorization was missing."},
    {"role": "user", "message": "To fix it you need to submit the authorization number."},
]


@pytest.fixture
def processor(store, voice):
    return TranscriptProcessor(store, voice, ClaimResolver(store), retry_delay_seconds=0)


async def test_process_updates_call_and_claim(store, processor, provider_api):
    claim_id = store.add_claim(claim_status="Denied")
    call = store.add_call(claim_id=claim_id, conversation_id="conv_1", status="in_progress")
    provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("done", DENIAL_TURNS))
    )

    result = await processor.process("conv_1")

    updated = store.call(call.id)
    assert updated.status.value == "completed"
    assert updated.ended_at is not None
    assert updated.extracted_data == {
        "denial_reasons": ["the prior authorization was missing"],
        "next_steps": "To fix it you need to submit the authorization number.",
    }
    assert updated.transcript["status"] == "done"

    assert result.claim_id == claim_id
    assert result.claim_status_changed is True
    claim = store.claim(claim_id)
    assert claim.claim_status == "Pending Resubmission"
    assert claim.next_steps == "To fix it you need to submit the authorization number."
    [reason] = store.reasons_for(claim_id)
    assert reason["denial_reason"] == "the prior authorization was missing"
    assert reason["status"] == "Pending"


async def test_completed_call_keeps_original_ended_at(store, processor, provider_api):
    ended = (utcnow() - timedelta(minutes=3)).isoformat()
    claim_id = store.add_claim()
    call = store.add_call(claim_id=claim_id, conversation_id="conv_1", status="completed", ended_at=ended)
    provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("done", DENIAL_TURNS))
    )

    await processor.process(call_id=call.id)

    assert store.calls[call.id]["ended_at"] == ended
    for _, updates in store.call_updates:
        assert "conversation_id" not in updates
        assert "ended_at" not in updates


async def test_duplicate_reasons_are_not_inserted(store, processor, provider_api):
    claim_id = store.add_claim(claim_status="Denied")
    store.add_denial_reason(claim_id, "Not covered.")
    store.add_call(claim_id=claim_id, conversation_id="conv_1")
    provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("done", [
            {"role": "user", "message": "Not covered."},
            {"role": "user", "message": "  NOT COVERED  "},
        ]))
    )

    result = await processor.process("conv_1")

    assert len(store.reasons_for(claim_id)) == 1
    assert result.inserted_reasons == []
    # No new reason, so a Denied claim stays Denied
    assert store.claim(claim_id).claim_status == "Denied"


async def test_retry_once_then_not_ready(store, processor, provider_api):
    store.add_call(conversation_id="conv_1")
    route = provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("processing", []))
    )

    with pytest.raises(TranscriptNotReadyError):
        await processor.process("conv_1")

    assert route.call_count == 2


async def test_retry_succeeds_on_second_fetch(store, processor, provider_api):
    claim_id = store.add_claim()
    store.add_call(claim_id=claim_id, conversation_id="conv_1")
    provider_api.get("/convai/conversations/conv_1").side_effect = [
        Response(200, json=conversation_payload("done", [])),
        Response(200, json=conversation_payload("done", DENIAL_TURNS)),
    ]

    result = await processor.process("conv_1")

    assert result.extracted_data.denial_reasons == ["the prior authorization was missing"]


async def test_unknown_call_id(processor):
    with pytest.raises(CallNotFoundError):
        await processor.process(call_id="nope")


async def test_unresolved_claim_still_persists_call(store, processor, provider_api):
    call = store.add_call(conversation_id="conv_1", to_number="+15559999999")
    provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("done", DENIAL_TURNS))
    )

    result = await processor.process("conv_1")

    assert result.claim_id is None
    assert store.call(call.id).extracted_data["denial_reasons"] == ["the prior authorization was missing"]
    assert store.claim_updates == []


async def test_resolved_claim_id_is_persisted_on_call(store, processor, provider_api):
    started = utcnow() - timedelta(minutes=10)
    claim_id = store.add_claim(provider_id=store.add_provider("+15551234567"), called_at=started)
    call = store.add_call(conversation_id="conv_1", to_number="+15551234567", started_at=started)
    provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("done", DENIAL_TURNS))
    )

    result = await processor.process("conv_1")

    assert result.claim_id == claim_id
    assert store.call(call.id).claim_id == claim_id


async def test_reprocessing_is_idempotent(store, processor, provider_api):
    claim_id = store.add_claim(claim_status="Denied")
    store.add_call(claim_id=claim_id, conversation_id="conv_1")
    provider_api.get("/convai/conversations/conv_1").mock(
        return_value=Response(200, json=conversation_payload("done", DENIAL_TURNS))
    )

    await processor.process("conv_1")
    store.claim_updates.clear()
    second = await processor.process("conv_1")

    assert len(store.reasons_for(claim_id)) == 1
    assert second.inserted_reasons == []
    assert second.claim_status_changed is False
    assert all("claim_status" not in updates for _, updates in store.claim_updates)
