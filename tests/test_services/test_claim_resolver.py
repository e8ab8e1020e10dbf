from datetime import timedelta

from claimchaser.services.claim_resolver import ClaimResolver
from claimchaser.utils import utcnow


async def test_own_claim_id_is_used(store):
    claim_id = store.add_claim()
    call = store.add_call(claim_id=claim_id)

    assert await ClaimResolver(store).resolve(call) == claim_id
    assert store.call_updates == []


async def test_window_match_preferred_over_out_of_window(store):
    started = utcnow() - timedelta(minutes=5)
    provider_id = store.add_provider("+15551234567")
    claim_a = store.add_claim(provider_id=provider_id, called_at=started - timedelta(minutes=30))
    # B is newer by created_at but was called well outside the window
    store.add_claim(provider_id=provider_id, called_at=started - timedelta(hours=3))
    call = store.add_call(to_number="+15551234567", started_at=started)

    resolved = await ClaimResolver(store, match_window_hours=2).resolve(call)

    assert resolved == claim_a
    assert store.call(call.id).claim_id == claim_a


async def test_phone_without_plus_matches(store):
    started = utcnow()
    provider_id = store.add_provider("15551234567")
    claim_id = store.add_claim(provider_id=provider_id, called_at=started)
    call = store.add_call(to_number="+15551234567", started_at=started)

    assert await ClaimResolver(store).resolve(call) == claim_id


async def test_falls_back_to_latest_claim_for_phone(store):
    provider_id = store.add_provider("+15551234567")
    store.add_claim(provider_id=provider_id)
    newest = store.add_claim(provider_id=provider_id)
    call = store.add_call(to_number="+15551234567")

    assert await ClaimResolver(store).resolve(call) == newest


async def test_unresolved_returns_none_without_writes(store):
    store.add_claim(provider_id=store.add_provider("+15550000000"))
    call = store.add_call(to_number="+15551234567")

    assert await ClaimResolver(store).resolve(call) is None
    assert store.call_updates == []


async def test_locate_call_falls_back_to_conversation(store):
    call = store.add_call(conversation_id="conv_1")
    resolver = ClaimResolver(store)

    assert (await resolver.locate_call("missing-id", "conv_1")).id == call.id
    assert await resolver.locate_call("missing-id", None) is None
