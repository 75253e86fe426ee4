import asyncio

import pytest

from parkalert.core.errors import (
    AccountNotFound,
    AlreadyRegistered,
    IdentifierNotFound,
    InvalidIdentifier,
    NotOwner,
    ProofMismatch,
    TooManyIdentifiers,
)
from parkalert.identity.codes import generate_ownership_key, generate_parking_code, hash_ownership_key, hash_plate

pytestmark = pytest.mark.asyncio


async def test_register_and_resolve(services, factory):
    owner = await factory.account()
    h, _ = await factory.vehicle(owner, plate="34 ABC 123")
    assert await services.registry.resolve_owner(h) == owner
    # lookups accept any case
    assert await services.registry.resolve_owner(h.upper()) == owner


async def test_parking_code_registration(services, factory):
    owner = await factory.account()
    code = generate_parking_code()
    proof = hash_ownership_key(generate_ownership_key())
    row = await services.registry.register(code.lower(), owner, proof)
    assert row.identifier_hash == code
    assert await services.registry.resolve_owner(code) == owner


async def test_second_account_cannot_claim(services, factory):
    a = await factory.account()
    b = await factory.account()
    h, _ = await factory.vehicle(a)
    other_proof = hash_ownership_key(generate_ownership_key())
    with pytest.raises(AlreadyRegistered):
        await services.registry.register(h, b, other_proof)
    assert await services.registry.resolve_owner(h) == a


async def test_reregistering_is_idempotent(services, factory):
    owner = await factory.account()
    h, proof = await factory.vehicle(owner)
    row = await services.registry.register(h, owner, proof)
    assert row.owner_account_id == owner
    assert len(await services.registry.list_for_owner(owner)) == 1


async def test_same_key_from_new_account_moves_ownership(services, factory):
    old = await factory.account()
    new = await factory.account()
    h, proof = await factory.vehicle(old)
    row = await services.registry.register(h, new, proof)
    assert row.owner_account_id == new
    assert await services.registry.list_for_owner(old) == []


async def test_transfer_requires_matching_proof(services, factory):
    a = await factory.account()
    b = await factory.account()
    h, proof = await factory.vehicle(a)

    with pytest.raises(ProofMismatch):
        await services.registry.transfer_ownership(h, b, hash_ownership_key(generate_ownership_key()))
    assert await services.registry.resolve_owner(h) == a

    moved = await services.registry.transfer_ownership(h, b, proof)
    assert moved.owner_account_id == b
    assert await services.registry.resolve_owner(h) == b


async def test_transfer_unknown_identifier(services, factory):
    b = await factory.account()
    with pytest.raises(IdentifierNotFound):
        await services.registry.transfer_ownership(hash_plate("NOPE 1"), b, "a" * 64)


async def test_rotate_proof(services, factory):
    a = await factory.account()
    b = await factory.account()
    h, proof = await factory.vehicle(a)
    new_proof = hash_ownership_key(generate_ownership_key())

    with pytest.raises(NotOwner):
        await services.registry.rotate_proof(h, b, proof, new_proof)
    with pytest.raises(ProofMismatch):
        await services.registry.rotate_proof(h, a, new_proof, proof)

    await services.registry.rotate_proof(h, a, proof, new_proof)
    # the old key no longer transfers
    with pytest.raises(ProofMismatch):
        await services.registry.transfer_ownership(h, b, proof)
    assert (await services.registry.transfer_ownership(h, b, new_proof)).owner_account_id == b


async def test_unregister(services, factory):
    a = await factory.account()
    b = await factory.account()
    h, _ = await factory.vehicle(a)

    with pytest.raises(NotOwner):
        await services.registry.unregister(h, b)
    await services.registry.unregister(h, a)
    with pytest.raises(IdentifierNotFound):
        await services.registry.resolve_owner(h)
    with pytest.raises(IdentifierNotFound):
        await services.registry.unregister(h, a)


async def test_identifier_limit(services, factory, settings):
    owner = await factory.account()
    for _ in range(settings.MAX_IDENTIFIERS_PER_ACCOUNT):
        await factory.vehicle(owner)
    with pytest.raises(TooManyIdentifiers) as ei:
        await factory.vehicle(owner)
    assert ei.value.extra["limit"] == settings.MAX_IDENTIFIERS_PER_ACCOUNT


async def test_rejects_bad_input(services, factory):
    owner = await factory.account()
    with pytest.raises(InvalidIdentifier):
        await services.registry.register("34ABC123", owner, "a" * 64)
    with pytest.raises(InvalidIdentifier):
        await services.registry.register(hash_plate("34ABC123"), owner, "short")
    with pytest.raises(AccountNotFound):
        await services.registry.register(hash_plate("34ABC123"), "ghost", "a" * 64)


async def test_concurrent_claims_have_one_winner(services, factory):
    a = await factory.account()
    c = await factory.account()
    h = hash_plate("35 RACE 01")
    proof_a = hash_ownership_key(generate_ownership_key())
    proof_c = hash_ownership_key(generate_ownership_key())

    results = await asyncio.gather(
        services.registry.register(h, a, proof_a),
        services.registry.register(h, c, proof_c),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1 and isinstance(losers[0], AlreadyRegistered)
    assert await services.registry.resolve_owner(h) == winners[0].owner_account_id
