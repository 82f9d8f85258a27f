import pytest


@pytest.mark.asyncio
async def test_membership_lookups(store, directory, users):
    convo = await store.create_conversation([users["x"], users["y"]])

    assert await directory.is_participant(convo.id, users["x"])
    assert not await directory.is_participant(convo.id, users["z"])
    assert not await directory.is_participant("", users["x"])
    assert await directory.participants_of(convo.id) == {users["x"], users["y"]}
    assert await directory.conversations_of(users["y"]) == [convo.id]
    assert await directory.conversations_of(users["z"]) == []
