from typing import List, Set

from venture_chat.repositories.conversation_repository import ConversationRepository


class ConversationDirectory:
    """Membership lookups shared by the store, the coordinator and the realtime bus."""

    def __init__(self, conversation_repo: ConversationRepository) -> None:
        self._conversation_repo = conversation_repo

    async def is_participant(self, conversation_id: str, user_id: str) -> bool:
        if not conversation_id or not user_id:
            return False
        return await self._conversation_repo.is_participant(conversation_id, user_id)

    async def participants_of(self, conversation_id: str) -> Set[str]:
        return set(await self._conversation_repo.list_participant_ids(conversation_id))

    async def conversations_of(self, user_id: str) -> List[str]:
        return await self._conversation_repo.list_conversation_ids_for_user(user_id)
