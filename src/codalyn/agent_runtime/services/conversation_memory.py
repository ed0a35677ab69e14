"""Append-only conversation memory seeded with a system prompt."""

from collections.abc import Iterable

import structlog

from ..models.messages import Message, MessageRole

logger = structlog.get_logger()


class ConversationMemory:
    """
    Ordered, append-only message history for one agent.

    The first message is always the system prompt. Messages are immutable and
    never edited or removed except through reset(). get_messages() returns a
    tuple snapshot, so readers never observe a later append.
    """

    def __init__(self, system_prompt: str) -> None:
        self._messages: list[Message] = [Message.system(system_prompt)]

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    def add_message(self, message: Message) -> None:
        """
        Append a message.

        Raises:
            ValueError: If message is a system message
        """
        if message.role == MessageRole.SYSTEM:
            raise ValueError("System message can only be set through reset()")
        self._messages.append(message)

    def get_messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def reset(self, system_prompt: str | None = None) -> None:
        """Clear history, keeping (or replacing) the system prompt."""
        prompt = self.system_prompt if system_prompt is None else system_prompt
        self._messages = [Message.system(prompt)]
        logger.debug("conversation_memory_reset")

    def __len__(self) -> int:
        return len(self._messages)

    @classmethod
    def restore(
        cls,
        messages: Iterable[Message],
        system_prompt: str | None = None,
    ) -> "ConversationMemory":
        """
        Rebuild memory by replaying persisted messages in order.

        A leading system message in the persisted sequence seeds the memory and
        wins over system_prompt.

        Raises:
            ValueError: If neither a leading system message nor system_prompt is given
        """
        replay = list(messages)
        if replay and replay[0].role == MessageRole.SYSTEM:
            seed = replay.pop(0).content
        elif system_prompt is not None:
            seed = system_prompt
        else:
            raise ValueError("A system prompt is required to restore memory")

        memory = cls(seed)
        for message in replay:
            memory.add_message(message)

        logger.debug("conversation_memory_restored", messages=len(memory))
        return memory
