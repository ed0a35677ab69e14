"""Host for one project conversation: resume, run, record, save."""

from collections.abc import AsyncIterator
from typing import Any

import structlog

from ..engines.agent_engine import Agent, create_agent
from ..engines.prompts import DEFAULT_SYSTEM_PROMPT
from ..models.agent_state import AgentEvent, AgentRunResult, ResponseEvent, ToolResultEvent
from ..models.error_types import AdapterError, CommandTimeoutError
from ..models.messages import Message, MessageRole, ToolResult
from ..models.session import TranscriptEntry, TranscriptEntryKind
from ..sandbox import Sandbox
from .content_segmenter import ContentSegmenter, summarize_tool_results
from .conversation_memory import ConversationMemory
from .conversation_store import ConversationStore

logger = structlog.get_logger()


class ProjectSession:
    """
    Runs an agent for one session and keeps its visible transcript.

    History is loaded once when the session is opened and saved after every
    completed run. Adapter and command-timeout failures end the run and show up
    as an error entry in the transcript; tool failures only appear in the tool
    summary.
    """

    def __init__(
        self,
        session_id: str,
        agent: Agent,
        store: ConversationStore,
        segmenter: ContentSegmenter | None = None,
    ) -> None:
        self.session_id = session_id
        self.agent = agent
        self.store = store
        self.segmenter = segmenter or ContentSegmenter()
        self._transcript: list[TranscriptEntry] = []
        self.logger = logger.bind(session_id=session_id)
        self._replay_transcript(agent.history)

    @classmethod
    async def open(
        cls,
        session_id: str,
        store: ConversationStore,
        api_key: str,
        sandbox: Sandbox,
        system_prompt: str | None = None,
        **agent_options: Any,
    ) -> "ProjectSession":
        """
        Open a session, restoring any saved history.

        Args:
            session_id: Session identifier
            store: Conversation persistence
            api_key: Model provider credential
            sandbox: Initialized sandbox owned by this session
            system_prompt: Prompt for new sessions (saved sessions keep theirs)
            **agent_options: Passed to create_agent (model, provider, max_iterations, ...)
        """
        prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        saved = await store.load(session_id)
        memory = ConversationMemory.restore(saved, system_prompt=prompt)
        agent = create_agent(
            api_key,
            sandbox=sandbox,
            memory=memory,
            **agent_options,
        )
        logger.info("project_session_opened", session_id=session_id, restored=len(saved))
        return cls(session_id, agent, store)

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        return tuple(self._transcript)

    async def send(self, user_message: str) -> AgentRunResult | None:
        """
        Run one turn and save the conversation.

        Returns:
            Run result, or None when the run failed (see the transcript)
        """
        self._add(TranscriptEntryKind.USER, user_message)
        try:
            result = await self.agent.run(user_message)
        except (AdapterError, CommandTimeoutError) as e:
            self._record_failure(e)
            return None

        self._record_completion(result.final_response, result.tool_results)
        await self.store.save(self.session_id, self.agent.history)
        return result

    async def send_stream(self, user_message: str) -> AsyncIterator[AgentEvent]:
        """
        Run one turn, yielding agent events, and save once it completes.

        Closing the iterator early ends the run without saving.
        """
        self._add(TranscriptEntryKind.USER, user_message)
        results: list[ToolResult] = []
        stream = self.agent.run_stream(user_message)
        try:
            async for event in stream:
                if isinstance(event, ToolResultEvent):
                    results.append(event.tool_result)
                elif isinstance(event, ResponseEvent):
                    self._record_completion(event.content, results)
                    await self.store.save(self.session_id, self.agent.history)
                yield event
        except (AdapterError, CommandTimeoutError) as e:
            self._record_failure(e)
        finally:
            await stream.aclose()

    def _record_completion(self, final_response: str, tool_results: list[ToolResult]) -> None:
        if tool_results:
            self._add(TranscriptEntryKind.TOOL_SUMMARY, summarize_tool_results(tool_results))
        if final_response:
            self._add(
                TranscriptEntryKind.ASSISTANT,
                final_response,
                sections=self.segmenter.segment(final_response),
            )

    def _record_failure(self, error: Exception) -> None:
        self.logger.error(
            "project_session_turn_failed",
            error=str(error),
            error_type=type(error).__name__,
        )
        self._add(TranscriptEntryKind.ERROR, f"Error: {error}")

    def _replay_transcript(self, history: tuple[Message, ...]) -> None:
        for message in history:
            if message.role == MessageRole.USER:
                self._add(TranscriptEntryKind.USER, message.content)
            elif message.role == MessageRole.ASSISTANT and message.content.strip():
                self._add(
                    TranscriptEntryKind.ASSISTANT,
                    message.content,
                    sections=self.segmenter.segment(message.content),
                )
            elif message.role == MessageRole.TOOL and message.tool_results:
                self._add(
                    TranscriptEntryKind.TOOL_SUMMARY,
                    summarize_tool_results(message.tool_results),
                )

    def _add(self, kind: TranscriptEntryKind, content: str, **fields: Any) -> None:
        self._transcript.append(TranscriptEntry(kind=kind, content=content, **fields))
