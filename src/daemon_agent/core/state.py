"""The daemon's interaction state machine."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from daemon_agent.config import Preferences
from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.core.history import ConversationHistoryStore
from daemon_agent.core.turn_runner import TurnCallbacks, TurnRunner
from daemon_agent.errors import DaemonError, OperationCancelledError, TurnError, VoiceInputError
from daemon_agent.events import (
    ApprovalsAwaiting,
    Cancelled,
    ErrorOccurred,
    EventBus,
    ReasoningTokenReceived,
    ResponseCompleted,
    ResponseTokenReceived,
    SpeakingCompleted,
    SpeakingStarted,
    StateChanged,
    StepUsageReported,
    SubagentCompleted,
    SubagentToolCalled,
    SubagentToolResulted,
    SubagentUsageReported,
    ToolApprovalRequested,
    ToolInputStarted,
    ToolInvoked,
    ToolResultReceived,
    TranscriptionReady,
    TranscriptionUpdated,
    UserMessage,
)
from daemon_agent.types import (
    BASH_APPROVAL_LEVELS,
    BashApprovalLevel,
    DaemonState,
    InteractionMode,
    Message,
    ReasoningEffort,
    TurnParams,
    TurnResult,
    VoiceInteractionType,
)
from daemon_agent.voice import SpeechOutput, Transcriber, VoiceInput


class DaemonStateMachine:
    """Owns the daemon state and is the only writer of the conversation history."""

    def __init__(
        self,
        *,
        runner: TurnRunner,
        events: EventBus | None = None,
        history: ConversationHistoryStore | None = None,
        preferences: Preferences | None = None,
        voice_input: VoiceInput | None = None,
        transcriber: Transcriber | None = None,
        speech: SpeechOutput | None = None,
        before_turn: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._runner = runner
        self.events = events or EventBus()
        self._history = history or ConversationHistoryStore()
        self.preferences = preferences or Preferences()
        self._voice_input = voice_input
        self._transcriber = transcriber
        self._speech = speech
        self._before_turn = before_turn

        self._state = DaemonState.IDLE
        self._transcription = ""
        self._response = ""
        self._turn_id = 0
        self._transcription_token: CancellationToken | None = None
        self._speech_run_id = 0
        self._speech_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def transcription(self) -> str:
        return self._transcription

    @property
    def response(self) -> str:
        return self._response

    @property
    def conversation_history(self) -> list[Message]:
        return self._history.get()

    def set_conversation_history(self, messages: list[Message]) -> None:
        self._history.set(messages)

    def clear_history(self) -> None:
        self._history.clear()
        logger.info("daemon.history.clear")

    def undo_last_turn(self) -> int:
        return self._history.undo_last_turn()

    # Preferences

    def set_interaction_mode(self, mode: InteractionMode) -> None:
        self.preferences.interaction_mode = mode
        self.preferences.tts_enabled = mode == "voice"

    def set_voice_interaction_type(self, interaction_type: VoiceInteractionType) -> None:
        self.preferences.voice_interaction_type = interaction_type

    def set_reasoning_effort(self, effort: ReasoningEffort) -> None:
        self.preferences.reasoning_effort = effort

    def set_bash_approval_level(self, level: BashApprovalLevel) -> None:
        if level not in BASH_APPROVAL_LEVELS:
            raise ValueError(f"unknown bash approval level: {level}")
        self.preferences.bash_approval_level = level

    def set_tts_enabled(self, enabled: bool) -> None:
        self.preferences.tts_enabled = enabled

    # Typing

    def enter_typing_mode(self) -> None:
        if self._state == DaemonState.IDLE:
            self._set_state(DaemonState.TYPING)

    def exit_typing_mode(self) -> None:
        if self._state == DaemonState.TYPING:
            self._set_state(DaemonState.IDLE)

    async def submit_text(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        if self._state not in (DaemonState.IDLE, DaemonState.TYPING):
            logger.warning("daemon.submit.ignored state={}", self._state)
            return
        self._transcription = text
        self.events.emit(TranscriptionUpdated(text=text))
        self.events.emit(UserMessage(text=text))
        await self._respond(text)

    # Voice

    def start_listening(self) -> None:
        if self._state not in (DaemonState.IDLE, DaemonState.TYPING):
            return
        if self._voice_input is None:
            self._fail(VoiceInputError("Voice input is not available."))
            return
        self._transcription = ""
        self._response = ""
        self._set_state(DaemonState.LISTENING)
        try:
            self._voice_input.start()
        except Exception as exc:
            logger.exception("daemon.listen.error")
            self._fail(exc)

    async def stop_listening(self) -> None:
        if self._state != DaemonState.LISTENING or self._voice_input is None:
            return
        try:
            capture = await self._voice_input.stop()
        except Exception as exc:
            logger.exception("daemon.listen.stop_error")
            self._fail(exc)
            return
        if self._state != DaemonState.LISTENING:
            return
        if capture.too_short:
            self._fail(VoiceInputError(f"Recording too short ({capture.duration_seconds:.1f}s). Hold longer."))
            return
        if self._transcriber is None:
            self._fail(VoiceInputError("Transcription is not available."))
            return

        self._set_state(DaemonState.TRANSCRIBING)
        token = CancellationToken()
        self._transcription_token = token
        try:
            text = await token.guard(self._transcriber.transcribe(capture.audio))
        except OperationCancelledError:
            return
        except Exception as exc:
            if not token.cancelled:
                logger.exception("daemon.transcribe.error")
                self._fail(exc)
            return
        finally:
            if self._transcription_token is token:
                self._transcription_token = None

        text = text.strip()
        if not text:
            self._set_state(DaemonState.IDLE)
            return
        self._transcription = text
        if self.preferences.voice_interaction_type == "review":
            self._set_state(DaemonState.TYPING)
            self.events.emit(TranscriptionReady(text=text))
            return
        self.events.emit(TranscriptionUpdated(text=text))
        self.events.emit(UserMessage(text=text))
        await self._respond(text)

    def cancel_listening(self) -> None:
        if self._state == DaemonState.LISTENING:
            self.cancel_current_action()

    def stop_speaking(self) -> None:
        if self._state != DaemonState.SPEAKING:
            return
        self._halt_speech()
        self.events.emit(SpeakingCompleted())
        self._set_state(DaemonState.IDLE)

    # Cancellation

    def cancel_current_action(self) -> None:
        """Abort whatever is in flight and return to Idle with a single cancellation event."""
        state = self._state
        if state == DaemonState.IDLE:
            return
        if state == DaemonState.LISTENING and self._voice_input is not None:
            try:
                self._voice_input.cancel()
            except Exception:
                logger.exception("daemon.listen.cancel_error")
            self._transcription = ""
        elif state == DaemonState.TRANSCRIBING and self._transcription_token is not None:
            self._transcription_token.cancel()
        elif state == DaemonState.RESPONDING:
            self._runner.cancel()
        elif state == DaemonState.SPEAKING:
            self._halt_speech()
        elif state == DaemonState.TYPING:
            self._transcription = ""
        logger.info("daemon.cancel state={}", state)
        self.events.emit(Cancelled(state=state))
        self._set_state(DaemonState.IDLE)

    async def aclose(self) -> None:
        self.cancel_current_action()
        task, self._speech_task = self._speech_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # Internals

    def _set_state(self, state: DaemonState) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        logger.debug("daemon.state previous={} current={}", previous, state)
        self.events.emit(StateChanged(previous=previous, current=state))

    def _fail(self, error: Exception) -> None:
        self.events.emit(ErrorOccurred(error=error))
        self._set_state(DaemonState.IDLE)

    async def _respond(self, text: str) -> None:
        self._response = ""
        self._turn_id += 1
        turn_id = self._turn_id
        self._set_state(DaemonState.RESPONDING)
        if self._before_turn is not None:
            try:
                await self._before_turn()
            except Exception as exc:
                logger.exception("daemon.before_turn.error")
                if self._state == DaemonState.RESPONDING:
                    self._fail(exc)
                return
            if self._state != DaemonState.RESPONDING or turn_id != self._turn_id:
                return

        params = TurnParams(
            user_text=text,
            history=self._history.get(),
            mode=self.preferences.interaction_mode,
            effort=self.preferences.reasoning_effort,
        )
        logger.info("agent.turn.start turn_id={} chars={}", turn_id, len(text))
        try:
            result = await self._runner.run(params, self._turn_callbacks())
        except TurnError as exc:
            self._fail(exc)
            return
        if result is None:
            if self._state == DaemonState.RESPONDING and turn_id == self._turn_id:
                self._set_state(DaemonState.IDLE)
            return
        self._complete(text, result)

    def _complete(self, text: str, result: TurnResult) -> None:
        self._history.append_turn(text, result.response_messages)
        self.events.emit(
            ResponseCompleted(
                full_text=result.full_text,
                response_messages=result.response_messages,
                usage=result.total_usage,
                final_text=result.final_text,
            )
        )
        spoken = result.spoken_text
        if not (self.preferences.tts_enabled and self._speech is not None and spoken.strip()):
            self._set_state(DaemonState.IDLE)
            return
        self._speech_run_id += 1
        self._set_state(DaemonState.SPEAKING)
        self.events.emit(SpeakingStarted(text=spoken))
        self._speech_task = asyncio.create_task(self._speak(self._speech, spoken, self._speech_run_id))

    async def _speak(self, speech: SpeechOutput, text: str, run_id: int) -> None:
        try:
            await speech.speak(text, speed=self.preferences.speech_speed)
        except Exception as exc:
            logger.exception("daemon.speech.error")
            if run_id == self._speech_run_id:
                self.events.emit(ErrorOccurred(error=DaemonError(f"TTS error: {exc}")))
        finally:
            if run_id == self._speech_run_id:
                self.events.emit(SpeakingCompleted())
                self._set_state(DaemonState.IDLE)

    def _halt_speech(self) -> None:
        self._speech_run_id += 1
        if self._speech is not None:
            try:
                self._speech.stop()
            except Exception:
                logger.exception("daemon.speech.stop_error")
        if self._speech_task is not None and not self._speech_task.done():
            self._speech_task.cancel()

    def _turn_callbacks(self) -> TurnCallbacks:
        emit = self.events.emit

        def on_token(token: str) -> None:
            self._response += token
            emit(ResponseTokenReceived(token=token))

        callbacks = TurnCallbacks(
            on_reasoning_token=lambda token: emit(ReasoningTokenReceived(token=token)),
            on_tool_call_start=lambda name, call_id: emit(ToolInputStarted(tool_name=name, tool_call_id=call_id)),
            on_tool_call=lambda name, args, call_id: emit(
                ToolInvoked(tool_name=name, input=args, tool_call_id=call_id)
            ),
            on_tool_result=lambda name, output, call_id: emit(
                ToolResultReceived(tool_name=name, output=output, tool_call_id=call_id)
            ),
            on_tool_approval_request=lambda request: emit(ToolApprovalRequested(request=request)),
            on_subagent_tool_call=lambda call_id, name, args: emit(
                SubagentToolCalled(tool_call_id=call_id, tool_name=name, input=args)
            ),
            on_subagent_tool_result=lambda call_id, name, success: emit(
                SubagentToolResulted(tool_call_id=call_id, tool_name=name, success=success)
            ),
            on_subagent_usage=lambda call_id, usage: emit(SubagentUsageReported(tool_call_id=call_id, usage=usage)),
            on_subagent_complete=lambda call_id, success: emit(
                SubagentCompleted(tool_call_id=call_id, success=success)
            ),
            on_token=on_token,
            on_step_usage=lambda usage: emit(StepUsageReported(usage=usage)),
        )
        # Approval-gated tools are denied outright unless someone is there to answer.
        if self.events.has_subscribers(ApprovalsAwaiting):
            callbacks.on_awaiting_approvals = lambda requests, respond: emit(
                ApprovalsAwaiting(requests=requests, respond=respond)
            )
        return callbacks
