"""
Call Session Engine
Owns the per-call state machine and decides what the caller hears next.

    AWAITING_CONSENT -> ACTIVE -> TRANSFER_PENDING -> COMPLETED
            |             |
            v             v
          FAILED      COMPLETED

State lives on the conversation record. The session registry only holds the
per-call lock, the tenant bundle used for the call and failure counters, so
turn processing resumes from storage after a restart.

Every turn is committed with a single ConversationStore.apply_turn call.
A turn that fails anywhere before that commit leaves the conversation as it
was and the caller hears an apology instead.
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Mapping, Optional, Tuple, Type

from callpilot.core.config import CallPrompts
from callpilot.core.exceptions import (
    CallNotFoundError,
    CallPilotError,
    ConfigurationError,
    GatewayError,
    TurnInProgressError,
)
from callpilot.domain.interfaces.telephony_provider import TelephonyProvider
from callpilot.domain.models.call_control import CallControl, RenderedControl, TelephonyEvent
from callpilot.domain.models.conversation import (
    CallDirection,
    Conversation,
    ConversationAnalysis,
    Turn,
    TurnRole,
)
from callpilot.domain.models.conversation_state import CallState
from callpilot.domain.models.session import CallSession
from callpilot.domain.models.tenant_config import (
    AgentPersona,
    TelephonyProviderName,
    extract_config_sections,
)
from callpilot.domain.services.conversation_analyzer import ConversationAnalyzer
from callpilot.domain.services.intent_classifier import (
    TRANSFER_MARKER,
    IntentClassifier,
    KeywordIntentClassifier,
)
from callpilot.domain.services.llm_guardrails import LLMGuardrails
from callpilot.domain.services.session_registry import SessionRegistry
from callpilot.domain.services.tenant_context import TenantContext, TenantServices
from callpilot.domain.services.webhook_urls import WebhookURLResolver
from callpilot.infrastructure.storage.audio_store import AudioStore
from callpilot.infrastructure.telephony.factory import TelephonyFactory
from callpilot.utils.tenant_filter import ensure_tenant_id

logger = logging.getLogger(__name__)

# Webhook actions carried in the ?action= query of a call URL
ACTION_ANSWER = "answer"
ACTION_CONSENT = "consent"
ACTION_TURN = "turn"
ACTION_TRANSFER = "transfer"
ACTION_RECORDING = "recording"

ACTION_FOR_STATE = {
    CallState.AWAITING_CONSENT: ACTION_CONSENT,
    CallState.ACTIVE: ACTION_TURN,
    CallState.TRANSFER_PENDING: ACTION_TRANSFER,
}

# Vendor statuses that end a call without it ever completing
FAILED_CALL_STATUSES = frozenset({
    "busy", "timeout", "failed", "rejected", "unanswered", "cancelled", "canceled",
})
COMPLETED_CALL_STATUS = "completed"

VOICE_INSTRUCTIONS = (
    "You are speaking with a customer on a phone call as {agent_name}. "
    "Keep every reply to one to three short, natural sentences with no lists or formatting. "
    "If the customer asks for a human, briefly say someone will call them back "
    "and include the tag " + TRANSFER_MARKER + " in your reply."
)


class CallSessionEngine:
    """
    Drives calls for every tenant.

    Usage:
        engine = CallSessionEngine(tenants, registry, resolver, audio_store)
        conversation = await engine.start_outbound("acme", "+15551234567")
        rendered = await engine.handle_call_event("acme", call_id, payload, "turn")
    """

    def __init__(
        self,
        tenants: TenantContext,
        registry: SessionRegistry,
        resolver: WebhookURLResolver,
        audio_store: AudioStore,
        prompts: Optional[CallPrompts] = None,
        classifier: Optional[IntentClassifier] = None,
        guardrails: Optional[LLMGuardrails] = None,
        gateway_timeout_seconds: float = 8.0,
        max_turn_errors: int = 3,
        max_silent_prompts: int = 2,
        default_telephony: TelephonyProviderName = TelephonyProviderName.VONAGE,
    ):
        self._tenants = tenants
        self._registry = registry
        self._resolver = resolver
        self._audio_store = audio_store
        self._prompts = prompts or CallPrompts()
        self._classifier = classifier or KeywordIntentClassifier()
        self._guardrails = guardrails or LLMGuardrails()
        self._gateway_timeout = gateway_timeout_seconds
        self._max_turn_errors = max_turn_errors
        self._max_silent_prompts = max_silent_prompts
        self._default_telephony = TelephonyFactory.get_class(default_telephony)

    @property
    def prompts(self) -> CallPrompts:
        return self._prompts

    # ========== Gateway calls ==========

    async def _call_gateway(self, provider: str, operation: str, call: Awaitable[Any]) -> Any:
        """Await a vendor call with the configured timeout, normalizing failures."""
        try:
            return await asyncio.wait_for(call, timeout=self._gateway_timeout)
        except asyncio.TimeoutError:
            raise GatewayError(provider, operation, f"timed out after {self._gateway_timeout}s")
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayError(provider, operation, f"{type(e).__name__}: {e}") from e

    # ========== Call start ==========

    async def start_outbound(
        self,
        tenant_id: str,
        to_number: str,
        injected: Optional[Mapping[str, Any]] = None,
    ) -> Conversation:
        """
        Place an outbound call.

        Raises:
            ConfigurationError: Missing contact number or incomplete config
            GatewayError: The telephony provider could not place the call
        """
        tenant_id = ensure_tenant_id(tenant_id)
        if not to_number or not to_number.strip():
            raise ConfigurationError(
                "Missing contact phone number",
                missing_fields=["contact.phone_number"],
            )

        services = await self._tenants.resolve(tenant_id, injected)
        conversation = services.store.create_conversation(Conversation(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            direction=CallDirection.OUTBOUND,
            customer_number=to_number.strip(),
            agent_config=services.config.agent.model_copy(),
        ))
        session = self._registry.get_or_create(tenant_id, conversation.id)
        session.services = services

        telephony = services.telephony
        try:
            provider_call_id = await self._call_gateway(
                telephony.name,
                "place_call",
                telephony.place_call(
                    to_number=conversation.customer_number,
                    answer_url=self._resolver.resolve(tenant_id, conversation.id, ACTION_ANSWER),
                    event_url=self._resolver.endpoint_url(tenant_id, "status"),
                ),
            )
        except GatewayError as e:
            logger.error(f"Outbound dispatch failed for {tenant_id}/{conversation.id}: {e}")
            services.store.mark_failed(conversation.id)
            self._registry.remove(tenant_id, conversation.id)
            raise

        logger.info(f"Outbound call {tenant_id}/{conversation.id} placed as {provider_call_id}")
        return services.store.set_provider_call_id(conversation.id, provider_call_id)

    async def handle_inbound(self, tenant_id: str, payload: Mapping[str, Any]) -> RenderedControl:
        """
        Answer an inbound call webhook.

        A call id seen for the first time starts a conversation awaiting consent;
        a known one is processed as a turn of that conversation.
        """
        tenant_id = ensure_tenant_id(tenant_id)
        try:
            services = await self._tenants.resolve(tenant_id, payload)
        except CallPilotError as e:
            logger.error(f"Cannot answer inbound call for tenant {tenant_id}: {e}")
            return self._render(self._default_telephony, CallControl().say(self._prompts.fatal_error).hangup())

        telephony_class = type(services.telephony)
        event = telephony_class.parse_event(payload)
        store = services.store

        existing = store.get_by_provider_call_id(event.provider_call_id) if event.provider_call_id else None
        if existing is not None:
            return await self.handle_call_event(tenant_id, existing.id, payload)

        conversation = store.create_conversation(Conversation(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            provider_call_id=event.provider_call_id,
            direction=CallDirection.INBOUND,
            customer_number=event.from_number,
            agent_config=services.config.agent.model_copy(),
        ))
        session = self._registry.get_or_create(tenant_id, conversation.id)
        session.services = services

        logger.info(f"Inbound call {tenant_id}/{conversation.id} from provider call {event.provider_call_id}")
        return self._render(telephony_class, self._consent_prompt(tenant_id, conversation.id))

    # ========== Mid-call turns ==========

    async def handle_call_event(
        self,
        tenant_id: str,
        call_id: str,
        payload: Mapping[str, Any],
        action: Optional[str] = None,
    ) -> RenderedControl:
        """
        Process one call-control webhook for a call.

        Raises:
            CallNotFoundError: Unknown call for this tenant
            TurnInProgressError: Another webhook for this call is being processed
        """
        tenant_id = ensure_tenant_id(tenant_id)
        if self._tenants.store(tenant_id, create=False).get_conversation(call_id) is None:
            raise CallNotFoundError()

        session = self._registry.get_or_create(tenant_id, call_id)
        if session.busy:
            logger.warning(f"Rejected concurrent webhook for {tenant_id}/{call_id}")
            raise TurnInProgressError(call_id)

        async with session.lock:
            session.update_activity()
            return await self._process_event(session, payload, action)

    async def _process_event(
        self,
        session: CallSession,
        payload: Mapping[str, Any],
        action: Optional[str],
    ) -> RenderedControl:
        tenant_id, call_id = session.tenant_id, session.call_id

        try:
            services = await self._services_for(session, payload)
        except CallPilotError as e:
            logger.error(f"No usable config for {tenant_id}/{call_id}: {e}")
            return self._render(self._default_telephony, CallControl().say(self._prompts.fatal_error).hangup())

        telephony_class = type(services.telephony)
        event = telephony_class.parse_event(payload)
        conversation = services.store.require_conversation(call_id)

        if event.provider_call_id and not conversation.provider_call_id:
            services.store.set_provider_call_id(call_id, event.provider_call_id)

        if action == ACTION_RECORDING:
            if event.recording_url:
                services.store.set_recording_url(call_id, event.recording_url)
                logger.info(f"Attached recording to {tenant_id}/{call_id}")
            return self._render(telephony_class, CallControl())

        try:
            control = await self._advance(session, services, conversation, event, action)
        except Exception as e:
            errors = session.record_failure()
            logger.error(
                f"Turn failed for {tenant_id}/{call_id} "
                f"({errors}/{self._max_turn_errors}): {type(e).__name__}: {e}",
                exc_info=not isinstance(e, GatewayError),
            )
            if errors >= self._max_turn_errors:
                control = CallControl().say(self._prompts.fatal_error).hangup()
            else:
                retry_action = ACTION_FOR_STATE.get(CallState(conversation.state), ACTION_TURN)
                control = (
                    CallControl()
                    .say(self._prompts.error, barge_in=True)
                    .gather(
                        self._resolver.resolve(tenant_id, call_id, retry_action),
                        language=self._prompts.language,
                        dtmf=retry_action == ACTION_CONSENT,
                    )
                )
            return self._render(telephony_class, control)

        session.record_success()
        return self._render(telephony_class, control)

    async def _services_for(self, session: CallSession, payload: Mapping[str, Any]) -> TenantServices:
        """Bundle for this call: config injected in the payload wins over what the session holds."""
        if payload and extract_config_sections(payload):
            session.services = await self._tenants.resolve(session.tenant_id, payload)
        elif session.services is None:
            session.services = await self._tenants.resolve(session.tenant_id)
        return session.services

    async def _advance(
        self,
        session: CallSession,
        services: TenantServices,
        conversation: Conversation,
        event: TelephonyEvent,
        action: Optional[str],
    ) -> CallControl:
        state = CallState(conversation.state)
        if state == CallState.AWAITING_CONSENT:
            return await self._handle_consent(session, services, conversation, event, action)
        if state == CallState.ACTIVE:
            return await self._handle_active(session, services, conversation, event)
        if state == CallState.TRANSFER_PENDING:
            return await self._handle_transfer_notes(services, conversation, event)
        return CallControl().say(self._prompts.ended).hangup()

    async def _handle_consent(
        self,
        session: CallSession,
        services: TenantServices,
        conversation: Conversation,
        event: TelephonyEvent,
        action: Optional[str],
    ) -> CallControl:
        tenant_id, call_id = session.tenant_id, conversation.id
        utterance = await self._utterance(services, event)

        if not utterance and not event.digits:
            if action == ACTION_CONSENT:
                session.silent_count += 1
                if session.silent_count > self._max_silent_prompts:
                    services.store.apply_turn(call_id, CallState.AWAITING_CONSENT, CallState.FAILED)
                    logger.info(f"No consent answer on {tenant_id}/{call_id}, ending call")
                    return CallControl().say(self._prompts.ended).hangup()
            return self._consent_prompt(tenant_id, call_id)

        session.silent_count = 0
        if not self._classifier.is_affirmative(utterance, event.digits):
            services.store.apply_turn(
                call_id, CallState.AWAITING_CONSENT, CallState.FAILED, consent=False,
            )
            logger.info(f"Consent declined on {tenant_id}/{call_id}")
            return CallControl().say(self._prompts.consent_declined).hangup()

        greeting = self._prompts.greeting_for(conversation.agent_config.name)
        services.store.apply_turn(
            call_id,
            CallState.AWAITING_CONSENT,
            CallState.ACTIVE,
            turns=[Turn(role=TurnRole.ASSISTANT, content=greeting)],
            consent=True,
        )
        logger.info(f"Consent given on {tenant_id}/{call_id}")
        return (
            CallControl()
            .record(self._resolver.resolve(tenant_id, call_id, ACTION_RECORDING))
            .say(greeting, barge_in=True)
            .gather(self._resolver.resolve(tenant_id, call_id, ACTION_TURN), language=self._prompts.language)
        )

    async def _handle_active(
        self,
        session: CallSession,
        services: TenantServices,
        conversation: Conversation,
        event: TelephonyEvent,
    ) -> CallControl:
        tenant_id, call_id = session.tenant_id, conversation.id
        turn_url = self._resolver.resolve(tenant_id, call_id, ACTION_TURN)

        user_text = await self._utterance(services, event)
        if not user_text:
            session.silent_count += 1
            if session.silent_count > self._max_silent_prompts:
                logger.info(f"Caller silent on {tenant_id}/{call_id}, ending call")
                return CallControl().say(self._prompts.ended).hangup()
            return CallControl().say(self._prompts.reprompt, barge_in=True).gather(
                turn_url, language=self._prompts.language,
            )
        session.silent_count = 0

        persona = conversation.agent_config
        user_turn = Turn(role=TurnRole.USER, content=user_text)
        llm = services.llm
        raw_reply = await self._call_gateway(
            llm.name,
            "generate",
            llm.generate(
                messages=[*conversation.transcript, user_turn],
                system_prompt=self._system_prompt(persona),
                temperature=services.config.llm.temperature,
                max_tokens=services.config.llm.max_tokens,
            ),
        )

        transfer_reason = self._classifier.transfer_reason(user_text, raw_reply)
        reply = self._guardrails.shape(self._classifier.strip_marker(raw_reply or ""))
        if not reply:
            raise GatewayError(llm.name, "generate", "empty reply")

        speech = services.speech
        audio = await self._call_gateway(
            speech.name,
            "synthesize",
            speech.synthesize(reply, persona.voice or services.config.voice.voice_name),
        )
        clip_id = self._audio_store.save(tenant_id, call_id, audio.data, audio.extension)
        clip_url = self._resolver.audio_url(tenant_id, call_id, clip_id)

        new_state = CallState.TRANSFER_PENDING if transfer_reason else CallState.ACTIVE
        services.store.apply_turn(
            call_id,
            CallState.ACTIVE,
            new_state,
            turns=[user_turn, Turn(role=TurnRole.ASSISTANT, content=reply)],
            callback_reason=transfer_reason,
        )

        if transfer_reason:
            logger.info(f"Transfer requested on {tenant_id}/{call_id}")
            return (
                CallControl()
                .play(clip_url)
                .say(self._prompts.transfer_followup, barge_in=True)
                .gather(
                    self._resolver.resolve(tenant_id, call_id, ACTION_TRANSFER),
                    language=self._prompts.language,
                )
            )
        return CallControl().play(clip_url).gather(turn_url, language=self._prompts.language)

    async def _handle_transfer_notes(
        self,
        services: TenantServices,
        conversation: Conversation,
        event: TelephonyEvent,
    ) -> CallControl:
        notes = await self._utterance(services, event)
        services.store.apply_turn(
            conversation.id,
            CallState.TRANSFER_PENDING,
            CallState.COMPLETED,
            callback_notes=notes or None,
        )
        return CallControl().say(self._prompts.transfer_closing).hangup()

    async def _utterance(self, services: TenantServices, event: TelephonyEvent) -> str:
        """Recognized caller text, transcribing caller audio when the vendor sent no text."""
        if event.speech_text and event.speech_text.strip():
            return event.speech_text.strip()
        if not event.audio_url:
            return ""

        telephony, speech = services.telephony, services.speech
        audio = await self._call_gateway(
            telephony.name, "fetch_recording", telephony.fetch_recording(event.audio_url),
        )
        text = await self._call_gateway(
            speech.name,
            "transcribe",
            speech.transcribe(audio, language=self._prompts.language),
        )
        return (text or "").strip()

    def _consent_prompt(self, tenant_id: str, call_id: str) -> CallControl:
        return (
            CallControl()
            .say(self._prompts.consent, barge_in=True)
            .gather(
                self._resolver.resolve(tenant_id, call_id, ACTION_CONSENT),
                language=self._prompts.language,
                dtmf=True,
            )
        )

    @staticmethod
    def _system_prompt(persona: AgentPersona) -> str:
        return f"{persona.prompt}\n\n{VOICE_INSTRUCTIONS.format(agent_name=persona.name)}"

    def _render(self, telephony_class: Type[TelephonyProvider], control: CallControl) -> RenderedControl:
        return telephony_class.render(control, language=self._prompts.language)

    # ========== Call end ==========

    async def handle_status(self, tenant_id: str, payload: Mapping[str, Any]) -> None:
        """
        Apply a vendor call-status callback.

        Never raises: the vendor does not retry status callbacks usefully.
        """
        try:
            event = self._default_telephony.parse_event(payload)
            if not event.provider_call_id:
                logger.warning(f"Status callback for tenant {tenant_id} without a call id")
                return

            status = (event.status or "").lower()
            if status == COMPLETED_CALL_STATUS:
                await self.complete_call(
                    tenant_id, event.provider_call_id, event.duration_seconds, event.recording_url,
                )
            elif status in FAILED_CALL_STATUSES:
                await self.fail_call(tenant_id, event.provider_call_id, status)
            else:
                logger.debug(f"Call {event.provider_call_id} status {status or 'unknown'}")
        except Exception as e:
            logger.error(f"Status callback failed for tenant {tenant_id}: {e}", exc_info=True)

    async def complete_call(
        self,
        tenant_id: str,
        provider_call_id: str,
        duration_seconds: Optional[int] = None,
        recording_url: Optional[str] = None,
    ) -> Optional[Conversation]:
        """
        Mark a call completed, whatever state it is in, and analyze it once.

        Waits for an in-flight turn on the call to finish first.
        """
        try:
            store = self._tenants.store(tenant_id, create=False)
        except CallNotFoundError:
            store = None
        conversation = store.get_by_provider_call_id(provider_call_id) if store else None
        if conversation is None:
            logger.warning(f"Completion for unknown provider call {provider_call_id} (tenant {tenant_id})")
            return None

        call_id = conversation.id
        session = self._registry.get_or_create(tenant_id, call_id)
        async with session.lock:
            conversation, newly_completed = store.complete_conversation(
                call_id, duration_seconds, recording_url,
            )
            if conversation.analysis is None:
                analysis = await self._analyze(tenant_id, conversation, session.services)
                store.save_analysis(call_id, analysis)
                conversation = store.require_conversation(call_id)

        self._registry.remove(tenant_id, call_id)
        self._audio_store.purge_call(tenant_id, call_id)
        if newly_completed:
            logger.info(
                f"Call {tenant_id}/{call_id} completed "
                f"(duration={conversation.duration_seconds}s, rating={conversation.rating})"
            )
        return conversation

    async def fail_call(self, tenant_id: str, provider_call_id: str, status: str) -> Optional[Conversation]:
        """Mark a call that never completed as failed."""
        try:
            store = self._tenants.store(tenant_id, create=False)
        except CallNotFoundError:
            store = None
        conversation = store.get_by_provider_call_id(provider_call_id) if store else None
        if conversation is None:
            logger.warning(f"Status {status} for unknown provider call {provider_call_id} (tenant {tenant_id})")
            return None

        session = self._registry.get_or_create(tenant_id, conversation.id)
        async with session.lock:
            conversation = store.mark_failed(conversation.id)

        self._registry.remove(tenant_id, conversation.id)
        self._audio_store.purge_call(tenant_id, conversation.id)
        logger.info(f"Call {tenant_id}/{conversation.id} ended with status {status}")
        return conversation

    async def _analyze(
        self,
        tenant_id: str,
        conversation: Conversation,
        services: Optional[TenantServices] = None,
    ) -> ConversationAnalysis:
        if services is None:
            try:
                services = await self._tenants.resolve(tenant_id)
            except CallPilotError as e:
                logger.info(f"Analyzing {tenant_id}/{conversation.id} without a model: {e}")

        store = self._tenants.store(tenant_id)
        transfer_requested = bool(store.list_callback_requests(conversation_id=conversation.id, limit=1))
        analyzer = ConversationAnalyzer(services.llm if services else None)
        return await analyzer.analyze(conversation.transcript, transfer_requested)

    # ========== Results ==========

    async def get_call_result(self, tenant_id: str, call_id: str) -> Conversation:
        """
        Conversation with transcript and analysis.

        A completed call that was never analyzed is analyzed now, under the
        call's session lock so a completion in progress is not analyzed twice.
        """
        store = self._tenants.store(tenant_id, create=False)
        conversation = store.require_conversation(call_id)
        if not conversation.is_completed or conversation.analysis is not None:
            return conversation

        session = self._registry.get_or_create(tenant_id, call_id)
        async with session.lock:
            conversation = store.require_conversation(call_id)
            if conversation.analysis is None:
                analysis = await self._analyze(tenant_id, conversation)
                store.save_analysis(call_id, analysis)
                conversation = store.require_conversation(call_id)
        self._registry.remove(tenant_id, call_id)
        return conversation

    async def fetch_recording(self, tenant_id: str, call_id: str) -> bytes:
        """
        Download a call's recording through the tenant's telephony provider.

        Raises:
            CallNotFoundError: Unknown call or no recording yet
        """
        store = self._tenants.store(tenant_id, create=False)
        conversation = store.require_conversation(call_id)
        if not conversation.recording_url:
            raise CallNotFoundError()

        session = self._registry.get(tenant_id, call_id)
        services = session.services if session and session.services else await self._tenants.resolve(tenant_id)
        telephony = services.telephony
        return await self._call_gateway(
            telephony.name, "fetch_recording", telephony.fetch_recording(conversation.recording_url),
        )

    def load_audio(self, tenant_id: str, call_id: str, clip_id: str) -> Tuple[bytes, str]:
        """Synthesized reply audio for a live call as (bytes, media_type)."""
        tenant_id = ensure_tenant_id(tenant_id)
        clip = self._audio_store.load(tenant_id, call_id, clip_id)
        if clip is None:
            raise CallNotFoundError()
        return clip
