import asyncio
import json
import threading
from typing import Optional

from dotenv import load_dotenv
from livekit.agents import (
    Agent,
    AgentSession,
    JobContext,
    JobExecutorType,
    JobProcess,
    WorkerOptions,
    cli,
    inference,
    function_tool,
    RunContext,
)
from livekit.plugins import silero

from src.core.config import settings
from src.core.dependencies import (
    get_delivery_notifier,
    get_follow_up_service,
    get_help_request_service,
    get_knowledge_base_service,
    get_resolution_poller,
    get_session_directory,
)
from src.core.exceptions import SupervisorError
from src.core.logging import get_plain_logger

logger = get_plain_logger(__name__)

load_dotenv()

# Salon Business Context (System Prompt)

SALON_INSTRUCTIONS = """
## Identity

You are the AI receptionist for Glamour Salon, a premium hair salon.

## Your role

- Answer questions about the salon's services, hours, location, and pricing
- Be friendly, professional, and helpful
- Keep responses conversational and concise
- Never use emojis, asterisks, or complex formatting in your speech

## KNOWLEDGE BASE USAGE

1. ALWAYS call check_knowledge_base before answering a question about the salon.
2. Use your reasoning: if you know "pets allowed", then dogs, cats and parrots are ALL allowed.
3. If check_knowledge_base says it escalated the question, tell the customer a supervisor
   will get back to them and give them the reference number.

## WHEN TO ESCALATE

- DO NOT make up information or guess
- Call escalate_to_supervisor only for questions that need human judgment and that the
  knowledge base could not answer
- Tell the customer: "Let me check with my supervisor"

## SUPERVISOR ANSWERS

Sometimes you will say an answer from the supervisor in the middle of the call. After
that, ask if there is anything else you can help with.

The user is interacting with you via voice, even if you perceive the conversation as text.
"""


class AgentSessionHandle:
    """
    Lets the delivery poller speak through a session owned by another event loop
    """

    def __init__(self, session: AgentSession, loop: asyncio.AbstractEventLoop):
        self._session = session
        self._loop = loop

    async def _speak(self, message: str) -> None:
        await self._session.say(message)

    async def say(self, message: str) -> None:
        if asyncio.get_running_loop() is self._loop:
            await self._speak(message)
            return
        future = asyncio.run_coroutine_threadsafe(self._speak(message), self._loop)
        await asyncio.wrap_future(future)


class SalonAssistant(Agent):
    def __init__(self, customer_phone: str) -> None:
        super().__init__(instructions=SALON_INSTRUCTIONS)
        self.customer_phone = customer_phone
        logger.info(f"🔧 Agent initialized for {customer_phone}")

    @function_tool
    async def check_knowledge_base(self, context: RunContext, question: str) -> str:
        """Search the salon's knowledge base for services, hours, pricing, location and policies.

        If nothing relevant is found the question is escalated to a supervisor automatically.

        Args:
            question: The customer's question, as close to their words as possible

        Returns:
            Either the answer, or a confirmation that the question was escalated.
        """
        logger.info(f"🔍 Checking KB for: {question}")
        try:
            match = await get_knowledge_base_service().search(question)
            if match:
                return f"ANSWER FOUND: {match.answer}"

            request = await get_help_request_service().create_request(
                customer_phone=self.customer_phone,
                question=question,
            )
        except SupervisorError as e:
            logger.error(f"Knowledge lookup failed: {e}")
            return "ERROR: System issue. Apologize and ask the customer to call back later."

        logger.info(f"❌ KB miss, escalated as {request.id}")
        return (
            "NO ANSWER FOUND. The question was escalated to the supervisor. Tell the customer: "
            "'I couldn't find that in my records, so I've asked my supervisor. You'll hear back "
            f"shortly.' Their reference is {request.id}."
        )

    @function_tool
    async def escalate_to_supervisor(
        self,
        context: RunContext,
        question: str,
        reason: str,
        caller_phone: Optional[str] = None,
    ) -> str:
        """Escalate a question to a human supervisor when it needs human judgment.

        Args:
            question: The customer's original question that you cannot answer
            reason: Brief explanation of why you're escalating
            caller_phone: A callback number if the customer gave a different one

        Returns:
            A message confirming the escalation. Tell this to the customer.
        """
        logger.info(f"📞 Escalating: {question}")
        phone = caller_phone or self.customer_phone
        if not phone or phone == "unknown":
            return "ERROR: Ask the customer: 'What's the best phone number to reach you at?'"

        try:
            request = await get_help_request_service().create_request(
                customer_phone=phone,
                question=question,
                context=reason,
            )
        except SupervisorError as e:
            logger.error(f"Error creating help request: {e}")
            return "ERROR: System issue. Apologize and ask the customer to call back later."

        logger.info(f"✅ Help request {request.id} created")
        return (
            f"SUCCESS - Help request created (reference {request.id}). Tell the customer: "
            "'Let me check with my supervisor and get back to you.'"
        )


_poller_lock = threading.Lock()
_poller_thread: Optional[threading.Thread] = None


def _ensure_resolution_poller() -> None:
    """One poller per worker process, on its own event loop"""
    global _poller_thread
    with _poller_lock:
        if _poller_thread is not None and _poller_thread.is_alive():
            return

        async def run():
            get_resolution_poller().start()
            await asyncio.Event().wait()

        _poller_thread = threading.Thread(
            target=asyncio.run, args=(run(),), name="resolution-poller", daemon=True
        )
        _poller_thread.start()


def _customer_phone_from(*metadata_sources: Optional[str]) -> str:
    for raw in metadata_sources:
        if not raw:
            continue
        try:
            phone = json.loads(raw).get("customerPhone")
        except (ValueError, AttributeError):
            continue
        if phone:
            return phone
    return settings.default_customer_phone


def prewarm(proc: JobProcess):
    """Preload models before processing jobs"""
    proc.userdata["vad"] = silero.VAD.load()
    logger.info(f"Loaded {get_knowledge_base_service().count()} knowledge base entries")


async def entrypoint(ctx: JobContext):
    """Main LiveKit agent entry point for each incoming call"""

    ctx.log_context_fields = {
        "room": ctx.room.name,
    }
    logger.info(f"🎙️ Agent started for room: {ctx.room.name}")

    await ctx.connect()
    participant = await ctx.wait_for_participant()
    customer_phone = _customer_phone_from(participant.metadata, ctx.room.metadata)

    session = AgentSession(
        stt=inference.STT(model="assemblyai/universal-streaming", language="en"),
        llm=inference.LLM(model="openai/gpt-4.1-mini"),
        tts=inference.TTS(
            model="cartesia/sonic-3", voice="9626c31c-bec5-4cca-baa8-f8ba9e84c8bc"
        ),
        vad=ctx.proc.userdata.get("vad") or silero.VAD.load(),
    )

    directory = get_session_directory()
    handle = AgentSessionHandle(session, asyncio.get_running_loop())

    @session.on("close")
    def _on_close(_event):
        logger.info(f"Session closed for {customer_phone}, unregistering")
        directory.unregister(customer_phone, handle)

    async def _on_shutdown():
        directory.unregister(customer_phone, handle)

    ctx.add_shutdown_callback(_on_shutdown)

    await session.start(
        agent=SalonAssistant(customer_phone),
        room=ctx.room,
    )

    # Register this session for live follow-ups
    directory.register(customer_phone, handle, ctx.room.name or "unknown")
    _ensure_resolution_poller()

    session.generate_reply(
        instructions="Greet the customer warmly and ask how you can help them today. Keep it brief."
    )

    # Answers that arrived after an earlier call ended
    await get_follow_up_service().deliver_pending(customer_phone, get_delivery_notifier())

    logger.info("✅ Agent connected and ready")


if __name__ == "__main__":
    settings.require_livekit_credentials()
    cli.run_app(
        WorkerOptions(
            entrypoint_fnc=entrypoint,
            prewarm_fnc=prewarm,
            # Jobs share one process so the poller can see every live session
            job_executor_type=JobExecutorType.THREAD,
        )
    )
