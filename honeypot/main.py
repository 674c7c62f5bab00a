"""
FastAPI Application — Honeypot Conversation Intelligence API
Main entry point. Accepts inbound messages per session, answers engaged
scammers in character, and hands closed sessions to the report dispatcher.
"""

import logging
import re
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from honeypot.agent import HoneyPotAgent
from honeypot.callback import CallbackDispatcher
from honeypot.config import Settings, configure_logging, validate_config
from honeypot.models import HoneypotRequest, validate_request
from honeypot.report import build_final_report
from honeypot.session_manager import SessionManager

logger = logging.getLogger(__name__)

VERSION = "3.0.0"


# ── Log Redaction Utility ──────────────────────────────────────

EMAIL_REDACT = re.compile(r'[\w.+-]+@[\w.-]+')
PHONE_REDACT = re.compile(r'\+?\d[\d\s\-]{8,}\d')
DIGITS_REDACT = re.compile(r'\d{6,}')


def redact(text: str) -> str:
    """Mask @-handles, phone-like runs and long digit sequences before logging."""
    text = EMAIL_REDACT.sub('[REDACTED_HANDLE]', text)
    text = PHONE_REDACT.sub('[REDACTED_PHONE]', text)
    return DIGITS_REDACT.sub('[REDACTED_DIGITS]', text)


# ── App Factory ────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    agent: Optional[HoneyPotAgent] = None,
    manager: Optional[SessionManager] = None,
    dispatcher: Optional[CallbackDispatcher] = None,
) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        validate_config(settings)

    if manager is None:
        if agent is None:
            agent = HoneyPotAgent(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                lookup_window=settings.lookup_window,
                max_turns=settings.max_turns,
            )
        manager = SessionManager(agent, max_turns=settings.max_turns)
    if dispatcher is None:
        dispatcher = CallbackDispatcher(settings.callback_url)

    app = FastAPI(title="Honeypot Conversation Intelligence API", version=VERSION)
    app.state.settings = settings
    app.state.manager = manager
    app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def require_api_key(x_api_key: Optional[str] = Header(None, alias="x-api-key")) -> None:
        secret = settings.api_key
        if secret and x_api_key != secret:
            logger.warning("Rejected request with missing or invalid x-api-key")
            raise HTTPException(status_code=401, detail="Unauthorized")

    # ── Error Handlers ──────────────────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body') or 'body'}: {err.get('msg')}"
            for err in exc.errors()
        ]
        logger.warning("Malformed request to %s: %s", request.url.path, details)
        return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    # ── Health Check ────────────────────────────────────────────

    @app.get("/")
    @app.get("/health")
    async def health():
        return {
            "status": "Honeypot Active",
            "version": VERSION,
            "activeSessions": manager.active_sessions(),
        }

    # ── Message Intake ──────────────────────────────────────────

    @app.post("/", dependencies=[Depends(require_api_key)])
    @app.post("/honeypot", dependencies=[Depends(require_api_key)])
    async def honeypot(incoming: HoneypotRequest, background_tasks: BackgroundTasks):
        errors = validate_request(incoming)
        if errors:
            logger.warning("Rejected request: %s", "; ".join(errors))
            return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": errors})

        sid = incoming.sessionId.strip()
        message = incoming.message
        logger.info("📥 Session: %s, sender: %s, msg: %s", sid, message.sender, redact(message.text[:120]))

        result = await manager.process_message(
            session_id=sid,
            text=message.text,
            sender=message.sender,
            timestamp=message.timestamp,
            metadata=incoming.metadata,
        )

        if result.report_due:
            session = manager.get_session(sid)
            background_tasks.add_task(dispatcher.send_final_report, session)

        logger.info(
            "📤 Session: %s, scam_detected: %s, closed: %s, reply_len: %d",
            sid, result.scam_detected, result.session_closed, len(result.reply or ""),
        )
        return result.to_response()

    # ── Final Output Endpoint ───────────────────────────────────

    @app.get("/final-output/{session_id}", dependencies=[Depends(require_api_key)])
    async def get_final_output(session_id: str):
        """Evidence report for a closed session."""
        session = manager.get_session(session_id)
        if session is None or not session.is_closed:
            raise HTTPException(status_code=404, detail="No closed session with that id")
        return build_final_report(session).model_dump()

    return app


app = create_app()


# ── Run ─────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port, reload=False)
