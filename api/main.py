from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware

from auth import router as auth_router
from auth import service as auth_service
from chat import router as chat_router
from core import db, settings
from core.errors import register_exception_handlers
from core.logging import configure_logging
from core.notifications import hub
from dashboard import router as dashboard_router
from integrations import router as integrations_router
from jobs import scheduler
from tasks import router as tasks_router
from workflows import router as workflows_router

configure_logging()


@asynccontextmanager
async def lifespan(_: FastAPI):
    # Initialize the DB pool once per process.
    await db.init_pool()
    if settings.jobs_enabled():
        scheduler.start_jobs()
    try:
        yield
    finally:
        scheduler.stop_jobs()
        await db.close_pool()


app = FastAPI(lifespan=lifespan)
register_exception_handlers(app)

# Allow the frontend to call this API from the browser.
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router, tags=["auth"])
app.include_router(tasks_router.router, tags=["tasks"])
app.include_router(workflows_router.router, tags=["workflows"])
app.include_router(integrations_router.router, tags=["integrations"])
app.include_router(chat_router.router, tags=["chat"])
app.include_router(dashboard_router.router, tags=["dashboard"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.websocket("/ws/notifications")
async def notifications(websocket: WebSocket, token: str = "") -> None:
    try:
        user = await auth_service.get_user_from_access_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None

    user_id = int(user["id"])
    await websocket.accept()
    hub.connect(user_id, websocket)
    try:
        # Client messages are ignored; reading keeps the disconnect observable.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(user_id, websocket)
