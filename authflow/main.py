import logging

from fastapi import FastAPI
from pydantic import BaseModel

from .config import settings
from .storage import RedisStorage
from .api_client import ApiClient
from .service import BotService

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(title="AuthFlow BotLogic")

storage = RedisStorage(settings.REDIS_HOST, settings.REDIS_PORT)
client = ApiClient(settings.API_BASE_URL, settings.HTTP_TIMEOUT_SEC)

svc = BotService(
    storage,
    client,
    login_ttl_sec=settings.LOGIN_TTL_SEC,
    reset_ttl_sec=settings.RESET_FLOW_TTL_SEC,
    min_password_length=settings.MIN_PASSWORD_LENGTH,
)


class MsgIn(BaseModel):
    chat_id: int
    text: str


@app.post("/message")
async def message(inp: MsgIn):
    messages = await svc.handle(inp.chat_id, inp.text)
    return {"messages": messages}


@app.get("/health")
async def health():
    return {"status": "ok"}
