from fastapi import APIRouter

from roommatch.schemas.match import ChatRequest, ChatResponse
from roommatch.services.chat import relay_prompt

router = APIRouter(tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatRequest):
    return ChatResponse(response=await relay_prompt(payload.prompt))
