"""
FastAPI backend for the chat assistant
Provides REST endpoints for managing conversations, chatting and editing messages
"""
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import config
from attachments import attachment_from_data_uri
from chat_session import ChatSession, SubmissionResult, SubmissionStatus
from conversation_store import ConversationStore
from edit_controller import EditController
from errors import (
    AttachmentTooLarge,
    ConversationNotFound,
    MessageNotEditable,
    ModerationUnavailable,
    SubmissionInFlight,
)
from generation import GenerationClient
from models import Conversation, Message
from moderation import ModerationGate
from persistence import JsonFileStorage


def build_session(storage_path: str = None) -> ChatSession:
    store = ConversationStore.load(JsonFileStorage(storage_path or config.STORAGE_PATH))
    return ChatSession(store, ModerationGate(), GenerationClient())


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    if getattr(app.state, "session", None) is None:
        app.state.session = build_session()
    yield


app = FastAPI(title="Chat Assistant API", version="1.0.0", lifespan=lifespan)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session(request: Request) -> ChatSession:
    return request.app.state.session


def get_editor(request: Request) -> EditController:
    # Each edit request carries its own start+commit, so no edit state outlives the request
    return EditController(request.app.state.session)


# Request/Response Models
class AttachmentIn(BaseModel):
    data: str  # data URI
    name: str


class ChatRequest(BaseModel):
    message: str = ""
    attachment: Optional[AttachmentIn] = None


class EditRequest(BaseModel):
    content: str


class ArchiveRequest(BaseModel):
    archived: bool = True


class ViewRequest(BaseModel):
    view: Literal["active", "archived"]


class ConversationSummary(BaseModel):
    id: str
    title: str
    archived: bool
    message_count: int


class ConversationList(BaseModel):
    conversations: List[ConversationSummary]
    active_id: Optional[str]
    view: str


class ChatResponse(BaseModel):
    status: str
    conversation_id: Optional[str]
    response: Optional[str] = None
    messages: List[Message] = []


class DraftResponse(BaseModel):
    text: str
    attachment_name: Optional[str] = None


def summarize(session: ChatSession) -> ConversationList:
    store = session.store
    return ConversationList(
        conversations=[
            ConversationSummary(id=c.id, title=c.title, archived=c.archived, message_count=len(c.messages))
            for c in store.visible()
        ],
        active_id=store.active_id,
        view=store.view,
    )


def to_response(session: ChatSession, result: SubmissionResult) -> ChatResponse:
    if result.status == SubmissionStatus.REJECTED:
        status_code = 409 if isinstance(result.error, SubmissionInFlight) else 400
        raise HTTPException(status_code=status_code, detail=str(result.error))
    if result.status == SubmissionStatus.FAILED:
        notices = session.pop_notifications()
        detail = notices[-1].description if notices else str(result.error)
        if isinstance(result.error, ModerationUnavailable):
            raise HTTPException(status_code=503, detail=detail)
        raise HTTPException(status_code=502, detail=detail)

    messages = []
    if session.store.exists(result.conversation_id):
        messages = session.store.get(result.conversation_id).messages
    return ChatResponse(
        status=result.status.value,
        conversation_id=result.conversation_id,
        response=result.reply,
        messages=messages,
    )


# API Endpoints
@app.get("/")
async def root():
    return {"message": "Chat Assistant API", "version": "1.0.0"}


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/api/conversations", response_model=ConversationList)
async def list_conversations(session: ChatSession = Depends(get_session)):
    return summarize(session)


@app.post("/api/conversations", response_model=Conversation)
async def create_conversation(session: ChatSession = Depends(get_session)):
    return session.new_chat()


@app.put("/api/view", response_model=ConversationList)
async def set_view(request: ViewRequest, session: ChatSession = Depends(get_session)):
    session.store.set_view(request.view)
    return summarize(session)


@app.get("/api/conversations/{conversation_id}", response_model=Conversation)
async def get_conversation(conversation_id: str, session: ChatSession = Depends(get_session)):
    try:
        return session.store.get(conversation_id)
    except ConversationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.post("/api/conversations/{conversation_id}/select", response_model=ConversationList)
async def select_conversation(conversation_id: str, session: ChatSession = Depends(get_session)):
    if not session.store.exists(conversation_id):
        raise HTTPException(status_code=404, detail=f"Conversation not found: {conversation_id}")
    session.store.select(conversation_id)
    return summarize(session)


@app.delete("/api/conversations/{conversation_id}", response_model=ConversationList)
async def delete_conversation(conversation_id: str, session: ChatSession = Depends(get_session)):
    try:
        session.store.delete(conversation_id)
    except ConversationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return summarize(session)


@app.post("/api/conversations/{conversation_id}/archive", response_model=ConversationList)
async def archive_conversation(conversation_id: str, request: ArchiveRequest,
                               session: ChatSession = Depends(get_session)):
    try:
        session.store.archive(conversation_id, request.archived)
    except ConversationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return summarize(session)


@app.get("/api/draft", response_model=DraftResponse)
async def get_draft(session: ChatSession = Depends(get_session)):
    draft = session.draft
    return DraftResponse(text=draft.text, attachment_name=draft.attachment.name if draft.attachment else None)


@app.post("/api/chat", response_model=ChatResponse)
async def chat_endpoint(request: ChatRequest, session: ChatSession = Depends(get_session)):
    """
    Send a message (optionally with an attachment) to the active conversation.
    """
    attachment = None
    if request.attachment is not None:
        try:
            attachment = attachment_from_data_uri(request.attachment.data, request.attachment.name)
        except AttachmentTooLarge as e:
            raise HTTPException(status_code=413, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid attachment: {e}")

    if session.in_flight:
        raise HTTPException(status_code=409, detail="A reply is still pending")

    session.stage_text(request.message)
    session.stage_attachment(attachment)
    result = await session.submit()
    return to_response(session, result)


@app.post("/api/conversations/{conversation_id}/messages/{message_index}/edit", response_model=ChatResponse)
async def edit_message(conversation_id: str, message_index: int, request: EditRequest,
                       session: ChatSession = Depends(get_session),
                       editor: EditController = Depends(get_editor)):
    """
    Replace a user message, discard everything after it and regenerate.
    """
    try:
        editor.start(conversation_id, message_index)
    except ConversationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except MessageNotEditable as e:
        raise HTTPException(status_code=409, detail=str(e))

    result = await editor.commit(request.content)
    return to_response(session, result)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
