"""Buyer/seller messaging endpoints."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from curio_market.core.security import require_user
from curio_market.crud.message import thread_crud
from curio_market.crud.user import user_crud
from curio_market.db.session import get_db
from curio_market.models.message import MessageThread
from curio_market.models.user import User
from curio_market.schemas.message import (
    MessageCreate,
    MessageResponse,
    ThreadCreate,
    ThreadResponse,
    UnreadCount,
)

router = APIRouter()


async def participant_thread(db: AsyncSession, thread_id: str, user: User) -> MessageThread:
    thread = await thread_crud.get(db, thread_id)
    if thread is None or not thread.has_participant(user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    return thread


def thread_response(thread: MessageThread, unread: int = 0) -> ThreadResponse:
    response = ThreadResponse.model_validate(thread)
    response.unread_count = unread
    return response


@router.get("/threads", response_model=List[ThreadResponse])
async def list_threads(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    threads = await thread_crud.list_for_user(db, user.id)
    counts = await thread_crud.unread_counts(db, user.id, [t.id for t in threads])
    return [thread_response(t, counts.get(t.id, 0)) for t in threads]


@router.post("/threads", response_model=ThreadResponse)
async def start_thread(
    body: ThreadCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Open (or reopen) the conversation with a seller about a listing."""
    if body.seller_user_id == user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot message yourself")
    if await user_crud.get(db, body.seller_user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")

    thread = await thread_crud.get_or_create(
        db,
        buyer_id=user.id,
        seller_id=body.seller_user_id,
        listing_id=body.listing_id,
        order_id=body.order_id,
        subject=body.subject,
    )
    if body.content:
        await thread_crud.add_message(db, thread, user.id, body.content)
    return thread_response(thread)


@router.get("/threads/{thread_id}", response_model=List[MessageResponse])
async def read_thread(
    thread_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Messages oldest first; the other side's messages are marked read."""
    thread = await participant_thread(db, thread_id, user)
    await thread_crud.mark_read(db, thread.id, user.id)
    return await thread_crud.get_messages(db, thread.id)


@router.post("/threads/{thread_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    thread_id: str,
    body: MessageCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    thread = await participant_thread(db, thread_id, user)
    return await thread_crud.add_message(db, thread, user.id, body.content)


@router.get("/unread", response_model=UnreadCount)
async def unread(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCount(unread=await thread_crud.total_unread(db, user.id))
