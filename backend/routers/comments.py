from fastapi import APIRouter, Depends
import logging

from middleware.auth import get_current_identity
from services.comments import CommentService, CommentRequest
from services.tokens import SessionIdentity
from stores import StorePair, get_comment_stores

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/comments", tags=["Comments"])


def get_comment_service(comments: StorePair = Depends(get_comment_stores)) -> CommentService:
    return CommentService(comments)


@router.get("")
async def list_comments(service: CommentService = Depends(get_comment_service)):
    """
    All comments from both stores, newest first.

    `sources` reports which stores answered; a listing from one store is
    still returned when the other is down.
    """
    return await service.list_comments()


@router.get("/user/{user_id}")
async def list_user_comments(user_id: str, service: CommentService = Depends(get_comment_service)):
    return await service.list_user_comments(user_id)


@router.get("/{comment_id}")
async def get_comment(comment_id: str, service: CommentService = Depends(get_comment_service)):
    return await service.get_comment(comment_id)


@router.post("")
async def create_comment(
    data: CommentRequest,
    identity: SessionIdentity = Depends(get_current_identity),
    service: CommentService = Depends(get_comment_service),
):
    """Write the comment to every store the caller has an identity in."""
    return await service.create_comment(identity, data)


@router.put("/{comment_id}")
async def update_comment(
    comment_id: str,
    data: CommentRequest,
    identity: SessionIdentity = Depends(get_current_identity),
    service: CommentService = Depends(get_comment_service),
):
    return await service.update_comment(identity, comment_id, data)


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    identity: SessionIdentity = Depends(get_current_identity),
    service: CommentService = Depends(get_comment_service),
):
    return await service.delete_comment(identity, comment_id)
