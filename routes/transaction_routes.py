import logging

from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_current_user_id, get_transaction_service
from errors import BookVerseError
from models.book_models import Book
from services.transaction_service import BookAction, TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


async def _apply(action: BookAction, book_id: str, user_id: str, service: TransactionService) -> Book:
    try:
        return await service.transition(action, book_id, user_id)
    except BookVerseError:
        raise
    except Exception as e:
        logger.exception("Unexpected error on %s for book %s", action.value, book_id)
        raise HTTPException(status_code=500, detail=f"Server error: {e}")

@router.post("/request/{book_id}", response_model=Book)
async def request_book(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.REQUEST, book_id, user_id, service)

@router.post("/approve/{book_id}", response_model=Book)
async def approve_request(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.APPROVE, book_id, user_id, service)

@router.post("/reject/{book_id}", response_model=Book)
async def reject_request(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.REJECT, book_id, user_id, service)

@router.post("/cancel/{book_id}", response_model=Book)
async def cancel_request(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.CANCEL, book_id, user_id, service)

@router.post("/revoke/{book_id}", response_model=Book)
async def revoke_approval(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.REVOKE, book_id, user_id, service)

@router.post("/pickup/{book_id}", response_model=Book)
async def confirm_pickup(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.PICKUP, book_id, user_id, service)

@router.post("/return/{book_id}", response_model=Book)
async def mark_as_returned(
    book_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    return await _apply(BookAction.RETURN, book_id, user_id, service)
