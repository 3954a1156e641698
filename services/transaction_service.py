"""Borrow-transaction state machine for listed books.

Every action is described once in ``TRANSITIONS`` and applied by
``TransactionService.transition``: the book is loaded, the action is checked
against the current status and the actor's relationship to the book, and the
change is written with a single conditional ``find_one_and_update`` whose
filter repeats the expected prior status. A concurrent writer that got there
first makes the filter miss, which surfaces as ``ConflictError``.

Notifications, emails and KPI counters run after the write and never fail
the transition.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument

from errors import ConflictError, LimitExceededError, NotFoundError, UnauthorizedError
from models.book_models import Book, BorrowRequestStatus
from models.kpi_models import KpiCounter
from models.notification_models import NotificationEvent, NotificationType
from utils import now_ms, serialize_doc, to_object_id

logger = logging.getLogger(__name__)

MAX_ACTIVE_TRANSACTIONS = 5

S = BorrowRequestStatus


class BookAction(str, Enum):
    REQUEST = "request"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    REVOKE = "revoke"
    PICKUP = "pickup"
    RETURN = "return"


class ActorRole(str, Enum):
    OWNER = "owner"
    REQUESTER = "requester"
    NOT_OWNER = "not_owner"


@dataclass(frozen=True)
class NotificationRule:
    recipient: str  # "owner", "requester" or "borrower", read from the book before the write
    type: NotificationType
    template: str
    relate_actor: bool = True
    giveaway_type: Optional[NotificationType] = None
    giveaway_template: Optional[str] = None
    email_kind: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[BorrowRequestStatus]
    actor: ActorRole
    target: BorrowRequestStatus
    conflict_message: str
    unauthorized_message: str
    notification: NotificationRule
    giveaway_target: Optional[BorrowRequestStatus] = None
    assign_actor_to: Optional[str] = None
    stamp: Tuple[str, ...] = ()
    clear: Tuple[str, ...] = ()
    set_fields: Dict[str, Any] = field(default_factory=dict)
    counter: Optional[KpiCounter] = None
    giveaway_counter: Optional[KpiCounter] = None


REQUESTER_FIELDS = ("requestedByUserId", "requestedTimestamp")

TRANSITIONS: Dict[BookAction, Transition] = {
    BookAction.REQUEST: Transition(
        sources=frozenset({S.NONE, S.RETURNED, S.REJECTED, S.CANCELLED}),
        actor=ActorRole.NOT_OWNER,
        target=S.PENDING,
        conflict_message="Book is not available for request",
        unauthorized_message="You cannot request your own book",
        assign_actor_to="requestedByUserId",
        stamp=("requestedTimestamp",),
        notification=NotificationRule(
            recipient="owner",
            type=NotificationType.BORROW_REQUEST_RECEIVED,
            template="{actor_name} has requested to borrow '{title}'.",
            email_kind="book_request",
        ),
    ),
    BookAction.APPROVE: Transition(
        sources=frozenset({S.PENDING}),
        actor=ActorRole.OWNER,
        target=S.APPROVED,
        conflict_message="No pending request to approve",
        unauthorized_message="Not authorized to approve this request",
        stamp=("decisionTimestamp",),
        notification=NotificationRule(
            recipient="requester",
            type=NotificationType.BORROW_REQUEST_APPROVED,
            template="{actor_name} has approved your request for '{title}'. Please coordinate pickup.",
            email_kind="request_approved",
        ),
    ),
    BookAction.REJECT: Transition(
        sources=frozenset({S.PENDING}),
        actor=ActorRole.OWNER,
        target=S.REJECTED,
        conflict_message="No pending request to reject",
        unauthorized_message="Not authorized to reject this request",
        stamp=("decisionTimestamp",),
        clear=REQUESTER_FIELDS,
        notification=NotificationRule(
            recipient="requester",
            type=NotificationType.BORROW_REQUEST_REJECTED,
            template="Your request for '{title}' was not approved at this time.",
            relate_actor=False,
            email_kind="request_rejected",
        ),
    ),
    BookAction.CANCEL: Transition(
        sources=frozenset({S.PENDING, S.APPROVED}),
        actor=ActorRole.REQUESTER,
        target=S.CANCELLED,
        conflict_message="Request cannot be cancelled at this stage",
        unauthorized_message="Not authorized to cancel this request",
        stamp=("decisionTimestamp",),
        clear=REQUESTER_FIELDS,
        notification=NotificationRule(
            recipient="owner",
            type=NotificationType.BORROW_REQUEST_CANCELLED,
            template="{actor_name} has cancelled their request for '{title}'.",
        ),
    ),
    BookAction.REVOKE: Transition(
        sources=frozenset({S.APPROVED}),
        actor=ActorRole.OWNER,
        target=S.CANCELLED,
        conflict_message="No approved request to revoke",
        unauthorized_message="Not authorized to revoke this approval",
        clear=REQUESTER_FIELDS + ("decisionTimestamp", "pickupTimestamp"),
        notification=NotificationRule(
            recipient="requester",
            type=NotificationType.APPROVAL_REVOKED,
            template="The owner has revoked their approval for '{title}'.",
        ),
    ),
    BookAction.PICKUP: Transition(
        sources=frozenset({S.APPROVED}),
        actor=ActorRole.REQUESTER,
        target=S.PICKUP_CONFIRMED,
        giveaway_target=S.GIVEAWAY_COMPLETED,
        conflict_message="Book is not approved for pickup",
        unauthorized_message="Not authorized to confirm pickup",
        assign_actor_to="borrowedByUserId",
        stamp=("pickupTimestamp",),
        set_fields={"isAvailable": False},
        giveaway_counter=KpiCounter.TOTAL_GIVEAWAYS,
        notification=NotificationRule(
            recipient="owner",
            type=NotificationType.BOOK_PICKED_UP,
            template="{actor_name} has picked up '{title}'.",
            giveaway_type=NotificationType.GIVEAWAY_COMPLETED,
            giveaway_template="{actor_name} has collected your giveaway '{title}'.",
        ),
    ),
    BookAction.RETURN: Transition(
        sources=frozenset({S.PICKUP_CONFIRMED}),
        actor=ActorRole.OWNER,
        target=S.RETURNED,
        conflict_message="Book is not currently borrowed",
        unauthorized_message="Not authorized to mark this book as returned",
        stamp=("returnedTimestamp",),
        clear=REQUESTER_FIELDS + ("borrowedByUserId", "pickupTimestamp", "decisionTimestamp"),
        set_fields={"isAvailable": True},
        counter=KpiCounter.TOTAL_BOOKS_BORROWED,
        notification=NotificationRule(
            recipient="borrower",
            type=NotificationType.BOOK_MARKED_RETURNED,
            template="'{title}' has been marked as returned by the owner.",
            relate_actor=False,
            email_kind="book_returned",
        ),
    ),
}


def status_values(statuses) -> list:
    values = [status.value for status in statuses]
    if S.NONE in statuses:
        # Books listed before the status field existed carry null or nothing
        values.append(None)
    return values


def book_from_doc(doc: Dict[str, Any]) -> Book:
    book = serialize_doc(doc)
    book["ownerId"] = str(book.get("ownerId", ""))
    book["borrowRequestStatus"] = book.get("borrowRequestStatus") or S.NONE.value
    return Book(**book)


class TransactionService:
    def __init__(self, database, notifier, counters, users, email_sender=None):
        self.db = database
        self.notifier = notifier
        self.counters = counters
        self.users = users
        self.email_sender = email_sender

    async def get_book(self, book_id: str) -> Book:
        doc = await self.db.books.find_one({"_id": to_object_id(book_id, "book ID")})
        if not doc:
            raise NotFoundError("Book not found")
        return book_from_doc(doc)

    async def count_active_transactions(self, user_id: str) -> int:
        return await self.db.books.count_documents({
            "$or": [
                {
                    "requestedByUserId": user_id,
                    "borrowRequestStatus": {"$in": [S.PENDING.value, S.APPROVED.value]},
                },
                {"borrowedByUserId": user_id, "borrowRequestStatus": S.PICKUP_CONFIRMED.value},
            ]
        })

    async def request_book(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.REQUEST, book_id, actor_id)

    async def approve_request(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.APPROVE, book_id, actor_id)

    async def reject_request(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.REJECT, book_id, actor_id)

    async def cancel_request(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.CANCEL, book_id, actor_id)

    async def revoke_approval(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.REVOKE, book_id, actor_id)

    async def confirm_pickup(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.PICKUP, book_id, actor_id)

    async def mark_as_returned(self, book_id: str, actor_id: str) -> Book:
        return await self.transition(BookAction.RETURN, book_id, actor_id)

    async def transition(self, action: BookAction, book_id: str, actor_id: str) -> Book:
        rule = TRANSITIONS[BookAction(action)]
        book = await self.get_book(book_id)

        if book.borrowRequestStatus not in rule.sources:
            raise ConflictError(rule.conflict_message)
        self._authorize(rule, book, actor_id)

        query: Dict[str, Any] = {
            "_id": to_object_id(book.id),
            "borrowRequestStatus": {"$in": status_values(rule.sources)},
        }
        query.update(self._actor_filter(rule, actor_id))

        if action == BookAction.REQUEST:
            if book.isPausedByOwner or book.isDeactivatedByAdmin:
                raise ConflictError(rule.conflict_message)
            active = await self.count_active_transactions(actor_id)
            if active >= MAX_ACTIVE_TRANSACTIONS:
                raise LimitExceededError(
                    f"You have reached the maximum limit of {MAX_ACTIVE_TRANSACTIONS} active "
                    "requests or borrowed books. Please return a book to request a new one."
                )
            query["isPausedByOwner"] = {"$ne": True}
            query["isDeactivatedByAdmin"] = {"$ne": True}

        is_giveaway = bool(rule.giveaway_target and book.isGiveaway)
        if rule.giveaway_target:
            # The target depends on the flag, so the flag is part of the expectation too
            query["isGiveaway"] = True if is_giveaway else {"$ne": True}

        updated = await self.db.books.find_one_and_update(
            query,
            self._build_update(rule, actor_id, is_giveaway),
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise ConflictError("Book was changed by another request. Refresh and try again.")

        result = book_from_doc(updated)
        logger.info(
            "Book %s: %s -> %s by %s",
            result.id, book.borrowRequestStatus.value, result.borrowRequestStatus.value, actor_id,
        )

        counter = rule.giveaway_counter if is_giveaway else rule.counter
        if counter:
            await self._increment(counter)
        await self._notify(rule, book, result, actor_id, is_giveaway)
        return result

    def _authorize(self, rule: Transition, book: Book, actor_id: str) -> None:
        if rule.actor == ActorRole.OWNER:
            allowed = book.ownerId == actor_id
        elif rule.actor == ActorRole.REQUESTER:
            allowed = book.requestedByUserId is not None and book.requestedByUserId == actor_id
        else:
            allowed = book.ownerId != actor_id
        if not allowed:
            raise UnauthorizedError(rule.unauthorized_message)

    def _actor_filter(self, rule: Transition, actor_id: str) -> Dict[str, Any]:
        # Some listings store ownerId as an ObjectId, others as its hex string
        owner_forms = [actor_id, ObjectId(actor_id)] if ObjectId.is_valid(actor_id) else [actor_id]
        if rule.actor == ActorRole.OWNER:
            return {"ownerId": {"$in": owner_forms}}
        if rule.actor == ActorRole.REQUESTER:
            return {"requestedByUserId": actor_id}
        return {"ownerId": {"$nin": owner_forms}}

    def _build_update(self, rule: Transition, actor_id: str, is_giveaway: bool) -> Dict[str, Any]:
        now = now_ms()
        target = rule.giveaway_target if is_giveaway else rule.target
        to_set: Dict[str, Any] = {"borrowRequestStatus": target.value}
        to_set.update(rule.set_fields)
        for name in rule.stamp:
            to_set[name] = now
        if rule.assign_actor_to:
            to_set[rule.assign_actor_to] = actor_id

        update: Dict[str, Any] = {"$set": to_set}
        if rule.clear:
            update["$unset"] = {name: "" for name in rule.clear}
        return update

    async def _increment(self, counter: KpiCounter) -> None:
        try:
            await self.counters.increment(counter)
        except Exception:
            logger.exception("Failed to increment KPI counter %s", counter.value)

    async def _notify(
        self, rule: Transition, before: Book, after: Book, actor_id: str, is_giveaway: bool
    ) -> None:
        note = rule.notification
        recipient_id = {
            "owner": before.ownerId,
            "requester": before.requestedByUserId,
            "borrower": before.borrowedByUserId,
        }[note.recipient]
        if not recipient_id:
            logger.warning("No %s to notify for book %s", note.recipient, before.id)
            return

        title = before.title or "a book"
        actor_name, actor_unit = "Someone", ""
        try:
            actor = await self.users.find_by_id(actor_id)
            if actor:
                actor_name, actor_unit = actor.name, actor.communityUnit
        except Exception:
            logger.exception("Failed to resolve actor %s for book %s", actor_id, before.id)

        try:
            template = note.giveaway_template if is_giveaway and note.giveaway_template else note.template
            event = NotificationEvent(
                userId=recipient_id,
                type=note.giveaway_type if is_giveaway and note.giveaway_type else note.type,
                message=template.format(actor_name=actor_name, title=title),
                bookId=after.id,
                relatedUserId=actor_id if note.relate_actor else None,
            )
            await self.notifier.create(event)
        except Exception:
            logger.exception("Failed to create notification for book %s", before.id)

        if note.email_kind and self.email_sender is not None:
            try:
                recipient = await self.users.find_by_id(recipient_id)
                await self.email_sender.send(
                    note.email_kind,
                    recipient,
                    {
                        "actor_name": actor_name,
                        "actor_unit": actor_unit,
                        "book_title": title,
                    },
                )
            except Exception:
                logger.exception("Failed to send %s email for book %s", note.email_kind, before.id)
