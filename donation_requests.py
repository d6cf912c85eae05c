"""Donation request lifecycle.

    pending ──claim──> inprogress ──> done
       │                   │
       └──> canceled <─────┘

Moderators (admin, volunteer) may force any status. A claim is a single
conditional update on ``status == "pending"``; whichever write MongoDB
applies first wins and every other claimant matches nothing.
"""
import logging
from typing import Optional

from fastapi import Depends
from pymongo.database import Database

from database import REQUESTS, NEWEST_FIRST, count_by, get_db, object_id, paginate, utcnow
from errors import AlreadyClaimed, InvalidInput, NotFound
from schemas import REQUEST_STATUSES

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "pending": {"inprogress", "canceled"},
    "inprogress": {"done", "canceled"},
    "done": set(),
    "canceled": set(),
}


class RequestLifecycle:

    def __init__(self, db: Database):
        self.collection = db[REQUESTS]

    def create(self, details: dict, requester_email: str) -> str:
        doc = dict(details)
        doc.pop("donor", None)
        doc["requesterEmail"] = requester_email
        doc["status"] = "pending"
        doc["createdAt"] = utcnow()
        result = self.collection.insert_one(doc)
        return str(result.inserted_id)

    def get(self, request_id: str) -> dict:
        doc = self.collection.find_one({"_id": object_id(request_id, "donation request")})
        if not doc:
            raise NotFound("Donation request not found.")
        return doc

    def claim(self, request_id: str, donor_name: str, donor_email: str):
        result = self.collection.update_one(
            {"_id": object_id(request_id, "donation request"), "status": "pending"},
            {"$set": {"status": "inprogress", "donor": {"name": donor_name, "email": donor_email}}},
        )
        if result.modified_count == 0:
            logger.info("Claim on %s by %s lost", request_id, donor_email)
            raise AlreadyClaimed()
        logger.info("Request %s claimed by %s", request_id, donor_email)

    def update(self, request_id: str, patch: dict, force: bool = False) -> bool:
        if not patch:
            return False
        oid = object_id(request_id, "donation request")
        filt = {"_id": oid}
        new_status = patch.get("status")
        if new_status is not None and not force:
            current = self.get(request_id).get("status")
            if new_status != current:
                if new_status not in TRANSITIONS.get(current, set()):
                    raise InvalidInput(f"Cannot move a {current} request to {new_status}.")
                # compare-and-set on the status just read
                filt["status"] = current
        result = self.collection.update_one(filt, {"$set": patch})
        if result.matched_count == 0:
            if "status" in filt:
                raise InvalidInput("Request status changed, reload and try again.")
            raise NotFound("Donation request not found.")
        if force and new_status is not None:
            logger.info("Request %s forced to %s", request_id, new_status)
        return result.modified_count > 0

    def list_by_status(self, status: Optional[str] = None) -> list:
        query = {"status": status} if status else {}
        return list(self.collection.find(query))

    def list_by_requester(self, email: str, status: Optional[str] = None, page: int = 1, limit: int = 5) -> dict:
        filt = {"requesterEmail": email}
        if status:
            filt["status"] = status
        return paginate(self.collection, filt, page, limit, NEWEST_FIRST)

    def list_paginated(self, page: int, limit: int, status: Optional[str] = None) -> dict:
        filt = {"status": status} if status else {}
        return paginate(self.collection, filt, page, limit, NEWEST_FIRST)

    def status_counts(self, requester_email: str) -> dict:
        return count_by(self.collection, "status", {"requesterEmail": requester_email}, REQUEST_STATUSES)

    def count(self) -> int:
        return self.collection.count_documents({})

    def delete(self, request_id: str):
        result = self.collection.delete_one({"_id": object_id(request_id, "donation request")})
        if result.deleted_count == 0:
            raise NotFound("Donation request not found.")
        logger.info("Request %s deleted", request_id)


def get_requests(db: Database = Depends(get_db)) -> RequestLifecycle:
    return RequestLifecycle(db)
