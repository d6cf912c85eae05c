import logging
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, NEWEST_FIRST, get_db, paginate, utcnow
from errors import InvalidInput, InvalidQuery, NotFound

logger = logging.getLogger(__name__)

# Profile keys an account owner may change on their own record
PROFILE_FIELDS = ("name", "avatar", "bloodGroup", "district", "upazila")


class AccountRegistry:
    """User documents: registration, profile edits, role/status moderation, donor search."""

    def __init__(self, db: Database):
        self.collection = db[USERS]

    def create(self, profile: dict) -> str:
        doc = {k: v for k, v in profile.items() if k in PROFILE_FIELDS + ("email",)}
        if not doc.get("email"):
            raise InvalidInput("Email is required.")
        now = utcnow()
        doc.update(role="donor", status="active", createdAt=now, lastLoginAt=now)
        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise InvalidInput("User already exists.")
        logger.info("Registered account %s", doc["email"])
        return str(result.inserted_id)

    def find_by_email(self, email: str) -> dict:
        user = self.collection.find_one({"email": email})
        if not user:
            raise NotFound("User not found")
        return user

    def lookup(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email}, {"role": 1, "status": 1})

    def role_of(self, email: str) -> str:
        return self.find_by_email(email).get("role", "donor")

    def update_profile(self, email: str, patch: dict) -> bool:
        changes = {k: v for k, v in patch.items() if k in PROFILE_FIELDS}
        if not changes:
            return False
        result = self.collection.update_one({"email": email}, {"$set": changes})
        if result.matched_count == 0:
            raise NotFound("User not found")
        return result.modified_count > 0

    def touch_last_login(self, email: str) -> bool:
        result = self.collection.update_one({"email": email}, {"$set": {"lastLoginAt": utcnow()}})
        if result.matched_count == 0:
            raise NotFound("User not found")
        return result.modified_count > 0

    def search_donors(self, blood_group: Optional[str], district: Optional[str], upazila: Optional[str]) -> list:
        if not blood_group or not district or not upazila:
            raise InvalidQuery("All fields are required.")
        query = {
            "bloodGroup": blood_group,
            "district": district,
            "upazila": upazila,
            "role": "donor",
            "status": "active",
        }
        donors = list(self.collection.find(query))
        logger.debug("Donor search %s matched %d", query, len(donors))
        return donors

    def admin_update(self, user_id: str, changes: dict) -> bool:
        changes = {k: v for k, v in changes.items() if k in ("role", "status") and v is not None}
        if not changes:
            raise InvalidQuery("Role or status is required.")
        if not ObjectId.is_valid(user_id):
            raise NotFound("User not found")
        result = self.collection.update_one({"_id": ObjectId(user_id)}, {"$set": changes})
        if result.matched_count == 0:
            raise NotFound("User not found")
        logger.info("Admin update on user %s: %s", user_id, changes)
        return result.modified_count > 0

    def list_paginated(self, page: int, limit: int, status: Optional[str] = None) -> dict:
        filt = {"status": status} if status else {}
        return paginate(self.collection, filt, page, limit, NEWEST_FIRST)

    def count_donors(self) -> int:
        return self.collection.count_documents({"role": "donor"})


def get_accounts(db: Database = Depends(get_db)) -> AccountRegistry:
    return AccountRegistry(db)
