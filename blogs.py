import logging
from typing import Optional

from fastapi import Depends
from pymongo.database import Database

from database import BLOGS, count_by, get_db, object_id, utcnow
from errors import NotFound
from schemas import BLOG_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "draft"


class ContentStore:
    """Blog posts with a draft/publish workflow."""

    def __init__(self, db: Database):
        self.collection = db[BLOGS]

    def create(self, content: dict, author_email: Optional[str] = None) -> str:
        doc = dict(content)
        now = utcnow()
        doc.update(status=DEFAULT_STATUS, createdAt=now, updatedAt=now)
        if author_email:
            doc["authorEmail"] = author_email
        return str(self.collection.insert_one(doc).inserted_id)

    def list_visible(self, privileged: bool, status: Optional[str] = None) -> list:
        if not privileged:
            query = {"status": "published"}
        else:
            query = {"status": status} if status else {}
        return list(self.collection.find(query).sort([("createdAt", -1), ("_id", -1)]))

    def get(self, blog_id: str, privileged: bool = False) -> dict:
        blog = self.collection.find_one({"_id": object_id(blog_id, "blog")})
        if not blog or (not privileged and blog.get("status") != "published"):
            raise NotFound("Blog not found.")
        return blog

    def set_fields(self, blog_id: str, patch: dict) -> bool:
        blog = self.get(blog_id, privileged=True)
        if not patch:
            return False
        changes = dict(patch)
        # a status transition keeps updatedAt as the last content edit
        status_changed = "status" in changes and changes["status"] != blog.get("status")
        if not status_changed:
            changes["updatedAt"] = utcnow()
        result = self.collection.update_one({"_id": blog["_id"]}, {"$set": changes})
        if status_changed:
            logger.info("Blog %s moved to %s", blog_id, changes["status"])
        return result.modified_count > 0

    def delete(self, blog_id: str):
        result = self.collection.delete_one({"_id": object_id(blog_id, "blog")})
        if result.deleted_count == 0:
            raise NotFound("Blog not found.")

    def stats(self) -> dict:
        return count_by(self.collection, "status", known=BLOG_STATUSES)


def get_blogs(db: Database = Depends(get_db)) -> ContentStore:
    return ContentStore(db)
