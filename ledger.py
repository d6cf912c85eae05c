import logging
import math

from fastapi import Depends
from pymongo.database import Database

from database import PAYMENTS, get_db, utcnow
from errors import InvalidInput

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("transactionId", "amount", "email")


class Ledger:
    """Append-only fundraiser payment records. There is no update or delete."""

    def __init__(self, db: Database):
        self.collection = db[PAYMENTS]

    def record_payment(self, payment: dict) -> str:
        missing = [f for f in REQUIRED_FIELDS if payment.get(f) in (None, "")]
        if missing:
            raise InvalidInput(f"Missing required field(s): {', '.join(missing)}")
        amount = payment["amount"]
        if not isinstance(amount, (int, float)) or not math.isfinite(amount) or amount <= 0:
            raise InvalidInput("Amount must be a positive number")
        doc = {
            "transactionId": payment["transactionId"],
            "amount": payment["amount"],
            "email": payment["email"],
            "name": payment.get("name"),
            "status": "succeeded",
            "paidAt": utcnow(),
        }
        result = self.collection.insert_one(doc)
        logger.info("Recorded payment %s of %s from %s", doc["transactionId"], doc["amount"], doc["email"])
        return str(result.inserted_id)

    def total_funds(self) -> float:
        pipeline = [{"$group": {"_id": None, "total": {"$sum": "$amount"}}}]
        rows = list(self.collection.aggregate(pipeline))
        return rows[0]["total"] if rows else 0

    def list(self) -> list:
        return list(self.collection.find().sort([("paidAt", -1), ("_id", -1)]))


def get_ledger(db: Database = Depends(get_db)) -> Ledger:
    return Ledger(db)
