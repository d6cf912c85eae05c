from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, Literal

# Documents keep the camelCase keys the front-end sends. Fields a client may
# never set (role, status of new records, timestamps) are simply absent from
# the create models; unknown keys are dropped.

Role = Literal["donor", "volunteer", "admin"]
UserStatus = Literal["active", "blocked"]
RequestStatus = Literal["pending", "inprogress", "done", "canceled"]

REQUEST_STATUSES = ("pending", "inprogress", "done", "canceled")
BLOG_STATUSES = ("draft", "published")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def document(self, partial: bool = False) -> dict:
        if partial:
            # an explicit null never clears a stored field
            return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        return self.model_dump(by_alias=True, exclude_none=True)


# Accounts

class UserCreate(CamelModel):
    email: str = Field(..., description="Unique email address")
    name: Optional[str] = None
    avatar: Optional[str] = Field(None, description="Profile image URL")
    blood_group: Optional[str] = None
    district: Optional[str] = None
    upazila: Optional[str] = Field(None, description="Sub-district")


class UserProfileUpdate(CamelModel):
    name: Optional[str] = None
    avatar: Optional[str] = None
    blood_group: Optional[str] = None
    district: Optional[str] = None
    upazila: Optional[str] = None


class AdminUserUpdate(CamelModel):
    role: Optional[Role] = None
    status: Optional[UserStatus] = None


# Donation requests

class DonationRequestCreate(CamelModel):
    requester_name: Optional[str] = None
    recipient_name: str
    recipient_district: str
    recipient_upazila: str
    hospital_name: str
    full_address: str
    blood_group: str
    donation_date: str
    donation_time: str
    request_message: Optional[str] = None


class DonationRequestUpdate(CamelModel):
    recipient_name: Optional[str] = None
    recipient_district: Optional[str] = None
    recipient_upazila: Optional[str] = None
    hospital_name: Optional[str] = None
    full_address: Optional[str] = None
    blood_group: Optional[str] = None
    donation_date: Optional[str] = None
    donation_time: Optional[str] = None
    request_message: Optional[str] = None
    status: Optional[RequestStatus] = None


class DonorClaim(CamelModel):
    donor_name: str
    donor_email: str


# Blogs

class BlogCreate(CamelModel):
    title: str
    thumbnail: Optional[str] = None
    content: str


class BlogUpdate(CamelModel):
    title: Optional[str] = None
    thumbnail: Optional[str] = None
    content: Optional[str] = None
    status: Optional[str] = Field(None, description="draft | published | other moderator-defined state")


# Payments

class PaymentIntentIn(BaseModel):
    amount: float = Field(..., gt=0, allow_inf_nan=False)


class PaymentIn(CamelModel):
    transaction_id: Optional[str] = None
    amount: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    email: Optional[str] = None
    name: Optional[str] = None
