# model/api.py
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class SubmitPostRequest(BaseModel):
    name: str = Field(min_length=1)
    deployedLink: HttpUrl
    description: str = Field(min_length=1)
    linkedinPostUrl: str | None = None
    twitterPostUrl: str | None = None
    tags: str = "other"
    clerkId: str = Field(min_length=1)


class PostResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = True
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def post_id(self) -> Any:
        return self.data.get("id")

    @property
    def likes(self) -> int | None:
        return self.data.get("likes")


class Subscription(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    status: str | None = None
    isActive: bool = False


class SubscriptionStatusResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool = True
    hasActiveSubscription: bool = False
    subscription: Subscription | None = None

    @property
    def is_active(self) -> bool:
        return bool(
            self.hasActiveSubscription
            and self.subscription is not None
            and self.subscription.isActive
        )


class CreditsResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    total: int = 0
    signup: int | None = None
    daily: int | None = None
