from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator
from pydantic.config import ConfigDict

Role = Literal["customer", "artisan"]
Status = Literal["pending", "accepted", "completed", "cancelled"]


class SignupRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    # length and confirmation are checked by the session store, not here
    password: str
    confirm_password: str
    name: str = Field(..., min_length=1, max_length=100)
    role: Role = "customer"
    location: str = Field("", max_length=200)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    description: Optional[str] = Field(default=None, max_length=2000)


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenRead(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    """Self-service edit. The role is deliberately absent."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    location: Optional[str] = Field(default=None, max_length=200)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    description: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def coordinates_come_in_pairs(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be set together")
        return self


class UserRead(BaseModel):
    id: int
    name: str
    role: str
    location: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OwnerRead(BaseModel):
    id: int
    name: str
    location: str

    model_config = ConfigDict(from_attributes=True)


class ProductWrite(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=4000)
    price: Decimal = Field(..., gt=Decimal("-0.01"))
    photo_url: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("price")
    def non_negative(cls, v: Decimal):
        if v < 0:
            raise ValueError("price must be non-negative")
        return v


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=4000)
    price: Optional[Decimal] = Field(default=None)
    photo_url: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("price")
    def non_negative(cls, v: Optional[Decimal]):
        if v is not None and v < 0:
            raise ValueError("price must be non-negative")
        return v


class ProductRead(BaseModel):
    id: int
    artisan_id: int
    name: str
    description: str
    price: Decimal
    photo_url: Optional[str] = None
    created_at: datetime
    artisan: Optional[OwnerRead] = None

    model_config = ConfigDict(from_attributes=True)


class OrderCreate(BaseModel):
    product_id: PositiveInt


class StatusChange(BaseModel):
    status: Status


class OrderProductRead(BaseModel):
    id: int
    name: str
    description: str
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: int
    product_id: int
    customer_id: int
    artisan_id: int
    status: str
    created_at: datetime
    product: Optional[OrderProductRead] = None
    customer: Optional[OwnerRead] = None
    artisan: Optional[OwnerRead] = None

    model_config = ConfigDict(from_attributes=True)


class NearbyArtisan(BaseModel):
    id: int
    name: str
    location: str
    latitude: float
    longitude: float
    description: Optional[str] = None
    product_count: int
    distance_miles: float


class NearbyRead(BaseModel):
    origin: tuple[float, float]
    artisans: list[NearbyArtisan]


class ArtisanDetail(UserRead):
    products: list[ProductRead] = []


class GeocodeRead(BaseModel):
    query: str
    latitude: float
    longitude: float


ArtisanDetail.model_rebuild()
