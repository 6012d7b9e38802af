from enum import Enum
from typing import Annotated, Any, List, Optional, Type

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

# Documents are stored with camelCase keys, the same names the admin frontend reads.

Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Description = Annotated[str, StringConstraints(min_length=1, max_length=2000)]
Password = Annotated[str, StringConstraints(min_length=6)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)


class FieldError(BaseModel):
    field: str
    message: str


# ------------- Products -------------

class Product(CamelModel):
    name: Name
    description: Description
    price: float = Field(..., ge=0)
    category: Text
    brand: Text
    count_in_stock: int = Field(0, ge=0)
    image_url: Text
    rating: float = Field(0, ge=0, le=5)
    num_reviews: int = Field(0, ge=0)


class ProductUpdate(CamelModel):
    name: Optional[Name] = None
    description: Optional[Description] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[Text] = None
    brand: Optional[Text] = None
    count_in_stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[Text] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    num_reviews: Optional[int] = Field(None, ge=0)


# ------------- Orders -------------

class PaymentMethod(str, Enum):
    PAYPAL = "PayPal"
    STRIPE = "Stripe"
    CASH = "Cash"


class ShippingAddress(CamelModel):
    address: Text
    city: Text
    postal_code: Text
    country: Text


class OrderItemIn(CamelModel):
    product: Text
    quantity: int = Field(..., ge=1)


class OrderIn(CamelModel):
    order_items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    tax_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)


class Payer(BaseModel):
    email_address: Optional[str] = None


class PaymentResultIn(BaseModel):
    """Confirmation payload as the payment gateway sends it (snake_case)."""
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    payer: Optional[Payer] = None

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "updateTime": self.update_time,
            "emailAddress": self.payer.email_address if self.payer else None,
        }


# ------------- Users -------------

class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class _EmailModel(CamelModel):
    @field_validator("email", mode="after", check_fields=False)
    @classmethod
    def lower_email(cls, value):
        return value.lower() if value else value


class UserCreate(_EmailModel):
    name: Text
    email: EmailStr
    password: Password
    role: Role = Field(Role.USER, validate_default=True)


class UserUpdate(_EmailModel):
    name: Optional[Text] = None
    email: Optional[EmailStr] = None
    password: Optional[Password] = None
    role: Optional[Role] = None


class RegisterIn(_EmailModel):
    name: Text
    email: EmailStr
    password: Password


class LoginIn(_EmailModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(_EmailModel):
    name: Optional[Text] = None
    email: Optional[EmailStr] = None
    password: Optional[Password] = None


# ------------- Validation -------------

def _field_name(loc) -> str:
    return ".".join(str(part) for part in loc) or "body"


def collect_errors(model: Type[BaseModel], data: Any) -> List[FieldError]:
    try:
        model.model_validate(data)
    except PydanticValidationError as exc:
        return [FieldError(field=_field_name(err["loc"]), message=err["msg"]) for err in exc.errors()]
    return []


def validate_product(data: Any, partial: bool = False) -> List[FieldError]:
    return collect_errors(ProductUpdate if partial else Product, data)


def validate_order(data: Any) -> List[FieldError]:
    return collect_errors(OrderIn, data)


def validate_user(data: Any, partial: bool = False) -> List[FieldError]:
    return collect_errors(UserUpdate if partial else UserCreate, data)
