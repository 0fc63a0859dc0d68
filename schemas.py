"""
Database Schemas for the storefront and back-office

Each top-level Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name. Request-only models
(payloads of individual endpoints) follow the collection models.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

ProductStatus = Literal["draft", "published", "archived"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentState = Literal["pending", "confirmed", "rejected", "refunded"]
ModerationStatus = Literal["pending", "approved", "rejected"]


# ---------- Users ----------

class Address(BaseModel):
    id: Optional[str] = None
    name: str
    phone: str
    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "Bangladesh"
    is_default: bool = False


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    role: str = Field("customer", description="Role name, see permissions.ROLE_PERMISSIONS")
    phone: Optional[str] = None
    avatar_url: Optional[str] = Field(None)
    addresses: List[Address] = []
    is_active: bool = Field(True)
    last_login: Optional[datetime] = None


# ---------- Catalog ----------

class Category(BaseModel):
    name: str = Field(...)
    slug: Optional[str] = Field(None, description="URL-safe identifier, derived from name when empty")
    description: Optional[str] = None
    image: Optional[str] = None
    parent_id: Optional[str] = Field(None, description="Parent category id")
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    parent_id: Optional[str] = None
    is_active: Optional[bool] = None


class Brand(BaseModel):
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None
    is_active: bool = True


class BrandUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None
    is_active: Optional[bool] = None


class VariationOption(BaseModel):
    name: str
    value: str
    additional_price: float = 0
    image: Optional[str] = None


class VariationType(BaseModel):
    name: str = Field(..., description="e.g., Color or Size")
    options: List[VariationOption] = []


class VariantOption(BaseModel):
    type: str = Field(..., description="e.g., Color")
    value: str = Field(..., description="e.g., Red")


class Variant(BaseModel):
    sku: str
    price: float = Field(..., ge=0)
    compare_price: Optional[float] = None
    stock: int = Field(0, ge=0)
    options: List[VariantOption] = []
    images: List[str] = []
    is_default: bool = False
    status: Literal["active", "inactive", "draft"] = "active"


class VariantUpdate(BaseModel):
    sku: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    compare_price: Optional[float] = None
    stock: Optional[int] = Field(None, ge=0)
    options: Optional[List[VariantOption]] = None
    images: Optional[List[str]] = None
    is_default: Optional[bool] = None
    status: Optional[Literal["active", "inactive", "draft"]] = None


class Product(BaseModel):
    name: str
    slug: Optional[str] = None
    description: str
    short_description: Optional[str] = None
    price: float = Field(..., ge=0)
    compare_price: float = 0
    sale_price: Optional[float] = Field(None, ge=0, description="Reduced price used by the cart")
    category_id: str
    brand_id: Optional[str] = None
    stock: int = Field(0, ge=0)
    images: List[str] = []
    featured: bool = False
    status: ProductStatus = "draft"
    sku: Optional[str] = None
    tags: List[str] = []
    has_variations: bool = False
    variation_types: List[VariationType] = []
    variants: List[Variant] = []
    is_flash_sale: bool = False
    flash_sale_price: Optional[float] = Field(None, ge=0)
    flash_sale_start_date: Optional[datetime] = None
    flash_sale_end_date: Optional[datetime] = None
    is_best_sale: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    compare_price: Optional[float] = None
    sale_price: Optional[float] = Field(None, ge=0)
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    featured: Optional[bool] = None
    status: Optional[ProductStatus] = None
    sku: Optional[str] = None
    tags: Optional[List[str]] = None
    has_variations: Optional[bool] = None
    variation_types: Optional[List[VariationType]] = None
    is_flash_sale: Optional[bool] = None
    flash_sale_price: Optional[float] = Field(None, ge=0)
    flash_sale_start_date: Optional[datetime] = None
    flash_sale_end_date: Optional[datetime] = None
    is_best_sale: Optional[bool] = None


class ProductStatusUpdate(BaseModel):
    status: ProductStatus


class StockUpdateItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    stock: int = Field(..., ge=0)


class BulkStockUpdate(BaseModel):
    items: List[StockUpdateItem] = Field(..., min_length=1)


# ---------- Cart / wishlist / coupons ----------

class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    variation: Optional[Dict[str, Any]] = Field(None, description="Snapshot of the selected variant")


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = []
    coupon_id: Optional[str] = None


class CartItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    variation_id: Optional[str] = None


class CartItemRemove(BaseModel):
    product_id: str
    variation_id: Optional[str] = None


class CartSyncRequest(BaseModel):
    items: List[CartItemRequest]


class ApplyCouponRequest(BaseModel):
    code: str


class Coupon(BaseModel):
    code: str
    type: Literal["percentage", "fixed"]
    value: float = Field(..., ge=0)
    is_active: bool = True
    expires_at: Optional[datetime] = None


class Wishlist(BaseModel):
    user_id: str
    product_ids: List[str] = []


class WishlistAdd(BaseModel):
    product_id: str


# ---------- Orders ----------

class ShippingAddress(BaseModel):
    name: str
    phone: Optional[str] = None
    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "Bangladesh"


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None
    variant_id: Optional[str] = None
    variant_label: Optional[str] = None


class Payment(BaseModel):
    id: str
    amount: float = Field(..., gt=0)
    method: str
    status: PaymentState = "pending"
    transaction_id: Optional[str] = None
    note: Optional[str] = None
    images: List[str] = []
    paid_at: datetime


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    status: OrderStatus = "pending"
    shipping_address: ShippingAddress
    payment_method: str
    payments: List[Payment] = []
    paid_amount: float = 0
    payment_status: Literal["pending", "partial", "paid", "failed", "refunded"] = "pending"
    subtotal: float
    discount: float = 0
    coupon_code: Optional[str] = None
    tax: float = 0
    shipping_cost: float = 0
    total: float
    notes: Optional[str] = None
    tracking_number: Optional[str] = None


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    variant_id: Optional[str] = None


class OrderCreate(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: str
    notes: Optional[str] = None
    coupon_code: Optional[str] = None
    clear_cart: bool = False


class PaymentCreate(BaseModel):
    amount: float = Field(..., gt=0)
    method: str
    transaction_id: Optional[str] = None
    note: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: Literal["paid", "failed", "refunded"]
    transaction_id: Optional[str] = None


# ---------- Reviews / testimonials ----------

class Review(BaseModel):
    user_id: str
    user_name: str
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str
    comment: str
    images: List[str] = []
    status: ModerationStatus = "pending"
    admin_response: Optional[str] = None
    helpful: int = 0
    verified: bool = False


class ReviewCreate(BaseModel):
    product_id: str
    order_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1)
    comment: str = Field(..., min_length=1)
    images: List[str] = []


class ModerationUpdate(BaseModel):
    status: ModerationStatus


class AdminResponse(BaseModel):
    message: str = Field(..., min_length=1)


class Testimonial(BaseModel):
    name: str
    designation: Optional[str] = None
    content: str
    rating: int = Field(5, ge=1, le=5)
    avatar: Optional[str] = None
    user_id: Optional[str] = None
    status: ModerationStatus = "pending"
    is_featured: bool = False


class TestimonialUpdate(BaseModel):
    name: Optional[str] = None
    designation: Optional[str] = None
    content: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    avatar: Optional[str] = None
    is_featured: Optional[bool] = None


# ---------- Inventory / POS ----------

class Supplier(BaseModel):
    name: str
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class PurchaseItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_cost: float = Field(..., ge=0)


class PurchaseCreate(BaseModel):
    invoice_number: str = Field(..., min_length=1)
    supplier_id: str
    purchase_date: Optional[datetime] = None
    items: List[PurchaseItem] = Field(..., min_length=1)
    total_amount: Optional[float] = Field(None, ge=0)
    paid_amount: float = Field(0, ge=0)
    payment_method: Literal["cash", "bank_transfer", "check", "credit"] = "cash"
    notes: Optional[str] = None


class PurchaseUpdate(BaseModel):
    paid_amount: Optional[float] = Field(None, ge=0)
    payment_method: Optional[Literal["cash", "bank_transfer", "check", "credit"]] = None
    status: Optional[Literal["pending", "completed", "cancelled"]] = None
    notes: Optional[str] = None


class SaleItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(..., ge=1)
    price: Optional[float] = Field(None, ge=0, description="Defaults to the product's current price")


class SaleCustomer(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class SaleCreate(BaseModel):
    items: List[SaleItem] = Field(..., min_length=1)
    customer: SaleCustomer = SaleCustomer()
    discount: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    payment_method: Literal["cash", "card", "mobile_banking", "bank_transfer"]
    amount_received: float = Field(..., ge=0)
    notes: Optional[str] = None


# ---------- Site settings ----------

class SiteSettings(BaseModel):
    site_name: str = "Storefront"
    logo: Optional[str] = None
    favicon: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    currency: str = "BDT"
    currency_symbol: str = "৳"
    social_links: Dict[str, str] = {}
    announcement: Optional[str] = None
    home_sections: Dict[str, Any] = {}
    maintenance_mode: bool = False


class SiteSettingsUpdate(BaseModel):
    site_name: Optional[str] = None
    logo: Optional[str] = None
    favicon: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    currency: Optional[str] = None
    currency_symbol: Optional[str] = None
    social_links: Optional[Dict[str, str]] = None
    announcement: Optional[str] = None
    home_sections: Optional[Dict[str, Any]] = None
    maintenance_mode: Optional[bool] = None


class Banner(BaseModel):
    """Home page slider entry. Collection name: "banner"."""
    title: str = Field(..., min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: str = Field(..., min_length=1, description="Image URL, usually one returned by an upload")
    button_text: str = "Shop Now"
    button_link: str = "/products"
    background_color: str = "#f8fafc"
    text_color: str = "#1e293b"
    enabled: bool = True
    position: int = Field(1, description="Slides are shown in ascending position")
    start_date: Optional[datetime] = Field(None, description="Defaults to the creation time")
    end_date: Optional[datetime] = None


class BannerUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    subtitle: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = Field(None, min_length=1)
    button_text: Optional[str] = None
    button_link: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    enabled: Optional[bool] = None
    position: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ---------- Auth / profile ----------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


class RoleAssign(BaseModel):
    role: str
