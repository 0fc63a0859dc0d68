import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import create_document, ensure_indexes, get_db
from routers import (
    analytics,
    auth,
    banners,
    brands,
    cart,
    categories,
    coupons,
    orders,
    products,
    purchases,
    reviews,
    sales,
    site_settings,
    suppliers,
    testimonials,
    users,
    wishlist,
)
from routers.common import slugify
from schemas import Brand as BrandSchema, Category as CategorySchema, Product as ProductSchema
from uploads import upload_dir

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    upload_dir()
    try:
        ensure_indexes(get_db())
    except PyMongoError as e:
        logger.error("Could not ensure indexes: %s", e)
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Server error"})


for module in (auth, users, categories, brands, products, cart, coupons, wishlist, orders, reviews,
               testimonials, suppliers, purchases, sales, site_settings, banners, analytics):
    app.include_router(module.router)

app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/")
def read_root():
    return {"success": True, "message": "Storefront backend is running"}


# Seed sample data if empty
@app.post("/api/seed")
def seed():
    db = get_db()
    created = {"categories": 0, "brands": 0, "products": 0}
    if db["category"].count_documents({}) == 0:
        for name in ("Electronics", "Fashion", "Home & Living"):
            create_document(db, "category", CategorySchema(name=name, slug=slugify(name)))
            created["categories"] += 1
    if db["brand"].count_documents({}) == 0:
        for name in ("Acme", "Northwind"):
            create_document(db, "brand", BrandSchema(name=name, slug=slugify(name)))
            created["brands"] += 1
    if db["product"].count_documents({}) == 0:
        electronics = db["category"].find_one({"slug": "electronics"}) or db["category"].find_one({})
        fashion = db["category"].find_one({"slug": "fashion"}) or electronics
        acme = db["brand"].find_one({"slug": "acme"}) or db["brand"].find_one({})
        samples = [
            ProductSchema(
                name="Wireless Earbuds", description="Noise cancelling earbuds with a 24h case.",
                price=59.0, compare_price=79.0, category_id=str(electronics["_id"]),
                brand_id=str(acme["_id"]), stock=40, status="published", featured=True,
                tags=["audio", "wireless"],
            ),
            ProductSchema(
                name="Smart Watch", description="Fitness tracking and notifications.",
                price=129.0, category_id=str(electronics["_id"]), brand_id=str(acme["_id"]),
                stock=15, status="published", is_best_sale=True, tags=["wearable"],
            ),
            ProductSchema(
                name="Cotton T-Shirt", description="Soft everyday tee.", price=12.5,
                category_id=str(fashion["_id"]), stock=120, status="published", tags=["apparel"],
            ),
        ]
        for product in samples:
            data = product.model_dump()
            data.update(slug=slugify(product.name), rating=0, num_reviews=0, views=0)
            create_document(db, "product", data)
            created["products"] += 1
    logger.info("Seed finished: %s", created)
    return {"success": True, "created": created}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": settings.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db = get_db()
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run("main:app", host="0.0.0.0", port=port)
