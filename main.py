import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

import accounts
import orders
import products
import users
from config import Settings, get_settings
from database import Database, utcnow
from errors import register_error_handlers
from logging_config import request_context, setup_logging

logger = logging.getLogger("main")

API_DIRECTORY = {
    "auth": {
        "POST /api/auth/register": "Register a new user",
        "POST /api/auth/login": "Login user",
        "GET /api/auth/profile": "Get user profile (Protected)",
        "PUT /api/auth/profile": "Update user profile (Protected)",
    },
    "products": {
        "GET /api/products": "Get all products with pagination and filtering",
        "GET /api/products/:id": "Get single product",
        "POST /api/products": "Create product (Admin only)",
        "PUT /api/products/:id": "Update product (Admin only)",
        "DELETE /api/products/:id": "Delete product (Admin only)",
        "GET /api/products/top/rated": "Get top rated products",
        "GET /api/products/categories/all": "Get all categories",
    },
    "orders": {
        "POST /api/orders": "Create new order (Protected)",
        "GET /api/orders/:id": "Get order by ID (Protected)",
        "PUT /api/orders/:id/pay": "Update order to paid (Protected)",
        "PUT /api/orders/:id/deliver": "Update order to delivered (Admin only)",
        "GET /api/orders/my/orders": "Get user orders (Protected)",
        "GET /api/orders": "Get all orders (Admin only)",
    },
    "users": {
        "GET /api/admin/users": "List users with search, role filter and pagination (Admin only)",
        "GET /api/admin/users/stats/overview": "User statistics (Admin only)",
        "GET /api/admin/users/:id": "Get user (Admin only)",
        "POST /api/admin/users": "Create user (Admin only)",
        "PUT /api/admin/users/:id": "Update user (Admin only)",
        "DELETE /api/admin/users/:id": "Delete user (Admin only)",
    },
}


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the API. A ``database`` passed in is used as-is and left open at shutdown."""
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database.connect(settings.database_url, settings.database_name)
        db.ensure_indexes()
        app.state.db = db
        logger.info(f"{settings.app_name} started", extra={"event_type": "app_ready"})
        try:
            yield
        finally:
            if database is None:
                db.close()

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        token = request_context.set((request.method, request.url.path))
        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(f"{response.status_code} in {(time.perf_counter() - started) * 1000:.1f}ms", extra={
                "event_type": "request_completed",
                "status": response.status_code,
            })
            return response
        finally:
            request_context.reset(token)

    register_error_handlers(app, settings)

    api = APIRouter(prefix="/api")

    @api.get("/health")
    def health():
        return {"status": "ok", "timestamp": utcnow().isoformat(), "service": settings.app_name}

    @api.get("/docs")
    def api_docs():
        return {
            "message": f"{settings.app_name} Documentation",
            "version": settings.app_version,
            "endpoints": API_DIRECTORY,
        }

    api.include_router(accounts.router)
    api.include_router(products.router)
    api.include_router(orders.router)
    api.include_router(users.router)
    app.include_router(api)

    @app.get("/")
    def read_root():
        return {"message": "E-commerce API running!"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
