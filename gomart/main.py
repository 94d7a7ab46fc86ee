import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .database import engine
from .models import Base
from .routers import cart_router, category_router, product_router, vendor_router
from .sweeper import start_reservation_sweeper

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="GoMart",
    description="Multi-vendor storefront: catalog, server-held carts with stock reservations, vendor accounts",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.include_router(product_router.router)
app.include_router(category_router.router)
app.include_router(cart_router.router)
app.include_router(vendor_router.router)
app.include_router(vendor_router.auth_router)


@app.on_event("startup")
def _startup() -> None:
    # Give back stock held by abandoned carts
    start_reservation_sweeper()


@app.get("/")
def root():
    return {
        "service": "GoMart",
        "status": "running",
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "gomart"}
