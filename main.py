import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

# Local imports
import catalog
import config
import dashboard
import database
import orders
from database import ensure_indexes, get_db
from errors import AppError
from schemas import (
    Customer,
    CustomerStatus,
    CustomerUpdate,
    Order,
    OrderStatus,
    OrderStatusUpdate,
    Product,
    ProductUpdate,
    error_list,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            ensure_indexes(database.db)
        except PyMongoError:
            logger.exception("Could not create indexes")
    else:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, storage endpoints will answer 503")
    yield


app = FastAPI(title="Business Dashboard API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code < 500:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = error_list(exc.errors())
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=400, content={"message": "Validation failed", "errors": errors})


@app.get("/")
def read_root():
    return {"message": "Business Dashboard API running"}


@app.get("/health")
def health():
    response = {"status": "ok", "database": "not configured"}
    if database.db is not None:
        try:
            database.db.command("ping")
            response["database"] = "connected"
        except PyMongoError as e:
            logger.warning("Database ping failed: %s", e)
            response["database"] = "unreachable"
    return response


# CRUD Endpoints: Customers
@app.get("/customers")
def list_customers(q: Optional[str] = None, status: Optional[CustomerStatus] = None, db=Depends(get_db)):
    return catalog.list_customers(db, q=q, status=status)


@app.post("/customers", status_code=201)
def create_customer(customer: Customer, db=Depends(get_db)):
    return catalog.create_customer(db, customer)


@app.get("/customers/{customer_id}")
def get_customer(customer_id: str, db=Depends(get_db)):
    return catalog.get_customer(db, customer_id)


@app.patch("/customers/{customer_id}")
def update_customer(customer_id: str, payload: CustomerUpdate, db=Depends(get_db)):
    return catalog.update_customer(db, customer_id, payload)


@app.delete("/customers/{customer_id}", status_code=204)
def delete_customer(customer_id: str, db=Depends(get_db)):
    catalog.delete_customer(db, customer_id)
    return Response(status_code=204)


# CRUD Endpoints: Products
@app.get("/products")
def list_products(q: Optional[str] = None, db=Depends(get_db)):
    return catalog.list_products(db, q=q)


@app.post("/products", status_code=201)
def create_product(product: Product, db=Depends(get_db)):
    return catalog.create_product(db, product)


@app.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.patch("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db=Depends(get_db)):
    return catalog.update_product(db, product_id, payload)


@app.delete("/products/{product_id}", status_code=204)
def delete_product(product_id: str, db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return Response(status_code=204)


# Orders (transactions)
@app.get("/orders")
def list_orders(status: Optional[OrderStatus] = None, db=Depends(get_db)):
    return orders.list_orders(db, status=status)


@app.post("/orders", status_code=201)
def create_order(order: Order, db=Depends(get_db)):
    return orders.create_order(db, order)


@app.get("/orders/{order_id}")
def get_order(order_id: str, db=Depends(get_db)):
    return orders.get_order(db, order_id)


@app.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusUpdate, db=Depends(get_db)):
    return orders.update_order_status(db, order_id, payload.status)


# Dashboard
@app.get("/dashboard/stats")
def dashboard_stats(db=Depends(get_db)):
    return dashboard.get_dashboard(db)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
