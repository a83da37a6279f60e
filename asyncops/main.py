from fastapi import FastAPI
from .config import configure_logging
from .routers import operations

configure_logging()

app = FastAPI(title="Async Operations API", version="1.0.0")
app.include_router(operations.router)
