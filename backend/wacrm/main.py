from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wacrm.shared.core.config import settings
from wacrm.shared.core.logging import setup_logging
from wacrm.shared.middleware.correlation import CorrelationIdMiddleware
from wacrm.shared.utils.http_client import shutdown_http_client
from wacrm.modules.whatsapp.api import whatsapp_endpoints

setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Shutdown: release pooled Graph API connections
    await shutdown_http_client()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID on every request / log line
app.add_middleware(CorrelationIdMiddleware)

# Meta webhook (URL registered in the Meta app dashboard)
app.include_router(whatsapp_endpoints.webhook_router, prefix="/whatsapp", tags=["WhatsApp Webhook"])
app.include_router(
    whatsapp_endpoints.webhook_router,
    prefix=f"{settings.API_PREFIX}/whatsapp/webhook",
    tags=["WhatsApp Webhook"],
)

# Operator API
app.include_router(whatsapp_endpoints.router, prefix=f"{settings.API_PREFIX}/whatsapp", tags=["WhatsApp"])


@app.get("/")
def root():
    return {"message": f"{settings.PROJECT_NAME} API is running"}
