from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

from wallpaper_service.storage.dynamodb import DynamoDBService
from wallpaper_service.storage.s3 import S3Service
from wallpaper_service.settings import settings
from wallpaper_service.routers.images import router as image_router
from wallpaper_service.routers.users import router as user_router
from wallpaper_service.exceptions import add_exception_handlers

logging.basicConfig(level=settings.log_level.upper())
log = logging.getLogger("wallpaper-service")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
        Async context manager for FastAPI application lifecycle events.
        Initializes and closes resources (S3, DynamoDB) for the application.
    """
    # Initialize resources
    app.state.settings = settings
    app.state.s3 = S3Service(settings)
    app.state.db = DynamoDBService(settings)
    log.info("Wallpaper service started")
    yield
    # Cleanup resources
    app.state.s3.close()
    app.state.db.close()

# Initialize App
app = FastAPI(
    title=settings.app_title,
    lifespan=lifespan,
    description="Wallpaper Service",
)

# Add exception handlers
add_exception_handlers(app)

# CORS - Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add the routers
app.include_router(image_router)
app.include_router(user_router)

# Check Health
@app.get("/")
def read_root():
    """
        Default end point

    """
    return "Wallpaper Service is running."

if __name__ == "__main__":
    uvicorn.run("wallpaper_service.main:app", host="0.0.0.0", port=settings.port, reload=True)
