from fastapi import FastAPI
from .routers import k8s, services
from .config import get_settings
from . import __version__
import logging

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Service Control Plane API", version=__version__)

app.include_router(services.router)
app.include_router(k8s.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "svcplane"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
