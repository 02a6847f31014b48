from fastapi import FastAPI

from download_stats.core.settings import settings
from download_stats.routers.events import router as events_router
from download_stats.routers.products import router as products_router
from download_stats.routers.statistics import router as statistics_router
from download_stats.startup import register_startup

app = FastAPI(title=settings.app_name)

register_startup(app)

app.include_router(events_router, tags=["events"])
app.include_router(products_router, prefix="/products", tags=["products"])
app.include_router(statistics_router, prefix="/statistics", tags=["statistics"])


@app.get("/health")
def health_check():
    return {"status": "ok"}
