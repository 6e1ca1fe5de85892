import logging

from fastapi import FastAPI

from .db import init_db
from .settings import settings
from .routers import health
from .routers import groups
from .routers import syllabi
from .routers import suggestions

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="CourseConnect Study API")
app.include_router(health.router)
app.include_router(syllabi.router)
app.include_router(groups.router)
app.include_router(suggestions.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	init_db()
