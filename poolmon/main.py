import logging

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from .config import get_settings
from .db import init_facade
from .modules.monitor import router as monitor_router


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.title)

# Pools named in the settings, exposed through the facade
app.state.facade = init_facade(settings)


@app.get("/", include_in_schema=False)
async def index():
    return RedirectResponse(url=settings.route_prefix, status_code=307)


# Include module routers
app.include_router(monitor_router, prefix=settings.route_prefix)


@app.on_event("startup")
async def _log_startup():
    logger.info(
        "%s serving %d pool(s) at %s",
        settings.title,
        len(app.state.facade.list_aliases()),
        settings.route_prefix,
    )


@app.on_event("shutdown")
async def _dispose_pools():
    app.state.facade.dispose()
