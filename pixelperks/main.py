from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from pixelperks.db import create_tables
from pixelperks.load_secrets import timer_sweep_seconds
from pixelperks.routers import billing, catalog, member, station
from pixelperks.services import registry

scheduler = AsyncIOScheduler()
logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(app):
    """Prepare tables and default settings, then start the timer sweep.
    This function is called to start the server.
    """
    await create_tables()
    settings = await registry.catalog_service.read_settings()
    logging.info(f"Active cycle: {settings.active_cycle}")

    # Announce players whose time ran out since the previous sweep
    scheduler.add_job(
        registry.station_service.announce_expired_timers,
        "interval",
        seconds=timer_sweep_seconds,
    )
    scheduler.start()
    try:
        yield
    finally:
        scheduler.shutdown()
        await registry.redis.aclose()
        logging.info("Stop Server")


app = FastAPI(lifespan=lifespan)
app.include_router(station.station_router)
app.include_router(member.member_router)
app.include_router(catalog.catalog_router)
app.include_router(billing.billing_router)
