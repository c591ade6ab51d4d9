"""Storage initialization script"""
import asyncio

from daycount.config import settings
from daycount.main import open_services


async def main():
    """Create tables / document and seed today's row"""
    print(f"Initializing storage (backend={settings.storage_backend})...")
    services = await open_services(settings)
    try:
        today = await services.counter_store.get_today()
    finally:
        await services.backend.close()
    print(f"Storage initialized successfully! {today.date}: {today.count}")


if __name__ == "__main__":
    asyncio.run(main())
