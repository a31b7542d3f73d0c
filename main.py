# main.py
import asyncio
import logging
from campus_delivery.bot import DeliveryBot
from campus_delivery.config import Config, setup_logging

async def main():
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info(f"Admins: {Config.ADMIN_IDS or 'none configured'}, timezone {Config.TIMEZONE}")

    bot = DeliveryBot()
    try:
        await bot.start()
    except Exception:
        logger.exception("Delivery bot crashed")
        raise

def run():
    """Console script entry point"""
    asyncio.run(main())

if __name__ == "__main__":
    run()
