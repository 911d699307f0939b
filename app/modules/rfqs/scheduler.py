import asyncio
import logging
from app.config import settings
from app.database.supabase_client import get_service_supabase
from app.modules.rfqs.service import RfqService

logger = logging.getLogger(__name__)


async def check_and_close_expired_rfqs():
    """Close RFQs past their closing date"""
    try:
        closed = RfqService(get_service_supabase()).expire_overdue_rfqs()
        if closed:
            logger.info(f"Closed {closed} expired RFQ(s)")
        else:
            logger.debug("No expired RFQs found")
    except Exception as e:
        logger.error(f"Error in RFQ expiry scheduler: {str(e)}")


async def rfq_expiry_loop():
    """Background task that periodically closes expired RFQs"""
    while True:
        try:
            await check_and_close_expired_rfqs()
        except Exception as e:
            logger.error(f"Error in RFQ expiry loop: {str(e)}")

        await asyncio.sleep(settings.rfq_expiry_check_seconds)
