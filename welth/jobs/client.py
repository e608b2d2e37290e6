import logging

import inngest

from welth.core.config import settings

# Retries use the platform's exponential backoff; every function sets retries=2
inngest_client = inngest.Inngest(
    app_id=settings.INNGEST_APP_ID,
    is_production=settings.INNGEST_IS_PRODUCTION,
    logger=logging.getLogger("welth.jobs"),
)

RECURRING_TRANSACTION_EVENT = "transaction.recurring.process"
