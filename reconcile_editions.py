import asyncio
import json
import logging

from moment_editions.api.dependencies import build_services
from moment_editions.config import settings
from moment_editions.db import db

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO), format='%(message)s')

# Initialize database
db.init()

services = build_services(settings, db)

# Reconcile every recorded edition against the chain
reports = asyncio.run(services.reconciler.reconcile_all())

# Print results
print(json.dumps([report.model_dump(mode='json') for report in reports], indent=2))
