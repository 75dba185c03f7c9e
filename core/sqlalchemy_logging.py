"""Quiet third-party loggers before any database or proxy connections are made."""

import logging

for _name in (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "sqlalchemy.dialects",
):
    logging.getLogger(_name).setLevel(logging.ERROR)

# requests logs every new connection to the proxies at DEBUG
logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
