"""
Thin layer over hdbcli, SAP's DB-API driver for HANA.

Scrapers never keep a connection between scrapes: each one opens its own,
runs its statement and closes it again, so concurrent scrapers share
nothing but the read-only ConnectionDescriptor.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Sequence

from hdbcli import dbapi

from hana_exporter.config import ConnectionDescriptor

log = logging.getLogger(__name__)

FETCH_BATCH_SIZE = 500

# Everything a query can fail with that is not a bug in the scraper
DatabaseError = (dbapi.Error, OSError)

Connect = Callable[[ConnectionDescriptor], Any]


def connect(conn: ConnectionDescriptor):
    """Open a DB-API connection described by conn."""
    kwargs = dict(
        address=conn.host,
        port=conn.port,
        user=conn.user,
        password=conn.password,
        # hdbcli wants milliseconds; communicationTimeout bounds every query
        connectTimeout=conn.timeout * 1000,
        communicationTimeout=conn.query_timeout * 1000,
    )
    if conn.encrypt:
        kwargs["encrypt"] = True
        kwargs["sslValidateCertificate"] = conn.validate_certificate
        if conn.trust_store:
            kwargs["sslTrustStore"] = conn.trust_store
        if conn.server_name:
            kwargs["sslHostNameInCertificate"] = conn.server_name

    log.debug("Connecting to %s (encrypt=%s)", conn.address, conn.encrypt)
    return dbapi.connect(**kwargs)


def iter_rows(
    connect_fn: Connect,
    conn: ConnectionDescriptor,
    sql: str,
    batch_size: int = FETCH_BATCH_SIZE,
) -> Iterator[Sequence[Any]]:
    """Run sql and yield rows as they are fetched, batch by batch."""
    connection = connect_fn(conn)
    try:
        cursor = connection.cursor()
        try:
            cursor.execute(sql)
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    break
                yield from rows
        finally:
            cursor.close()
    finally:
        connection.close()
