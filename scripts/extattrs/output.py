"""CSV output with a dated file name per run."""

from __future__ import annotations

import csv
import logging
import os
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

logger = logging.getLogger("extattrs.output")

FILE_PREFIX = "ExtensionAttributes"


def output_filename(tenant_id: str, now: Optional[datetime] = None) -> str:
    """ExtensionAttributes_<tenant>_<YYYY-MM-DD_HHMMSS>.csv"""
    timestamp = (now or datetime.now()).strftime("%Y-%m-%d_%H%M%S")
    safe_tenant = "".join(c if c.isalnum() or c in "-_." else "_" for c in tenant_id)
    return f"{FILE_PREFIX}_{safe_tenant}_{timestamp}.csv"


def write_csv(
    records: Iterable[dict[str, Any]],
    fields: Sequence[str],
    output_dir: str,
    tenant_id: str,
    now: Optional[datetime] = None,
) -> str:
    """Write rows under a header of `fields` and return the file path.

    An existing file is never replaced; a second run within the same second
    gets a numbered name instead.
    """
    os.makedirs(output_dir, exist_ok=True)
    base, ext = os.path.splitext(output_filename(tenant_id, now))

    suffix = 0
    while True:
        name = f"{base}_{suffix}{ext}" if suffix else f"{base}{ext}"
        path = os.path.join(output_dir, name)
        try:
            f = open(path, "x", newline="", encoding="utf-8")
        except FileExistsError:
            suffix += 1
            continue
        break

    count = 0
    with f:
        writer = csv.DictWriter(f, fieldnames=list(fields))
        writer.writeheader()
        for row in records:
            writer.writerow(row)
            count += 1

    logger.info("Wrote %d rows to %s", count, path, extra={"tenant": tenant_id, "records": count})
    return path
