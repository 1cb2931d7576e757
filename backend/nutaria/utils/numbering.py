"""Code generation for production batches and rework lots.

Format tokens:
  {date}   → YYYYMMDD
  {seq:N}  → zero-padded sequence, N digits, resets daily per prefix

Production batches use PROD-{date}-{seq:3}.  The next sequence is one
past the highest existing code for the prefix, so gaps left by deleted
rows are not reused.

Rework lots are REWORK-{original lot_no}-{last 6 digits of epoch ms},
with -1, -2, ... appended while the number is taken.
"""

import re
import time
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.models.process import ProductionBatch
from nutaria.models.supply import SupplyBatch

PRODUCTION_BATCH_FORMAT = "PROD-{date}-{seq:3}"


def _build_prefix(fmt: str, today_str: str) -> str:
    """Everything before {seq:N}."""
    prefix = fmt.replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}.*$", "", prefix)


async def generate_production_batch_code(
    db: AsyncSession, today: date | None = None
) -> str:
    """Next code for today, e.g. "PROD-20260219-004"."""
    today_str = (today or date.today()).strftime("%Y%m%d")
    prefix = _build_prefix(PRODUCTION_BATCH_FORMAT, today_str)

    last_code = (await db.execute(
        select(ProductionBatch.batch_code)
        .where(ProductionBatch.batch_code.like(f"{prefix}%"))
        # -1000 sorts below -999 as text once the padding is outgrown
        .order_by(func.length(ProductionBatch.batch_code).desc(), ProductionBatch.batch_code.desc())
        .limit(1)
    )).scalar_one_or_none()

    seq_num = 1
    if last_code:
        tail = last_code.rsplit("-", 1)[-1]
        seq_num = (int(tail) if tail.isdigit() else 0) + 1

    seq_match = re.search(r"\{seq:(\d+)\}", PRODUCTION_BATCH_FORMAT)
    seq_width = int(seq_match.group(1)) if seq_match else 3

    code = PRODUCTION_BATCH_FORMAT.replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", code)


async def _lot_no_taken(db: AsyncSession, lot_no: str) -> bool:
    found = await db.execute(
        select(SupplyBatch.id).where(SupplyBatch.lot_no == lot_no).limit(1)
    )
    return found.scalar_one_or_none() is not None


async def generate_rework_lot_no(db: AsyncSession, original_lot_no: str) -> str:
    stamp = str(int(time.time() * 1000))[-6:]
    base = f"REWORK-{original_lot_no}-{stamp}"
    if not await _lot_no_taken(db, base):
        return base

    sequence = 1
    while await _lot_no_taken(db, f"{base}-{sequence}"):
        sequence += 1
    return f"{base}-{sequence}"
