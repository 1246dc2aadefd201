# services/seeder.py
from __future__ import annotations
import json
import uuid
from pathlib import Path

from passlib.context import CryptContext
from tortoise.transactions import in_transaction

from models import TransformerSubstation, User
from services import config
from services.errors import InvalidSubstationName
from services.validation import validate_substation_name

BASE_DIR = Path(__file__).resolve().parent.parent
pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _load_json(path: str):
    p = Path(path)
    if not p.is_absolute():
        p = BASE_DIR / p
    return json.loads(p.read_text(encoding="utf-8")) if p.exists() else []


async def seed_admin(logger=print) -> bool:
    if await User.exists():
        return False
    await User.create(
        id=uuid.uuid4(),
        username=config.ADMIN_USERNAME,
        email=config.ADMIN_EMAIL,
        hashed_password=pwd_ctx.hash(config.ADMIN_PASSWORD),
        is_admin=True,
    )
    logger(f"[seed] admin user '{config.ADMIN_USERNAME}' created")
    return True


async def seed_substations_if_empty(path: str | None = None, logger=print) -> dict:
    count = await TransformerSubstation.all().count()
    if count:
        logger(f"[seed] substations={count}, already populated - skipping.")
        return {"created": 0, "skipped": 0}

    created = skipped = 0
    async with in_transaction():
        for s in _load_json(path or config.SEED_FILE):
            try:
                name = validate_substation_name(s.get("name") or "")
            except InvalidSubstationName:
                skipped += 1
                continue
            _, was_created = await TransformerSubstation.get_or_create(name=name)
            if was_created:
                created += 1
            else:
                skipped += 1

    logger(f"[seed] substations created={created}, skipped={skipped}")
    return {"created": created, "skipped": skipped}
