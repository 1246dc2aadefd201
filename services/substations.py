from __future__ import annotations
import logging
from typing import Iterable, List, Optional

from tortoise.exceptions import IntegrityError
from tortoise.queryset import QuerySet

from models import TransformerSubstation
from services.cache import summary_cache
from services.errors import NotFound, SubstationNameTaken
from services.validation import validate_substation_name

logger = logging.getLogger(__name__)


async def get_substation(substation_id: int) -> TransformerSubstation:
    obj = await TransformerSubstation.get_or_none(id=substation_id)
    if not obj:
        raise NotFound("Substation", substation_id)
    return obj


async def is_name_taken(name: str, exclude_id: Optional[int] = None) -> bool:
    qs = TransformerSubstation.filter(name=name)
    if exclude_id is not None:
        qs = qs.exclude(id=exclude_id)
    return await qs.exists()


async def create_substation(name: str) -> TransformerSubstation:
    name = validate_substation_name(name)
    if await is_name_taken(name):
        raise SubstationNameTaken(name)
    try:
        obj = await TransformerSubstation.create(name=name)
    except IntegrityError:
        # lost a race with another insert of the same name
        raise SubstationNameTaken(name)
    logger.info(f"substation created: id={obj.id} name={obj.name}")
    return obj


async def rename_substation(substation_id: int, name: str) -> TransformerSubstation:
    name = validate_substation_name(name)
    obj = await get_substation(substation_id)
    if obj.name == name:
        return obj
    if await is_name_taken(name, exclude_id=substation_id):
        raise SubstationNameTaken(name)
    obj.name = name
    await obj.save()
    summary_cache.invalidate(substation_id)
    return obj


async def delete_substation(substation_id: int) -> None:
    """Deletes the substation and, through FK cascade, all of its meter records."""
    obj = await get_substation(substation_id)
    await obj.delete()
    summary_cache.invalidate(substation_id)
    logger.info(f"substation deleted: id={substation_id}")


def substations_matching(text: Optional[str] = None, ids: Optional[Iterable[int]] = None) -> QuerySet:
    qs = TransformerSubstation.all()
    if text and text.strip():
        qs = qs.filter(name__icontains=text.strip())
    if ids is not None:
        qs = qs.filter(id__in=list(ids))
    return qs


async def search_substations(query: Optional[str] = None) -> List[TransformerSubstation]:
    return await substations_matching(query).order_by("name")
