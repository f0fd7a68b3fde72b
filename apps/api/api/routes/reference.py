from fastapi import APIRouter
from pydantic import BaseModel

from apps.api.dependencies.auth import CurrentActor
from apps.api.dependencies.services import TicketServiceDep

router = APIRouter(tags=["reference"])


class ReferenceItemModel(BaseModel):
    id: int
    name: str


@router.get("/priorities", response_model=list[ReferenceItemModel])
async def list_priorities(service: TicketServiceDep, _: CurrentActor) -> list[ReferenceItemModel]:
    priorities = await service.list_priorities()
    return [ReferenceItemModel(id=item.id, name=item.name) for item in priorities]


@router.get("/categories", response_model=list[ReferenceItemModel])
async def list_categories(service: TicketServiceDep, _: CurrentActor) -> list[ReferenceItemModel]:
    categories = await service.list_categories()
    return [ReferenceItemModel(id=item.id, name=item.name) for item in categories]
