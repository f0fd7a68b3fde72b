from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from apps.api.dependencies.auth import CurrentActor
from apps.api.dependencies.services import TicketServiceDep
from apps.api.services.models import Ticket, TicketComment, TicketDetail

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketModel(BaseModel):
    id: int
    title: str
    description: str
    category_id: int
    priority_id: int
    status: str
    owner_id: str
    assigned_to_id: str | None = None
    created_at: str

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketModel":
        return cls(
            id=ticket.id,
            title=ticket.title,
            description=ticket.description,
            category_id=ticket.category_id,
            priority_id=ticket.priority_id,
            status=ticket.status,
            owner_id=ticket.owner_id,
            assigned_to_id=ticket.assigned_to_id,
            created_at=ticket.created_at.isoformat(),
        )


class TicketCommentModel(BaseModel):
    id: int
    ticket_id: int
    author_id: str
    content: str
    created_at: str

    @classmethod
    def from_entity(cls, comment: TicketComment) -> "TicketCommentModel":
        return cls(
            id=comment.id,
            ticket_id=comment.ticket_id,
            author_id=comment.author_id,
            content=comment.content,
            created_at=comment.created_at.isoformat(),
        )


class TicketDetailModel(TicketModel):
    comments: list[TicketCommentModel] = Field(default_factory=list)

    @classmethod
    def from_detail(cls, detail: TicketDetail) -> "TicketDetailModel":
        base = TicketModel.from_entity(detail.ticket)
        return cls(
            **base.model_dump(),
            comments=[TicketCommentModel.from_entity(comment) for comment in detail.comments],
        )


# Owner, status, priority and assignment are never accepted here; extra keys are ignored.
class TicketContentRequest(BaseModel):
    title: str = Field(..., max_length=200)
    description: str
    category_id: int


class TicketStatusChangeRequest(BaseModel):
    status: str = Field(..., max_length=100)


class TicketPriorityChangeRequest(BaseModel):
    priority_id: int


class TicketAssignRequest(BaseModel):
    support_actor_id: str = Field(..., min_length=1)


class TicketCommentCreateRequest(BaseModel):
    content: str = Field(..., max_length=1000)


@router.get("", response_model=list[TicketModel], summary="List tickets visible to the caller")
async def list_tickets(service: TicketServiceDep, actor: CurrentActor) -> list[TicketModel]:
    tickets = await service.list_tickets(actor)
    return [TicketModel.from_entity(ticket) for ticket in tickets]


@router.post("", response_model=TicketModel, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketContentRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketModel:
    ticket = await service.create_ticket(
        actor,
        title=payload.title,
        description=payload.description,
        category_id=payload.category_id,
    )
    return TicketModel.from_entity(ticket)


@router.get("/{ticket_id}", response_model=TicketDetailModel)
async def get_ticket(ticket_id: int, service: TicketServiceDep, actor: CurrentActor) -> TicketDetailModel:
    detail = await service.get_ticket(actor, ticket_id)
    return TicketDetailModel.from_detail(detail)


@router.put("/{ticket_id}", response_model=TicketModel)
async def edit_ticket(
    ticket_id: int,
    payload: TicketContentRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketModel:
    ticket = await service.edit_ticket_content(
        actor,
        ticket_id,
        title=payload.title,
        description=payload.description,
        category_id=payload.category_id,
    )
    return TicketModel.from_entity(ticket)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: int, service: TicketServiceDep, actor: CurrentActor) -> None:
    await service.delete_ticket(actor, ticket_id)


@router.post("/{ticket_id}/status", response_model=TicketModel)
async def change_ticket_status(
    ticket_id: int,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketModel:
    ticket = await service.change_status(actor, ticket_id, status=payload.status)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_id}/priority", response_model=TicketModel)
async def change_ticket_priority(
    ticket_id: int,
    payload: TicketPriorityChangeRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketModel:
    ticket = await service.change_priority(actor, ticket_id, priority_id=payload.priority_id)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_id}/assign", response_model=TicketModel)
async def assign_ticket(
    ticket_id: int,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketModel:
    ticket = await service.assign_to_support(actor, ticket_id, support_actor_id=payload.support_actor_id)
    return TicketModel.from_entity(ticket)


@router.post("/{ticket_id}/take", response_model=TicketModel)
async def take_ticket(ticket_id: int, service: TicketServiceDep, actor: CurrentActor) -> TicketModel:
    ticket = await service.take_ticket(actor, ticket_id)
    return TicketModel.from_entity(ticket)


@router.post(
    "/{ticket_id}/comments",
    response_model=TicketCommentModel,
    status_code=status.HTTP_201_CREATED,
)
async def add_ticket_comment(
    ticket_id: int,
    payload: TicketCommentCreateRequest,
    service: TicketServiceDep,
    actor: CurrentActor,
) -> TicketCommentModel:
    comment = await service.add_comment(actor, ticket_id, content=payload.content)
    return TicketCommentModel.from_entity(comment)
