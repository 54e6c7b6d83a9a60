from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockdesk.core.api_docs import error_responses
from stockdesk.core.deps import commit_or_rollback, get_db
from stockdesk.core.security_current import Actor, get_current_actor
from stockdesk.models.customer import Customer
from stockdesk.schemas.master import CustomerCreate, CustomerLookupOut, CustomerOut
from stockdesk.services import master_data_service

router = APIRouter(prefix="/customers", tags=["customers"])


def _customer_out(customer: Customer) -> CustomerOut:
    return CustomerOut(
        id=customer.id,
        name=customer.name,
        contact_person=customer.contact_person,
        phone=customer.phone,
        email=customer.email,
        address=customer.address,
        amc_contract_number=customer.amc_contract_number,
        amc_start_date=customer.amc_start_date,
        amc_end_date=customer.amc_end_date,
        created_at=customer.created_at,
    )


@router.post(
    "",
    response_model=CustomerOut,
    summary="Create customer",
    responses=error_responses(401, 422, 500, 503),
)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    customer = master_data_service.create_customer(db, payload, actor)
    commit_or_rollback(db)
    return _customer_out(customer)


@router.get(
    "/lookup",
    response_model=CustomerLookupOut,
    summary="Find customers by name",
    description="Case-insensitive substring match, for resolving customer names typed into serial contexts.",
    responses=error_responses(422, 500),
)
def lookup_customers(
    name: str = Query(min_length=1, max_length=255),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    rows = master_data_service.lookup_customers_by_name(db, name, limit=limit)
    return CustomerLookupOut(items=[_customer_out(customer) for customer in rows])


@router.get(
    "/{customer_id}",
    response_model=CustomerOut,
    summary="Get customer",
    responses=error_responses(404, 500),
)
def get_customer(customer_id: str, db: Session = Depends(get_db)):
    return _customer_out(master_data_service.get_customer(db, customer_id))
