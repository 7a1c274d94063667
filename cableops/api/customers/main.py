# cableops/api/customers/main.py
import dataclasses
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from ...core.constants import CustomerStatus
from ...core.exceptions import CableOpsError, VCSelectionRequired
from ...models.action_request import ActionRequest
from ...models.actor import Actor
from ...services.balance import billing_cycle_label
from ...services.billing_service import BillingService, summarize_cycle_run
from ...services.bulk_service import BulkService
from ...services.connection_service import ConnectionService
from ...services.customer_service import CustomerService
from ...services.import_service import export_customers_csv
from ...services.status_engine import StatusEngine, aggregate_status, eligible_vcs, has_multiple_vcs
from ..deps import (
    get_billing_service,
    get_bulk_service,
    get_connection_service,
    get_current_actor,
    get_customer_service,
    get_status_engine,
    http_error,
    require_admin,
)
from ..requests.models import ActionRequestRead
from .models import (
    BalanceRead,
    BillStatusUpdate,
    BulkAreaUpdate,
    BulkOutcomeRead,
    BulkPackageUpdate,
    ConnectionCreate,
    ConnectionRelease,
    CreditCreate,
    CustomerRead,
    CycleOutcomeRead,
    CycleRunRead,
    EligibleVC,
    EligibleVCs,
    FinancialSummaryRead,
    MonthlyBillRead,
    Payment,
    PaymentCreate,
    PaymentReceipt,
    PlanChange,
    PlanChangeResult,
    StatusChange,
    StatusChangeResult,
)

router = APIRouter()


def _balance(result) -> BalanceRead:
    return BalanceRead(
        previous_outstanding=result.previous_outstanding,
        current_outstanding=result.current_outstanding,
        cycle_payments=result.cycle_payments,
    )


# --- Customer Endpoints ---


@router.get("/customers", response_model=list[CustomerRead])
async def api_get_all_customers(
    include_disabled: bool = False,
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(get_current_actor),
):
    return [CustomerRead.from_customer(c) for c in await service.list_all(include_disabled)]


@router.get("/customers/export", response_class=PlainTextResponse)
async def api_export_customers(
    extended: bool = False,
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(require_admin),
):
    content = export_customers_csv(await service.list_all(), extended=extended)
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="customers.csv"'},
    )


# --- Bulk Endpoints ---


@router.post("/customers/bulk/area", response_model=list[BulkOutcomeRead])
async def api_bulk_update_area(
    payload: BulkAreaUpdate,
    service: BulkService = Depends(get_bulk_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        outcomes = await service.bulk_update_area(payload.customer_ids, payload.area, actor)
    except CableOpsError as e:
        raise http_error(e)
    return [BulkOutcomeRead(customer_id=o.customer_id, ok=o.ok, error=o.error) for o in outcomes]


@router.post("/customers/bulk/package", response_model=list[BulkOutcomeRead])
async def api_bulk_update_package(
    payload: BulkPackageUpdate,
    service: BulkService = Depends(get_bulk_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        outcomes = await service.bulk_update_package(payload.customer_ids, payload.package_name, actor)
    except CableOpsError as e:
        raise http_error(e)
    return [BulkOutcomeRead(customer_id=o.customer_id, ok=o.ok, error=o.error) for o in outcomes]


@router.post("/billing/cycles/run", response_model=CycleRunRead)
async def api_run_billing_cycles(
    today: date | None = None,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(require_admin),
):
    """Roll over every due customer and issue this month's bills."""
    today = today or date.today()
    outcomes = await service.process_due_cycles(today)
    summary = summarize_cycle_run(billing_cycle_label(today), outcomes)
    return CycleRunRead(
        cycle=summary.cycle,
        total_customers=summary.total_customers,
        bills_generated=summary.bills_generated,
        failed=summary.failed,
        total_amount=summary.total_amount,
        outcomes=[
            CycleOutcomeRead(
                customer_id=o.customer_id,
                cycle=o.cycle,
                ok=o.ok,
                balance=_balance(o.balance) if o.balance else None,
                bill_id=o.bill.id if o.bill else None,
                error=o.error,
            )
            for o in outcomes
        ],
    )


@router.patch("/billing/bills/{bill_id}/status", response_model=MonthlyBillRead)
async def api_update_bill_status(
    bill_id: uuid.UUID,
    payload: BillStatusUpdate,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(require_admin),
):
    try:
        return await service.bills.update_bill_status(bill_id, payload.status)
    except CableOpsError as e:
        raise http_error(e)


@router.get("/customers/{customer_id}", response_model=CustomerRead)
async def api_get_customer(
    customer_id: uuid.UUID,
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        return CustomerRead.from_customer(await service.get(customer_id))
    except CableOpsError as e:
        raise http_error(e)


@router.delete("/customers/{customer_id}", response_model=CustomerRead)
async def api_disable_customer(
    customer_id: uuid.UUID,
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(require_admin),
):
    """Soft-disable: customers with billing history are never deleted."""
    try:
        return CustomerRead.from_customer(await service.disable(customer_id))
    except CableOpsError as e:
        raise http_error(e)


# --- Status Endpoints ---


@router.get("/customers/{customer_id}/eligible-vcs", response_model=EligibleVCs)
async def api_get_eligible_vcs(
    customer_id: uuid.UUID,
    target: str,
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        target_status = CustomerStatus(target)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status '{target}'")
    try:
        customer = await service.get(customer_id)
    except CableOpsError as e:
        raise http_error(e)
    return EligibleVCs(
        target=target_status.value,
        aggregate_status=aggregate_status(customer).value,
        has_multiple_vcs=has_multiple_vcs(customer),
        eligible=[
            EligibleVC(vc_number=s.vc_number, status=s.status.value, is_primary=s.is_primary)
            for s in eligible_vcs(customer, target_status)
        ],
    )


@router.post("/customers/{customer_id}/status", response_model=StatusChangeResult)
async def api_change_status(
    customer_id: uuid.UUID,
    payload: StatusChange,
    service: CustomerService = Depends(get_customer_service),
    engine: StatusEngine = Depends(get_status_engine),
    actor: Actor = Depends(get_current_actor),
):
    """
    Change the status of a customer's VCs.

    Admins get the change applied right away; anyone else creates a pending
    action request. A customer with several VCs needs an explicit vc_numbers list.
    """
    try:
        customer = await service.get(customer_id)
        result = await engine.change_status(customer, payload.status, actor, payload.vc_numbers, payload.reason)
    except VCSelectionRequired as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "eligible": e.eligible})
    except CableOpsError as e:
        raise http_error(e)

    if isinstance(result, ActionRequest):
        return StatusChangeResult(applied=False, request=ActionRequestRead.model_validate(result))
    return StatusChangeResult(applied=bool(result), logs=result)


@router.post("/customers/{customer_id}/plan", response_model=PlanChangeResult)
async def api_change_plan(
    customer_id: uuid.UUID,
    payload: PlanChange,
    service: CustomerService = Depends(get_customer_service),
    engine: StatusEngine = Depends(get_status_engine),
    actor: Actor = Depends(get_current_actor),
):
    try:
        customer = await service.get(customer_id)
        result = await engine.change_plan(customer, payload.package_name, actor, payload.reason)
    except CableOpsError as e:
        raise http_error(e)

    if isinstance(result, ActionRequest):
        return PlanChangeResult(applied=False, request=ActionRequestRead.model_validate(result))
    return PlanChangeResult(applied=True, customer=CustomerRead.from_customer(result))


# --- Billing Endpoints ---


@router.post("/customers/{customer_id}/balance/recompute", response_model=BalanceRead)
async def api_recompute_balance(
    customer_id: uuid.UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        return _balance(await service.recompute(customer_id))
    except CableOpsError as e:
        raise http_error(e)


@router.get("/customers/{customer_id}/bills", response_model=list[MonthlyBillRead])
async def api_get_bills(
    customer_id: uuid.UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
):
    return await service.bills.get_bills_for_customer(customer_id)


@router.get("/customers/{customer_id}/financial-summary", response_model=FinancialSummaryRead)
async def api_get_financial_summary(
    customer_id: uuid.UUID,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        summary = await service.financial_summary(customer_id)
    except CableOpsError as e:
        raise http_error(e)
    return FinancialSummaryRead(**dataclasses.asdict(summary))


@router.get("/customers/{customer_id}/payments", response_model=list[Payment])
async def api_get_payments(
    customer_id: uuid.UUID,
    cycle: str | None = None,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
):
    return await service.payments.get_payments_for_customer(customer_id, cycle)


@router.post(
    "/customers/{customer_id}/payments",
    response_model=PaymentReceipt,
    status_code=status.HTTP_201_CREATED,
)
async def api_record_payment(
    customer_id: uuid.UUID,
    payload: PaymentCreate,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        receipt = await service.record_payment(
            customer_id,
            payload.amount,
            actor,
            vc_number=payload.vc_number,
            method=payload.method,
            notes=payload.notes,
        )
    except CableOpsError as e:
        raise http_error(e)
    return PaymentReceipt(payment=Payment.model_validate(receipt.payment), balance=_balance(receipt.balance))


@router.post("/customers/{customer_id}/credits", response_model=BalanceRead)
async def api_apply_credit(
    customer_id: uuid.UUID,
    payload: CreditCreate,
    service: BillingService = Depends(get_billing_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        result = await service.apply_credit(customer_id, payload.amount, actor, payload.reason, payload.vc_number)
    except CableOpsError as e:
        raise http_error(e)
    return _balance(result)


# --- Connection Endpoints ---


@router.post(
    "/customers/{customer_id}/connections",
    response_model=CustomerRead,
    status_code=status.HTTP_201_CREATED,
)
async def api_add_connection(
    customer_id: uuid.UUID,
    payload: ConnectionCreate,
    connections: ConnectionService = Depends(get_connection_service),
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        await connections.add_connection(
            customer_id,
            payload.vc_number,
            actor,
            plan_name=payload.plan_name,
            plan_price=payload.plan_price,
            make_primary=payload.make_primary,
        )
        return CustomerRead.from_customer(await service.get(customer_id))
    except CableOpsError as e:
        raise http_error(e)


@router.post("/customers/{customer_id}/connections/{vc_number}/release", response_model=CustomerRead)
async def api_release_connection(
    customer_id: uuid.UUID,
    vc_number: str,
    payload: ConnectionRelease,
    connections: ConnectionService = Depends(get_connection_service),
    service: CustomerService = Depends(get_customer_service),
    actor: Actor = Depends(get_current_actor),
):
    try:
        await connections.release_connection(customer_id, vc_number, actor, payload.reason)
        return CustomerRead.from_customer(await service.get(customer_id))
    except CableOpsError as e:
        raise http_error(e)
