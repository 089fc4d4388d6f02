from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from stockdb.database import get_db, get_read_db
from stockdb.security import get_current_active_user
from stockdb.apps.accounts import models as account_models
from stockdb.apps.accounts import services as account_services

from . import alerts, catalog, queries, schemas, services

router = APIRouter(
    prefix="/inventory/{tenant_slug}",
    tags=["inventory"],
)


def get_tenant_access(
    tenant_slug: str,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(get_current_active_user),
) -> account_services.TenantAccess:
    try:
        return account_services.resolve_tenant_access(db, user_id=current_user.id, tenant_slug=tenant_slug)
    except account_services.TenantAccessDenied:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant access denied")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/snapshot", response_model=schemas.InventorySnapshot)
def get_snapshot(
    db: Session = Depends(get_read_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return queries.inventory_snapshot(db, access)


@router.get("/dashboard/alerts", response_model=schemas.LowStockAlertsRead)
def get_dashboard_alerts(
    location: Optional[str] = Query("all"),
    limit: Optional[int] = Query(alerts.DEFAULT_LIMIT),
    db: Session = Depends(get_read_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return services.get_low_stock_alerts(db, access, location_filter=location, limit=limit)


# ---------------------------------------------------------------------------
# Ledger operations
# ---------------------------------------------------------------------------


@router.post("/movements", response_model=schemas.MovementResult, status_code=status.HTTP_201_CREATED)
def create_movement(
    payload: schemas.MovementCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return services.create_movement(db, access, payload)


@router.post("/opname", response_model=schemas.OpnameResult, status_code=status.HTTP_201_CREATED)
def create_opname(
    payload: schemas.OpnameCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return services.create_opname(db, access, payload)


@router.post("/transfers", response_model=schemas.TransferResult, status_code=status.HTTP_201_CREATED)
def create_transfer(
    payload: schemas.TransferCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return services.create_transfer(db, access, payload)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@router.post("/categories", response_model=schemas.CatalogWriteResult, status_code=status.HTTP_201_CREATED)
def create_category(
    payload: schemas.NamedCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.create_category(db, access, payload)


@router.put("/categories/{category_id}", response_model=schemas.CatalogWriteResult)
def update_category(
    category_id: str,
    payload: schemas.NamedCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.update_category(db, access, category_id, payload)


@router.delete("/categories/{category_id}", response_model=schemas.CatalogWriteResult)
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.delete_category(db, access, category_id)


@router.post("/units", response_model=schemas.CatalogWriteResult, status_code=status.HTTP_201_CREATED)
def create_unit(
    payload: schemas.NamedCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.create_unit(db, access, payload)


@router.put("/units/{unit_id}", response_model=schemas.CatalogWriteResult)
def update_unit(
    unit_id: str,
    payload: schemas.NamedCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.update_unit(db, access, unit_id, payload)


@router.delete("/units/{unit_id}", response_model=schemas.CatalogWriteResult)
def delete_unit(
    unit_id: str,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.delete_unit(db, access, unit_id)


@router.post("/products", response_model=schemas.CatalogWriteResult, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.create_product(db, access, payload)


@router.put("/products/{product_id}", response_model=schemas.CatalogWriteResult)
def update_product(
    product_id: str,
    payload: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.update_product(db, access, product_id, payload)


@router.delete("/products/{product_id}", response_model=schemas.CatalogWriteResult)
def delete_product(
    product_id: str,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.delete_product(db, access, product_id)


@router.post("/outlets", response_model=schemas.CatalogWriteResult, status_code=status.HTTP_201_CREATED)
def create_outlet(
    payload: schemas.OutletWrite,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.create_outlet(db, access, payload)


@router.put("/outlets/{outlet_id}", response_model=schemas.CatalogWriteResult)
def update_outlet(
    outlet_id: str,
    payload: schemas.OutletWrite,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.update_outlet(db, access, outlet_id, payload)


@router.delete("/outlets/{outlet_id}", response_model=schemas.CatalogWriteResult)
def delete_outlet(
    outlet_id: str,
    db: Session = Depends(get_db),
    access: account_services.TenantAccess = Depends(get_tenant_access),
):
    return catalog.delete_outlet(db, access, outlet_id)
