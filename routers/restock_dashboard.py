"""
Restock Dashboard Router
Feeds product lists into the dashboard and exposes its published state
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
import logging

from schemas import Product
from services.restock_dashboard import RestockDashboard, get_restock_dashboard

logger = logging.getLogger(__name__)
router = APIRouter()


class ProductIn(BaseModel):
    id: str
    name: str
    sku: Optional[str] = None
    category: Optional[str] = None
    stock: int = Field(ge=0)
    reorder_point: Optional[int] = None
    price: int = 0

    def to_product(self) -> Product:
        return Product(
            id=self.id,
            name=self.name,
            sku=self.sku,
            category=self.category,
            stock=self.stock,
            reorder_point=self.reorder_point,
            price=self.price,
        )


class UpdateProductsRequest(BaseModel):
    products: List[ProductIn]


class GenerateReportRequest(BaseModel):
    forceRefresh: bool = False


@router.put("/restock/products")
async def update_products(
    request: UpdateProductsRequest,
    dashboard: RestockDashboard = Depends(get_restock_dashboard),
):
    """Replace the product list; regeneration runs after the debounce window"""
    products = [item.to_product() for item in request.products]
    dashboard.update_products(products)
    logger.info(f"Product list updated ({len(products)} products); regeneration scheduled")
    return {"success": True, "productCount": len(products)}


@router.post("/restock/report")
async def generate_report(
    request: Optional[GenerateReportRequest] = None,
    dashboard: RestockDashboard = Depends(get_restock_dashboard),
):
    force_refresh = bool(request and request.forceRefresh)
    generation = dashboard.start_report(force_refresh=force_refresh)
    return {"success": True, "generation": generation, "forceRefresh": force_refresh}


@router.post("/restock/cache/clear")
async def clear_cache_and_refresh(dashboard: RestockDashboard = Depends(get_restock_dashboard)):
    generation = dashboard.clear_cache_and_refresh()
    return {"success": True, "generation": generation}


@router.get("/restock/dashboard")
async def get_dashboard(dashboard: RestockDashboard = Depends(get_restock_dashboard)):
    return dashboard.snapshot.to_dict()


@router.get("/restock/cache/stats")
async def get_cache_stats(dashboard: RestockDashboard = Depends(get_restock_dashboard)):
    return dashboard.refresh_cache_stats().to_dict()


@router.get("/restock/notifications")
async def get_notifications(dashboard: RestockDashboard = Depends(get_restock_dashboard)):
    recent = getattr(dashboard.notify, "recent", None)
    if recent is None:
        raise HTTPException(status_code=404, detail="Notification history not available")
    return {"notifications": recent()}


@router.get("/restock/metrics")
async def get_metrics(dashboard: RestockDashboard = Depends(get_restock_dashboard)):
    return {
        "summary": dashboard.metrics.get_performance_summary(),
        "phases": dashboard.metrics.get_phase_diagnostics(),
    }
