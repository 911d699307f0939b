from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductResponse
from app.modules.products.service import ProductService
from app.core.dependencies import (
    require_permission, get_access_cache, require_company_id, get_user_company_id, is_admin
)
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/products", tags=["products"])


def get_product_service(supabase: Client = Depends(get_supabase)) -> ProductService:
    return ProductService(supabase)


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    product_data: ProductCreate,
    user_data: Dict = Depends(require_permission("products:create")),
    service: ProductService = Depends(get_product_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """List a product for the current user's company"""
    return service.create_product(product_data, require_company_id(user_data, supabase, cache))


@router.get("", response_model=List[ProductResponse])
async def list_products(
    category_id: Optional[str] = None,
    country: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    company_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_data: Dict = Depends(require_permission("products:read")),
    service: ProductService = Depends(get_product_service)
):
    return service.list_products(category_id, country, search, min_price, max_price, company_id, "active", limit, offset)


@router.get("/mine", response_model=List[ProductResponse])
async def list_my_products(
    user_data: Dict = Depends(require_permission("products:read")),
    service: ProductService = Depends(get_product_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """All of the company's listings, drafts and archived included"""
    return service.list_products(company_id=require_company_id(user_data, supabase, cache), status=None, limit=200)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: str,
    user_data: Dict = Depends(require_permission("products:read")),
    service: ProductService = Depends(get_product_service)
):
    return service.get_product(product_id)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: str,
    product_data: ProductUpdate,
    user_data: Dict = Depends(require_permission("products:update")),
    service: ProductService = Depends(get_product_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    return service.update_product(
        product_id, product_data,
        get_user_company_id(user_data, supabase, cache),
        is_admin(user_data, supabase, cache)
    )


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: str,
    user_data: Dict = Depends(require_permission("products:delete")),
    service: ProductService = Depends(get_product_service),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    service.delete_product(
        product_id,
        get_user_company_id(user_data, supabase, cache),
        is_admin(user_data, supabase, cache)
    )
    return None
