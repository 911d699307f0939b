from supabase import Client
from app.database.supabase_client import like_contains
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductResponse
from typing import List, Optional
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_product(self, product_data: ProductCreate, company_id: str) -> ProductResponse:
        try:
            now = datetime.now(timezone.utc).isoformat()
            insert_data = product_data.model_dump()
            insert_data.update({"company_id": company_id, "created_at": now, "updated_at": now})
            result = self.supabase.table("products").insert(insert_data).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create product")
            return ProductResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_product(self, product_id: str) -> ProductResponse:
        try:
            result = self.supabase.table("products")\
                .select("*")\
                .eq("id", product_id)\
                .maybe_single()\
                .execute()
            if not result or not result.data:
                raise HTTPException(status_code=404, detail="Product not found")
            return ProductResponse(**result.data)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_products(
        self,
        category_id: Optional[str] = None,
        country: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        company_id: Optional[str] = None,
        status: Optional[str] = "active",
        limit: int = 50,
        offset: int = 0
    ) -> List[ProductResponse]:
        """Listings filtered by category, origin country, name search and overlapping price range"""
        try:
            query = self.supabase.table("products").select("*")
            if status:
                query = query.eq("status", status)
            if company_id:
                query = query.eq("company_id", company_id)
            if category_id:
                query = query.eq("category_id", category_id)
            if country:
                query = query.eq("country_of_origin", country)
            if search:
                query = query.ilike("name", like_contains(search.strip()))
            if min_price is not None:
                query = query.gte("price_max", min_price)
            if max_price is not None:
                query = query.lte("price_min", max_price)
            result = query.order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [ProductResponse(**p) for p in result.data or []]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _owned(self, product_id: str, company_id: Optional[str], admin: bool) -> ProductResponse:
        product = self.get_product(product_id)
        if not admin and product.company_id != company_id:
            raise HTTPException(status_code=403, detail="Only the listing company can modify this product")
        return product

    def update_product(self, product_id: str, product_data: ProductUpdate, company_id: Optional[str], admin: bool = False) -> ProductResponse:
        try:
            product = self._owned(product_id, company_id, admin)
            update_data = product_data.model_dump(exclude_unset=True)
            if not update_data:
                return product
            low = update_data.get("price_min", product.price_min)
            high = update_data.get("price_max", product.price_max)
            if low is not None and high is not None and low > high:
                raise HTTPException(status_code=400, detail="price_min cannot exceed price_max")
            update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
            result = self.supabase.table("products")\
                .update(update_data)\
                .eq("id", product_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Product not found")
            return ProductResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_product(self, product_id: str, company_id: Optional[str], admin: bool = False) -> bool:
        try:
            self._owned(product_id, company_id, admin)
            self.supabase.table("products").delete().eq("id", product_id).execute()
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
