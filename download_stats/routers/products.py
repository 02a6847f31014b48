from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from download_stats.db.session import get_db
from download_stats.models.product import Product, ProductMeta, PRODUCT_PUBLISHED, PRODUCT_DRAFT, DOWNLOAD_COUNT_META_KEY
from download_stats.schemas.product import ProductCreate, ProductOut
from download_stats.security.deps import require_admin
from download_stats.services.catalog import ProductCatalog


router = APIRouter()


def _product_out(pkg: Product, catalog: ProductCatalog) -> ProductOut:
    return ProductOut(id=pkg.id, title=pkg.title, status=pkg.status, download_count=catalog.download_count(pkg.id))


def _set_status(db: Session, product_id: int, new_status: str) -> ProductOut:
    pkg: Optional[Product] = db.query(Product).filter(Product.id == product_id).first()
    if not pkg:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if pkg.status != new_status:
        pkg.status = new_status
        db.add(pkg)
        db.commit()
        db.refresh(pkg)
    return _product_out(pkg, ProductCatalog(db))


@router.get("/", response_model=List[ProductOut])
def list_products(include_drafts: bool = False, db: Session = Depends(get_db)) -> List[ProductOut]:
    query = db.query(Product)
    if not include_drafts:
        query = query.filter(Product.status == PRODUCT_PUBLISHED)
    catalog = ProductCatalog(db)
    return [_product_out(p, catalog) for p in query.order_by(Product.id).all()]


@router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, _: None = Depends(require_admin), db: Session = Depends(get_db)) -> ProductOut:
    pkg = Product(title=payload.title, status=payload.status)
    pkg.meta.append(ProductMeta(meta_key=DOWNLOAD_COUNT_META_KEY, meta_value=str(payload.download_count)))
    db.add(pkg)
    db.commit()
    db.refresh(pkg)
    return _product_out(pkg, ProductCatalog(db))


@router.post("/{product_id}/publish", response_model=ProductOut)
def publish_product(product_id: int, _: None = Depends(require_admin), db: Session = Depends(get_db)) -> ProductOut:
    return _set_status(db, product_id, PRODUCT_PUBLISHED)


@router.post("/{product_id}/unpublish", response_model=ProductOut)
def unpublish_product(product_id: int, _: None = Depends(require_admin), db: Session = Depends(get_db)) -> ProductOut:
    return _set_status(db, product_id, PRODUCT_DRAFT)
