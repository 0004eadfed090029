import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import delete, func, select, true
from sqlalchemy.orm import Session, selectinload

from .auth import require_role, require_token
from .config import local_now
from .db import get_session
from .models import ProductCostIngredient, ProductCostRecipe, StockCode, StockPurchase
from .numbers import optional_number, to_int

log = logging.getLogger("bufe.costs")

router = APIRouter(prefix="/product-costs")


class StockCostOut(BaseModel):
    id: int
    stock_code_id: int
    stock_code: str
    product_name: str
    brand: Optional[str] = None
    unit: Optional[str] = None
    avg_cost: Optional[float] = None
    latest_cost: Optional[float] = None
    default_cost: float
    has_purchases: bool


class IngredientOut(BaseModel):
    id: int
    stock_code_id: int
    stock_code: Optional[str] = None
    stock_name: Optional[str] = None
    brand: Optional[str] = None
    unit: Optional[str] = None
    quantity: float
    unit_cost_override: Optional[float] = None
    avg_unit_cost: Optional[float] = None
    latest_unit_cost: Optional[float] = None
    default_unit_cost: float
    effective_unit_cost: float
    line_cost: float


class RecipeOut(BaseModel):
    id: int
    product_name: str
    notes: str
    last_updated: Optional[datetime] = None
    total_cost: float
    ingredients: List[IngredientOut]


class RecipeSaveReq(BaseModel):
    notes: Any = ""
    ingredients: Any = None


def stock_costs(s: Session, active_only: bool = False) -> Dict[int, StockCostOut]:
    """
    Per stock code: average and latest per-item purchase price. The default
    cost prefers the latest purchase, then the average, then 0.
    """
    latest = (
        select(StockPurchase.per_item_price)
        .where(StockPurchase.stock_code_id == StockCode.id)
        .order_by(StockPurchase.purchase_date.desc(), StockPurchase.id.desc())
        .limit(1)
        .correlate(StockCode)
        .scalar_subquery()
    )
    stmt = (
        select(StockCode, func.avg(StockPurchase.per_item_price), latest)
        .outerjoin(StockPurchase, StockPurchase.stock_code_id == StockCode.id)
        .group_by(StockCode.id)
        .order_by(StockCode.product_name)
    )
    if active_only:
        stmt = stmt.where(StockCode.is_active == true())
    out: Dict[int, StockCostOut] = {}
    for sc, avg_cost, latest_cost in s.execute(stmt).all():
        avg_cost = None if avg_cost is None else float(avg_cost)
        latest_cost = None if latest_cost is None else float(latest_cost)
        if latest_cost is not None:
            default = latest_cost
        elif avg_cost is not None:
            default = avg_cost
        else:
            default = 0.0
        out[sc.id] = StockCostOut(
            id=sc.id,
            stock_code_id=sc.id,
            stock_code=sc.stock_code,
            product_name=sc.product_name,
            brand=sc.brand,
            unit=sc.unit,
            avg_cost=avg_cost,
            latest_cost=latest_cost,
            default_cost=default,
            has_purchases=avg_cost is not None or latest_cost is not None,
        )
    return out


def resolve_unit_cost(override: Optional[float], cost: Optional[StockCostOut]) -> float:
    if override is not None:
        return override
    return cost.default_cost if cost else 0.0


def compute_recipe_cost(recipe: ProductCostRecipe, costs: Dict[int, StockCostOut]) -> RecipeOut:
    lines: List[IngredientOut] = []
    total = 0.0
    for ing in recipe.ingredients:
        cost = costs.get(ing.stock_code_id)
        unit_cost = resolve_unit_cost(ing.unit_cost_override, cost)
        quantity = ing.quantity or 0.0
        line_cost = round(quantity * unit_cost, 4)
        total += line_cost
        lines.append(
            IngredientOut(
                id=ing.id,
                stock_code_id=ing.stock_code_id,
                stock_code=cost.stock_code if cost else None,
                stock_name=cost.product_name if cost else None,
                brand=cost.brand if cost else None,
                unit=cost.unit if cost else None,
                quantity=quantity,
                unit_cost_override=ing.unit_cost_override,
                avg_unit_cost=cost.avg_cost if cost else None,
                latest_unit_cost=cost.latest_cost if cost else None,
                default_unit_cost=cost.default_cost if cost else 0.0,
                effective_unit_cost=unit_cost,
                line_cost=line_cost,
            )
        )
    return RecipeOut(
        id=recipe.id,
        product_name=recipe.product_name,
        notes=recipe.notes or "",
        last_updated=recipe.last_updated,
        total_cost=round(total, 4),
        ingredients=lines,
    )


def _recipes(s: Session, product_name: Optional[str] = None) -> List[RecipeOut]:
    stmt = select(ProductCostRecipe).options(selectinload(ProductCostRecipe.ingredients))
    if product_name is not None:
        stmt = stmt.where(ProductCostRecipe.product_name == product_name)
    stmt = stmt.order_by(ProductCostRecipe.product_name)
    recipes = s.execute(stmt).scalars().all()
    if not recipes:
        return []
    costs = stock_costs(s)
    return [compute_recipe_cost(r, costs) for r in recipes]


def load_recipe(s: Session, product_name: str) -> RecipeOut:
    found = _recipes(s, product_name)
    if not found:
        raise HTTPException(status_code=404, detail="recipe not found")
    return found[0]


def clean_ingredients(s: Session, raw: Any) -> List[dict]:
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="ingredients must be a list")
    known = set(s.execute(select(StockCode.id)).scalars().all())
    cleaned: List[dict] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        stock_id = to_int(entry.get("stock_code_id"))
        quantity = optional_number(entry.get("quantity"))
        if stock_id not in known or quantity is None or quantity <= 0:
            continue
        cleaned.append(
            {
                "stock_code_id": stock_id,
                "quantity": quantity,
                "unit_cost_override": optional_number(entry.get("unit_cost_override")),
            }
        )
    return cleaned


@router.get("/ingredients", response_model=List[StockCostOut])
def list_ingredients(s: Session = Depends(get_session), user: dict = Depends(require_token)):
    return list(stock_costs(s, active_only=True).values())


@router.get("", response_model=List[RecipeOut])
def list_recipes(s: Session = Depends(get_session), user: dict = Depends(require_token)):
    return _recipes(s)


@router.get("/{product_name}", response_model=RecipeOut)
def get_recipe(product_name: str, s: Session = Depends(get_session), user: dict = Depends(require_token)):
    return load_recipe(s, product_name)


@router.put("/{product_name}", response_model=RecipeOut)
def save_recipe(
    product_name: str,
    req: RecipeSaveReq,
    s: Session = Depends(get_session),
    user: dict = Depends(require_role("superadmin")),
):
    """
    Replace a product's recipe. Lines with a non-positive quantity or an
    unknown stock code are skipped; the response is the rollup priced
    against current purchases.
    """
    cleaned = clean_ingredients(s, req.ingredients)
    notes = req.notes if isinstance(req.notes, str) else ""
    recipe = s.execute(
        select(ProductCostRecipe).where(ProductCostRecipe.product_name == product_name)
    ).scalar_one_or_none()
    if recipe is None:
        recipe = ProductCostRecipe(product_name=product_name)
        s.add(recipe)
    recipe.notes = notes
    recipe.last_updated = local_now()
    s.flush()
    s.execute(
        delete(ProductCostIngredient)
        .where(ProductCostIngredient.recipe_id == recipe.id)
        .execution_options(synchronize_session=False)
    )
    s.add_all(ProductCostIngredient(recipe_id=recipe.id, **c) for c in cleaned)
    s.commit()
    log.info(
        "recipe saved",
        extra={"product_name": product_name, "ingredients": len(cleaned), "user": user.get("sub")},
    )
    return load_recipe(s, product_name)
