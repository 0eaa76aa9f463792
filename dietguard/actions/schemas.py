"""Input schemas for the draft actions (camelCase payloads as sent by the app)."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

MealSlotName = Literal["breakfast", "lunch", "dinner", "snack"]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IngredientRefPayload(_Payload):
    nevo_code: str = Field(alias="nevoCode", min_length=1)
    quantity_g: float = Field(alias="quantityG", ge=1)
    display_name: Optional[str] = Field(default=None, alias="displayName")
    tags: Optional[List[str]] = None


class LegacyIngredientPayload(_Payload):
    name: str
    amount: float = Field(ge=0)
    unit: str
    tags: Optional[List[str]] = None


class MacrosPayload(_Payload):
    calories: Optional[float] = Field(default=None, ge=0)
    protein: Optional[float] = Field(default=None, ge=0)
    carbs: Optional[float] = Field(default=None, ge=0)
    fat: Optional[float] = Field(default=None, ge=0)
    saturated_fat: Optional[float] = Field(default=None, alias="saturatedFat", ge=0)


class DraftSlotMealPayload(_Payload):
    id: str
    name: str
    slot: MealSlotName
    date: str = Field(pattern=DATE_PATTERN)
    ingredient_refs: List[IngredientRefPayload] = Field(alias="ingredientRefs", min_length=1)
    ingredients: Optional[List[LegacyIngredientPayload]] = None
    estimated_macros: Optional[MacrosPayload] = Field(default=None, alias="estimatedMacros")
    prep_time: Optional[int] = Field(default=None, alias="prepTime", ge=0)
    servings: Optional[int] = Field(default=None, ge=1)
    scheduled_time: Optional[str] = Field(default=None, alias="scheduledTime")
    tags: Optional[List[str]] = None


class DraftSlotUpdatePayload(_Payload):
    plan_id: str = Field(alias="planId", min_length=1)
    date: str = Field(pattern=DATE_PATTERN)
    meal_slot: MealSlotName = Field(alias="mealSlot")
    meal: DraftSlotMealPayload
